import time
from fastapi import FastAPI, Depends, HTTPException, Header
from pydantic import BaseModel, Field
from typing import Optional, TYPE_CHECKING
from .config import settings

if TYPE_CHECKING:
    from .main import ProgressService
    from .engine import ProgressSynchronizer

app = FastAPI(title="Watch Progress Sync")
service: Optional["ProgressService"] = None
started_at = time.time()


class Tick(BaseModel):
    watched_seconds: float = Field(ge=0)
    total_seconds: float = Field(default=0.0, ge=0)


def get_token(x_token: Optional[str] = Header(None, alias="X-Token")):
    if settings.HTTP_SERVER_TOKEN and x_token != settings.HTTP_SERVER_TOKEN:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_service() -> "ProgressService":
    if service is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return service


def describe(sync: "ProgressSynchronizer") -> dict:
    return {
        "content_id": sync.content_id,
        "progress": sync.snapshot.model_dump(mode="json") if sync.snapshot else None,
        "is_loading": sync.is_loading,
        "is_saving": sync.is_saving,
        "error": sync.error,
    }


@app.get("/healthz")
def healthz():
    if service is None:
        return {"status": "starting"}
    return {"status": "ok", "uptime": time.time() - started_at}


@app.get("/status", dependencies=[Depends(get_token)])
def status():
    svc = get_service()
    return {
        "active_sessions": len(svc.synchronizers),
        "pending_saves": len(svc.scheduler),
        "errors": {cid: s.error for cid, s in svc.synchronizers.items() if s.error},
        "config": {
            "save_interval_ms": settings.SAVE_INTERVAL_MS,
            "min_progress_change": settings.MIN_PROGRESS_CHANGE_SECONDS,
            "completion_threshold": settings.COMPLETION_THRESHOLD_PERCENT,
            "auto_save": settings.AUTO_SAVE,
        }
    }


@app.get("/metrics")
def metrics():
    # Simple prometheus-style text format
    if service is None:
        return ""

    lines = [
        f'watchsync_active_sessions {len(service.synchronizers)}',
        f'watchsync_pending_saves {len(service.scheduler)}',
        f'watchsync_saves_in_flight {sum(1 for s in service.synchronizers.values() if s.is_saving)}',
        f'watchsync_sessions_with_error {sum(1 for s in service.synchronizers.values() if s.error)}',
    ]
    return "\n".join(lines)


@app.get("/watching", dependencies=[Depends(get_token)])
def watching():
    shared = get_service().shared_state
    current = shared.currently_watching
    return {
        "currently_watching": current.model_dump() if current else None,
        "continue_watching": shared.continue_watching(),
    }


@app.get("/progress/{content_id}", dependencies=[Depends(get_token)])
async def get_progress(content_id: str):
    sync = await get_service().open(content_id)
    return describe(sync)


@app.post("/progress/{content_id}", dependencies=[Depends(get_token)])
async def post_tick(content_id: str, tick: Tick):
    sync = await get_service().open(content_id)
    sync.update_progress(tick.watched_seconds, tick.total_seconds)
    return describe(sync)


@app.post("/progress/{content_id}/save", dependencies=[Depends(get_token)])
async def save_now(content_id: str):
    sync = await get_service().open(content_id)
    await sync.save_progress()
    return describe(sync)


@app.post("/progress/{content_id}/complete", dependencies=[Depends(get_token)])
async def complete(content_id: str):
    sync = await get_service().open(content_id)
    await sync.mark_completed()
    return describe(sync)


@app.post("/progress/{content_id}/reset", dependencies=[Depends(get_token)])
async def reset(content_id: str):
    sync = await get_service().open(content_id)
    sync.reset_progress()
    return describe(sync)


@app.delete("/progress/{content_id}", dependencies=[Depends(get_token)])
async def close_session(content_id: str):
    if not get_service().close(content_id):
        raise HTTPException(status_code=404, detail=f"No active session for {content_id}")
    return {"closed": content_id}
