import asyncio
import logging
import signal
import sys
import time
import uvicorn
from typing import Dict, Optional, Set

from .config import settings
from .state import SharedWatchState
from .clients.content_client import ContentClient
from .debounce import DebounceScheduler
from .engine import ProgressSynchronizer, RemoteProgressStore
from .models import SyncOptions
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("main")

class ProgressService:
    """One synchronizer per actively watched content item, sharing a scheduler and state."""

    def __init__(self, store: Optional[RemoteProgressStore] = None,
                 shared_state: Optional[SharedWatchState] = None):
        self.running = True
        self.store = store if store is not None else ContentClient()
        self.shared_state = shared_state if shared_state is not None else SharedWatchState(settings.STATE_PATH)
        self.scheduler = DebounceScheduler()
        self.synchronizers: Dict[str, ProgressSynchronizer] = {}
        self.last_activity: Dict[str, float] = {}
        self._opening: Dict[str, asyncio.Task] = {}
        self._closing: Set[ProgressSynchronizer] = set()  # disposed, flush may still be in flight

        # Link service to server module
        server.service = self

    def get(self, content_id: str) -> Optional[ProgressSynchronizer]:
        sync = self.synchronizers.get(content_id)
        if sync is not None:
            self.last_activity[content_id] = time.time()
        return sync

    async def open(self, content_id: str, **overrides) -> ProgressSynchronizer:
        """Return the active synchronizer for content_id, creating and loading it if needed."""
        sync = self.get(content_id)
        if sync is not None:
            if content_id in self._opening:
                await asyncio.shield(self._opening[content_id])
            return sync

        sync = ProgressSynchronizer(
            content_id,
            self.store,
            self.shared_state,
            options=SyncOptions(**overrides),
            scheduler=self.scheduler,
        )
        self.synchronizers[content_id] = sync
        self.last_activity[content_id] = time.time()

        task = asyncio.ensure_future(sync.load())
        self._opening[content_id] = task
        try:
            await asyncio.shield(task)
        finally:
            self._opening.pop(content_id, None)
        logger.info(f"Opened session for {content_id}")
        return sync

    def close(self, content_id: str) -> bool:
        sync = self.synchronizers.pop(content_id, None)
        self.last_activity.pop(content_id, None)
        if sync is None:
            return False
        sync.dispose()
        self._closing.add(sync)
        logger.info(f"Closed session for {content_id}")
        return True

    def dispose_idle(self, now: Optional[float] = None) -> int:
        now = now or time.time()
        idle = [
            cid for cid, ts in self.last_activity.items()
            if now - ts > settings.IDLE_TIMEOUT_SECONDS
        ]
        for cid in idle:
            logger.info(f"Session {cid} idle for over {settings.IDLE_TIMEOUT_SECONDS}s, disposing")
            self.close(cid)
        return len(idle)

    async def housekeeping(self):
        """Periodic slow tasks"""
        logger.info("Housekeeping started")
        while self.running:
            try:
                self.dispose_idle()
                # Forget closed sessions once their flush settled
                for sync in list(self._closing):
                    if not sync.has_pending_io:
                        self._closing.discard(sync)
                self.shared_state.save_if_dirty()
            except Exception as e:
                logger.error(f"Error in housekeeping: {e}", exc_info=True)

            await asyncio.sleep(settings.HOUSEKEEPING_INTERVAL_SECONDS)

    async def shutdown(self):
        self.running = False
        for cid in list(self.synchronizers):
            self.close(cid)
        for sync in list(self._closing):
            await sync.drain()
        self._closing.clear()
        self.shared_state.save()
        if isinstance(self.store, ContentClient):
            await self.store.aclose()
        logger.info("Shutdown complete")

    async def start(self):
        tasks = [asyncio.create_task(self.housekeeping())]

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host=settings.HTTP_SERVER_HOST, port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            await self.shutdown()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

def run():
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = ProgressService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")

if __name__ == "__main__":
    run()
