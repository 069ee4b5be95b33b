import logging
import httpx
from typing import Optional
from ..config import settings
from ..exceptions import LoadFailure, MarkCompleteFailure, SaveFailure
from ..models import RemoteProgress

logger = logging.getLogger(__name__)

class ContentClient:
    """RemoteProgressStore backed by the content API."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        headers = {"Accept": "application/json"}
        if settings.CONTENT_API_TOKEN:
            headers["Authorization"] = f"Bearer {settings.CONTENT_API_TOKEN}"
        self.client = client or httpx.AsyncClient(
            base_url=settings.CONTENT_API_URL.rstrip('/'),
            headers=headers,
            timeout=settings.REQUEST_TIMEOUT_SECONDS
        )

    async def aclose(self):
        await self.client.aclose()

    async def load(self, content_id: str) -> Optional[RemoteProgress]:
        """
        Fetch stored progress for content_id.
        Returns None when the content has no progress recorded (or is unknown).
        """
        try:
            resp = await self.client.get(f"/content/{content_id}")
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise LoadFailure(content_id, f"Failed to load progress: HTTP {e.response.status_code}",
                              status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            raise LoadFailure(content_id, f"Failed to load progress: {e}") from e

        # Details are usually wrapped in 'data'
        data = body.get("data", body) if isinstance(body, dict) else {}
        if data.get("watched_seconds") is None:
            return None

        return RemoteProgress(
            watched_seconds=data.get("watched_seconds") or 0,
            total_seconds=data.get("duration_seconds") or 0,
            is_completed=data.get("is_completed") or False,
            last_watched_at=data.get("last_watched_at"),
        )

    async def save(self, content_id: str, watched_seconds: float, total_seconds: float):
        if settings.DRY_RUN:
            logger.info(f"[DRY RUN] Would save {content_id} at {watched_seconds}/{total_seconds}s")
            return

        payload = {
            "watched_seconds": watched_seconds,
            "total_seconds": total_seconds,
        }
        try:
            resp = await self.client.post(f"/content/{content_id}/progress", json=payload)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SaveFailure(content_id, f"Failed to save progress: HTTP {e.response.status_code}",
                              status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise SaveFailure(content_id, f"Failed to save progress: {e}") from e
        logger.debug(f"Saved {content_id} at {watched_seconds:.1f}s")

    async def mark_complete(self, content_id: str):
        if settings.DRY_RUN:
            logger.info(f"[DRY RUN] Would mark {content_id} completed")
            return

        try:
            resp = await self.client.post(f"/content/{content_id}/mark-completed")
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise MarkCompleteFailure(content_id, f"Failed to mark as completed: HTTP {e.response.status_code}",
                                      status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise MarkCompleteFailure(content_id, f"Failed to mark as completed: {e}") from e
        logger.info(f"Marked {content_id} completed")
