import json
import logging
import os
import time
import fcntl
from pathlib import Path
from typing import Dict, List, Optional
from .models import WatchEntry, WatchState
from .config import settings

logger = logging.getLogger(__name__)

class SharedWatchState:
    """
    Process-wide "currently watching" container.

    Synchronizers only write into it (single-key upserts); other surfaces read.
    Persistence is batched: writes mark the state dirty and the owner calls
    save() / save_if_dirty() periodically and on shutdown.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.STATE_PATH)
        self.state = WatchState()
        self.read_only = False
        self.dirty = False
        self._load()

    def _load(self):
        if not self.path.exists():
            logger.info(f"No watch state file found at {self.path}, creating new.")
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
                self.state = WatchState(**data)
        except Exception as e:
            logger.error(f"Failed to load watch state: {e}. Starting fresh.", exc_info=True)

    def save(self):
        if not settings.PERSIST_ENABLED or self.read_only:
            return

        tmp_path = self.path.with_suffix('.tmp')
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, 'w') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.warning("Could not acquire lock for watch state save. Skipping save cycle.")
                    return

                try:
                    json.dump(self.state.model_dump(mode="json"), f, indent=2)
                    f.flush()
                    os.fsync(f.fileno())
                finally:
                    fcntl.flock(f, fcntl.LOCK_UN)

            os.rename(tmp_path, self.path)
            self.dirty = False

        except OSError as e:
            logger.error(f"Failed to save watch state to {self.path}: {e}")
            # If we can't write, switch to read-only to be safe for this run
            self.read_only = True

    def save_if_dirty(self):
        if self.dirty:
            self.save()

    def set_progress(self, content_id: str, percentage: float):
        """Upsert the percentage for content_id. Fire-and-forget."""
        self.state.currently_watching = WatchEntry(
            content_id=content_id,
            progress=percentage,
            timestamp=time.time(),
        )
        if percentage >= 100:
            self._drop_from_continue_watching(content_id)
            self.state.progress.pop(content_id, None)
        else:
            self.state.progress[content_id] = percentage
            self._touch_continue_watching(content_id)
        self.dirty = True

    def _touch_continue_watching(self, content_id: str):
        """Move content_id to the most recent end, keeping the list bounded."""
        cw = self.state.continue_watching
        if content_id in cw:
            cw.remove(content_id)
        cw.append(content_id)

        # Trim from beginning
        if len(cw) > settings.CONTINUE_WATCHING_MAX_SIZE:
            dropped = cw[:-settings.CONTINUE_WATCHING_MAX_SIZE]
            self.state.continue_watching = cw[-settings.CONTINUE_WATCHING_MAX_SIZE:]
            for old in dropped:
                self.state.progress.pop(old, None)

    def _drop_from_continue_watching(self, content_id: str):
        if content_id in self.state.continue_watching:
            self.state.continue_watching.remove(content_id)

    def get_progress(self, content_id: str) -> Optional[float]:
        return self.state.progress.get(content_id)

    @property
    def currently_watching(self) -> Optional[WatchEntry]:
        return self.state.currently_watching

    def continue_watching(self) -> List[Dict]:
        """Most recently watched first."""
        return [
            {"content_id": cid, "progress": self.state.progress.get(cid, 0.0)}
            for cid in reversed(self.state.continue_watching)
        ]
