import asyncio
import logging
from typing import Optional, Protocol, Set, Tuple
from .debounce import DebounceScheduler
from .models import ProgressSnapshot, RemoteProgress, SyncOptions
from .state import SharedWatchState

logger = logging.getLogger(__name__)


class RemoteProgressStore(Protocol):
    async def load(self, content_id: str) -> Optional[RemoteProgress]: ...
    async def save(self, content_id: str, watched_seconds: float, total_seconds: float) -> None: ...
    async def mark_complete(self, content_id: str) -> None: ...


def _message(exc: Exception, default: str) -> str:
    return str(exc) or default


class ProgressSynchronizer:
    """
    Keeps one content item's playback position in sync between local ticks,
    the shared watch state and the remote store.

    Ticks update the local snapshot immediately. Remote writes are gated on the
    distance from the last persisted position (the watermark) and coalesced by
    the debounce scheduler, so a burst of ticks yields one save with the last
    values. Remote failures never propagate; they are exposed via `error`.
    """

    def __init__(self, content_id: str, store: RemoteProgressStore, shared_state: SharedWatchState,
                 options: Optional[SyncOptions] = None, scheduler: Optional[DebounceScheduler] = None):
        self.content_id = content_id
        self.store = store
        self.shared_state = shared_state
        self.options = options if options is not None else SyncOptions()
        self.scheduler = scheduler if scheduler is not None else DebounceScheduler()

        self.snapshot: Optional[ProgressSnapshot] = None
        self.is_loading = True
        self.error: Optional[str] = None
        self.last_persisted_seconds: float = 0.0
        self.disposed = False

        self._remote_completed = False
        self._saves_in_flight = 0
        self._save_seq = 0
        self._applied_seq = 0
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_saving(self) -> bool:
        return self._saves_in_flight > 0

    @property
    def has_pending_io(self) -> bool:
        return bool(self._tasks) or self.scheduler.is_pending(self.content_id)

    async def load(self):
        self.is_loading = True
        try:
            remote = await self.store.load(self.content_id)
            self.error = None
            if remote is None or remote.watched_seconds is None:
                logger.debug(f"No remote progress for {self.content_id}")
                return

            if self.snapshot is not None:
                # Ticks arrived while loading; they are newer than the remote record.
                logger.info(f"Keeping local progress for {self.content_id} over loaded record")
            else:
                loaded = ProgressSnapshot.compute(
                    self.content_id,
                    remote.watched_seconds,
                    remote.total_seconds or 0.0,
                    self.options.completion_threshold,
                    last_watched_at=remote.last_watched_at,
                )
                if remote.is_completed and not loaded.is_completed:
                    loaded = loaded.model_copy(update={"is_completed": True})
                self.snapshot = loaded
            self.last_persisted_seconds = remote.watched_seconds
            self._remote_completed = bool(remote.is_completed)
            logger.info(f"Loaded progress for {self.content_id}: {remote.watched_seconds:.1f}s")
        except Exception as e:
            self.error = _message(e, "Failed to load progress")
            logger.error(f"Failed to load progress for {self.content_id}: {e}")
        finally:
            self.is_loading = False

    def update_progress(self, watched_seconds: float, total_seconds: float) -> Optional[ProgressSnapshot]:
        """Ingest a playback tick. Returns the new local snapshot."""
        if watched_seconds < 0 or total_seconds < 0:
            raise ValueError("watched_seconds and total_seconds must be non-negative")
        if self.disposed:
            logger.warning(f"Ignoring tick for disposed synchronizer {self.content_id}")
            return self.snapshot

        self.snapshot = ProgressSnapshot.compute(
            self.content_id, watched_seconds, total_seconds, self.options.completion_threshold
        )
        self.shared_state.set_progress(self.content_id, self.snapshot.progress_percentage)

        delta = abs(watched_seconds - self.last_persisted_seconds)
        if self.options.auto_save and delta >= self.options.min_progress_change:
            self.scheduler.schedule(
                self.content_id,
                (watched_seconds, total_seconds),
                self.options.save_interval_ms,
                self._on_debounce_fired,
            )
        return self.snapshot

    def _on_debounce_fired(self, payload: Tuple[float, float]):
        watched_seconds, total_seconds = payload
        self._spawn(self._save(watched_seconds, total_seconds))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _save(self, watched_seconds: float, total_seconds: float):
        self._save_seq += 1
        seq = self._save_seq
        self._saves_in_flight += 1
        try:
            await self.store.save(self.content_id, watched_seconds, total_seconds)
        except Exception as e:
            self.error = _message(e, "Failed to save progress")
            logger.error(f"Failed to save progress for {self.content_id}: {e}")
            return
        finally:
            self._saves_in_flight -= 1

        self.error = None
        if seq < self._applied_seq:
            logger.info(f"Discarding stale save response for {self.content_id} ({watched_seconds:.1f}s)")
            return
        self._applied_seq = seq
        self.last_persisted_seconds = watched_seconds
        if self.snapshot is not None:
            self.snapshot = self.snapshot.touched()
        logger.debug(f"Persisted {self.content_id} at {watched_seconds:.1f}s")

        pct = ProgressSnapshot.percentage_of(watched_seconds, total_seconds)
        if pct >= self.options.completion_threshold and not self._remote_completed:
            await self._mark_complete_remote()

    async def _mark_complete_remote(self):
        self._saves_in_flight += 1
        try:
            await self.store.mark_complete(self.content_id)
            self._remote_completed = True
            self.error = None
        except Exception as e:
            self.error = _message(e, "Failed to mark as completed")
            logger.error(f"Failed to mark {self.content_id} completed: {e}")
        finally:
            self._saves_in_flight -= 1

    async def save_progress(self):
        """Persist the current snapshot now, superseding any pending debounced save."""
        self.scheduler.cancel(self.content_id)
        if self.snapshot is None:
            return
        await self._save(self.snapshot.watched_seconds, self.snapshot.total_seconds)

    async def mark_completed(self):
        # Local state is optimistic and is not rolled back on failure.
        base = self.snapshot if self.snapshot is not None else ProgressSnapshot(content_id=self.content_id)
        self.snapshot = base.completed()
        self.shared_state.set_progress(self.content_id, 100.0)
        await self._mark_complete_remote()

    def reset_progress(self) -> ProgressSnapshot:
        """Local-only reset; the remote record is left untouched."""
        self.scheduler.cancel(self.content_id)
        total = self.snapshot.total_seconds if self.snapshot is not None else 0.0
        self.snapshot = ProgressSnapshot(content_id=self.content_id, total_seconds=total)
        self.last_persisted_seconds = 0.0
        # Saves issued before the reset must not move the watermark back
        self._applied_seq = self._save_seq + 1
        self.shared_state.set_progress(self.content_id, 0.0)
        return self.snapshot

    def dispose(self):
        """Flush any pending debounced save without waiting for it."""
        if self.disposed:
            return
        self.disposed = True
        if self.scheduler.flush_now(self.content_id):
            logger.info(f"Flushed pending progress for {self.content_id} on dispose")

    async def drain(self):
        """Wait for all in-flight remote calls to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
