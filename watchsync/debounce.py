import asyncio
import logging
from typing import Any, Callable, Dict, Hashable, Optional

logger = logging.getLogger(__name__)


class _Pending:
    __slots__ = ("payload", "action", "handle")

    def __init__(self, payload: Any, action: Callable[[Any], Any], handle: asyncio.TimerHandle):
        self.payload = payload
        self.action = action
        self.handle = handle


class DebounceScheduler:
    """
    Keyed debounce + coalesce primitive.

    At most one timer is pending per key. Scheduling again for a key cancels the
    pending timer, replaces its payload and restarts the window, so a burst of
    requests produces a single call carrying the last payload.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._pending: Dict[Hashable, _Pending] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, key: Hashable, payload: Any, window_ms: float, action: Callable[[Any], Any]):
        previous = self._pending.pop(key, None)
        if previous is not None:
            previous.handle.cancel()
            logger.debug(f"Replacing pending payload for {key}")

        handle = self._get_loop().call_later(max(0.0, window_ms / 1000.0), self._fire, key)
        self._pending[key] = _Pending(payload, action, handle)

    def _fire(self, key: Hashable):
        pending = self._pending.pop(key, None)
        if pending is None:
            return
        pending.action(pending.payload)

    def flush_now(self, key: Hashable) -> bool:
        """Run the pending action for key immediately. Returns False if nothing was pending."""
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending.handle.cancel()
        pending.action(pending.payload)
        return True

    def cancel(self, key: Hashable) -> bool:
        pending = self._pending.pop(key, None)
        if pending is None:
            return False
        pending.handle.cancel()
        return True

    def cancel_all(self):
        for pending in self._pending.values():
            pending.handle.cancel()
        self._pending.clear()

    def is_pending(self, key: Hashable) -> bool:
        return key in self._pending

    def pending_payload(self, key: Hashable) -> Any:
        pending = self._pending.get(key)
        return pending.payload if pending is not None else None

    def __len__(self) -> int:
        return len(self._pending)
