from unittest.mock import AsyncMock
from watchsync.models import RemoteProgress


class FakeHandle:
    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Just enough of an event loop for DebounceScheduler, driven by advance()."""
    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    def advance(self, seconds):
        self.now += seconds
        due = sorted(
            (h for h in self.handles if not h.cancelled and h.when <= self.now),
            key=lambda h: h.when
        )
        for h in due:
            self.handles.remove(h)
            h.callback(*h.args)

    @property
    def active(self):
        return [h for h in self.handles if not h.cancelled]


class MockSharedState:
    def __init__(self):
        self.calls = []
        self.progress = {}

    def set_progress(self, content_id, percentage):
        self.calls.append((content_id, percentage))
        self.progress[content_id] = percentage


def make_store(remote=None):
    store = AsyncMock()
    store.load.return_value = remote
    store.save.return_value = None
    store.mark_complete.return_value = None
    return store


def remote(watched, total, completed=False):
    return RemoteProgress(watched_seconds=watched, total_seconds=total, is_completed=completed)
