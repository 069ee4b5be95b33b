import asyncio
import unittest
from watchsync.config import settings
from watchsync.main import ProgressService
from fakes import MockSharedState, make_store, remote

class TestProgressService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.store = make_store(remote(30, 300))
        self.shared = MockSharedState()
        self.shared.save = lambda: None
        self.shared.save_if_dirty = lambda: None
        self.service = ProgressService(store=self.store, shared_state=self.shared)

    async def test_open_loads_once(self):
        sync = await self.service.open("c1")
        again = await self.service.open("c1")

        self.assertIs(sync, again)
        self.assertFalse(sync.is_loading)
        self.assertEqual(sync.snapshot.watched_seconds, 30)
        self.store.load.assert_awaited_once_with("c1")

    async def test_concurrent_open_shares_load(self):
        first, second = await asyncio.gather(self.service.open("c1"), self.service.open("c1"))
        self.assertIs(first, second)
        self.assertEqual(self.store.load.await_count, 1)
        self.assertFalse(second.is_loading)

    async def test_open_applies_option_overrides(self):
        sync = await self.service.open("c1", save_interval_ms=50, auto_save=False)
        self.assertEqual(sync.options.save_interval_ms, 50)
        self.assertFalse(sync.options.auto_save)

    async def test_sessions_share_scheduler_and_state(self):
        a = await self.service.open("a")
        b = await self.service.open("b")
        self.assertIs(a.scheduler, b.scheduler)
        a.update_progress(100, 300)
        b.update_progress(200, 300)
        self.assertEqual(len(self.service.scheduler), 2)
        self.assertEqual(set(self.shared.progress), {"a", "b"})

    async def test_close_flushes_pending_save(self):
        sync = await self.service.open("c1")
        sync.update_progress(60, 300)
        self.assertTrue(self.service.close("c1"))
        self.assertIsNone(self.service.get("c1"))
        self.assertFalse(self.service.close("c1"))

        await sync.drain()
        self.store.save.assert_awaited_once_with("c1", 60, 300)

    async def test_dispose_idle(self):
        await self.service.open("c1")
        await self.service.open("c2")
        self.service.last_activity["c1"] -= settings.IDLE_TIMEOUT_SECONDS + 1

        self.assertEqual(self.service.dispose_idle(), 1)
        self.assertIsNone(self.service.get("c1"))
        self.assertIsNotNone(self.service.get("c2"))

    async def test_shutdown_flushes_everything(self):
        a = await self.service.open("a")
        b = await self.service.open("b")
        a.update_progress(100, 300)
        b.update_progress(200, 300)

        await self.service.shutdown()

        self.assertFalse(self.service.running)
        self.assertEqual(self.service.synchronizers, {})
        self.assertEqual(len(self.service.scheduler), 0)
        self.assertEqual(self.store.save.await_count, 2)
        self.store.save.assert_any_await("a", 100, 300)
        self.store.save.assert_any_await("b", 200, 300)

if __name__ == '__main__':
    unittest.main()
