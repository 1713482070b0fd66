import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from mealsync.engine import MealSyncEngine
from mealsync.tests.fake_remote import FakeRemoteState, create_fake_remote, SwitchableTransport, FakeClock


class TestMealSyncEngine(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.state = FakeRemoteState()
        self.transport = SwitchableTransport(create_fake_remote(self.state))
        self.clock = FakeClock()
        self.engine = MealSyncEngine(data_dir=None, base_url="http://remote.test",
                                     transport=self.transport, clock=self.clock)
        await self.engine.start(sync_interval=None)

    async def asyncTearDown(self):
        await self.engine.aclose()

    async def test_offline_cooking_then_foreground_sync(self):
        self.transport.online = False
        session = await self.engine.sessions.start("r1", total_steps=2)
        await self.engine.timers.create_timer(session.id, "Pasta", 480)
        await self.engine.energy.record_energy(2)

        self.transport.online = True
        self.engine.app_foreground()
        await self.engine.reconciler.wait_idle()

        self.assertIn(session.id, self.state.resource("cooking-sessions"))
        self.assertEqual(len(self.state.resource("cooking-timers")), 1)
        self.assertEqual(len(self.state.resource("energy-snapshots")), 1)
        events = self.engine.status.get_events()["events"]
        self.assertEqual(events[-1]["type"], "sync.completed")

    async def test_reminders_are_restored_on_start(self):
        with tempfile.TemporaryDirectory() as tmp:
            first = MealSyncEngine(data_dir=Path(tmp), base_url="http://remote.test", transport=self.transport,
                                   clock=self.clock)
            await first.start(sync_interval=None)
            await first.reminders.create("Lunch", "12:30", days_of_week=[1])
            await first.aclose()

            # A new process: same data directory, empty OS schedule
            second = MealSyncEngine(data_dir=Path(tmp), base_url="http://remote.test", transport=self.transport,
                                    clock=self.clock)
            await second.start(sync_interval=None)
            try:
                self.assertEqual(len(second.dispatcher.pending()), 2)
            finally:
                await second.aclose()

    async def test_wall_clock_follows_the_configured_zone(self):
        plus_four = timezone(timedelta(hours=4))
        engine = MealSyncEngine(data_dir=None, base_url="http://remote.test", transport=self.transport,
                                clock=self.clock, tz=plus_four)
        await engine.start(sync_interval=None)
        try:
            # 14:00 UTC on a Wednesday is 18:00 the same day at UTC+4
            lunch = await engine.reminders.create("Lunch", "13:00", pre_alert_minutes=0, days_of_week=[3])
            [notification] = engine.dispatcher.pending()
            self.assertEqual(notification.instant, datetime(2025, 1, 22, 13, 0, tzinfo=plus_four))
            snapshot = await engine.energy.record_energy(3)
            self.assertEqual(snapshot.time_of_day, "evening")
            log = await engine.meal_logs.log_meal(reminder_id=lunch.id)
            self.assertEqual(log.scheduled_for, datetime(2025, 1, 15, 13, 0, tzinfo=plus_four))
        finally:
            await engine.aclose()

    def test_breakdowns_need_a_provider(self):
        self.assertIsNone(self.engine.breakdowns)


if __name__ == '__main__':
    unittest.main()
