import asyncio
import unittest

from mealsync.domain.EnergySnapshot import FavoriteMeal
from mealsync.domain.MealReminder import MealReminder
from mealsync.events.Event_Bus import SYNC_COMPLETED, SYNC_RETRY_EXCEEDED, CONNECTIVITY_REGAINED
from mealsync.events.sync_observers import SyncStatusLog
from mealsync.logic.sync.reconciler import BackgroundReconciler, SYNCED, REJECTED, SKIPPED, DELETED
from mealsync.tests.fake_remote import Harness

MEALS = "favorite-meals"


def meal(meal_id, name="Toast"):
    return FavoriteMeal(id=meal_id, meal_name=name, energy_level=2)


class TestBackgroundReconciler(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.h = Harness()
        self.meals = self.h.repo(FavoriteMeal)
        self.reminders = self.h.repo(MealReminder)
        self.reconciler = BackgroundReconciler([self.meals, self.reminders], bus=self.h.bus, max_retries=3)

    async def asyncTearDown(self):
        await self.reconciler.stop()
        self.reconciler.close()
        await self.h.aclose()

    async def write_offline(self, *meals):
        self.h.go_offline()
        for m in meals:
            self.h.clock.advance(seconds=1)
            await self.meals.write(m)
        self.h.go_online()

    async def test_pushes_pending_records_oldest_first(self):
        await self.write_offline(meal("b-first"), meal("a-second"), meal("c-third"))
        report = await self.reconciler.reconcile()
        posted = [c[2] for c in self.h.state.calls_for("POST", MEALS)]
        self.assertEqual(posted, ["b-first", "a-second", "c-third"])
        self.assertEqual(report.count(SYNCED), 3)
        self.assertEqual(self.meals.pending(), [])

    async def test_offline_writes_of_same_id_produce_one_create(self):
        await self.write_offline(meal("m1"), meal("m1", name="Renamed"))
        await self.reconciler.reconcile()
        self.assertEqual(len(self.h.state.calls_for("POST", MEALS)), 1)
        self.assertEqual(self.h.state.resource(MEALS)["m1"]["meal_name"], "Renamed")

    async def test_one_rejection_does_not_abort_the_pass(self):
        await self.write_offline(meal("m1"), meal("m2"))
        self.h.state.reject[("POST", MEALS)] = (422, "bad meal")
        report = await self.reconciler.reconcile()
        self.assertEqual(report.count(REJECTED), 2)
        self.assertEqual(len(self.h.state.calls_for("POST", MEALS)), 2)
        self.assertEqual(len(self.meals.pending()), 2)

    async def test_offline_pass_keeps_records_pending(self):
        await self.write_offline(meal("m1"))
        self.h.go_offline()
        report = await self.reconciler.reconcile()
        self.assertTrue(report.summary()["offline"])
        self.assertEqual(len(self.meals.pending()), 1)

    async def test_retry_limit_reports_and_manual_sync_retries(self):
        await self.write_offline(meal("m1"))
        self.h.state.reject[("POST", MEALS)] = (500, "server down")
        exceeded = []
        self.h.bus.subscribe(SYNC_RETRY_EXCEEDED, lambda name, payload: exceeded.append(payload))

        for _ in range(3):
            await self.reconciler.reconcile()
        self.assertEqual(len(exceeded), 1)
        self.assertEqual(exceeded[0]["id"], "m1")

        # Automatic passes leave it alone, but keep it.
        report = await self.reconciler.reconcile()
        self.assertEqual(report.for_record("favorite_meals", "m1"), SKIPPED)
        self.assertEqual(len(self.meals.pending()), 1)

        del self.h.state.reject[("POST", MEALS)]
        report = await self.reconciler.reconcile(manual=True)
        self.assertEqual(report.for_record("favorite_meals", "m1"), SYNCED)
        self.assertEqual(self.meals.pending(), [])

    async def test_queued_delete_is_replayed(self):
        await self.meals.write(meal("m1"))
        self.h.go_offline()
        await self.meals.delete("m1")
        self.h.go_online()
        report = await self.reconciler.reconcile()
        self.assertEqual(report.for_record("favorite_meals", "m1"), DELETED)
        self.assertNotIn("m1", self.h.state.resource(MEALS))
        self.assertEqual(self.h.store.tombstones("favorite_meals"), [])

    async def test_pull_refreshes_local_copies(self):
        self.h.state.resource(MEALS)["srv"] = meal("srv", name="From server").to_dict()
        report = await self.reconciler.reconcile()
        self.assertEqual(report.pulled["favorite_meals"], 1)
        self.assertEqual(self.meals.get_local("srv").payload.meal_name, "From server")

    async def test_single_flight_per_collection(self):
        await self.write_offline(meal("m1"))
        self.h.transport.delay = 0.05
        first, second = await asyncio.gather(
            self.reconciler.reconcile(collections=["favorite_meals"]),
            self.reconciler.reconcile(collections=["favorite_meals"]),
        )
        self.assertEqual(first.skipped_collections, [])
        self.assertEqual(second.skipped_collections, ["favorite_meals"])
        self.assertEqual(len(self.h.state.calls_for("POST", MEALS)), 1)

    async def test_foreground_write_during_pass_wins(self):
        await self.write_offline(meal("m1", name="Old"))
        reconciler = BackgroundReconciler([self.meals], max_retries=3, pull=False)
        self.h.transport.delay = 0.05
        sync_pass = asyncio.create_task(reconciler.reconcile())
        await asyncio.sleep(0.01)
        # Same clock tick as the queued write; only the revision tells them apart.
        await self.meals.write(meal("m1", name="New"))
        report = await sync_pass
        self.assertEqual(report.for_record("favorite_meals", "m1"), SYNCED)
        local = self.meals.get_local("m1")
        self.assertEqual(local.payload.meal_name, "New")
        self.assertTrue(local.synced_to_server)
        self.assertEqual(self.h.state.resource(MEALS)["m1"]["meal_name"], "New")
        self.assertEqual(len(self.h.state.calls_for("POST", MEALS)), 1)
        self.assertEqual(len(self.h.state.calls_for("PUT", MEALS)), 1)

    async def test_stop_lets_in_flight_push_finish_then_cancels(self):
        await self.write_offline(meal("m1"), meal("m2"))
        self.h.transport.delay = 0.05
        sync_pass = self.reconciler.request_sync()
        await asyncio.sleep(0.01)
        await self.reconciler.stop()
        report = sync_pass.result()
        self.assertTrue(report.cancelled)
        self.assertEqual(report.for_record("favorite_meals", "m1"), SYNCED)
        self.assertIsNone(report.for_record("favorite_meals", "m2"))
        self.assertEqual([c[2] for c in self.h.state.calls_for("POST", MEALS)], ["m1"])
        self.assertTrue(self.meals.get_local("m1").synced_to_server)
        self.assertEqual([r.id for r in self.meals.pending()], ["m2"])

    async def test_connectivity_regained_triggers_a_pass(self):
        await self.write_offline(meal("m1"))
        self.h.bus.publish(CONNECTIVITY_REGAINED)
        await self.reconciler.wait_idle()
        self.assertEqual(self.meals.pending(), [])

    async def test_request_sync_returns_awaitable_task(self):
        await self.write_offline(meal("m1"))
        report = await self.reconciler.request_sync()
        self.assertTrue(report.manual)
        self.assertEqual(report.count(SYNCED), 1)

    async def test_periodic_loop_runs_until_stopped(self):
        await self.write_offline(meal("m1"))
        completed = asyncio.Event()
        self.h.bus.subscribe(SYNC_COMPLETED, lambda name, payload: completed.set())
        self.reconciler.start(interval=3600)
        await asyncio.wait_for(completed.wait(), timeout=5)
        await self.reconciler.stop()
        self.assertEqual(self.meals.pending(), [])

    async def test_status_log_tracks_passes(self):
        log = SyncStatusLog(self.h.bus)
        log.start()
        await self.write_offline(meal("m1"))
        await self.reconciler.reconcile()
        events = log.get_events()
        types = [e["type"] for e in events["events"]]
        self.assertEqual(types, ["sync.started", "sync.completed"])
        self.assertEqual(events["events"][-1]["synced"], 1)
        self.assertFalse(events["is_syncing"])
        self.assertEqual(log.get_events(since=events["next_cursor"])["events"], [])
        log.stop()


if __name__ == '__main__':
    unittest.main()
