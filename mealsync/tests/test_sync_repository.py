import asyncio
import unittest

from mealsync.domain.EnergySnapshot import FavoriteMeal
from mealsync.events.Event_Bus import RECORD_CHANGED, RECORD_DELETED
from mealsync.tests.fake_remote import Harness
from mealsync.utilities.errors import ServerRejected, NotFound, LocalStorageCorruption

RESOURCE = "favorite-meals"


def meal(meal_id="m1", name="Toast", energy=1, **kw):
    return FavoriteMeal(id=meal_id, meal_name=name, energy_level=energy, **kw)


class TestSyncRepositoryWrite(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.h = Harness()
        self.repo = self.h.repo(FavoriteMeal)

    async def asyncTearDown(self):
        await self.h.aclose()

    async def test_online_write_is_synced(self):
        record = await self.repo.write(meal())
        self.assertTrue(record.synced_to_server)
        self.assertTrue(record.server_confirmed)
        self.assertIn("m1", self.h.state.resource(RESOURCE))
        self.assertEqual(self.repo.pending(), [])

    async def test_offline_write_returns_local_record(self):
        self.h.go_offline()
        record = await self.repo.write(meal())
        self.assertFalse(record.synced_to_server)
        self.assertEqual(record.payload.meal_name, "Toast")
        self.assertEqual(record.sync_attempts, 1)
        self.assertEqual([r.id for r in self.repo.pending()], ["m1"])

    async def test_two_offline_writes_of_same_id_give_one_row_and_one_create(self):
        self.h.go_offline()
        await self.repo.write(meal())
        await self.repo.write(meal())
        self.assertEqual(self.h.store.count(FavoriteMeal.collection), 1)
        self.assertEqual(len(self.repo.pending()), 1)

        self.h.go_online()
        await self.repo.push("m1")
        await self.repo.push("m1")
        self.assertEqual(len(self.h.state.calls_for("POST", RESOURCE)), 1)
        self.assertEqual(self.h.state.calls_for("PUT", RESOURCE), [])

    async def test_second_write_after_sync_is_an_update(self):
        await self.repo.write(meal())
        self.h.clock.advance(seconds=5)
        await self.repo.write(meal(name="Cheese toast"))
        self.assertEqual(len(self.h.state.calls_for("POST", RESOURCE)), 1)
        self.assertEqual(len(self.h.state.calls_for("PUT", RESOURCE)), 1)
        self.assertEqual(self.h.state.resource(RESOURCE)["m1"]["meal_name"], "Cheese toast")

    async def test_update_sends_version_as_if_match(self):
        first = await self.repo.write(meal())
        self.h.clock.advance(seconds=5)
        await self.repo.write(meal(name="Other"))
        self.assertEqual(self.h.state.headers[-1].get("if-match"), first.server_version)

    async def test_server_representation_replaces_local_fields(self):
        await self.repo.write(meal())
        # Server-side edit, then a pull brings it back
        self.h.state.resource(RESOURCE)["m1"]["notes"] = "from server"
        await self.repo.pull()
        self.assertEqual(self.repo.get_local("m1").payload.notes, "from server")

    async def test_rejected_create_keeps_local_record(self):
        self.h.state.reject[("POST", RESOURCE)] = (422, "meal_name too long")
        with self.assertRaises(ServerRejected) as ctx:
            await self.repo.write(meal())
        self.assertEqual(ctx.exception.status_code, 422)
        local = self.repo.get_local("m1")
        self.assertIsNotNone(local)
        self.assertTrue(local.rejected)
        self.assertFalse(local.synced_to_server)

    async def test_rejected_update_rolls_back(self):
        await self.repo.write(meal(name="Original"))
        self.h.state.reject[("PUT", RESOURCE)] = (409, "conflict")
        self.h.clock.advance(seconds=5)
        with self.assertRaises(ServerRejected):
            await self.repo.write(meal(name="Edited"))
        local = self.repo.get_local("m1")
        self.assertEqual(local.payload.meal_name, "Original")
        self.assertTrue(local.synced_to_server)

    async def test_update_of_record_missing_remotely_recreates_it(self):
        await self.repo.write(meal())
        del self.h.state.resource(RESOURCE)["m1"]
        self.h.clock.advance(seconds=5)
        record = await self.repo.write(meal(name="Again"))
        self.assertTrue(record.synced_to_server)
        self.assertEqual(self.h.state.resource(RESOURCE)["m1"]["meal_name"], "Again")

    async def test_write_publishes_record_changed(self):
        seen = []
        self.h.bus.subscribe(RECORD_CHANGED, lambda name, payload: seen.append(payload["id"]))
        await self.repo.write(meal())
        self.assertIn("m1", seen)

    async def test_newer_write_during_in_flight_push_wins(self):
        # The clock does not move, so both writes carry the same updated_at.
        self.h.transport.delay = 0.05
        first = asyncio.create_task(self.repo.write(meal(name="Old")))
        await asyncio.sleep(0.01)
        second = asyncio.create_task(self.repo.write(meal(name="New")))
        await asyncio.gather(first, second)
        local = self.repo.get_local("m1")
        self.assertEqual(local.payload.meal_name, "New")
        self.assertTrue(local.synced_to_server)
        self.assertEqual(local.local_revision, 2)
        self.assertEqual(self.h.state.resource(RESOURCE)["m1"]["meal_name"], "New")
        self.assertEqual(len(self.h.state.calls_for("POST", RESOURCE)), 1)
        self.assertEqual(len(self.h.state.calls_for("PUT", RESOURCE)), 1)

    async def test_record_locks_are_released_when_idle(self):
        self.h.transport.delay = 0.01
        await asyncio.gather(self.repo.write(meal("m1")), self.repo.write(meal("m2")),
                             self.repo.write(meal("m1", name="Again")))
        await self.repo.delete("m2")
        self.assertEqual(self.repo._locks, {})


class TestSyncRepositoryRead(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.h = Harness()
        self.repo = self.h.repo(FavoriteMeal)

    async def asyncTearDown(self):
        await self.h.aclose()

    async def test_read_prefers_server(self):
        self.h.state.resource(RESOURCE)["m9"] = meal("m9", name="Server meal").to_dict()
        record = await self.repo.read("m9")
        self.assertEqual(record.payload.meal_name, "Server meal")
        self.assertTrue(self.repo.get_local("m9").synced_to_server)

    async def test_read_falls_back_to_local_when_offline(self):
        await self.repo.write(meal())
        self.h.go_offline()
        record = await self.repo.read("m1")
        self.assertEqual(record.payload.meal_name, "Toast")

    async def test_read_unknown_record_offline_raises_not_found(self):
        self.h.go_offline()
        with self.assertRaises(NotFound):
            await self.repo.read("nope")

    async def test_read_unknown_record_online_raises_not_found(self):
        with self.assertRaises(NotFound):
            await self.repo.read("nope")

    async def test_read_server_error_is_not_masked_by_local_copy(self):
        await self.repo.write(meal())
        self.h.state.reject[("GET", RESOURCE)] = (500, "boom")
        with self.assertRaises(ServerRejected):
            await self.repo.read("m1")

    async def test_list_merges_pending_local_records(self):
        await self.repo.write(meal("m1"))
        self.h.go_offline()
        self.h.clock.advance(seconds=1)
        await self.repo.write(meal("m2", name="Cereal"))
        self.h.go_online()
        records = await self.repo.list()
        self.assertEqual(sorted(r.id for r in records), ["m1", "m2"])

    async def test_pending_local_write_wins_over_pulled_copy(self):
        await self.repo.write(meal())
        self.h.go_offline()
        self.h.clock.advance(seconds=1)
        await self.repo.write(meal(name="Local edit"))
        self.h.go_online()
        await self.repo.pull()
        self.assertEqual(self.repo.get_local("m1").payload.meal_name, "Local edit")

    async def test_corrupt_row_is_quarantined(self):
        self.h.store.put(FavoriteMeal.collection, {"id": "bad", "payload": {"id": "bad"}})
        with self.assertRaises(LocalStorageCorruption):
            self.repo.get_local("bad")
        self.assertIsNone(self.h.store.get(FavoriteMeal.collection, "bad"))
        self.assertEqual(len(self.h.store.quarantined(FavoriteMeal.collection)), 1)


class TestSyncRepositoryDelete(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.h = Harness()
        self.repo = self.h.repo(FavoriteMeal)

    async def asyncTearDown(self):
        await self.h.aclose()

    async def test_delete_online(self):
        await self.repo.write(meal())
        await self.repo.delete("m1")
        self.assertIsNone(self.repo.get_local("m1"))
        self.assertNotIn("m1", self.h.state.resource(RESOURCE))

    async def test_delete_offline_is_local_and_queued(self):
        await self.repo.write(meal())
        self.h.go_offline()
        deleted = []
        self.h.bus.subscribe(RECORD_DELETED, lambda name, payload: deleted.append(payload["id"]))
        await self.repo.delete("m1")
        self.assertIsNone(self.repo.get_local("m1"))
        self.assertTrue(self.h.store.has_tombstone(FavoriteMeal.collection, "m1"))
        self.assertEqual(deleted, ["m1"])

        self.h.go_online()
        # The server copy must not resurrect the deleted record.
        await self.repo.pull()
        self.assertIsNone(self.repo.get_local("m1"))
        await self.repo.replay_delete("m1")
        self.assertNotIn("m1", self.h.state.resource(RESOURCE))
        self.assertFalse(self.h.store.has_tombstone(FavoriteMeal.collection, "m1"))

    async def test_delete_of_never_synced_record_skips_server(self):
        self.h.go_offline()
        await self.repo.write(meal())
        self.h.go_online()
        await self.repo.delete("m1")
        self.assertEqual(self.h.state.calls_for("DELETE", RESOURCE), [])
        self.assertFalse(self.h.store.has_tombstone(FavoriteMeal.collection, "m1"))

    async def test_rejected_delete_keeps_local_record(self):
        await self.repo.write(meal())
        self.h.state.reject[("DELETE", RESOURCE)] = (403, "forbidden")
        with self.assertRaises(ServerRejected):
            await self.repo.delete("m1")
        self.assertIsNotNone(self.repo.get_local("m1"))

    async def test_delete_unknown_everywhere_raises_not_found(self):
        with self.assertRaises(NotFound):
            await self.repo.delete("ghost")


if __name__ == '__main__':
    unittest.main()
