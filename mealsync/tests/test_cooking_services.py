import unittest

from pydantic import ValidationError

from mealsync.domain.CookingSession import CookingSession
from mealsync.domain.CookingTimer import CookingTimer
from mealsync.domain.RecipeBreakdown import RecipeBreakdown, BreakdownStep
from mealsync.domain.StepCompletion import StepCompletion
from mealsync.events.Event_Bus import TIMER_COMPLETED
from mealsync.infra.Notification_Dispatcher import InMemoryNotificationDispatcher
from mealsync.logic.cooking.session_service import CookingSessionService
from mealsync.logic.cooking.timer_manager import CookingTimerManager, timer_notification_id
from mealsync.tests.fake_remote import Harness
from mealsync.utilities.errors import InvalidTransition


class CookingTestCase(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.h = Harness()
        self.dispatcher = InMemoryNotificationDispatcher()
        self.sessions_repo = self.h.repo(CookingSession)
        self.timers_repo = self.h.repo(CookingTimer)
        self.completions_repo = self.h.repo(StepCompletion)
        self.breakdowns_repo = self.h.repo(RecipeBreakdown)
        self.timers = CookingTimerManager(self.timers_repo, self.sessions_repo, self.dispatcher,
                                          bus=self.h.bus, clock=self.h.clock)
        self.service = CookingSessionService(self.sessions_repo, self.completions_repo, self.timers,
                                             breakdowns=self.breakdowns_repo, clock=self.h.clock)

    async def asyncTearDown(self):
        await self.h.aclose()

    async def make_breakdown(self, steps=4) -> RecipeBreakdown:
        breakdown = RecipeBreakdown(id="bd1", recipe_id="r1",
                                    steps=[BreakdownStep(f"Step {i}") for i in range(steps)])
        return (await self.breakdowns_repo.write(breakdown)).payload


class TestCookingSessionService(CookingTestCase):

    async def test_start_takes_step_count_from_breakdown(self):
        await self.make_breakdown(steps=4)
        session = await self.service.start("r1", breakdown_id="bd1", energy_level=2)
        self.assertEqual(session.total_steps, 4)
        self.assertEqual(session.status, "active")
        self.assertEqual(session.energy_level_at_start, 2)

    async def test_start_validates_input(self):
        with self.assertRaises(ValidationError):
            await self.service.start("r1", energy_level=9)

    async def test_pause_and_resume_track_active_time(self):
        session = await self.service.start("r1", total_steps=3)
        self.h.clock.advance(seconds=60)
        await self.service.pause(session.id)
        self.h.clock.advance(seconds=120)
        await self.service.resume(session.id)
        self.h.clock.advance(seconds=30)
        self.assertEqual(self.service.elapsed_active_seconds(session.id), 90)

    async def test_resume_of_active_session_is_an_error(self):
        session = await self.service.start("r1", total_steps=3)
        with self.assertRaises(InvalidTransition):
            await self.service.resume(session.id)

    async def test_completing_a_step_twice_keeps_one_completion_with_latest_notes(self):
        session = await self.service.start("r1", total_steps=5)
        await self.service.complete_step(session.id, 2, notes="first try")
        self.h.clock.advance(seconds=10)
        await self.service.complete_step(session.id, 2, notes="second try")
        completions = self.service.step_completions(session.id)
        self.assertEqual(len(completions), 1)
        self.assertEqual(completions[0].notes, "second try")

    async def test_completing_current_step_advances_progress(self):
        session = await self.service.start("r1", total_steps=2)
        await self.service.complete_step(session.id, 0)
        await self.service.complete_step(session.id, 1)
        current = await self.service.get_session(session.id)
        self.assertEqual(current.current_step_index, 2)

    async def test_step_out_of_range_is_rejected(self):
        session = await self.service.start("r1", total_steps=2)
        with self.assertRaises(ValueError):
            await self.service.complete_step(session.id, 5)

    async def test_terminal_session_accepts_no_mutation(self):
        session = await self.service.start("r1", total_steps=3)
        await self.service.abandon(session.id)
        with self.assertRaises(InvalidTransition):
            await self.service.complete_step(session.id, 0)
        with self.assertRaises(InvalidTransition):
            await self.service.update_progress(session.id, 1)
        with self.assertRaises(InvalidTransition):
            await self.timers.create_timer(session.id, "Rice", 600)

    async def test_complete_cancels_running_timers(self):
        session = await self.service.start("r1", total_steps=3)
        pasta = await self.timers.create_timer(session.id, "Pasta", 600)
        sauce = await self.timers.create_timer(session.id, "Sauce", 900)
        await self.service.complete(session.id)

        statuses = {t.id: t.status for t in self.timers.session_timers(session.id)}
        self.assertEqual(statuses, {pasta.id: "cancelled", sauce.id: "cancelled"})
        self.h.clock.advance(seconds=2000)
        self.assertEqual(self.timers.due_timers(), [])
        self.assertEqual(await self.timers.check_due(), [])

    async def test_abandon_cancels_paused_timers_too(self):
        session = await self.service.start("r1", total_steps=3)
        timer = await self.timers.create_timer(session.id, "Oven", 1200)
        await self.timers.pause_timer(timer.id)
        await self.service.abandon(session.id)
        self.assertEqual(self.timers.session_timers(session.id)[0].status, "cancelled")

    async def test_works_offline_and_stays_pending(self):
        self.h.go_offline()
        session = await self.service.start("r1", total_steps=2)
        await self.service.complete_step(session.id, 0, notes="offline")
        await self.service.pause(session.id)
        self.assertEqual(self.sessions_repo.get_local(session.id).payload.status, "paused")
        self.assertEqual(len(self.sessions_repo.pending()), 1)
        self.assertEqual(len(self.completions_repo.pending()), 1)

    async def test_update_progress(self):
        session = await self.service.start("r1", total_steps=4)
        updated = await self.service.update_progress(session.id, 3, notes="almost there")
        self.assertEqual(updated.current_step_index, 3)
        self.assertEqual(updated.notes, "almost there")

    async def test_delete_session_cascades(self):
        session = await self.service.start("r1", total_steps=3)
        await self.timers.create_timer(session.id, "Pasta", 600)
        await self.service.complete_step(session.id, 0)
        await self.service.delete_session(session.id)
        self.assertIsNone(self.sessions_repo.get_local(session.id))
        self.assertEqual(self.timers.session_timers(session.id), [])
        self.assertEqual(self.service.step_completions(session.id), [])

    async def test_list_sessions_by_status(self):
        first = await self.service.start("r1", total_steps=1)
        await self.service.start("r2", total_steps=1)
        await self.service.complete(first.id)
        completed = await self.service.list_sessions(status="completed")
        self.assertEqual([s.id for s in completed], [first.id])


class TestCookingTimerManager(CookingTestCase):

    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.session = await self.service.start("r1", total_steps=3)

    async def test_remaining_is_derived_from_clock(self):
        timer = await self.timers.create_timer(self.session.id, "Eggs", 300)
        self.h.clock.advance(seconds=120)
        self.assertEqual(self.timers.remaining_seconds(timer.id), 180)

    async def test_pause_and_resume_timer(self):
        timer = await self.timers.create_timer(self.session.id, "Eggs", 300)
        self.h.clock.advance(seconds=100)
        await self.timers.pause_timer(timer.id)
        self.h.clock.advance(seconds=500)
        self.assertEqual(self.timers.remaining_seconds(timer.id), 200)
        await self.timers.resume_timer(timer.id)
        self.h.clock.advance(seconds=50)
        self.assertEqual(self.timers.remaining_seconds(timer.id), 150)

    async def test_due_timer_notifies_exactly_once(self):
        fired_events = []
        self.h.bus.subscribe(TIMER_COMPLETED, lambda name, payload: fired_events.append(payload["timer"].id))
        timer = await self.timers.create_timer(self.session.id, "Eggs", 60)
        self.h.clock.advance(seconds=30)
        self.assertEqual(await self.timers.check_due(), [])

        self.h.clock.advance(seconds=45)
        fired = await self.timers.check_due()
        self.assertEqual([t.id for t in fired], [timer.id])
        notification = self.dispatcher.get(timer_notification_id(timer.id))
        self.assertIsNotNone(notification)
        self.assertEqual(notification.title, "Timer done: Eggs")

        stored = self.timers_repo.get_local(timer.id).payload
        self.assertEqual(stored.status, "completed")
        self.assertTrue(stored.notification_sent)

        self.h.clock.advance(seconds=600)
        self.assertEqual(await self.timers.check_due(), [])
        self.assertEqual(fired_events, [timer.id])

    async def test_due_notification_fires_while_offline(self):
        timer = await self.timers.create_timer(self.session.id, "Eggs", 60)
        self.h.go_offline()
        self.h.clock.advance(seconds=61)
        fired = await self.timers.check_due()
        self.assertEqual(len(fired), 1)
        self.assertTrue(self.timers_repo.get_local(timer.id).payload.notification_sent)
        self.assertEqual(await self.timers.check_due(), [])

    async def test_extend_timer(self):
        timer = await self.timers.create_timer(self.session.id, "Rice", 600)
        await self.timers.extend_timer(timer.id, 120)
        self.assertEqual(self.timers.remaining_seconds(timer.id), 720)
        with self.assertRaises(ValueError):
            await self.timers.extend_timer(timer.id, 0)

    async def test_reset_timer_restarts_the_countdown(self):
        timer = await self.timers.create_timer(self.session.id, "Tea", 60)
        self.h.clock.advance(seconds=30)
        reset = await self.timers.reset_timer(timer.id)
        self.assertEqual(reset.status, "paused")
        self.assertEqual(self.timers.remaining_seconds(timer.id), 60)
        self.assertIn(timer_notification_id(timer.id), self.dispatcher.cancelled)
        self.h.clock.advance(seconds=600)
        self.assertEqual(await self.timers.check_due(), [])
        await self.timers.resume_timer(timer.id)
        self.h.clock.advance(seconds=61)
        self.assertEqual([t.id for t in await self.timers.check_due()], [timer.id])
        self.assertFalse(self.timers_repo.pending())

    async def test_cancel_timer_removes_notification(self):
        timer = await self.timers.create_timer(self.session.id, "Rice", 600)
        await self.timers.cancel_timer(timer.id)
        self.assertIn(timer_notification_id(timer.id), self.dispatcher.cancelled)
        with self.assertRaises(InvalidTransition):
            await self.timers.pause_timer(timer.id)

    async def test_invalid_timer_input(self):
        with self.assertRaises(ValidationError):
            await self.timers.create_timer(self.session.id, "   ", 60)
        with self.assertRaises(ValidationError):
            await self.timers.create_timer(self.session.id, "Rice", 0)


if __name__ == '__main__':
    unittest.main()
