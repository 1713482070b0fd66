"""Meal reminder CRUD plus keeping the OS notification schedule in step with it."""
import logging
import uuid
from typing import Iterable, List, Optional

from mealsync.domain.MealReminder import MealReminder
from mealsync.infra.Local_Store import LocalStore
from mealsync.infra.Notification_Dispatcher import NotificationDispatcher
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.infra.paths import NOTIFICATION_SLOTS
from mealsync.logic.reminders.schedule import (
    derive_occurrences, notification_id, all_notification_ids, notification_base, REMINDER_SLOTS
)
from mealsync.utilities.constants import PRE_ALERT
from mealsync.utilities.timestamps import localnow
from mealsync.utilities.validators import MealReminderInput

logger = logging.getLogger(__name__)


class ReminderScheduler:
    """Translates reminders into weekly repeating notifications.

    With a store, each reminder's slot base is allocated once and kept in a
    local table, so two reminders whose ids hash alike never share slots.
    """

    def __init__(self, dispatcher: NotificationDispatcher, clock=localnow, store: Optional[LocalStore] = None):
        self.dispatcher = dispatcher
        self.clock = clock
        self.store = store

    def base_for(self, reminder_id: str) -> int:
        if self.store is None:
            return notification_base(reminder_id)
        row = self.store.get(NOTIFICATION_SLOTS, reminder_id)
        if row is not None:
            return int(row["base"])
        taken = {int(r["base"]) for r in self.store.all(NOTIFICATION_SLOTS)}
        base = notification_base(reminder_id)
        while base in taken:
            base = (base + 1) % REMINDER_SLOTS
        self.store.put(NOTIFICATION_SLOTS, {"id": reminder_id, "base": base})
        return base

    def cancel(self, reminder_id: str) -> None:
        for nid in all_notification_ids(reminder_id, self.base_for(reminder_id)):
            self.dispatcher.cancel(nid)

    def release(self, reminder_id: str) -> None:
        """Cancel a deleted reminder's notifications and free its slots."""
        self.cancel(reminder_id)
        if self.store is not None:
            self.store.delete(NOTIFICATION_SLOTS, reminder_id)

    def reschedule(self, reminder: MealReminder) -> int:
        """Cancel every slot the reminder may hold, then schedule its current occurrences.

        Returns the number of notifications scheduled.
        """
        self.cancel(reminder.id)
        base = self.base_for(reminder.id)
        occurrences = derive_occurrences(reminder, self.clock())
        for occ in occurrences:
            if occ.kind == PRE_ALERT:
                title = f"Upcoming: {reminder.name}"
                body = f"{reminder.name} in {reminder.pre_alert_minutes} minutes"
            else:
                title = f"Meal Time: {reminder.name}"
                body = f"Time for {reminder.name}!"
            self.dispatcher.schedule(notification_id(reminder.id, occ.day_of_week, occ.kind, base),
                                     occ.instant, title, body, weekly=True)
        logger.debug(f"Reminder {reminder.id} rescheduled with {len(occurrences)} notification(s)")
        return len(occurrences)

    def reschedule_all(self, reminders: Iterable[MealReminder]) -> int:
        return sum(self.reschedule(r) for r in reminders)


class MealReminderService:
    def __init__(self, repository: SyncRepository, scheduler: ReminderScheduler):
        self.repository = repository
        self.scheduler = scheduler

    async def create(self, name: str, scheduled_time: str, pre_alert_minutes: Optional[int] = None,
                     enabled: bool = True, days_of_week: Optional[Iterable[int]] = None) -> MealReminder:
        fields = {"name": name, "scheduled_time": scheduled_time, "enabled": enabled}
        if pre_alert_minutes is not None:
            fields["pre_alert_minutes"] = pre_alert_minutes
        if days_of_week is not None:
            fields["days_of_week"] = list(days_of_week)
        data = MealReminderInput(**fields)
        reminder = MealReminder(id=str(uuid.uuid4()), **data.model_dump())
        # Schedule from the local copy so notifications work offline.
        record = self.repository.save_local(reminder)
        self.scheduler.reschedule(record.payload)
        pushed = await self.repository.push(reminder.id)
        logger.info(f"Meal reminder created: {reminder}")
        return (pushed or record).payload

    async def update(self, reminder_id: str, **changes) -> MealReminder:
        current = await self.get(reminder_id)
        merged = {**current.to_dict(), **changes}
        merged.pop("id", None)
        data = MealReminderInput(**merged)
        reminder = MealReminder(id=reminder_id, **data.model_dump())
        try:
            saved = (await self.repository.write(reminder)).payload
        finally:
            # A rejected update rolls the row back; the schedule follows whatever is stored.
            stored = self.repository.get_local(reminder_id)
            if stored is not None:
                self.scheduler.reschedule(stored.payload)
        return saved

    async def set_enabled(self, reminder_id: str, enabled: bool) -> MealReminder:
        return await self.update(reminder_id, enabled=enabled)

    async def delete(self, reminder_id: str) -> None:
        await self.repository.delete(reminder_id)
        self.scheduler.release(reminder_id)
        logger.info(f"Meal reminder {reminder_id} deleted")

    async def get(self, reminder_id: str) -> MealReminder:
        record = self.repository.get_local(reminder_id)
        if record is not None and not record.synced_to_server:
            return record.payload
        return (await self.repository.read(reminder_id)).payload

    async def list(self, enabled_only: bool = False) -> List[MealReminder]:
        predicate = (lambda r: r.enabled) if enabled_only else None
        return [r.payload for r in await self.repository.list(predicate=predicate)]

    def restore_schedules(self) -> int:
        """Re-register every stored reminder's notifications, e.g. after a reboot."""
        reminders = [r.payload for r in self.repository.local_records()]
        count = self.scheduler.reschedule_all(reminders)
        logger.info(f"Restored {count} reminder notification(s) for {len(reminders)} reminder(s)")
        return count


__all__ = ['ReminderScheduler', 'MealReminderService']
