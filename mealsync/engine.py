"""Composition root: builds the store, gateway, repositories and services and ties their lifecycles together.

    engine = MealSyncEngine(dispatcher=platform_dispatcher, token_provider=auth.token)
    await engine.start()          # restores reminder notifications, starts periodic sync
    session = await engine.sessions.start(recipe_id)
    ...
    await engine.aclose()
"""
import logging
from datetime import tzinfo
from pathlib import Path
from typing import Optional

import httpx

from mealsync.api.api_ai import AIProvider
from mealsync.domain.CookingSession import CookingSession
from mealsync.domain.CookingTimer import CookingTimer
from mealsync.domain.EnergySnapshot import EnergySnapshot, FavoriteMeal
from mealsync.domain.MealLog import MealLog, TimelineSettings
from mealsync.domain.MealReminder import MealReminder
from mealsync.domain.RecipeBreakdown import RecipeBreakdown
from mealsync.domain.StepCompletion import StepCompletion
from mealsync.events.Event_Bus import EventBus, CONNECTIVITY_REGAINED, APP_FOREGROUND
from mealsync.events.sync_observers import SyncStatusLog
from mealsync.infra.Local_Store import LocalStore
from mealsync.infra.Notification_Dispatcher import NotificationDispatcher, InMemoryNotificationDispatcher
from mealsync.infra.Remote_Gateway import RemoteGateway, TokenProvider
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.infra.paths import DATA_DIR
from mealsync.logic.cooking.breakdown import BreakdownService
from mealsync.logic.cooking.session_service import CookingSessionService
from mealsync.logic.cooking.timer_manager import CookingTimerManager
from mealsync.logic.energy.tracking import EnergyTrackingService
from mealsync.logic.reminders.meal_log import MealLogService
from mealsync.logic.reminders.reminder_service import ReminderScheduler, MealReminderService
from mealsync.logic.sync.reconciler import BackgroundReconciler
from mealsync.utilities.config import API_BASE_URL, SYNC_INTERVAL_SECONDS, MAX_SYNC_RETRIES
from mealsync.utilities.timestamps import utcnow, to_local

logger = logging.getLogger(__name__)


class MealSyncEngine:
    def __init__(self, data_dir: Optional[Path] = DATA_DIR, base_url: str = API_BASE_URL,
                 token_provider: Optional[TokenProvider] = None,
                 dispatcher: Optional[NotificationDispatcher] = None,
                 ai_provider: Optional[AIProvider] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 clock=utcnow, max_retries: int = MAX_SYNC_RETRIES, tz: Optional[tzinfo] = None):
        self.clock = clock
        # Reminder times and time-of-day buckets are wall-clock; tz=None means the configured or system zone.
        self.wall_clock = lambda: to_local(clock(), tz)
        self.bus = EventBus()
        self.store = LocalStore(data_dir)
        self.gateway = RemoteGateway(base_url=base_url, token_provider=token_provider, transport=transport)
        self.dispatcher = dispatcher or InMemoryNotificationDispatcher()

        self.repositories = {
            cls.collection: SyncRepository(cls, self.store, self.gateway, bus=self.bus, clock=clock)
            for cls in (CookingSession, CookingTimer, StepCompletion, RecipeBreakdown,
                        MealReminder, MealLog, TimelineSettings, EnergySnapshot, FavoriteMeal)
        }
        repo = self.repositories

        self.timers = CookingTimerManager(repo[CookingTimer.collection], repo[CookingSession.collection],
                                          self.dispatcher, bus=self.bus, clock=clock)
        self.sessions = CookingSessionService(repo[CookingSession.collection], repo[StepCompletion.collection],
                                              self.timers, breakdowns=repo[RecipeBreakdown.collection],
                                              clock=clock)
        self.breakdowns = (BreakdownService(repo[RecipeBreakdown.collection], ai_provider, clock=clock)
                           if ai_provider is not None else None)
        self.reminders = MealReminderService(repo[MealReminder.collection],
                                             ReminderScheduler(self.dispatcher, clock=self.wall_clock,
                                                               store=self.store))
        self.energy = EnergyTrackingService(repo[EnergySnapshot.collection], repo[FavoriteMeal.collection],
                                            clock=self.wall_clock)
        self.meal_logs = MealLogService(repo[MealLog.collection], repo[MealReminder.collection],
                                        repo[TimelineSettings.collection], clock=self.wall_clock)
        self.reconciler = BackgroundReconciler(repo.values(), bus=self.bus, max_retries=max_retries)
        self.status = SyncStatusLog(self.bus)

    def repository(self, collection: str) -> SyncRepository:
        return self.repositories[collection]

    async def start(self, sync_interval: Optional[float] = SYNC_INTERVAL_SECONDS):
        """Initialize notifications, re-register reminders and start background sync.

        Pass sync_interval=None to only sync on triggers.
        """
        self.dispatcher.initialize()
        self.status.start()
        self.reminders.restore_schedules()
        if sync_interval:
            self.reconciler.start(sync_interval)
        logger.info(f"mealsync engine started ({len(self.repositories)} collections)")

    def connectivity_regained(self):
        self.bus.publish(CONNECTIVITY_REGAINED)

    def app_foreground(self):
        self.bus.publish(APP_FOREGROUND)

    async def aclose(self):
        await self.reconciler.stop()
        self.reconciler.close()
        self.status.stop()
        await self.gateway.aclose()
        self.dispatcher.shutdown()
        logger.info("mealsync engine stopped")


__all__ = ['MealSyncEngine']
