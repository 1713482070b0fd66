"""Background reconciler.

Replays queued deletes and pending writes of every registered SyncRepository
against the server, then pulls fresh server state. Triggered by the app
coming to the foreground, by the user, by a connectivity.regained event and,
optionally, by a periodic loop.

A pass never aborts on a single record: each outcome lands in the SyncReport.
The first NetworkUnavailable ends the pass for that collection since nothing
else will get through either.
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from mealsync.events.Event_Bus import (
    EventBus, SYNC_STARTED, SYNC_COMPLETED, CONNECTIVITY_REGAINED, APP_FOREGROUND
)
from mealsync.events.event_helpers import publish_retry_exceeded
from mealsync.infra.Sync_Repository import SyncRepository
from mealsync.utilities.config import MAX_SYNC_RETRIES, SYNC_INTERVAL_SECONDS
from mealsync.utilities.errors import NetworkUnavailable, ServerRejected, LocalStorageCorruption
from mealsync.utilities.timestamps import utcnow, to_iso

logger = logging.getLogger(__name__)

SYNCED = "synced"
DELETED = "deleted"
OFFLINE = "offline"
REJECTED = "rejected"
SKIPPED = "skipped"
CORRUPT = "corrupt"


class SyncReport:
    def __init__(self, manual: bool = False):
        self.manual = manual
        self.started_at = utcnow()
        self.finished_at = None
        self.outcomes: List[Dict[str, Any]] = []
        self.pulled: Dict[str, int] = {}
        self.skipped_collections: List[str] = []
        self.offline_collections: List[str] = []
        self.cancelled = False

    def add(self, collection: str, record_id: str, outcome: str, error: Optional[str] = None):
        self.outcomes.append({"collection": collection, "id": record_id, "outcome": outcome, "error": error})

    def count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes if o["outcome"] == outcome)

    def for_record(self, collection: str, record_id: str) -> Optional[str]:
        for o in reversed(self.outcomes):
            if o["collection"] == collection and o["id"] == record_id:
                return o["outcome"]
        return None

    @property
    def ok(self) -> bool:
        return not self.offline_collections and self.count(REJECTED) == 0 and self.count(CORRUPT) == 0

    def summary(self) -> Dict[str, Any]:
        return {
            "synced": self.count(SYNCED),
            "deleted": self.count(DELETED),
            "rejected": self.count(REJECTED),
            "skipped": self.count(SKIPPED),
            "offline": bool(self.offline_collections),
            "cancelled": self.cancelled,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.summary(),
            "manual": self.manual,
            "started_at": to_iso(self.started_at),
            "finished_at": to_iso(self.finished_at),
            "outcomes": list(self.outcomes),
            "pulled": dict(self.pulled),
            "skipped_collections": list(self.skipped_collections),
        }

    def __str__(self) -> str:
        s = self.summary()
        return (f"SyncReport(synced={s['synced']}, deleted={s['deleted']}, rejected={s['rejected']}, "
                f"skipped={s['skipped']}, offline={s['offline']})")

    __repr__ = __str__


class BackgroundReconciler:
    def __init__(self, repositories: Iterable[SyncRepository] = (), bus: Optional[EventBus] = None,
                 max_retries: int = MAX_SYNC_RETRIES, pull: bool = True):
        self._repositories: Dict[str, SyncRepository] = {}
        for repo in repositories:
            self.register(repo)
        self.bus = bus
        self.max_retries = max_retries
        self.pull_after_push = pull
        self._active: Set[str] = set()
        self._stopping = False
        self._stop_event: Optional[asyncio.Event] = None
        self._loop_task: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        if bus is not None:
            bus.subscribe(CONNECTIVITY_REGAINED, self._on_trigger)
            bus.subscribe(APP_FOREGROUND, self._on_trigger)

    def register(self, repository: SyncRepository):
        self._repositories[repository.collection] = repository

    @property
    def collections(self) -> List[str]:
        return list(self._repositories)

    def is_running(self, collection: str) -> bool:
        return collection in self._active

    # ---------------- a pass ----------------
    async def reconcile(self, manual: bool = False, collections: Optional[Iterable[str]] = None) -> SyncReport:
        """One reconciliation pass over the given (default: all) collections."""
        names = list(collections) if collections is not None else self.collections
        report = SyncReport(manual=manual)
        if self.bus is not None:
            self.bus.publish(SYNC_STARTED, {"collections": names})
        try:
            for name in names:
                if self._stopping:
                    report.cancelled = True
                    break
                repo = self._repositories.get(name)
                if repo is None:
                    raise KeyError(f"No repository registered for {name}")
                if name in self._active:
                    logger.debug(f"Reconcile of {name} already in progress; skipped")
                    report.skipped_collections.append(name)
                    continue
                self._active.add(name)
                try:
                    await self._reconcile_collection(repo, report, manual)
                finally:
                    self._active.discard(name)
        finally:
            report.finished_at = utcnow()
            if self.bus is not None:
                self.bus.publish(SYNC_COMPLETED, {"report": report})
        logger.info(f"Sync pass finished: {report}")
        return report

    def _eligible(self, record, manual: bool) -> bool:
        if manual:
            return True
        # Offline failures never exhaust a record; only repeated server refusals do.
        return not (record.rejected and record.sync_attempts >= self.max_retries)

    async def _reconcile_collection(self, repo: SyncRepository, report: SyncReport, manual: bool):
        collection = repo.collection
        for record_id in repo.store.tombstones(collection):
            if self._stopping:
                report.cancelled = True
                return
            try:
                await asyncio.shield(repo.replay_delete(record_id))
            except NetworkUnavailable:
                report.offline_collections.append(collection)
                return
            except ServerRejected as e:
                logger.warning(f"Queued delete of {collection}/{record_id} rejected: {e}")
                report.add(collection, record_id, REJECTED, str(e))
                continue
            report.add(collection, record_id, DELETED)

        for record in repo.pending():
            if self._stopping:
                report.cancelled = True
                return
            if not self._eligible(record, manual):
                report.add(collection, record.id, SKIPPED, record.last_sync_error)
                continue
            try:
                # The push of a started record always runs to completion.
                result = await asyncio.shield(repo.push(record.id))
            except ServerRejected as e:
                report.add(collection, record.id, REJECTED, str(e))
                self._check_retries(repo, record.id)
                continue
            except LocalStorageCorruption as e:
                logger.error(f"Skipping corrupt record during sync: {e}")
                report.add(collection, record.id, CORRUPT, str(e))
                continue
            if result is None:
                continue
            if result.synced_to_server:
                report.add(collection, record.id, SYNCED)
            elif result.server_confirmed and not result.last_sync_error:
                # A newer local write arrived mid-flight; it goes out on the next pass.
                report.add(collection, record.id, SYNCED)
            else:
                report.add(collection, record.id, OFFLINE, result.last_sync_error)
                report.offline_collections.append(collection)
                return

        if self.pull_after_push and not self._stopping:
            try:
                report.pulled[collection] = await repo.pull()
            except NetworkUnavailable:
                report.offline_collections.append(collection)
            except ServerRejected as e:
                logger.warning(f"Pull of {collection} failed: {e}")

    def _check_retries(self, repo: SyncRepository, record_id: str):
        record = repo.get_local(record_id)
        if record is None:
            return
        if record.sync_attempts >= self.max_retries:
            logger.warning(f"{repo.collection}/{record_id} failed {record.sync_attempts} times; "
                           f"left pending for manual retry ({record.last_sync_error})")
            publish_retry_exceeded(self.bus, repo.collection, record_id,
                                   record.sync_attempts, record.last_sync_error or "")

    # ---------------- triggers ----------------
    def _spawn(self, manual: bool) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Sync requested without a running event loop; ignored")
            return None
        task = loop.create_task(self.reconcile(manual=manual))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Background sync pass failed: {task.exception()!r}")

    def request_sync(self) -> Optional[asyncio.Task]:
        """User-initiated sync; also retries records that exhausted their automatic retries."""
        return self._spawn(manual=True)

    def on_app_foreground(self) -> Optional[asyncio.Task]:
        return self._spawn(manual=False)

    def _on_trigger(self, event_name: str, payload: Any):
        logger.debug(f"Sync triggered by {event_name}")
        self._spawn(manual=False)

    # ---------------- periodic loop ----------------
    def start(self, interval: float = SYNC_INTERVAL_SECONDS) -> asyncio.Task:
        """Run a pass every `interval` seconds until stop()."""
        if self._loop_task is not None and not self._loop_task.done():
            return self._loop_task
        self._stopping = False
        self._stop_event = asyncio.Event()
        self._loop_task = asyncio.get_running_loop().create_task(self._run(interval))
        return self._loop_task

    async def _run(self, interval: float):
        while not self._stopping:
            try:
                await self.reconcile()
            except Exception:
                logger.exception("Periodic sync pass failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def wait_idle(self):
        """Wait for every triggered pass that is still running."""
        pending = [t for t in self._tasks if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def stop(self):
        """Stop after the record currently being pushed, then wait for in-flight passes."""
        self._stopping = True
        if self._stop_event is not None:
            self._stop_event.set()
        if self._loop_task is not None and not self._loop_task.done():
            await asyncio.gather(self._loop_task, return_exceptions=True)
        await self.wait_idle()
        self._loop_task = None
        self._stopping = False

    def close(self):
        if self.bus is not None:
            self.bus.unsubscribe(CONNECTIVITY_REGAINED, self._on_trigger)
            self.bus.unsubscribe(APP_FOREGROUND, self._on_trigger)


__all__ = ['BackgroundReconciler', 'SyncReport', 'SYNCED', 'DELETED', 'OFFLINE', 'REJECTED', 'SKIPPED']
