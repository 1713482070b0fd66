"""Sync repository: write local, then best-effort remote; read remote, fall back to local.

One SyncRepository serves one collection (one entity class). It is the only
code that mutates the local store for that collection and the only writer of
the sync envelope fields (synced_to_server, server_confirmed, ...).

Rules:
  * write() stores locally before any network call and returns the local
    record when the server is unreachable. NetworkUnavailable never escapes.
  * A record the server has never accepted is pushed with create, any other
    with update, so replaying the same id never creates a second remote copy.
  * All remote calls for one record are serialised by a per-record lock and
    always re-read the row first, so an older local write is never applied
    after a newer one.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from mealsync.domain.SyncableRecord import SyncableRecord
from mealsync.events.Event_Bus import EventBus
from mealsync.events.event_helpers import publish_record_changed, publish_record_deleted
from mealsync.infra.Local_Store import LocalStore
from mealsync.infra.Remote_Gateway import RemoteGateway
from mealsync.utilities.errors import (
    NetworkUnavailable, ServerRejected, RemoteNotFound, NotFound, LocalStorageCorruption
)
from mealsync.utilities.timestamps import utcnow, to_iso, from_iso

logger = logging.getLogger(__name__)

T = TypeVar('T')


class SyncRepository(Generic[T]):
    def __init__(self, entity_cls, store: LocalStore, gateway: RemoteGateway,
                 bus: Optional[EventBus] = None, clock: Callable = utcnow):
        self.entity_cls = entity_cls
        self.collection: str = entity_cls.collection
        self.store = store
        self.gateway = gateway
        self.bus = bus
        self.clock = clock
        # record id -> [lock, holders and waiters]; dropped when nobody uses it
        self._locks: Dict[str, List[Any]] = {}

    def __str__(self) -> str:
        return f"SyncRepository({self.collection})"

    __repr__ = __str__

    @asynccontextmanager
    async def _record_lock(self, record_id: str):
        entry = self._locks.get(record_id)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._locks[record_id] = entry
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                self._locks.pop(record_id, None)

    # ---------------- local side (synchronous) ----------------
    def _decode(self, row: Dict[str, Any]) -> SyncableRecord:
        try:
            return SyncableRecord.from_row(row, self.entity_cls)
        except (KeyError, ValueError, TypeError) as e:
            record_id = row.get("id") if isinstance(row, dict) else None
            self.store.quarantine(self.collection, record_id, f"undecodable {self.entity_cls.__name__}: {e}")
            raise LocalStorageCorruption(self.collection, record_id, str(e)) from e

    def get_local(self, record_id: str) -> Optional[SyncableRecord]:
        """Local copy of a record, or None. Raises LocalStorageCorruption for a quarantined row."""
        row = self.store.get(self.collection, record_id)
        return self._decode(row) if row is not None else None

    def local_records(self, predicate: Optional[Callable[[T], bool]] = None) -> List[SyncableRecord]:
        """Every decodable local record, oldest first. Corrupt rows are quarantined and skipped."""
        records = []
        for row in self.store.all(self.collection):
            try:
                record = self._decode(row)
            except LocalStorageCorruption as e:
                logger.error(f"Skipping corrupt record: {e}")
                continue
            if predicate is None or predicate(record.payload):
                records.append(record)
        return records

    def pending(self) -> List[SyncableRecord]:
        return [r for r in self.local_records() if not r.synced_to_server]

    def save_local(self, payload: T) -> SyncableRecord:
        """Upsert the payload locally and mark it pending. Never touches the network."""
        existing = self.store.get(self.collection, payload.id)
        now = self.clock()
        if existing is not None:
            record = SyncableRecord(
                payload,
                created_at=from_iso(existing.get("created_at")) or now,
                updated_at=now,
                synced_to_server=False,
                server_confirmed=bool(existing.get("server_confirmed")),
                server_version=existing.get("server_version"),
                sync_attempts=int(existing.get("sync_attempts") or 0),
                last_sync_error=existing.get("last_sync_error"),
                local_revision=int(existing.get("local_revision") or 0) + 1,
            )
        else:
            record = SyncableRecord(payload, created_at=now, updated_at=now, local_revision=1)
        self.store.put(self.collection, record.to_row())
        publish_record_changed(self.bus, self.collection, record)
        return record

    # ---------------- write ----------------
    async def write(self, payload: T) -> SyncableRecord:
        """Persist locally, then try the server.

        Returns the server-confirmed record, or the pending local one when
        offline. Raises ServerRejected when the server refuses: a rejected
        create keeps the local record, a rejected update restores the
        previous local state.
        """
        previous_row = self.store.get(self.collection, payload.id)
        record = self.save_local(payload)
        return await self._push(record.id, previous_row=previous_row)

    async def push(self, record_id: str) -> Optional[SyncableRecord]:
        """Replay one pending record (used by the reconciler). Returns None if the record is gone."""
        return await self._push(record_id)

    def _wire(self, record: SyncableRecord) -> Dict[str, Any]:
        body = record.payload.to_dict()
        body["created_at"] = to_iso(record.created_at)
        body["updated_at"] = to_iso(record.updated_at)
        return body

    async def _push(self, record_id: str, previous_row: Optional[Dict[str, Any]] = None) -> Optional[SyncableRecord]:
        async with self._record_lock(record_id):
            record = self.get_local(record_id)
            if record is None:
                return None
            if record.synced_to_server:
                return record
            revision = record.local_revision
            body = self._wire(record)
            is_create = not record.server_confirmed
            try:
                if is_create:
                    server = await self.gateway.create(self.collection, body)
                else:
                    try:
                        server = await self.gateway.update(self.collection, record_id, body,
                                                           version=record.server_version)
                    except RemoteNotFound:
                        # Last writer wins: the server lost its copy, recreate it under the same id.
                        logger.info(f"{self.collection}/{record_id} missing remotely; recreating")
                        server = await self.gateway.create(self.collection, body)
            except NetworkUnavailable as e:
                logger.info(f"{self.collection}/{record_id} kept pending: {e}")
                return self._note_failure(record_id, str(e), rejected=False)
            except ServerRejected as e:
                if self._superseded(record_id, revision):
                    logger.warning(f"{self.collection}/{record_id} rejected; a newer local write is pending")
                elif is_create or previous_row is None:
                    self._note_failure(record_id, str(e), rejected=True)
                else:
                    self.store.put(self.collection, previous_row)
                    restored = self.get_local(record_id)
                    if restored is not None:
                        publish_record_changed(self.bus, self.collection, restored)
                    logger.warning(f"Update of {self.collection}/{record_id} rejected; local state rolled back")
                raise
            return self._apply_server(record_id, revision, server)

    def _superseded(self, record_id: str, revision: int) -> bool:
        row = self.store.get(self.collection, record_id)
        return row is not None and int(row.get("local_revision") or 0) != revision

    def _note_failure(self, record_id: str, error: str, rejected: bool) -> Optional[SyncableRecord]:
        row = self.store.get(self.collection, record_id)
        if row is None:
            return None
        row["sync_attempts"] = int(row.get("sync_attempts") or 0) + 1
        row["last_sync_error"] = error
        row["rejected"] = rejected
        self.store.put(self.collection, row)
        return self._decode(row)

    def _apply_server(self, record_id: str, revision: int, server: Any) -> Optional[SyncableRecord]:
        current = self.get_local(record_id)
        if current is None:
            return None
        server_version = server.get("updated_at") if isinstance(server, dict) else None
        current.server_confirmed = True
        current.server_version = server_version or current.server_version
        current.sync_attempts = 0
        current.last_sync_error = None
        current.rejected = False
        if current.local_revision != revision:
            # A newer local write landed while this one was in flight; it stays pending.
            self.store.put(self.collection, current.to_row())
            return current
        if isinstance(server, dict):
            try:
                current.payload = self.entity_cls.from_dict({**server, "id": record_id})
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Server representation of {self.collection}/{record_id} unusable ({e}); keeping local fields")
        current.synced_to_server = True
        self.store.put(self.collection, current.to_row())
        publish_record_changed(self.bus, self.collection, current)
        logger.debug(f"{self.collection}/{record_id} synced")
        return current

    # ---------------- read ----------------
    def _cache(self, server: Dict[str, Any]) -> Optional[SyncableRecord]:
        """Store a server copy unless a pending local write or a pending delete owns the id."""
        record_id = server.get("id")
        if not record_id or self.store.has_tombstone(self.collection, record_id):
            return None
        try:
            local = self.get_local(record_id)
        except LocalStorageCorruption:
            local = None
        if local is not None and not local.synced_to_server:
            return local
        try:
            payload = self.entity_cls.from_dict(server)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Ignoring malformed {self.collection} from server: {e}")
            return local
        now = self.clock()
        record = SyncableRecord(
            payload,
            created_at=(local.created_at if local else from_iso(server.get("created_at")) or now),
            updated_at=(local.updated_at if local else from_iso(server.get("updated_at")) or now),
            synced_to_server=True,
            server_confirmed=True,
            server_version=server.get("updated_at"),
            local_revision=local.local_revision if local else 0,
        )
        self.store.put(self.collection, record.to_row())
        if local is None or local.payload.to_dict() != payload.to_dict():
            publish_record_changed(self.bus, self.collection, record)
        return record

    async def read(self, record_id: str) -> SyncableRecord:
        """Server copy first; the local copy when offline or when a local write is pending."""
        try:
            server = await self.gateway.read(self.collection, record_id)
        except NetworkUnavailable:
            local = self.get_local(record_id)
            if local is None:
                raise NotFound(self.collection, record_id)
            logger.info(f"Offline: serving {self.collection}/{record_id} from local store")
            return local
        except RemoteNotFound:
            local = self.get_local(record_id)
            if local is not None and not local.server_confirmed:
                return local
            raise NotFound(self.collection, record_id)
        cached = self._cache({**server, "id": record_id})
        if cached is None:
            raise NotFound(self.collection, record_id)
        return cached

    async def list(self, params: Optional[Dict[str, Any]] = None,
                   predicate: Optional[Callable[[T], bool]] = None) -> List[SyncableRecord]:
        """Server list merged with pending local records; local store only when offline."""
        try:
            items = await self.gateway.list(self.collection, params)
        except NetworkUnavailable:
            logger.info(f"Offline: listing {self.collection} from local store")
            return self.local_records(predicate)
        records: Dict[str, SyncableRecord] = {}
        for item in items:
            record = self._cache(item) if isinstance(item, dict) else None
            if record is not None:
                records[record.id] = record
        for local in self.pending():
            records.setdefault(local.id, local)
        result = sorted(records.values(), key=lambda r: (to_iso(r.created_at), r.id))
        if predicate is not None:
            result = [r for r in result if predicate(r.payload)]
        return result

    async def pull(self) -> int:
        """Refresh local copies from the server. Returns how many server records were applied."""
        items = await self.gateway.list(self.collection)
        return sum(1 for item in items if isinstance(item, dict) and self._cache(item) is not None)

    # ---------------- delete ----------------
    async def delete(self, record_id: str) -> None:
        """Delete remotely when possible and always locally, unless the server refuses."""
        async with self._record_lock(record_id):
            try:
                local = self.get_local(record_id)
            except LocalStorageCorruption:
                local = None
            confirmed = local.server_confirmed if local is not None else True
            if confirmed:
                try:
                    await self.gateway.delete(self.collection, record_id)
                except NetworkUnavailable:
                    logger.info(f"Offline: delete of {self.collection}/{record_id} queued")
                    self.store.add_tombstone(self.collection, record_id)
                except RemoteNotFound:
                    if local is None:
                        raise NotFound(self.collection, record_id)
            self.store.delete(self.collection, record_id)
            publish_record_deleted(self.bus, self.collection, record_id)

    async def replay_delete(self, record_id: str) -> None:
        """Send a queued delete. NetworkUnavailable and ServerRejected propagate to the reconciler."""
        async with self._record_lock(record_id):
            try:
                await self.gateway.delete(self.collection, record_id)
            except RemoteNotFound:
                pass
            self.store.remove_tombstone(self.collection, record_id)


__all__ = ['SyncRepository']
