"""SyncableRecord envelope: a domain payload plus the sync bookkeeping the local store keeps for it."""
from datetime import datetime
from typing import Generic, Optional, TypeVar, Any, Dict

from mealsync.utilities.timestamps import to_iso, from_iso, utcnow

T = TypeVar('T')


class SyncableRecord(Generic[T]):
    def __init__(self, payload: T, created_at: Optional[datetime] = None,
                 updated_at: Optional[datetime] = None, synced_to_server: bool = False,
                 server_confirmed: bool = False, server_version: Optional[str] = None,
                 sync_attempts: int = 0, last_sync_error: Optional[str] = None,
                 rejected: bool = False, local_revision: int = 0):
        now = utcnow()
        self.payload = payload
        self.created_at = created_at or now
        self.updated_at = updated_at or self.created_at
        self.synced_to_server = synced_to_server
        # Set once the server has accepted this id; decides create vs update.
        self.server_confirmed = server_confirmed
        self.server_version = server_version
        self.sync_attempts = sync_attempts
        self.last_sync_error = last_sync_error
        self.rejected = rejected
        # Bumped by every local save; tells an in-flight push whether it is still the latest write.
        self.local_revision = local_revision

    @property
    def id(self) -> str:
        return self.payload.id

    def __str__(self) -> str:
        state = "synced" if self.synced_to_server else "pending"
        return f"{type(self.payload).__name__}({self.id}) [{state}]"

    __repr__ = __str__

    def to_row(self) -> Dict[str, Any]:
        '''Converts the record to the dictionary persisted by the local store.'''
        return {
            "id": self.id,
            "payload": self.payload.to_dict(),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "synced_to_server": self.synced_to_server,
            "server_confirmed": self.server_confirmed,
            "server_version": self.server_version,
            "sync_attempts": self.sync_attempts,
            "last_sync_error": self.last_sync_error,
            "rejected": self.rejected,
            "local_revision": self.local_revision,
        }

    @staticmethod
    def from_row(row: Dict[str, Any], entity_cls) -> 'SyncableRecord':
        '''Rebuilds a record from a stored row. Raises KeyError/ValueError/TypeError on malformed rows.'''
        payload = entity_cls.from_dict(row["payload"])
        if payload.id != row["id"]:
            raise ValueError(f"payload id {payload.id!r} does not match row id {row['id']!r}")
        return SyncableRecord(
            payload,
            created_at=from_iso(row.get("created_at")),
            updated_at=from_iso(row.get("updated_at")),
            synced_to_server=bool(row.get("synced_to_server", False)),
            server_confirmed=bool(row.get("server_confirmed", False)),
            server_version=row.get("server_version"),
            sync_attempts=int(row.get("sync_attempts", 0) or 0),
            last_sync_error=row.get("last_sync_error"),
            rejected=bool(row.get("rejected", False)),
            local_revision=int(row.get("local_revision", 0) or 0),
        )
