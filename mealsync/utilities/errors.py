"""Error taxonomy shared by the sync core and the state machines.

NetworkUnavailable never leaves the Sync Repository: it is the signal to
fall back to local data. Everything else propagates to the caller.
"""
from typing import Optional


class MealSyncError(Exception):
    """Base class for all mealsync errors."""


class NetworkUnavailable(MealSyncError):
    """Transport failure or timeout talking to the remote service."""


class ServerRejected(MealSyncError):
    """The remote service answered, but refused the request."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}" if message else str(status_code))


class NotFound(MealSyncError, LookupError):
    """Neither the remote service nor the local store knows the record."""

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"{collection}/{record_id} not found")


class RemoteNotFound(ServerRejected):
    """404 from the remote service."""

    def __init__(self, message: str = ""):
        super().__init__(404, message)


class LocalStorageCorruption(MealSyncError):
    """A stored row could not be decoded; it has been quarantined."""

    def __init__(self, collection: str, record_id: Optional[str], reason: str):
        self.collection = collection
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"{collection}/{record_id or '?'}: {reason}")


class InvalidTransition(MealSyncError):
    """A state machine action is not allowed from the current status."""

    def __init__(self, entity: str, entity_id: str, status: str, action: str):
        self.entity = entity
        self.entity_id = entity_id
        self.status = status
        self.action = action
        super().__init__(f"cannot {action} {entity} {entity_id} while {status}")


__all__ = [
    'MealSyncError', 'NetworkUnavailable', 'ServerRejected', 'RemoteNotFound',
    'NotFound', 'LocalStorageCorruption', 'InvalidTransition',
]
