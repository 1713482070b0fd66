"""Simple Event Bus / Observer implementation for record and sync notifications.

Event names:
  record.changed -> payload {"collection": str, "id": str, "record": SyncableRecord}
  record.deleted -> payload {"collection": str, "id": str}
  sync.started / sync.completed -> payload {"report": SyncReport} (started: {"collections": [...]})
  sync.retry_exceeded -> payload {"collection": str, "id": str, "attempts": int, "error": str}
  timer.completed -> payload {"timer": CookingTimer}
  connectivity.regained / app.foreground -> payload None

Subscribers are callables taking (event_name, payload). A bus is created by the
application and passed to the components that publish on it.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Callable, Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# --- Event name constants (used across modules) ---
RECORD_CHANGED = "record.changed"
RECORD_DELETED = "record.deleted"
SYNC_STARTED = "sync.started"
SYNC_COMPLETED = "sync.completed"
SYNC_RETRY_EXCEEDED = "sync.retry_exceeded"
TIMER_COMPLETED = "timer.completed"
CONNECTIVITY_REGAINED = "connectivity.regained"
APP_FOREGROUND = "app.foreground"


class EventBus:
	def __init__(self):
		self._subscribers: Dict[str, List[Callable[[str, Any], None]]] = defaultdict(list)

	def subscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		if callback not in self._subscribers[event_name]:
			self._subscribers[event_name].append(callback)

	def unsubscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		try:
			self._subscribers[event_name].remove(callback)
		except (ValueError, KeyError):
			pass

	def subscribe_record(self, collection: str, callback: Callable[[str, Any], None],
						 record_id: Optional[str] = None) -> Callable[[], None]:
		"""Watch changes and deletions in one collection, optionally one record.

		Returns a callable that removes the subscription.
		"""
		def _filtered(event_name: str, payload: Any):
			if payload.get("collection") != collection:
				return
			if record_id is not None and payload.get("id") != record_id:
				return
			callback(event_name, payload)

		self.subscribe(RECORD_CHANGED, _filtered)
		self.subscribe(RECORD_DELETED, _filtered)

		def _unsubscribe():
			self.unsubscribe(RECORD_CHANGED, _filtered)
			self.unsubscribe(RECORD_DELETED, _filtered)

		return _unsubscribe

	def publish(self, event_name: str, payload: Any = None):
		for cb in list(self._subscribers.get(event_name, [])):
			try:
				cb(event_name, payload)
			except Exception:
				# A failing subscriber must not break the publisher's write path.
				logger.exception("Error delivering %s to %s", event_name, cb)


__all__ = [
	'EventBus', 'RECORD_CHANGED', 'RECORD_DELETED', 'SYNC_STARTED', 'SYNC_COMPLETED',
	'SYNC_RETRY_EXCEEDED', 'TIMER_COMPLETED', 'CONNECTIVITY_REGAINED', 'APP_FOREGROUND'
]
