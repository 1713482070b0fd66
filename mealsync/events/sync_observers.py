"""Sync status observers.

SyncStatusLog subscribes to an EventBus for:
  - sync.started
  - sync.completed
  - sync.retry_exceeded

and keeps a lightweight in-memory ring buffer of recent events that the UI
layer can poll to drive an "offline / syncing / N pending" banner.

Design:
  * Each event stored with an auto-increment integer id (cursor) so clients
    can request only newer events (since=<last_id_seen>).
  * A Lock guards the buffer; publishers may run on a different thread than
    the poller.
  * A max_events cap prevents unbounded memory growth.
"""
from __future__ import annotations
from typing import List, Dict, Any, Optional
from threading import Lock

from mealsync.events.Event_Bus import (
    EventBus, SYNC_STARTED, SYNC_COMPLETED, SYNC_RETRY_EXCEEDED
)
from mealsync.utilities.config import SYNC_STATUS_BUFFER
from mealsync.utilities.timestamps import utcnow, to_iso


class SyncStatusLog:
    def __init__(self, bus: EventBus, max_events: int = SYNC_STATUS_BUFFER):
        self._bus = bus
        self._lock = Lock()
        self._events: List[Dict[str, Any]] = []
        self._next_id = 1
        self.max_events = max_events
        self._started = False
        self.is_syncing = False

    def start(self):
        """Idempotent start: subscribe observers once."""
        if self._started:
            return
        for name in (SYNC_STARTED, SYNC_COMPLETED, SYNC_RETRY_EXCEEDED):
            self._bus.subscribe(name, self._record)
        self._started = True

    def stop(self):
        for name in (SYNC_STARTED, SYNC_COMPLETED, SYNC_RETRY_EXCEEDED):
            self._bus.unsubscribe(name, self._record)
        self._started = False

    def _record(self, event_name: str, payload: Any):  # signature expected by EventBus
        with self._lock:
            evt = {
                'id': self._next_id,
                'type': event_name,
                'ts': to_iso(utcnow())
            }
            if event_name == SYNC_STARTED:
                self.is_syncing = True
                evt['collections'] = list((payload or {}).get('collections', []))
            elif event_name == SYNC_COMPLETED:
                self.is_syncing = False
                report = (payload or {}).get('report')
                if report is not None:
                    evt.update(report.summary())
            elif isinstance(payload, dict):
                # 'id' is the cursor; the record id goes under its own key.
                if 'id' in payload:
                    evt['record_id'] = payload['id']
                for k in ('collection', 'attempts', 'error'):
                    if k in payload:
                        evt[k] = payload[k]
            self._events.append(evt)
            self._next_id += 1
            # Trim buffer
            if len(self._events) > self.max_events:
                del self._events[: len(self._events) - self.max_events]

    def get_events(self, since: Optional[int] = None) -> Dict[str, Any]:
        """Return events newer than 'since' (exclusive).

        Response includes next_cursor (largest id) so client can poll with since=next_cursor.
        """
        with self._lock:
            if since is None:
                data = list(self._events)
            else:
                data = [e for e in self._events if e['id'] > since]
            next_cursor = self._events[-1]['id'] if self._events else since or 0
        return {'events': data, 'next_cursor': next_cursor, 'is_syncing': self.is_syncing}


__all__ = ['SyncStatusLog']
