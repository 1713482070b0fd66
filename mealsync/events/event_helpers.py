"""Event helper utilities.

Thin wrappers that build the payloads published on an EventBus, so every
publisher uses the same shape.

Quick import:
    from mealsync.events.event_helpers import (
        publish_record_changed, publish_record_deleted, publish_retry_exceeded
    )
"""
from __future__ import annotations
from typing import Any, Optional
from .Event_Bus import (
    EventBus, RECORD_CHANGED, RECORD_DELETED, SYNC_RETRY_EXCEEDED, TIMER_COMPLETED
)

__all__ = [
    'publish_record_changed', 'publish_record_deleted', 'publish_retry_exceeded',
    'publish_timer_completed'
]


def publish_record_changed(bus: Optional[EventBus], collection: str, record: Any):
    """Publish a record.changed event."""
    if bus is None:
        return
    bus.publish(RECORD_CHANGED, {
        'collection': collection,
        'id': record.id,
        'record': record
    })


def publish_record_deleted(bus: Optional[EventBus], collection: str, record_id: str):
    """Publish a record.deleted event."""
    if bus is None:
        return
    bus.publish(RECORD_DELETED, {
        'collection': collection,
        'id': record_id
    })


def publish_retry_exceeded(bus: Optional[EventBus], collection: str, record_id: str, attempts: int, error: str):
    """Publish a sync.retry_exceeded event (record stays pending, eligible for manual retry)."""
    if bus is None:
        return
    bus.publish(SYNC_RETRY_EXCEEDED, {
        'collection': collection,
        'id': record_id,
        'attempts': attempts,
        'error': error
    })


def publish_timer_completed(bus: Optional[EventBus], timer: Any):
    if bus is None:
        return
    bus.publish(TIMER_COMPLETED, {'timer': timer})
