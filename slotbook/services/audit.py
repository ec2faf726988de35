"""
Transition log helpers.

Records are written inside the unit of work that performs the transition; the
transition_log table is the durable outbox. After commit the same records are
published to NOTIFY_CHANNEL for notification and audit subscribers.
"""
from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, Optional

from slotbook.core.config import settings
from slotbook.domain.intervals import TimeRange
from slotbook.domain.models import Actor, Event, SlotRequest, TransitionRecord
from slotbook.services.cache import get_redis, invalidate_venue
from slotbook.stores.interfaces import UnitOfWork

logger = logging.getLogger(__name__)


def _range(r: Optional[TimeRange]) -> Optional[dict[str, str]]:
    if r is None:
        return None
    return {"date": r.date.isoformat(), "start": f"{r.start:%H:%M}", "end": f"{r.end:%H:%M}"}


def slot_snapshot(slot: Optional[SlotRequest]) -> dict[str, Any]:
    if slot is None:
        return {}
    return {
        "status":            slot.status.value,
        "version":           slot.version,
        "requested_range":   _range(slot.requested_range),
        "alternative_range": _range(slot.alternative_range),
        "released":          slot.released_at is not None,
    }


def event_snapshot(event: Optional[Event]) -> dict[str, Any]:
    if event is None:
        return {}
    return {
        "lifecycle":       event.lifecycle.value,
        "is_paused":       event.is_paused,
        "version":         event.version,
        "published_range": _range(event.published_range),
    }


def transition_record(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: Actor,
    reason: str,
    before: dict[str, Any],
    after: dict[str, Any],
    now: datetime,
    venue_id: Optional[str] = None,
) -> TransitionRecord:
    return TransitionRecord(
        id=str(uuid.uuid4()),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor.id,
        actor_role=actor.role.value,
        reason=reason,
        before=before,
        after=after,
        created_at=now,
        venue_id=venue_id,
    )


async def write_records(uow: UnitOfWork, records: Iterable[TransitionRecord]) -> None:
    """Stage the transition log rows in the unit that performs the transitions."""
    for record in records:
        await uow.record_transition(record)


def record_payload(record: TransitionRecord) -> dict[str, Any]:
    return {
        "id":          record.id,
        "entity_type": record.entity_type,
        "entity_id":   record.entity_id,
        "venue_id":    record.venue_id,
        "action":      record.action,
        "actor_id":    record.actor_id,
        "actor_role":  record.actor_role,
        "reason":      record.reason,
        "before":      record.before,
        "after":       record.after,
        "created_at":  record.created_at.isoformat(),
    }


class TransitionPublisher:
    """Best-effort fan-out of committed transitions over Redis pub/sub."""

    async def publish(self, records: Iterable[TransitionRecord]) -> None:
        records = list(records)
        if not records or not settings.NOTIFY_ENABLED:
            return
        try:
            r = get_redis()
            for record in records:
                await r.publish(settings.NOTIFY_CHANNEL, json.dumps(record_payload(record)))
        except Exception as exc:
            # The log row is already durable; subscribers can backfill from it
            logger.warning("Transition publish failed: %s", exc)

    async def after_commit(self, records: Iterable[TransitionRecord]) -> None:
        records = list(records)
        for venue_id in {r.venue_id for r in records if r.venue_id}:
            await invalidate_venue(venue_id)
        await self.publish(records)
