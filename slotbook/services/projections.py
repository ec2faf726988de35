"""
Read-side projections.

All queries are idempotent, so a ``TransientStorageError`` is retried with
bounded exponential backoff before it reaches the caller. Mutations never go
through here.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Callable, Optional

from slotbook.core.config import settings
from slotbook.domain.errors import InvalidRange, NotFound, TransientStorageError
from slotbook.domain.models import (
    Actor,
    AvailabilitySegment,
    CalendarDay,
    Event,
    Role,
    SlotPriority,
    SlotRequest,
    SlotStatus,
    TransitionRecord,
    Venue,
)
from slotbook.services.access import require_admin, require_venue_staff, utcnow
from slotbook.services.calendar import build_calendar, day_availability
from slotbook.services.events import venue_local_now
from slotbook.services.negotiation import require_event, require_slot, require_venue
from slotbook.stores.interfaces import SchedulingStore

logger = logging.getLogger(__name__)

QUEUE_STATUSES = (SlotStatus.pending, SlotStatus.counter_proposed)
STALE_STATUSES = (SlotStatus.counter_proposed, SlotStatus.needs_changes)


# ── Retry helper ──────────────────────────────────────────────────────────────

async def _with_retry(coro_fn, *args, **kwargs):
    attempts = max(settings.QUERY_RETRY_ATTEMPTS, 1)
    last_exc: TransientStorageError | None = None
    for attempt in range(attempts):
        try:
            return await coro_fn(*args, **kwargs)
        except TransientStorageError as exc:
            last_exc = exc
            if attempt + 1 == attempts:
                break
            delay = settings.QUERY_RETRY_BASE_DELAY * (2 ** attempt)
            logger.warning(
                "Query failed (attempt %d/%d): %s, retrying in %.1fs",
                attempt + 1, attempts, exc, delay,
            )
            await asyncio.sleep(delay)
    raise last_exc


def _queue_order(slot: SlotRequest) -> tuple:
    return (0 if slot.priority == SlotPriority.high else 1, slot.created_at)


class ProjectionService:
    def __init__(self, store: SchedulingStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    # ── Calendar ──────────────────────────────────────────────────────────────

    async def _load_calendar(
        self, venue_id: str, start_date: date, end_date: date
    ) -> tuple[Venue, list, list[SlotRequest]]:
        lo = start_date - timedelta(days=1)
        hi = end_date + timedelta(days=1)
        async with self._store.unit_of_work() as uow:
            venue = await require_venue(uow, venue_id)
            blocks = await uow.list_blocks(venue_id, lo, hi)
            slots = await uow.list_slot_requests(venue_id, lo, hi)
        return venue, blocks, slots

    async def calendar(
        self,
        actor: Optional[Actor],
        venue_id: str,
        start_date: date,
        end_date: date,
    ) -> tuple[Venue, list[CalendarDay]]:
        if end_date < start_date:
            raise InvalidRange("end_date must not be before start_date")
        if (end_date - start_date).days + 1 > settings.MAX_CALENDAR_DAYS:
            raise InvalidRange(f"Calendar spans at most {settings.MAX_CALENDAR_DAYS} days")

        venue, blocks, slots = await _with_retry(self._load_calendar, venue_id, start_date, end_date)
        today = venue_local_now(venue, self._clock()).date()
        host_id = actor.id if actor is not None and actor.role == Role.host else None
        return venue, build_calendar(venue, start_date, end_date, blocks, slots, host_id, today)

    async def availability(self, venue_id: str, day: date) -> tuple[Venue, list[AvailabilitySegment]]:
        venue, blocks, slots = await _with_retry(self._load_calendar, venue_id, day, day)
        return venue, day_availability(venue, day, blocks, slots)

    # ── Queues ────────────────────────────────────────────────────────────────

    async def _load_queue(self, venue_id: str) -> tuple[Venue, list[SlotRequest]]:
        async with self._store.unit_of_work() as uow:
            venue = await require_venue(uow, venue_id)
            slots = await uow.list_venue_queue(venue_id, QUEUE_STATUSES)
        return venue, slots

    async def venue_queue(self, actor: Actor, venue_id: str) -> tuple[Venue, list[SlotRequest]]:
        """Requests awaiting a decision: high priority first, then oldest first."""
        require_venue_staff(actor, venue_id)
        venue, slots = await _with_retry(self._load_queue, venue_id)
        return venue, sorted(slots, key=_queue_order)

    async def _load_host_requests(self, host_id: str) -> list[SlotRequest]:
        async with self._store.unit_of_work() as uow:
            return await uow.list_host_slot_requests(host_id)

    async def host_requests(self, actor: Actor) -> list[SlotRequest]:
        return await _with_retry(self._load_host_requests, actor.id)

    async def _load_by_status(self, statuses) -> list[SlotRequest]:
        async with self._store.unit_of_work() as uow:
            return await uow.list_slot_requests_by_status(statuses)

    async def stale_negotiations(self, actor: Actor) -> list[SlotRequest]:
        """Negotiations idle past NEGOTIATION_STALE_DAYS. Informational only."""
        require_admin(actor)
        cutoff = self._clock() - timedelta(days=settings.NEGOTIATION_STALE_DAYS)
        slots = await _with_retry(self._load_by_status, STALE_STATUSES)
        return [s for s in slots if (s.updated_at or s.created_at) <= cutoff]

    # ── Single records ────────────────────────────────────────────────────────

    async def _load_slot(self, slot_id: str) -> SlotRequest:
        async with self._store.unit_of_work() as uow:
            return await require_slot(uow, slot_id)

    async def slot_request(self, actor: Actor, slot_id: str) -> SlotRequest:
        slot = await _with_retry(self._load_slot, slot_id)
        if actor.id != slot.host_id and not actor.acts_for_venue(slot.venue_id):
            # Foreign requests are indistinguishable from missing ones
            raise NotFound("Slot request", slot_id)
        return slot

    async def _load_event(self, event_id: str) -> Event:
        async with self._store.unit_of_work() as uow:
            return await require_event(uow, event_id)

    async def event(self, actor: Actor, event_id: str) -> Event:
        event = await _with_retry(self._load_event, event_id)
        if event.is_public or actor.id == event.host_id or actor.acts_for_venue(event.venue_id):
            return event
        raise NotFound("Event", event_id)

    async def _load_venue(self, venue_id: str) -> Venue:
        async with self._store.unit_of_work() as uow:
            return await require_venue(uow, venue_id)

    async def venue(self, venue_id: str) -> Venue:
        return await _with_retry(self._load_venue, venue_id)

    async def _load_transitions(self, entity_id: str) -> list[TransitionRecord]:
        async with self._store.unit_of_work() as uow:
            return await uow.list_transitions(entity_id)

    async def transitions(self, actor: Actor, entity_id: str) -> list[TransitionRecord]:
        require_admin(actor)
        return await _with_retry(self._load_transitions, entity_id)
