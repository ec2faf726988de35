"""
Slot negotiation between a host and a venue.

    (none) ──create──▶ pending ──approve──────────▶ approved
                         │ │ └──reject───────────▶ rejected
                         │ └──counter──▶ counter_proposed ──accept_counter──▶ approved
                         │                  │  └──decline_counter──▶ rejected
                         └──request_changes─┴──▶ needs_changes ──resubmit──▶ pending

Every transition is a read-modify-write conditional on the version read.
Transitions that end in ``approved`` run under the venue lock with the
conflict check and the status flip in the same unit of work.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Optional

from slotbook.domain.errors import Conflict, InvalidTransition, NotFound, StaleState
from slotbook.domain.intervals import TimeRange
from slotbook.domain.models import (
    SYSTEM_ACTOR,
    Actor,
    Event,
    Lifecycle,
    SlotAction,
    SlotPriority,
    SlotRequest,
    SlotStatus,
    TransitionRecord,
    Venue,
)
from slotbook.services import lifecycle
from slotbook.services.access import require_owner, require_venue_staff, utcnow
from slotbook.services.audit import (
    TransitionPublisher,
    event_snapshot,
    slot_snapshot,
    transition_record,
    write_records,
)
from slotbook.services.conflicts import detect
from slotbook.stores.interfaces import SchedulingStore, UnitOfWork

logger = logging.getLogger(__name__)

ALLOWED_FROM: dict[SlotAction, frozenset[SlotStatus]] = {
    SlotAction.approve:         frozenset({SlotStatus.pending}),
    SlotAction.reject:          frozenset({SlotStatus.pending}),
    SlotAction.counter:         frozenset({SlotStatus.pending}),
    SlotAction.accept_counter:  frozenset({SlotStatus.counter_proposed}),
    SlotAction.decline_counter: frozenset({SlotStatus.counter_proposed}),
    SlotAction.request_changes: frozenset({SlotStatus.pending, SlotStatus.counter_proposed}),
    SlotAction.resubmit:        frozenset({SlotStatus.needs_changes}),
}

VENUE_ACTIONS = frozenset(
    {SlotAction.approve, SlotAction.reject, SlotAction.counter, SlotAction.request_changes}
)

COUNTER_CONFLICT_NOTE = "Counter-proposal is no longer available"


# ── Pure transitions ──────────────────────────────────────────────────────────

def _bump(slot: SlotRequest, now: datetime, **changes: Any) -> SlotRequest:
    return replace(slot, updated_at=now, version=slot.version + 1, **changes)


def _require_notes(notes: str, action: SlotAction) -> str:
    notes = (notes or "").strip()
    if not notes:
        raise InvalidTransition(f"Notes are required to {action.value.replace('_', ' ')}")
    return notes


def apply_action(
    slot: SlotRequest,
    action: SlotAction,
    now: datetime,
    *,
    notes: str = "",
    alternative_range: Optional[TimeRange] = None,
    requested_range: Optional[TimeRange] = None,
) -> SlotRequest:
    """Next state of ``slot`` under ``action``; raises InvalidTransition when illegal."""
    if slot.status not in ALLOWED_FROM[action]:
        raise InvalidTransition(
            f"Cannot {action.value} a slot request that is {slot.status.value}"
        )

    if action == SlotAction.approve:
        return _bump(
            slot, now,
            status=SlotStatus.approved,
            responded_at=now,
            venue_response=(notes or "").strip() or slot.venue_response,
        )
    if action == SlotAction.reject:
        return _bump(
            slot, now,
            status=SlotStatus.rejected,
            responded_at=now,
            venue_response=_require_notes(notes, action),
        )
    if action == SlotAction.counter:
        if alternative_range is None:
            raise InvalidTransition("A counter-proposal needs an alternative range")
        return _bump(
            slot, now,
            status=SlotStatus.counter_proposed,
            alternative_range=alternative_range,
            responded_at=now,
            venue_response=(notes or "").strip(),
        )
    if action == SlotAction.accept_counter:
        return _bump(slot, now, status=SlotStatus.approved)
    if action == SlotAction.decline_counter:
        return _bump(slot, now, status=SlotStatus.rejected)
    if action == SlotAction.request_changes:
        return _bump(
            slot, now,
            status=SlotStatus.needs_changes,
            responded_at=now,
            venue_response=_require_notes(notes, action),
        )
    # resubmit: same id, fresh createdAt, counter-proposal cleared
    return _bump(
        slot, now,
        status=SlotStatus.pending,
        created_at=now,
        alternative_range=None,
        requested_range=requested_range or slot.requested_range,
        notes=(notes or "").strip() or slot.notes,
    )


def authorize(actor: Actor, slot: SlotRequest, action: SlotAction) -> None:
    if action in VENUE_ACTIONS:
        require_venue_staff(actor, slot.venue_id)
    else:
        require_owner(actor, slot.host_id)


def check_expected(
    slot: SlotRequest,
    expected_status: Optional[SlotStatus],
    expected_version: Optional[int],
) -> None:
    if expected_status is not None and slot.status != expected_status:
        raise StaleState(
            f"Slot request {slot.id} is {slot.status.value}, expected {expected_status.value}"
        )
    if expected_version is not None and slot.version != expected_version:
        raise StaleState(
            f"Slot request {slot.id} is at version {slot.version}, expected {expected_version}"
        )


# ── In-unit helpers shared with the event coordinator ─────────────────────────

async def require_venue(uow: UnitOfWork, venue_id: str) -> Venue:
    venue = await uow.get_venue(venue_id)
    if venue is None:
        raise NotFound("Venue", venue_id)
    return venue


async def require_event(uow: UnitOfWork, event_id: str) -> Event:
    event = await uow.get_event(event_id)
    if event is None:
        raise NotFound("Event", event_id)
    return event


async def require_slot(uow: UnitOfWork, slot_id: str) -> SlotRequest:
    slot = await uow.get_slot_request(slot_id)
    if slot is None:
        raise NotFound("Slot request", slot_id)
    return slot


def slot_record(
    before: Optional[SlotRequest],
    after: SlotRequest,
    action: str,
    actor: Actor,
    now: datetime,
    reason: str = "",
) -> TransitionRecord:
    return transition_record(
        entity_type="slot_request",
        entity_id=after.id,
        action=action,
        actor=actor,
        reason=reason,
        before=slot_snapshot(before),
        after=slot_snapshot(after),
        now=now,
        venue_id=after.venue_id,
    )


def event_record(
    before: Optional[Event],
    after: Event,
    action: str,
    actor: Actor,
    now: datetime,
    reason: str = "",
) -> TransitionRecord:
    return transition_record(
        entity_type="event",
        entity_id=after.id,
        action=action,
        actor=actor,
        reason=reason,
        before=event_snapshot(before),
        after=event_snapshot(after),
        now=now,
        venue_id=after.venue_id,
    )


async def save_event_if_changed(
    uow: UnitOfWork,
    before: Event,
    after: Event,
    action: str,
    actor: Actor,
    now: datetime,
    records: list[TransitionRecord],
    reason: str = "",
) -> Event:
    if after is before:
        return before
    await uow.save_event(after, before.version)
    records.append(event_record(before, after, action, actor, now, reason))
    return after


async def open_request(
    uow: UnitOfWork,
    event: Event,
    actor: Actor,
    requested_range: TimeRange,
    now: datetime,
    records: list[TransitionRecord],
    *,
    notes: str = "",
    priority: SlotPriority = SlotPriority.normal,
) -> tuple[SlotRequest, Event]:
    """Create a pending request for ``event``; no conflict check runs here."""
    existing = await uow.find_active_slot_request(event.id)
    if existing is not None:
        raise InvalidTransition(
            f"Event already has an open slot request ({existing.status.value})"
        )
    slot = SlotRequest(
        id=str(uuid.uuid4()),
        event_id=event.id,
        host_id=event.host_id,
        venue_id=event.venue_id,
        requested_range=requested_range,
        status=SlotStatus.pending,
        created_at=now,
        notes=(notes or "").strip(),
        priority=priority,
        updated_at=now,
    )
    opened = lifecycle.on_slot_opened(event, slot, now)
    await uow.add_slot_request(slot)
    records.append(slot_record(None, slot, "create", actor, now, slot.notes))
    action = "submit" if event.lifecycle == Lifecycle.draft else "attach_request"
    opened = await save_event_if_changed(uow, event, opened, action, actor, now, records)
    return slot, opened


async def commit_approval(
    uow: UnitOfWork,
    venue: Venue,
    before: Optional[SlotRequest],
    approved: SlotRequest,
    event: Event,
    actor: Actor,
    action: str,
    now: datetime,
    records: list[TransitionRecord],
) -> tuple[SlotRequest, Event]:
    """Conflict-check ``approved`` and persist it with the scheduled event.

    ``before`` is None when the approved request is being materialized.
    Raises Conflict, writing nothing, when the committed range is taken.
    """
    result = await detect(uow, approved.committed_range, venue, exclude_slot_id=approved.id)
    if not result.is_clear:
        raise Conflict(result.conflicts, slot=before or approved, timezone=venue.timezone)

    scheduled = lifecycle.on_slot_approved(event, approved, now)
    if before is None:
        await uow.add_slot_request(approved)
    else:
        await uow.save_slot_request(approved, before.version)
    await uow.save_event(scheduled, event.version)
    records.append(slot_record(before, approved, action, actor, now, approved.venue_response))
    records.append(event_record(event, scheduled, "schedule", actor, now))
    return approved, scheduled


async def close_request(
    uow: UnitOfWork,
    slot: SlotRequest,
    actor: Actor,
    action: str,
    reason: str,
    now: datetime,
    records: list[TransitionRecord],
) -> SlotRequest:
    """Reject an open request or release an approved one when its event goes away."""
    if slot.is_active:
        closed = _bump(
            slot, now,
            status=SlotStatus.rejected,
            responded_at=now,
            venue_response=reason or slot.venue_response,
        )
    elif slot.occupies_calendar:
        closed = _bump(slot, now, released_at=now)
    else:
        return slot
    await uow.save_slot_request(closed, slot.version)
    records.append(slot_record(slot, closed, action, actor, now, reason))
    return closed


# ── Service ───────────────────────────────────────────────────────────────────

class NegotiationService:
    def __init__(
        self,
        store: SchedulingStore,
        publisher: Optional[TransitionPublisher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._publisher = publisher or TransitionPublisher()
        self._clock = clock

    async def create(
        self,
        actor: Actor,
        event_id: str,
        venue_id: str,
        requested_range: TimeRange,
        *,
        notes: str = "",
        priority: SlotPriority = SlotPriority.normal,
    ) -> SlotRequest:
        now = self._clock()
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work() as uow:
            event = await require_event(uow, event_id)
            require_owner(actor, event.host_id)
            if event.venue_id != venue_id:
                raise InvalidTransition("Event is held at a different venue")
            venue = await require_venue(uow, venue_id)
            if not venue.is_active:
                raise InvalidTransition("Venue is not accepting requests")
            slot, _ = await open_request(
                uow, event, actor, requested_range, now, records,
                notes=notes, priority=priority,
            )
            await write_records(uow, records)

        logger.info(
            "Slot request created for %s",
            requested_range.describe(),
            extra={"slot_id": slot.id, "event_id": event_id, "venue_id": venue_id,
                   "action": "create", "actor": actor.id},
        )
        await self._publisher.after_commit(records)
        return slot

    async def _venue_of(self, slot_id: str) -> str:
        async with self._store.unit_of_work() as uow:
            return (await require_slot(uow, slot_id)).venue_id

    async def transition(
        self,
        actor: Actor,
        slot_id: str,
        action: SlotAction,
        *,
        notes: str = "",
        alternative_range: Optional[TimeRange] = None,
        requested_range: Optional[TimeRange] = None,
        expected_status: Optional[SlotStatus] = None,
        expected_version: Optional[int] = None,
    ) -> SlotRequest:
        venue_id = await self._venue_of(slot_id)
        now = self._clock()
        records: list[TransitionRecord] = []
        conflict: Optional[Conflict] = None

        async with self._store.unit_of_work(lock_venue=venue_id) as uow:
            slot = await require_slot(uow, slot_id)
            check_expected(slot, expected_status, expected_version)
            authorize(actor, slot, action)
            updated = apply_action(
                slot, action, now,
                notes=notes,
                alternative_range=alternative_range,
                requested_range=requested_range,
            )
            event = await require_event(uow, slot.event_id)

            if updated.status == SlotStatus.approved:
                venue = await require_venue(uow, slot.venue_id)
                try:
                    updated, _ = await commit_approval(
                        uow, venue, slot, updated, event, actor, action.value, now, records
                    )
                except Conflict as exc:
                    if action != SlotAction.accept_counter:
                        raise
                    # The counter-proposal is lost; settle it so the host can start over
                    updated = _bump(
                        slot, now,
                        status=SlotStatus.rejected,
                        responded_at=now,
                        venue_response=COUNTER_CONFLICT_NOTE,
                    )
                    await uow.save_slot_request(updated, slot.version)
                    records.append(
                        slot_record(slot, updated, "reject", SYSTEM_ACTOR, now, exc.message)
                    )
                    conflict = Conflict(exc.conflicts, slot=updated, timezone=exc.timezone)
            else:
                await uow.save_slot_request(updated, slot.version)
                records.append(slot_record(slot, updated, action.value, actor, now, notes))
                if updated.status == SlotStatus.needs_changes:
                    await save_event_if_changed(
                        uow, event, lifecycle.on_slot_needs_changes(event, now),
                        "request_changes", actor, now, records, notes,
                    )
                elif action == SlotAction.resubmit:
                    await save_event_if_changed(
                        uow, event, lifecycle.on_slot_resubmitted(event, updated, now),
                        "submit", actor, now, records,
                    )
            await write_records(uow, records)

        logger.info(
            "Slot request %s -> %s",
            slot.status.value,
            updated.status.value,
            extra={"slot_id": slot_id, "event_id": updated.event_id, "venue_id": venue_id,
                   "action": action.value, "actor": actor.id},
        )
        await self._publisher.after_commit(records)
        if conflict is not None:
            raise conflict
        return updated
