"""
Event lifecycle coordination.

Each action runs as one unit of work holding the venue lock, so the event,
its slot request and their transition records commit together or not at all.
The time sweep is the only caller that moves events without a client request.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from slotbook.core.config import settings
from slotbook.domain.errors import DomainError, InvalidTransition, PermissionDenied, StaleState
from slotbook.domain.intervals import TimeRange
from slotbook.domain.models import (
    SYSTEM_ACTOR,
    Actor,
    Event,
    EventAction,
    Lifecycle,
    Role,
    SlotAction,
    SlotRequest,
    SlotStatus,
    TransitionRecord,
    Venue,
)
from slotbook.services import lifecycle
from slotbook.services.access import (
    require_owner,
    require_owner_or_venue,
    require_venue_staff,
    utcnow,
)
from slotbook.services.audit import TransitionPublisher, write_records
from slotbook.services.negotiation import (
    apply_action,
    close_request,
    commit_approval,
    event_record,
    open_request,
    require_event,
    require_venue,
    save_event_if_changed,
    slot_record,
)
from slotbook.stores.interfaces import SchedulingStore, UnitOfWork

logger = logging.getLogger(__name__)

SWEPT_LIFECYCLES = (Lifecycle.scheduled, Lifecycle.live)


def venue_local_now(venue: Venue, now: datetime) -> datetime:
    """Naive wall-clock time at the venue for an aware ``now``."""
    return now.astimezone(ZoneInfo(venue.timezone)).replace(tzinfo=None)


class EventService:
    def __init__(
        self,
        store: SchedulingStore,
        publisher: Optional[TransitionPublisher] = None,
        clock: Callable[[], datetime] = utcnow,
        grace: Optional[timedelta] = None,
    ) -> None:
        self._store = store
        self._publisher = publisher or TransitionPublisher()
        self._clock = clock
        self._grace = grace if grace is not None else timedelta(
            minutes=settings.COMPLETION_GRACE_MINUTES
        )

    # ── Drafts ────────────────────────────────────────────────────────────────

    async def create(
        self,
        actor: Actor,
        venue_id: str,
        title: str,
        proposed_range: Optional[TimeRange] = None,
    ) -> Event:
        if actor.role != Role.host:
            raise PermissionDenied("Only hosts create events")
        title = (title or "").strip()
        if not title:
            raise InvalidTransition("Event title is required")

        now = self._clock()
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work() as uow:
            venue = await require_venue(uow, venue_id)
            if not venue.is_active:
                raise InvalidTransition("Venue is not accepting events")
            event = Event(
                id=str(uuid.uuid4()),
                host_id=actor.id,
                venue_id=venue_id,
                title=title,
                lifecycle=Lifecycle.draft,
                created_at=now,
                proposed_range=proposed_range,
                updated_at=now,
            )
            await uow.add_event(event)
            records.append(event_record(None, event, "create", actor, now))
            await write_records(uow, records)

        logger.info(
            "Event drafted: %s",
            title,
            extra={"event_id": event.id, "venue_id": venue_id, "action": "create", "actor": actor.id},
        )
        await self._publisher.after_commit(records)
        return event

    async def update(
        self,
        actor: Actor,
        event_id: str,
        *,
        title: Optional[str] = None,
        proposed_range: Optional[TimeRange] = None,
        expected_version: Optional[int] = None,
    ) -> Event:
        now = self._clock()
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work() as uow:
            event = await require_event(uow, event_id)
            require_owner(actor, event.host_id)
            if expected_version is not None and event.version != expected_version:
                raise StaleState(
                    f"Event {event.id} is at version {event.version}, expected {expected_version}"
                )
            if event.lifecycle != Lifecycle.draft:
                raise InvalidTransition("Only draft events can be edited")

            changes = {}
            if title is not None:
                if not title.strip():
                    raise InvalidTransition("Event title is required")
                changes["title"] = title.strip()
            if proposed_range is not None:
                changes["proposed_range"] = proposed_range
            if not changes:
                return event
            edited = replace(event, updated_at=now, version=event.version + 1, **changes)
            await save_event_if_changed(uow, event, edited, "edit", actor, now, records)
            await write_records(uow, records)

        await self._publisher.after_commit(records)
        return edited

    # ── Lifecycle actions ─────────────────────────────────────────────────────

    async def _venue_of(self, event_id: str) -> str:
        async with self._store.unit_of_work() as uow:
            return (await require_event(uow, event_id)).venue_id

    async def transition(
        self,
        actor: Actor,
        event_id: str,
        action: EventAction,
        notes: str = "",
    ) -> Event:
        venue_id = await self._venue_of(event_id)
        now = self._clock()
        records: list[TransitionRecord] = []

        async with self._store.unit_of_work(lock_venue=venue_id) as uow:
            event = await require_event(uow, event_id)
            venue = await require_venue(uow, event.venue_id)

            if action == EventAction.submit:
                updated = await self._submit(uow, venue, event, actor, now, records)
            elif action == EventAction.approve:
                updated = await self._approve(uow, venue, event, actor, notes, now, records)
            elif action == EventAction.deny:
                require_venue_staff(actor, event.venue_id)
                updated = lifecycle.deny(event, now)
                await self._close_slots(uow, event, actor, "deny", notes, now, records)
                updated = await save_event_if_changed(
                    uow, event, updated, "deny", actor, now, records, notes
                )
            elif action == EventAction.cancel:
                require_owner_or_venue(actor, event.host_id, event.venue_id)
                updated = lifecycle.cancel(event, now)
                await self._close_slots(uow, event, actor, "cancel", notes, now, records)
                updated = await save_event_if_changed(
                    uow, event, updated, "cancel", actor, now, records, notes
                )
            else:
                if action == EventAction.lock:
                    require_venue_staff(actor, event.venue_id)
                else:
                    require_owner_or_venue(actor, event.host_id, event.venue_id)
                updated = lifecycle.SIMPLE_ACTIONS[action](event, now)
                updated = await save_event_if_changed(
                    uow, event, updated, action.value, actor, now, records, notes
                )
            await write_records(uow, records)

        logger.info(
            "Event %s -> %s",
            event.display_state.value,
            updated.display_state.value,
            extra={"event_id": event_id, "venue_id": venue_id,
                   "action": action.value, "actor": actor.id},
        )
        await self._publisher.after_commit(records)
        return updated

    async def _submit(
        self,
        uow: UnitOfWork,
        venue: Venue,
        event: Event,
        actor: Actor,
        now: datetime,
        records: list[TransitionRecord],
    ) -> Event:
        require_owner(actor, event.host_id)
        if event.lifecycle not in (Lifecycle.draft, Lifecycle.submitted):
            raise InvalidTransition(f"Cannot submit an event that is {event.display_state.value}")

        if not venue.requires_slot_negotiation:
            return await save_event_if_changed(
                uow, event, lifecycle.submit(event, now), "submit", actor, now, records
            )

        active = await uow.find_active_slot_request(event.id)
        if active is not None and active.status == SlotStatus.needs_changes:
            resubmitted = apply_action(
                active, SlotAction.resubmit, now, requested_range=event.proposed_range
            )
            await uow.save_slot_request(resubmitted, active.version)
            records.append(slot_record(active, resubmitted, "resubmit", actor, now))
            return await save_event_if_changed(
                uow, event, lifecycle.on_slot_resubmitted(event, resubmitted, now),
                "submit", actor, now, records,
            )
        if active is not None:
            # A request is already with the venue
            return await save_event_if_changed(
                uow, event, lifecycle.submit(event, now), "submit", actor, now, records
            )

        if event.proposed_range is None:
            raise InvalidTransition("Event needs a proposed time before it can be submitted")
        _, submitted = await open_request(uow, event, actor, event.proposed_range, now, records)
        return submitted

    async def _approve(
        self,
        uow: UnitOfWork,
        venue: Venue,
        event: Event,
        actor: Actor,
        notes: str,
        now: datetime,
        records: list[TransitionRecord],
    ) -> Event:
        require_venue_staff(actor, event.venue_id)
        if event.lifecycle != Lifecycle.submitted:
            raise InvalidTransition(f"Cannot approve an event that is {event.display_state.value}")

        active = await uow.find_active_slot_request(event.id)
        if active is not None:
            if active.status != SlotStatus.pending:
                raise InvalidTransition(
                    f"Slot request is {active.status.value}; settle the negotiation first"
                )
            approved = apply_action(active, SlotAction.approve, now, notes=notes)
            _, scheduled = await commit_approval(
                uow, venue, active, approved, event, actor, "approve", now, records
            )
            return scheduled

        if event.proposed_range is not None:
            materialized = SlotRequest(
                id=str(uuid.uuid4()),
                event_id=event.id,
                host_id=event.host_id,
                venue_id=event.venue_id,
                requested_range=event.proposed_range,
                status=SlotStatus.approved,
                created_at=now,
                venue_response=(notes or "").strip(),
                responded_at=now,
                updated_at=now,
            )
            _, scheduled = await commit_approval(
                uow, venue, None, materialized, event, actor, "approve", now, records
            )
            return scheduled

        return await save_event_if_changed(
            uow, event, lifecycle.approve_content(event, now), "approve", actor, now, records, notes
        )

    async def _close_slots(
        self,
        uow: UnitOfWork,
        event: Event,
        actor: Actor,
        action: str,
        reason: str,
        now: datetime,
        records: list[TransitionRecord],
    ) -> None:
        active = await uow.find_active_slot_request(event.id)
        if active is not None:
            await close_request(uow, active, actor, action, reason, now, records)
        if event.slot_request_id and (active is None or active.id != event.slot_request_id):
            current = await uow.get_slot_request(event.slot_request_id)
            if current is not None and current.occupies_calendar:
                await close_request(uow, current, actor, action, reason, now, records)

    # ── Time sweep ────────────────────────────────────────────────────────────

    async def sweep(self, now: Optional[datetime] = None) -> list[TransitionRecord]:
        """Advance scheduled and live events whose time has come. ``now`` must be aware."""
        now = now or self._clock()
        async with self._store.unit_of_work() as uow:
            candidates = await uow.list_events_by_lifecycle(SWEPT_LIFECYCLES)

        applied: list[TransitionRecord] = []
        for event in candidates:
            try:
                applied.extend(await self._sweep_one(event.id, now))
            except StaleState as exc:
                # Someone else moved the event; the next pass re-evaluates it
                logger.info("Sweep skipped: %s", exc.message, extra={"event_id": event.id})
            except DomainError as exc:
                logger.warning("Sweep failed for event: %s", exc, extra={"event_id": event.id})
        if applied:
            logger.info("Sweep applied %d transitions", len(applied))
        return applied

    async def _sweep_one(self, event_id: str, now: datetime) -> list[TransitionRecord]:
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work() as uow:
            event = await uow.get_event(event_id)
            if event is None or event.lifecycle not in SWEPT_LIFECYCLES:
                return records
            venue = await require_venue(uow, event.venue_id)
            steps = lifecycle.sweep_steps(event, venue_local_now(venue, now), now, self._grace)
            if not steps:
                return records
            await uow.save_event(steps[-1][1], event.version)
            before = event
            for action, after in steps:
                records.append(event_record(before, after, action, SYSTEM_ACTOR, now))
                before = after
            await write_records(uow, records)

        for record in records:
            logger.info(
                "Event %s -> %s",
                record.before.get("lifecycle"),
                record.after.get("lifecycle"),
                extra={"event_id": event_id, "action": record.action, "actor": SYSTEM_ACTOR.id},
            )
        await self._publisher.after_commit(records)
        return records
