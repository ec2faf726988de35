"""
Event lifecycle reactions.

Pure functions returning the next ``Event`` (version bumped) or raising
``InvalidTransition``. Orchestration, persistence and the slot-side effects
live in ``slotbook.services.events``.

    draft ──submit──▶ submitted ──approve──▶ approved
      ▲                   │  │                  │
      └─needs_changes─────┘  └──slot approved───┴──▶ scheduled ──▶ live ──▶ completed ──▶ locked

    deny: submitted | approved ──▶ cancelled
    cancel: draft | submitted | approved | scheduled ──▶ cancelled
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Any

from slotbook.domain.errors import InvalidTransition
from slotbook.domain.models import Event, EventAction, Lifecycle, SlotRequest, SlotStatus

SCHEDULABLE = frozenset({Lifecycle.draft, Lifecycle.submitted, Lifecycle.approved})
CANCELLABLE = frozenset(
    {Lifecycle.draft, Lifecycle.submitted, Lifecycle.approved, Lifecycle.scheduled}
)
DENIABLE = frozenset({Lifecycle.submitted, Lifecycle.approved})
PAUSABLE = frozenset({Lifecycle.scheduled, Lifecycle.live})
# Events a host may attach a new slot request to
REQUESTABLE = SCHEDULABLE


def _bump(event: Event, now: datetime, **changes: Any) -> Event:
    return replace(event, updated_at=now, version=event.version + 1, **changes)


def _illegal(event: Event, action: str) -> InvalidTransition:
    return InvalidTransition(f"Cannot {action} an event that is {event.display_state.value}")


# ── Reactions to slot outcomes ────────────────────────────────────────────────

def on_slot_opened(event: Event, slot: SlotRequest, now: datetime) -> Event:
    if event.lifecycle not in REQUESTABLE:
        raise _illegal(event, "request a slot for")
    lifecycle = Lifecycle.submitted if event.lifecycle == Lifecycle.draft else event.lifecycle
    return _bump(event, now, lifecycle=lifecycle, slot_request_id=slot.id)


def on_slot_approved(event: Event, slot: SlotRequest, now: datetime) -> Event:
    """The only path that gives an event a public time."""
    if slot.status != SlotStatus.approved:
        raise InvalidTransition("Slot request is not approved")
    if event.lifecycle not in SCHEDULABLE:
        raise _illegal(event, "schedule")
    return _bump(
        event,
        now,
        lifecycle=Lifecycle.scheduled,
        published_range=slot.committed_range,
        slot_request_id=slot.id,
    )


def on_slot_needs_changes(event: Event, now: datetime) -> Event:
    if event.lifecycle == Lifecycle.submitted:
        return _bump(event, now, lifecycle=Lifecycle.draft)
    return event


def on_slot_resubmitted(event: Event, slot: SlotRequest, now: datetime) -> Event:
    lifecycle = Lifecycle.submitted if event.lifecycle == Lifecycle.draft else event.lifecycle
    if lifecycle == event.lifecycle and event.proposed_range == slot.requested_range:
        return event
    return _bump(event, now, lifecycle=lifecycle, proposed_range=slot.requested_range)


# ── Direct event actions ──────────────────────────────────────────────────────

def submit(event: Event, now: datetime) -> Event:
    if event.lifecycle == Lifecycle.submitted:
        return event
    if event.lifecycle != Lifecycle.draft:
        raise _illegal(event, "submit")
    return _bump(event, now, lifecycle=Lifecycle.submitted)


def approve_content(event: Event, now: datetime) -> Event:
    if event.lifecycle != Lifecycle.submitted:
        raise _illegal(event, "approve")
    return _bump(event, now, lifecycle=Lifecycle.approved)


def deny(event: Event, now: datetime) -> Event:
    if event.lifecycle not in DENIABLE:
        raise _illegal(event, "deny")
    return _bump(event, now, lifecycle=Lifecycle.cancelled)


def cancel(event: Event, now: datetime) -> Event:
    if event.lifecycle not in CANCELLABLE:
        raise _illegal(event, "cancel")
    return _bump(event, now, lifecycle=Lifecycle.cancelled, is_paused=False)


def pause(event: Event, now: datetime) -> Event:
    if event.lifecycle not in PAUSABLE or event.is_paused:
        raise _illegal(event, "pause")
    return _bump(event, now, is_paused=True)


def resume(event: Event, now: datetime) -> Event:
    if event.lifecycle not in PAUSABLE or not event.is_paused:
        raise _illegal(event, "resume")
    return _bump(event, now, is_paused=False)


def lock(event: Event, now: datetime) -> Event:
    if event.lifecycle != Lifecycle.completed:
        raise _illegal(event, "lock")
    return _bump(event, now, lifecycle=Lifecycle.locked)


SIMPLE_ACTIONS = {
    EventAction.pause:  pause,
    EventAction.resume: resume,
    EventAction.lock:   lock,
}


# ── Time sweep ────────────────────────────────────────────────────────────────

def sweep_steps(
    event: Event,
    local_now: datetime,
    now: datetime,
    grace: timedelta,
) -> list[tuple[str, Event]]:
    """Time-driven transitions due for ``event`` at naive venue-local ``local_now``.

    An event whose whole window passed between sweeps yields both steps.
    """
    steps: list[tuple[str, Event]] = []
    published = event.published_range
    if published is None:
        return steps

    current = event
    if current.lifecycle == Lifecycle.scheduled and local_now >= published.starts_at:
        current = _bump(current, now, lifecycle=Lifecycle.live)
        steps.append(("go_live", current))
    if current.lifecycle == Lifecycle.live and local_now >= published.ends_at + grace:
        current = _bump(current, now, lifecycle=Lifecycle.completed, is_paused=False)
        steps.append(("complete", current))
    return steps
