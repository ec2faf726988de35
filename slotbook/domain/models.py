"""Domain models representing persisted state.

These are pure domain objects with no persistence or API concerns.
SQLAlchemy models live in slotbook/models (persistence layer); stores convert
between the two.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional

from slotbook.domain.errors import InvalidRange
from slotbook.domain.intervals import (
    Interval,
    TimeRange,
    business_day,
    operating_window,
    timeline,
)


class Role(str, enum.Enum):
    host = "host"
    venue = "venue"
    admin = "admin"


class SlotStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    counter_proposed = "counter_proposed"
    needs_changes = "needs_changes"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_SLOT_STATUSES


TERMINAL_SLOT_STATUSES = frozenset({SlotStatus.approved, SlotStatus.rejected})
ACTIVE_SLOT_STATUSES = frozenset(
    {SlotStatus.pending, SlotStatus.counter_proposed, SlotStatus.needs_changes}
)


class SlotAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    counter = "counter"
    accept_counter = "accept_counter"
    decline_counter = "decline_counter"
    request_changes = "request_changes"
    resubmit = "resubmit"


class SlotPriority(str, enum.Enum):
    normal = "normal"
    high = "high"


class Lifecycle(str, enum.Enum):
    draft = "draft"
    submitted = "submitted"
    approved = "approved"
    scheduled = "scheduled"
    live = "live"
    completed = "completed"
    cancelled = "cancelled"
    locked = "locked"
    # Display-only: projected for events whose sales are paused
    paused = "paused"


PUBLISHED_LIFECYCLES = frozenset({Lifecycle.scheduled, Lifecycle.live, Lifecycle.completed})


class EventAction(str, enum.Enum):
    submit = "submit"
    approve = "approve"
    deny = "deny"
    pause = "pause"
    resume = "resume"
    lock = "lock"
    cancel = "cancel"


class ConflictVerdict(str, enum.Enum):
    clear = "clear"
    double_booked = "double_booked"
    hard_block = "hard_block"


class DayStatus(str, enum.Enum):
    blocked = "blocked"
    booked = "booked"
    my_request = "my_request"
    partial = "partial"
    available = "available"
    past = "past"


class SegmentStatus(str, enum.Enum):
    blocked = "blocked"
    booked = "booked"
    tentative = "tentative"
    available = "available"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    venue_id: Optional[str] = None

    def acts_for_venue(self, venue_id: str) -> bool:
        return self.role == Role.admin or (
            self.role == Role.venue and self.venue_id == venue_id
        )


SYSTEM_ACTOR = Actor(id="system", role=Role.admin)


@dataclass(frozen=True)
class Venue:
    id: str
    name: str
    timezone: str
    operating_start: time
    operating_end: time
    requires_slot_negotiation: bool = True
    is_active: bool = True
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if (self.operating_start.hour, self.operating_start.minute) == (
            self.operating_end.hour,
            self.operating_end.minute,
        ):
            raise InvalidRange("Operating window start and end must differ")

    def window(self, day: date) -> Interval:
        return operating_window(day, self.operating_start, self.operating_end)

    def business_day(self, day: date) -> Interval:
        return business_day(day, self.operating_start)


@dataclass(frozen=True)
class VenueBlock:
    """Venue-authored unavailability; ``range`` is None for a full-day block."""

    id: str
    venue_id: str
    date: date
    reason: str
    range: Optional[TimeRange] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_full_day(self) -> bool:
        return self.range is None

    def span(self, venue: Venue) -> Interval:
        if self.range is None:
            return venue.business_day(self.date)
        return timeline(self.range)


@dataclass(frozen=True)
class SlotRequest:
    id: str
    event_id: str
    host_id: str
    venue_id: str
    requested_range: TimeRange
    status: SlotStatus
    created_at: datetime
    notes: str = ""
    venue_response: str = ""
    alternative_range: Optional[TimeRange] = None
    priority: SlotPriority = SlotPriority.normal
    responded_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    version: int = 1

    @property
    def committed_range(self) -> TimeRange:
        """The range this request holds once approved."""
        if self.status == SlotStatus.approved and self.alternative_range is not None:
            return self.alternative_range
        return self.requested_range

    @property
    def occupies_calendar(self) -> bool:
        return self.status == SlotStatus.approved and self.released_at is None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SLOT_STATUSES

    def span(self) -> Interval:
        return timeline(self.committed_range)


@dataclass(frozen=True)
class Event:
    id: str
    host_id: str
    venue_id: str
    title: str
    lifecycle: Lifecycle
    created_at: datetime
    proposed_range: Optional[TimeRange] = None
    published_range: Optional[TimeRange] = None
    slot_request_id: Optional[str] = None
    is_paused: bool = False
    updated_at: Optional[datetime] = None
    version: int = 1

    @property
    def display_state(self) -> Lifecycle:
        if self.is_paused and self.lifecycle in (Lifecycle.scheduled, Lifecycle.live):
            return Lifecycle.paused
        return self.lifecycle

    @property
    def is_public(self) -> bool:
        return self.lifecycle in (Lifecycle.scheduled, Lifecycle.live)


@dataclass(frozen=True)
class TransitionRecord:
    """Immutable log entry written in the same unit of work as its transition."""

    id: str
    entity_type: str
    entity_id: str
    action: str
    actor_id: str
    actor_role: str
    reason: str
    before: dict[str, Any]
    after: dict[str, Any]
    created_at: datetime
    venue_id: Optional[str] = None


@dataclass(frozen=True)
class ConflictItem:
    kind: str  # "block" | "slot_request"
    record_id: str
    range: TimeRange
    overlap: str  # "full" | "partial"
    reason: str = ""
    host_id: Optional[str] = None
    event_id: Optional[str] = None


@dataclass(frozen=True)
class ConflictResult:
    verdict: ConflictVerdict
    conflicts: tuple[ConflictItem, ...] = ()

    @property
    def is_clear(self) -> bool:
        return self.verdict == ConflictVerdict.clear


@dataclass(frozen=True)
class CalendarDay:
    date: date
    status: DayStatus
    reason: Optional[str] = None
    my_request: Optional[SlotRequest] = None


@dataclass(frozen=True)
class AvailabilitySegment:
    range: TimeRange
    status: SegmentStatus
    slot_request_ids: tuple[str, ...] = field(default=())
