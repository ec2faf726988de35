from __future__ import annotations

from datetime import date as date_type, datetime
from typing import Any, Optional

from pydantic import BaseModel

from slotbook.domain.models import (
    AvailabilitySegment,
    CalendarDay,
    DayStatus,
    SegmentStatus,
    TransitionRecord,
)
from slotbook.schemas.slot import SlotSummary
from slotbook.schemas.time_range import TimeRangeRead


class CalendarDayRead(BaseModel):
    date:       date_type
    status:     DayStatus
    reason:     Optional[str] = None
    my_request: Optional[SlotSummary] = None

    @classmethod
    def from_domain(cls, day: CalendarDay, tz: str) -> "CalendarDayRead":
        return cls(
            date=day.date,
            status=day.status,
            reason=day.reason,
            my_request=SlotSummary.from_domain(day.my_request, tz) if day.my_request else None,
        )


class AvailabilitySegmentRead(BaseModel):
    range:            TimeRangeRead
    status:           SegmentStatus
    slot_request_ids: list[str] = []

    @classmethod
    def from_domain(cls, segment: AvailabilitySegment, tz: str) -> "AvailabilitySegmentRead":
        return cls(
            range=TimeRangeRead.from_domain(segment.range, tz),
            status=segment.status,
            slot_request_ids=list(segment.slot_request_ids),
        )


class TransitionRead(BaseModel):
    id:          str
    entity_type: str
    entity_id:   str
    venue_id:    Optional[str] = None
    action:      str
    actor_id:    str
    actor_role:  str
    reason:      str
    before:      dict[str, Any]
    after:       dict[str, Any]
    created_at:  datetime
    model_config = {"from_attributes": True}

    @classmethod
    def from_domain(cls, record: TransitionRecord) -> "TransitionRead":
        return cls.model_validate(record)


class SweepResult(BaseModel):
    applied:     int
    transitions: list[TransitionRead]
