from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from slotbook.domain.models import SlotAction, SlotPriority, SlotRequest, SlotStatus
from slotbook.schemas.time_range import TimeRangeIn, TimeRangeRead, range_read


class SlotCreate(BaseModel):
    event_id: str
    venue_id: str
    range:    TimeRangeIn
    notes:    str = ""
    priority: SlotPriority = SlotPriority.normal


class SlotTransition(BaseModel):
    action:            SlotAction
    notes:             str = ""
    alternative_range: Optional[TimeRangeIn] = None
    range:             Optional[TimeRangeIn] = None
    expected_status:   Optional[SlotStatus] = None
    expected_version:  Optional[int] = None


class SlotRead(BaseModel):
    id:                str
    event_id:          str
    host_id:           str
    venue_id:          str
    status:            SlotStatus
    priority:          SlotPriority
    requested_range:   TimeRangeRead
    alternative_range: Optional[TimeRangeRead] = None
    committed_range:   Optional[TimeRangeRead] = None
    notes:             str
    venue_response:    str
    version:           int
    created_at:        datetime
    responded_at:      Optional[datetime] = None
    updated_at:        Optional[datetime] = None
    released_at:       Optional[datetime] = None

    @classmethod
    def from_domain(cls, slot: SlotRequest, tz: str) -> "SlotRead":
        committed = slot.committed_range if slot.status == SlotStatus.approved else None
        return cls(
            id=slot.id,
            event_id=slot.event_id,
            host_id=slot.host_id,
            venue_id=slot.venue_id,
            status=slot.status,
            priority=slot.priority,
            requested_range=TimeRangeRead.from_domain(slot.requested_range, tz),
            alternative_range=range_read(slot.alternative_range, tz),
            committed_range=range_read(committed, tz),
            notes=slot.notes,
            venue_response=slot.venue_response,
            version=slot.version,
            created_at=slot.created_at,
            responded_at=slot.responded_at,
            updated_at=slot.updated_at,
            released_at=slot.released_at,
        )


class SlotSummary(BaseModel):
    id:                str
    status:            SlotStatus
    requested_range:   TimeRangeRead
    alternative_range: Optional[TimeRangeRead] = None

    @classmethod
    def from_domain(cls, slot: SlotRequest, tz: str) -> "SlotSummary":
        return cls(
            id=slot.id,
            status=slot.status,
            requested_range=TimeRangeRead.from_domain(slot.requested_range, tz),
            alternative_range=range_read(slot.alternative_range, tz),
        )
