from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from slotbook.domain.models import Event, EventAction, Lifecycle
from slotbook.schemas.time_range import TimeRangeIn, TimeRangeRead, range_read


class EventCreate(BaseModel):
    venue_id:       str
    title:          str
    proposed_range: Optional[TimeRangeIn] = None


class EventUpdate(BaseModel):
    title:            Optional[str] = None
    proposed_range:   Optional[TimeRangeIn] = None
    expected_version: Optional[int] = None


class EventTransition(BaseModel):
    action: EventAction
    notes:  str = ""


class EventRead(BaseModel):
    id:              str
    host_id:         str
    venue_id:        str
    title:           str
    lifecycle:       Lifecycle
    is_paused:       bool
    proposed_range:  Optional[TimeRangeRead] = None
    published_range: Optional[TimeRangeRead] = None
    slot_request_id: Optional[str] = None
    version:         int
    created_at:      datetime
    updated_at:      Optional[datetime] = None

    @classmethod
    def from_domain(cls, event: Event, tz: str) -> "EventRead":
        return cls(
            id=event.id,
            host_id=event.host_id,
            venue_id=event.venue_id,
            title=event.title,
            lifecycle=event.display_state,
            is_paused=event.is_paused,
            proposed_range=range_read(event.proposed_range, tz),
            published_range=range_read(event.published_range, tz),
            slot_request_id=event.slot_request_id,
            version=event.version,
            created_at=event.created_at,
            updated_at=event.updated_at,
        )
