from __future__ import annotations

from datetime import date as date_type, datetime, time
from typing import Optional

from pydantic import BaseModel, model_validator

from slotbook.domain.intervals import TimeRange
from slotbook.domain.models import Venue, VenueBlock
from slotbook.schemas.time_range import TimeRangeRead, range_read, venue_local


class VenueCreate(BaseModel):
    id: Optional[str] = None
    name: str
    timezone: Optional[str] = None
    operating_start: Optional[time] = None
    operating_end: Optional[time] = None
    requires_slot_negotiation: bool = True


class VenueUpdate(BaseModel):
    name: Optional[str] = None
    timezone: Optional[str] = None
    operating_start: Optional[time] = None
    operating_end: Optional[time] = None
    requires_slot_negotiation: Optional[bool] = None
    is_active: Optional[bool] = None


class VenueRead(BaseModel):
    id: str
    name: str
    timezone: str
    operating_start: time
    operating_end: time
    requires_slot_negotiation: bool
    is_active: bool
    created_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class VenueBlockCreate(BaseModel):
    """Omit start and end for a block covering the whole business day."""

    date: date_type
    reason: str = ""
    start: Optional[time] = None
    end: Optional[time] = None

    @model_validator(mode="after")
    def _both_or_neither(self) -> "VenueBlockCreate":
        if (self.start is None) != (self.end is None):
            raise ValueError("start and end must be given together")
        return self

    def to_range(self) -> Optional[TimeRange]:
        if self.start is None or self.end is None:
            return None
        return TimeRange(
            date=self.date,
            start=venue_local(self.start, "start"),
            end=venue_local(self.end, "end"),
        )


class VenueBlockRead(BaseModel):
    id: str
    venue_id: str
    date: date_type
    reason: str
    full_day: bool
    range: Optional[TimeRangeRead] = None
    created_by: Optional[str] = None

    @classmethod
    def from_domain(cls, block: VenueBlock, venue: Venue) -> "VenueBlockRead":
        return cls(
            id=block.id,
            venue_id=block.venue_id,
            date=block.date,
            reason=block.reason,
            full_day=block.is_full_day,
            range=range_read(block.range, venue.timezone),
            created_by=block.created_by,
        )
