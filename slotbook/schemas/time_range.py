from __future__ import annotations

from datetime import date as date_type, time as time_type
from typing import Optional

from pydantic import BaseModel

from slotbook.domain.errors import InvalidRange
from slotbook.domain.intervals import TimeRange


def venue_local(value: time_type, field: str) -> time_type:
    """Range times are wall-clock minutes in the venue's zone; offsets and seconds are rejected."""
    if value.tzinfo is not None:
        raise InvalidRange(f"{field} must be venue-local, without a UTC offset")
    if value.second or value.microsecond:
        raise InvalidRange(f"{field} must be a whole minute")
    return value


class TimeRangeIn(BaseModel):
    """Venue-local range; an end earlier than the start runs past midnight."""

    date:  date_type
    start: time_type
    end:   time_type

    def to_domain(self) -> TimeRange:
        return TimeRange(
            date=self.date,
            start=venue_local(self.start, "start"),
            end=venue_local(self.end, "end"),
        )


class TimeRangeRead(BaseModel):
    date:     date_type
    start:    str
    end:      str
    timezone: str

    @classmethod
    def from_domain(cls, r: TimeRange, tz: str) -> "TimeRangeRead":
        return cls(date=r.date, start=f"{r.start:%H:%M}", end=f"{r.end:%H:%M}", timezone=tz)


def range_read(r: Optional[TimeRange], tz: str) -> Optional[TimeRangeRead]:
    return TimeRangeRead.from_domain(r, tz) if r is not None else None
