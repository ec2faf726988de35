"""Interval model: venue-local time ranges on a single minute timeline.

A ``TimeRange`` whose end is earlier than its start crosses midnight into the
next calendar day. ``normalize`` is the only place that rule is applied; every
other component works with absolute minute offsets (``Interval``).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from slotbook.domain.errors import InvalidRange

MINUTES_PER_DAY = 1440

# Half-open [start, end) in absolute minutes since date.min
Interval = tuple[int, int]


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def _day_origin(day: date) -> int:
    return day.toordinal() * MINUTES_PER_DAY


@dataclass(frozen=True)
class TimeRange:
    """A venue-local range anchored on ``date``; ``end < start`` wraps past midnight."""

    date: date
    start: time
    end: time

    def __post_init__(self) -> None:
        if not isinstance(self.date, date) or isinstance(self.date, datetime):
            raise InvalidRange("Range date must be a calendar day")
        if not isinstance(self.start, time) or not isinstance(self.end, time):
            raise InvalidRange("Range start and end must be times of day")
        if _minutes(self.start) == _minutes(self.end):
            raise InvalidRange("Range start and end must differ (zero-length range)")

    @property
    def crosses_midnight(self) -> bool:
        return _minutes(self.end) < _minutes(self.start)

    @property
    def duration_minutes(self) -> int:
        start, end = normalize(self)
        return end - start

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start)

    @property
    def ends_at(self) -> datetime:
        end_day = self.date + timedelta(days=1) if self.crosses_midnight else self.date
        return datetime.combine(end_day, self.end)

    def describe(self) -> str:
        suffix = " (+1)" if self.crosses_midnight else ""
        return f"{self.date.isoformat()} {self.start:%H:%M}-{self.end:%H:%M}{suffix}"


def normalize(r: TimeRange) -> tuple[int, int]:
    """Minute offsets from midnight of ``r.date``; the end gains a day when it wraps."""
    start = _minutes(r.start)
    end = _minutes(r.end)
    if end < start:
        end += MINUTES_PER_DAY
    return start, end


def timeline(r: TimeRange) -> Interval:
    """Place a range on the shared absolute timeline so different dates compare."""
    start, end = normalize(r)
    origin = _day_origin(r.date)
    return origin + start, origin + end


def intervals_overlap(a: Interval, b: Interval) -> bool:
    return a[0] < b[1] and b[0] < a[1]


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test; back-to-back ranges do not overlap."""
    return intervals_overlap(timeline(a), timeline(b))


def contains(outer: Interval, inner: Interval) -> bool:
    return outer[0] <= inner[0] and inner[1] <= outer[1]


def from_timeline(interval: Interval) -> TimeRange:
    start, end = interval
    if end - start <= 0 or end - start >= MINUTES_PER_DAY:
        raise InvalidRange("Interval must be shorter than a day and non-empty")
    day = date.fromordinal(start // MINUTES_PER_DAY)
    start_min = start % MINUTES_PER_DAY
    end_min = end % MINUTES_PER_DAY
    return TimeRange(
        date=day,
        start=time(start_min // 60, start_min % 60),
        end=time(end_min // 60, end_min % 60),
    )


# ── Venue windows ─────────────────────────────────────────────────────────────

def operating_window(day: date, opening: time, closing: time) -> Interval:
    """The venue's operable window of ``day``; a closing at or before opening wraps."""
    origin = _day_origin(day)
    start = _minutes(opening)
    end = _minutes(closing)
    if end <= start:
        end += MINUTES_PER_DAY
    return origin + start, origin + end


def business_day(day: date, opening: time) -> Interval:
    """24 hours beginning at the venue's opening time on ``day``."""
    start = _day_origin(day) + _minutes(opening)
    return start, start + MINUTES_PER_DAY


def clip(interval: Interval, window: Interval) -> Optional[Interval]:
    start = max(interval[0], window[0])
    end = min(interval[1], window[1])
    if start >= end:
        return None
    return start, end


def merge(intervals: Iterable[Interval]) -> list[Interval]:
    merged: list[Interval] = []
    for start, end in sorted(intervals):
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def covers(intervals: Iterable[Interval], window: Interval) -> bool:
    """True when the union of ``intervals`` covers every minute of ``window``."""
    clipped = [c for c in (clip(i, window) for i in intervals) if c is not None]
    cursor = window[0]
    for start, end in merge(clipped):
        if start > cursor:
            return False
        cursor = max(cursor, end)
        if cursor >= window[1]:
            return True
    return cursor >= window[1]
