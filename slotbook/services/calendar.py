"""
Calendar aggregation: per-day status and single-day availability segments.

Both are pure projections over records the caller loaded for
[start_date - 1, end_date + 1]; nothing here reads a clock or persists a
day status.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional, Sequence

from slotbook.domain.intervals import (
    Interval,
    clip,
    covers,
    from_timeline,
    intervals_overlap,
    timeline,
)
from slotbook.domain.models import (
    AvailabilitySegment,
    CalendarDay,
    DayStatus,
    SegmentStatus,
    SlotRequest,
    SlotStatus,
    Venue,
    VenueBlock,
)


def _days(start_date: date, end_date: date) -> Iterable[date]:
    day = start_date
    while day <= end_date:
        yield day
        day += timedelta(days=1)


def _request_spans(slot: SlotRequest) -> list[Interval]:
    spans = [timeline(slot.requested_range)]
    if slot.alternative_range is not None:
        spans.append(timeline(slot.alternative_range))
    return spans


def classify_day(
    venue: Venue,
    day: date,
    blocks: Sequence[VenueBlock],
    slot_requests: Sequence[SlotRequest],
    host_id: Optional[str],
    today: date,
) -> CalendarDay:
    window = venue.window(day)
    bday = venue.business_day(day)

    day_blocks = [b for b in blocks if intervals_overlap(b.span(venue), bday)]
    full_day = [b for b in day_blocks if b.is_full_day and b.date == day]
    if full_day:
        return CalendarDay(date=day, status=DayStatus.blocked, reason=full_day[0].reason)

    partial_blocks = [b for b in day_blocks if not b.is_full_day]
    block_spans = [b.span(venue) for b in partial_blocks]
    if block_spans and covers(block_spans, window):
        return CalendarDay(date=day, status=DayStatus.blocked, reason=partial_blocks[0].reason)

    approved_spans = [
        s.span() for s in slot_requests
        if s.occupies_calendar and intervals_overlap(s.span(), bday)
    ]
    if approved_spans and covers(block_spans + approved_spans, window):
        return CalendarDay(date=day, status=DayStatus.booked)

    if host_id is not None:
        mine = [
            s for s in slot_requests
            if s.host_id == host_id
            and s.is_active
            and any(intervals_overlap(span, bday) for span in _request_spans(s))
        ]
        if mine:
            return CalendarDay(date=day, status=DayStatus.my_request, my_request=mine[0])

    occupied = [b for b in partial_blocks if clip(b.span(venue), window) is not None]
    if occupied or any(clip(span, window) is not None for span in approved_spans):
        reason = occupied[0].reason if occupied else None
        return CalendarDay(date=day, status=DayStatus.partial, reason=reason)

    status = DayStatus.past if day < today else DayStatus.available
    return CalendarDay(date=day, status=status)


def build_calendar(
    venue: Venue,
    start_date: date,
    end_date: date,
    blocks: Sequence[VenueBlock],
    slot_requests: Sequence[SlotRequest],
    host_id: Optional[str],
    today: date,
) -> list[CalendarDay]:
    return [
        classify_day(venue, day, blocks, slot_requests, host_id, today)
        for day in _days(start_date, end_date)
    ]


# ── Single-day availability ───────────────────────────────────────────────────

_TENTATIVE = (SlotStatus.pending, SlotStatus.counter_proposed)


def _tentative_span(slot: SlotRequest) -> Interval:
    if slot.status == SlotStatus.counter_proposed and slot.alternative_range is not None:
        return timeline(slot.alternative_range)
    return timeline(slot.requested_range)


def day_availability(
    venue: Venue,
    day: date,
    blocks: Sequence[VenueBlock],
    slot_requests: Sequence[SlotRequest],
) -> list[AvailabilitySegment]:
    """Partition the operating window of ``day`` at every record boundary."""
    window = venue.window(day)

    blocked: list[Interval] = []
    for block in blocks:
        c = clip(block.span(venue), window)
        if c is not None:
            blocked.append(c)

    booked: list[tuple[Interval, str]] = []
    tentative: list[tuple[Interval, str]] = []
    for slot in slot_requests:
        if slot.occupies_calendar:
            c = clip(slot.span(), window)
            if c is not None:
                booked.append((c, slot.id))
        elif slot.status in _TENTATIVE:
            c = clip(_tentative_span(slot), window)
            if c is not None:
                tentative.append((c, slot.id))

    cuts = {window[0], window[1]}
    for start, end in blocked:
        cuts.update((start, end))
    for (start, end), _ in booked + tentative:
        cuts.update((start, end))
    points = sorted(cuts)

    segments: list[tuple[Interval, SegmentStatus, tuple[str, ...]]] = []
    for start, end in zip(points, points[1:]):
        if any(s <= start < e for s, e in blocked):
            status, ids = SegmentStatus.blocked, ()
        else:
            booked_ids = tuple(sid for (s, e), sid in booked if s <= start < e)
            tentative_ids = tuple(sid for (s, e), sid in tentative if s <= start < e)
            if booked_ids:
                status, ids = SegmentStatus.booked, booked_ids
            elif tentative_ids:
                status, ids = SegmentStatus.tentative, tentative_ids
            else:
                status, ids = SegmentStatus.available, ()

        if segments and segments[-1][1] == status and segments[-1][2] == ids and segments[-1][0][1] == start:
            prev = segments[-1]
            segments[-1] = ((prev[0][0], end), status, ids)
        else:
            segments.append(((start, end), status, ids))

    return [
        AvailabilitySegment(range=from_timeline(span), status=status, slot_request_ids=ids)
        for span, status, ids in segments
    ]
