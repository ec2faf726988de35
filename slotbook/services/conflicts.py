"""
Conflict detection for a candidate slot against a venue's committed state.

``classify`` is pure. ``detect`` loads the venue's blocks and approved,
unreleased requests dated within a day either side of the candidate (an
overnight range can only reach that far) and delegates.

Callers must invoke ``detect`` inside the unit of work that commits the
approval, after the venue lock is taken.
"""
from __future__ import annotations

from datetime import timedelta
from typing import Iterable, Optional

from slotbook.domain.intervals import (
    TimeRange,
    contains,
    from_timeline,
    intervals_overlap,
    timeline,
)
from slotbook.domain.models import (
    ConflictItem,
    ConflictResult,
    ConflictVerdict,
    SlotRequest,
    SlotStatus,
    Venue,
    VenueBlock,
)
from slotbook.stores.interfaces import UnitOfWork


def _block_range(block: VenueBlock, venue: Venue) -> TimeRange:
    if block.range is not None:
        return block.range
    # Full-day blocks are reported as the operating window they shut
    return from_timeline(venue.window(block.date))


def classify(
    candidate: TimeRange,
    venue: Venue,
    blocks: Iterable[VenueBlock],
    approved: Iterable[SlotRequest],
) -> ConflictResult:
    span = timeline(candidate)

    block_hits: list[ConflictItem] = []
    for block in blocks:
        block_span = block.span(venue)
        if not intervals_overlap(span, block_span):
            continue
        block_hits.append(
            ConflictItem(
                kind="block",
                record_id=block.id,
                range=_block_range(block, venue),
                overlap="full" if contains(block_span, span) else "partial",
                reason=block.reason,
            )
        )

    slot_hits: list[ConflictItem] = []
    for slot in approved:
        if not slot.occupies_calendar:
            continue
        slot_span = slot.span()
        if not intervals_overlap(span, slot_span):
            continue
        slot_hits.append(
            ConflictItem(
                kind="slot_request",
                record_id=slot.id,
                range=slot.committed_range,
                overlap="full" if contains(slot_span, span) else "partial",
                host_id=slot.host_id,
                event_id=slot.event_id,
            )
        )

    if block_hits:
        verdict = ConflictVerdict.hard_block
    elif slot_hits:
        verdict = ConflictVerdict.double_booked
    else:
        verdict = ConflictVerdict.clear
    return ConflictResult(verdict=verdict, conflicts=tuple(block_hits + slot_hits))


async def detect(
    uow: UnitOfWork,
    candidate: TimeRange,
    venue: Venue,
    exclude_slot_id: Optional[str] = None,
) -> ConflictResult:
    lo = candidate.date - timedelta(days=1)
    hi = candidate.date + timedelta(days=1)
    blocks = await uow.list_blocks(venue.id, lo, hi)
    approved = await uow.list_slot_requests(venue.id, lo, hi, statuses=[SlotStatus.approved])
    approved = [s for s in approved if s.id != exclude_slot_id]
    return classify(candidate, venue, blocks, approved)
