"""Tests for conflict classification against blocks and approved requests."""

from datetime import date, timedelta

import pytest
from conftest import BASEMENT, VENUE_ID, make_block, make_slot, tr

from slotbook.domain.models import ConflictVerdict, SlotStatus
from slotbook.services.conflicts import classify, detect

D = date(2026, 3, 10)
NEXT = D + timedelta(days=1)


class TestClassify:
    """Pure verdicts over already-loaded records."""

    def test_nothing_committed_is_clear(self):
        result = classify(tr(D, "21:00", "23:00"), BASEMENT, [], [])
        assert result.is_clear
        assert result.conflicts == ()

    def test_full_day_block_is_a_hard_block(self):
        block = make_block(D, reason="Closed for holiday")
        result = classify(tr(D, "21:00", "23:00"), BASEMENT, [block], [])

        assert result.verdict == ConflictVerdict.hard_block
        (item,) = result.conflicts
        assert item.kind == "block"
        assert item.record_id == block.id
        assert item.overlap == "full"
        assert item.reason == "Closed for holiday"
        # Reported as the operating window it shuts
        assert item.range == tr(D, "17:00", "03:00")

    def test_partial_overlap_with_approved_request(self):
        approved = make_slot(tr(D, "21:00", "23:00"), host_id="host-a")
        result = classify(tr(D, "22:00", "00:00"), BASEMENT, [], [approved])

        assert result.verdict == ConflictVerdict.double_booked
        (item,) = result.conflicts
        assert item.kind == "slot_request"
        assert item.record_id == approved.id
        assert item.overlap == "partial"
        assert item.host_id == "host-a"
        assert item.event_id == approved.event_id

    def test_block_outranks_double_booking_and_both_are_listed(self):
        block = make_block(D, tr(D, "22:00", "23:00"))
        approved = make_slot(tr(D, "20:00", "22:30"))
        result = classify(tr(D, "21:00", "23:30"), BASEMENT, [block], [approved])

        assert result.verdict == ConflictVerdict.hard_block
        assert [c.kind for c in result.conflicts] == ["block", "slot_request"]

    def test_overnight_request_conflicts_with_next_morning(self):
        approved = make_slot(tr(D, "23:00", "04:00"))
        result = classify(tr(NEXT, "02:00", "03:00"), BASEMENT, [], [approved])
        assert result.verdict == ConflictVerdict.double_booked
        assert result.conflicts[0].overlap == "full"

    def test_back_to_back_is_clear(self):
        approved = make_slot(tr(D, "20:00", "23:00"))
        assert classify(tr(D, "23:00", "01:00"), BASEMENT, [], [approved]).is_clear

    def test_released_requests_are_ignored(self):
        released = make_slot(tr(D, "21:00", "23:00"), released=True)
        assert classify(tr(D, "21:00", "23:00"), BASEMENT, [], [released]).is_clear

    def test_accepted_counter_occupies_its_alternative(self):
        approved = make_slot(tr(D, "18:00", "19:00"), alternative_range=tr(D, "21:00", "23:00"))
        assert classify(tr(D, "18:00", "19:00"), BASEMENT, [], [approved]).is_clear
        hit = classify(tr(D, "22:00", "23:00"), BASEMENT, [], [approved])
        assert hit.conflicts[0].range == tr(D, "21:00", "23:00")


class TestDetect:
    """Loading committed state from the store."""

    @pytest.mark.anyio
    async def test_finds_previous_day_overnight_request(self, store):
        approved = make_slot(tr(D, "23:00", "04:00"))
        store.slot_requests[approved.id] = approved

        async with store.unit_of_work() as uow:
            result = await detect(uow, tr(NEXT, "01:00", "02:00"), BASEMENT)

        assert result.verdict == ConflictVerdict.double_booked
        assert result.conflicts[0].record_id == approved.id

    @pytest.mark.anyio
    async def test_excluded_request_does_not_conflict_with_itself(self, store):
        approved = make_slot(tr(D, "21:00", "23:00"))
        store.slot_requests[approved.id] = approved

        async with store.unit_of_work() as uow:
            result = await detect(uow, tr(D, "21:00", "23:00"), BASEMENT, exclude_slot_id=approved.id)

        assert result.is_clear

    @pytest.mark.anyio
    async def test_pending_requests_never_conflict(self, store):
        pending = make_slot(tr(D, "21:00", "23:00"), SlotStatus.pending)
        store.slot_requests[pending.id] = pending

        async with store.unit_of_work() as uow:
            result = await detect(uow, tr(D, "21:00", "23:00"), BASEMENT)

        assert result.is_clear

    @pytest.mark.anyio
    async def test_blocks_at_other_venues_are_ignored(self, store):
        block = make_block(D, venue_id="venue-2")
        store.blocks[block.id] = block

        async with store.unit_of_work() as uow:
            result = await detect(uow, tr(D, "21:00", "23:00"), store.venues[VENUE_ID])

        assert result.is_clear
