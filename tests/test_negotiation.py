"""Tests for the slot negotiation state machine."""

from datetime import date, datetime, timedelta, timezone

import pytest
from conftest import (
    ADMIN,
    HOST_A,
    HOST_B,
    OTHER_STAFF,
    OTHER_VENUE_ID,
    VENUE_ID,
    VENUE_STAFF,
    make_slot,
    tr,
)

from slotbook.domain.errors import (
    Conflict,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StaleState,
)
from slotbook.domain.models import (
    ACTIVE_SLOT_STATUSES,
    TERMINAL_SLOT_STATUSES,
    Lifecycle,
    SlotAction,
    SlotPriority,
    SlotStatus,
)
from slotbook.services.negotiation import ALLOWED_FROM, COUNTER_CONFLICT_NOTE, apply_action

D = date(2026, 3, 10)
NEXT = D + timedelta(days=1)


async def request_slot(events, negotiation, host, r, **kwargs):
    event = await events.create(host, VENUE_ID, "Late show")
    slot = await negotiation.create(host, event.id, VENUE_ID, r, **kwargs)
    return event, slot


class TestCreate:
    """Opening a request."""

    @pytest.mark.anyio
    async def test_create_opens_pending_request_and_submits_event(self, events, negotiation, store):
        event, slot = await request_slot(
            events, negotiation, HOST_A, tr(D, "21:00", "23:00"),
            notes="Trio, no amps", priority=SlotPriority.high,
        )

        assert slot.status == SlotStatus.pending
        assert slot.notes == "Trio, no amps"
        assert slot.priority == SlotPriority.high
        stored_event = store.events[event.id]
        assert stored_event.lifecycle == Lifecycle.submitted
        assert stored_event.slot_request_id == slot.id

    @pytest.mark.anyio
    async def test_create_logs_and_publishes_transitions(self, events, negotiation, store, publisher):
        event, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))

        logged = [(r.entity_type, r.action) for r in store.transitions if r.entity_id in (event.id, slot.id)]
        assert ("slot_request", "create") in logged
        assert ("event", "submit") in logged
        assert [r.id for r in publisher.published][-2:] == [r.id for r in store.transitions][-2:]

    @pytest.mark.anyio
    async def test_only_the_owner_may_request(self, events, negotiation):
        event = await events.create(HOST_A, VENUE_ID, "Late show")
        with pytest.raises(PermissionDenied):
            await negotiation.create(HOST_B, event.id, VENUE_ID, tr(D, "21:00", "23:00"))

    @pytest.mark.anyio
    async def test_request_must_target_the_events_venue(self, events, negotiation):
        event = await events.create(HOST_A, VENUE_ID, "Late show")
        with pytest.raises(InvalidTransition):
            await negotiation.create(HOST_A, event.id, OTHER_VENUE_ID, tr(D, "19:00", "21:00"))

    @pytest.mark.anyio
    async def test_one_open_request_per_event(self, events, negotiation):
        event, _ = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(InvalidTransition):
            await negotiation.create(HOST_A, event.id, VENUE_ID, tr(NEXT, "21:00", "23:00"))

    @pytest.mark.anyio
    async def test_unknown_event(self, negotiation):
        with pytest.raises(NotFound):
            await negotiation.create(HOST_A, "missing", VENUE_ID, tr(D, "21:00", "23:00"))


class TestVenueDecisions:
    """approve, reject, counter and request_changes."""

    @pytest.mark.anyio
    async def test_approve_schedules_event_with_exact_range(self, events, negotiation, store):
        r = tr(D, "21:00", "04:00")
        event, slot = await request_slot(events, negotiation, HOST_A, r)

        approved = await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.approve)

        assert approved.status == SlotStatus.approved
        assert approved.version == slot.version + 1
        scheduled = store.events[event.id]
        assert scheduled.lifecycle == Lifecycle.scheduled
        assert scheduled.published_range == r

    @pytest.mark.anyio
    async def test_hosts_and_other_venues_cannot_decide(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(PermissionDenied):
            await negotiation.transition(HOST_A, slot.id, SlotAction.approve)
        with pytest.raises(PermissionDenied):
            await negotiation.transition(OTHER_STAFF, slot.id, SlotAction.approve)

    @pytest.mark.anyio
    async def test_admin_acts_for_any_venue(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        approved = await negotiation.transition(ADMIN, slot.id, SlotAction.approve)
        assert approved.status == SlotStatus.approved

    @pytest.mark.anyio
    async def test_reject_requires_notes(self, events, negotiation, store):
        event, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(InvalidTransition):
            await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.reject, notes="  ")

        rejected = await negotiation.transition(
            VENUE_STAFF, slot.id, SlotAction.reject, notes="Private booking that night"
        )
        assert rejected.status == SlotStatus.rejected
        assert rejected.venue_response == "Private booking that night"
        assert store.events[event.id].published_range is None

    @pytest.mark.anyio
    async def test_counter_needs_alternative_range(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(InvalidTransition):
            await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.counter)

    @pytest.mark.anyio
    async def test_accepted_counter_schedules_alternative(self, events, negotiation, store):
        event, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        alternative = tr(NEXT, "20:00", "22:00")

        countered = await negotiation.transition(
            VENUE_STAFF, slot.id, SlotAction.counter, alternative_range=alternative, notes="Tuesday?"
        )
        assert countered.status == SlotStatus.counter_proposed
        assert countered.alternative_range == alternative

        accepted = await negotiation.transition(HOST_A, slot.id, SlotAction.accept_counter)
        assert accepted.status == SlotStatus.approved
        assert accepted.committed_range == alternative
        assert store.events[event.id].published_range == alternative

    @pytest.mark.anyio
    async def test_declined_counter_rejects(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        await negotiation.transition(
            VENUE_STAFF, slot.id, SlotAction.counter, alternative_range=tr(NEXT, "20:00", "22:00")
        )
        with pytest.raises(PermissionDenied):
            await negotiation.transition(HOST_B, slot.id, SlotAction.decline_counter)

        declined = await negotiation.transition(HOST_A, slot.id, SlotAction.decline_counter)
        assert declined.status == SlotStatus.rejected

    @pytest.mark.anyio
    async def test_request_changes_and_resubmit(self, events, negotiation, store, clock):
        event, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))

        with pytest.raises(InvalidTransition):
            await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.request_changes)
        changed = await negotiation.transition(
            VENUE_STAFF, slot.id, SlotAction.request_changes, notes="Start earlier"
        )
        assert changed.status == SlotStatus.needs_changes
        assert store.events[event.id].lifecycle == Lifecycle.draft

        clock.advance(hours=2)
        new_range = tr(D, "19:00", "21:00")
        resubmitted = await negotiation.transition(
            HOST_A, slot.id, SlotAction.resubmit, requested_range=new_range
        )
        assert resubmitted.id == slot.id
        assert resubmitted.status == SlotStatus.pending
        assert resubmitted.requested_range == new_range
        assert resubmitted.created_at == clock.now
        assert store.events[event.id].lifecycle == Lifecycle.submitted
        assert store.events[event.id].proposed_range == new_range


class TestTransitionRules:
    """Illegal moves and optimistic checks."""

    @pytest.mark.anyio
    async def test_terminal_requests_do_not_move(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.approve)

        for action in (SlotAction.approve, SlotAction.counter, SlotAction.request_changes):
            with pytest.raises(InvalidTransition):
                await negotiation.transition(
                    VENUE_STAFF, slot.id, action,
                    notes="x", alternative_range=tr(NEXT, "20:00", "22:00"),
                )

    @pytest.mark.anyio
    async def test_host_cannot_accept_a_pending_request(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(InvalidTransition):
            await negotiation.transition(HOST_A, slot.id, SlotAction.accept_counter)

    @pytest.mark.anyio
    async def test_expected_status_mismatch_is_stale(self, events, negotiation, store):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        with pytest.raises(StaleState):
            await negotiation.transition(
                VENUE_STAFF, slot.id, SlotAction.approve,
                expected_status=SlotStatus.counter_proposed,
            )
        assert store.slot_requests[slot.id].status == SlotStatus.pending

    @pytest.mark.anyio
    async def test_expected_version_mismatch_is_stale(self, events, negotiation):
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        await negotiation.transition(
            VENUE_STAFF, slot.id, SlotAction.counter, alternative_range=tr(NEXT, "20:00", "22:00")
        )
        with pytest.raises(StaleState):
            await negotiation.transition(
                HOST_A, slot.id, SlotAction.accept_counter, expected_version=slot.version
            )

    @pytest.mark.anyio
    async def test_unknown_request(self, negotiation):
        with pytest.raises(NotFound):
            await negotiation.transition(VENUE_STAFF, "missing", SlotAction.approve)


class TestApprovalConflicts:
    """The conflict check runs at commit time."""

    @pytest.mark.anyio
    async def test_overlapping_approval_is_refused_and_nothing_changes(self, events, negotiation, store):
        _, first = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))
        event_b, second = await request_slot(events, negotiation, HOST_B, tr(D, "22:00", "02:00"))
        await negotiation.transition(VENUE_STAFF, first.id, SlotAction.approve)

        with pytest.raises(Conflict) as exc_info:
            await negotiation.transition(VENUE_STAFF, second.id, SlotAction.approve)

        assert [c.record_id for c in exc_info.value.conflicts] == [first.id]
        assert store.slot_requests[second.id].status == SlotStatus.pending
        assert store.events[event_b.id].lifecycle == Lifecycle.submitted

    @pytest.mark.anyio
    async def test_blocked_date_refuses_approval(self, events, negotiation, venues):
        await venues.add_block(VENUE_STAFF, VENUE_ID, D, "Closed")
        _, slot = await request_slot(events, negotiation, HOST_A, tr(D, "21:00", "23:00"))

        with pytest.raises(Conflict) as exc_info:
            await negotiation.transition(VENUE_STAFF, slot.id, SlotAction.approve)
        assert exc_info.value.conflicts[0].kind == "block"

    @pytest.mark.anyio
    async def test_lost_counter_is_settled_as_rejected(self, events, negotiation, store):
        alternative = tr(NEXT, "20:00", "22:00")
        event_b, countered = await request_slot(events, negotiation, HOST_B, tr(D, "22:00", "02:00"))
        await negotiation.transition(
            VENUE_STAFF, countered.id, SlotAction.counter, alternative_range=alternative
        )
        _, rival = await request_slot(events, negotiation, HOST_A, tr(NEXT, "21:00", "23:00"))
        await negotiation.transition(VENUE_STAFF, rival.id, SlotAction.approve)

        with pytest.raises(Conflict) as exc_info:
            await negotiation.transition(HOST_B, countered.id, SlotAction.accept_counter)

        assert exc_info.value.conflicts[0].record_id == rival.id
        settled = store.slot_requests[countered.id]
        assert settled.status == SlotStatus.rejected
        assert settled.venue_response == COUNTER_CONFLICT_NOTE
        assert store.events[event_b.id].published_range is None

        log = [r for r in store.transitions if r.entity_id == countered.id]
        assert log[-1].action == "reject"
        assert log[-1].actor_id == "system"


def legal_actions(status: SlotStatus) -> list[SlotAction]:
    return [action for action, sources in ALLOWED_FROM.items() if status in sources]


def step(slot, action):
    return apply_action(
        slot,
        action,
        datetime(2026, 3, 1, 12, tzinfo=timezone.utc),
        notes="Not this one",
        alternative_range=tr(NEXT, "20:00", "22:00"),
    )


class TestNegotiationTermination:
    """Every open negotiation has a short path to a final answer."""

    def test_final_statuses_accept_no_action(self):
        for status in TERMINAL_SLOT_STATUSES:
            assert legal_actions(status) == []

    @pytest.mark.parametrize("status", sorted(ACTIVE_SLOT_STATUSES, key=lambda s: s.value))
    def test_every_reachable_status_can_still_finish(self, status):
        frontier = [make_slot(tr(D, "21:00", "23:00"), status)]
        seen = {status}
        outcomes = set()
        while frontier:
            slot = frontier.pop()
            actions = legal_actions(slot.status)
            assert actions
            for action in actions:
                nxt = step(slot, action)
                if nxt.status in TERMINAL_SLOT_STATUSES:
                    outcomes.add(nxt.status)
                if nxt.status not in seen and nxt.status not in TERMINAL_SLOT_STATUSES:
                    seen.add(nxt.status)
                    frontier.append(nxt)

        assert seen <= ACTIVE_SLOT_STATUSES
        assert outcomes == TERMINAL_SLOT_STATUSES

    @pytest.mark.parametrize("status", sorted(ACTIVE_SLOT_STATUSES, key=lambda s: s.value))
    @pytest.mark.parametrize(
        "preference, outcome",
        [
            ([SlotAction.reject, SlotAction.decline_counter, SlotAction.resubmit], SlotStatus.rejected),
            ([SlotAction.approve, SlotAction.accept_counter, SlotAction.resubmit], SlotStatus.approved),
        ],
    )
    def test_bounded_chain_ends_decided(self, status, preference, outcome):
        slot = make_slot(tr(D, "21:00", "23:00"), status)
        for _ in range(3):
            if slot.status in TERMINAL_SLOT_STATUSES:
                break
            action = next(a for a in preference if a in legal_actions(slot.status))
            slot = step(slot, action)

        assert slot.status == outcome
        assert slot.version <= 3
