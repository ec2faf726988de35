"""Tests for event lifecycle actions and the time sweep."""

from dataclasses import replace
from datetime import date, datetime, time, timedelta, timezone

import pytest
from conftest import (
    ADMIN,
    HOST_A,
    HOST_B,
    OTHER_STAFF,
    OTHER_VENUE_ID,
    VENUE_ID,
    VENUE_STAFF,
    tr,
)

from slotbook.domain.errors import InvalidTransition, PermissionDenied, StaleState
from slotbook.domain.models import EventAction, Lifecycle, SlotAction, SlotStatus, Venue
from slotbook.services.events import venue_local_now
from slotbook.stores.memory_store import MemoryUnitOfWork

D = date(2026, 3, 10)
NEXT = D + timedelta(days=1)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


async def submitted_event(events, host=HOST_A, r=None, venue_id=VENUE_ID):
    event = await events.create(host, venue_id, "Open mic", r or tr(D, "21:00", "23:00"))
    return await events.transition(host, event.id, EventAction.submit)


async def scheduled_event(events, r=None):
    event = await submitted_event(events, r=r)
    return await events.transition(VENUE_STAFF, event.id, EventAction.approve)


class TestDrafts:
    """Creating and editing drafts."""

    @pytest.mark.anyio
    async def test_only_hosts_create_events(self, events):
        with pytest.raises(PermissionDenied):
            await events.create(VENUE_STAFF, VENUE_ID, "Open mic")

    @pytest.mark.anyio
    async def test_title_is_required(self, events):
        with pytest.raises(InvalidTransition):
            await events.create(HOST_A, VENUE_ID, "   ")

    @pytest.mark.anyio
    async def test_edit_draft(self, events):
        event = await events.create(HOST_A, VENUE_ID, "Open mic")
        edited = await events.update(
            HOST_A, event.id, title="Open mic night", proposed_range=tr(D, "20:00", "22:00"),
            expected_version=event.version,
        )
        assert edited.title == "Open mic night"
        assert edited.proposed_range == tr(D, "20:00", "22:00")
        assert edited.version == event.version + 1

    @pytest.mark.anyio
    async def test_edit_with_old_version_is_stale(self, events):
        event = await events.create(HOST_A, VENUE_ID, "Open mic")
        await events.update(HOST_A, event.id, title="Second title")
        with pytest.raises(StaleState):
            await events.update(HOST_A, event.id, title="Third title", expected_version=event.version)

    @pytest.mark.anyio
    async def test_submitted_events_are_not_editable(self, events):
        event = await submitted_event(events)
        with pytest.raises(InvalidTransition):
            await events.update(HOST_A, event.id, title="Renamed")

    @pytest.mark.anyio
    async def test_other_hosts_cannot_edit(self, events):
        event = await events.create(HOST_A, VENUE_ID, "Open mic")
        with pytest.raises(PermissionDenied):
            await events.update(HOST_B, event.id, title="Mine now")


class TestSubmit:
    """Submission opens the negotiation where the venue requires one."""

    @pytest.mark.anyio
    async def test_submit_opens_request_from_proposed_time(self, events, store):
        event = await submitted_event(events)

        assert event.lifecycle == Lifecycle.submitted
        slot = store.slot_requests[event.slot_request_id]
        assert slot.status == SlotStatus.pending
        assert slot.requested_range == tr(D, "21:00", "23:00")

    @pytest.mark.anyio
    async def test_submit_without_proposed_time_is_refused(self, events):
        event = await events.create(HOST_A, VENUE_ID, "Open mic")
        with pytest.raises(InvalidTransition):
            await events.transition(HOST_A, event.id, EventAction.submit)

    @pytest.mark.anyio
    async def test_resubmitting_a_submitted_event_changes_nothing(self, events, store):
        event = await submitted_event(events)
        again = await events.transition(HOST_A, event.id, EventAction.submit)
        assert again.version == event.version
        assert len(store.slot_requests) == 1

    @pytest.mark.anyio
    async def test_submit_after_requested_changes_resubmits_the_request(self, events, negotiation, store):
        event = await submitted_event(events)
        await negotiation.transition(
            VENUE_STAFF, event.slot_request_id, SlotAction.request_changes, notes="Too late"
        )
        await events.update(HOST_A, event.id, proposed_range=tr(D, "19:00", "21:00"))

        resubmitted = await events.transition(HOST_A, event.id, EventAction.submit)

        assert resubmitted.lifecycle == Lifecycle.submitted
        slot = store.slot_requests[event.slot_request_id]
        assert slot.status == SlotStatus.pending
        assert slot.requested_range == tr(D, "19:00", "21:00")

    @pytest.mark.anyio
    async def test_submit_without_negotiation_opens_no_request(self, events, store):
        event = await submitted_event(events, r=tr(D, "19:00", "21:00"), venue_id=OTHER_VENUE_ID)
        assert event.lifecycle == Lifecycle.submitted
        assert event.slot_request_id is None
        assert store.slot_requests == {}


class TestApprove:
    """Venue approval of a submitted event."""

    @pytest.mark.anyio
    async def test_approve_commits_the_pending_request(self, events, store):
        event = await scheduled_event(events)

        assert event.lifecycle == Lifecycle.scheduled
        assert event.published_range == tr(D, "21:00", "23:00")
        assert store.slot_requests[event.slot_request_id].status == SlotStatus.approved

    @pytest.mark.anyio
    async def test_direct_approval_materializes_an_approved_request(self, events, store):
        event = await submitted_event(events, r=tr(D, "19:00", "21:00"), venue_id=OTHER_VENUE_ID)
        scheduled = await events.transition(OTHER_STAFF, event.id, EventAction.approve)

        assert scheduled.lifecycle == Lifecycle.scheduled
        slot = store.slot_requests[scheduled.slot_request_id]
        assert slot.status == SlotStatus.approved
        assert slot.requested_range == tr(D, "19:00", "21:00")

    @pytest.mark.anyio
    async def test_approval_without_a_time_leaves_event_unscheduled(self, events):
        event = await events.create(HOST_A, OTHER_VENUE_ID, "Poetry")
        await events.transition(HOST_A, event.id, EventAction.submit)
        approved = await events.transition(OTHER_STAFF, event.id, EventAction.approve)
        assert approved.lifecycle == Lifecycle.approved
        assert approved.published_range is None

    @pytest.mark.anyio
    async def test_open_counter_proposal_blocks_approval(self, events, negotiation):
        event = await submitted_event(events)
        await negotiation.transition(
            VENUE_STAFF, event.slot_request_id, SlotAction.counter,
            alternative_range=tr(NEXT, "21:00", "23:00"),
        )
        with pytest.raises(InvalidTransition):
            await events.transition(VENUE_STAFF, event.id, EventAction.approve)

    @pytest.mark.anyio
    async def test_drafts_cannot_be_approved(self, events):
        event = await events.create(HOST_A, VENUE_ID, "Open mic", tr(D, "21:00", "23:00"))
        with pytest.raises(InvalidTransition):
            await events.transition(VENUE_STAFF, event.id, EventAction.approve)

    @pytest.mark.anyio
    async def test_hosts_cannot_approve(self, events):
        event = await submitted_event(events)
        with pytest.raises(PermissionDenied):
            await events.transition(HOST_A, event.id, EventAction.approve)


class TestDenyAndCancel:
    """Ending an event settles its slot request in the same unit."""

    @pytest.mark.anyio
    async def test_deny_rejects_the_open_request(self, events, store):
        event = await submitted_event(events)
        denied = await events.transition(VENUE_STAFF, event.id, EventAction.deny, "Not our genre")

        assert denied.lifecycle == Lifecycle.cancelled
        slot = store.slot_requests[event.slot_request_id]
        assert slot.status == SlotStatus.rejected
        assert slot.venue_response == "Not our genre"

    @pytest.mark.anyio
    async def test_cancel_releases_the_approved_time(self, events, negotiation, store):
        event = await scheduled_event(events)
        cancelled = await events.transition(HOST_A, event.id, EventAction.cancel)

        assert cancelled.lifecycle == Lifecycle.cancelled
        released = store.slot_requests[event.slot_request_id]
        assert released.status == SlotStatus.approved
        assert released.released_at is not None

        other = await submitted_event(events, host=HOST_B)
        rebooked = await events.transition(VENUE_STAFF, other.id, EventAction.approve)
        assert rebooked.lifecycle == Lifecycle.scheduled

    @pytest.mark.anyio
    async def test_venue_staff_may_cancel(self, events):
        event = await scheduled_event(events)
        cancelled = await events.transition(VENUE_STAFF, event.id, EventAction.cancel)
        assert cancelled.lifecycle == Lifecycle.cancelled

    @pytest.mark.anyio
    async def test_other_hosts_cannot_cancel(self, events):
        event = await scheduled_event(events)
        with pytest.raises(PermissionDenied):
            await events.transition(HOST_B, event.id, EventAction.cancel)

    @pytest.mark.anyio
    async def test_cancelled_is_final(self, events):
        event = await submitted_event(events)
        await events.transition(HOST_A, event.id, EventAction.cancel)
        with pytest.raises(InvalidTransition):
            await events.transition(HOST_A, event.id, EventAction.cancel)

    @pytest.mark.anyio
    async def test_failed_write_leaves_no_partial_state(self, events, store, monkeypatch):
        event = await scheduled_event(events)
        logged = len(store.transitions)

        async def failing_save_event(self, event, expected_version):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(MemoryUnitOfWork, "save_event", failing_save_event)
        with pytest.raises(RuntimeError):
            await events.transition(HOST_A, event.id, EventAction.cancel)

        assert store.events[event.id].lifecycle == Lifecycle.scheduled
        assert store.slot_requests[event.slot_request_id].released_at is None
        assert len(store.transitions) == logged


class TestPauseAndLock:
    """Sales pauses and post-event locking."""

    @pytest.mark.anyio
    async def test_pause_and_resume(self, events):
        event = await scheduled_event(events)

        paused = await events.transition(HOST_A, event.id, EventAction.pause)
        assert paused.is_paused
        assert paused.display_state == Lifecycle.paused
        assert paused.lifecycle == Lifecycle.scheduled
        with pytest.raises(InvalidTransition):
            await events.transition(HOST_A, event.id, EventAction.pause)

        resumed = await events.transition(HOST_A, event.id, EventAction.resume)
        assert resumed.display_state == Lifecycle.scheduled

    @pytest.mark.anyio
    async def test_unscheduled_events_cannot_pause(self, events):
        event = await submitted_event(events)
        with pytest.raises(InvalidTransition):
            await events.transition(HOST_A, event.id, EventAction.pause)

    @pytest.mark.anyio
    async def test_lock_requires_completion(self, events):
        event = await scheduled_event(events)
        with pytest.raises(InvalidTransition):
            await events.transition(VENUE_STAFF, event.id, EventAction.lock)


class TestSweep:
    """Time-driven scheduled -> live -> completed."""

    @pytest.mark.anyio
    async def test_goes_live_then_completes_after_grace(self, events, store):
        event = await scheduled_event(events)

        assert await events.sweep(utc(2026, 3, 10, 20, 59)) == []

        went_live = await events.sweep(utc(2026, 3, 10, 21, 0))
        assert [r.action for r in went_live] == ["go_live"]
        assert store.events[event.id].lifecycle == Lifecycle.live

        # Ends 23:00, grace is an hour
        assert await events.sweep(utc(2026, 3, 10, 23, 59)) == []

        completed = await events.sweep(utc(2026, 3, 11, 0, 0))
        assert [r.action for r in completed] == ["complete"]
        assert store.events[event.id].lifecycle == Lifecycle.completed

        locked = await events.transition(VENUE_STAFF, event.id, EventAction.lock)
        assert locked.lifecycle == Lifecycle.locked

    @pytest.mark.anyio
    async def test_missed_window_applies_both_steps(self, events, store):
        event = await scheduled_event(events)
        records = await events.sweep(utc(2026, 3, 11, 6, 0))

        assert [r.action for r in records] == ["go_live", "complete"]
        assert all(r.actor_id == "system" for r in records)
        assert store.events[event.id].lifecycle == Lifecycle.completed
        assert store.events[event.id].version == event.version + 2

    @pytest.mark.anyio
    async def test_completion_clears_pause(self, events, store):
        event = await scheduled_event(events)
        await events.transition(HOST_A, event.id, EventAction.pause)
        await events.sweep(utc(2026, 3, 11, 6, 0))
        assert store.events[event.id].is_paused is False

        with pytest.raises(InvalidTransition):
            await events.transition(HOST_A, event.id, EventAction.pause)

    @pytest.mark.anyio
    async def test_cancelled_events_are_not_swept(self, events):
        event = await scheduled_event(events)
        await events.transition(HOST_A, event.id, EventAction.cancel)
        assert await events.sweep(utc(2026, 3, 11, 6, 0)) == []

    @pytest.mark.anyio
    async def test_uses_venue_local_time(self, events, store):
        store.venues["venue-ny"] = Venue(
            id="venue-ny",
            name="Lower East",
            timezone="America/New_York",
            operating_start=time(17, 0),
            operating_end=time(3, 0),
            requires_slot_negotiation=False,
        )
        event = await submitted_event(events, r=tr(D, "20:00", "22:00"), venue_id="venue-ny")
        await events.transition(ADMIN, event.id, EventAction.approve)

        # 20:00 in New York on 2026-03-10 is 00:00 UTC the next day (EDT)
        assert await events.sweep(utc(2026, 3, 10, 23, 30)) == []
        records = await events.sweep(utc(2026, 3, 11, 0, 30))
        assert [r.action for r in records] == ["go_live"]

    def test_venue_local_now(self, store):
        venue = replace(store.venues[VENUE_ID], timezone="America/New_York")
        assert venue_local_now(venue, utc(2026, 3, 11, 0, 30)) == datetime(2026, 3, 10, 20, 30)

    @pytest.mark.anyio
    async def test_concurrently_moved_event_is_skipped(self, events, store, monkeypatch):
        event = await scheduled_event(events)
        commit = MemoryUnitOfWork.commit

        def racing_commit(uow):
            for event_id in uow._events:
                current = store.events[event_id]
                store.events[event_id] = replace(current, version=current.version + 1)
            commit(uow)

        monkeypatch.setattr(MemoryUnitOfWork, "commit", racing_commit)
        assert await events.sweep(utc(2026, 3, 10, 21, 30)) == []
        assert store.events[event.id].lifecycle == Lifecycle.scheduled

    @pytest.mark.anyio
    async def test_failing_event_does_not_stop_the_pass(self, events, store):
        orphan = await scheduled_event(events)
        healthy = await scheduled_event(events, r=tr(D, "23:30", "01:00"))
        store.events[orphan.id] = replace(store.events[orphan.id], venue_id="venue-gone")

        records = await events.sweep(utc(2026, 3, 11, 6, 0))

        assert {r.entity_id for r in records} == {healthy.id}
        assert [r.action for r in records] == ["go_live", "complete"]
        assert store.events[orphan.id].lifecycle == Lifecycle.scheduled
        assert store.events[healthy.id].lifecycle == Lifecycle.completed
