from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Collection, Optional

from slotbook.domain.errors import StaleState
from slotbook.domain.models import (
    ACTIVE_SLOT_STATUSES,
    Event,
    Lifecycle,
    SlotRequest,
    SlotStatus,
    TransitionRecord,
    Venue,
    VenueBlock,
)
from slotbook.stores.interfaces import SchedulingStore, UnitOfWork


class MemorySchedulingStore(SchedulingStore):
    """In-process store with the same atomicity contract as the SQL store.

    Writes are staged per unit of work and applied together, after every
    version check passed, with no suspension point in between.
    """

    def __init__(self) -> None:
        self.venues: dict[str, Venue] = {}
        self.blocks: dict[str, VenueBlock] = {}
        self.events: dict[str, Event] = {}
        self.slot_requests: dict[str, SlotRequest] = {}
        self.transitions: list[TransitionRecord] = []
        self._venue_locks: dict[str, asyncio.Lock] = {}

    def _venue_lock(self, venue_id: str) -> asyncio.Lock:
        lock = self._venue_locks.get(venue_id)
        if lock is None:
            lock = asyncio.Lock()
            self._venue_locks[venue_id] = lock
        return lock

    @asynccontextmanager
    async def unit_of_work(self, *, lock_venue: Optional[str] = None) -> AsyncIterator[UnitOfWork]:
        lock = self._venue_lock(lock_venue) if lock_venue else None
        if lock is not None:
            await lock.acquire()
        try:
            uow = MemoryUnitOfWork(self)
            yield uow
            uow.commit()
        finally:
            if lock is not None:
                lock.release()


async def _io() -> None:
    # Scheduling point standing in for a database round-trip
    await asyncio.sleep(0)


class MemoryUnitOfWork(UnitOfWork):
    def __init__(self, store: MemorySchedulingStore) -> None:
        self._store = store
        self._venues: dict[str, Venue] = {}
        self._blocks: dict[str, VenueBlock] = {}
        self._deleted_blocks: set[str] = set()
        self._events: dict[str, tuple[Event, Optional[int]]] = {}
        self._slots: dict[str, tuple[SlotRequest, Optional[int]]] = {}
        self._records: list[TransitionRecord] = []

    # ── merged views ──────────────────────────────────────────────────────────

    def _all_venues(self) -> dict[str, Venue]:
        return {**self._store.venues, **self._venues}

    def _all_blocks(self) -> dict[str, VenueBlock]:
        merged = {**self._store.blocks, **self._blocks}
        for block_id in self._deleted_blocks:
            merged.pop(block_id, None)
        return merged

    def _all_events(self) -> dict[str, Event]:
        merged = dict(self._store.events)
        merged.update({k: v for k, (v, _) in self._events.items()})
        return merged

    def _all_slots(self) -> dict[str, SlotRequest]:
        merged = dict(self._store.slot_requests)
        merged.update({k: v for k, (v, _) in self._slots.items()})
        return merged

    # ── reads ─────────────────────────────────────────────────────────────────

    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        await _io()
        return self._all_venues().get(venue_id)

    async def get_event(self, event_id: str) -> Optional[Event]:
        await _io()
        return self._all_events().get(event_id)

    async def get_slot_request(self, slot_id: str) -> Optional[SlotRequest]:
        await _io()
        return self._all_slots().get(slot_id)

    async def get_block(self, block_id: str) -> Optional[VenueBlock]:
        await _io()
        return self._all_blocks().get(block_id)

    async def find_active_slot_request(self, event_id: str) -> Optional[SlotRequest]:
        await _io()
        for slot in self._all_slots().values():
            if slot.event_id == event_id and slot.status in ACTIVE_SLOT_STATUSES:
                return slot
        return None

    async def list_blocks(self, venue_id: str, start_date: date, end_date: date) -> list[VenueBlock]:
        await _io()
        blocks = [
            b for b in self._all_blocks().values()
            if b.venue_id == venue_id and start_date <= b.date <= end_date
        ]
        return sorted(blocks, key=lambda b: b.date)

    async def list_slot_requests(
        self,
        venue_id: str,
        start_date: date,
        end_date: date,
        statuses: Optional[Collection[SlotStatus]] = None,
    ) -> list[SlotRequest]:
        await _io()

        def _in_range(slot: SlotRequest) -> bool:
            if start_date <= slot.requested_range.date <= end_date:
                return True
            alt = slot.alternative_range
            return alt is not None and start_date <= alt.date <= end_date

        slots = [
            s for s in self._all_slots().values()
            if s.venue_id == venue_id
            and (statuses is None or s.status in statuses)
            and _in_range(s)
        ]
        return sorted(slots, key=lambda s: s.created_at)

    async def list_venue_queue(self, venue_id: str, statuses: Collection[SlotStatus]) -> list[SlotRequest]:
        await _io()
        slots = [
            s for s in self._all_slots().values()
            if s.venue_id == venue_id and s.status in statuses
        ]
        return sorted(slots, key=lambda s: s.created_at)

    async def list_host_slot_requests(self, host_id: str) -> list[SlotRequest]:
        await _io()
        slots = [s for s in self._all_slots().values() if s.host_id == host_id]
        return sorted(slots, key=lambda s: s.created_at, reverse=True)

    async def list_slot_requests_by_status(self, statuses: Collection[SlotStatus]) -> list[SlotRequest]:
        await _io()
        slots = [s for s in self._all_slots().values() if s.status in statuses]
        return sorted(slots, key=lambda s: s.created_at)

    async def list_events_by_lifecycle(self, lifecycles: Collection[Lifecycle]) -> list[Event]:
        await _io()
        events = [e for e in self._all_events().values() if e.lifecycle in lifecycles]
        return sorted(events, key=lambda e: e.created_at)

    async def list_transitions(self, entity_id: str) -> list[TransitionRecord]:
        await _io()
        records = [r for r in self._store.transitions + self._records if r.entity_id == entity_id]
        return sorted(records, key=lambda r: r.created_at)

    # ── staged writes ─────────────────────────────────────────────────────────

    async def add_venue(self, venue: Venue) -> None:
        self._venues[venue.id] = venue

    async def save_venue(self, venue: Venue) -> None:
        self._venues[venue.id] = venue

    async def add_block(self, block: VenueBlock) -> None:
        self._blocks[block.id] = block
        self._deleted_blocks.discard(block.id)

    async def delete_block(self, block_id: str) -> None:
        self._blocks.pop(block_id, None)
        self._deleted_blocks.add(block_id)

    async def add_event(self, event: Event) -> None:
        self._events[event.id] = (event, None)

    async def save_event(self, event: Event, expected_version: int) -> None:
        staged = self._events.get(event.id)
        if staged is not None and staged[1] is None:
            # Still an insert within this unit
            self._events[event.id] = (event, None)
            return
        original = staged[1] if staged is not None else expected_version
        self._events[event.id] = (event, original)

    async def add_slot_request(self, slot: SlotRequest) -> None:
        self._slots[slot.id] = (slot, None)

    async def save_slot_request(self, slot: SlotRequest, expected_version: int) -> None:
        staged = self._slots.get(slot.id)
        if staged is not None and staged[1] is None:
            self._slots[slot.id] = (slot, None)
            return
        original = staged[1] if staged is not None else expected_version
        self._slots[slot.id] = (slot, original)

    async def record_transition(self, record: TransitionRecord) -> None:
        self._records.append(record)

    # ── commit ────────────────────────────────────────────────────────────────

    def commit(self) -> None:
        store = self._store
        for event_id, (_, expected) in self._events.items():
            current = store.events.get(event_id)
            if expected is None:
                if current is not None:
                    raise StaleState(f"Event {event_id} already exists")
            elif current is None or current.version != expected:
                raise StaleState(f"Event {event_id} was modified concurrently")
        for slot_id, (_, expected) in self._slots.items():
            current = store.slot_requests.get(slot_id)
            if expected is None:
                if current is not None:
                    raise StaleState(f"Slot request {slot_id} already exists")
            elif current is None or current.version != expected:
                raise StaleState(f"Slot request {slot_id} was modified concurrently")

        merged_slots = {**store.slot_requests, **{k: v for k, (v, _) in self._slots.items()}}
        active_events: set[str] = set()
        for slot in merged_slots.values():
            if slot.status in ACTIVE_SLOT_STATUSES:
                if slot.event_id in active_events:
                    raise StaleState(
                        f"Event {slot.event_id} already has an open slot request"
                    )
                active_events.add(slot.event_id)

        store.venues.update(self._venues)
        for block_id in self._deleted_blocks:
            store.blocks.pop(block_id, None)
        store.blocks.update(self._blocks)
        store.events.update({k: v for k, (v, _) in self._events.items()})
        store.slot_requests.update(merged_slots)
        store.transitions.extend(self._records)
