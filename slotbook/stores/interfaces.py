"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Every read and write goes
through a ``UnitOfWork``: writes become visible together when the unit exits
cleanly and are discarded when it raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import AsyncContextManager, Collection, Optional

from slotbook.domain.models import (
    Event,
    Lifecycle,
    SlotRequest,
    SlotStatus,
    TransitionRecord,
    Venue,
    VenueBlock,
)


class UnitOfWork(ABC):
    """One atomic read-modify-write scope."""

    @abstractmethod
    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        """Return a venue by ID, or None if not found."""
        ...

    @abstractmethod
    async def get_event(self, event_id: str) -> Optional[Event]:
        """Return an event by ID, or None if not found."""
        ...

    @abstractmethod
    async def get_slot_request(self, slot_id: str) -> Optional[SlotRequest]:
        """Return a slot request by ID, or None if not found."""
        ...

    @abstractmethod
    async def get_block(self, block_id: str) -> Optional[VenueBlock]:
        ...

    @abstractmethod
    async def find_active_slot_request(self, event_id: str) -> Optional[SlotRequest]:
        """Return the event's non-terminal slot request, if any."""
        ...

    @abstractmethod
    async def list_blocks(
        self, venue_id: str, start_date: date, end_date: date
    ) -> list[VenueBlock]:
        """Blocks dated within [start_date, end_date], ordered by date."""
        ...

    @abstractmethod
    async def list_slot_requests(
        self,
        venue_id: str,
        start_date: date,
        end_date: date,
        statuses: Optional[Collection[SlotStatus]] = None,
    ) -> list[SlotRequest]:
        """Requests whose requested or alternative date falls in [start_date, end_date]."""
        ...

    @abstractmethod
    async def list_venue_queue(
        self, venue_id: str, statuses: Collection[SlotStatus]
    ) -> list[SlotRequest]:
        """Requests awaiting the venue, oldest first."""
        ...

    @abstractmethod
    async def list_host_slot_requests(self, host_id: str) -> list[SlotRequest]:
        """All of a host's requests, newest first."""
        ...

    @abstractmethod
    async def list_slot_requests_by_status(
        self, statuses: Collection[SlotStatus]
    ) -> list[SlotRequest]:
        ...

    @abstractmethod
    async def list_events_by_lifecycle(
        self, lifecycles: Collection[Lifecycle]
    ) -> list[Event]:
        ...

    @abstractmethod
    async def list_transitions(self, entity_id: str) -> list[TransitionRecord]:
        """Transition log for one entity, oldest first."""
        ...

    @abstractmethod
    async def add_venue(self, venue: Venue) -> None:
        ...

    @abstractmethod
    async def save_venue(self, venue: Venue) -> None:
        ...

    @abstractmethod
    async def add_block(self, block: VenueBlock) -> None:
        ...

    @abstractmethod
    async def delete_block(self, block_id: str) -> None:
        ...

    @abstractmethod
    async def add_event(self, event: Event) -> None:
        ...

    @abstractmethod
    async def save_event(self, event: Event, expected_version: int) -> None:
        """Conditional write; raises StaleState if the stored version differs."""
        ...

    @abstractmethod
    async def add_slot_request(self, slot: SlotRequest) -> None:
        ...

    @abstractmethod
    async def save_slot_request(self, slot: SlotRequest, expected_version: int) -> None:
        """Conditional write; raises StaleState if the stored version differs."""
        ...

    @abstractmethod
    async def record_transition(self, record: TransitionRecord) -> None:
        ...


class SchedulingStore(ABC):
    """Interface for slot coordinator persistence."""

    @abstractmethod
    def unit_of_work(self, *, lock_venue: Optional[str] = None) -> AsyncContextManager[UnitOfWork]:
        """Open an atomic unit; ``lock_venue`` serializes units touching that venue's approvals."""
        ...
