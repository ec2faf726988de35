"""PostgreSQL-backed store using SQLAlchemy async sessions.

One unit of work is one transaction. Approval units lock the venue row
(``SELECT ... FOR UPDATE``) so conflict checks and status flips for the same
venue never interleave; slot request and event writes are conditional on the
version that was read.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Collection, Optional

from sqlalchemy import and_, delete, or_, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotbook.domain.errors import StaleState, TransientStorageError
from slotbook.domain.intervals import TimeRange
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
from slotbook.models.event import Event as EventRow
from slotbook.models.slot_request import SlotRequest as SlotRequestRow
from slotbook.models.transition_log import TransitionLog
from slotbook.models.venue import Venue as VenueRow
from slotbook.models.venue_block import VenueBlock as VenueBlockRow
from slotbook.stores.interfaces import SchedulingStore, UnitOfWork

logger = logging.getLogger(__name__)


# ── Row ↔ domain helpers ──────────────────────────────────────────────────────

def _range(day, start, end) -> Optional[TimeRange]:
    if day is None or start is None or end is None:
        return None
    return TimeRange(date=day, start=start, end=end)


def _range_values(prefix: str, r: Optional[TimeRange]) -> dict:
    return {
        f"{prefix}_date":  r.date if r else None,
        f"{prefix}_start": r.start if r else None,
        f"{prefix}_end":   r.end if r else None,
    }


def _venue(row: VenueRow) -> Venue:
    return Venue(
        id=row.id,
        name=row.name,
        timezone=row.timezone,
        operating_start=row.operating_start,
        operating_end=row.operating_end,
        requires_slot_negotiation=row.requires_slot_negotiation,
        is_active=row.is_active,
        created_at=row.created_at,
    )


def _block(row: VenueBlockRow) -> VenueBlock:
    return VenueBlock(
        id=row.id,
        venue_id=row.venue_id,
        date=row.block_date,
        reason=row.reason,
        range=_range(row.block_date, row.start_time, row.end_time),
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _event(row: EventRow) -> Event:
    return Event(
        id=row.id,
        host_id=row.host_id,
        venue_id=row.venue_id,
        title=row.title,
        lifecycle=row.lifecycle,
        created_at=row.created_at,
        proposed_range=_range(row.proposed_date, row.proposed_start, row.proposed_end),
        published_range=_range(row.published_date, row.published_start, row.published_end),
        slot_request_id=row.slot_request_id,
        is_paused=row.is_paused,
        updated_at=row.updated_at,
        version=row.version,
    )


def _event_values(event: Event) -> dict:
    return {
        "host_id":         event.host_id,
        "venue_id":        event.venue_id,
        "title":           event.title,
        "lifecycle":       event.lifecycle,
        "slot_request_id": event.slot_request_id,
        "is_paused":       event.is_paused,
        "version":         event.version,
        "created_at":      event.created_at,
        "updated_at":      event.updated_at or event.created_at,
        **_range_values("proposed", event.proposed_range),
        **_range_values("published", event.published_range),
    }


def _slot(row: SlotRequestRow) -> SlotRequest:
    return SlotRequest(
        id=row.id,
        event_id=row.event_id,
        host_id=row.host_id,
        venue_id=row.venue_id,
        requested_range=TimeRange(
            date=row.requested_date, start=row.requested_start, end=row.requested_end
        ),
        status=row.status,
        created_at=row.created_at,
        notes=row.notes,
        venue_response=row.venue_response,
        alternative_range=_range(row.alternative_date, row.alternative_start, row.alternative_end),
        priority=row.priority,
        responded_at=row.responded_at,
        updated_at=row.updated_at,
        released_at=row.released_at,
        version=row.version,
    )


def _slot_values(slot: SlotRequest) -> dict:
    return {
        "event_id":       slot.event_id,
        "host_id":        slot.host_id,
        "venue_id":       slot.venue_id,
        "status":         slot.status,
        "priority":       slot.priority,
        "notes":          slot.notes,
        "venue_response": slot.venue_response,
        "version":        slot.version,
        "created_at":     slot.created_at,
        "responded_at":   slot.responded_at,
        "updated_at":     slot.updated_at,
        "released_at":    slot.released_at,
        **_range_values("requested", slot.requested_range),
        **_range_values("alternative", slot.alternative_range),
    }


# ── Store ─────────────────────────────────────────────────────────────────────

class SqlSchedulingStore(SchedulingStore):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    @asynccontextmanager
    async def unit_of_work(self, *, lock_venue: Optional[str] = None) -> AsyncIterator[UnitOfWork]:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    if lock_venue is not None:
                        await session.execute(
                            select(VenueRow.id).where(VenueRow.id == lock_venue).with_for_update()
                        )
                    yield SqlUnitOfWork(session)
        except (OperationalError, InterfaceError, TimeoutError) as exc:
            logger.warning("Storage unavailable: %s", exc)
            raise TransientStorageError(str(exc)) from exc


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── reads ─────────────────────────────────────────────────────────────────

    async def get_venue(self, venue_id: str) -> Optional[Venue]:
        row = await self._session.get(VenueRow, venue_id)
        return _venue(row) if row else None

    async def get_event(self, event_id: str) -> Optional[Event]:
        r = await self._session.execute(select(EventRow).where(EventRow.id == event_id))
        row = r.scalar_one_or_none()
        return _event(row) if row else None

    async def get_slot_request(self, slot_id: str) -> Optional[SlotRequest]:
        r = await self._session.execute(select(SlotRequestRow).where(SlotRequestRow.id == slot_id))
        row = r.scalar_one_or_none()
        return _slot(row) if row else None

    async def get_block(self, block_id: str) -> Optional[VenueBlock]:
        row = await self._session.get(VenueBlockRow, block_id)
        return _block(row) if row else None

    async def find_active_slot_request(self, event_id: str) -> Optional[SlotRequest]:
        r = await self._session.execute(
            select(SlotRequestRow).where(
                SlotRequestRow.event_id == event_id,
                SlotRequestRow.status.in_(ACTIVE_SLOT_STATUSES),
            )
        )
        row = r.scalars().first()
        return _slot(row) if row else None

    async def list_blocks(self, venue_id: str, start_date: date, end_date: date) -> list[VenueBlock]:
        r = await self._session.execute(
            select(VenueBlockRow)
            .where(
                VenueBlockRow.venue_id == venue_id,
                VenueBlockRow.block_date >= start_date,
                VenueBlockRow.block_date <= end_date,
            )
            .order_by(VenueBlockRow.block_date)
        )
        return [_block(row) for row in r.scalars().all()]

    async def list_slot_requests(
        self,
        venue_id: str,
        start_date: date,
        end_date: date,
        statuses: Optional[Collection[SlotStatus]] = None,
    ) -> list[SlotRequest]:
        query = select(SlotRequestRow).where(
            SlotRequestRow.venue_id == venue_id,
            or_(
                and_(
                    SlotRequestRow.requested_date >= start_date,
                    SlotRequestRow.requested_date <= end_date,
                ),
                and_(
                    SlotRequestRow.alternative_date >= start_date,
                    SlotRequestRow.alternative_date <= end_date,
                ),
            ),
        )
        if statuses is not None:
            query = query.where(SlotRequestRow.status.in_(list(statuses)))
        r = await self._session.execute(query.order_by(SlotRequestRow.created_at))
        return [_slot(row) for row in r.scalars().all()]

    async def list_venue_queue(self, venue_id: str, statuses: Collection[SlotStatus]) -> list[SlotRequest]:
        r = await self._session.execute(
            select(SlotRequestRow)
            .where(
                SlotRequestRow.venue_id == venue_id,
                SlotRequestRow.status.in_(list(statuses)),
            )
            .order_by(SlotRequestRow.created_at)
        )
        return [_slot(row) for row in r.scalars().all()]

    async def list_host_slot_requests(self, host_id: str) -> list[SlotRequest]:
        r = await self._session.execute(
            select(SlotRequestRow)
            .where(SlotRequestRow.host_id == host_id)
            .order_by(SlotRequestRow.created_at.desc())
        )
        return [_slot(row) for row in r.scalars().all()]

    async def list_slot_requests_by_status(self, statuses: Collection[SlotStatus]) -> list[SlotRequest]:
        r = await self._session.execute(
            select(SlotRequestRow)
            .where(SlotRequestRow.status.in_(list(statuses)))
            .order_by(SlotRequestRow.created_at)
        )
        return [_slot(row) for row in r.scalars().all()]

    async def list_events_by_lifecycle(self, lifecycles: Collection[Lifecycle]) -> list[Event]:
        r = await self._session.execute(
            select(EventRow)
            .where(EventRow.lifecycle.in_(list(lifecycles)))
            .order_by(EventRow.created_at)
        )
        return [_event(row) for row in r.scalars().all()]

    async def list_transitions(self, entity_id: str) -> list[TransitionRecord]:
        r = await self._session.execute(
            select(TransitionLog)
            .where(TransitionLog.entity_id == entity_id)
            .order_by(TransitionLog.created_at)
        )
        return [
            TransitionRecord(
                id=row.id,
                entity_type=row.entity_type,
                entity_id=row.entity_id,
                action=row.action,
                actor_id=row.actor_id,
                actor_role=row.actor_role,
                reason=row.reason,
                before=row.before,
                after=row.after,
                created_at=row.created_at,
                venue_id=row.venue_id,
            )
            for row in r.scalars().all()
        ]

    # ── writes ────────────────────────────────────────────────────────────────

    async def add_venue(self, venue: Venue) -> None:
        self._session.add(
            VenueRow(
                id=venue.id,
                name=venue.name,
                timezone=venue.timezone,
                operating_start=venue.operating_start,
                operating_end=venue.operating_end,
                requires_slot_negotiation=venue.requires_slot_negotiation,
                is_active=venue.is_active,
            )
        )
        await self._session.flush()

    async def save_venue(self, venue: Venue) -> None:
        await self._session.execute(
            update(VenueRow)
            .where(VenueRow.id == venue.id)
            .values(
                name=venue.name,
                timezone=venue.timezone,
                operating_start=venue.operating_start,
                operating_end=venue.operating_end,
                requires_slot_negotiation=venue.requires_slot_negotiation,
                is_active=venue.is_active,
            )
        )

    async def add_block(self, block: VenueBlock) -> None:
        self._session.add(
            VenueBlockRow(
                id=block.id,
                venue_id=block.venue_id,
                block_date=block.date,
                reason=block.reason,
                start_time=block.range.start if block.range else None,
                end_time=block.range.end if block.range else None,
                created_by=block.created_by,
            )
        )
        await self._session.flush()

    async def delete_block(self, block_id: str) -> None:
        await self._session.execute(delete(VenueBlockRow).where(VenueBlockRow.id == block_id))

    async def add_event(self, event: Event) -> None:
        self._session.add(EventRow(id=event.id, **_event_values(event)))
        await self._session.flush()

    async def save_event(self, event: Event, expected_version: int) -> None:
        result = await self._session.execute(
            update(EventRow)
            .where(EventRow.id == event.id, EventRow.version == expected_version)
            .values(**_event_values(event))
        )
        if result.rowcount == 0:
            raise StaleState(f"Event {event.id} was modified concurrently")

    async def add_slot_request(self, slot: SlotRequest) -> None:
        self._session.add(SlotRequestRow(id=slot.id, **_slot_values(slot)))
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise StaleState(f"Event {slot.event_id} already has an open slot request") from exc

    async def save_slot_request(self, slot: SlotRequest, expected_version: int) -> None:
        try:
            result = await self._session.execute(
                update(SlotRequestRow)
                .where(SlotRequestRow.id == slot.id, SlotRequestRow.version == expected_version)
                .values(**_slot_values(slot))
            )
        except IntegrityError as exc:
            raise StaleState(f"Event {slot.event_id} already has an open slot request") from exc
        if result.rowcount == 0:
            raise StaleState(f"Slot request {slot.id} was modified concurrently")

    async def record_transition(self, record: TransitionRecord) -> None:
        self._session.add(
            TransitionLog(
                id=record.id,
                entity_type=record.entity_type,
                entity_id=record.entity_id,
                venue_id=record.venue_id,
                action=record.action,
                actor_id=record.actor_id,
                actor_role=record.actor_role,
                reason=record.reason,
                before=record.before,
                after=record.after,
                created_at=record.created_at,
            )
        )
