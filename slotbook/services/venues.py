from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import date, datetime, time
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotbook.core.config import settings
from slotbook.domain.errors import InvalidRange, NotFound
from slotbook.domain.intervals import TimeRange
from slotbook.domain.models import Actor, TransitionRecord, Venue, VenueBlock
from slotbook.services.access import require_admin, require_venue_staff, utcnow
from slotbook.services.audit import TransitionPublisher, transition_record, write_records
from slotbook.services.negotiation import require_venue
from slotbook.stores.interfaces import SchedulingStore

logger = logging.getLogger(__name__)


def _check_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidRange(f"Unknown timezone '{name}'") from exc
    return name


def _venue_snapshot(venue: Venue) -> dict:
    return {
        "name":                      venue.name,
        "timezone":                  venue.timezone,
        "operating_start":           f"{venue.operating_start:%H:%M}",
        "operating_end":             f"{venue.operating_end:%H:%M}",
        "requires_slot_negotiation": venue.requires_slot_negotiation,
        "is_active":                 venue.is_active,
    }


def _block_snapshot(block: VenueBlock) -> dict:
    snapshot = {"date": block.date.isoformat(), "reason": block.reason, "full_day": block.is_full_day}
    if block.range is not None:
        snapshot["start"] = f"{block.range.start:%H:%M}"
        snapshot["end"] = f"{block.range.end:%H:%M}"
    return snapshot


class VenueService:
    """Venue settings and venue-authored blocks."""

    def __init__(
        self,
        store: SchedulingStore,
        publisher: Optional[TransitionPublisher] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._publisher = publisher or TransitionPublisher()
        self._clock = clock

    async def create(
        self,
        actor: Actor,
        name: str,
        *,
        timezone: Optional[str] = None,
        operating_start: Optional[time] = None,
        operating_end: Optional[time] = None,
        requires_slot_negotiation: bool = True,
        venue_id: Optional[str] = None,
    ) -> Venue:
        require_admin(actor)
        now = self._clock()
        venue = Venue(
            id=venue_id or str(uuid.uuid4()),
            name=name.strip(),
            timezone=_check_timezone(timezone or settings.DEFAULT_TIMEZONE),
            operating_start=operating_start or settings.DEFAULT_OPERATING_START,
            operating_end=operating_end or settings.DEFAULT_OPERATING_END,
            requires_slot_negotiation=requires_slot_negotiation,
            created_at=now,
        )
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work() as uow:
            await uow.add_venue(venue)
            records.append(
                transition_record(
                    entity_type="venue", entity_id=venue.id, action="create", actor=actor,
                    reason="", before={}, after=_venue_snapshot(venue), now=now, venue_id=venue.id,
                )
            )
            await write_records(uow, records)
        logger.info("Venue created: %s", venue.name, extra={"venue_id": venue.id, "actor": actor.id})
        await self._publisher.after_commit(records)
        return venue

    async def update(self, actor: Actor, venue_id: str, **changes) -> Venue:
        require_venue_staff(actor, venue_id)
        changes = {k: v for k, v in changes.items() if v is not None}
        if "timezone" in changes:
            _check_timezone(changes["timezone"])

        now = self._clock()
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work(lock_venue=venue_id) as uow:
            venue = await require_venue(uow, venue_id)
            if not changes:
                return venue
            updated = replace(venue, **changes)
            await uow.save_venue(updated)
            records.append(
                transition_record(
                    entity_type="venue", entity_id=venue.id, action="update", actor=actor,
                    reason="", before=_venue_snapshot(venue), after=_venue_snapshot(updated),
                    now=now, venue_id=venue.id,
                )
            )
            await write_records(uow, records)
        await self._publisher.after_commit(records)
        return updated

    async def add_block(
        self,
        actor: Actor,
        venue_id: str,
        day: date,
        reason: str,
        block_range: Optional[TimeRange] = None,
    ) -> VenueBlock:
        require_venue_staff(actor, venue_id)
        if block_range is not None and block_range.date != day:
            raise InvalidRange("Block range must be anchored on the block date")

        now = self._clock()
        block = VenueBlock(
            id=str(uuid.uuid4()),
            venue_id=venue_id,
            date=day,
            reason=(reason or "").strip(),
            range=block_range,
            created_by=actor.id,
            created_at=now,
        )
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work(lock_venue=venue_id) as uow:
            await require_venue(uow, venue_id)
            await uow.add_block(block)
            records.append(
                transition_record(
                    entity_type="venue_block", entity_id=block.id, action="create", actor=actor,
                    reason=block.reason, before={}, after=_block_snapshot(block),
                    now=now, venue_id=venue_id,
                )
            )
            await write_records(uow, records)
        logger.info(
            "Venue block added on %s", day.isoformat(),
            extra={"venue_id": venue_id, "action": "block", "actor": actor.id},
        )
        await self._publisher.after_commit(records)
        return block

    async def delete_block(self, actor: Actor, venue_id: str, block_id: str) -> None:
        require_venue_staff(actor, venue_id)
        now = self._clock()
        records: list[TransitionRecord] = []
        async with self._store.unit_of_work(lock_venue=venue_id) as uow:
            block = await uow.get_block(block_id)
            if block is None or block.venue_id != venue_id:
                raise NotFound("Venue block", block_id)
            await uow.delete_block(block_id)
            records.append(
                transition_record(
                    entity_type="venue_block", entity_id=block.id, action="delete", actor=actor,
                    reason="", before=_block_snapshot(block), after={},
                    now=now, venue_id=venue_id,
                )
            )
            await write_records(uow, records)
        await self._publisher.after_commit(records)
