from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Query

from slotbook.core.deps import (
    get_current_actor,
    get_current_admin,
    get_optional_actor,
    get_projection_service,
    get_venue_service,
)
from slotbook.domain.models import Actor, Role
from slotbook.schemas.calendar import AvailabilitySegmentRead, CalendarDayRead
from slotbook.schemas.slot import SlotRead
from slotbook.schemas.venue import (
    VenueBlockCreate,
    VenueBlockRead,
    VenueCreate,
    VenueRead,
    VenueUpdate,
)
from slotbook.services.cache import availability_cache, calendar_cache, venue_generation
from slotbook.services.projections import ProjectionService
from slotbook.services.venues import VenueService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/venues", tags=["venues"])


# ── Venue settings ────────────────────────────────────────────────────────────

@router.post("", response_model=VenueRead, status_code=201)
async def create_venue(
    payload: VenueCreate,
    admin: Actor = Depends(get_current_admin),
    venues: VenueService = Depends(get_venue_service),
):
    venue = await venues.create(
        admin,
        payload.name,
        timezone=payload.timezone,
        operating_start=payload.operating_start,
        operating_end=payload.operating_end,
        requires_slot_negotiation=payload.requires_slot_negotiation,
        venue_id=payload.id,
    )
    return VenueRead.model_validate(venue)


@router.get("/{venue_id}", response_model=VenueRead)
async def get_venue(
    venue_id: str,
    projections: ProjectionService = Depends(get_projection_service),
):
    return VenueRead.model_validate(await projections.venue(venue_id))


@router.patch("/{venue_id}", response_model=VenueRead)
async def update_venue(
    venue_id: str,
    payload: VenueUpdate,
    actor: Actor = Depends(get_current_actor),
    venues: VenueService = Depends(get_venue_service),
):
    """Window, timezone and negotiation settings. Venue staff only."""
    venue = await venues.update(actor, venue_id, **payload.model_dump(exclude_unset=True))
    return VenueRead.model_validate(venue)


# ── Blocks ────────────────────────────────────────────────────────────────────

@router.post("/{venue_id}/blocks", response_model=VenueBlockRead, status_code=201)
async def add_block(
    venue_id: str,
    payload: VenueBlockCreate,
    actor: Actor = Depends(get_current_actor),
    venues: VenueService = Depends(get_venue_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    block = await venues.add_block(actor, venue_id, payload.date, payload.reason, payload.to_range())
    venue = await projections.venue(venue_id)
    return VenueBlockRead.from_domain(block, venue)


@router.delete("/{venue_id}/blocks/{block_id}", status_code=204)
async def delete_block(
    venue_id: str,
    block_id: str,
    actor: Actor = Depends(get_current_actor),
    venues: VenueService = Depends(get_venue_service),
):
    await venues.delete_block(actor, venue_id, block_id)


# ── Calendar projections ──────────────────────────────────────────────────────

@router.get("/{venue_id}/calendar", response_model=list[CalendarDayRead])
async def venue_calendar(
    venue_id: str,
    start_date: date_type = Query(...),
    end_date: date_type = Query(...),
    actor: Optional[Actor] = Depends(get_optional_actor),
    projections: ProjectionService = Depends(get_projection_service),
):
    """Per-day availability; a host token adds the caller's own requests."""
    host_id = actor.id if actor is not None and actor.role == Role.host else "-"
    generation = await venue_generation(venue_id)
    cache_key = f"{venue_id}:g{generation}:{start_date}:{end_date}:{host_id}"
    if generation is not None:
        cached = await calendar_cache.get(cache_key)
        if cached is not None:
            return cached

    venue, days = await projections.calendar(actor, venue_id, start_date, end_date)
    response = [CalendarDayRead.from_domain(d, venue.timezone).model_dump(mode="json") for d in days]
    if generation is not None:
        await calendar_cache.set(cache_key, response)
    return response


@router.get("/{venue_id}/availability", response_model=list[AvailabilitySegmentRead])
async def venue_availability(
    venue_id: str,
    day: date_type = Query(..., alias="date"),
    projections: ProjectionService = Depends(get_projection_service),
):
    generation = await venue_generation(venue_id)
    cache_key = f"{venue_id}:g{generation}:{day}"
    if generation is not None:
        cached = await availability_cache.get(cache_key)
        if cached is not None:
            return cached

    venue, segments = await projections.availability(venue_id, day)
    response = [
        AvailabilitySegmentRead.from_domain(s, venue.timezone).model_dump(mode="json")
        for s in segments
    ]
    if generation is not None:
        await availability_cache.set(cache_key, response)
    return response


@router.get("/{venue_id}/queue", response_model=list[SlotRead])
async def venue_queue(
    venue_id: str,
    actor: Actor = Depends(get_current_actor),
    projections: ProjectionService = Depends(get_projection_service),
):
    """Pending and counter-proposed requests: high priority first, then oldest."""
    venue, slots = await projections.venue_queue(actor, venue_id)
    return [SlotRead.from_domain(s, venue.timezone) for s in slots]
