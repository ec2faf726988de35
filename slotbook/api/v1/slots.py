from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from slotbook.core.deps import (
    get_current_actor,
    get_negotiation_service,
    get_projection_service,
)
from slotbook.domain.models import Actor
from slotbook.schemas.slot import SlotCreate, SlotRead, SlotTransition
from slotbook.services.negotiation import NegotiationService
from slotbook.services.projections import ProjectionService

router = APIRouter(prefix="/slots", tags=["slots"])


async def _read(slot, projections: ProjectionService) -> SlotRead:
    venue = await projections.venue(slot.venue_id)
    return SlotRead.from_domain(slot, venue.timezone)


@router.post("", response_model=SlotRead, status_code=201)
async def create_slot_request(
    payload: SlotCreate,
    actor: Actor = Depends(get_current_actor),
    negotiation: NegotiationService = Depends(get_negotiation_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    """Host asks the venue for a time. No conflict check runs until approval."""
    slot = await negotiation.create(
        actor,
        payload.event_id,
        payload.venue_id,
        payload.range.to_domain(),
        notes=payload.notes,
        priority=payload.priority,
    )
    return await _read(slot, projections)


@router.patch("/{slot_id}", response_model=SlotRead)
async def transition_slot_request(
    slot_id: str,
    payload: SlotTransition,
    actor: Actor = Depends(get_current_actor),
    negotiation: NegotiationService = Depends(get_negotiation_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    slot = await negotiation.transition(
        actor,
        slot_id,
        payload.action,
        notes=payload.notes,
        alternative_range=payload.alternative_range.to_domain() if payload.alternative_range else None,
        requested_range=payload.range.to_domain() if payload.range else None,
        expected_status=payload.expected_status,
        expected_version=payload.expected_version,
    )
    return await _read(slot, projections)


@router.get("/{slot_id}", response_model=SlotRead)
async def get_slot_request(
    slot_id: str,
    actor: Actor = Depends(get_current_actor),
    projections: ProjectionService = Depends(get_projection_service),
):
    slot = await projections.slot_request(actor, slot_id)
    return await _read(slot, projections)


@router.get("", response_model=list[SlotRead])
async def list_my_slot_requests(
    mine: bool = Query(True),
    actor: Actor = Depends(get_current_actor),
    projections: ProjectionService = Depends(get_projection_service),
):
    if not mine:
        raise HTTPException(status_code=400, detail="Venue listings live under /venues/{venue_id}/queue")
    slots = await projections.host_requests(actor)
    zones: dict[str, str] = {}
    response = []
    for slot in slots:
        if slot.venue_id not in zones:
            zones[slot.venue_id] = (await projections.venue(slot.venue_id)).timezone
        response.append(SlotRead.from_domain(slot, zones[slot.venue_id]))
    return response
