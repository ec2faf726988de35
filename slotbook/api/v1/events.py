from __future__ import annotations

from fastapi import APIRouter, Depends

from slotbook.core.deps import get_current_actor, get_event_service, get_projection_service
from slotbook.domain.models import Actor
from slotbook.schemas.event import EventCreate, EventRead, EventTransition, EventUpdate
from slotbook.services.events import EventService
from slotbook.services.projections import ProjectionService

router = APIRouter(prefix="/events", tags=["events"])


async def _read(event, projections: ProjectionService) -> EventRead:
    venue = await projections.venue(event.venue_id)
    return EventRead.from_domain(event, venue.timezone)


@router.post("", response_model=EventRead, status_code=201)
async def create_event(
    payload: EventCreate,
    actor: Actor = Depends(get_current_actor),
    events: EventService = Depends(get_event_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    event = await events.create(
        actor,
        payload.venue_id,
        payload.title,
        payload.proposed_range.to_domain() if payload.proposed_range else None,
    )
    return await _read(event, projections)


@router.patch("/{event_id}", response_model=EventRead)
async def update_event(
    event_id: str,
    payload: EventUpdate,
    actor: Actor = Depends(get_current_actor),
    events: EventService = Depends(get_event_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    """Edit a draft. Submitted events go back to draft via request_changes."""
    event = await events.update(
        actor,
        event_id,
        title=payload.title,
        proposed_range=payload.proposed_range.to_domain() if payload.proposed_range else None,
        expected_version=payload.expected_version,
    )
    return await _read(event, projections)


@router.patch("/{event_id}/lifecycle", response_model=EventRead)
async def transition_event(
    event_id: str,
    payload: EventTransition,
    actor: Actor = Depends(get_current_actor),
    events: EventService = Depends(get_event_service),
    projections: ProjectionService = Depends(get_projection_service),
):
    event = await events.transition(actor, event_id, payload.action, payload.notes)
    return await _read(event, projections)


@router.get("/{event_id}", response_model=EventRead)
async def get_event(
    event_id: str,
    actor: Actor = Depends(get_current_actor),
    projections: ProjectionService = Depends(get_projection_service),
):
    event = await projections.event(actor, event_id)
    return await _read(event, projections)
