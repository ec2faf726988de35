from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from slotbook.core.deps import get_current_admin, get_event_service, get_projection_service
from slotbook.domain.models import Actor
from slotbook.schemas.calendar import SweepResult, TransitionRead
from slotbook.schemas.slot import SlotRead
from slotbook.services.cache import availability_cache, calendar_cache
from slotbook.services.events import EventService
from slotbook.services.projections import ProjectionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


# ── Lifecycle ─────────────────────────────────────────────────────────────────

@router.post("/sweep", response_model=SweepResult)
async def run_sweep(
    _: Actor = Depends(get_current_admin),
    events: EventService = Depends(get_event_service),
):
    """Run the lifecycle sweep now instead of waiting for the worker."""
    records = await events.sweep()
    return SweepResult(
        applied=len(records),
        transitions=[TransitionRead.from_domain(r) for r in records],
    )


@router.get("/negotiations/stale", response_model=list[SlotRead])
async def stale_negotiations(
    admin: Actor = Depends(get_current_admin),
    projections: ProjectionService = Depends(get_projection_service),
):
    slots = await projections.stale_negotiations(admin)
    zones: dict[str, str] = {}
    response = []
    for slot in slots:
        if slot.venue_id not in zones:
            zones[slot.venue_id] = (await projections.venue(slot.venue_id)).timezone
        response.append(SlotRead.from_domain(slot, zones[slot.venue_id]))
    return response


@router.get("/transitions/{entity_id}", response_model=list[TransitionRead])
async def transition_log(
    entity_id: str,
    admin: Actor = Depends(get_current_admin),
    projections: ProjectionService = Depends(get_projection_service),
):
    records = await projections.transitions(admin, entity_id)
    return [TransitionRead.from_domain(r) for r in records]


# ── Cache ─────────────────────────────────────────────────────────────────────

@router.get("/cache/stats")
async def cache_stats(_: Actor = Depends(get_current_admin)):
    return {"caches": [await calendar_cache.stats(), await availability_cache.stats()]}


@router.delete("/cache/clear")
async def clear_all_caches(_: Actor = Depends(get_current_admin)):
    await calendar_cache.clear()
    await availability_cache.clear()
    logger.info("All projection caches cleared by admin")
    return {"status": "cleared"}
