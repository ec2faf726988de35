from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from slotbook.core.config import settings
from slotbook.core.security import decode_token
from slotbook.domain.models import Actor, Role
from slotbook.services.audit import TransitionPublisher
from slotbook.services.events import EventService
from slotbook.services.negotiation import NegotiationService
from slotbook.services.projections import ProjectionService
from slotbook.services.venues import VenueService
from slotbook.stores.interfaces import SchedulingStore
from slotbook.stores.memory_store import MemorySchedulingStore

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)

_CREDENTIALS_ERROR = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


# ── Auth ──────────────────────────────────────────────────────────────────────

def _actor_from_token(token: str) -> Actor:
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise _CREDENTIALS_ERROR
    subject = payload.get("sub")
    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise _CREDENTIALS_ERROR
    if not subject:
        raise _CREDENTIALS_ERROR
    return Actor(id=str(subject), role=role, venue_id=payload.get("venue_id"))


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Actor:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _actor_from_token(credentials.credentials)


async def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> Optional[Actor]:
    if credentials is None:
        return None
    return _actor_from_token(credentials.credentials)


async def get_current_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role != Role.admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return actor


# ── Store and services ────────────────────────────────────────────────────────

_store: Optional[SchedulingStore] = None


def get_store() -> SchedulingStore:
    global _store
    if _store is None:
        if settings.STORE_PROVIDER == "memory":
            logger.info("Using in-memory scheduling store")
            _store = MemorySchedulingStore()
        else:
            from slotbook.db.session import async_session_maker
            from slotbook.stores.sql_store import SqlSchedulingStore

            _store = SqlSchedulingStore(async_session_maker)
    return _store


def get_publisher() -> TransitionPublisher:
    return TransitionPublisher()


def get_negotiation_service(
    store: SchedulingStore = Depends(get_store),
    publisher: TransitionPublisher = Depends(get_publisher),
) -> NegotiationService:
    return NegotiationService(store, publisher)


def get_event_service(
    store: SchedulingStore = Depends(get_store),
    publisher: TransitionPublisher = Depends(get_publisher),
) -> EventService:
    return EventService(store, publisher)


def get_venue_service(
    store: SchedulingStore = Depends(get_store),
    publisher: TransitionPublisher = Depends(get_publisher),
) -> VenueService:
    return VenueService(store, publisher)


def get_projection_service(store: SchedulingStore = Depends(get_store)) -> ProjectionService:
    return ProjectionService(store)
