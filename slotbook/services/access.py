from __future__ import annotations

from datetime import datetime, timezone

from slotbook.domain.errors import PermissionDenied
from slotbook.domain.models import Actor, Role


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_venue_staff(actor: Actor, venue_id: str) -> None:
    if not actor.acts_for_venue(venue_id):
        raise PermissionDenied("Only this venue's staff may perform this action")


def require_owner(actor: Actor, host_id: str) -> None:
    if actor.role == Role.admin:
        return
    if actor.role != Role.host or actor.id != host_id:
        raise PermissionDenied("Only the owning host may perform this action")


def require_owner_or_venue(actor: Actor, host_id: str, venue_id: str) -> None:
    if actor.acts_for_venue(venue_id):
        return
    require_owner(actor, host_id)


def require_admin(actor: Actor) -> None:
    if actor.role != Role.admin:
        raise PermissionDenied("Admin access required")
