# Import every model here so Alembic autogenerate can discover them.
# Dependency order matters: referenced tables must come before tables
# that FK-reference them.

from slotbook.models.venue import Venue                    # noqa: F401
from slotbook.models.venue_block import VenueBlock         # noqa: F401
from slotbook.models.event import Event                    # noqa: F401
from slotbook.models.slot_request import SlotRequest       # noqa: F401
from slotbook.models.transition_log import TransitionLog   # noqa: F401
