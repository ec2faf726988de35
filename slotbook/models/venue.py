from __future__ import annotations

from datetime import datetime, time, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.db.session import Base

if TYPE_CHECKING:
    from slotbook.models.venue_block import VenueBlock


class Venue(Base):
    __tablename__ = "venues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # IANA zone echoed on every serialized range; never used for conversion
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    # Operable window; an end at or before the start wraps past midnight
    operating_start: Mapped[time] = mapped_column(Time, nullable=False)
    operating_end: Mapped[time] = mapped_column(Time, nullable=False)

    requires_slot_negotiation: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    blocks: Mapped[list[VenueBlock]] = relationship(
        "VenueBlock", back_populates="venue", cascade="all, delete-orphan"
    )
