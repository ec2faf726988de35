from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Date, DateTime, ForeignKey, Index, String, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from slotbook.db.session import Base

if TYPE_CHECKING:
    from slotbook.models.venue import Venue


class VenueBlock(Base):
    __tablename__ = "venue_blocks"
    __table_args__ = (
        Index("ix_venue_blocks_venue_date", "venue_id", "block_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    venue_id: Mapped[str] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"), nullable=False
    )
    block_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Both NULL: the whole business day is blocked
    start_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    end_time: Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    venue: Mapped[Venue] = relationship("Venue", back_populates="blocks")
