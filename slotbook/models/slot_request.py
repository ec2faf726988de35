from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import Date, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text, Time, text
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.db.session import Base
from slotbook.domain.models import SlotPriority, SlotStatus


class SlotRequest(Base):
    __tablename__ = "slot_requests"
    __table_args__ = (
        Index("ix_slot_requests_venue_requested_date", "venue_id", "requested_date"),
        Index("ix_slot_requests_venue_alternative_date", "venue_id", "alternative_date"),
        # One live negotiation per event
        Index(
            "uq_slot_requests_active_event",
            "event_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'counter_proposed', 'needs_changes')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)

    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    host_id:  Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    venue_id: Mapped[str] = mapped_column(ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)

    requested_date:  Mapped[date] = mapped_column(Date, nullable=False)
    requested_start: Mapped[time] = mapped_column(Time, nullable=False)
    requested_end:   Mapped[time] = mapped_column(Time, nullable=False)

    status: Mapped[SlotStatus] = mapped_column(
        SAEnum(SlotStatus, name="slot_request_status"),
        default=SlotStatus.pending,
        nullable=False,
        index=True,
    )
    priority: Mapped[SlotPriority] = mapped_column(
        SAEnum(SlotPriority, name="slot_request_priority"),
        default=SlotPriority.normal,
        nullable=False,
    )

    notes:          Mapped[str] = mapped_column(Text, default="", nullable=False)
    venue_response: Mapped[str] = mapped_column(Text, default="", nullable=False)

    alternative_date:  Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    alternative_start: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    alternative_end:   Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    released_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
