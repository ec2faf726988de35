from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, ForeignKey, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from slotbook.db.session import Base
from slotbook.domain.models import Lifecycle


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    host_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    venue_id: Mapped[str] = mapped_column(
        ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    lifecycle: Mapped[Lifecycle] = mapped_column(
        SAEnum(Lifecycle, name="event_lifecycle"),
        default=Lifecycle.draft,
        nullable=False,
        index=True,
    )

    # Host's intended time, not public
    proposed_date:  Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    proposed_start: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    proposed_end:   Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    # Written only from an approved slot request
    published_date:  Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    published_start: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    published_end:   Mapped[Optional[time]] = mapped_column(Time, nullable=True)

    slot_request_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
