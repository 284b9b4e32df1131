"""
Event model with seat inventory tracking.

Key design decisions:
- `available_seats` is denormalized (avoids COUNT over seats on every read).
  It must equal the number of AVAILABLE seats for the event; every seat
  transition that crosses AVAILABLE adjusts it in the same transaction.
  The expiry sweep is the one best-effort exception.
- CHECK constraints keep the counter within [0, total_seats] so a drifting
  counter fails loudly instead of going negative.
- `status` gates holds: only PUBLISHED events accept them.
"""

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    Enum,
)

from boxoffice.db.base import Base, TimestampMixin, UTCDateTime


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(UTCDateTime, nullable=False)
    venue_id = Column(Integer, ForeignKey("venues.id"), nullable=False, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    base_price = Column(Numeric(10, 2), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    status = Column(
        Enum(EventStatus, native_enum=False, length=20, name="event_status"),
        nullable=False,
        default=EventStatus.DRAFT,
    )
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("total_seats > 0", name="check_total_seats_positive"),
        CheckConstraint("available_seats <= total_seats", name="check_available_lte_total"),
        Index("ix_events_date", "date"),
        Index("ix_events_status_date", "status", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, status={self.status}, "
            f"available={self.available_seats}/{self.total_seats})>"
        )
