"""
Seat model: one row per sellable slot of an event.

Key design decisions:
- Rows are only ever mutated through status-guarded UPDATEs
  (see services/seat_inventory.py); `version` is bumped on every transition.
- The hold invariant is enforced by the database:
  status = HELD  <=>  held_by and held_until are both set.
- (status, held_until) index serves the expiry sweep;
  (event_id, status) serves availability reads and seat maps.
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
    UniqueConstraint,
    Enum,
)

from boxoffice.db.base import Base, TimestampMixin, UTCDateTime


class SeatStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    HELD = "HELD"
    BOOKED = "BOOKED"
    BLOCKED = "BLOCKED"


class Seat(Base, TimestampMixin):
    __tablename__ = "seats"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False)
    section_id = Column(Integer, ForeignKey("sections.id"), nullable=False)
    row_label = Column(String(5), nullable=False)
    seat_number = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(SeatStatus, native_enum=False, length=20, name="seat_status"),
        nullable=False,
        default=SeatStatus.AVAILABLE,
    )
    held_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    held_until = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("event_id", "section_id", "row_label", "seat_number", name="uq_event_seat_slot"),
        CheckConstraint(
            "(status = 'HELD' AND held_by IS NOT NULL AND held_until IS NOT NULL) OR "
            "(status <> 'HELD' AND held_by IS NULL AND held_until IS NULL)",
            name="check_seat_hold_fields",
        ),
        Index("ix_seats_event_status", "event_id", "status"),
        Index("ix_seats_status_held_until", "status", "held_until"),
        Index("ix_seats_held_by_status", "held_by", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Seat(id={self.id}, event={self.event_id}, "
            f"{self.row_label}{self.seat_number}, status={self.status})>"
        )
