"""
Booking, its items and its payment.

Key design decisions:
- `version` is the optimistic lock for the confirm path. Confirm, cancel and
  the expiry sweep all bump it, so a confirm that read an older snapshot
  matches zero rows and fails with a conflict.
- Items are never deleted. Cancel and expiry stamp `released_at`; the partial
  unique index guarantees a seat has at most one unreleased item, i.e. it
  belongs to at most one live booking.
- One payment per booking (unique booking_id): a replayed confirm can never
  create a second payment row.
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
    text,
)
from sqlalchemy.orm import relationship

from boxoffice.db.base import Base, TimestampMixin, UTCDateTime, utcnow


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStatus.CANCELLED, BookingStatus.EXPIRED)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    status = Column(
        Enum(BookingStatus, native_enum=False, length=20, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    total_amount = Column(Numeric(10, 2), nullable=False)
    tax_amount = Column(Numeric(10, 2), nullable=False)
    final_amount = Column(Numeric(10, 2), nullable=False)
    expires_at = Column(UTCDateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    payment_id = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=True)
    confirmed_at = Column(UTCDateTime, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)

    items = relationship(
        "BookingItem",
        back_populates="booking",
        lazy="selectin",
        order_by="BookingItem.id",
    )
    payment = relationship("Payment", back_populates="booking", lazy="selectin", uselist=False)

    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="check_booking_total_non_negative"),
        # Pending bookings always carry a deadline
        CheckConstraint(
            "status <> 'PENDING' OR expires_at IS NOT NULL",
            name="check_pending_booking_expiry",
        ),
        Index("ix_bookings_status_expires_at", "status", "expires_at"),
        Index("ix_bookings_user_created", "user_id", "created_at"),
    )

    @property
    def active_items(self) -> list["BookingItem"]:
        return [item for item in self.items if item.released_at is None]

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"


class BookingItem(Base):
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id"), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    released_at = Column(UTCDateTime, nullable=True)

    booking = relationship("Booking", back_populates="items")
    seat = relationship("Seat", lazy="selectin")

    __table_args__ = (
        Index(
            "uq_booking_items_live_seat",
            "seat_id",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<BookingItem(booking={self.booking_id}, seat={self.seat_id}, price={self.price})>"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    gateway_payment_id = Column(String(255), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="COMPLETED")
    method = Column(String(50), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    booking = relationship("Booking", back_populates="payment")

    def __repr__(self) -> str:
        return f"<Payment(booking={self.booking_id}, amount={self.amount}, status={self.status})>"
