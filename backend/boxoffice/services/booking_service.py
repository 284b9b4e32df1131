"""
Booking lifecycle: held seats -> PENDING booking -> CONFIRMED | CANCELLED | EXPIRED.

CONCURRENCY STRATEGY: Optimistic Locking on the booking row
===========================================================

Problem:
  A booking can be touched by more than one logical step at once: the user
  confirming after payment, a retried confirm for the same payment, the user
  cancelling, and the expiry sweep. Two of them reading PENDING and both
  writing would double-book seats or record two payments.

Solution:
  Bookings carry a `version` column. Every state change is

    UPDATE bookings SET status = :new, version = version + 1, ...
    WHERE id = :id AND version = :observed_version AND status = :observed_status

  If rows_affected == 0 someone else moved the booking first. We raise
  ConflictError and the transaction rolls back; the caller re-reads and sees
  the new state (a retried confirm then gets "already confirmed").

  Seat rows are still protected by their own status-guarded writes
  (see seat_inventory.py): confirm moves HELD -> BOOKED only for seats the
  booking's owner still holds, and aborts if any are missing.

  Confirm runs at SERIALIZABLE isolation; the version check makes races fail
  loudly even where the database gives weaker guarantees.

Booking items are not deleted when a booking is cancelled or expires.
They get `released_at` stamped so the history of what was booked survives.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    ConflictError,
    ExpiredError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_booking_transition, seats_released
from boxoffice.db.base import utcnow
from boxoffice.db.transaction import SERIALIZABLE, run_in_transaction
from boxoffice.models.booking import Booking, BookingItem, BookingStatus, Payment
from boxoffice.models.event import Event
from boxoffice.models.seat import SeatStatus
from boxoffice.services import seat_inventory

logger = get_logger(__name__)
settings = get_settings()

CENTS = Decimal("0.01")


def calculate_amounts(prices: Sequence[Decimal]) -> tuple[Decimal, Decimal, Decimal]:
    """Return (total, tax, final) rounded to cents."""
    total = sum((Decimal(p) for p in prices), Decimal("0")).quantize(CENTS)
    tax = (total * Decimal(str(settings.TAX_RATE))).quantize(CENTS, rounding=ROUND_HALF_UP)
    return total, tax, total + tax


async def _load_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: Optional[int] = None,
) -> Optional[Booking]:
    query = select(Booking).where(Booking.id == booking_id)
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def _transition_booking(
    db: AsyncSession,
    booking: Booking,
    new_status: BookingStatus,
    **values,
) -> None:
    """Version-guarded status change; ConflictError if the row moved underneath us."""
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.version == booking.version,
            Booking.status == booking.status,
        )
        .values(status=new_status, version=Booking.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.info(
            "booking_version_conflict",
            booking_id=booking.id,
            observed_version=booking.version,
            target=new_status.value,
        )
        raise ConflictError("Booking was modified by another transaction. Please try again.")


async def _release_items(db: AsyncSession, booking_ids, now: datetime) -> int:
    """Stamp released_at on live items; booking_ids is a list or an id subquery."""
    result = await db.execute(
        update(BookingItem)
        .where(BookingItem.booking_id.in_(booking_ids), BookingItem.released_at.is_(None))
        .values(released_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def _expire_stale_bookings(
    db: AsyncSession,
    booking_ids: Sequence[int],
    now: datetime,
) -> list[int]:
    """PENDING -> EXPIRED for bookings whose seats are gone, releasing their items."""
    result = await db.execute(
        update(Booking)
        .where(Booking.id.in_(booking_ids), Booking.status == BookingStatus.PENDING)
        .values(status=BookingStatus.EXPIRED, version=Booking.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(booking_ids):
        raise ConflictError("Booking was modified by another transaction. Please try again.")
    await _release_items(db, booking_ids, now)
    return list(booking_ids)


async def create_booking(
    db: AsyncSession,
    user_id: int,
    event_id: int,
    seat_ids: Sequence[int],
) -> Booking:
    """
    Turn the user's held seats into a PENDING booking.

    The booking expires with the shortest-lived hold it captures.

    Raises:
        ValidationError: seats not (or no longer) held by the user, or already in a live booking
    """
    ids = list(seat_ids)
    if not ids:
        raise ValidationError("At least one seat id is required")
    if len(set(ids)) != len(ids):
        raise ValidationError("Seat ids must not contain duplicates")

    stale_expired: list[int] = []

    async def work() -> Booking:
        stale_expired.clear()
        now = utcnow()

        # Step 1: Re-read the holds; they may have lapsed since the hold call
        seats = await seat_inventory.find_seats(
            db,
            ids,
            event_id=event_id,
            status=SeatStatus.HELD,
            owned_by=user_id,
            live_at=now,
        )
        if len(seats) != len(ids):
            raise ValidationError(
                "Some seats are no longer held by you. Please select seats again."
            )

        # Step 2: A seat can only sit in one live booking. Every seat here is
        # HELD by this user, so a pending booking of someone else (or one past
        # its deadline) that still lists it has lost the seat and can never
        # confirm; it is expired instead of blocking the new booking.
        taken = await db.execute(
            select(BookingItem.booking_id, Booking.user_id, Booking.status, Booking.expires_at)
            .join(Booking, Booking.id == BookingItem.booking_id)
            .where(
                BookingItem.seat_id.in_(ids),
                BookingItem.released_at.is_(None),
            )
        )
        blocking: set[int] = set()
        stale: set[int] = set()
        for row in taken.all():
            lapsed = row.expires_at is not None and row.expires_at < now
            if row.status == BookingStatus.PENDING and (row.user_id != user_id or lapsed):
                stale.add(row.booking_id)
            else:
                blocking.add(row.booking_id)
        if blocking:
            raise ValidationError(
                f"Some seats are already part of booking {', '.join(map(str, sorted(blocking)))}"
            )
        if stale:
            stale_expired.extend(await _expire_stale_bookings(db, sorted(stale), now))

        # Step 3: Price from the seat rows, frozen onto the items
        total, tax, final = calculate_amounts([seat.price for seat in seats])
        expires_at = min(seat.held_until for seat in seats)

        booking = Booking(
            user_id=user_id,
            event_id=event_id,
            status=BookingStatus.PENDING,
            total_amount=total,
            tax_amount=tax,
            final_amount=final,
            expires_at=expires_at,
            items=[BookingItem(seat_id=seat.id, price=seat.price) for seat in seats],
        )
        db.add(booking)
        await db.flush()
        return await _load_booking(db, booking.id)

    booking = await run_in_transaction(
        db, work, operation="create_booking", timeout=settings.BOOKING_TRANSACTION_TIMEOUT
    )
    if stale_expired:
        record_booking_transition("expired", len(stale_expired))
        logger.info("stale_bookings_expired", booking_ids=stale_expired, superseded_by=booking.id)
    record_booking_transition("created")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        user_id=user_id,
        event_id=event_id,
        seats=ids,
        final_amount=str(booking.final_amount),
        expires_at=booking.expires_at.isoformat(),
    )
    return booking


async def confirm_booking(
    db: AsyncSession,
    booking_id: int,
    payment_id: str,
    payment_method: str,
) -> Booking:
    """
    Confirm a PENDING booking after the payment gateway reported success.

    Raises:
        NotFoundError: no such booking
        ValidationError: booking is not PENDING (including a replayed confirm)
        ExpiredError: booking deadline has passed
        ConflictError: booking or its seats changed concurrently, retry from a fresh read
    """
    if not payment_id or not payment_method:
        raise ValidationError("Payment ID and payment method are required")

    async def work() -> Booking:
        now = utcnow()

        # Step 1: Snapshot, including the version we will guard on
        booking = await _load_booking(db, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.status != BookingStatus.PENDING:
            raise ValidationError(f"Booking is already {booking.status.value.lower()}")
        if booking.expires_at is not None and booking.expires_at < now:
            raise ExpiredError("Booking has expired. Please start over.")

        seat_ids = [item.seat_id for item in booking.active_items]

        # Step 2: Optimistic lock on the booking row
        await _transition_booking(
            db,
            booking,
            BookingStatus.CONFIRMED,
            payment_id=payment_id,
            payment_method=payment_method,
            confirmed_at=now,
            expires_at=None,
        )

        # Step 3: HELD -> BOOKED, only for seats the owner still holds
        booked = await seat_inventory.transition_seats(
            db,
            seat_ids,
            SeatStatus.HELD,
            SeatStatus.BOOKED,
            owned_by=booking.user_id,
        )
        if booked != len(seat_ids):
            raise ConflictError(
                "Some seats in this booking are no longer held. Please start over."
            )

        # Step 4: Payment record (unique per booking)
        db.add(
            Payment(
                booking_id=booking.id,
                gateway_payment_id=payment_id,
                amount=booking.final_amount,
                status="COMPLETED",
                method=payment_method,
            )
        )
        await db.flush()
        return await _load_booking(db, booking.id)

    booking = await run_in_transaction(
        db,
        work,
        operation="confirm_booking",
        isolation_level=SERIALIZABLE,
        timeout=settings.BOOKING_TRANSACTION_TIMEOUT,
    )
    record_booking_transition("confirmed")
    logger.info(
        "booking_confirmed",
        booking_id=booking.id,
        user_id=booking.user_id,
        payment_id=payment_id,
        amount=str(booking.final_amount),
    )
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: int,
    reason: Optional[str] = None,
) -> Booking:
    """
    Cancel a PENDING or CONFIRMED booking and put its seats back on sale.

    Seats go back to AVAILABLE whether they were HELD or BOOKED, and the
    event counter is restored by the number of seats actually released.

    Raises:
        NotFoundError: booking absent or owned by someone else
        ValidationError: already cancelled or expired, or the event has started
        ConflictError: booking changed concurrently
    """

    async def work() -> tuple[Booking, int]:
        now = utcnow()

        booking = await _load_booking(db, booking_id, user_id=user_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.status == BookingStatus.CANCELLED:
            raise ValidationError("Booking is already cancelled")
        if booking.status.is_terminal:
            raise ValidationError(f"Booking is {booking.status.value.lower()} and cannot be cancelled")

        result = await db.execute(
            select(Event).where(Event.id == booking.event_id).execution_options(populate_existing=True)
        )
        event = result.scalar_one()
        if event.date < now:
            raise ValidationError("Cannot cancel booking for past events")

        seat_ids = [item.seat_id for item in booking.active_items]

        await _transition_booking(
            db,
            booking,
            BookingStatus.CANCELLED,
            cancelled_at=now,
            cancellation_reason=reason,
            expires_at=None,
        )

        # A pending booking's seats are HELD by the owner; a confirmed one's are BOOKED
        released = await seat_inventory.transition_seats(
            db, seat_ids, SeatStatus.HELD, SeatStatus.AVAILABLE, owned_by=booking.user_id
        )
        released += await seat_inventory.transition_seats(
            db, seat_ids, SeatStatus.BOOKED, SeatStatus.AVAILABLE
        )
        await seat_inventory.adjust_available_seats(db, event.id, released)
        await _release_items(db, [booking.id], now)

        if released != len(seat_ids):
            # Lapsed holds may already have been swept back by the reaper
            logger.info(
                "booking_cancel_partial_release",
                booking_id=booking.id,
                items=len(seat_ids),
                released=released,
            )
        return await _load_booking(db, booking.id), released

    booking, released = await run_in_transaction(
        db, work, operation="cancel_booking", timeout=settings.BOOKING_TRANSACTION_TIMEOUT
    )
    record_booking_transition("cancelled")
    if released:
        seats_released.labels(reason="cancel").inc(released)
    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        user_id=user_id,
        event_id=booking.event_id,
        reason=reason,
        released=released,
    )
    return booking


async def get_booking(
    db: AsyncSession,
    booking_id: int,
    user_id: Optional[int] = None,
) -> Booking:
    """Get a booking; pass user_id to restrict the lookup to the owner."""
    booking = await _load_booking(db, booking_id, user_id=user_id)
    if not booking:
        raise NotFoundError("Booking not found")
    return booking


async def get_user_bookings(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 10,
    status: Optional[BookingStatus] = None,
) -> tuple[list[Booking], int]:
    """Newest first, paginated. Returns (bookings, total)."""
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")

    query = select(Booking).where(Booking.user_id == user_id)
    if status is not None:
        query = query.where(Booking.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    result = await db.execute(
        query.order_by(Booking.created_at.desc(), Booking.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all()), total


async def expire_pending_bookings(db: AsyncSession) -> int:
    """
    Move PENDING bookings past their deadline to EXPIRED. Called by the expiry reaper.

    Seats are not touched here; their holds lapse on the same deadline and
    release_expired_holds reclaims them.
    """

    async def work() -> int:
        now = utcnow()
        # Status and deadline are checked in the write; a confirm may land first
        expired = await db.execute(
            update(Booking)
            .where(
                Booking.status == BookingStatus.PENDING,
                Booking.expires_at < now,
            )
            .values(status=BookingStatus.EXPIRED, version=Booking.version + 1)
            .execution_options(synchronize_session=False)
        )
        if not expired.rowcount:
            return 0

        # Same predicate on the items; ones released by an earlier run are skipped
        lapsed = select(Booking.id).where(
            Booking.status == BookingStatus.EXPIRED,
            Booking.expires_at < now,
        )
        await _release_items(db, lapsed, now)
        return expired.rowcount

    expired = await run_in_transaction(
        db, work, operation="expire_pending_bookings", timeout=settings.BOOKING_TRANSACTION_TIMEOUT
    )
    if expired:
        record_booking_transition("expired", expired)
        logger.info("pending_bookings_expired", expired=expired)
    return expired
