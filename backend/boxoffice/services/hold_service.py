"""
Seat hold service: temporary, exclusive, self-expiring claims on seats.

A hold moves seats AVAILABLE -> HELD for one user until a deadline
(SEAT_HOLD_TTL_SECONDS). The user then turns held seats into a pending
booking, releases them, or lets them lapse and the expiry sweep returns them.

Holds are all-or-nothing: the whole request runs in one SERIALIZABLE
transaction and checks for a lost race twice, once on the filtered read and
once on the guarded UPDATE's row count. Any failure rolls every seat back.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import (
    BookingSystemError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import (
    record_hold_attempt,
    seats_held,
    seats_released,
    sweep_counter_failures,
)
from boxoffice.db.base import utcnow
from boxoffice.db.transaction import SERIALIZABLE, run_in_transaction
from boxoffice.models.event import Event, EventStatus
from boxoffice.models.seat import SeatStatus
from boxoffice.services import seat_inventory

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class SeatHold:
    hold_id: str
    event_id: int
    expires_at: datetime
    seat_ids: list[int] = field(default_factory=list)


@dataclass
class HeldSeat:
    seat_id: int
    event_id: int
    expires_at: datetime


def _new_hold_id() -> str:
    # Opaque and unguessable; clients may use it to correlate retries
    return f"hold_{uuid.uuid4().hex}"


def _validate_seat_ids(seat_ids: Sequence[int]) -> list[int]:
    ids = list(seat_ids)
    if not ids:
        raise ValidationError("At least one seat id is required")
    if len(set(ids)) != len(ids):
        raise ValidationError("Seat ids must not contain duplicates")
    return ids


async def hold_seats(
    db: AsyncSession,
    event_id: int,
    seat_ids: Sequence[int],
    user_id: int,
) -> SeatHold:
    """
    Hold seats for a user.

    Raises:
        ValidationError: bad input, event not bookable, or per-user limit exceeded
        NotFoundError: event does not exist
        ConflictError: one or more seats are not AVAILABLE (ids listed on the error)
    """
    ids = _validate_seat_ids(seat_ids)
    max_seats = settings.MAX_SEATS_PER_USER

    if len(ids) > max_seats:
        record_hold_attempt("rejected")
        raise ValidationError(f"Cannot hold more than {max_seats} seats at once")

    async def work() -> SeatHold:
        now = utcnow()
        expires_at = now + timedelta(seconds=settings.SEAT_HOLD_TTL_SECONDS)

        # Step 1: Event must exist and be on sale
        result = await db.execute(
            select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()
        if not event:
            raise NotFoundError(f"Event {event_id} not found")
        if event.status != EventStatus.PUBLISHED:
            raise ValidationError("Event is not open for booking")
        if event.date <= now:
            raise ValidationError("Event has already started")

        # Step 2: Per-user limit counts holds the user already has on this event
        existing = await seat_inventory.count_active_holds(db, user_id, event_id, now)
        if existing + len(ids) > max_seats:
            raise ValidationError(
                f"Cannot hold more than {max_seats} seats for this event. "
                f"You already have {existing} seats on hold."
            )

        # Step 3: Read only the seats that are still AVAILABLE
        available = await seat_inventory.find_seats(
            db, ids, event_id=event_id, status=SeatStatus.AVAILABLE
        )
        if len(available) != len(ids):
            unavailable = set(ids) - {seat.id for seat in available}
            raise ConflictError(
                f"Some seats are no longer available: {', '.join(map(str, sorted(unavailable)))}",
                unavailable_seat_ids=list(unavailable),
            )

        # Step 4: Guarded write; another transaction may have won since step 3
        changed = await seat_inventory.transition_seats(
            db,
            ids,
            SeatStatus.AVAILABLE,
            SeatStatus.HELD,
            event_id=event_id,
            assign_to=user_id,
            hold_until=expires_at,
        )
        if changed != len(ids):
            mine = await seat_inventory.find_seats(
                db, ids, status=SeatStatus.HELD, owned_by=user_id
            )
            lost = set(ids) - {seat.id for seat in mine}
            raise ConflictError(
                "Some seats were taken by another user. Please try again.",
                unavailable_seat_ids=list(lost),
            )

        # Step 5: Capacity accounting in the same transaction
        await seat_inventory.adjust_available_seats(db, event_id, -changed)

        return SeatHold(
            hold_id=_new_hold_id(),
            event_id=event_id,
            expires_at=expires_at,
            seat_ids=sorted(ids),
        )

    try:
        hold = await run_in_transaction(
            db,
            work,
            operation="hold_seats",
            isolation_level=SERIALIZABLE,
            timeout=settings.HOLD_TRANSACTION_TIMEOUT,
        )
    except ConflictError as exc:
        record_hold_attempt("conflict")
        logger.info(
            "hold_conflict",
            event_id=event_id,
            user_id=user_id,
            unavailable=exc.unavailable_seat_ids,
        )
        raise
    except BookingSystemError:
        record_hold_attempt("rejected")
        raise

    record_hold_attempt("success")
    seats_held.inc(len(hold.seat_ids))
    logger.info(
        "seats_held",
        hold_id=hold.hold_id,
        event_id=event_id,
        user_id=user_id,
        seats=hold.seat_ids,
        expires_at=hold.expires_at.isoformat(),
    )
    return hold


async def release_seats(db: AsyncSession, seat_ids: Sequence[int], user_id: int) -> int:
    """
    Release seats the user holds. Seats not held by the user are ignored;
    returns how many were actually released (possibly zero).
    """
    ids = _validate_seat_ids(seat_ids)

    async def work() -> int:
        released = 0
        by_event = await seat_inventory.group_by_event(db, ids)
        for event_id, event_seat_ids in by_event.items():
            changed = await seat_inventory.transition_seats(
                db,
                event_seat_ids,
                SeatStatus.HELD,
                SeatStatus.AVAILABLE,
                owned_by=user_id,
            )
            await seat_inventory.adjust_available_seats(db, event_id, changed)
            released += changed
        return released

    released = await run_in_transaction(
        db, work, operation="release_seats", timeout=settings.HOLD_TRANSACTION_TIMEOUT
    )
    if released:
        seats_released.labels(reason="user").inc(released)
    logger.info("seats_released", user_id=user_id, requested=len(ids), released=released)
    return released


async def extend_hold(
    db: AsyncSession,
    seat_ids: Sequence[int],
    user_id: int,
    additional_seconds: Optional[int] = None,
) -> datetime:
    """
    Move the deadline of the user's live holds to now + extension.

    The extension is capped at SEAT_HOLD_TTL_SECONDS, so a hold never runs
    longer than one full TTL past the call.
    """
    ids = _validate_seat_ids(seat_ids)
    if additional_seconds is None:
        additional_seconds = settings.DEFAULT_EXTEND_SECONDS
    if additional_seconds <= 0:
        raise ValidationError("additional_seconds must be positive")

    extension = min(additional_seconds, settings.SEAT_HOLD_TTL_SECONDS)

    async def work() -> datetime:
        now = utcnow()
        new_expires_at = now + timedelta(seconds=extension)
        changed = await seat_inventory.move_hold_deadline(db, ids, user_id, new_expires_at, now)
        if changed == 0:
            raise ValidationError("No valid seats to extend hold for")
        return new_expires_at

    new_expires_at = await run_in_transaction(
        db, work, operation="extend_hold", timeout=settings.HOLD_TRANSACTION_TIMEOUT
    )
    logger.info(
        "hold_extended",
        user_id=user_id,
        seats=ids,
        requested_seconds=additional_seconds,
        granted_seconds=extension,
        new_expires_at=new_expires_at.isoformat(),
    )
    return new_expires_at


async def get_hold_status(
    db: AsyncSession,
    user_id: int,
    event_id: Optional[int] = None,
) -> list[HeldSeat]:
    """The user's unexpired holds, soonest deadline first."""
    seats = await seat_inventory.find_active_holds(db, user_id, utcnow(), event_id)
    return [
        HeldSeat(seat_id=seat.id, event_id=seat.event_id, expires_at=seat.held_until)
        for seat in seats
    ]


async def release_expired_holds(db: AsyncSession) -> int:
    """
    Return lapsed holds to AVAILABLE. Called by the expiry reaper.

    Seats are reclaimed in one transaction. Each event's counter is then
    updated in its own transaction; a failure there is logged and skipped so
    one bad event cannot stall reclamation for the rest. The counter for that
    event stays behind until reconciled.
    """

    async def reclaim() -> dict[int, int]:
        now = utcnow()
        expired = await seat_inventory.find_expired_holds(db, now)
        reclaimed: dict[int, int] = {}
        for event_id, event_seat_ids in expired.items():
            reclaimed[event_id] = await seat_inventory.transition_seats(
                db,
                event_seat_ids,
                SeatStatus.HELD,
                SeatStatus.AVAILABLE,
                event_id=event_id,
                expired_at=now,
            )
        return reclaimed

    reclaimed = await run_in_transaction(db, reclaim, operation="release_expired_holds")

    for event_id, count in reclaimed.items():
        if not count:
            continue

        async def restore_counter(event_id: int = event_id, count: int = count) -> int:
            return await seat_inventory.adjust_available_seats(db, event_id, count)

        try:
            await run_in_transaction(db, restore_counter, operation="sweep_counter_update")
        except BookingSystemError as exc:
            sweep_counter_failures.inc()
            logger.error(
                "sweep_counter_update_failed",
                event_id=event_id,
                seats=count,
                error=exc.message,
            )

    released = sum(reclaimed.values())
    if released:
        seats_released.labels(reason="sweep").inc(released)
        logger.info("expired_holds_released", released=released, events=len(reclaimed))
    return released
