"""
Seat inventory: the only code that writes seat rows or the available_seats counter.

CONCURRENCY STRATEGY: Status-guarded UPDATEs
============================================

Problem:
  Two buyers read seat 3 as AVAILABLE at the same moment and both mark it HELD.

Solution:
  Every write is a compare-and-swap on the seat's current status:

    UPDATE seats SET status = 'HELD', held_by = :user, held_until = :deadline,
                     version = version + 1
    WHERE id IN (:ids) AND status = 'AVAILABLE'

  The statement returns how many rows it actually changed. Callers compare
  that with how many they asked for; a short count means another transaction
  got there first, and the caller raises so the whole unit of work rolls back.
  We never trust the isolation level alone, so a race fails loudly even on a
  database running below SERIALIZABLE.

  Counter updates are relative (available_seats = available_seats + :delta) so
  they compose under concurrency, and CHECK constraints reject drift.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.models.event import Event
from boxoffice.models.seat import Seat, SeatStatus
from boxoffice.models.venue import Section


async def transition_seats(
    db: AsyncSession,
    seat_ids: Sequence[int],
    expected: SeatStatus,
    target: SeatStatus,
    *,
    event_id: Optional[int] = None,
    owned_by: Optional[int] = None,
    live_at: Optional[datetime] = None,
    expired_at: Optional[datetime] = None,
    assign_to: Optional[int] = None,
    hold_until: Optional[datetime] = None,
) -> int:
    """
    Move seats from `expected` to `target` status, only where the row still matches.

    Guards:
        event_id    seat belongs to this event
        owned_by    seat is currently held by this user
        live_at     current hold deadline is after this instant
        expired_at  current hold deadline is before this instant

    Moving to HELD requires assign_to and hold_until; any other target clears
    the hold fields. Returns the number of rows changed.
    """
    if not seat_ids:
        return 0

    if target == SeatStatus.HELD:
        if assign_to is None or hold_until is None:
            raise ValueError("holding a seat requires an owner and a deadline")
        values = {"held_by": assign_to, "held_until": hold_until}
    else:
        values = {"held_by": None, "held_until": None}

    conditions = [Seat.id.in_(list(seat_ids)), Seat.status == expected]
    if event_id is not None:
        conditions.append(Seat.event_id == event_id)
    if owned_by is not None:
        conditions.append(Seat.held_by == owned_by)
    if live_at is not None:
        conditions.append(Seat.held_until > live_at)
    if expired_at is not None:
        conditions.append(Seat.held_until < expired_at)

    result = await db.execute(
        update(Seat)
        .where(*conditions)
        .values(status=target, version=Seat.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def move_hold_deadline(
    db: AsyncSession,
    seat_ids: Sequence[int],
    owned_by: int,
    new_deadline: datetime,
    now: datetime,
) -> int:
    """Reset held_until on seats still HELD by `owned_by` whose hold has not lapsed."""
    if not seat_ids:
        return 0
    result = await db.execute(
        update(Seat)
        .where(
            Seat.id.in_(list(seat_ids)),
            Seat.status == SeatStatus.HELD,
            Seat.held_by == owned_by,
            Seat.held_until > now,
        )
        .values(held_until=new_deadline, version=Seat.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def adjust_available_seats(db: AsyncSession, event_id: int, delta: int) -> int:
    """Apply a relative change to an event's available_seats counter."""
    if delta == 0:
        return 0
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(available_seats=Event.available_seats + delta, version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def find_seats(
    db: AsyncSession,
    seat_ids: Sequence[int],
    *,
    event_id: Optional[int] = None,
    status: Optional[SeatStatus] = None,
    owned_by: Optional[int] = None,
    live_at: Optional[datetime] = None,
) -> list[Seat]:
    query = select(Seat).where(Seat.id.in_(list(seat_ids)))
    if event_id is not None:
        query = query.where(Seat.event_id == event_id)
    if status is not None:
        query = query.where(Seat.status == status)
    if owned_by is not None:
        query = query.where(Seat.held_by == owned_by)
    if live_at is not None:
        query = query.where(Seat.held_until > live_at)

    # Guarded UPDATEs bypass the identity map, so always reload row state
    result = await db.execute(query.order_by(Seat.id).execution_options(populate_existing=True))
    return list(result.scalars().all())


async def count_active_holds(db: AsyncSession, user_id: int, event_id: int, now: datetime) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(Seat)
        .where(
            Seat.event_id == event_id,
            Seat.held_by == user_id,
            Seat.status == SeatStatus.HELD,
            Seat.held_until > now,
        )
    )
    return result.scalar_one()


async def find_active_holds(
    db: AsyncSession,
    user_id: int,
    now: datetime,
    event_id: Optional[int] = None,
) -> list[Seat]:
    query = select(Seat).where(
        Seat.held_by == user_id,
        Seat.status == SeatStatus.HELD,
        Seat.held_until > now,
    )
    if event_id is not None:
        query = query.where(Seat.event_id == event_id)
    result = await db.execute(
        query.order_by(Seat.held_until, Seat.id).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def find_expired_holds(db: AsyncSession, now: datetime) -> dict[int, list[int]]:
    """Seat ids whose hold deadline has passed, grouped by event."""
    result = await db.execute(
        select(Seat.id, Seat.event_id)
        .where(Seat.status == SeatStatus.HELD, Seat.held_until < now)
        .order_by(Seat.event_id, Seat.id)
    )
    grouped: dict[int, list[int]] = defaultdict(list)
    for seat_id, event_id in result.all():
        grouped[event_id].append(seat_id)
    return dict(grouped)


async def group_by_event(db: AsyncSession, seat_ids: Iterable[int]) -> dict[int, list[int]]:
    result = await db.execute(
        select(Seat.id, Seat.event_id).where(Seat.id.in_(list(seat_ids))).order_by(Seat.id)
    )
    grouped: dict[int, list[int]] = defaultdict(list)
    for seat_id, event_id in result.all():
        grouped[event_id].append(seat_id)
    return dict(grouped)


async def count_seats_by_status(db: AsyncSession, event_id: int) -> dict[SeatStatus, int]:
    result = await db.execute(
        select(Seat.status, func.count())
        .where(Seat.event_id == event_id)
        .group_by(Seat.status)
    )
    counts = {status: 0 for status in SeatStatus}
    for status, count in result.all():
        counts[SeatStatus(status)] = count
    return counts


def build_seat_rows(event_id: int, base_price: Decimal, sections: Iterable[Section]) -> list[dict]:
    """One AVAILABLE seat per slot: rows A, B, C..., numbers 1..seats_per_row."""
    rows = []
    for section in sections:
        price = (Decimal(base_price) * Decimal(section.price_multiplier)).quantize(Decimal("0.01"))
        for row_index in range(section.row_count):
            row_label = chr(ord("A") + row_index)
            for seat_number in range(1, section.seats_per_row + 1):
                rows.append({
                    "event_id": event_id,
                    "section_id": section.id,
                    "row_label": row_label,
                    "seat_number": seat_number,
                    "price": price,
                    "status": SeatStatus.AVAILABLE,
                })
    return rows


async def generate_seats(
    db: AsyncSession,
    event_id: int,
    base_price: Decimal,
    sections: Iterable[Section],
) -> int:
    rows = build_seat_rows(event_id, base_price, sections)
    if rows:
        await db.execute(insert(Seat), rows)
    return len(rows)
