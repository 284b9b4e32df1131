"""
Tests for seat holds: all-or-nothing acquisition, the per-user limit,
release, extension and the expired-hold sweep.
"""

import pytest
from datetime import datetime, timezone, timedelta
from sqlalchemy.exc import OperationalError

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import ConflictError, NotFoundError, ValidationError
from boxoffice.models.event import EventStatus
from boxoffice.models.seat import SeatStatus
from boxoffice.services import hold_service, seat_inventory

from conftest import assert_capacity_conserved, fetch_event, fetch_seats, lapse_holds

settings = get_settings()


@pytest.mark.asyncio
async def test_hold_seats(db_session, users, event):
    """Successful hold marks seats HELD and decrements available seats."""
    before = datetime.now(timezone.utc)
    hold = await hold_service.hold_seats(db_session, event.id, event.seat_ids[:3], users.alice)

    assert hold.hold_id.startswith("hold_")
    assert hold.seat_ids == event.seat_ids[:3]
    assert hold.event_id == event.id
    expected = before + timedelta(seconds=settings.SEAT_HOLD_TTL_SECONDS)
    assert abs((hold.expires_at - expected).total_seconds()) < 5

    seats = await fetch_seats(db_session, event.seat_ids[:3])
    assert all(s.status == SeatStatus.HELD and s.held_by == users.alice for s in seats)
    assert (await fetch_event(db_session, event.id)).available_seats == 11
    await assert_capacity_conserved(db_session, event.id)


@pytest.mark.asyncio
async def test_hold_ids_are_unique(db_session, users, event):
    first = await hold_service.hold_seats(db_session, event.id, event.seat_ids[:1], users.alice)
    second = await hold_service.hold_seats(db_session, event.id, event.seat_ids[1:2], users.alice)
    assert first.hold_id != second.hold_id


@pytest.mark.asyncio
async def test_overlapping_hold_is_all_or_nothing(db_session, users, event):
    """Bob holds seat 3; Alice asking for seats 1-3 gets nothing."""
    seat_1, seat_2, seat_3 = event.seat_ids[:3]
    await hold_service.hold_seats(db_session, event.id, [seat_3], users.bob)

    with pytest.raises(ConflictError) as exc_info:
        await hold_service.hold_seats(db_session, event.id, [seat_1, seat_2, seat_3], users.alice)

    assert exc_info.value.unavailable_seat_ids == [seat_3]
    seats = await fetch_seats(db_session, [seat_1, seat_2])
    assert all(s.status == SeatStatus.AVAILABLE for s in seats)
    assert (await fetch_event(db_session, event.id)).available_seats == 13
    await assert_capacity_conserved(db_session, event.id)


@pytest.mark.asyncio
async def test_hold_seat_from_another_event_conflicts(db_session, users, event_factory):
    first = await event_factory()
    second = await event_factory()

    with pytest.raises(ConflictError) as exc_info:
        await hold_service.hold_seats(
            db_session, first.id, [first.seat_ids[0], second.seat_ids[0]], users.alice
        )
    assert exc_info.value.unavailable_seat_ids == [second.seat_ids[0]]


@pytest.mark.asyncio
async def test_hold_limit_boundary(db_session, users, event):
    """Holding exactly the maximum succeeds; one more is rejected."""
    ids = event.seat_ids
    await hold_service.hold_seats(db_session, event.id, ids[:4], users.alice)
    await hold_service.hold_seats(db_session, event.id, ids[4:6], users.alice)

    with pytest.raises(ValidationError) as exc_info:
        await hold_service.hold_seats(db_session, event.id, ids[6:7], users.alice)

    assert "already have 6 seats on hold" in exc_info.value.message
    assert (await fetch_seats(db_session, ids[6:7]))[0].status == SeatStatus.AVAILABLE


@pytest.mark.asyncio
async def test_hold_more_than_limit_at_once(db_session, users, event):
    with pytest.raises(ValidationError):
        await hold_service.hold_seats(db_session, event.id, event.seat_ids[:7], users.alice)
    assert (await fetch_event(db_session, event.id)).available_seats == 14


@pytest.mark.asyncio
async def test_limit_is_per_user(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:6], users.alice)
    hold = await hold_service.hold_seats(db_session, event.id, event.seat_ids[6:8], users.bob)
    assert len(hold.seat_ids) == 2


@pytest.mark.asyncio
async def test_lapsed_holds_do_not_count_toward_limit(db_session, users, event):
    ids = event.seat_ids
    await hold_service.hold_seats(db_session, event.id, ids[:6], users.alice)
    await lapse_holds(db_session, ids[:6])

    hold = await hold_service.hold_seats(db_session, event.id, ids[6:8], users.alice)
    assert hold.seat_ids == ids[6:8]


@pytest.mark.asyncio
async def test_hold_rejects_bad_input(db_session, users, event):
    with pytest.raises(ValidationError):
        await hold_service.hold_seats(db_session, event.id, [], users.alice)
    with pytest.raises(ValidationError):
        await hold_service.hold_seats(
            db_session, event.id, [event.seat_ids[0], event.seat_ids[0]], users.alice
        )


@pytest.mark.asyncio
async def test_hold_nonexistent_event(db_session, users, event):
    with pytest.raises(NotFoundError):
        await hold_service.hold_seats(db_session, 99999, event.seat_ids[:1], users.alice)


@pytest.mark.asyncio
async def test_hold_unpublished_event(db_session, users, event_factory):
    draft = await event_factory(status=EventStatus.DRAFT)
    with pytest.raises(ValidationError):
        await hold_service.hold_seats(db_session, draft.id, draft.seat_ids[:1], users.alice)


@pytest.mark.asyncio
async def test_hold_past_event(db_session, users, event_factory):
    past = await event_factory(date=datetime.now(timezone.utc) - timedelta(hours=1))
    with pytest.raises(ValidationError):
        await hold_service.hold_seats(db_session, past.id, past.seat_ids[:1], users.alice)


@pytest.mark.asyncio
async def test_release_seats(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:3], users.alice)

    released = await hold_service.release_seats(db_session, event.seat_ids[:2], users.alice)

    assert released == 2
    seats = await fetch_seats(db_session, event.seat_ids[:3])
    assert [s.status for s in seats] == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE, SeatStatus.HELD]
    assert (await fetch_event(db_session, event.id)).available_seats == 13
    await assert_capacity_conserved(db_session, event.id)


@pytest.mark.asyncio
async def test_release_ignores_seats_held_by_others(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:2], users.bob)

    released = await hold_service.release_seats(db_session, event.seat_ids[:3], users.alice)

    assert released == 0
    seats = await fetch_seats(db_session, event.seat_ids[:2])
    assert all(s.held_by == users.bob for s in seats)
    await assert_capacity_conserved(db_session, event.id)


@pytest.mark.asyncio
async def test_extend_hold(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:2], users.alice)

    before = datetime.now(timezone.utc)
    new_expires_at = await hold_service.extend_hold(db_session, event.seat_ids[:2], users.alice, 120)

    assert abs((new_expires_at - (before + timedelta(seconds=120))).total_seconds()) < 5
    seats = await fetch_seats(db_session, event.seat_ids[:2])
    assert all(s.held_until == new_expires_at for s in seats)


@pytest.mark.asyncio
async def test_extend_hold_is_capped_at_ttl(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:1], users.alice)

    before = datetime.now(timezone.utc)
    new_expires_at = await hold_service.extend_hold(
        db_session, event.seat_ids[:1], users.alice, settings.SEAT_HOLD_TTL_SECONDS * 10
    )

    ceiling = before + timedelta(seconds=settings.SEAT_HOLD_TTL_SECONDS + 5)
    assert new_expires_at <= ceiling


@pytest.mark.asyncio
async def test_extend_lapsed_hold_fails(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:1], users.alice)
    await lapse_holds(db_session, event.seat_ids[:1])

    with pytest.raises(ValidationError):
        await hold_service.extend_hold(db_session, event.seat_ids[:1], users.alice)


@pytest.mark.asyncio
async def test_extend_someone_elses_hold_fails(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:1], users.bob)

    with pytest.raises(ValidationError):
        await hold_service.extend_hold(db_session, event.seat_ids[:1], users.alice)


@pytest.mark.asyncio
async def test_extend_rejects_non_positive_duration(db_session, users, event):
    await hold_service.hold_seats(db_session, event.id, event.seat_ids[:1], users.alice)
    with pytest.raises(ValidationError):
        await hold_service.extend_hold(db_session, event.seat_ids[:1], users.alice, 0)


@pytest.mark.asyncio
async def test_hold_status_lists_live_holds(db_session, users, event):
    ids = event.seat_ids
    await hold_service.hold_seats(db_session, event.id, ids[:2], users.alice)
    await hold_service.hold_seats(db_session, event.id, ids[2:3], users.alice)
    await lapse_holds(db_session, ids[:1])
    await hold_service.hold_seats(db_session, event.id, ids[3:4], users.bob)

    held = await hold_service.get_hold_status(db_session, users.alice)

    assert sorted(h.seat_id for h in held) == [ids[1], ids[2]]
    assert all(h.event_id == event.id for h in held)
    assert await hold_service.get_hold_status(db_session, users.alice, event_id=99999) == []


@pytest.mark.asyncio
async def test_release_expired_holds(db_session, users, event):
    ids = event.seat_ids
    await hold_service.hold_seats(db_session, event.id, ids[:3], users.alice)
    await lapse_holds(db_session, ids[:2])

    released = await hold_service.release_expired_holds(db_session)

    assert released == 2
    seats = await fetch_seats(db_session, ids[:3])
    assert [s.status for s in seats] == [SeatStatus.AVAILABLE, SeatStatus.AVAILABLE, SeatStatus.HELD]
    assert (await fetch_event(db_session, event.id)).available_seats == 12
    await assert_capacity_conserved(db_session, event.id)

    # Idempotent: nothing left to reclaim
    assert await hold_service.release_expired_holds(db_session) == 0


@pytest.mark.asyncio
async def test_sweep_counter_failure_does_not_stop_other_events(
    db_session, users, event_factory, monkeypatch
):
    broken = await event_factory()
    healthy = await event_factory()
    await hold_service.hold_seats(db_session, broken.id, broken.seat_ids[:2], users.alice)
    await hold_service.hold_seats(db_session, healthy.id, healthy.seat_ids[:3], users.alice)
    await lapse_holds(db_session, broken.seat_ids[:2] + healthy.seat_ids[:3])

    original = seat_inventory.adjust_available_seats

    async def flaky_adjust(db, event_id, delta):
        if event_id == broken.id:
            raise OperationalError("UPDATE events", {}, Exception("counter update failed"))
        return await original(db, event_id, delta)

    monkeypatch.setattr(seat_inventory, "adjust_available_seats", flaky_adjust)

    released = await hold_service.release_expired_holds(db_session)

    assert released == 5
    seats = await fetch_seats(db_session, broken.seat_ids[:2] + healthy.seat_ids[:3])
    assert all(s.status == SeatStatus.AVAILABLE for s in seats)
    # Healthy event fully restored; broken event's counter is left behind
    assert (await fetch_event(db_session, healthy.id)).available_seats == 14
    assert (await fetch_event(db_session, broken.id)).available_seats == 12
