"""Seat store queries: buses, their seats, and the hold overlay."""
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func as sa_func
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.config import settings
from seatlock.exceptions import BookingWindowError, NotFound
from seatlock.models.models import Bus, Seat
from seatlock.schemas.bus import BusCreateRequest, SeatState
from seatlock.services.audit import log_audit
from seatlock.services.seat_lock import LockGrant, SeatLockManager

logger = logging.getLogger(__name__)


def booking_window(today: Optional[date] = None) -> Tuple[date, date]:
    today = today or date.today()
    return today, today + timedelta(days=settings.BOOKING_WINDOW_DAYS)


async def get_bus(db: AsyncSession, bus_id: int) -> Bus:
    bus = await db.get(Bus, bus_id)
    if bus is None:
        raise NotFound(f"Bus {bus_id} not found")
    return bus


async def list_seats(db: AsyncSession, bus_id: int) -> List[Seat]:
    stmt = sa_select(Seat).where(Seat.bus_id == bus_id).order_by(Seat.id)
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def unholdable_seats(db: AsyncSession, bus_id: int, seat_numbers: Iterable[str]) -> Set[str]:
    """Requested seats that are booked or do not exist on the bus."""
    requested = set(seat_numbers)
    stmt = sa_select(Seat.seat_number, Seat.is_booked).where(
        Seat.bus_id == bus_id, Seat.seat_number.in_(sorted(requested))
    )
    res = await db.execute(stmt)
    rows = res.all()
    known = {number for number, _ in rows}
    booked = {number for number, is_booked in rows if is_booked}
    return (requested - known) | booked


async def lock_bus_seats(
    db: AsyncSession, locks: SeatLockManager, bus_id: int, seat_numbers: List[str], session_id: str
) -> LockGrant:
    await get_bus(db, bus_id)
    blocked = await unholdable_seats(db, bus_id, seat_numbers)
    return await locks.lock_seats(bus_id, seat_numbers, session_id, blocked=blocked)


async def seat_map(db: AsyncSession, locks: SeatLockManager, bus_id: int) -> Tuple[Bus, List[SeatState]]:
    """Current state of every seat on a bus, holds included."""
    bus = await get_bus(db, bus_id)
    seats = await list_seats(db, bus_id)
    holds = await locks.snapshot(bus_id, [s.seat_number for s in seats])
    states = []
    for seat in seats:
        hold = None if seat.is_booked else holds.get(seat.seat_number)
        states.append(
            SeatState(
                seat_number=seat.seat_number,
                is_booked=seat.is_booked,
                is_locked=hold is not None,
                locked_by=hold.session_id if hold else None,
                lock_expires_at=hold.expires_at if hold else None,
            )
        )
    return bus, states


async def available_counts(db: AsyncSession, bus_ids: List[int]) -> Dict[int, int]:
    if not bus_ids:
        return {}
    stmt = (
        sa_select(Seat.bus_id, sa_func.count(Seat.id))
        .where(Seat.bus_id.in_(bus_ids), Seat.is_booked == False)  # noqa: E712
        .group_by(Seat.bus_id)
    )
    res = await db.execute(stmt)
    return {bus_id: count for bus_id, count in res.all()}


async def search_buses(
    db: AsyncSession, from_city: str, to_city: str, journey_date: date, today: Optional[date] = None
) -> List[Bus]:
    start, end = booking_window(today)
    if journey_date < start or journey_date > end:
        raise BookingWindowError(
            f"Bookings are only available within the next {settings.BOOKING_WINDOW_DAYS} days "
            f"({start.isoformat()} to {end.isoformat()})"
        )
    stmt = (
        sa_select(Bus)
        .where(
            sa_func.lower(Bus.from_city) == from_city.strip().lower(),
            sa_func.lower(Bus.to_city) == to_city.strip().lower(),
            Bus.journey_date == journey_date,
        )
        .order_by(Bus.departure_time, Bus.id)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def available_dates(
    db: AsyncSession, from_city: str, to_city: str, today: Optional[date] = None
) -> List[date]:
    """Journey dates inside the booking window that have a bus on the route."""
    start, end = booking_window(today)
    stmt = (
        sa_select(Bus.journey_date)
        .where(
            sa_func.lower(Bus.from_city) == from_city.strip().lower(),
            sa_func.lower(Bus.to_city) == to_city.strip().lower(),
            Bus.journey_date >= start,
            Bus.journey_date <= end,
        )
        .distinct()
        .order_by(Bus.journey_date)
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def list_cities(db: AsyncSession) -> Dict[str, List[str]]:
    origins = await db.execute(sa_select(Bus.from_city).distinct().order_by(Bus.from_city))
    destinations = await db.execute(sa_select(Bus.to_city).distinct().order_by(Bus.to_city))
    return {"from": list(origins.scalars().all()), "to": list(destinations.scalars().all())}


async def create_bus(db: AsyncSession, actor_id: Optional[int], req: BusCreateRequest) -> Bus:
    """Create a bus for one journey date with seats S1..Sn."""
    bus = Bus(
        bus_name=req.bus_name,
        bus_type=req.bus_type,
        from_city=req.from_city,
        to_city=req.to_city,
        journey_date=req.journey_date,
        departure_time=req.departure_time,
        arrival_time=req.arrival_time,
        price=req.price,
        total_seats=req.total_seats,
    )
    async with db.begin():
        db.add(bus)
        await db.flush()
        for i in range(1, req.total_seats + 1):
            db.add(Seat(bus_id=bus.id, seat_number=f"S{i}", is_booked=False))
        await log_audit(
            db,
            actor_id=actor_id,
            action="create_bus",
            object_type="bus",
            object_id=str(bus.id),
            detail={"route": f"{req.from_city}-{req.to_city}", "date": req.journey_date.isoformat(), "seats": req.total_seats},
        )
    await db.refresh(bus)
    logger.info("bus created", extra={"bus_id": bus.id, "seats": req.total_seats})
    return bus
