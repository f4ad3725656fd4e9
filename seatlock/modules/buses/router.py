from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.auth.deps import role_required
from seatlock.db.session import get_session
from seatlock.schemas.bus import (
    AvailableDatesResponse,
    BusCreateRequest,
    BusDetail,
    BusDetailResponse,
    BusListResponse,
    BusResponse,
    BusSummary,
    CityListResponse,
    SeatLockRequest,
    SeatLockResponse,
    SeatUnlockResponse,
)
from seatlock.services import buses as bus_service
from seatlock.services.auth import Principal
from seatlock.services.seat_lock import SeatLockManager, get_lock_manager

router = APIRouter()


@router.get("/search", response_model=BusListResponse)
async def search_buses(
    from_city: str = Query(..., alias="from", min_length=1),
    to_city: str = Query(..., alias="to", min_length=1),
    journey_date: date = Query(..., alias="date"),
    db: AsyncSession = Depends(get_session),
):
    """Buses on a route for one date inside the booking window."""
    buses = await bus_service.search_buses(db, from_city, to_city, journey_date)
    counts = await bus_service.available_counts(db, [b.id for b in buses])
    data = [BusSummary.from_model(b, available_seats=counts.get(b.id, 0)) for b in buses]
    return BusListResponse(count=len(data), data=data)


@router.get("/cities/list", response_model=CityListResponse)
async def list_cities(db: AsyncSession = Depends(get_session)):
    return CityListResponse(data=await bus_service.list_cities(db))


@router.get("/available-dates", response_model=AvailableDatesResponse)
async def available_dates(
    from_city: str = Query(..., alias="from", min_length=1),
    to_city: str = Query(..., alias="to", min_length=1),
    db: AsyncSession = Depends(get_session),
):
    """Dates inside the booking window with at least one bus on the route."""
    dates = await bus_service.available_dates(db, from_city, to_city)
    return AvailableDatesResponse(count=len(dates), data=dates)


@router.post("/add", response_model=BusResponse, status_code=status.HTTP_201_CREATED)
async def add_bus(
    req: BusCreateRequest,
    db: AsyncSession = Depends(get_session),
    admin: Principal = Depends(role_required(["Admin"])),
):
    bus = await bus_service.create_bus(db, admin.user_id, req)
    return BusResponse(data=BusSummary.from_model(bus, available_seats=bus.total_seats))


@router.get("/{bus_id}", response_model=BusDetailResponse)
async def get_bus(
    bus_id: int,
    db: AsyncSession = Depends(get_session),
    locks: SeatLockManager = Depends(get_lock_manager),
):
    """Bus details with the live state of every seat."""
    bus, seats = await bus_service.seat_map(db, locks, bus_id)
    available = sum(1 for s in seats if not s.is_booked)
    summary = BusSummary.from_model(bus, available_seats=available)
    return BusDetailResponse(data=BusDetail(**summary.model_dump(), seats=seats))


@router.post("/{bus_id}/lock-seats", response_model=SeatLockResponse)
async def lock_seats(
    bus_id: int,
    req: SeatLockRequest,
    db: AsyncSession = Depends(get_session),
    locks: SeatLockManager = Depends(get_lock_manager),
):
    """Hold every requested seat for the session, or none of them (409)."""
    grant = await bus_service.lock_bus_seats(db, locks, bus_id, req.seat_numbers, req.session_id)
    return SeatLockResponse(locked_seats=grant.seat_numbers, expires_at=grant.expires_at)


@router.post("/{bus_id}/unlock-seats", response_model=SeatUnlockResponse)
async def unlock_seats(
    bus_id: int,
    req: SeatLockRequest,
    locks: SeatLockManager = Depends(get_lock_manager),
):
    """Release the session's holds. Always succeeds; seats it does not hold are ignored."""
    released = await locks.unlock_seats(bus_id, req.seat_numbers, req.session_id)
    return SeatUnlockResponse(unlocked_seats=released)
