from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.auth.deps import get_current_user_id, role_required
from seatlock.db.session import get_session
from seatlock.exceptions import Forbidden
from seatlock.schemas.booking import (
    AdminStats,
    AdminStatsResponse,
    AuditEntryOut,
    BookingCreateRequest,
    BookingHistoryResponse,
    BookingListResponse,
    BookingOut,
    BookingResponse,
)
from seatlock.schemas.review import BusReviewsResponse, ReviewCreateRequest, ReviewOut, ReviewResponse
from seatlock.services import booking as booking_service
from seatlock.services import reviews as review_service
from seatlock.services.seat_lock import SeatLockManager, get_lock_manager

router = APIRouter()


@router.post("/create", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    req: BookingCreateRequest,
    db: AsyncSession = Depends(get_session),
    locks: SeatLockManager = Depends(get_lock_manager),
    user_id: int = Depends(get_current_user_id),
):
    """Convert the session's held seats into a booking; 409 HOLD_EXPIRED if any hold lapsed."""
    booking = await booking_service.finalize_booking(db, locks, user_id, req)
    return BookingResponse(data=BookingOut.from_model(booking))


@router.get("/admin/stats", response_model=AdminStatsResponse, dependencies=[Depends(role_required(["Admin"]))])
async def admin_stats(db: AsyncSession = Depends(get_session)):
    stats = await booking_service.admin_stats(db)
    recent = [BookingOut.from_model(b) for b in stats.pop("recent_bookings")]
    return AdminStatsResponse(data=AdminStats(**stats, recent_bookings=recent))


@router.get("/user/{user_id}", response_model=BookingListResponse)
async def user_bookings(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    current_user_id: int = Depends(get_current_user_id),
):
    if user_id != current_user_id:
        raise Forbidden("Cannot list another user's bookings")
    bookings = await booking_service.list_user_bookings(db, user_id)
    return BookingListResponse(count=len(bookings), data=[BookingOut.from_model(b) for b in bookings])


@router.get("/bus/{bus_id}/reviews", response_model=BusReviewsResponse)
async def bus_reviews(bus_id: int, db: AsyncSession = Depends(get_session)):
    reviews, average = await review_service.bus_reviews(db, bus_id)
    return BusReviewsResponse(
        count=len(reviews),
        average_rating=average,
        data=[ReviewOut.from_model(r) for r in reviews],
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
):
    booking = await booking_service.get_booking(db, user_id, booking_id)
    return BookingResponse(data=BookingOut.from_model(booking))


@router.get("/{booking_id}/history", response_model=BookingHistoryResponse)
async def booking_history(
    booking_id: int,
    db: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
):
    entries = await booking_service.booking_history(db, user_id, booking_id)
    data = [
        AuditEntryOut(action=e.action, actor_id=e.actor_id, detail=e.detail, created_at=e.created_at)
        for e in entries
    ]
    return BookingHistoryResponse(count=len(data), data=data)


@router.post("/{booking_id}/review", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def review_booking(
    booking_id: int,
    req: ReviewCreateRequest,
    db: AsyncSession = Depends(get_session),
    user_id: int = Depends(get_current_user_id),
):
    review = await review_service.submit_review(db, user_id, booking_id, req)
    return ReviewResponse(data=ReviewOut.from_model(review))


@router.put("/cancel/{booking_id}", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_session),
    locks: SeatLockManager = Depends(get_lock_manager),
    user_id: int = Depends(get_current_user_id),
):
    booking = await booking_service.cancel_booking(db, locks, user_id, booking_id)
    return BookingResponse(data=BookingOut.from_model(booking))
