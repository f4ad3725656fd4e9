"""Passenger reviews of buses, one per confirmed booking."""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import func as sa_func
from sqlalchemy import select as sa_select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.exceptions import BookingStateError, ReviewExists
from seatlock.models.models import Review
from seatlock.schemas.review import ReviewCreateRequest
from seatlock.services.audit import log_audit
from seatlock.services.booking import get_booking

logger = logging.getLogger(__name__)


async def submit_review(db: AsyncSession, user_id: int, booking_id: int, req: ReviewCreateRequest) -> Review:
    try:
        async with db.begin():
            booking = await get_booking(db, user_id, booking_id)
            if booking.status != "confirmed":
                raise BookingStateError(f"Booking {booking.pnr} is {booking.status} and cannot be reviewed")
            existing = await db.execute(sa_select(Review.id).where(Review.booking_id == booking.id))
            if existing.first() is not None:
                raise ReviewExists(f"Booking {booking.pnr} has already been reviewed")
            review = Review(
                booking_id=booking.id,
                bus_id=booking.bus_id,
                user_id=user_id,
                stars=req.stars,
                review=req.review,
            )
            db.add(review)
            await db.flush()
            await log_audit(
                db,
                actor_id=user_id,
                action="review_booking",
                object_type="booking",
                object_id=booking.pnr,
                detail={"bus_id": booking.bus_id, "stars": req.stars},
            )
    except IntegrityError:
        # a concurrent submit won the unique constraint on booking_id
        raise ReviewExists(f"Booking {booking_id} has already been reviewed")
    await db.refresh(review)
    logger.info("review submitted", extra={"booking_id": booking_id, "bus_id": review.bus_id, "stars": review.stars})
    return review


async def bus_reviews(db: AsyncSession, bus_id: int) -> Tuple[List[Review], Optional[float]]:
    """Reviews for a bus, newest first, with the average star rating."""
    res = await db.execute(
        sa_select(Review).where(Review.bus_id == bus_id).order_by(Review.created_at.desc(), Review.id.desc())
    )
    reviews = list(res.scalars().all())
    avg = await db.scalar(sa_select(sa_func.avg(Review.stars)).where(Review.bus_id == bus_id))
    return reviews, (round(float(avg), 1) if avg is not None else None)
