"""Turns a session's seat holds into a permanent booking, and cancels bookings."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from redis.exceptions import RedisError
from sqlalchemy import func as sa_func
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.exceptions import BookingStateError, Forbidden, HoldExpired, NotFound
from seatlock.metrics import BOOKING_CANCELLATIONS, BOOKING_FINALIZE
from seatlock.models.models import AuditLog, Booking, Bus, Passenger, Seat
from seatlock.schemas.booking import BookingCreateRequest
from seatlock.services.audit import audit_trail, log_audit
from seatlock.services.seat_lock import Claim, SeatLockManager

logger = logging.getLogger(__name__)


def generate_pnr() -> str:
    return "PNR" + uuid4().hex[:8].upper()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _restore_claim(locks: SeatLockManager, claim: Claim) -> None:
    try:
        await locks.restore_seats(claim)
    except RedisError:
        logger.warning(
            "could not restore claimed holds",
            exc_info=True,
            extra={"bus_id": claim.bus_id, "session_id": claim.session_id},
        )


async def finalize_booking(
    db: AsyncSession, locks: SeatLockManager, user_id: int, req: BookingCreateRequest
) -> Booking:
    """Create a booking from the seats ``req.session_id`` currently holds.

    Every referenced seat must still be held by the session. If any is not,
    HoldExpired is raised, nothing is written and the remaining holds are left
    alone so they lapse or get released on their own. If the write fails after
    the holds were claimed, they get their earlier expiry back.
    """
    seat_numbers = req.seat_numbers
    claim: Optional[Claim] = None

    try:
        async with db.begin():
            bus = await db.get(Bus, req.bus_id)
            if bus is None:
                raise NotFound(f"Bus {req.bus_id} not found")

            claim = await locks.claim_seats(bus.id, seat_numbers, req.session_id)
            if not claim.ok:
                BOOKING_FINALIZE.labels(result="hold_expired").inc()
                logger.info(
                    "booking rejected, holds lapsed",
                    extra={"bus_id": bus.id, "session_id": req.session_id, "seats": claim.missing},
                )
                raise HoldExpired(claim.missing)

            booking = Booking(
                pnr=generate_pnr(),
                user_id=user_id,
                bus_id=bus.id,
                bus=bus,
                session_id=req.session_id,
                contact_email=req.contact_email,
                contact_phone=req.contact_phone,
                total_seats=len(seat_numbers),
                total_amount=Decimal(str(bus.price or 0)) * len(seat_numbers),
                status="confirmed",
                booked_at=_utcnow(),
                passengers=[
                    Passenger(name=p.name, age=p.age, gender=p.gender, seat_number=p.seat_number)
                    for p in req.passengers
                ],
            )
            db.add(booking)
            await db.flush()

            for p in req.passengers:
                upd = (
                    sa_update(Seat)
                    .where(Seat.bus_id == bus.id)
                    .where(Seat.seat_number == p.seat_number)
                    .where(Seat.is_booked == False)  # noqa: E712
                    .values(
                        is_booked=True,
                        booking_id=booking.id,
                        passenger_name=p.name,
                        passenger_age=p.age,
                        passenger_gender=p.gender,
                    )
                    .execution_options(synchronize_session=False)
                )
                result = await db.execute(upd)
                if result.rowcount != 1:
                    # seat missing or booked already; rolls back the whole booking
                    BOOKING_FINALIZE.labels(result="hold_expired").inc()
                    raise HoldExpired([p.seat_number])

            await log_audit(
                db,
                actor_id=user_id,
                action="create_booking",
                object_type="booking",
                object_id=booking.pnr,
                detail={"bus_id": bus.id, "seats": seat_numbers, "session_id": req.session_id},
            )
    except Exception:
        if claim is not None and claim.ok:
            await _restore_claim(locks, claim)
        raise

    BOOKING_FINALIZE.labels(result="confirmed").inc()
    logger.info(
        "booking confirmed",
        extra={"booking_id": booking.id, "pnr": booking.pnr, "bus_id": bus.id, "seats": seat_numbers},
    )

    # the rows are committed; a failed swap leaves pinned holds that lapse on their own
    try:
        await locks.mark_booked(bus.id, seat_numbers, req.session_id, booking.pnr)
    except RedisError:
        logger.warning("could not mark seats booked", exc_info=True, extra={"pnr": booking.pnr})
    return booking


async def get_booking(db: AsyncSession, user_id: int, booking_id: int) -> Booking:
    booking = await db.get(Booking, booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    if booking.user_id != user_id:
        raise Forbidden("Booking belongs to another user")
    return booking


async def list_user_bookings(db: AsyncSession, user_id: int) -> List[Booking]:
    stmt = sa_select(Booking).where(Booking.user_id == user_id).order_by(Booking.booked_at.desc(), Booking.id.desc())
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def cancel_booking(db: AsyncSession, locks: SeatLockManager, user_id: int, booking_id: int) -> Booking:
    """Cancel a confirmed booking and return its seats to the pool."""
    async with db.begin():
        booking = await get_booking(db, user_id, booking_id)
        if booking.status != "confirmed":
            raise BookingStateError(f"Booking {booking.pnr} is already {booking.status}")
        seat_numbers = [p.seat_number for p in booking.passengers]
        booking.status = "cancelled"
        booking.cancelled_at = _utcnow()
        upd = (
            sa_update(Seat)
            .where(Seat.booking_id == booking.id)
            .values(
                is_booked=False,
                booking_id=None,
                passenger_name=None,
                passenger_age=None,
                passenger_gender=None,
            )
            .execution_options(synchronize_session=False)
        )
        await db.execute(upd)
        await log_audit(
            db,
            actor_id=user_id,
            action="cancel_booking",
            object_type="booking",
            object_id=booking.pnr,
            detail={"bus_id": booking.bus_id},
        )

    BOOKING_CANCELLATIONS.inc()
    logger.info("booking cancelled", extra={"booking_id": booking.id, "pnr": booking.pnr})

    try:
        await locks.release_booked(booking.bus_id, seat_numbers, booking.pnr)
    except RedisError:
        logger.warning("could not clear booked markers", exc_info=True, extra={"pnr": booking.pnr})
    return booking


async def booking_history(db: AsyncSession, user_id: int, booking_id: int) -> List[AuditLog]:
    """Audit entries recorded against one of the user's bookings, oldest first."""
    booking = await get_booking(db, user_id, booking_id)
    return await audit_trail(db, "booking", booking.pnr)


async def admin_stats(db: AsyncSession, recent: int = 10) -> dict:
    total_buses = await db.scalar(sa_select(sa_func.count(Bus.id)))
    total_bookings = await db.scalar(sa_select(sa_func.count(Booking.id)))
    # cancelled bookings are refunded and do not count as revenue
    revenue = await db.scalar(
        sa_select(sa_func.coalesce(sa_func.sum(Booking.total_amount), 0)).where(Booking.status == "confirmed")
    )
    res = await db.execute(sa_select(Booking).order_by(Booking.booked_at.desc(), Booking.id.desc()).limit(recent))
    return {
        "total_buses": total_buses or 0,
        "total_bookings": total_bookings or 0,
        "total_revenue": float(revenue or 0),
        "recent_bookings": list(res.scalars().all()),
    }
