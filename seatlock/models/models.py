from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from seatlock.db.base import Base


class Bus(Base):
    """One bus running one route on one journey date."""

    __tablename__ = "buses"
    id = Column(Integer, primary_key=True)
    bus_name = Column(String(255), nullable=False)
    bus_type = Column(String(64), nullable=True)
    from_city = Column(String(128), nullable=False, index=True)
    to_city = Column(String(128), nullable=False, index=True)
    journey_date = Column(Date, nullable=False, index=True)
    departure_time = Column(String(16), nullable=True)
    arrival_time = Column(String(16), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    total_seats = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (Index("ix_bus_route_date", "from_city", "to_city", "journey_date"),)


class Seat(Base):
    # holds live in redis; this row only tracks the permanent booked state
    __tablename__ = "seats"
    id = Column(Integer, primary_key=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_number = Column(String(16), nullable=False)
    is_booked = Column(Boolean, default=False, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    passenger_name = Column(String(255), nullable=True)
    passenger_age = Column(Integer, nullable=True)
    passenger_gender = Column(String(16), nullable=True)

    __table_args__ = (UniqueConstraint("bus_id", "seat_number", name="uq_bus_seat_number"),)


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    pnr = Column(String(16), nullable=False, unique=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String(128), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(32), nullable=False)
    total_seats = Column(Integer, nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(50), nullable=False, default="confirmed", index=True)
    booked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    bus = relationship("Bus", lazy="selectin")
    passengers = relationship(
        "Passenger",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="Passenger.id",
    )


class Passenger(Base):
    __tablename__ = "passengers"
    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=False)
    gender = Column(String(16), nullable=False)
    seat_number = Column(String(16), nullable=False)

    booking = relationship("Booking", back_populates="passengers")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True)
    actor_id = Column(Integer, nullable=True, index=True)
    action = Column(String(255), nullable=False)
    object_type = Column(String(128), nullable=True)
    object_id = Column(String(128), nullable=True)
    detail = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Review(Base):
    # one review per booking, written by the passenger who booked
    __tablename__ = "reviews"
    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    stars = Column(Integer, nullable=False)
    review = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
