from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from seatlock.schemas.bus import BusSummary
from seatlock.schemas.common import SESSION_ID_PATTERN, CamelModel, SeatNumber

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^\d{10}$"


class PassengerIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    age: int = Field(..., ge=1, le=120)
    gender: Literal["Male", "Female", "Other"] = "Male"
    seat_number: SeatNumber


class BookingCreateRequest(CamelModel):
    bus_id: int
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)
    passengers: List[PassengerIn] = Field(..., min_length=1)
    contact_email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    contact_phone: str = Field(..., pattern=PHONE_PATTERN)

    @field_validator("passengers")
    @classmethod
    def one_passenger_per_seat(cls, passengers):
        seats = [p.seat_number for p in passengers]
        if len(seats) != len(set(seats)):
            raise ValueError("each passenger needs a different seat")
        return passengers

    @property
    def seat_numbers(self) -> List[str]:
        return [p.seat_number for p in self.passengers]


class PassengerOut(CamelModel):
    name: str
    age: int
    gender: str
    seat_number: str


class BookingOut(CamelModel):
    id: int
    pnr: str
    user_id: int
    bus_id: int
    status: str
    total_seats: int
    total_amount: float
    contact_email: str
    contact_phone: str
    booked_at: datetime
    cancelled_at: Optional[datetime] = None
    bus: Optional[BusSummary] = None
    passengers: List[PassengerOut] = []

    @classmethod
    def from_model(cls, booking) -> "BookingOut":
        return cls(
            id=booking.id,
            pnr=booking.pnr,
            user_id=booking.user_id,
            bus_id=booking.bus_id,
            status=booking.status,
            total_seats=booking.total_seats,
            total_amount=float(booking.total_amount or 0),
            contact_email=booking.contact_email,
            contact_phone=booking.contact_phone,
            booked_at=booking.booked_at,
            cancelled_at=booking.cancelled_at,
            bus=BusSummary.from_model(booking.bus) if booking.bus is not None else None,
            passengers=[
                PassengerOut(name=p.name, age=p.age, gender=p.gender, seat_number=p.seat_number)
                for p in booking.passengers
            ],
        )


class BookingResponse(BaseModel):
    success: bool = True
    data: BookingOut


class BookingListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[BookingOut]


class AdminStats(CamelModel):
    total_buses: int
    total_bookings: int
    total_revenue: float
    recent_bookings: List[BookingOut] = []


class AdminStatsResponse(BaseModel):
    success: bool = True
    data: AdminStats


class AuditEntryOut(CamelModel):
    action: str
    actor_id: Optional[int] = None
    detail: Optional[dict] = None
    created_at: datetime


class BookingHistoryResponse(BaseModel):
    success: bool = True
    count: int
    data: List[AuditEntryOut]
