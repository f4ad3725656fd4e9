from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from seatlock.schemas.common import SESSION_ID_PATTERN, CamelModel, SeatNumber


class SeatState(CamelModel):
    seat_number: str
    is_booked: bool
    is_locked: bool = False
    locked_by: Optional[str] = None
    lock_expires_at: Optional[datetime] = None


class BusSummary(CamelModel):
    id: int
    bus_name: str
    bus_type: Optional[str] = None
    from_city: str = Field(alias="from")
    to_city: str = Field(alias="to")
    journey_date: date
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    price: float
    total_seats: int
    available_seats: Optional[int] = None

    @classmethod
    def from_model(cls, bus, available_seats: Optional[int] = None) -> "BusSummary":
        return cls(
            id=bus.id,
            bus_name=bus.bus_name,
            bus_type=bus.bus_type,
            from_city=bus.from_city,
            to_city=bus.to_city,
            journey_date=bus.journey_date,
            departure_time=bus.departure_time,
            arrival_time=bus.arrival_time,
            price=float(bus.price or 0),
            total_seats=bus.total_seats,
            available_seats=available_seats,
        )


class BusDetail(BusSummary):
    seats: List[SeatState] = []


class BusCreateRequest(CamelModel):
    bus_name: str = Field(..., min_length=1, max_length=255)
    bus_type: Optional[str] = Field(None, max_length=64)
    from_city: str = Field(..., alias="from", min_length=1, max_length=128)
    to_city: str = Field(..., alias="to", min_length=1, max_length=128)
    journey_date: date
    departure_time: Optional[str] = Field(None, max_length=16)
    arrival_time: Optional[str] = Field(None, max_length=16)
    price: float = Field(..., ge=0)
    total_seats: int = Field(..., ge=1, le=100)


class BusResponse(BaseModel):
    success: bool = True
    data: BusSummary


class BusDetailResponse(BaseModel):
    success: bool = True
    data: BusDetail


class BusListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[BusSummary]


class CityListResponse(BaseModel):
    success: bool = True
    data: Dict[str, List[str]]


class SeatLockRequest(CamelModel):
    seat_numbers: List[SeatNumber] = Field(..., min_length=1, max_length=50)
    session_id: str = Field(..., pattern=SESSION_ID_PATTERN)


class SeatLockResponse(CamelModel):
    success: bool = True
    locked_seats: List[str]
    expires_at: datetime


class SeatUnlockResponse(CamelModel):
    success: bool = True
    unlocked_seats: List[str]


class AvailableDatesResponse(BaseModel):
    success: bool = True
    count: int
    data: List[date]
