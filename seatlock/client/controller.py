"""Client side of the seat hold protocol for one booking attempt.

A ``SeatSelectionController`` owns a session id, locks seats one at a time as
they are picked, runs the hold countdown and guarantees that its holds are
released when the flow is left, whichever way that happens::

    async with BusAPI(base_url, token=token) as api:
        async with SeatSelectionController(api, bus_id) as flow:
            await flow.select_seat("S4")
            await flow.proceed_to_details()
            flow.update_passenger("S4", name="Asha", age=31, gender="Female")
            booking = await flow.submit("asha@example.com", "9876543210")

The server is the source of truth for expiry; the countdown uses the same
duration so the two agree in practice.
"""
import asyncio
import contextlib
import logging
import random
import re
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from seatlock.client.api import BusAPI
from seatlock.client.errors import ApiError, FlowError, HoldExpiredError, SeatUnavailableError
from seatlock.client.notifier import LogNotifier, Notifier
from seatlock.config import settings

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^\d{10}$")
_BASE36 = string.digits + string.ascii_lowercase


def new_session_id(now: Optional[float] = None) -> str:
    # collisions only cause lock contention, so random is good enough here
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"session_{millis}_{suffix}"


class BookingStep(str, Enum):
    SELECTING_SEATS = "seats"
    ENTERING_PASSENGER_DETAILS = "details"
    SUBMITTING = "submitting"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_TRANSITIONS = {
    BookingStep.SELECTING_SEATS: {BookingStep.ENTERING_PASSENGER_DETAILS},
    BookingStep.ENTERING_PASSENGER_DETAILS: {BookingStep.SELECTING_SEATS, BookingStep.SUBMITTING},
    BookingStep.SUBMITTING: {BookingStep.CONFIRMED, BookingStep.FAILED, BookingStep.SELECTING_SEATS},
    BookingStep.FAILED: {BookingStep.SELECTING_SEATS, BookingStep.ENTERING_PASSENGER_DETAILS},
    BookingStep.CONFIRMED: set(),
}


@dataclass
class BookingSession:
    bus_id: int
    session_id: str = field(default_factory=new_session_id)
    started_at: float = field(default_factory=time.time)


@dataclass
class PassengerDetails:
    seat_number: str
    name: str = ""
    age: Optional[int] = None
    gender: str = "Male"

    def to_payload(self) -> Dict:
        return {"name": self.name, "age": self.age, "gender": self.gender, "seatNumber": self.seat_number}


class SeatSelectionController:
    def __init__(
        self,
        api: BusAPI,
        bus_id: int,
        notifier: Optional[Notifier] = None,
        hold_seconds: float = settings.HOLD_DURATION_SECONDS,
        max_seats: int = settings.MAX_SEATS_PER_SESSION,
        warn_before: float = 60,
        tick: float = 1.0,
    ):
        self.api = api
        self.bus_id = bus_id
        self.notifier = notifier or LogNotifier()
        self.hold_seconds = hold_seconds
        self.max_seats = max_seats
        self.warn_before = warn_before
        self.tick = tick

        self.session: Optional[BookingSession] = None
        self.step = BookingStep.SELECTING_SEATS
        self.bus: Optional[Dict] = None
        self.seats: Dict[str, Dict] = {}
        self.booking: Optional[Dict] = None
        self.time_remaining: float = hold_seconds

        self._selected: List[str] = []
        # seats with a lock call in flight; they count toward max_seats
        self._pending: Set[str] = set()
        self._passengers: Dict[str, PassengerDetails] = {}
        self._timer: Optional[asyncio.Task] = None
        self._deadline: Optional[float] = None
        self._warned = False

    # lifecycle

    async def __aenter__(self):
        await self.enter()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def enter(self):
        """Start a fresh booking attempt and load the seat map."""
        self.session = BookingSession(bus_id=self.bus_id)
        self.step = BookingStep.SELECTING_SEATS
        self.booking = None
        logger.info("seat selection started", extra={"bus_id": self.bus_id, "session_id": self.session_id})
        await self.refresh()

    async def close(self):
        """Leave the flow: stop the countdown and release every held seat."""
        await self._stop_countdown()
        if self._selected and self.session is not None:
            await self._release(list(self._selected))
        self._clear_selection()
        self.session = None

    @property
    def session_id(self) -> Optional[str]:
        return self.session.session_id if self.session else None

    @property
    def selected_seats(self) -> List[str]:
        return list(self._selected)

    @property
    def passengers(self) -> List[PassengerDetails]:
        return [self._passengers[s] for s in self._selected]

    @property
    def countdown_task(self) -> Optional[asyncio.Task]:
        return self._timer

    # seat state

    async def refresh(self):
        self.bus = await self.api.get_bus(self.bus_id)
        self.seats = {s["seatNumber"]: s for s in self.bus.get("seats", [])}

    async def _refresh_quietly(self):
        try:
            await self.refresh()
        except ApiError:
            logger.warning("could not refresh seat map", exc_info=True, extra={"bus_id": self.bus_id})

    def is_available(self, seat_number: str) -> bool:
        seat = self.seats.get(seat_number)
        if seat is None or seat.get("isBooked"):
            return False
        return not (seat.get("isLocked") and seat.get("lockedBy") != self.session_id)

    def _mark(self, seat_number: str, locked: bool):
        seat = self.seats.get(seat_number)
        if seat is not None:
            seat["isLocked"] = locked
            seat["lockedBy"] = self.session_id if locked else None

    # selection

    def _require_session(self):
        if self.session is None:
            raise FlowError("seat selection has not been entered")

    async def toggle_seat(self, seat_number: str) -> bool:
        """Select or deselect a seat. Returns True when the seat ends up held."""
        self._require_session()
        if seat_number in self._selected:
            await self.deselect_seat(seat_number)
            return False
        return await self.select_seat(seat_number)

    async def select_seat(self, seat_number: str) -> bool:
        self._require_session()
        if self.step != BookingStep.SELECTING_SEATS:
            raise FlowError(f"cannot pick seats while in step {self.step.value}")
        if seat_number in self._selected:
            return True
        if seat_number in self._pending:
            return False
        if not self.is_available(seat_number):
            await self.notifier.warning("This seat is not available", {"seat": seat_number})
            return False
        if len(self._selected) + len(self._pending) >= self.max_seats:
            await self.notifier.warning(f"Maximum {self.max_seats} seats can be selected at once")
            return False

        self._pending.add(seat_number)
        try:
            await self.api.lock_seats(self.bus_id, [seat_number], self.session_id)
        except SeatUnavailableError as exc:
            taken = ", ".join(exc.unavailable_seats or [seat_number])
            await self.notifier.error(f"Seat {taken} is no longer available", {"seats": exc.unavailable_seats})
            await self._refresh_quietly()
            return False
        except ApiError:
            logger.warning("seat lock call failed", exc_info=True, extra={"seat": seat_number})
            await self.notifier.error("Failed to lock seat. Please try again.", {"seat": seat_number})
            return False
        finally:
            self._pending.discard(seat_number)

        self._selected.append(seat_number)
        self._passengers[seat_number] = PassengerDetails(seat_number=seat_number)
        self._mark(seat_number, locked=True)
        await self._start_countdown()
        return True

    async def deselect_seat(self, seat_number: str):
        self._require_session()
        if seat_number not in self._selected:
            return
        self._selected.remove(seat_number)
        self._passengers.pop(seat_number, None)
        self._mark(seat_number, locked=False)
        await self._release([seat_number])
        if not self._selected:
            await self._stop_countdown()

    async def _release(self, seat_numbers: List[str]):
        try:
            await self.api.unlock_seats(self.bus_id, seat_numbers, self.session_id)
        except ApiError:
            # server-side expiry reclaims the seats if this never arrives
            logger.warning("seat unlock failed", exc_info=True, extra={"seats": seat_numbers})

    def _clear_selection(self):
        self._selected.clear()
        self._passengers.clear()

    # countdown

    async def _start_countdown(self, deadline: Optional[float] = None):
        loop = asyncio.get_running_loop()
        if deadline is None:
            deadline = loop.time() + self.hold_seconds
            self._warned = False
        self._deadline = deadline
        self.time_remaining = max(0.0, deadline - loop.time())
        # swap before awaiting so concurrent selections cannot orphan a timer
        previous, self._timer = self._timer, loop.create_task(self._countdown())
        await self._cancel(previous)

    async def _stop_countdown(self):
        task, self._timer = self._timer, None
        await self._cancel(task)

    @staticmethod
    async def _cancel(task: Optional[asyncio.Task]):
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _countdown(self):
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._deadline - loop.time()
            self.time_remaining = max(0.0, remaining)
            if remaining <= 0:
                break
            if not self._warned and remaining <= self.warn_before:
                self._warned = True
                await self.notifier.warning(f"Your seats are held for {int(remaining)} more seconds")
            await asyncio.sleep(min(self.tick, remaining))
        await self._expire()
        if self._timer is asyncio.current_task():
            self._timer = None

    async def _expire(self):
        seats = list(self._selected)
        logger.info("seat hold expired", extra={"session_id": self.session_id, "seats": seats})
        await self.notifier.warning("Seat selection expired. Please reselect your seats.")
        if seats:
            await self._release(seats)
        self._clear_selection()
        self.time_remaining = 0
        if self.step != BookingStep.CONFIRMED:
            self.step = BookingStep.SELECTING_SEATS
        await self._refresh_quietly()

    # booking flow

    def _transition(self, step: BookingStep):
        if step not in _TRANSITIONS[self.step]:
            raise FlowError(f"cannot move from {self.step.value} to {step.value}")
        self.step = step

    async def proceed_to_details(self) -> bool:
        if not self._selected:
            await self.notifier.warning("Please select at least one seat")
            return False
        self._transition(BookingStep.ENTERING_PASSENGER_DETAILS)
        return True

    def back_to_seats(self):
        # holds stay in place while the user edits the selection
        self._transition(BookingStep.SELECTING_SEATS)

    def back_to_details(self):
        self._transition(BookingStep.ENTERING_PASSENGER_DETAILS)

    def update_passenger(self, seat_number: str, **fields):
        passenger = self._passengers.get(seat_number)
        if passenger is None:
            raise KeyError(seat_number)
        for name, value in fields.items():
            if name not in ("name", "age", "gender"):
                raise TypeError(f"unknown passenger field {name!r}")
            setattr(passenger, name, value)

    def validate(self, contact_email: str, contact_phone: str) -> Optional[str]:
        """Problem with the entered details, or None when they can be sent."""
        for p in self.passengers:
            if not p.name or not p.age:
                return "Please fill all passenger details"
            if p.age < 1 or p.age > 120:
                return "Please enter valid age"
        if not contact_email or not contact_phone:
            return "Please provide contact email and phone number"
        if not _EMAIL_RE.match(contact_email):
            return "Please enter a valid email address"
        if not _PHONE_RE.match(contact_phone):
            return "Please enter a valid 10-digit phone number"
        return None

    async def submit(self, contact_email: str, contact_phone: str) -> Optional[Dict]:
        """Send the booking. Returns the created booking, or None on failure."""
        self._require_session()
        if self.step != BookingStep.ENTERING_PASSENGER_DETAILS:
            raise FlowError(f"cannot submit from step {self.step.value}")
        problem = self.validate(contact_email, contact_phone)
        if problem:
            await self.notifier.error(problem)
            return None

        self._transition(BookingStep.SUBMITTING)
        deadline = self._deadline
        # the server re-validates every hold, so the local timer pauses here
        await self._stop_countdown()
        payload = {
            "busId": self.bus_id,
            "sessionId": self.session_id,
            "passengers": [p.to_payload() for p in self.passengers],
            "contactEmail": contact_email,
            "contactPhone": contact_phone,
        }
        try:
            booking = await self.api.create_booking(payload)
        except HoldExpiredError as exc:
            logger.info("booking rejected, holds expired", extra={"seats": exc.expired_seats})
            await self.notifier.error("Your seat selection expired. Please select your seats again.")
            await self._release(list(self._selected))
            self._clear_selection()
            self._transition(BookingStep.SELECTING_SEATS)
            await self._refresh_quietly()
            return None
        except ApiError as exc:
            logger.warning("booking failed", exc_info=True)
            self._transition(BookingStep.FAILED)
            await self.notifier.error(exc.message or "Booking failed. Please try again.")
            await self._resume_countdown(deadline)
            return None

        self.booking = booking
        self._clear_selection()
        self._transition(BookingStep.CONFIRMED)
        await self.notifier.success(f"Booking successful! PNR: {booking.get('pnr')}", {"booking_id": booking.get("id")})
        return booking

    async def _resume_countdown(self, deadline: Optional[float]):
        if deadline is None or not self._selected:
            return
        if deadline <= asyncio.get_running_loop().time():
            await self._expire()
            return
        await self._start_countdown(deadline)
