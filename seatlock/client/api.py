import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from seatlock.client.errors import ApiError, HoldExpiredError, SeatUnavailableError

logger = logging.getLogger(__name__)


class BusAPI:
    """Thin async wrapper over the booking backend's HTTP interface."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ApiError(f"{method} {url} failed: {exc}") from exc

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.is_success:
            return body

        if not isinstance(body, dict):
            body = {}
        code = body.get("code")
        message = body.get("message") or body.get("detail") or resp.reason_phrase
        if code == "SEAT_UNAVAILABLE":
            raise SeatUnavailableError(body.get("unavailableSeats", []), message)
        if code == "HOLD_EXPIRED":
            raise HoldExpiredError(body.get("expiredSeats", []), message)
        raise ApiError(str(message), status_code=resp.status_code, code=code)

    async def get_bus(self, bus_id: int) -> Dict[str, Any]:
        body = await self._request("GET", f"/buses/{bus_id}")
        return body["data"]

    async def lock_seats(self, bus_id: int, seat_numbers: Iterable[str], session_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/buses/{bus_id}/lock-seats",
            json={"seatNumbers": list(seat_numbers), "sessionId": session_id},
        )

    async def unlock_seats(self, bus_id: int, seat_numbers: Iterable[str], session_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST",
            f"/buses/{bus_id}/unlock-seats",
            json={"seatNumbers": list(seat_numbers), "sessionId": session_id},
        )

    async def create_booking(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("POST", "/bookings/create", json=payload)
        return body["data"]
