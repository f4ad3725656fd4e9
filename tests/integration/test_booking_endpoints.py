"""Booking finalize, lookup and cancellation over ASGI."""
import re

import pytest
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update

from seatlock.exceptions import SeatUnavailable
from seatlock.models.models import AuditLog, Booking, Seat
from seatlock.services.auth import create_access_token
from seatlock.services.buses import unholdable_seats


def _booking_payload(bus_id, seats, session_id="session_a", **overrides):
    payload = {
        "busId": bus_id,
        "sessionId": session_id,
        "passengers": [
            {"name": f"Passenger {i}", "age": 30 + i, "gender": "Female", "seatNumber": seat}
            for i, seat in enumerate(seats)
        ],
        "contactEmail": "asha@example.com",
        "contactPhone": "9876543210",
    }
    payload.update(overrides)
    return payload


async def _lock(client, bus_id, seats, session_id="session_a"):
    resp = await client.post(f"/buses/{bus_id}/lock-seats", json={"seatNumbers": seats, "sessionId": session_id})
    assert resp.status_code == 200, resp.text
    return resp


async def _book(client, bus_id, seats, headers, session_id="session_a"):
    await _lock(client, bus_id, seats, session_id)
    resp = await client.post("/bookings/create", json=_booking_payload(bus_id, seats, session_id), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _seat_states(client, bus_id):
    resp = await client.get(f"/buses/{bus_id}")
    return {s["seatNumber"]: s for s in resp.json()["data"]["seats"]}


class TestCreateBooking:
    async def test_held_seats_become_booked(self, client, bus, auth_headers, user_id, locks, session_factory):
        await _lock(client, bus.id, ["S1", "S2"])

        resp = await client.post("/bookings/create", json=_booking_payload(bus.id, ["S1", "S2"]), headers=auth_headers)

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert re.match(r"^PNR[0-9A-F]{8}$", data["pnr"])
        assert data["status"] == "confirmed"
        assert data["userId"] == user_id
        assert data["totalSeats"] == 2
        assert data["totalAmount"] == 900.0
        assert data["bus"]["from"] == "Mumbai"
        assert [p["seatNumber"] for p in data["passengers"]] == ["S1", "S2"]

        seats = await _seat_states(client, bus.id)
        assert seats["S1"]["isBooked"] is True
        assert seats["S2"]["isBooked"] is True
        assert seats["S1"]["isLocked"] is False
        assert await locks.snapshot(bus.id, ["S1", "S2"]) == {}

        async with session_factory() as session:
            seat = (await session.execute(
                sa_select(Seat).where(Seat.bus_id == bus.id, Seat.seat_number == "S1")
            )).scalar_one()
            audit = (await session.execute(
                sa_select(AuditLog).where(AuditLog.action == "create_booking")
            )).scalar_one()
        assert seat.booking_id == data["id"]
        assert seat.passenger_name == "Passenger 0"
        assert audit.object_id == data["pnr"]

    async def test_booked_seat_cannot_be_locked(self, client, bus, auth_headers):
        await _book(client, bus.id, ["S1"], auth_headers)

        resp = await client.post(
            f"/buses/{bus.id}/lock-seats", json={"seatNumbers": ["S1"], "sessionId": "session_b"}
        )

        assert resp.status_code == 409
        assert resp.json()["unavailableSeats"] == ["S1"]

    async def test_lock_that_read_seats_before_the_commit_still_loses(
        self, client, bus, auth_headers, session_factory, locks
    ):
        # Given: B's lock request read S1 as free just before A's booking committed
        async with session_factory() as session:
            blocked = await unholdable_seats(session, bus.id, ["S1"])
        assert blocked == set()
        await _book(client, bus.id, ["S1"], auth_headers)

        # When: B's Redis step runs with that stale view
        with pytest.raises(SeatUnavailable) as exc_info:
            await locks.lock_seats(bus.id, ["S1"], "session_b", blocked=blocked)

        # Then: the booked marker refuses it
        assert exc_info.value.unavailable_seats == ["S1"]
        assert await locks.snapshot(bus.id, ["S1"]) == {}

    async def test_resubmit_after_success_is_rejected(self, client, bus, auth_headers):
        payload = _booking_payload(bus.id, ["S1", "S2"])
        await _lock(client, bus.id, ["S1", "S2"])
        first = await client.post("/bookings/create", json=payload, headers=auth_headers)

        second = await client.post("/bookings/create", json=payload, headers=auth_headers)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["code"] == "HOLD_EXPIRED"
        assert second.json()["expiredSeats"] == ["S1", "S2"]

    async def test_one_lapsed_hold_fails_the_whole_booking(self, client, bus, auth_headers, user_id, clock, locks):
        # Given: S2's hold lapsed before S1 was picked, so the new grant did not revive it
        await _lock(client, bus.id, ["S2"])
        clock.advance(181)
        await _lock(client, bus.id, ["S1"])

        # When
        resp = await client.post("/bookings/create", json=_booking_payload(bus.id, ["S1", "S2"]), headers=auth_headers)

        # Then: nothing is booked and S1 stays with the session
        assert resp.status_code == 409
        body = resp.json()
        assert body["code"] == "HOLD_EXPIRED"
        assert body["expiredSeats"] == ["S2"]
        listing = await client.get(f"/bookings/user/{user_id}", headers=auth_headers)
        assert listing.json()["count"] == 0
        holds = await locks.snapshot(bus.id, ["S1", "S2"])
        assert list(holds) == ["S1"]
        assert holds["S1"].session_id == "session_a"

    async def test_seats_held_by_another_session_are_rejected(self, client, bus, auth_headers):
        await _lock(client, bus.id, ["S1"], session_id="session_b")

        resp = await client.post("/bookings/create", json=_booking_payload(bus.id, ["S1"]), headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["expiredSeats"] == ["S1"]

    async def test_seat_booked_underneath_a_hold_rolls_back(
        self, client, bus, auth_headers, session_factory, locks, clock
    ):
        await _lock(client, bus.id, ["S1", "S2"])
        granted = await locks.snapshot(bus.id, ["S1", "S2"])
        # inside the finalize grace period, so the claim pins both holds
        clock.advance(170)
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    sa_update(Seat).where(Seat.bus_id == bus.id, Seat.seat_number == "S2").values(is_booked=True)
                )

        resp = await client.post("/bookings/create", json=_booking_payload(bus.id, ["S1", "S2"]), headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["expiredSeats"] == ["S2"]
        async with session_factory() as session:
            bookings = (await session.execute(sa_select(Booking))).scalars().all()
            s1 = (await session.execute(
                sa_select(Seat).where(Seat.bus_id == bus.id, Seat.seat_number == "S1")
            )).scalar_one()
        assert bookings == []
        assert s1.is_booked is False
        # the pinned hold on S1 is back on its original deadline
        holds = await locks.snapshot(bus.id, ["S1"])
        assert holds["S1"].expires_at == granted["S1"].expires_at
        clock.advance(11)
        await _lock(client, bus.id, ["S1"], session_id="session_b")

    async def test_unknown_bus_is_404(self, client, auth_headers):
        resp = await client.post("/bookings/create", json=_booking_payload(9999, ["S1"]), headers=auth_headers)
        assert resp.status_code == 404

    @pytest.mark.parametrize(
        "overrides",
        [
            {"contactPhone": "12345"},
            {"contactEmail": "not-an-email"},
            {"passengers": []},
            {
                "passengers": [
                    {"name": "A", "age": 30, "gender": "Male", "seatNumber": "S1"},
                    {"name": "B", "age": 31, "gender": "Male", "seatNumber": "S1"},
                ]
            },
            {"passengers": [{"name": "A", "age": 0, "gender": "Male", "seatNumber": "S1"}]},
        ],
    )
    async def test_invalid_payload_is_422(self, client, bus, auth_headers, overrides):
        resp = await client.post(
            "/bookings/create", json=_booking_payload(bus.id, ["S1"], **overrides), headers=auth_headers
        )
        assert resp.status_code == 422

    async def test_requires_bearer_token(self, client, bus):
        resp = await client.post("/bookings/create", json=_booking_payload(bus.id, ["S1"]))
        assert resp.status_code == 401

    async def test_rejects_invalid_token(self, client, bus):
        resp = await client.post(
            "/bookings/create",
            json=_booking_payload(bus.id, ["S1"]),
            headers={"Authorization": "Bearer not-a-jwt"},
        )
        assert resp.status_code == 401


class TestReadBookings:
    async def test_get_own_booking(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S4"], auth_headers)

        resp = await client.get(f"/bookings/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        assert resp.json()["data"]["pnr"] == created["pnr"]

    async def test_other_users_booking_is_forbidden(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S4"], auth_headers)
        stranger = {"Authorization": f"Bearer {create_access_token(202)}"}

        resp = await client.get(f"/bookings/{created['id']}", headers=stranger)

        assert resp.status_code == 403

    async def test_missing_booking_is_404(self, client, auth_headers):
        resp = await client.get("/bookings/31337", headers=auth_headers)
        assert resp.status_code == 404

    async def test_list_user_bookings(self, client, bus, auth_headers, user_id):
        await _book(client, bus.id, ["S1"], auth_headers, session_id="session_a")
        await _book(client, bus.id, ["S2", "S3"], auth_headers, session_id="session_b")

        resp = await client.get(f"/bookings/user/{user_id}", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert sorted(b["totalSeats"] for b in body["data"]) == [1, 2]

    async def test_listing_another_user_is_forbidden(self, client, auth_headers):
        resp = await client.get("/bookings/user/202", headers=auth_headers)
        assert resp.status_code == 403


class TestCancelBooking:
    async def test_cancel_frees_the_seats(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S5", "S6"], auth_headers)

        resp = await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["status"] == "cancelled"
        assert data["cancelledAt"] is not None
        seats = await _seat_states(client, bus.id)
        assert seats["S5"]["isBooked"] is False
        assert seats["S6"]["isBooked"] is False
        await _lock(client, bus.id, ["S5"], session_id="session_c")

    async def test_cancel_twice_is_409(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S5"], auth_headers)
        await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        resp = await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["code"] == "INVALID_BOOKING_STATE"

    async def test_cancel_other_users_booking_is_forbidden(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S5"], auth_headers)
        stranger = {"Authorization": f"Bearer {create_access_token(202)}"}

        resp = await client.put(f"/bookings/cancel/{created['id']}", headers=stranger)

        assert resp.status_code == 403

    async def test_cancel_clears_the_booked_marker(self, client, bus, auth_headers, redis, locks):
        created = await _book(client, bus.id, ["S8"], auth_headers)
        assert await redis.hget(locks.key(bus.id, "S8"), "booked") == created["pnr"]

        await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        assert await redis.exists(locks.key(bus.id, "S8")) == 0


class TestBookingHistory:
    async def test_history_lists_booking_and_cancellation(self, client, bus, auth_headers, user_id):
        created = await _book(client, bus.id, ["S7"], auth_headers)
        await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        resp = await client.get(f"/bookings/{created['id']}/history", headers=auth_headers)

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert [e["action"] for e in body["data"]] == ["create_booking", "cancel_booking"]
        assert {e["actorId"] for e in body["data"]} == {user_id}
        assert body["data"][0]["detail"]["seats"] == ["S7"]

    async def test_history_of_another_users_booking_is_forbidden(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S7"], auth_headers)
        stranger = {"Authorization": f"Bearer {create_access_token(202)}"}

        resp = await client.get(f"/bookings/{created['id']}/history", headers=stranger)

        assert resp.status_code == 403


class TestAdminStats:
    async def test_stats_sum_confirmed_revenue(self, client, bus, auth_headers, admin_headers):
        await _book(client, bus.id, ["S1", "S2"], auth_headers, session_id="session_a")
        cancelled = await _book(client, bus.id, ["S3"], auth_headers, session_id="session_b")
        await client.put(f"/bookings/cancel/{cancelled['id']}", headers=auth_headers)

        resp = await client.get("/bookings/admin/stats", headers=admin_headers)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["totalBuses"] == 1
        assert data["totalBookings"] == 2
        assert data["totalRevenue"] == 900.0
        assert len(data["recentBookings"]) == 2
        assert {b["status"] for b in data["recentBookings"]} == {"confirmed", "cancelled"}

    async def test_stats_on_empty_store(self, client, admin_headers):
        resp = await client.get("/bookings/admin/stats", headers=admin_headers)

        assert resp.json()["data"] == {
            "totalBuses": 0,
            "totalBookings": 0,
            "totalRevenue": 0.0,
            "recentBookings": [],
        }

    async def test_stats_need_admin_role(self, client, auth_headers):
        resp = await client.get("/bookings/admin/stats", headers=auth_headers)
        assert resp.status_code == 403


class TestReviews:
    async def test_review_a_confirmed_booking(self, client, bus, auth_headers, user_id):
        created = await _book(client, bus.id, ["S1"], auth_headers)

        resp = await client.post(
            f"/bookings/{created['id']}/review", json={"stars": 4, "review": "Clean and on time"}, headers=auth_headers
        )

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["stars"] == 4
        assert data["busId"] == bus.id
        assert data["userId"] == user_id
        assert data["review"] == "Clean and on time"

    async def test_second_review_is_409(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S1"], auth_headers)
        await client.post(f"/bookings/{created['id']}/review", json={"stars": 5}, headers=auth_headers)

        resp = await client.post(f"/bookings/{created['id']}/review", json={"stars": 1}, headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["code"] == "REVIEW_EXISTS"

    async def test_cancelled_booking_cannot_be_reviewed(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S1"], auth_headers)
        await client.put(f"/bookings/cancel/{created['id']}", headers=auth_headers)

        resp = await client.post(f"/bookings/{created['id']}/review", json={"stars": 3}, headers=auth_headers)

        assert resp.status_code == 409
        assert resp.json()["code"] == "INVALID_BOOKING_STATE"

    async def test_only_the_owner_can_review(self, client, bus, auth_headers):
        created = await _book(client, bus.id, ["S1"], auth_headers)
        stranger = {"Authorization": f"Bearer {create_access_token(202)}"}

        resp = await client.post(f"/bookings/{created['id']}/review", json={"stars": 3}, headers=stranger)

        assert resp.status_code == 403

    @pytest.mark.parametrize("stars", [0, 6])
    async def test_stars_out_of_range_is_422(self, client, bus, auth_headers, stars):
        created = await _book(client, bus.id, ["S1"], auth_headers)

        resp = await client.post(f"/bookings/{created['id']}/review", json={"stars": stars}, headers=auth_headers)

        assert resp.status_code == 422

    async def test_bus_reviews_average_the_stars(self, client, bus, auth_headers):
        first = await _book(client, bus.id, ["S1"], auth_headers, session_id="session_a")
        second = await _book(client, bus.id, ["S2"], auth_headers, session_id="session_b")
        await client.post(f"/bookings/{first['id']}/review", json={"stars": 5}, headers=auth_headers)
        await client.post(f"/bookings/{second['id']}/review", json={"stars": 2}, headers=auth_headers)

        resp = await client.get(f"/bookings/bus/{bus.id}/reviews")

        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 2
        assert body["averageRating"] == 3.5
        assert sorted(r["stars"] for r in body["data"]) == [2, 5]

    async def test_bus_without_reviews(self, client, bus):
        resp = await client.get(f"/bookings/bus/{bus.id}/reviews")

        assert resp.json() == {"success": True, "count": 0, "averageRating": None, "data": []}
