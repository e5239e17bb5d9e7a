"""Integration tests for API endpoints."""

import jwt
import pytest

STAY = {"check_in": "2026-03-01", "check_out": "2026-03-03"}


def bearer(settings, sub="user-42"):
    token = jwt.encode({"sub": sub, "username": "ops", "roles": ["inventory"]}, settings.bearer_token_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


async def place_hold(client, room_type_id, quantity=1):
    response = await client.post(
        "/v1/booking/hold",
        json={**STAY, "rooms": [{"room_type_id": room_type_id, "quantity": quantity}]},
    )
    assert response.status_code == 201
    return response.json()["holds"][0]


async def place_booking(client, room_type_id):
    hold = await place_hold(client, room_type_id)
    response = await client.post(
        "/v1/booking/create",
        json={
            "hold_tokens": [hold["token"]],
            "guest": {"name": "Ada Lovelace", "email": "ada@example.com", "adults": 2},
        },
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.asyncio
async def test_quote_endpoint(test_client, room_type_id):
    """Test pricing a stay with a coupon."""
    response = await test_client.post(
        "/v1/booking/quote",
        json={**STAY, "rooms": [{"room_type_id": room_type_id, "quantity": 1}], "coupon_code": "SPRING10"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["subtotal"] == "200.00"
    assert data["discount"] == "20.00"
    assert data["total"] == "198.00"
    assert len(data["rooms"][0]["nights"]) == 2


@pytest.mark.asyncio
async def test_quote_with_unknown_coupon(test_client, room_type_id):
    """Test quoting with a coupon code that does not exist."""
    response = await test_client.post(
        "/v1/booking/quote",
        json={**STAY, "rooms": [{"room_type_id": room_type_id}], "coupon_code": "NOPE"},
    )

    assert response.status_code == 422
    data = response.json()
    assert data["code"] == "COUPON_INVALID"
    assert response.headers["content-type"].startswith("application/problem+json")


@pytest.mark.asyncio
async def test_create_hold_endpoint(test_client, room_type_id):
    """Test placing a hold."""
    hold = await place_hold(test_client, room_type_id, quantity=2)

    assert hold["status"] == "ACTIVE"
    assert hold["quantity"] == 2
    assert hold["remaining_seconds"] == 900
    assert hold["extension_count"] == 0


@pytest.mark.asyncio
async def test_create_hold_without_capacity(test_client, room_type_id):
    """Test that an over-capacity hold is rejected with a conflict."""
    await place_hold(test_client, room_type_id, quantity=2)

    response = await test_client.post(
        "/v1/booking/hold",
        json={**STAY, "rooms": [{"room_type_id": room_type_id, "quantity": 1}]},
    )

    assert response.status_code == 409
    data = response.json()
    assert data["status"] == 409
    assert data["code"] == "SLOT_UNAVAILABLE"
    assert data["unavailable_date"] == "2026-03-01"


@pytest.mark.asyncio
async def test_create_hold_invalid_data(test_client, room_type_id):
    """Test hold creation with invalid data."""
    response = await test_client.post(
        "/v1/booking/hold",
        json={**STAY, "rooms": []},
    )

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert "violations" in data


@pytest.mark.asyncio
async def test_hold_in_the_past(test_client, room_type_id):
    """Test that a stay starting before today is rejected."""
    response = await test_client.post(
        "/v1/booking/hold",
        json={"check_in": "2026-01-30", "check_out": "2026-02-02", "rooms": [{"room_type_id": room_type_id}]},
    )

    assert response.status_code == 422
    assert response.json()["code"] == "INVALID_DATE_RANGE"


@pytest.mark.asyncio
async def test_hold_get_extend_release(test_client, room_type_id, clock):
    """Test the hold lifecycle endpoints."""
    hold = await place_hold(test_client, room_type_id)
    token = hold["token"]

    clock.advance(seconds=300)
    response = await test_client.post("/v1/booking/hold/get", json={"token": token})
    assert response.status_code == 200
    assert response.json()["remaining_seconds"] == 600

    response = await test_client.post("/v1/booking/hold/extend", json={"token": token, "ttl_seconds": 1200})
    assert response.status_code == 200
    assert response.json()["remaining_seconds"] == 1200
    assert response.json()["extension_count"] == 1

    response = await test_client.post("/v1/booking/hold/release", json={"token": token})
    assert response.status_code == 200
    assert response.json() == {"token": token, "released": True}

    response = await test_client.post("/v1/booking/hold/release", json={"token": token})
    assert response.json()["released"] is False


@pytest.mark.asyncio
async def test_expired_hold_reads_as_expired(test_client, room_type_id, clock):
    """Test that a hold past its expiry is reported as expired."""
    hold = await place_hold(test_client, room_type_id)
    clock.advance(seconds=901)

    response = await test_client.post("/v1/booking/hold/get", json={"token": hold["token"]})

    assert response.status_code == 200
    assert response.json()["status"] == "EXPIRED"
    assert response.json()["remaining_seconds"] == 0


@pytest.mark.asyncio
async def test_get_unknown_hold(test_client):
    """Test looking up a token that was never issued."""
    response = await test_client.post("/v1/booking/hold/get", json={"token": "does-not-exist"})

    assert response.status_code == 404
    assert response.json()["code"] == "HOLD_NOT_FOUND"


@pytest.mark.asyncio
async def test_create_booking_endpoint(test_client, room_type_id, notifier):
    """Test converting a hold into a booking."""
    booking = await place_booking(test_client, room_type_id)

    assert booking["status"] == "pending"
    assert booking["total_amount"] == "220.00"
    assert booking["lines"][0]["unit_price"] == "100.00"
    assert notifier.names() == ["booking.created"]

    response = await test_client.post("/v1/booking/get", json={"booking_id": booking["id"]})
    assert response.status_code == 200
    assert response.json()["code"] == booking["code"]


@pytest.mark.asyncio
async def test_create_booking_from_expired_hold(test_client, room_type_id, clock):
    """Test that an expired hold cannot be booked."""
    hold = await place_hold(test_client, room_type_id)
    clock.advance(seconds=901)

    response = await test_client.post(
        "/v1/booking/create",
        json={"hold_tokens": [hold["token"]], "guest": {"name": "Ada", "email": "ada@example.com"}},
    )

    assert response.status_code == 410
    assert response.json()["code"] == "HOLD_EXPIRED"


@pytest.mark.asyncio
async def test_get_unknown_booking(test_client):
    """Test looking up a booking that does not exist."""
    response = await test_client.post("/v1/booking/get", json={"booking_id": "not-a-booking"})

    assert response.status_code == 404
    assert response.json()["code"] == "BOOKING_NOT_FOUND"


@pytest.mark.asyncio
async def test_confirm_and_cancel_booking(test_client, room_type_id):
    """Test confirming and then cancelling a booking."""
    booking = await place_booking(test_client, room_type_id)

    response = await test_client.post(
        "/v1/booking/confirm",
        json={"booking_id": booking["id"], "payment_reference": "pay_1"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
    assert response.json()["paid_amount"] == "220.00"

    response = await test_client.post("/v1/booking/refund-preview", json={"booking_id": booking["id"]})
    assert response.status_code == 200
    assert response.json()["refund_amount"] == "220.00"

    response = await test_client.post(
        "/v1/booking/cancel",
        json={"booking_id": booking["id"], "reason": "Flight cancelled"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["booking"]["status"] == "cancelled"
    assert data["booking"]["refund_status"] == "pending"
    assert data["refund"]["refund_percentage"] == 100

    response = await test_client.post("/v1/booking/cancel", json={"booking_id": booking["id"]})
    assert response.status_code == 200
    assert response.json()["refund"] == data["refund"]


@pytest.mark.asyncio
async def test_reschedule_booking_endpoint(test_client, room_type_id):
    """Test moving a booking to new dates."""
    booking = await place_booking(test_client, room_type_id)

    response = await test_client.post(
        "/v1/booking/reschedule",
        json={"booking_id": booking["id"], "check_in": "2026-03-10", "check_out": "2026-03-11"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["check_in"] == "2026-03-10"
    assert data["total_amount"] == "110.00"


@pytest.mark.asyncio
async def test_complete_before_check_out(test_client, room_type_id):
    """Test that a booking cannot be completed before check-out."""
    booking = await place_booking(test_client, room_type_id)
    await test_client.post("/v1/booking/confirm", json={"booking_id": booking["id"]})

    response = await test_client.post("/v1/booking/complete", json={"booking_id": booking["id"]})

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_availability_endpoint(test_client, room_type_id):
    """Test the availability calendar."""
    await place_hold(test_client, room_type_id)

    response = await test_client.post(
        "/v1/inventory/availability",
        json={"room_type_id": room_type_id, "start": "2026-03-01", "end": "2026-03-04"},
    )

    assert response.status_code == 200
    data = response.json()
    assert [day["available_units"] for day in data["days"]] == [1, 1, 2]
    assert data["min_available"] == 1


@pytest.mark.asyncio
async def test_adjust_inventory_records_actor(test_client, test_settings, room_type_id):
    """Test that inventory adjustments are attributed to the caller."""
    response = await test_client.post(
        "/v1/inventory/adjust",
        json={
            "room_type_id": room_type_id,
            "start": "2026-03-01",
            "end": "2026-03-02",
            "total_units": 4,
            "reason": "Renovation finished",
        },
        headers=bearer(test_settings),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["days_changed"] == 2
    assert {adjustment["actor"] for adjustment in data["adjustments"]} == {"user-42"}
    assert all(adjustment["delta"] == 2 for adjustment in data["adjustments"])


@pytest.mark.asyncio
async def test_adjust_below_committed_units(test_client, room_type_id):
    """Test that capacity cannot drop below what is already held."""
    await place_hold(test_client, room_type_id, quantity=2)

    response = await test_client.post(
        "/v1/inventory/adjust",
        json={
            "room_type_id": room_type_id,
            "start": "2026-03-01",
            "end": "2026-03-01",
            "total_units": 1,
            "reason": "Leak in room 12",
        },
    )

    assert response.status_code == 409
    assert response.json()["code"] == "CAPACITY_EXCEEDED"


@pytest.mark.asyncio
async def test_invalid_bearer_token(test_client, room_type_id):
    """Test that a malformed token is rejected."""
    response = await test_client.post(
        "/v1/inventory/adjust",
        json={
            "room_type_id": room_type_id,
            "start": "2026-03-01",
            "end": "2026-03-01",
            "total_units": 3,
            "reason": "Test",
        },
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    assert response.json()["status"] == 401


@pytest.mark.asyncio
async def test_rates_and_stop_sell_endpoints(test_client, room_type_id):
    """Test rate overrides and stop-sell through the API."""
    response = await test_client.post(
        "/v1/inventory/rates",
        json={"room_type_id": room_type_id, "start": "2026-03-01", "end": "2026-03-01", "rate": "130.00"},
    )
    assert response.status_code == 200
    assert response.json()["days_changed"] == 1

    response = await test_client.post(
        "/v1/inventory/stop-sell",
        json={"room_type_id": room_type_id, "start": "2026-03-02", "end": "2026-03-02", "blocked": True},
    )
    assert response.status_code == 200

    response = await test_client.post(
        "/v1/booking/quote",
        json={**STAY, "rooms": [{"room_type_id": room_type_id}]},
    )
    data = response.json()
    assert data["subtotal"] == "230.00"
    assert data["sellable"] is False
