from __future__ import annotations

import pytest

BASE = "/api/booking-wizard"


async def _open(async_client) -> str:
    r = await async_client.post(f"{BASE}/sessions")
    assert r.status_code == 201, r.text
    return r.json()["session_id"]


@pytest.mark.anyio
async def test_health(async_client):
    r = await async_client.get("/api/health")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["gateway"] == "InMemoryBookingGateway"


@pytest.mark.anyio
async def test_open_session_starts_on_booking_step(async_client):
    r = await async_client.post(f"{BASE}/sessions")
    body = r.json()

    assert body["current_step"] == 1
    assert body["completed_steps"] == []
    assert body["booking_id"] is None
    assert [s["status"] for s in body["steps"]][:2] == ["current", "upcoming"]
    assert r.headers["X-Correlation-Id"]


@pytest.mark.anyio
async def test_header_rooms_and_navigation_flow(async_client, gateway, header_form, room_form):
    sid = await _open(async_client)

    r = await async_client.post(f"{BASE}/sessions/{sid}/header", json=header_form)
    assert r.status_code == 200, r.text
    body = r.json()
    booking_id = body["booking_id"]
    assert body["result"]["id"] == booking_id
    assert body["current_step"] == 2
    assert booking_id in gateway.bookings

    r = await async_client.post(f"{BASE}/sessions/{sid}/rooms", json=room_form)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["result"]["temp_id"] == "temp-0"
    assert body["draft"]["room_identifier_map"]["temp-0"] == body["result"]["id"]
    assert body["current_step"] == 2

    r = await async_client.get(f"{BASE}/sessions/{sid}/rooms/0/days/suggested")
    assert [(d["stay_date"], d["price"]) for d in r.json()["days"]] == [
        ("2025-03-01", "75.00"),
        ("2025-03-02", "75.00"),
    ]

    r = await async_client.post(f"{BASE}/sessions/{sid}/next")
    assert r.json()["current_step"] == 3

    r = await async_client.post(f"{BASE}/sessions/{sid}/skip")
    assert r.json()["current_step"] == 4

    r = await async_client.post(f"{BASE}/sessions/{sid}/back")
    assert r.json()["current_step"] == 3

    r = await async_client.post(f"{BASE}/sessions/{sid}/goto", json={"step": 1})
    assert r.json()["current_step"] == 1


@pytest.mark.anyio
async def test_invalid_header_returns_field_errors(async_client, gateway):
    sid = await _open(async_client)

    r = await async_client.post(
        f"{BASE}/sessions/{sid}/header",
        json={"status": "new", "arrival_date": "2025-03-04", "departure_date": "2025-03-01"},
        headers={"X-Correlation-Id": "cid-123"},
    )

    assert r.status_code == 422
    error = r.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["step"] == 1
    assert "property_id" in error["details"]["fields"]
    assert "departure_date" in error["details"]["fields"]
    assert error["details"]["correlation_id"] == "cid-123"
    assert gateway.calls == []


@pytest.mark.anyio
async def test_forward_jump_is_rejected(async_client, header_form):
    sid = await _open(async_client)
    await async_client.post(f"{BASE}/sessions/{sid}/header", json=header_form)

    r = await async_client.post(f"{BASE}/sessions/{sid}/goto", json={"step": 6})

    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "invalid_step_transition"
    assert error["details"]["target_step"] == 6


@pytest.mark.anyio
async def test_room_before_header_is_a_missing_prerequisite(async_client, room_form):
    sid = await _open(async_client)
    r = await async_client.post(f"{BASE}/sessions/{sid}/rooms", json=room_form)
    assert r.status_code == 409
    assert r.json()["error"]["details"]["prerequisite"] == "booking_id"


@pytest.mark.anyio
async def test_gateway_failure_is_surfaced_with_its_status(async_client, gateway, header_form):
    sid = await _open(async_client)
    gateway.inject_failure("create_booking")

    r = await async_client.post(f"{BASE}/sessions/{sid}/header", json=header_form)

    assert r.status_code == 503
    assert r.json()["error"]["code"] == "PROVIDER_UNAVAILABLE"
    r = await async_client.get(f"{BASE}/sessions/{sid}")
    assert r.json()["booking_id"] is None


@pytest.mark.anyio
async def test_unknown_session_is_404(async_client):
    r = await async_client.get(f"{BASE}/sessions/nope")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "wizard_session_not_found"


@pytest.mark.anyio
async def test_resume_existing_booking(async_client, header_form, room_form):
    sid = await _open(async_client)
    booking_id = (await async_client.post(f"{BASE}/sessions/{sid}/header", json=header_form)).json()["booking_id"]
    await async_client.post(f"{BASE}/sessions/{sid}/rooms", json=room_form)

    r = await async_client.post(f"{BASE}/sessions/resume/{booking_id}")

    assert r.status_code == 201, r.text
    body = r.json()
    assert body["session_id"] != sid
    assert body["booking_id"] == booking_id
    assert body["completed_steps"] == [1, 2]
    assert body["current_step"] == 3
    assert [room["temp_id"] for room in body["draft"]["rooms"]] == ["temp-0"]


@pytest.mark.anyio
async def test_resume_unknown_booking_is_404(async_client):
    r = await async_client.post(f"{BASE}/sessions/resume/missing")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "booking_load_failed"


@pytest.mark.anyio
async def test_complete_from_review(async_client, header_form, room_form, guest_form):
    sid = await _open(async_client)
    await async_client.post(f"{BASE}/sessions/{sid}/header", json=header_form)
    await async_client.post(f"{BASE}/sessions/{sid}/rooms", json=room_form)
    await async_client.post(f"{BASE}/sessions/{sid}/skip")
    await async_client.post(f"{BASE}/sessions/{sid}/services", json={"service_type": "Breakfast", "persons": 2, "nights": 2, "price_per_unit": "12.50"})

    r = await async_client.post(f"{BASE}/sessions/{sid}/complete")
    assert r.status_code == 409

    await async_client.post(f"{BASE}/sessions/{sid}/skip")
    await async_client.post(f"{BASE}/sessions/{sid}/skip")
    r = await async_client.post(f"{BASE}/sessions/{sid}/guests", json=guest_form)
    assert r.json()["current_step"] == 7

    review = (await async_client.get(f"{BASE}/sessions/{sid}/review")).json()
    assert review["totals"]["rooms"] == 1
    assert review["totals"]["room_nights"] == 2
    assert review["totals"]["services_total"] == "50.00"

    r = await async_client.post(f"{BASE}/sessions/{sid}/complete")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "booking_id": review["booking_id"]}
    assert (await async_client.get(f"{BASE}/sessions/{sid}")).status_code == 404


@pytest.mark.anyio
async def test_abandon_session(async_client):
    sid = await _open(async_client)
    r = await async_client.delete(f"{BASE}/sessions/{sid}")
    assert r.json() == {"ok": True, "session_id": sid}
    assert (await async_client.get(f"{BASE}/sessions/{sid}")).status_code == 404
