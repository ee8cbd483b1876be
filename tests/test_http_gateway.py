from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from booking_wizard.errors import GatewayError
from booking_wizard.schemas_wizard import BookingHeaderDraft, GuaranteeDraft, RoomDayDraft, RoomFields
from booking_wizard.services.gateways.http import HttpBookingGateway

BASE_URL = "https://channel.example.test/api"


def _gateway(handler, token: str = "secret-token") -> HttpBookingGateway:
    return HttpBookingGateway(BASE_URL, token=token, timeout_s=2, transport=httpx.MockTransport(handler))


def _header() -> BookingHeaderDraft:
    return BookingHeaderDraft(
        property_id="prop-1",
        status="new",
        arrival_date="2025-03-01",
        departure_date="2025-03-04",
        amount="220.00",
    )


@pytest.mark.anyio
async def test_create_booking_posts_allow_listed_camel_case_payload():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(201, json={"data": {"id": "b-1", "attributes": body}})

    record = await _gateway(handler).create_booking(_header())

    assert record.id == "b-1"
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/bookings"
    assert request.headers["Authorization"] == "Bearer secret-token"
    body = json.loads(request.content)
    assert body["propertyId"] == "prop-1"
    assert body["amount"] == "220.00"
    assert "id" not in body


@pytest.mark.anyio
async def test_room_create_carries_booking_id_but_update_does_not():
    bodies: Dict[str, Dict[str, Any]] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies[request.method] = body
        return httpx.Response(200, json={"id": "room-1", **body})

    gateway = _gateway(handler)
    room = RoomFields(
        room_type_id="rt-1",
        rate_plan_id="rp-1",
        checkin_date="2025-03-01",
        checkout_date="2025-03-02",
        adults=1,
    )

    created = await gateway.create_room("b-1", room)
    await gateway.update_room("room-1", room)

    assert created.booking_id == "b-1"
    assert bodies["POST"]["bookingId"] == "b-1"
    assert "bookingId" not in bodies["PATCH"]


@pytest.mark.anyio
async def test_room_day_and_guarantee_endpoints():
    paths: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(f"{request.method} {request.url.path}")
        return httpx.Response(201, json={"id": "x-1", **json.loads(request.content)})

    gateway = _gateway(handler)
    day = await gateway.create_room_day("room-1", RoomDayDraft(stay_date="2025-03-01", price="70.00"))
    guarantee = await gateway.update_guarantee("g-1", GuaranteeDraft(card_type="visa"))

    assert day.booking_room_id == "room-1"
    assert guarantee.id == "x-1"
    assert paths == ["POST /api/booking-room-days", "PATCH /api/booking-guarantees/g-1"]


@pytest.mark.anyio
async def test_aggregate_not_found_is_none():
    gateway = _gateway(lambda request: httpx.Response(404, json={"message": "not found"}))
    assert await gateway.get_booking_aggregate("missing") is None


@pytest.mark.anyio
async def test_aggregate_is_normalised():
    payload = {
        "id": "b-1",
        "attributes": {
            "property_id": "prop-1",
            "status": "new",
            "arrival_date": "2025-03-01",
            "departure_date": "2025-03-02",
            "amount": "100.00",
            "rooms": [],
        },
    }
    gateway = _gateway(lambda request: httpx.Response(200, json=payload))
    aggregate = await gateway.get_booking_aggregate("b-1")
    assert aggregate.id == "b-1"
    assert aggregate.header.property_id == "prop-1"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "status, code, http_status",
    [
        (401, "AUTH_FAILED", 502),
        (404, "NOT_FOUND", 404),
        (429, "PROVIDER_UNAVAILABLE", 503),
        (500, "PROVIDER_UNAVAILABLE", 503),
        (418, "UNKNOWN_ERROR", 502),
    ],
)
async def test_non_2xx_maps_to_gateway_error(status, code, http_status):
    gateway = _gateway(lambda request: httpx.Response(status, text="nope"))

    with pytest.raises(GatewayError) as exc:
        await gateway.delete_room("room-1")

    assert exc.value.code == code
    assert exc.value.http_status == http_status
    assert exc.value.meta["status_code"] == status


@pytest.mark.anyio
async def test_transport_failures_map_to_gateway_error():
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayError) as exc:
        await _gateway(timeout).delete_guest("g-1")
    assert exc.value.code == "TIMEOUT"

    with pytest.raises(GatewayError) as exc:
        await _gateway(refused).delete_guest("g-1")
    assert exc.value.code == "PROVIDER_UNAVAILABLE"


@pytest.mark.anyio
async def test_list_guests_unwraps_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/booking-guests/booking/b-1"
        return httpx.Response(200, json={"data": [{"id": "g-1", "first_name": "Ada"}]})

    guests = await _gateway(handler).list_guests_by_booking("b-1")
    assert [(g.id, g.booking_id, g.first_name) for g in guests] == [("g-1", "b-1", "Ada")]


@pytest.mark.anyio
async def test_no_token_means_no_authorization_header():
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    await _gateway(handler, token="").delete_room("room-1")
    assert "Authorization" not in seen[0].headers
