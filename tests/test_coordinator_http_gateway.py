"""Coordinator flows driven through the HTTP gateway against a fake channel API."""

from __future__ import annotations

import json
from typing import Any, Dict, List

import httpx
import pytest

from booking_wizard.errors import AggregateLoadError, UnrecognizedResponseShape
from booking_wizard.schemas_wizard import RoomDayDraft
from booking_wizard.services.gateways.http import HttpBookingGateway
from booking_wizard.services.wizard_coordinator import BookingWizardCoordinator

BASE_URL = "https://channel.example.test/api"


class _ChannelApi:
    """Keeps created rows per collection and echoes writes back in an envelope."""

    def __init__(self, aggregate: Any = None) -> None:
        self.aggregate = aggregate
        self.calls: List[str] = []
        self.rows: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._seq = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        parts = request.url.path[len("/api/"):].split("/")
        collection = parts[0]
        self.calls.append(f"{request.method} /{'/'.join(parts)}")
        body = json.loads(request.content) if request.content else {}
        rows = self.rows.setdefault(collection, {})

        if request.method == "POST":
            self._seq += 1
            row_id = f"{collection}-{self._seq}"
            rows[row_id] = body
            return httpx.Response(201, json={"data": {"id": row_id, "attributes": body}})
        if request.method == "PATCH":
            row_id = parts[1]
            rows.setdefault(row_id, {}).update(body)
            return httpx.Response(200, json={"data": {"id": row_id, "attributes": body}})
        if request.method == "DELETE":
            rows.pop(parts[1], None)
            return httpx.Response(204)
        return httpx.Response(200, json=self.aggregate)


def _coordinator(api: _ChannelApi) -> BookingWizardCoordinator:
    gateway = HttpBookingGateway(BASE_URL, token="secret-token", timeout_s=2, transport=httpx.MockTransport(api))
    return BookingWizardCoordinator(gateway)


@pytest.mark.anyio
async def test_guest_edit_round_trips_without_a_parent_key(header_form, guest_form):
    api = _ChannelApi()
    coordinator = _coordinator(api)
    await coordinator.submit_header(header_form)
    saved = await coordinator.save_guest(guest_form)

    updated = await coordinator.update_guest(0, {**guest_form, "city": "Lyon"})

    assert updated.id == saved.id
    assert updated.city == "Lyon"
    assert api.calls[-1] == f"PATCH /booking-guests/{saved.id}"
    assert api.rows["booking-guests"][saved.id]["city"] == "Lyon"


@pytest.mark.anyio
async def test_room_edit_round_trips_over_http(header_form, room_form):
    coordinator = _coordinator(_ChannelApi())
    await coordinator.submit_header(header_form)
    room = await coordinator.add_room(room_form)

    updated = await coordinator.update_room(0, {**room_form, "adults": 1})

    assert (updated.id, updated.adults) == (room.id, 1)


@pytest.mark.anyio
async def test_resaving_nightly_rates_updates_the_same_rows(header_form, room_form):
    api = _ChannelApi()
    coordinator = _coordinator(api)
    await coordinator.submit_header(header_form)
    await coordinator.add_room(room_form)
    nights = [{"stay_date": "2025-03-01", "price": "70.00"}, {"stay_date": "2025-03-02", "price": "80.00"}]

    first = await coordinator.save_room_days(0, nights)
    second = await coordinator.save_room_days(0, [{**night, "price": "90.00"} for night in nights])

    assert [day.id for day in second] == [day.id for day in first]
    assert len(api.rows["booking-room-days"]) == 2
    assert [row["price"] for row in api.rows["booking-room-days"].values()] == ["90.00", "90.00"]
    assert api.calls[-2:] == [f"PATCH /booking-room-days/{day.id}" for day in first]


@pytest.mark.anyio
async def test_changing_the_stay_deletes_nights_outside_it(header_form, room_form):
    api = _ChannelApi()
    coordinator = _coordinator(api)
    await coordinator.submit_header(header_form)
    await coordinator.add_room(room_form)
    first = await coordinator.save_room_days(0, [d.model_dump() for d in coordinator.suggest_room_days(0)])

    await coordinator.update_room(0, {**room_form, "checkout_date": "2025-03-04"})

    assert api.rows["booking-room-days"] == {}
    assert {f"DELETE /booking-room-days/{day.id}" for day in first} <= set(api.calls)
    assert coordinator.store.room_days_for("temp-0") == []

    third = await coordinator.save_room_days(0, [d.model_dump() for d in coordinator.suggest_room_days(0)])
    assert len(third) == 3
    assert len(api.rows["booking-room-days"]) == 3


@pytest.mark.anyio
async def test_unusable_update_response_is_an_unrecognized_shape():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "day-1", "stayDate": "not-a-date"})

    gateway = HttpBookingGateway(BASE_URL, token="", timeout_s=2, transport=httpx.MockTransport(handler))

    with pytest.raises(UnrecognizedResponseShape) as exc:
        await gateway.update_room_day("day-1", RoomDayDraft(stay_date="2025-03-01", price="70.00"))

    assert exc.value.code == "UNRECOGNIZED_RESPONSE"
    assert exc.value.meta["model"] == "RoomDayRecord"


@pytest.mark.anyio
async def test_resume_with_malformed_occupancy_fails_cleanly():
    aggregate = {
        "id": "b-1",
        "attributes": {
            "property_id": "prop-1",
            "status": "new",
            "arrival_date": "2025-03-01",
            "departure_date": "2025-03-03",
            "amount": "100.00",
            "rooms": [
                {
                    "id": "room-a",
                    "room_type_id": "rt-1",
                    "rate_plan_id": "rp-1",
                    "checkin_date": "2025-03-01",
                    "checkout_date": "2025-03-03",
                    "occupancy": {"adults": "two"},
                }
            ],
        },
    }
    coordinator = _coordinator(_ChannelApi(aggregate))

    with pytest.raises(AggregateLoadError) as exc:
        await coordinator.resume("b-1")

    assert exc.value.status_code == 502
    assert isinstance(exc.value.__cause__, UnrecognizedResponseShape)
    assert coordinator.booking_id is None
    assert coordinator.draft.rooms == []
