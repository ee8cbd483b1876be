from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from booking_wizard.errors import UnrecognizedResponseShape
from booking_wizard.services.gateways.aggregate_parser import (
    detect_shape,
    parse_booking_aggregate,
    unwrap_list,
)


def _booking_attrs() -> dict:
    return {
        "property_id": "prop-1",
        "status": "confirmed",
        "arrival_date": "2025-03-01",
        "departure_date": "2025-03-04",
        "amount": "220.00",
        "currency": "EUR",
        "rooms": [
            {
                "id": "room-a",
                "room_type_id": "rt-1",
                "rate_plan_id": "rp-1",
                "checkin_date": "2025-03-01",
                "checkout_date": "2025-03-03",
                "occupancy": {"adults": 2, "children": 1, "infants": 0},
                "days": {"2025-03-01": "70.00", "2025-03-02": "80.00"},
            }
        ],
        "services": [{"id": "svc-1", "type": "Breakfast", "persons": 2, "nights": 2, "price_per_unit": "10.00"}],
        "guarantee": {
            "id": "guarantee-1",
            "card_type": "visa",
            "cardholder_name": "Ada Lovelace",
            "card_number": "411111******1111",
            "expiration_date": "10/2027",
        },
        "customer": {
            "name": "Ada",
            "surname": "Lovelace",
            "mail": "ada@example.com",
            "phone": "+44 20 7946 0000",
            "company": {"title": "Analytical Engines", "number": "123", "number_type": "vat", "type": "ltd"},
        },
    }


def test_detects_the_three_known_shapes():
    attrs = _booking_attrs()
    assert detect_shape({"data": {"id": "b-1", "attributes": attrs}})[0] == "envelope"
    assert detect_shape({"data": {"id": "b-1", **attrs}})[0] == "envelope"
    assert detect_shape({"id": "b-1", "attributes": attrs})[0] == "attributes"
    assert detect_shape({"id": "b-1", **attrs})[0] == "flat"


@pytest.mark.parametrize("raw", [None, [], "booking", {"meta": {}}])
def test_unknown_shape_is_reported(raw):
    with pytest.raises(UnrecognizedResponseShape) as exc:
        detect_shape(raw)
    assert exc.value.code == "UNRECOGNIZED_RESPONSE"


def test_parses_nested_aggregate_from_attributes_shape():
    aggregate = parse_booking_aggregate({"id": "b-1", "attributes": _booking_attrs()})

    assert aggregate.id == "b-1"
    assert aggregate.header.amount == Decimal("220.00")

    room = aggregate.rooms[0]
    assert (room.adults, room.children) == (2, 1)
    assert [(d.stay_date, d.price) for d in room.days] == [
        (date(2025, 3, 1), Decimal("70.00")),
        (date(2025, 3, 2), Decimal("80.00")),
    ]

    assert aggregate.services[0].service_type == "Breakfast"

    guarantee = aggregate.guarantees[0]
    assert guarantee.id == "guarantee-1"
    assert guarantee.card_holder_name == "Ada Lovelace"
    assert guarantee.masked_card_number == "411111******1111"

    guest = aggregate.guests[0]
    assert (guest.first_name, guest.last_name, guest.email) == ("Ada", "Lovelace", "ada@example.com")
    assert guest.company_name == "Analytical Engines"
    assert guest.company_number_type == "vat"
    assert guest.id is None


def test_parses_camel_case_lists():
    raw = {
        "data": {
            "id": 42,
            "propertyId": "prop-1",
            "status": "new",
            "arrivalDate": "2025-03-01",
            "departureDate": "2025-03-02",
            "amount": 100,
            "rooms": [
                {
                    "id": 7,
                    "roomTypeId": "rt-1",
                    "ratePlanId": "rp-1",
                    "checkinDate": "2025-03-01",
                    "checkoutDate": "2025-03-02",
                    "adults": 1,
                    "days": [{"stayDate": "2025-03-01", "price": "100.00"}],
                }
            ],
            "guests": [{"id": "g-1", "firstName": "Ada", "lastName": "Lovelace"}],
        }
    }
    aggregate = parse_booking_aggregate(raw)

    assert aggregate.id == "42"
    assert aggregate.rooms[0].id == "7"
    assert aggregate.rooms[0].days[0].stay_date == date(2025, 3, 1)
    assert aggregate.guests[0].first_name == "Ada"
    assert aggregate.guarantees == []


def test_missing_header_fields_are_an_unrecognized_response():
    with pytest.raises(UnrecognizedResponseShape) as exc:
        parse_booking_aggregate({"id": "b-1", "status": "new"})
    assert exc.value.meta["shape"] == "flat"


def test_unwrap_list_accepts_bare_and_enveloped_arrays():
    items = [{"id": "g-1", "first_name": "Ada"}]
    assert unwrap_list(items) == items
    assert unwrap_list({"data": items}) == items
    with pytest.raises(UnrecognizedResponseShape):
        unwrap_list({"items": items})


@pytest.mark.parametrize("adults", ["two", [2], {"count": 2}])
def test_non_numeric_occupancy_is_an_unrecognized_shape(adults):
    attrs = _booking_attrs()
    attrs["rooms"][0]["occupancy"] = {"adults": adults}

    with pytest.raises(UnrecognizedResponseShape) as exc:
        parse_booking_aggregate({"id": "b-1", "attributes": attrs})

    assert exc.value.meta["room_id"] == "room-a"
    assert exc.value.meta["field"] == "adults"
