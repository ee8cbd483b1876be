from __future__ import annotations

"""Normalize channel-manager responses into wizard models.

The booking API answers in a few known envelopes. Each one is recognised
explicitly and anything else is reported as UnrecognizedResponseShape rather
than guessed at.
"""

from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import ValidationError

from booking_wizard.errors import UnrecognizedResponseShape
from booking_wizard.schemas_wizard import (
    AggregateRoom,
    BookingAggregate,
    BookingHeaderDraft,
    GuaranteeDraft,
    GuestDraft,
    RoomDayDraft,
    ServiceDraft,
)


ResponseShape = Literal["envelope", "attributes", "flat"]


def _pick(d: Any, *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None key from mapping `d`.

    Tolerates both snake_case and camelCase spellings of the same field.
    """

    if not isinstance(d, dict):
        return default
    for k in keys:
        if k in d and d[k] is not None:
            return d[k]
    return default


def detect_shape(raw: Any) -> Tuple[ResponseShape, Dict[str, Any]]:
    """Classify a single-resource response and return its attribute mapping.

    - envelope:   {"data": {...}} (the inner object may itself carry "attributes")
    - attributes: {"attributes": {...}}
    - flat:       {"id": ..., ...}
    """

    if isinstance(raw, dict):
        data = raw.get("data")
        if isinstance(data, dict):
            inner = data.get("attributes")
            if isinstance(inner, dict):
                return "envelope", {"id": data.get("id"), **inner}
            return "envelope", data
        attrs = raw.get("attributes")
        if isinstance(attrs, dict):
            return "attributes", {"id": raw.get("id"), **attrs}
        if "id" in raw:
            return "flat", raw
    keys = sorted(raw.keys()) if isinstance(raw, dict) else []
    raise UnrecognizedResponseShape(
        "Response does not match any known booking API shape",
        meta={"type": type(raw).__name__, "keys": keys[:20]},
    )


def unwrap_entity(raw: Any) -> Dict[str, Any]:
    _, attrs = detect_shape(raw)
    return attrs


def unwrap_list(raw: Any) -> List[Dict[str, Any]]:
    """List responses: a bare array or {"data": [...]}."""

    if isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict) and isinstance(raw.get("data"), list):
        items = raw["data"]
    else:
        raise UnrecognizedResponseShape(
            "Expected a list response",
            meta={"type": type(raw).__name__},
        )
    return [unwrap_entity(item) for item in items]


def _occupancy_count(room: Dict[str, Any], key: str) -> int:
    occupancy = _pick(room, "occupancy", default={}) or {}
    raw = _pick(occupancy, key, default=None) or _pick(room, key, default=0) or 0
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise UnrecognizedResponseShape(
            f"Room occupancy {key} is not a whole number",
            meta={"room_id": _pick(room, "id"), "field": key, "value": repr(raw)},
        ) from None


def _parse_days(raw_days: Any) -> List[RoomDayDraft]:
    if not raw_days:
        return []
    if isinstance(raw_days, dict):
        # {"2025-03-01": "110.00", ...}
        return [RoomDayDraft(stay_date=day, price=amount) for day, amount in raw_days.items()]
    if isinstance(raw_days, list):
        return [
            RoomDayDraft(
                stay_date=_pick(day, "stay_date", "stayDate", "date"),
                price=_pick(day, "price", "amount", default=0),
                id=_pick(day, "id"),
            )
            for day in raw_days
        ]
    raise UnrecognizedResponseShape("Room days must be a mapping or a list", meta={"type": type(raw_days).__name__})


def _parse_room(room: Dict[str, Any]) -> AggregateRoom:
    return AggregateRoom(
        id=_pick(room, "id"),
        room_type_id=_pick(room, "room_type_id", "roomTypeId"),
        rate_plan_id=_pick(room, "rate_plan_id", "ratePlanId"),
        checkin_date=_pick(room, "checkin_date", "checkinDate"),
        checkout_date=_pick(room, "checkout_date", "checkoutDate"),
        adults=_occupancy_count(room, "adults"),
        children=_occupancy_count(room, "children"),
        infants=_occupancy_count(room, "infants"),
        amount=_pick(room, "amount"),
        ota_unique_id=_pick(room, "ota_unique_id", "otaUniqueId"),
        days=_parse_days(_pick(room, "days")),
    )


def _parse_service(service: Dict[str, Any]) -> ServiceDraft:
    return ServiceDraft(
        id=_pick(service, "id"),
        service_type=_pick(service, "service_type", "serviceType", "type"),
        name=_pick(service, "name"),
        price_mode=_pick(service, "price_mode", "priceMode"),
        persons=_pick(service, "persons"),
        nights=_pick(service, "nights"),
        price_per_unit=_pick(service, "price_per_unit", "pricePerUnit"),
        total_price=_pick(service, "total_price", "totalPrice"),
    )


def _parse_guarantee(guarantee: Dict[str, Any]) -> GuaranteeDraft:
    # Raw id is kept as-is; resume decides whether it is usable
    return GuaranteeDraft(
        id=_pick(guarantee, "id"),
        card_type=_pick(guarantee, "card_type", "cardType"),
        card_holder_name=_pick(guarantee, "cardholder_name", "card_holder_name", "cardHolderName"),
        masked_card_number=_pick(guarantee, "card_number", "masked_card_number", "maskedCardNumber"),
        expiration_date=_pick(guarantee, "expiration_date", "expirationDate"),
    )


def _parse_guest(guest: Dict[str, Any]) -> GuestDraft:
    return GuestDraft(
        id=_pick(guest, "id"),
        first_name=_pick(guest, "first_name", "firstName"),
        last_name=_pick(guest, "last_name", "lastName"),
        email=_pick(guest, "email"),
        phone=_pick(guest, "phone"),
        language=_pick(guest, "language"),
        country=_pick(guest, "country"),
        city=_pick(guest, "city"),
        address=_pick(guest, "address"),
        zip=_pick(guest, "zip"),
        company_name=_pick(guest, "company_name", "companyName"),
        company_number=_pick(guest, "company_number", "companyNumber"),
        company_number_type=_pick(guest, "company_number_type", "companyNumberType"),
        company_type=_pick(guest, "company_type", "companyType"),
    )


def _parse_customer(customer: Dict[str, Any]) -> GuestDraft:
    """The booking read returns its primary guest as a `customer` object."""

    company = _pick(customer, "company", default={}) or {}
    return GuestDraft(
        id=_pick(customer, "id"),
        first_name=_pick(customer, "name"),
        last_name=_pick(customer, "surname"),
        email=_pick(customer, "mail", "email"),
        phone=_pick(customer, "phone"),
        language=_pick(customer, "language"),
        country=_pick(customer, "country"),
        city=_pick(customer, "city"),
        address=_pick(customer, "address"),
        zip=_pick(customer, "zip"),
        company_name=_pick(company, "title"),
        company_number=_pick(company, "number"),
        company_number_type=_pick(company, "number_type"),
        company_type=_pick(company, "type"),
    )


def _parse_header(attrs: Dict[str, Any]) -> BookingHeaderDraft:
    return BookingHeaderDraft(
        property_id=_pick(attrs, "property_id", "propertyId"),
        status=_pick(attrs, "status"),
        arrival_date=_pick(attrs, "arrival_date", "arrivalDate"),
        departure_date=_pick(attrs, "departure_date", "departureDate"),
        amount=_pick(attrs, "amount", default="0.00"),
        currency=_pick(attrs, "currency"),
        occupancy=_pick(attrs, "occupancy"),
        unique_id=_pick(attrs, "unique_id", "uniqueId"),
        ota_reservation_code=_pick(attrs, "ota_reservation_code", "otaReservationCode"),
        ota_name=_pick(attrs, "ota_name", "otaName"),
        revision_id=_pick(attrs, "revision_id", "revisionId"),
        arrival_hour=_pick(attrs, "arrival_hour", "arrivalHour"),
        ota_commission=_pick(attrs, "ota_commission", "otaCommission"),
        notes=_pick(attrs, "notes"),
        inserted_at=_pick(attrs, "inserted_at", "insertedAt"),
    )


def parse_booking_aggregate(raw: Any) -> BookingAggregate:
    shape, attrs = detect_shape(raw)

    try:
        guarantees_raw = _pick(attrs, "guarantees")
        if guarantees_raw is None:
            single = _pick(attrs, "guarantee")
            guarantees_raw = [single] if single else []

        guests_raw = _pick(attrs, "guests")
        if guests_raw is not None:
            guests = [_parse_guest(guest) for guest in guests_raw]
        else:
            customer = _pick(attrs, "customer")
            guests = [_parse_customer(customer)] if customer else []

        return BookingAggregate(
            id=_pick(attrs, "id"),
            header=_parse_header(attrs),
            rooms=[_parse_room(room) for room in _pick(attrs, "rooms", default=[])],
            services=[_parse_service(service) for service in _pick(attrs, "services", default=[])],
            guarantees=[_parse_guarantee(g) for g in guarantees_raw],
            guests=guests,
        )
    except ValidationError as exc:
        raise UnrecognizedResponseShape(
            "Booking aggregate fields could not be parsed",
            meta={"shape": shape, "errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def parse_optional_id(raw: Any) -> Optional[str]:
    value = _pick(raw, "id")
    return str(value) if value is not None else None
