from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


BookingStatus = Literal[
    "new",
    "pending",
    "confirmed",
    "modified",
    "cancelled",
    "checked_in",
    "checked_out",
]

BOOKING_STATUSES = (
    "new",
    "pending",
    "confirmed",
    "modified",
    "cancelled",
    "checked_in",
    "checked_out",
)

SUPPORTED_CURRENCIES = ("EUR", "USD", "GBP", "JPY", "CNY", "MAD")

CARD_TYPES = ("visa", "mastercard", "amex", "discover", "other")

SERVICE_TYPES = ("Breakfast", "Parking", "WiFi", "Airport Transfer", "Other")


class WizardModel(BaseModel):
    """Base for every draft / record model.

    Python code uses snake_case; the channel-manager API speaks camelCase, so
    aliases are generated and both spellings are accepted on input. Blank
    strings coming from forms are treated as "not supplied" and fall back to
    the field default.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_blank_strings(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if not (isinstance(v, str) and not v.strip())}
        return data


# ---------------------------------------------------------------------------
# Step 1: booking header
# ---------------------------------------------------------------------------


class Occupancy(WizardModel):
    adults: int = Field(default=0, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.adults + self.children + self.infants


class BookingHeaderDraft(WizardModel):
    property_id: str
    status: str
    arrival_date: date
    departure_date: date
    amount: Decimal
    currency: Optional[str] = None
    occupancy: Optional[Occupancy] = None
    unique_id: Optional[str] = None
    ota_reservation_code: Optional[str] = None
    ota_name: Optional[str] = None
    revision_id: Optional[str] = None
    arrival_hour: Optional[str] = None
    ota_commission: Optional[Decimal] = None
    notes: Optional[str] = None
    inserted_at: Optional[str] = None


class BookingRecord(BookingHeaderDraft):
    id: str


# ---------------------------------------------------------------------------
# Step 2: rooms
# ---------------------------------------------------------------------------


class RoomFields(WizardModel):
    room_type_id: str
    rate_plan_id: str
    checkin_date: date
    checkout_date: date
    adults: int = Field(default=0, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    amount: Optional[Decimal] = None
    ota_unique_id: Optional[str] = None

    @property
    def occupancy_total(self) -> int:
        return self.adults + self.children + self.infants


class RoomDraft(RoomFields):
    temp_id: str
    id: Optional[str] = None


class RoomRecord(RoomFields):
    """Entity returned by the gateway; update responses may omit the parent key."""

    id: str
    booking_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Step 3: nightly rates
# ---------------------------------------------------------------------------


class RoomDayDraft(WizardModel):
    stay_date: date
    price: Decimal = Field(default=Decimal("0"))
    # Server id of the night once persisted; re-saves update it in place
    id: Optional[str] = None


class RoomDayRecord(RoomDayDraft):
    id: str
    booking_room_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Step 4: services
# ---------------------------------------------------------------------------


class ServiceFields(WizardModel):
    service_type: Optional[str] = None
    name: Optional[str] = None
    price_mode: Optional[str] = None
    persons: Optional[int] = None
    nights: Optional[int] = None
    price_per_unit: Optional[Decimal] = None
    total_price: Optional[Decimal] = None


class ServiceDraft(ServiceFields):
    id: Optional[str] = None


class ServiceRecord(ServiceFields):
    id: str
    booking_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Step 5: guarantee
# ---------------------------------------------------------------------------


class GuaranteeFields(WizardModel):
    card_type: Optional[str] = None
    card_holder_name: Optional[str] = None
    masked_card_number: Optional[str] = None
    expiration_date: Optional[str] = None


class GuaranteeDraft(GuaranteeFields):
    id: Optional[str] = None


class GuaranteeRecord(GuaranteeFields):
    id: str
    booking_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Step 6: guests
# ---------------------------------------------------------------------------


class GuestFields(WizardModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    zip: Optional[str] = None
    company_name: Optional[str] = None
    company_number: Optional[str] = None
    company_number_type: Optional[str] = None
    company_type: Optional[str] = None


class GuestDraft(GuestFields):
    id: Optional[str] = None


class GuestRecord(GuestFields):
    id: str
    booking_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Aggregate (single read used to resume a wizard)
# ---------------------------------------------------------------------------


class AggregateRoom(RoomFields):
    id: Optional[str] = None
    days: List[RoomDayDraft] = Field(default_factory=list)


class BookingAggregate(WizardModel):
    id: Optional[str] = None
    header: Optional[BookingHeaderDraft] = None
    rooms: List[AggregateRoom] = Field(default_factory=list)
    services: List[ServiceDraft] = Field(default_factory=list)
    guarantees: List[GuaranteeDraft] = Field(default_factory=list)
    guests: List[GuestDraft] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Gateway allow-lists: which fields may travel on create vs update
# ---------------------------------------------------------------------------

_HEADER_FIELDS = frozenset(BookingHeaderDraft.model_fields)
_ROOM_FIELDS = frozenset(RoomFields.model_fields)
_ROOM_DAY_FIELDS = frozenset(RoomDayDraft.model_fields) - {"id"}
_SERVICE_FIELDS = frozenset(ServiceFields.model_fields)
_GUARANTEE_FIELDS = frozenset(GuaranteeFields.model_fields)
_GUEST_FIELDS = frozenset(GuestFields.model_fields)

CREATE_FIELDS: Dict[str, frozenset] = {
    "booking": _HEADER_FIELDS,
    "room": _ROOM_FIELDS | {"booking_id"},
    "room_day": _ROOM_DAY_FIELDS | {"booking_room_id"},
    "service": _SERVICE_FIELDS | {"booking_id"},
    "guarantee": _GUARANTEE_FIELDS | {"booking_id"},
    "guest": _GUEST_FIELDS | {"booking_id"},
}

# Parent foreign keys are fixed at creation time
UPDATE_FIELDS: Dict[str, frozenset] = {
    "booking": _HEADER_FIELDS,
    "room": _ROOM_FIELDS,
    "room_day": _ROOM_DAY_FIELDS,
    "service": _SERVICE_FIELDS,
    "guarantee": _GUARANTEE_FIELDS,
    "guest": _GUEST_FIELDS,
}
