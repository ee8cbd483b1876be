from __future__ import annotations

import abc
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from booking_wizard.domain.identifiers import clean_server_id
from booking_wizard.errors import MissingPrerequisiteError
from booking_wizard.schemas_wizard import (
    CREATE_FIELDS,
    UPDATE_FIELDS,
    BookingAggregate,
    BookingHeaderDraft,
    BookingRecord,
    GuaranteeFields,
    GuaranteeRecord,
    GuestFields,
    GuestRecord,
    RoomDayDraft,
    RoomDayRecord,
    RoomFields,
    RoomRecord,
    ServiceFields,
    ServiceRecord,
)


PayloadAction = Literal["create", "update"]


def build_payload(
    resource: str,
    model: BaseModel,
    *,
    action: PayloadAction,
    parents: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Serialize a draft into the wire payload for one resource.

    Only fields on the resource's create/update allow-list survive; parent
    foreign keys are accepted on create only. Keys are camelCase, values are
    JSON-ready (dates as ISO strings, money as decimal strings).
    """

    allowed = CREATE_FIELDS[resource] if action == "create" else UPDATE_FIELDS[resource]
    parents = parents or {}
    rejected = sorted(key for key in parents if key not in allowed)
    if rejected:
        raise ValueError(f"{resource} {action} payload does not accept: {', '.join(rejected)}")

    data = model.model_dump(mode="json", exclude_none=True)
    data.update(parents)
    return {to_camel(key): value for key, value in data.items() if key in allowed}


def require_parent_id(value: Optional[str], *, prerequisite: str, resource: str) -> str:
    cleaned = clean_server_id(value)
    if cleaned is None:
        raise MissingPrerequisiteError(
            prerequisite,
            f"Cannot create {resource} without a {prerequisite}",
            resource=resource,
        )
    return cleaned


class BookingGateway(abc.ABC):
    """Resource gateway contract used by the booking wizard.

    One create/update/delete set per child resource of a booking plus the
    single aggregate read used to resume a wizard. Identifiers are opaque
    strings. Implementations raise GatewayError for transport or server
    failures and never partially apply a call.
    """

    # Bookings ----------------------------------------------------------------

    @abc.abstractmethod
    async def create_booking(self, header: BookingHeaderDraft) -> BookingRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_booking(self, booking_id: str, header: BookingHeaderDraft) -> BookingRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_booking_aggregate(self, booking_id: str) -> Optional[BookingAggregate]:
        """Full booking with nested rooms (and days), services, guarantees,
        guests; None when the booking does not exist."""
        raise NotImplementedError

    # Rooms -------------------------------------------------------------------

    @abc.abstractmethod
    async def create_room(self, booking_id: str, room: RoomFields) -> RoomRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_room(self, room_id: str, room: RoomFields) -> RoomRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_room(self, room_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def create_room_day(self, room_id: str, day: RoomDayDraft) -> RoomDayRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_room_day(self, day_id: str, day: RoomDayDraft) -> RoomDayRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_room_day(self, day_id: str) -> None:
        raise NotImplementedError

    # Services ----------------------------------------------------------------

    @abc.abstractmethod
    async def create_service(self, booking_id: str, service: ServiceFields) -> ServiceRecord:
        raise NotImplementedError

    # Guarantee ---------------------------------------------------------------

    @abc.abstractmethod
    async def create_guarantee(self, booking_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_guarantee(self, guarantee_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        raise NotImplementedError

    # Guests ------------------------------------------------------------------

    @abc.abstractmethod
    async def create_guest(self, booking_id: str, guest: GuestFields) -> GuestRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_guest(self, guest_id: str, guest: GuestFields) -> GuestRecord:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_guest(self, guest_id: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_guests_by_booking(self, booking_id: str) -> List[GuestRecord]:
        raise NotImplementedError
