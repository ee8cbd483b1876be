from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Tuple

from booking_wizard.errors import GatewayError
from booking_wizard.schemas_wizard import (
    AggregateRoom,
    BookingAggregate,
    BookingHeaderDraft,
    BookingRecord,
    GuaranteeDraft,
    GuaranteeFields,
    GuaranteeRecord,
    GuestDraft,
    GuestFields,
    GuestRecord,
    RoomDayDraft,
    RoomDayRecord,
    RoomFields,
    RoomRecord,
    ServiceDraft,
    ServiceFields,
    ServiceRecord,
)
from booking_wizard.services.gateways.base import BookingGateway, build_payload, require_parent_id


class InMemoryBookingGateway(BookingGateway):
    """Deterministic, in-memory booking gateway.

    Behaves like the channel-manager API for the wizard's purposes:
    - issues UUID identifiers on create
    - stores exactly the allow-listed payload fields
    - answers the aggregate read from what was created

    Every call is recorded in `calls` as ``(operation, payload)`` and failures
    can be queued per operation with `inject_failure`, which makes it the
    gateway of choice for tests and local development.
    """

    def __init__(self) -> None:
        self.bookings: Dict[str, BookingRecord] = {}
        self.rooms: Dict[str, RoomRecord] = {}
        self.room_days: Dict[str, RoomDayRecord] = {}
        self.services: Dict[str, ServiceRecord] = {}
        self.guarantees: Dict[str, GuaranteeRecord] = {}
        self.guests: Dict[str, GuestRecord] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._failures: Dict[str, List[GatewayError]] = {}

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def inject_failure(self, operation: str, error: Optional[GatewayError] = None) -> None:
        """Make the next call to `operation` raise `error` instead of succeeding."""

        self._failures.setdefault(operation, []).append(
            error or GatewayError(code="PROVIDER_UNAVAILABLE", message=f"{operation} failed", http_status=503)
        )

    def operations(self) -> List[str]:
        return [operation for operation, _ in self.calls]

    def _record(self, operation: str, payload: Optional[Dict[str, Any]] = None) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)
        self.calls.append((operation, payload or {}))

    @staticmethod
    def _new_id() -> str:
        return str(uuid.uuid4())

    @staticmethod
    def _get(table: Dict[str, Any], record_id: str, resource: str) -> Any:
        record = table.get(record_id)
        if record is None:
            raise GatewayError(
                code="NOT_FOUND",
                message=f"{resource} {record_id} not found",
                http_status=404,
                meta={"resource": resource, "id": record_id},
            )
        return record

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    async def create_booking(self, header: BookingHeaderDraft) -> BookingRecord:
        payload = build_payload("booking", header, action="create")
        self._record("create_booking", payload)
        record = BookingRecord.model_validate({**payload, "id": self._new_id()})
        self.bookings[record.id] = record
        return record

    async def update_booking(self, booking_id: str, header: BookingHeaderDraft) -> BookingRecord:
        payload = build_payload("booking", header, action="update")
        self._record("update_booking", payload)
        existing = self._get(self.bookings, booking_id, "booking")
        record = BookingRecord.model_validate({**payload, "id": existing.id})
        self.bookings[booking_id] = record
        return record

    async def get_booking_aggregate(self, booking_id: str) -> Optional[BookingAggregate]:
        self._record("get_booking_aggregate", {"id": booking_id})
        booking = self.bookings.get(booking_id)
        if booking is None:
            return None

        rooms: List[AggregateRoom] = []
        for room in self.rooms.values():
            if room.booking_id != booking_id:
                continue
            days = sorted(
                (
                    RoomDayDraft(stay_date=day.stay_date, price=day.price, id=day.id)
                    for day in self.room_days.values()
                    if day.booking_room_id == room.id
                ),
                key=lambda day: day.stay_date,
            )
            rooms.append(AggregateRoom(**room.model_dump(exclude={"booking_id"}), days=days))

        return BookingAggregate(
            id=booking.id,
            header=BookingHeaderDraft(**booking.model_dump(exclude={"id"})),
            rooms=rooms,
            services=[
                ServiceDraft(**s.model_dump(exclude={"booking_id"}))
                for s in self.services.values()
                if s.booking_id == booking_id
            ],
            guarantees=[
                GuaranteeDraft(**g.model_dump(exclude={"booking_id"}))
                for g in self.guarantees.values()
                if g.booking_id == booking_id
            ],
            guests=[
                GuestDraft(**g.model_dump(exclude={"booking_id"}))
                for g in self.guests.values()
                if g.booking_id == booking_id
            ],
        )

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def create_room(self, booking_id: str, room: RoomFields) -> RoomRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="room")
        payload = build_payload("room", room, action="create", parents={"booking_id": booking_id})
        self._record("create_room", payload)
        self._get(self.bookings, booking_id, "booking")
        record = RoomRecord.model_validate({**payload, "id": self._new_id()})
        self.rooms[record.id] = record
        return record

    async def update_room(self, room_id: str, room: RoomFields) -> RoomRecord:
        payload = build_payload("room", room, action="update")
        self._record("update_room", payload)
        existing = self._get(self.rooms, room_id, "room")
        record = RoomRecord.model_validate({**payload, "id": existing.id, "bookingId": existing.booking_id})
        self.rooms[room_id] = record
        return record

    async def delete_room(self, room_id: str) -> None:
        self._record("delete_room", {"id": room_id})
        self._get(self.rooms, room_id, "room")
        del self.rooms[room_id]
        for day_id in [d.id for d in self.room_days.values() if d.booking_room_id == room_id]:
            del self.room_days[day_id]

    async def create_room_day(self, room_id: str, day: RoomDayDraft) -> RoomDayRecord:
        room_id = require_parent_id(room_id, prerequisite="room_id", resource="room day")
        payload = build_payload("room_day", day, action="create", parents={"booking_room_id": room_id})
        self._record("create_room_day", payload)
        self._get(self.rooms, room_id, "room")
        # Every create adds a row, as on the channel API
        record = RoomDayRecord.model_validate({**payload, "id": self._new_id()})
        self.room_days[record.id] = record
        return record

    async def update_room_day(self, day_id: str, day: RoomDayDraft) -> RoomDayRecord:
        payload = build_payload("room_day", day, action="update")
        self._record("update_room_day", payload)
        existing = self._get(self.room_days, day_id, "room day")
        record = RoomDayRecord.model_validate(
            {**payload, "id": existing.id, "bookingRoomId": existing.booking_room_id}
        )
        self.room_days[day_id] = record
        return record

    async def delete_room_day(self, day_id: str) -> None:
        self._record("delete_room_day", {"id": day_id})
        self._get(self.room_days, day_id, "room day")
        del self.room_days[day_id]

    # ------------------------------------------------------------------
    # Services / guarantee / guests
    # ------------------------------------------------------------------

    async def create_service(self, booking_id: str, service: ServiceFields) -> ServiceRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="service")
        payload = build_payload("service", service, action="create", parents={"booking_id": booking_id})
        self._record("create_service", payload)
        self._get(self.bookings, booking_id, "booking")
        record = ServiceRecord.model_validate({**payload, "id": self._new_id()})
        self.services[record.id] = record
        return record

    async def create_guarantee(self, booking_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="guarantee")
        payload = build_payload("guarantee", guarantee, action="create", parents={"booking_id": booking_id})
        self._record("create_guarantee", payload)
        self._get(self.bookings, booking_id, "booking")
        record = GuaranteeRecord.model_validate({**payload, "id": self._new_id()})
        self.guarantees[record.id] = record
        return record

    async def update_guarantee(self, guarantee_id: str, guarantee: GuaranteeFields) -> GuaranteeRecord:
        payload = build_payload("guarantee", guarantee, action="update")
        self._record("update_guarantee", payload)
        existing = self._get(self.guarantees, guarantee_id, "guarantee")
        record = GuaranteeRecord.model_validate({**payload, "id": existing.id, "bookingId": existing.booking_id})
        self.guarantees[guarantee_id] = record
        return record

    async def create_guest(self, booking_id: str, guest: GuestFields) -> GuestRecord:
        booking_id = require_parent_id(booking_id, prerequisite="booking_id", resource="guest")
        payload = build_payload("guest", guest, action="create", parents={"booking_id": booking_id})
        self._record("create_guest", payload)
        self._get(self.bookings, booking_id, "booking")
        record = GuestRecord.model_validate({**payload, "id": self._new_id()})
        self.guests[record.id] = record
        return record

    async def update_guest(self, guest_id: str, guest: GuestFields) -> GuestRecord:
        payload = build_payload("guest", guest, action="update")
        self._record("update_guest", payload)
        existing = self._get(self.guests, guest_id, "guest")
        record = GuestRecord.model_validate({**payload, "id": existing.id, "bookingId": existing.booking_id})
        self.guests[guest_id] = record
        return record

    async def delete_guest(self, guest_id: str) -> None:
        self._record("delete_guest", {"id": guest_id})
        self._get(self.guests, guest_id, "guest")
        del self.guests[guest_id]

    async def list_guests_by_booking(self, booking_id: str) -> List[GuestRecord]:
        self._record("list_guests_by_booking", {"booking_id": booking_id})
        return [guest for guest in self.guests.values() if guest.booking_id == booking_id]
