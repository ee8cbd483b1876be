from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from booking_wizard.domain.identifiers import clean_server_id, make_temp_id
from booking_wizard.domain.validators import nights_between
from booking_wizard.domain.wizard_steps import FIRST_STEP, STEP_BOOKING, is_valid_step
from booking_wizard.errors import StateInvariantError
from booking_wizard.schemas_wizard import (
    BookingHeaderDraft,
    GuaranteeDraft,
    GuestDraft,
    RoomDayDraft,
    RoomDraft,
    ServiceDraft,
)


@dataclass
class WizardDraft:
    """In-progress booking aggregate; not guaranteed to match the server."""

    header: Optional[BookingHeaderDraft] = None
    booking_id: Optional[str] = None
    rooms: List[RoomDraft] = field(default_factory=list)
    room_identifier_map: Dict[str, str] = field(default_factory=dict)
    room_days: Dict[str, List[RoomDayDraft]] = field(default_factory=dict)
    services: List[ServiceDraft] = field(default_factory=list)
    guarantee: Optional[GuaranteeDraft] = None
    guests: List[GuestDraft] = field(default_factory=list)
    current_step: int = FIRST_STEP
    completed_steps: Set[int] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "header": self.header.model_dump(mode="json") if self.header else None,
            "rooms": [room.model_dump(mode="json") for room in self.rooms],
            "room_identifier_map": dict(self.room_identifier_map),
            "room_days": {
                temp_id: [day.model_dump(mode="json") for day in days] for temp_id, days in self.room_days.items()
            },
            "services": [service.model_dump(mode="json") for service in self.services],
            "guarantee": self.guarantee.model_dump(mode="json") if self.guarantee else None,
            "guests": [guest.model_dump(mode="json") for guest in self.guests],
            "current_step": self.current_step,
            "completed_steps": sorted(self.completed_steps),
        }


class WizardStateStore:
    """Single mutation surface for a WizardDraft.

    Every operation checks the draft invariants up front and raises
    StateInvariantError instead of correcting input. No I/O happens here.
    """

    def __init__(self) -> None:
        self._draft = WizardDraft()
        self._temp_seq = 0

    @property
    def draft(self) -> WizardDraft:
        return self._draft

    # ------------------------------------------------------------------
    # Header
    # ------------------------------------------------------------------

    def check_header(self, header: BookingHeaderDraft) -> None:
        """Raise if `header` would break an invariant; the draft is not touched."""

        if header.departure_date <= header.arrival_date:
            raise StateInvariantError(
                "booking_date_order",
                "Booking departure must be after arrival",
                arrival_date=header.arrival_date.isoformat(),
                departure_date=header.departure_date.isoformat(),
            )
        for index, room in enumerate(self._draft.rooms):
            self._check_room_within(room, header, index=index)

    def set_header(self, header: BookingHeaderDraft) -> None:
        self.check_header(header)
        self._draft.header = header

    def set_booking_id(self, booking_id: str) -> None:
        cleaned = clean_server_id(booking_id)
        if cleaned is None:
            raise StateInvariantError("booking_id_present", "Booking identifier cannot be empty")
        self._draft.booking_id = cleaned

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def new_temp_id(self) -> str:
        taken = {room.temp_id for room in self._draft.rooms}
        while True:
            temp_id = make_temp_id(self._temp_seq)
            self._temp_seq += 1
            if temp_id not in taken:
                return temp_id

    def _check_room_within(self, room: RoomDraft, header: Optional[BookingHeaderDraft], *, index: Optional[int] = None) -> None:
        if room.checkout_date <= room.checkin_date:
            raise StateInvariantError(
                "room_date_order",
                "Room check-out must be after check-in",
                temp_id=room.temp_id,
            )
        if header is None:
            return
        if room.checkin_date < header.arrival_date or room.checkout_date > header.departure_date:
            raise StateInvariantError(
                "room_dates_within_booking",
                "Room dates must lie within the booking's arrival and departure",
                temp_id=room.temp_id,
                room_index=index,
                checkin_date=room.checkin_date.isoformat(),
                checkout_date=room.checkout_date.isoformat(),
            )

    def _room_index(self, index: int) -> int:
        if not 0 <= index < len(self._draft.rooms):
            raise StateInvariantError("room_index_in_range", f"No room at position {index}", room_index=index)
        return index

    def room_at(self, index: int) -> RoomDraft:
        return self._draft.rooms[self._room_index(index)]

    def add_room(self, room: RoomDraft) -> None:
        if any(existing.temp_id == room.temp_id for existing in self._draft.rooms):
            raise StateInvariantError("unique_temp_ids", f"Temp id {room.temp_id} is already in use", temp_id=room.temp_id)
        self._check_room_within(room, self._draft.header, index=len(self._draft.rooms))
        self._draft.rooms.append(room)
        server_id = clean_server_id(room.id)
        if server_id:
            self._draft.room_identifier_map[room.temp_id] = server_id

    def update_room(self, index: int, room: RoomDraft) -> None:
        self._room_index(index)
        previous = self._draft.rooms[index]
        if room.temp_id != previous.temp_id:
            raise StateInvariantError(
                "unique_temp_ids",
                "A room keeps its temp id for the lifetime of the draft",
                temp_id=previous.temp_id,
            )
        self._check_room_within(room, self._draft.header, index=index)
        self._draft.rooms[index] = room
        server_id = clean_server_id(room.id)
        if server_id:
            self._draft.room_identifier_map[room.temp_id] = server_id
        # Stored nights no longer match a changed stay
        days = self._draft.room_days.get(room.temp_id)
        if days is not None and [d.stay_date for d in days] != nights_between(room.checkin_date, room.checkout_date):
            del self._draft.room_days[room.temp_id]

    def remove_room(self, index: int) -> RoomDraft:
        self._room_index(index)
        room = self._draft.rooms.pop(index)
        self._draft.room_identifier_map.pop(room.temp_id, None)
        self._draft.room_days.pop(room.temp_id, None)
        return room

    def find_room(self, temp_id: str) -> Optional[RoomDraft]:
        return next((room for room in self._draft.rooms if room.temp_id == temp_id), None)

    def map_room_identifier(self, temp_id: str, server_id: str) -> None:
        room = self.find_room(temp_id)
        if room is None:
            raise StateInvariantError("room_exists", f"No room with temp id {temp_id}", temp_id=temp_id)
        cleaned = clean_server_id(server_id)
        if cleaned is None:
            raise StateInvariantError("room_id_present", "Room server identifier cannot be empty", temp_id=temp_id)
        self._draft.room_identifier_map[temp_id] = cleaned
        if room.id != cleaned:
            index = self._draft.rooms.index(room)
            self._draft.rooms[index] = room.model_copy(update={"id": cleaned})

    def resolve_room_id(self, temp_id: str) -> Optional[str]:
        return self._draft.room_identifier_map.get(temp_id)

    def add_room_days(self, room_temp_id: str, days: Iterable[RoomDayDraft]) -> None:
        room = self.find_room(room_temp_id)
        if room is None:
            raise StateInvariantError("room_exists", f"No room with temp id {room_temp_id}", temp_id=room_temp_id)
        if self.resolve_room_id(room_temp_id) is None:
            raise StateInvariantError(
                "room_days_require_resolved_room",
                f"Room {room_temp_id} has no server identifier yet",
                temp_id=room_temp_id,
            )
        ordered = sorted(days, key=lambda day: day.stay_date)
        expected = nights_between(room.checkin_date, room.checkout_date)
        if [day.stay_date for day in ordered] != expected:
            raise StateInvariantError(
                "room_days_cover_stay",
                "Room days must cover every night of the room stay exactly once",
                temp_id=room_temp_id,
                expected=[night.isoformat() for night in expected],
                received=[day.stay_date.isoformat() for day in ordered],
            )
        self._draft.room_days[room_temp_id] = ordered

    def room_days_for(self, temp_id: str) -> List[RoomDayDraft]:
        return list(self._draft.room_days.get(temp_id, []))

    # ------------------------------------------------------------------
    # Services / guarantee / guests
    # ------------------------------------------------------------------

    def add_service(self, service: ServiceDraft) -> None:
        self._draft.services.append(service)

    def remove_service(self, index: int) -> ServiceDraft:
        if not 0 <= index < len(self._draft.services):
            raise StateInvariantError("service_index_in_range", f"No service at position {index}", service_index=index)
        return self._draft.services.pop(index)

    def set_guarantee(self, guarantee: Optional[GuaranteeDraft]) -> None:
        self._draft.guarantee = guarantee

    def add_guest(self, guest: GuestDraft) -> None:
        self._draft.guests.append(guest)

    def _guest_index(self, index: int) -> int:
        if not 0 <= index < len(self._draft.guests):
            raise StateInvariantError("guest_index_in_range", f"No guest at position {index}", guest_index=index)
        return index

    def guest_at(self, index: int) -> GuestDraft:
        return self._draft.guests[self._guest_index(index)]

    def update_guest(self, index: int, guest: GuestDraft) -> None:
        self._draft.guests[self._guest_index(index)] = guest

    def remove_guest(self, index: int) -> GuestDraft:
        return self._draft.guests.pop(self._guest_index(index))

    def replace_guests(self, guests: Iterable[GuestDraft]) -> None:
        self._draft.guests = list(guests)

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def mark_step_completed(self, step: int) -> None:
        if not is_valid_step(step):
            raise StateInvariantError("step_in_range", f"Step {step} is outside 1..7", step=step)
        if step > STEP_BOOKING and (self._draft.header is None or self._draft.booking_id is None):
            raise StateInvariantError(
                "child_steps_require_booking",
                f"Step {step} cannot be completed before the booking is saved",
                step=step,
            )
        self._draft.completed_steps.add(step)

    def set_current_step(self, step: int) -> None:
        if not is_valid_step(step):
            raise StateInvariantError("step_in_range", f"Step {step} is outside 1..7", step=step)
        self._draft.current_step = step

    def reset(self) -> None:
        self._draft = WizardDraft()
        self._temp_seq = 0

    def load(self, draft: WizardDraft, *, temp_seq: int) -> None:
        """Replace the draft wholesale (resume path)."""

        self._draft = draft
        self._temp_seq = temp_seq

    def snapshot(self) -> Dict[str, Any]:
        return self._draft.to_dict()
