from __future__ import annotations

import logging
from typing import Tuple

from booking_wizard.domain.identifiers import clean_server_id, is_uuid_shaped, make_temp_id
from booking_wizard.domain.wizard_steps import (
    STEP_BOOKING,
    STEP_GUARANTEE,
    STEP_GUESTS,
    STEP_REVIEW,
    STEP_ROOM_DAYS,
    STEP_ROOMS,
    STEP_SERVICES,
)
from booking_wizard.errors import AggregateLoadError
from booking_wizard.schemas_wizard import BookingAggregate, GuaranteeDraft, GuestDraft, RoomDraft, RoomFields
from booking_wizard.services.wizard_store import WizardDraft

logger = logging.getLogger(__name__)


def rebuild_draft(aggregate: BookingAggregate) -> Tuple[WizardDraft, int]:
    """Rebuild a WizardDraft from a fetched booking aggregate.

    Deterministic single pass, no I/O. Each step's completeness is judged on
    its own data; an unmet earlier step never blocks a later one, and the
    current step ends up one past the last satisfied condition.

    Returns the draft and the next free temp-id sequence number.
    """

    booking_id = clean_server_id(aggregate.id)
    if booking_id is None or aggregate.header is None:
        raise AggregateLoadError(str(aggregate.id or ""), "Booking aggregate has no booking header")

    draft = WizardDraft()

    # 1. header
    draft.booking_id = booking_id
    draft.header = aggregate.header.model_copy(deep=True)
    draft.completed_steps.add(STEP_BOOKING)
    draft.current_step = STEP_ROOMS

    # 2. rooms
    room_fields = set(RoomFields.model_fields)
    for index, source in enumerate(aggregate.rooms):
        temp_id = make_temp_id(index)
        server_id = clean_server_id(source.id)
        room = RoomDraft(temp_id=temp_id, id=server_id, **source.model_dump(include=room_fields))
        draft.rooms.append(room)
        if server_id:
            draft.room_identifier_map[temp_id] = server_id
    if draft.rooms:
        draft.completed_steps.add(STEP_ROOMS)
        draft.current_step = STEP_ROOM_DAYS

    # 3. nightly rates
    for index, source in enumerate(aggregate.rooms):
        if not source.days:
            continue
        # One entry per night; a later duplicate wins
        by_night = {day.stay_date: day.model_copy() for day in source.days}
        if len(by_night) != len(source.days):
            logger.warning(
                "Room %s of booking %s has %d duplicate nights; keeping the last of each",
                source.id,
                booking_id,
                len(source.days) - len(by_night),
            )
        draft.room_days[make_temp_id(index)] = sorted(by_night.values(), key=lambda day: day.stay_date)
    if draft.rooms and all(draft.room_days.get(room.temp_id) for room in draft.rooms):
        draft.completed_steps.add(STEP_ROOM_DAYS)
        draft.current_step = STEP_SERVICES

    # 4. services
    if aggregate.services:
        draft.services = [service.model_copy(deep=True) for service in aggregate.services]
        draft.completed_steps.add(STEP_SERVICES)
        draft.current_step = STEP_GUARANTEE

    # 5. guarantee: malformed ids force a create on the next save
    if aggregate.guarantees:
        source = aggregate.guarantees[0]
        guarantee_id = source.id if is_uuid_shaped(source.id) else None
        if source.id and guarantee_id is None:
            logger.info("Dropping non-UUID guarantee id %r for booking %s", source.id, booking_id)
        draft.guarantee = GuaranteeDraft(**source.model_dump(exclude={"id"}), id=guarantee_id)
        draft.completed_steps.add(STEP_GUARANTEE)
        draft.current_step = STEP_GUESTS

    # 6. guests
    if aggregate.guests:
        draft.guests = [
            GuestDraft(**guest.model_dump(exclude={"id"}), id=clean_server_id(guest.id)) for guest in aggregate.guests
        ]
        draft.completed_steps.add(STEP_GUESTS)
        draft.current_step = STEP_REVIEW

    return draft, len(draft.rooms)
