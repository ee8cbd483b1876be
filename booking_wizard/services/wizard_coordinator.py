from __future__ import annotations

"""Booking wizard coordinator.

Drives the seven-step booking creation flow on top of a WizardStateStore and a
BookingGateway. Every persisting operation follows the same protocol:

1. validate the submitted form (StepValidationError, no network call);
2. create or update the resource through the gateway;
3. on success write the returned identifier into the store, mark the step and
   advance;
4. on failure re-raise the gateway error unchanged with the draft untouched.

Only one persistence call per step may be in flight. A reset bumps a
generation counter so that answers to requests started before it are dropped.
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator, Dict, Iterable, List, Mapping, Optional, Set, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from booking_wizard.domain.validators import (
    compute_service_total,
    default_room_days,
    nights_between,
    validate_booking_header,
    validate_guarantee,
    validate_guest,
    validate_room,
    validate_room_days,
    validate_service,
)
from booking_wizard.domain.wizard_steps import (
    BOOKING_STEPS,
    FIRST_STEP,
    STEP_BOOKING,
    STEP_GUARANTEE,
    STEP_GUESTS,
    STEP_REVIEW,
    STEP_ROOM_DAYS,
    STEP_ROOMS,
    STEP_SERVICES,
    can_jump,
    get_step,
    highest_reachable_step,
    is_valid_step,
    step_status,
)
from booking_wizard.errors import (
    AggregateLoadError,
    GatewayError,
    MissingPrerequisiteError,
    StepInFlightError,
    StepNavigationError,
    StepValidationError,
)
from booking_wizard.schemas_wizard import (
    BookingHeaderDraft,
    BookingRecord,
    GuaranteeDraft,
    GuestDraft,
    RoomDayDraft,
    RoomDraft,
    ServiceDraft,
)
from booking_wizard.services.gateways.base import BookingGateway
from booking_wizard.services.wizard_resume import rebuild_draft
from booking_wizard.services.wizard_store import WizardDraft, WizardStateStore

logger = logging.getLogger(__name__)

FormInput = Union[Mapping[str, Any], BaseModel]
ModelT = TypeVar("ModelT", bound=BaseModel)


def _as_form(data: FormInput, *, drop: Iterable[str] = ()) -> Dict[str, Any]:
    """Plain dict copy of a submitted form without the keys the wizard owns."""

    form = data.model_dump(exclude_none=True) if isinstance(data, BaseModel) else dict(data)
    for name in drop:
        form.pop(name, None)
        form.pop(to_camel(name), None)
    return form


def _build(step: int, model: Type[ModelT], form: Mapping[str, Any], **extra: Any) -> ModelT:
    """Turn a validated form into its draft model.

    Anything the step validator let through but the model still rejects is
    reported as a field error of the same step.
    """

    try:
        return model.model_validate({**form, **extra})
    except ValidationError as exc:
        field_errors = {
            ".".join(str(part) for part in err["loc"]) or "__root__": err["msg"] for err in exc.errors()
        }
        raise StepValidationError(step, field_errors) from exc


def _money(value: Decimal) -> str:
    return str(value.quantize(Decimal("0.01")))


class BookingWizardCoordinator:
    def __init__(self, gateway: BookingGateway, store: Optional[WizardStateStore] = None) -> None:
        self.gateway = gateway
        self.store = store or WizardStateStore()
        self._in_flight: Set[int] = set()
        self._generation = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def draft(self) -> WizardDraft:
        return self.store.draft

    @property
    def current_step(self) -> int:
        return self.store.draft.current_step

    @property
    def completed_steps(self) -> Set[int]:
        return set(self.store.draft.completed_steps)

    @property
    def booking_id(self) -> Optional[str]:
        return self.store.draft.booking_id

    @property
    def generation(self) -> int:
        return self._generation

    def is_in_flight(self, step: int) -> bool:
        return step in self._in_flight

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _persisting(self, step: int) -> AsyncIterator[int]:
        """Re-entrancy guard for one step's gateway call; yields the generation."""

        if step in self._in_flight:
            raise StepInFlightError(step)
        self._in_flight.add(step)
        try:
            yield self._generation
        except GatewayError as exc:
            logger.warning("Step %s persistence failed (booking=%s): %s", step, self.booking_id, exc)
            raise
        finally:
            self._in_flight.discard(step)

    def _is_stale(self, generation: int, step: int) -> bool:
        if generation == self._generation:
            return False
        logger.warning("Discarding step %s result from a reset wizard session (generation %s)", step, generation)
        return True

    def _require_booking_id(self, resource: str) -> str:
        booking_id = self.booking_id
        if booking_id is None:
            raise MissingPrerequisiteError(
                "booking_id",
                f"Save the booking before adding a {resource}",
                resource=resource,
            )
        return booking_id

    def _advance(self, step: int, target: int) -> None:
        self.store.mark_step_completed(step)
        self.store.set_current_step(target)

    @staticmethod
    def _check(step: int, errors: Dict[str, str]) -> None:
        if errors:
            raise StepValidationError(step, errors)

    # ------------------------------------------------------------------
    # Step 1: booking header
    # ------------------------------------------------------------------

    async def submit_header(self, data: FormInput) -> Optional[BookingRecord]:
        form = _as_form(data)
        self._check(STEP_BOOKING, validate_booking_header(form))
        header = _build(STEP_BOOKING, BookingHeaderDraft, form)
        self.store.check_header(header)

        async with self._persisting(STEP_BOOKING) as generation:
            if self.booking_id:
                record = await self.gateway.update_booking(self.booking_id, header)
            else:
                record = await self.gateway.create_booking(header)
        if self._is_stale(generation, STEP_BOOKING):
            return None

        self.store.set_header(header)
        self.store.set_booking_id(record.id)
        self._advance(STEP_BOOKING, STEP_ROOMS)
        logger.info("Booking header saved: booking=%s", record.id)
        return record

    # ------------------------------------------------------------------
    # Step 2: rooms
    # ------------------------------------------------------------------

    def _booking_dates(self):
        header = self.draft.header
        if header is None:
            return None
        return header.arrival_date, header.departure_date

    async def add_room(self, data: FormInput) -> Optional[RoomDraft]:
        booking_id = self._require_booking_id("room")
        form = _as_form(data, drop=("temp_id", "id"))
        self._check(STEP_ROOMS, validate_room(form, self._booking_dates()))
        room = _build(STEP_ROOMS, RoomDraft, form, temp_id=self.store.new_temp_id())

        async with self._persisting(STEP_ROOMS) as generation:
            record = await self.gateway.create_room(booking_id, room)
        if self._is_stale(generation, STEP_ROOMS):
            return None

        room = room.model_copy(update={"id": record.id})
        self.store.add_room(room)
        logger.info("Room %s saved as %s (booking=%s)", room.temp_id, record.id, booking_id)
        return room

    async def update_room(self, index: int, data: FormInput) -> Optional[RoomDraft]:
        booking_id = self._require_booking_id("room")
        existing = self.store.room_at(index)
        form = _as_form(data, drop=("temp_id", "id"))
        self._check(STEP_ROOMS, validate_room(form, self._booking_dates()))
        server_id = self.store.resolve_room_id(existing.temp_id)
        room = _build(STEP_ROOMS, RoomDraft, form, temp_id=existing.temp_id, id=server_id)
        stored_days = self.store.room_days_for(existing.temp_id)
        stale_day_ids: List[str] = []
        if [day.stay_date for day in stored_days] != nights_between(room.checkin_date, room.checkout_date):
            stale_day_ids = [day.id for day in stored_days if day.id]

        async with self._persisting(STEP_ROOMS) as generation:
            if server_id:
                record = await self.gateway.update_room(server_id, room)
            else:
                record = await self.gateway.create_room(booking_id, room)
            # Nights outside the new stay go too
            for day_id in stale_day_ids:
                await self.gateway.delete_room_day(day_id)
        if self._is_stale(generation, STEP_ROOMS):
            return None

        room = room.model_copy(update={"id": record.id})
        self.store.update_room(index, room)
        logger.info("Room %s updated (%s)", room.temp_id, record.id)
        return room

    async def remove_room(self, index: int) -> Optional[RoomDraft]:
        room = self.store.room_at(index)
        server_id = self.store.resolve_room_id(room.temp_id)

        async with self._persisting(STEP_ROOMS) as generation:
            if server_id:
                await self.gateway.delete_room(server_id)
        if self._is_stale(generation, STEP_ROOMS):
            return None

        # Position may have shifted only through this same guarded step
        removed = self.store.remove_room(index)
        logger.info("Room %s removed (%s)", removed.temp_id, server_id or "never persisted")
        return removed

    # ------------------------------------------------------------------
    # Step 3: nightly rates
    # ------------------------------------------------------------------

    def suggest_room_days(self, index: int) -> List[RoomDayDraft]:
        room = self.store.room_at(index)
        stored = self.store.room_days_for(room.temp_id)
        return stored or default_room_days(room)

    async def save_room_days(self, index: int, days: Iterable[FormInput]) -> Optional[List[RoomDayDraft]]:
        self._require_booking_id("room day")
        room = self.store.room_at(index)
        server_id = self.store.resolve_room_id(room.temp_id)
        if server_id is None:
            raise MissingPrerequisiteError(
                "room_id",
                f"Room {room.temp_id} must be saved before its nightly rates",
                temp_id=room.temp_id,
            )

        forms = [_as_form(day, drop=("id",)) for day in days]
        self._check(STEP_ROOM_DAYS, validate_room_days(forms, room.checkin_date, room.checkout_date))
        group = sorted(
            (_build(STEP_ROOM_DAYS, RoomDayDraft, form) for form in forms),
            key=lambda day: day.stay_date,
        )
        saved_ids = {day.stay_date: day.id for day in self.store.room_days_for(room.temp_id) if day.id}

        persisted: List[RoomDayDraft] = []
        async with self._persisting(STEP_ROOM_DAYS) as generation:
            for day in group:
                day_id = saved_ids.get(day.stay_date)
                if day_id:
                    record = await self.gateway.update_room_day(day_id, day)
                else:
                    record = await self.gateway.create_room_day(server_id, day)
                persisted.append(day.model_copy(update={"id": record.id}))
        if self._is_stale(generation, STEP_ROOM_DAYS):
            return None

        self.store.add_room_days(room.temp_id, persisted)
        logger.info("Saved %d nightly rates for room %s (%s)", len(persisted), room.temp_id, server_id)
        if self._all_rooms_priced():
            self._advance(STEP_ROOM_DAYS, STEP_SERVICES)
        return persisted

    def _all_rooms_priced(self) -> bool:
        rooms = self.draft.rooms
        return bool(rooms) and all(self.draft.room_days.get(room.temp_id) for room in rooms)

    # ------------------------------------------------------------------
    # Step 4: services
    # ------------------------------------------------------------------

    async def add_service(self, data: FormInput) -> Optional[ServiceDraft]:
        booking_id = self._require_booking_id("service")
        form = _as_form(data, drop=("id",))
        self._check(STEP_SERVICES, validate_service(form))
        service = _build(STEP_SERVICES, ServiceDraft, form)
        if service.total_price is None and service.price_per_unit is not None:
            service = service.model_copy(
                update={"total_price": compute_service_total(service.persons, service.nights, service.price_per_unit)}
            )

        async with self._persisting(STEP_SERVICES) as generation:
            record = await self.gateway.create_service(booking_id, service)
        if self._is_stale(generation, STEP_SERVICES):
            return None

        service = service.model_copy(update={"id": record.id})
        self.store.add_service(service)
        logger.info("Service %s saved (booking=%s)", record.id, booking_id)
        return service

    def remove_service(self, index: int) -> ServiceDraft:
        """Drops the service from the draft only; the server record stays."""

        return self.store.remove_service(index)

    # ------------------------------------------------------------------
    # Step 5: guarantee
    # ------------------------------------------------------------------

    async def save_guarantee(self, data: FormInput) -> Optional[GuaranteeDraft]:
        booking_id = self._require_booking_id("guarantee")
        form = _as_form(data, drop=("id",))
        self._check(STEP_GUARANTEE, validate_guarantee(form))
        current = self.draft.guarantee
        guarantee_id = current.id if current else None
        guarantee = _build(STEP_GUARANTEE, GuaranteeDraft, form, id=guarantee_id)

        async with self._persisting(STEP_GUARANTEE) as generation:
            if guarantee_id:
                record = await self.gateway.update_guarantee(guarantee_id, guarantee)
            else:
                record = await self.gateway.create_guarantee(booking_id, guarantee)
        if self._is_stale(generation, STEP_GUARANTEE):
            return None

        guarantee = guarantee.model_copy(update={"id": record.id})
        self.store.set_guarantee(guarantee)
        self._advance(STEP_GUARANTEE, STEP_GUESTS)
        logger.info("Guarantee %s %s (booking=%s)", record.id, "updated" if guarantee_id else "created", booking_id)
        return guarantee

    # ------------------------------------------------------------------
    # Step 6: guests
    # ------------------------------------------------------------------

    async def save_guest(self, data: FormInput) -> Optional[GuestDraft]:
        booking_id = self._require_booking_id("guest")
        form = _as_form(data, drop=("id",))
        self._check(STEP_GUESTS, validate_guest(form))
        guest = _build(STEP_GUESTS, GuestDraft, form)

        async with self._persisting(STEP_GUESTS) as generation:
            record = await self.gateway.create_guest(booking_id, guest)
        if self._is_stale(generation, STEP_GUESTS):
            return None

        guest = guest.model_copy(update={"id": record.id})
        self.store.add_guest(guest)
        self._advance(STEP_GUESTS, STEP_REVIEW)
        logger.info("Guest %s saved (booking=%s)", record.id, booking_id)
        return guest

    async def update_guest(self, index: int, data: FormInput) -> Optional[GuestDraft]:
        booking_id = self._require_booking_id("guest")
        existing = self.store.guest_at(index)
        form = _as_form(data, drop=("id",))
        self._check(STEP_GUESTS, validate_guest(form))
        guest = _build(STEP_GUESTS, GuestDraft, form, id=existing.id)

        async with self._persisting(STEP_GUESTS) as generation:
            if existing.id:
                record = await self.gateway.update_guest(existing.id, guest)
            else:
                record = await self.gateway.create_guest(booking_id, guest)
        if self._is_stale(generation, STEP_GUESTS):
            return None

        guest = guest.model_copy(update={"id": record.id})
        self.store.update_guest(index, guest)
        return guest

    async def remove_guest(self, index: int) -> Optional[GuestDraft]:
        guest = self.store.guest_at(index)

        async with self._persisting(STEP_GUESTS) as generation:
            if guest.id:
                await self.gateway.delete_guest(guest.id)
        if self._is_stale(generation, STEP_GUESTS):
            return None

        return self.store.remove_guest(index)

    async def refresh_guests(self) -> Optional[List[GuestDraft]]:
        booking_id = self._require_booking_id("guest")

        async with self._persisting(STEP_GUESTS) as generation:
            records = await self.gateway.list_guests_by_booking(booking_id)
        if self._is_stale(generation, STEP_GUESTS):
            return None

        guests = [GuestDraft(**record.model_dump(exclude={"booking_id"})) for record in records]
        self.store.replace_guests(guests)
        return guests

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def next(self) -> int:
        """Confirm the current step and move forward.

        Data steps (1, 3, 5) normally advance on save; `next` lets a step
        whose data is already persisted be confirmed again after a back move.
        """

        step = self.current_step
        draft = self.draft

        if step == STEP_BOOKING:
            if self.booking_id is None:
                raise StepNavigationError(step, STEP_ROOMS, "the booking has not been saved")
        elif step == STEP_ROOMS:
            if not draft.rooms:
                raise StepNavigationError(step, STEP_ROOM_DAYS, "add at least one room")
            unresolved = [room.temp_id for room in draft.rooms if self.store.resolve_room_id(room.temp_id) is None]
            if unresolved:
                raise StepNavigationError(step, STEP_ROOM_DAYS, f"rooms not saved: {', '.join(unresolved)}")
        elif step == STEP_ROOM_DAYS:
            if not self._all_rooms_priced():
                raise StepNavigationError(step, STEP_SERVICES, "every room needs nightly rates (or skip this step)")
        elif step == STEP_GUARANTEE:
            if draft.guarantee is None or not draft.guarantee.id:
                raise StepNavigationError(step, STEP_GUESTS, "save the guarantee (or skip this step)")
        elif step == STEP_GUESTS:
            if not draft.guests:
                raise StepNavigationError(step, STEP_REVIEW, "add at least one guest (or skip this step)")
        elif step == STEP_REVIEW:
            raise StepNavigationError(step, step, "review is the last step; complete the booking instead")

        self._advance(step, step + 1)
        return self.current_step

    def skip(self) -> int:
        step = self.current_step
        target = get_step(step).skip_target
        if target is None:
            raise StepNavigationError(step, min(step + 1, STEP_REVIEW), "this step cannot be skipped")
        # Room days hang off rooms, so both skips need at least one room
        if step in (STEP_ROOMS, STEP_ROOM_DAYS) and not self.draft.rooms:
            raise StepNavigationError(step, target, "add at least one room first")

        self.store.set_current_step(target)
        return target

    def back(self, step: Optional[int] = None) -> int:
        current = self.current_step
        target = current - 1 if step is None else step
        if not is_valid_step(target) or target >= current:
            raise StepNavigationError(current, target, "back only moves to an earlier step")
        self.store.set_current_step(target)
        return target

    def go_to(self, step: int) -> int:
        current = self.current_step
        if not can_jump(current, step, self.draft.completed_steps):
            raise StepNavigationError(
                current,
                step,
                f"steps beyond {highest_reachable_step(self.draft.completed_steps)} are not reachable yet",
            )
        self.store.set_current_step(step)
        return step

    def step_statuses(self) -> List[Dict[str, Any]]:
        completed = self.draft.completed_steps
        current = self.current_step
        return [
            {
                **step.to_dict(),
                "status": step_status(step.id, current, completed),
                "clickable": can_jump(current, step.id, completed),
            }
            for step in BOOKING_STEPS
        ]

    # ------------------------------------------------------------------
    # Review / lifecycle
    # ------------------------------------------------------------------

    def review_summary(self) -> Dict[str, Any]:
        draft = self.draft

        rooms = []
        room_nights = 0
        room_days_total = Decimal("0")
        for room in draft.rooms:
            nights = len(nights_between(room.checkin_date, room.checkout_date))
            days = draft.room_days.get(room.temp_id, [])
            days_total = sum((day.price for day in days), Decimal("0"))
            room_nights += nights
            room_days_total += days_total
            rooms.append(
                {
                    **room.model_dump(mode="json"),
                    "nights": nights,
                    "days": [day.model_dump(mode="json") for day in days],
                    "days_total": _money(days_total),
                }
            )

        services = []
        services_total = Decimal("0")
        for service in draft.services:
            total = service.total_price
            if total is None:
                total = compute_service_total(service.persons, service.nights, service.price_per_unit)
            services_total += total
            services.append({**service.model_dump(mode="json"), "total_price": _money(total)})

        return {
            "booking_id": draft.booking_id,
            "header": draft.header.model_dump(mode="json") if draft.header else None,
            "rooms": rooms,
            "services": services,
            "guarantee": draft.guarantee.model_dump(mode="json") if draft.guarantee else None,
            "guests": [guest.model_dump(mode="json") for guest in draft.guests],
            "totals": {
                "rooms": len(draft.rooms),
                "room_nights": room_nights,
                "room_days_total": _money(room_days_total),
                "services_total": _money(services_total),
            },
            "current_step": draft.current_step,
            "completed_steps": sorted(draft.completed_steps),
        }

    def complete(self) -> str:
        current = self.current_step
        if current != STEP_REVIEW:
            raise StepNavigationError(current, STEP_REVIEW, "only the review step can complete the booking")
        booking_id = self._require_booking_id("review")
        logger.info("Booking wizard completed: booking=%s steps=%s", booking_id, sorted(self.draft.completed_steps))
        self.reset()
        return booking_id

    def reset(self) -> None:
        self._generation += 1
        self.store.reset()

    async def resume(self, booking_id: str) -> Optional[WizardDraft]:
        """Replace the draft with one rebuilt from the server aggregate.

        Any failure leaves an empty draft behind; there is no partial resume.
        """

        self.reset()
        generation = self._generation
        try:
            aggregate = await self.gateway.get_booking_aggregate(booking_id)
        except GatewayError as exc:
            logger.warning("Failed to load booking %s for resume: %s", booking_id, exc)
            raise AggregateLoadError(booking_id, f"Failed to load booking: {exc.message}", status_code=502) from exc
        if aggregate is None:
            raise AggregateLoadError(booking_id, "Booking not found")
        if self._is_stale(generation, FIRST_STEP):
            return None

        draft, temp_seq = rebuild_draft(aggregate)
        self.store.load(draft, temp_seq=temp_seq)
        logger.info(
            "Resumed booking %s at step %s (completed=%s)",
            booking_id,
            draft.current_step,
            sorted(draft.completed_steps),
        )
        return draft
