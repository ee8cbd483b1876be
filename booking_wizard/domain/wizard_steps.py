from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Literal, Optional


STEP_BOOKING = 1
STEP_ROOMS = 2
STEP_ROOM_DAYS = 3
STEP_SERVICES = 4
STEP_GUARANTEE = 5
STEP_GUESTS = 6
STEP_REVIEW = 7

FIRST_STEP = STEP_BOOKING
LAST_STEP = STEP_REVIEW

StepStatus = Literal["completed", "current", "available", "upcoming"]


@dataclass(frozen=True)
class WizardStep:
    id: int
    key: str
    label: str
    description: str
    # Where "skip" lands; None means the step cannot be skipped at all
    skip_target: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "description": self.description,
            "skippable": self.skip_target is not None,
        }


BOOKING_STEPS = (
    WizardStep(STEP_BOOKING, "booking", "Booking Info", "Basic booking details"),
    # Skipping rooms lands on services: room days cannot exist without rooms
    WizardStep(STEP_ROOMS, "rooms", "Rooms", "Add rooms to booking", skip_target=STEP_SERVICES),
    WizardStep(STEP_ROOM_DAYS, "room_days", "Room Days", "Daily pricing breakdown", skip_target=STEP_SERVICES),
    WizardStep(STEP_SERVICES, "services", "Services", "Additional services", skip_target=STEP_GUARANTEE),
    WizardStep(STEP_GUARANTEE, "guarantee", "Guarantee", "Payment guarantee", skip_target=STEP_GUESTS),
    WizardStep(STEP_GUESTS, "guests", "Guest Info", "Customer details", skip_target=STEP_REVIEW),
    WizardStep(STEP_REVIEW, "review", "Review", "Review and confirm"),
)

_STEPS_BY_ID: Dict[int, WizardStep] = {step.id: step for step in BOOKING_STEPS}

# Steps that may be left without any persisted data
OPTIONAL_STEPS: FrozenSet[int] = frozenset({STEP_SERVICES, STEP_GUARANTEE, STEP_GUESTS})


def is_valid_step(step: object) -> bool:
    return isinstance(step, int) and not isinstance(step, bool) and FIRST_STEP <= step <= LAST_STEP


def get_step(step: int) -> WizardStep:
    try:
        return _STEPS_BY_ID[step]
    except KeyError:
        raise ValueError(f"Unknown wizard step: {step}") from None


def highest_reachable_step(completed_steps: FrozenSet[int] | set[int]) -> int:
    """Largest step number the step indicator may jump to."""

    highest_completed = max(completed_steps, default=0)
    return min(highest_completed + 1, LAST_STEP)


def can_jump(current: int, target: int, completed_steps: FrozenSet[int] | set[int]) -> bool:
    """Backward moves are always allowed; forward jumps stop one past the
    highest completed step."""

    if not is_valid_step(target):
        return False
    if target <= current:
        return True
    return target <= highest_reachable_step(completed_steps)


def step_status(step: int, current: int, completed_steps: FrozenSet[int] | set[int]) -> StepStatus:
    if step in completed_steps:
        return "completed"
    if step == current:
        return "current"
    if step < current:
        return "available"
    return "upcoming"
