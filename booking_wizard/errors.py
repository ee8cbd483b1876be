from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


def error_response(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


class StepValidationError(AppError):
    """Raised when a step's form fails its validator.

    Field errors are carried verbatim so the presentation layer can render them
    inline; nothing has been sent to the gateway at this point.
    """

    def __init__(self, step: int, field_errors: Dict[str, str]) -> None:
        super().__init__(
            422,
            "validation_error",
            f"Step {step} has invalid fields",
            {"step": step, "fields": dict(field_errors)},
        )
        self.step = step
        self.field_errors = dict(field_errors)


class StateInvariantError(AppError):
    """Raised by the wizard store when a mutation would break an invariant."""

    def __init__(self, invariant: str, message: str, **details: Any) -> None:
        super().__init__(409, "state_invariant_violated", message, {"invariant": invariant, **details})
        self.invariant = invariant


class MissingPrerequisiteError(AppError):
    """A child resource was requested before its parent identifier exists."""

    def __init__(self, prerequisite: str, message: str, **details: Any) -> None:
        super().__init__(409, "missing_prerequisite", message, {"prerequisite": prerequisite, **details})
        self.prerequisite = prerequisite


class StepNavigationError(AppError):
    def __init__(self, current: int, target: int, reason: str) -> None:
        super().__init__(
            409,
            "invalid_step_transition",
            f"Cannot move from step {current} to step {target}: {reason}",
            {"current_step": current, "target_step": target, "reason": reason},
        )
        self.current = current
        self.target = target
        self.reason = reason


class StepInFlightError(AppError):
    def __init__(self, step: int) -> None:
        super().__init__(409, "step_in_flight", f"Step {step} is already being saved", {"step": step})
        self.step = step


class AggregateLoadError(AppError):
    """The booking aggregate could not be fetched; the session cannot resume."""

    def __init__(self, booking_id: str, message: str = "Failed to load booking", *, status_code: int = 404) -> None:
        super().__init__(status_code, "booking_load_failed", message, {"booking_id": booking_id})
        self.booking_id = booking_id


@dataclass
class GatewayError(Exception):
    """Failure reported by a resource gateway (transport or server side).

    The coordinator never interprets it; it is re-raised to the caller as is.
    """

    code: str
    message: str
    http_status: int = 502
    meta: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class UnrecognizedResponseShape(GatewayError):
    def __init__(self, message: str, meta: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(code="UNRECOGNIZED_RESPONSE", message=message, http_status=502, meta=meta or {})


class WizardSessionNotFoundError(AppError):
    def __init__(self, session_id: str) -> None:
        super().__init__(404, "wizard_session_not_found", f"Wizard session {session_id} not found", {"session_id": session_id})
        self.session_id = session_id
