from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel, Field

from booking_wizard.config import API_PREFIX
from booking_wizard.services.wizard_coordinator import BookingWizardCoordinator
from booking_wizard.services.wizard_sessions import WizardSessionRegistry

router = APIRouter(prefix=f"{API_PREFIX}/booking-wizard", tags=["booking-wizard"])


class StepTarget(BaseModel):
    step: int = Field(..., ge=1, le=7)


class BackIn(BaseModel):
    step: Optional[int] = Field(default=None, ge=1, le=7)


class RoomDaysIn(BaseModel):
    days: List[Dict[str, Any]] = Field(default_factory=list)


def get_sessions(request: Request) -> WizardSessionRegistry:
    return request.app.state.wizard_sessions


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    return value


def _session_view(session_id: str, coordinator: BookingWizardCoordinator, result: Any = None) -> Dict[str, Any]:
    view: Dict[str, Any] = {
        "session_id": session_id,
        "booking_id": coordinator.booking_id,
        "current_step": coordinator.current_step,
        "completed_steps": sorted(coordinator.completed_steps),
        "steps": coordinator.step_statuses(),
        "draft": coordinator.store.snapshot(),
    }
    if result is not None:
        view["result"] = _dump(result)
    return view


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


@router.post("/sessions", status_code=201)
async def open_session(sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    session_id, coordinator = sessions.create()
    return _session_view(session_id, coordinator)


@router.post("/sessions/resume/{booking_id}", status_code=201)
async def resume_session(booking_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    session_id, coordinator = await sessions.resume(booking_id)
    return _session_view(session_id, coordinator)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    return _session_view(session_id, sessions.get(session_id))


@router.delete("/sessions/{session_id}")
async def abandon_session(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    sessions.drop(session_id)
    return {"ok": True, "session_id": session_id}


# ---------------------------------------------------------------------------
# Step data
# ---------------------------------------------------------------------------


@router.post("/sessions/{session_id}/header")
async def submit_header(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    record = await coordinator.submit_header(payload)
    return _session_view(session_id, coordinator, record)


@router.post("/sessions/{session_id}/rooms")
async def add_room(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    room = await coordinator.add_room(payload)
    return _session_view(session_id, coordinator, room)


@router.put("/sessions/{session_id}/rooms/{index}")
async def update_room(
    session_id: str,
    index: int,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    room = await coordinator.update_room(index, payload)
    return _session_view(session_id, coordinator, room)


@router.delete("/sessions/{session_id}/rooms/{index}")
async def remove_room(
    session_id: str,
    index: int,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    room = await coordinator.remove_room(index)
    return _session_view(session_id, coordinator, room)


@router.post("/sessions/{session_id}/rooms/{index}/days")
async def save_room_days(
    session_id: str,
    index: int,
    payload: RoomDaysIn,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    days = await coordinator.save_room_days(index, payload.days)
    return _session_view(session_id, coordinator, days)


@router.get("/sessions/{session_id}/rooms/{index}/days/suggested")
async def suggested_room_days(
    session_id: str,
    index: int,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    return {"days": _dump(coordinator.suggest_room_days(index))}


@router.post("/sessions/{session_id}/services")
async def add_service(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    service = await coordinator.add_service(payload)
    return _session_view(session_id, coordinator, service)


@router.delete("/sessions/{session_id}/services/{index}")
async def remove_service(
    session_id: str,
    index: int,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    service = coordinator.remove_service(index)
    return _session_view(session_id, coordinator, service)


@router.post("/sessions/{session_id}/guarantee")
async def save_guarantee(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    guarantee = await coordinator.save_guarantee(payload)
    return _session_view(session_id, coordinator, guarantee)


@router.post("/sessions/{session_id}/guests")
async def save_guest(
    session_id: str,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    guest = await coordinator.save_guest(payload)
    return _session_view(session_id, coordinator, guest)


@router.put("/sessions/{session_id}/guests/{index}")
async def update_guest(
    session_id: str,
    index: int,
    payload: Dict[str, Any] = Body(...),
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    guest = await coordinator.update_guest(index, payload)
    return _session_view(session_id, coordinator, guest)


@router.delete("/sessions/{session_id}/guests/{index}")
async def remove_guest(
    session_id: str,
    index: int,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    guest = await coordinator.remove_guest(index)
    return _session_view(session_id, coordinator, guest)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@router.post("/sessions/{session_id}/next")
async def next_step(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    coordinator.next()
    return _session_view(session_id, coordinator)


@router.post("/sessions/{session_id}/skip")
async def skip_step(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    coordinator.skip()
    return _session_view(session_id, coordinator)


@router.post("/sessions/{session_id}/back")
async def back_step(
    session_id: str,
    payload: Optional[BackIn] = None,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    coordinator.back(payload.step if payload else None)
    return _session_view(session_id, coordinator)


@router.post("/sessions/{session_id}/goto")
async def go_to_step(
    session_id: str,
    payload: StepTarget,
    sessions: WizardSessionRegistry = Depends(get_sessions),
) -> Dict[str, Any]:
    coordinator = sessions.get(session_id)
    coordinator.go_to(payload.step)
    return _session_view(session_id, coordinator)


@router.get("/sessions/{session_id}/review")
async def review(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    return sessions.get(session_id).review_summary()


@router.post("/sessions/{session_id}/complete")
async def complete(session_id: str, sessions: WizardSessionRegistry = Depends(get_sessions)) -> Dict[str, Any]:
    booking_id = sessions.complete(session_id)
    return {"ok": True, "booking_id": booking_id}
