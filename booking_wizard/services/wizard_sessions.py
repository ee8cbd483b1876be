from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from booking_wizard import config
from booking_wizard.errors import WizardSessionNotFoundError
from booking_wizard.services.gateways import BookingGateway, get_booking_gateway
from booking_wizard.services.wizard_coordinator import BookingWizardCoordinator

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WizardSessionRegistry:
    """Process-local map of wizard sessions.

    Each session owns its own coordinator and store; the gateway is shared so
    that a booking created in one session can be resumed from another.

    Sessions expire after ``ttl_minutes`` without access. Expired sessions are
    swept whenever a session is opened, and the least recently used ones are
    dropped once ``max_sessions`` is reached.
    """

    def __init__(
        self,
        gateway: Optional[BookingGateway] = None,
        *,
        ttl_minutes: Optional[int] = None,
        max_sessions: Optional[int] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.gateway = gateway or get_booking_gateway()
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else config.WIZARD_SESSION_TTL_MINUTES)
        self.max_sessions = max_sessions if max_sessions is not None else config.WIZARD_MAX_SESSIONS
        self._clock = clock
        # Least recently used first
        self._sessions: "OrderedDict[str, BookingWizardCoordinator]" = OrderedDict()
        self._expires_at: Dict[str, datetime] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _touch(self, session_id: str) -> None:
        self._expires_at[session_id] = self._clock() + self.ttl
        self._sessions.move_to_end(session_id)

    def _discard(self, session_id: str) -> BookingWizardCoordinator:
        self._expires_at.pop(session_id, None)
        return self._sessions.pop(session_id)

    def evict(self) -> int:
        """Drop expired sessions, then the oldest ones above the size cap."""

        now = self._clock()
        expired = [sid for sid, expires_at in self._expires_at.items() if expires_at <= now]
        for session_id in expired:
            self._discard(session_id).reset()
            logger.info("Wizard session %s expired", session_id)

        evicted = len(expired)
        while self._sessions and len(self._sessions) >= self.max_sessions:
            session_id = next(iter(self._sessions))
            self._discard(session_id).reset()
            logger.warning("Wizard session %s evicted: %d sessions open", session_id, self.max_sessions)
            evicted += 1
        return evicted

    def _register(self, coordinator: BookingWizardCoordinator) -> str:
        self.evict()
        session_id = uuid.uuid4().hex
        self._sessions[session_id] = coordinator
        self._touch(session_id)
        return session_id

    def create(self) -> tuple[str, BookingWizardCoordinator]:
        coordinator = BookingWizardCoordinator(self.gateway)
        session_id = self._register(coordinator)
        logger.info("Wizard session %s opened", session_id)
        return session_id, coordinator

    async def resume(self, booking_id: str) -> tuple[str, BookingWizardCoordinator]:
        """Open a session pre-filled from the booking; nothing is registered on failure."""

        coordinator = BookingWizardCoordinator(self.gateway)
        await coordinator.resume(booking_id)
        session_id = self._register(coordinator)
        logger.info("Wizard session %s resumed booking %s", session_id, booking_id)
        return session_id, coordinator

    def get(self, session_id: str) -> BookingWizardCoordinator:
        coordinator = self._sessions.get(session_id)
        if coordinator is None:
            raise WizardSessionNotFoundError(session_id)
        if self._expires_at[session_id] <= self._clock():
            self._discard(session_id).reset()
            logger.info("Wizard session %s expired", session_id)
            raise WizardSessionNotFoundError(session_id)
        self._touch(session_id)
        return coordinator

    def drop(self, session_id: str) -> None:
        self.get(session_id)
        self._discard(session_id).reset()
        logger.info("Wizard session %s closed", session_id)

    def complete(self, session_id: str) -> str:
        booking_id = self.get(session_id).complete()
        self._discard(session_id)
        return booking_id
