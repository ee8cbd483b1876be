from __future__ import annotations

from typing import Optional

from booking_wizard import config
from booking_wizard.services.gateways.base import BookingGateway, build_payload, require_parent_id
from booking_wizard.services.gateways.http import HttpBookingGateway
from booking_wizard.services.gateways.memory import InMemoryBookingGateway

__all__ = [
    "BookingGateway",
    "HttpBookingGateway",
    "InMemoryBookingGateway",
    "build_payload",
    "get_booking_gateway",
    "require_parent_id",
]


def get_booking_gateway(mode: Optional[str] = None) -> BookingGateway:
    """Return the booking gateway implementation for `mode`.

    "memory" keeps everything in process; "http" talks to the channel-manager
    API configured through CHANNEL_API_* variables.
    """

    mode = (mode or config.GATEWAY_MODE).strip().lower()
    if mode == "memory":
        return InMemoryBookingGateway()
    if mode == "http":
        return HttpBookingGateway()

    raise ValueError(f"Unsupported booking gateway mode: {mode}")
