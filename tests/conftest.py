"""Shared test configuration and fixtures for the booking wizard.

Key principles:
- No network: the in-memory gateway backs coordinator and API tests, the HTTP
  gateway runs against httpx.MockTransport.
- HTTP calls to the API go through the local ASGI app via ASGITransport.
- AnyIO is the single async runner via pytest-anyio (@pytest.mark.anyio).
"""

from typing import Any, AsyncGenerator, Dict

import sys
from pathlib import Path

import httpx
import pytest
from httpx import ASGITransport

# Ensure the project root is on sys.path so that `server` module is importable
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from server import create_app  # noqa: E402
from booking_wizard.services.gateways.memory import InMemoryBookingGateway  # noqa: E402
from booking_wizard.services.wizard_coordinator import BookingWizardCoordinator  # noqa: E402


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Force pytest-anyio to use asyncio event loop."""

    return "asyncio"


@pytest.fixture
def gateway() -> InMemoryBookingGateway:
    return InMemoryBookingGateway()


@pytest.fixture
def coordinator(gateway: InMemoryBookingGateway) -> BookingWizardCoordinator:
    return BookingWizardCoordinator(gateway)


@pytest.fixture
def header_form() -> Dict[str, Any]:
    return {
        "property_id": "prop-1",
        "status": "new",
        "arrival_date": "2025-03-01",
        "departure_date": "2025-03-04",
        "amount": "220.00",
        "currency": "EUR",
        "occupancy": {"adults": 2, "children": 0, "infants": 0},
    }


@pytest.fixture
def room_form() -> Dict[str, Any]:
    return {
        "room_type_id": "rt-double",
        "rate_plan_id": "rp-bar",
        "checkin_date": "2025-03-01",
        "checkout_date": "2025-03-03",
        "adults": 2,
        "amount": "150.00",
    }


@pytest.fixture
def guest_form() -> Dict[str, Any]:
    return {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "+44 20 7946 0000",
        "language": "en",
        "country": "GB",
        "city": "London",
        "address": "12 St James's Square",
        "zip": "SW1Y 4JH",
    }


@pytest.fixture
def guarantee_form() -> Dict[str, Any]:
    return {
        "card_type": "visa",
        "card_holder_name": "Ada Lovelace",
        "masked_card_number": "411111******1111",
        "expiration_date": "10/2027",
    }


@pytest.fixture
def app(gateway: InMemoryBookingGateway):
    return create_app(gateway)


@pytest.fixture
async def async_client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
