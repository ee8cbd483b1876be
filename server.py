from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent

# Load .env only if exists (development fallback); must run before the config import
env_path = ROOT_DIR / ".env"
if env_path.exists():
    load_dotenv(env_path)

from fastapi import FastAPI  # noqa: E402
from starlette.middleware.cors import CORSMiddleware  # noqa: E402

from booking_wizard import config  # noqa: E402
from booking_wizard.exception_handlers import register_exception_handlers  # noqa: E402
from booking_wizard.middleware.correlation_id import CorrelationIdMiddleware  # noqa: E402
from booking_wizard.routers.booking_wizard import router as booking_wizard_router  # noqa: E402
from booking_wizard.services.gateways import BookingGateway  # noqa: E402
from booking_wizard.services.wizard_sessions import WizardSessionRegistry  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("booking-wizard")


def create_app(gateway: Optional[BookingGateway] = None) -> FastAPI:
    """Build the API; tests pass their own gateway to inspect the calls."""

    app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION)
    app.state.wizard_sessions = WizardSessionRegistry(gateway)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(app)

    if config.ENABLE_WIZARD_API:
        app.include_router(booking_wizard_router)
    else:
        logger.info("ENABLE_WIZARD_API disabled; booking wizard routes not mounted")

    @app.get(f"{config.API_PREFIX}/health")
    async def health() -> dict[str, Any]:
        sessions: WizardSessionRegistry = app.state.wizard_sessions
        return {
            "ok": True,
            "service": "booking-wizard",
            "gateway": type(sessions.gateway).__name__,
            "sessions": len(sessions),
        }

    logger.info("Booking wizard API ready (gateway mode=%s)", config.GATEWAY_MODE)
    return app


app = create_app()
