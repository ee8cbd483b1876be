from __future__ import annotations

"""Application-level configuration and feature flags.

Everything is read from the environment once at import time. Defaults keep the
wizard usable locally without any channel-manager credentials: the gateway
falls back to the in-memory implementation.
"""

import os


def _env_flag(name: str, default: bool = True) -> bool:
    """Read a boolean-like flag from environment.

    Accepted falsy values: "0", "false", "off", "no" (case-insensitive).
    Anything else (or unset) falls back to `default`.
    """

    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"0", "false", "off", "no"}:
        return False
    if value in {"1", "true", "on", "yes"}:
        return True
    return default


# Application constants
API_PREFIX = "/api"
APP_NAME = "Booking Wizard API"
APP_VERSION = "1.0.0"
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

ENABLE_WIZARD_API: bool = _env_flag("ENABLE_WIZARD_API", default=True)

# Resource gateway selection: "memory" (deterministic, local) or "http"
GATEWAY_MODE = os.environ.get("BOOKING_WIZARD_GATEWAY_MODE", "memory").strip().lower() or "memory"

# Channel-manager API used by the http gateway
CHANNEL_API_BASE_URL = os.environ.get("CHANNEL_API_BASE_URL", "http://localhost:3000/api")
CHANNEL_API_TOKEN = os.environ.get("CHANNEL_API_TOKEN", "")
CHANNEL_API_TIMEOUT_SECONDS = float(os.environ.get("CHANNEL_API_TIMEOUT_SECONDS", "10"))

# Wizard sessions idle longer than this are dropped; the cap bounds memory
WIZARD_SESSION_TTL_MINUTES = int(os.environ.get("WIZARD_SESSION_TTL_MINUTES", "60"))
WIZARD_MAX_SESSIONS = int(os.environ.get("WIZARD_MAX_SESSIONS", "1000"))
