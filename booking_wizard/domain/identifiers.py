from __future__ import annotations

import re
from typing import Optional


TEMP_ID_PREFIX = "temp-"

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def make_temp_id(index: int) -> str:
    return f"{TEMP_ID_PREFIX}{index}"


def is_temp_id(value: Optional[str]) -> bool:
    return bool(value) and str(value).startswith(TEMP_ID_PREFIX)


def is_uuid_shaped(value: Optional[str]) -> bool:
    """True when `value` looks like a server-issued UUID.

    Placeholders synthesised by response normalizers (e.g. "guarantee-1") or
    empty strings are rejected.
    """

    if not value:
        return False
    return bool(_UUID_RE.match(str(value)))


def clean_server_id(value: Optional[str]) -> Optional[str]:
    """Normalize a server identifier: blank/whitespace means "no identifier"."""

    if value is None:
        return None
    text = str(value).strip()
    return text or None
