"""Request-scoped helpers: test-mode header and session id parsing."""
import re
from fastapi import Header
from uuid import UUID
from typing import Optional

from .errors import InvalidRequest

# Canonical hyphenated form only, no braces, urn: prefix or bare hex
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def get_test_mode(x_test_mode: Optional[str] = Header(None, alias="X-Test-Mode")) -> bool:
    """Test mode reroutes every outgoing email to the superadmin."""
    return (x_test_mode or "").strip().lower() == "true"


def _canonical_uuid(value: str) -> Optional[UUID]:
    if not UUID_PATTERN.match(value):
        return None
    return UUID(value)


def parse_session_id(session_id: Optional[str]) -> UUID:
    if not session_id:
        raise InvalidRequest("session_id is required")
    parsed = _canonical_uuid(session_id)
    if parsed is None:
        raise InvalidRequest("Invalid session_id format")
    return parsed


def parse_optional_uuid(value: Optional[str], field: str) -> Optional[UUID]:
    if value is None or value == "":
        return None
    parsed = _canonical_uuid(str(value))
    if parsed is None:
        raise InvalidRequest(f"Invalid {field} format")
    return parsed
