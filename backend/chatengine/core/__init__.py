"""Core utilities: errors, logging, rate limiting, request helpers."""
from .errors import (
    ChatEngineError,
    NotFound,
    ConfigurationMissing,
    InvalidRequest,
    UpstreamRateLimited,
    UpstreamServiceError,
    ParseError,
    RateLimited,
)
from .request import get_test_mode, parse_session_id, parse_optional_uuid

__all__ = [
    "ChatEngineError",
    "NotFound",
    "ConfigurationMissing",
    "InvalidRequest",
    "UpstreamRateLimited",
    "UpstreamServiceError",
    "ParseError",
    "RateLimited",
    "get_test_mode",
    "parse_session_id",
    "parse_optional_uuid",
]
