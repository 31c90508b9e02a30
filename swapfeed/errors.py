from __future__ import annotations

"""
Exception types and user-safe error messages.

Only two failure kinds ever reach an HTTP caller: a missing or rejected
identity token (401) and a failed catalog read (500). Scorer failures are
absorbed by the ranker. Platform error text is never echoed verbatim; it is
mapped to a fixed message through format_database_error().
"""

import re
from typing import Any, Dict, List, Optional, Pattern, Tuple


class SwapfeedError(Exception):
    """Base class for errors raised inside the feed service."""


class AuthError(SwapfeedError):
    """The caller's bearer token is missing or was rejected by the auth server."""


class CatalogError(SwapfeedError):
    """A read against the catalog store failed."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ScorerError(SwapfeedError):
    """The external scorer was unreachable, answered non-2xx, or replied with garbage."""


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

DEFAULT_ERROR_MESSAGE = "An error occurred"

# Postgres SQLSTATE and PostgREST codes
ERROR_MESSAGES: Dict[str, str] = {
    "23505": "This item already exists. Please use a different name.",
    "23503": "Referenced item not found.",
    "23502": "Required information is missing.",
    "42501": "Permission denied.",
    "22P02": "Invalid data format.",
    "PGRST116": "Item not found.",
    "PGRST301": "Request timeout. Please try again.",
    "42P01": "An error occurred. Please try again.",
    "42703": "An error occurred. Please try again.",
}

AUTH_ERROR_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"invalid login|invalid password|invalid credentials", re.I), "Invalid email or password."),
    (re.compile(r"email already|already registered|user already registered", re.I),
     "An account with this email already exists."),
    (re.compile(r"email not confirmed", re.I), "Please verify your email address."),
    (re.compile(r"rate limit|too many requests", re.I), "Too many attempts. Please wait a moment and try again."),
    (re.compile(r"password.*weak|password.*short", re.I), "Password is too weak. Please use a stronger password."),
    (re.compile(r"invalid email", re.I), "Please enter a valid email address."),
    (re.compile(r"session expired|jwt expired", re.I), "Your session has expired. Please sign in again."),
]


def _lookup(error: Any, *keys: str) -> Any:
    for key in keys:
        if isinstance(error, dict):
            value = error.get(key)
        else:
            value = getattr(error, key, None)
        if value:
            return value
    return None


def format_database_error(error: Any, default_message: str = DEFAULT_ERROR_MESSAGE) -> str:
    """
    Map a platform error (dict payload or exception) to a message that is safe
    to show a client. Unknown errors get `default_message`.
    """
    if error is None or isinstance(error, (str, int, float, bool)):
        return default_message

    code = _lookup(error, "code", "error_code")
    if isinstance(code, str) and code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]

    message = _lookup(error, "message", "msg")
    if message is None and isinstance(error, BaseException):
        message = str(error)
    if isinstance(message, str):
        for pattern, friendly in AUTH_ERROR_PATTERNS:
            if pattern.search(message):
                return friendly

    return default_message
