# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""WebDriver error envelope.

Maps exceptions and validator results onto the W3C WebDriver error
response ``{"value": {"error": <code>, "message": <text>}}``.  The module is
a near-leaf dependency (stdlib + errors.py + starlette lazy) so it can be
imported safely from any layer.

Key public API:

- ``ErrorCode``     : StrEnum of the error codes this server emits.
- ``ErrorResponse`` : frozen dataclass (→ envelope dict / Starlette response).
- ``from_exception()``: build an ``ErrorResponse`` from any exception.
- ``unsupported()`` / ``invalid_argument()``: validator descriptors.
"""

from __future__ import annotations

import re
import traceback
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from .errors import WebDriverError

DEFAULT_MESSAGE = "An unknown error occurred handling the command"


class ErrorCode(StrEnum):
    """W3C error codes emitted by docdriver."""

    INVALID_ARGUMENT = "invalid argument"
    INVALID_COOKIE_DOMAIN = "invalid cookie domain"
    JAVASCRIPT_ERROR = "javascript error"
    NO_SUCH_COOKIE = "no such cookie"
    NO_SUCH_ELEMENT = "no such element"
    NO_SUCH_SESSION = "no such session"
    STALE_ELEMENT_REFERENCE = "stale element reference"
    UNKNOWN_COMMAND = "unknown command"
    UNKNOWN_ERROR = "unknown error"
    UNKNOWN_METHOD = "unknown method"
    UNSUPPORTED_OPERATION = "unsupported operation"

    @property
    def status(self) -> int:
        return _STATUS[self]


_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.INVALID_COOKIE_DOMAIN: 400,
    ErrorCode.JAVASCRIPT_ERROR: 500,
    ErrorCode.NO_SUCH_COOKIE: 404,
    ErrorCode.NO_SUCH_ELEMENT: 404,
    ErrorCode.NO_SUCH_SESSION: 404,
    ErrorCode.STALE_ELEMENT_REFERENCE: 404,
    ErrorCode.UNKNOWN_COMMAND: 404,
    ErrorCode.UNKNOWN_ERROR: 500,
    ErrorCode.UNKNOWN_METHOD: 405,
    ErrorCode.UNSUPPORTED_OPERATION: 500,
}

# ── Chromium net::ERR_* classification ───────────────────────────────

_NET_ERR_RE = re.compile(r"net::ERR_(\w+)")
_HOSTNAME_RE = re.compile(r"https?://([^/:\s]+)")

_CONNECTION_CODES = {
    "CONNECTION_REFUSED",
    "CONNECTION_CLOSED",
    "CONNECTION_RESET",
    "EMPTY_RESPONSE",
    "ADDRESS_UNREACHABLE",
}


def describe_network_error(exc_message: str) -> str | None:
    """Turn a Playwright ``net::ERR_*`` navigation failure into a readable message.

    Returns ``None`` if *exc_message* does not contain a ``net::ERR_*`` code.
    The error code stays ``unknown error``; only the message is improved.
    """
    m = _NET_ERR_RE.search(exc_message)
    if m is None:
        return None
    code = m.group(1)
    hm = _HOSTNAME_RE.search(exc_message)
    hostname = hm.group(1) if hm else ""

    if code == "NAME_NOT_RESOLVED":
        host_part = f" '{hostname}'" if hostname else ""
        return f"Could not resolve domain name{host_part}"
    if code == "CONNECTION_TIMED_OUT":
        host_part = f" to '{hostname}'" if hostname else ""
        return f"Connection timed out{host_part}"
    if code in _CONNECTION_CODES:
        host_part = f" to '{hostname}'" if hostname else ""
        return f"Connection failed{host_part}"
    if "CERT" in code or "SSL" in code:
        host_part = f" for '{hostname}'" if hostname else ""
        return f"SSL/TLS error{host_part}"
    return f"Navigation failed (net::ERR_{code})"


# ── ErrorResponse dataclass ──────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class ErrorResponse:
    """A WebDriver error, ready to be sent.

    Validators return one of these (``status``/``error``/``message`` left as
    ``None`` fall back to the router's defaults); the router also builds
    them from exceptions raised by handlers.
    """

    error: str | None = None
    message: str | None = None
    status: int | None = None

    def resolved(self, command: str) -> ErrorResponse:
        """Fill in the validator defaults for *command*."""
        return ErrorResponse(
            error=self.error or ErrorCode.UNSUPPORTED_OPERATION.value,
            message=self.message or f"This operation ({command}) is not supported yet",
            status=self.status or 500,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"value": {"error": self.error or ErrorCode.UNKNOWN_ERROR.value, "message": self.message or ""}}

    def to_response(self):
        """Starlette ``JSONResponse`` carrying the envelope."""
        from starlette.responses import JSONResponse

        return JSONResponse(
            content=self.to_dict(),
            status_code=self.status or 500,
            headers={"Cache-Control": "no-cache"},
        )


# ── Factory functions ────────────────────────────────────────────────


def from_exception(exc: BaseException, *, include_stacktrace: bool = False) -> ErrorResponse:
    """Build an ErrorResponse from an exception raised by a handler.

    ``WebDriverError`` subclasses carry their own code and status; anything
    else is an ``unknown error`` with status 500.  Any object exposing
    ``status``/``error`` attributes is honoured the same way.
    """
    status = getattr(exc, "status", None)
    error = getattr(exc, "error", None)
    if not isinstance(status, int):
        status = 500
    if not isinstance(error, str) or not error:
        error = ErrorCode.UNKNOWN_ERROR.value

    message = str(exc)
    if not isinstance(exc, WebDriverError):
        message = describe_network_error(message) or message
    if not message:
        message = DEFAULT_MESSAGE

    if include_stacktrace:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        message = f"{message}\n{stack}"

    return ErrorResponse(error=error, message=message, status=status)


def unsupported(command: str = "", message: str = "") -> ErrorResponse:
    """Descriptor for a recognised but unimplemented command or argument."""
    return ErrorResponse(
        error=ErrorCode.UNSUPPORTED_OPERATION.value,
        message=message or (f"This operation ({command}) is not supported yet" if command else None),
        status=ErrorCode.UNSUPPORTED_OPERATION.status,
    )


def invalid_argument(message: str) -> ErrorResponse:
    return ErrorResponse(
        error=ErrorCode.INVALID_ARGUMENT.value,
        message=message,
        status=ErrorCode.INVALID_ARGUMENT.status,
    )
