# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""docdriver exception hierarchy.

Every protocol-level failure inherits from WebDriverError, which carries the
W3C ``error`` code string and the HTTP status the command router answers
with. Anything else raised by a handler is reported as ``unknown error``.
"""

from __future__ import annotations


class WebDriverError(Exception):
    """Base exception for all WebDriver protocol errors."""

    error = "unknown error"
    status = 500
    default_message = "An unknown error occurred handling the command"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidArgumentError(WebDriverError):
    """Command arguments are missing or malformed."""

    error = "invalid argument"
    status = 400


class InvalidCookieDomainError(WebDriverError):
    """Cookie cannot be set for the current document's domain."""

    error = "invalid cookie domain"
    status = 400


class NoSuchSessionError(WebDriverError):
    """Session id is unknown or the session was deleted."""

    error = "no such session"
    status = 404

    def __init__(self, session_id: str = "") -> None:
        super().__init__(f"No active session with id '{session_id}'" if session_id else "")
        self.session_id = session_id


class NoSuchElementError(WebDriverError):
    """Locator matched no element."""

    error = "no such element"
    status = 404


class StaleElementReferenceError(WebDriverError):
    """Element id does not resolve in the current document generation."""

    error = "stale element reference"
    status = 404

    def __init__(self, element_id: str = "", *, message: str = "") -> None:
        if not message and element_id:
            message = f"Element '{element_id}' is not attached to the current document"
        super().__init__(message)
        self.element_id = element_id


class NoSuchCookieError(WebDriverError):
    """No cookie with the requested name is visible at the current URL."""

    error = "no such cookie"
    status = 404


class UnknownCommandError(WebDriverError):
    """No command is registered for the requested path."""

    error = "unknown command"
    status = 404


class UnknownMethodError(WebDriverError):
    """Path is known but not for this HTTP method."""

    error = "unknown method"
    status = 405


class JavascriptError(WebDriverError):
    """Script evaluation threw inside the document engine."""

    error = "javascript error"
    status = 500


class UnsupportedOperationError(WebDriverError):
    """Command or argument combination is recognised but not implemented."""

    error = "unsupported operation"
    status = 500


class UnknownError(WebDriverError):
    """Generic failure with no more specific classification."""


class EngineError(UnknownError):
    """Document engine launch or teardown failure."""
