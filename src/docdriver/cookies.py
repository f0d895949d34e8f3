# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Cookie translation between the wire and the engine's cookie store.

Wire cookies are W3C WebDriver cookie objects::

    {"name", "value", "path", "domain", "secure", "httpOnly", "expiry", "sameSite"}

Engine cookies are ``engine.Cookie`` records.  A wire domain with a leading
dot denotes a domain cookie: it is stored without the dot and with
``host_only=False``, and reported back with the dot.  Domains are
case-insensitive and stored lowercased, as browsers store them, so a cookie
read back reports the lowercased domain.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any
from urllib.parse import urlparse

from .engine import Cookie, CookieStore
from .errors import InvalidArgumentError, InvalidCookieDomainError, NoSuchCookieError

logger = logging.getLogger(__name__)

_SAME_SITE_VALUES = {"strict": "Strict", "lax": "Lax", "none": "None"}


def to_wire(cookie: Cookie) -> dict[str, Any]:
    """Engine cookie -> wire cookie JSON."""
    wire: dict[str, Any] = {
        "name": cookie.name,
        "value": cookie.value,
        "path": cookie.path,
        "domain": cookie.domain if cookie.host_only else f".{cookie.domain}",
        "secure": cookie.secure,
        "httpOnly": cookie.http_only,
    }
    if cookie.expiry is not None:
        wire["expiry"] = cookie.expiry
    if cookie.same_site:
        wire["sameSite"] = cookie.same_site
    return wire


def from_wire(wire: dict[str, Any], current_url: str) -> Cookie:
    """Wire cookie JSON -> engine cookie, scoped to *current_url*.

    Raises ``InvalidArgumentError`` for a malformed cookie object.
    """
    name = wire.get("name")
    value = wire.get("value")
    if not isinstance(name, str) or not isinstance(value, str):
        raise InvalidArgumentError("Cookie 'name' and 'value' must be strings")

    domain = wire.get("domain")
    host_only = True
    if domain is None:
        domain = urlparse(current_url).hostname or ""
    elif not isinstance(domain, str):
        raise InvalidArgumentError("Cookie 'domain' must be a string")
    elif domain.startswith("."):
        domain = domain[1:]
        host_only = False

    expiry = wire.get("expiry")
    if expiry is not None:
        if isinstance(expiry, bool) or not isinstance(expiry, int | float) or expiry < 0:
            raise InvalidArgumentError("Cookie 'expiry' must be a non-negative integer")
        expiry = int(expiry)

    same_site = wire.get("sameSite")
    if same_site is not None:
        same_site = _SAME_SITE_VALUES.get(str(same_site).lower())
        if same_site is None:
            raise InvalidArgumentError("Cookie 'sameSite' must be one of Strict, Lax, None")

    return Cookie(
        name=name,
        value=value,
        domain=domain.lower(),
        path=wire.get("path") or "/",
        secure=bool(wire.get("secure", False)),
        http_only=bool(wire.get("httpOnly", False)),
        expiry=expiry,
        host_only=host_only,
        same_site=same_site,
    )


class CookieTranslator:
    """Cookie CRUD for one session, against the document's current URL."""

    def __init__(self, store: CookieStore, current_url: str) -> None:
        self._store = store
        self._url = current_url

    def _check_url(self) -> None:
        if urlparse(self._url).scheme not in ("http", "https"):
            raise InvalidCookieDomainError(f"Cookies can't be used on '{self._url}'")

    async def _visible(self) -> list[Cookie]:
        if urlparse(self._url).scheme not in ("http", "https"):
            return []
        return await self._store.get_cookies(self._url)

    async def get_all(self) -> list[dict[str, Any]]:
        return [to_wire(c) for c in await self._visible()]

    async def get_named(self, name: str) -> dict[str, Any]:
        for cookie in await self._visible():
            if cookie.name == name:
                return to_wire(cookie)
        raise NoSuchCookieError(f"No cookie exists with name '{name}'")

    async def add(self, wire: dict[str, Any]) -> None:
        self._check_url()
        cookie = from_wire(wire, self._url)
        await self._store.set_cookie(cookie, self._url)
        logger.debug("Cookie set: name=%s domain=%s host_only=%s", cookie.name, cookie.domain, cookie.host_only)

    async def delete_one(self, name: str) -> None:
        """Expire the cookie named *name*; ``no such cookie`` when it is not visible."""
        for cookie in await self._visible():
            if cookie.name == name:
                await self._expire(cookie)
                return
        raise NoSuchCookieError(f"No cookie exists with name '{name}'")

    async def delete_all(self) -> None:
        for cookie in await self._visible():
            await self._expire(cookie)

    async def _expire(self, cookie: Cookie) -> None:
        await self._store.set_cookie(dataclasses.replace(cookie, value="", max_age=-1), self._url)
        logger.debug("Cookie expired: name=%s", cookie.name)
