# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Document engine boundary.

Everything docdriver needs from a navigable, queryable, scriptable document
model, expressed as protocols.  ``playwright_engine`` implements them on top
of headless Chromium; the test suite ships an in-memory implementation.

Leaf module, no docdriver imports.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Cookie record
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Cookie:
    """Engine-side cookie record.

    ``domain`` never carries a leading dot; ``host_only`` says whether the
    cookie is limited to exactly that host.  ``expiry`` is seconds since the
    epoch (``None`` for a session cookie).  A non-positive ``max_age``
    expires the cookie when written to a store.
    """

    name: str
    value: str
    domain: str
    path: str = "/"
    secure: bool = False
    http_only: bool = False
    expiry: int | None = None
    host_only: bool = True
    same_site: str | None = None
    max_age: int | None = None

    @property
    def expired(self) -> bool:
        return self.max_age is not None and self.max_age <= 0


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Node(Protocol):
    """A live document node owned by one engine context."""

    async def identity(self) -> Hashable:
        """Key equal for every handle to the same node.

        Keys of nodes from different documents never compare equal, even when
        the documents were loaded into the same page.
        """
        ...

    async def get_attribute(self, name: str) -> str | None: ...

    async def get_property(self, name: str) -> Any:
        """Named DOM property as a JSON value, ``None`` when absent."""
        ...

    async def computed_style(self, name: str) -> str: ...

    async def text(self) -> str:
        """``textContent`` of the node."""
        ...

    async def tag_name(self) -> str: ...

    async def is_disabled(self) -> bool: ...

    async def is_checked(self) -> bool: ...

    async def inline_style(self) -> str | None:
        """``style.cssText`` of the node, ``None`` when it has no inline style object."""
        ...

    async def rect(self) -> dict[str, float]: ...

    async def click(self) -> None: ...

    async def clear(self) -> None: ...

    async def set_value(self, value: str) -> None: ...


@runtime_checkable
class EngineContext(Protocol):
    """One loaded document (one generation of a session)."""

    @property
    def url(self) -> str: ...

    async def title(self) -> str: ...

    async def query(self, selector: str, scope: Node | None = None) -> Node | None: ...

    async def query_all(self, selector: str, scope: Node | None = None) -> list[Node]: ...

    async def active_element(self) -> Node | None: ...

    async def serialize(self) -> str: ...

    async def evaluate(self, script: str, args: Sequence[Any], *, asynchronous: bool = False) -> Any:
        """Run *script* as a function body.

        *args* may contain ``Node`` objects anywhere in the structure; they
        reach the script as live nodes.  Nodes in the returned value come
        back as ``Node`` objects.  With ``asynchronous=True`` the script
        receives a completion callback as its last argument and the call
        resolves with the value the callback is invoked with.
        """
        ...

    def on_document_replaced(self, callback: Callable[[], None]) -> None:
        """Call *callback* whenever the page loads a new document by itself.

        Link clicks, form submissions and script-driven navigation replace
        the document without going through ``DocumentEngine.navigate``.
        Same-document navigation (fragment or history API changes) does not
        count.
        """
        ...

    async def close(self) -> None: ...


@runtime_checkable
class CookieStore(Protocol):
    """Cookie jar shared by every generation of one session."""

    async def get_cookies(self, url: str) -> list[Cookie]:
        """Cookies visible at *url*."""
        ...

    async def set_cookie(self, cookie: Cookie, url: str) -> None:
        """Store *cookie* as if set by *url*; an expired cookie removes its match."""
        ...

    async def close(self) -> None: ...


@runtime_checkable
class DocumentEngine(Protocol):
    """Factory for cookie stores and engine contexts."""

    name: str
    version: str

    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def new_cookie_store(self) -> CookieStore: ...

    async def navigate(self, url: str, referrer: str | None, cookie_store: CookieStore) -> EngineContext:
        """Load *url* into a brand-new context bound to *cookie_store*."""
        ...
