# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SessionRegistry: maps WebDriver session ids to per-session state.

Each session exclusively owns one engine context (the current document),
one cookie store (shared by every document the session loads) and one
element registry.  ``Session.lock`` serialises commands on a session; the
command router holds it for the whole handler, so teardown and navigation
queue behind whatever is in flight.

Dependencies: engine.py, elements.py, cookies.py, errors.py.
No router/server imports (acyclic).
"""

from __future__ import annotations

import asyncio
import enum
import logging
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

from .cookies import CookieTranslator
from .elements import ElementRegistry
from .engine import CookieStore, DocumentEngine, EngineContext
from .errors import NoSuchSessionError

logger = logging.getLogger(__name__)

BLANK_URL = "about:blank"


class NavigationMode(enum.Enum):
    GO = "go"
    REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Session: per-session mutable state
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Session:
    """Mutable state associated with a single WebDriver session."""

    session_id: str
    cookie_store: CookieStore
    context: EngineContext
    elements: ElementRegistry = field(default_factory=ElementRegistry)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    navigation_count: int = 0
    closed: bool = False

    @property
    def cookies(self) -> CookieTranslator:
        """Cookie operations against the current document's URL."""
        return CookieTranslator(self.cookie_store, self.context.url)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class SessionRegistry:
    """Owns every live session and the engine that backs them."""

    def __init__(self, engine: DocumentEngine, capabilities: dict[str, Any] | None = None) -> None:
        self._engine = engine
        self._capabilities = dict(capabilities or {})
        self._sessions: dict[str, Session] = {}
        self._sessions_lock = asyncio.Lock()
        self._last_id = 0

    @property
    def engine(self) -> DocumentEngine:
        return self._engine

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    async def create(self) -> dict[str, Any]:
        """New Session: blank document, empty cookie store, empty element registry."""
        async with self._sessions_lock:
            self._last_id += 1
            session_id = str(self._last_id)

        store = await self._engine.new_cookie_store()
        try:
            context = await self._engine.navigate(BLANK_URL, None, store)
        except Exception:
            with suppress(Exception):
                await store.close()
            raise

        session = Session(session_id=session_id, cookie_store=store, context=context)
        self._watch(session, context)
        async with self._sessions_lock:
            self._sessions[session_id] = session
        logger.info("Session created: %s (active=%d)", session_id, len(self._sessions))
        capabilities = {**self._capabilities, "browserVersion": self._engine.version}
        return {"sessionId": session_id, "capabilities": capabilities}

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None or session.closed:
            raise NoSuchSessionError(session_id)
        return session

    async def delete(self, session: Session) -> None:
        """Delete Session. The engine context is always released."""
        async with self._sessions_lock:
            if session.closed or self._sessions.get(session.session_id) is not session:
                raise NoSuchSessionError(session.session_id)
            del self._sessions[session.session_id]
        session.closed = True
        try:
            await session.context.close()
        finally:
            session.elements.invalidate_all()
            await session.cookie_store.close()
        logger.info("Session deleted: %s (active=%d)", session.session_id, len(self._sessions))

    async def navigate(self, session: Session, url: str, mode: NavigationMode = NavigationMode.GO) -> None:
        """Replace the session's document with *url*.

        The new context is built first; if that fails the current context
        and element registry are untouched and the error propagates.
        """
        current = session.context.url
        referrer = current if urlparse(current).scheme in ("http", "https") else None
        logger.info("Navigating session %s (%s): %s -> %s", session.session_id, mode.value, current, url)

        context = await self._engine.navigate(url, referrer, session.cookie_store)

        previous = session.context
        session.context = context
        session.elements.invalidate_all()
        self._watch(session, context)
        session.navigation_count += 1
        try:
            await previous.close()
        except Exception:
            logger.warning("Closing previous document of session %s failed", session.session_id, exc_info=True)

    async def shutdown(self) -> None:
        """Release every session (process shutdown)."""
        async with self._sessions_lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.closed = True
            with suppress(Exception):
                await session.context.close()
            with suppress(Exception):
                await session.cookie_store.close()
            logger.info("Session cleaned up: %s", session.session_id)

    def _watch(self, session: Session, context: EngineContext) -> None:
        """Drop element ids when *context* replaces its document by itself."""

        def replaced() -> None:
            if session.closed or session.context is not context:
                return
            session.elements.invalidate_all()
            session.navigation_count += 1
            logger.info("Session %s: page loaded a new document (%s)", session.session_id, context.url)

        context.on_document_replaced(replaced)
