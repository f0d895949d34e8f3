# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Playwright-backed document engine.

One Chromium process serves every session.  Each session's cookie store is a
``BrowserContext``; each navigation opens a fresh ``Page`` inside it, so the
previous document stays usable until the new one has loaded.  A page can
still replace its document by itself (link click, form submit); the context
notices through ``framenavigated`` and a per-document token.

Dependencies: engine.py, config.py, errors.py, no server/router imports.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable, Hashable, Sequence
from contextlib import suppress
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    Dialog,
    ElementHandle,
    Frame,
    JSHandle,
    Page,
    Playwright,
    Route,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError

from .config import EngineConfig
from .engine import Cookie
from .errors import EngineError, JavascriptError, StaleElementReferenceError, WebDriverError

logger = logging.getLogger(__name__)

_NODE_MARKER = "__docdriver_node__"

# Per-document node ids, kept off the nodes themselves.  The token tells
# documents loaded into the same page apart.
_ENSURE_IDS = """
    let ids = window.__docdriverIds;
    if (!ids) {
        ids = {
            map: new WeakMap(),
            next: 0,
            token: Date.now().toString(36) + '-' + Math.random().toString(36).slice(2),
        };
        Object.defineProperty(window, '__docdriverIds', { value: ids });
    }
"""

_IDENTITY_JS = (
    "(el) => {"
    + _ENSURE_IDS
    + """
    let id = ids.map.get(el);
    if (id === undefined) {
        id = ++ids.next;
        ids.map.set(el, id);
    }
    return [ids.token, id];
}"""
)

_DOCUMENT_TOKEN_JS = "() => {" + _ENSURE_IDS + "    return ids.token;\n}"

# Script text and arguments arrive as data.  Nodes in the result are pulled
# out into ``nodes`` and replaced by index markers.
_INVOKE_JS = """async ([body, args, asynchronous]) => {
    const fn = new Function(body);
    let value;
    if (asynchronous) {
        value = await new Promise((resolve, reject) => {
            try {
                fn.apply(window, [...args, resolve]);
            } catch (e) {
                reject(e);
            }
        });
    } else {
        value = await fn.apply(window, args);
    }
    const nodes = [];
    const path = new Set();
    const walk = (v) => {
        if (v === undefined || v === null) return null;
        if (v instanceof Node) {
            nodes.push(v);
            return { '__docdriver_node__': nodes.length - 1 };
        }
        const t = typeof v;
        if (t === 'function' || t === 'symbol') return null;
        if (t === 'number') return Number.isFinite(v) ? v : null;
        if (t === 'bigint') return Number(v);
        if (t !== 'object') return v;
        if (path.has(v)) throw new TypeError('cyclic object value');
        path.add(v);
        let out;
        if (Array.isArray(v) || v instanceof NodeList || v instanceof HTMLCollection) {
            out = Array.from(v, walk);
        } else if (typeof v.toJSON === 'function') {
            out = walk(v.toJSON());
        } else {
            out = {};
            for (const k of Object.keys(v)) out[k] = walk(v[k]);
        }
        path.delete(v);
        return out;
    };
    return { value: walk(value), nodes };
}"""

_PROPERTY_JS = """(el, name) => {
    const v = el[name];
    if (v === undefined || v === null) return null;
    const t = typeof v;
    if (t === 'string' || t === 'boolean') return v;
    if (t === 'number') return Number.isFinite(v) ? v : null;
    if (t === 'function' || t === 'symbol') return null;
    try {
        return JSON.parse(JSON.stringify(v));
    } catch (e) {
        return null;
    }
}"""

_SET_VALUE_JS = """(el, value) => {
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}"""

_CLEAR_JS = """(el) => {
    if ('value' in el) {
        el.value = '';
    } else if (el.isContentEditable) {
        el.textContent = '';
    }
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}"""

_RECT_JS = """(el) => {
    const r = el.getBoundingClientRect();
    return { x: r.x + window.scrollX, y: r.y + window.scrollY, width: r.width, height: r.height };
}"""

_INLINE_STYLE_JS = """(el) => {
    const s = el.style;
    if (!s) return null;
    return typeof s === 'string' ? s : s.cssText;
}"""

_QUERY_JS = "([selector, root]) => (root || document).querySelector(selector)"
_QUERY_ALL_JS = "([selector, root]) => Array.from((root || document).querySelectorAll(selector))"

# Playwright messages for handles whose node or document is gone.
_STALE_MARKERS = (
    "element is not attached",
    "node is detached",
    "execution context was destroyed",
    "cannot find context with specified id",
    "jshandle is disposed",
    "jshandles can be evaluated only in the context they were created",
)


def _translate_error(exc: PlaywrightError) -> WebDriverError:
    message = getattr(exc, "message", None) or str(exc)
    lowered = message.lower()
    if any(marker in lowered for marker in _STALE_MARKERS):
        return StaleElementReferenceError(message="Element no longer belongs to the current document")
    return JavascriptError(message.splitlines()[0] if message else "")


async def _dispose(*handles: JSHandle) -> None:
    for handle in handles:
        with suppress(PlaywrightError):
            await handle.dispose()


# ── Chromium auto-install ─────────────────────────────────────────

_chromium_install_attempted = False
_AUTO_INSTALL_TIMEOUT = 300  # seconds, Chromium ~140MB download


async def _auto_install_chromium() -> bool:
    """Run ``playwright install chromium`` once per process.

    Returns True if install succeeded, False otherwise.
    """
    global _chromium_install_attempted  # noqa: PLW0603
    if _chromium_install_attempted:
        return False
    _chromium_install_attempted = True

    logger.info("Chromium not found, running 'playwright install chromium' …")
    try:
        proc = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "playwright",
            "install",
            "chromium",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_AUTO_INSTALL_TIMEOUT)
        if proc.returncode == 0:
            logger.info("Chromium installed successfully")
            return True
        logger.warning(
            "playwright install chromium failed (rc=%d): %s",
            proc.returncode,
            stderr.decode(errors="replace")[:500],
        )
        return False
    except TimeoutError:
        logger.warning("Chromium install timed out after %ds", _AUTO_INSTALL_TIMEOUT)
        return False
    except Exception:
        logger.warning("Chromium auto-install failed", exc_info=True)
        return False


def chromium_launch_args() -> list[str]:
    return [
        "--disable-extensions",
        "--disable-dev-shm-usage",
        "--disable-background-networking",
        "--disable-sync",
        "--disable-gpu",
        "--no-first-run",
        "--disable-breakpad",
        "--disable-component-update",
        "--noerrdialogs",
        "--disable-prompt-on-repost",
    ]


async def _on_dialog(dialog: Dialog) -> None:
    """Auto-handle JS dialogs: alert/beforeunload → accept, confirm/prompt → dismiss.

    Must always accept or dismiss; an unanswered dialog freezes the page.
    """
    try:
        dtype = dialog.type
        if dtype in ("alert", "beforeunload"):
            await dialog.accept()
            action = "accepted"
        else:
            await dialog.dismiss()
            action = "dismissed"
        logger.info("JS dialog auto-handled: type=%s action=%s message=%.100s", dtype, action, dialog.message)
    except Exception:
        logger.warning("JS dialog handler failed, attempting dismiss fallback", exc_info=True)
        with suppress(Exception):
            await dialog.dismiss()


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


class PlaywrightNode:
    """``engine.Node`` over a Playwright ``ElementHandle``."""

    __slots__ = ("handle",)

    def __init__(self, handle: ElementHandle) -> None:
        self.handle = handle

    def __repr__(self) -> str:
        return f"PlaywrightNode({self.handle!r})"

    async def _evaluate(self, js: str, *args: Any) -> Any:
        try:
            return await self.handle.evaluate(js, *args)
        except PlaywrightError as exc:
            raise _translate_error(exc) from exc

    async def identity(self) -> Hashable:
        token, number = await self._evaluate(_IDENTITY_JS)
        return token, number

    async def get_attribute(self, name: str) -> str | None:
        try:
            return await self.handle.get_attribute(name)
        except PlaywrightError as exc:
            raise _translate_error(exc) from exc

    async def get_property(self, name: str) -> Any:
        return await self._evaluate(_PROPERTY_JS, name)

    async def computed_style(self, name: str) -> str:
        return await self._evaluate(
            "(el, name) => { const s = getComputedStyle(el); return s.getPropertyValue(name) || s[name] || ''; }",
            name,
        )

    async def inline_style(self) -> str | None:
        return await self._evaluate(_INLINE_STYLE_JS)

    async def text(self) -> str:
        return await self._evaluate("(el) => el.textContent ?? ''")

    async def tag_name(self) -> str:
        return await self._evaluate("(el) => el.tagName")

    async def is_disabled(self) -> bool:
        return await self._evaluate("(el) => !!el.disabled")

    async def is_checked(self) -> bool:
        return await self._evaluate("(el) => el.matches(':checked')")

    async def rect(self) -> dict[str, float]:
        return await self._evaluate(_RECT_JS)

    async def click(self) -> None:
        await self._evaluate("(el) => el.click()")

    async def clear(self) -> None:
        await self._evaluate(_CLEAR_JS)

    async def set_value(self, value: str) -> None:
        await self._evaluate(_SET_VALUE_JS, value)


def _wrap(handle: JSHandle) -> PlaywrightNode | None:
    element = handle.as_element()
    return PlaywrightNode(element) if element is not None else None


def _unwrap_args(value: Any) -> Any:
    """Replace ``PlaywrightNode`` objects with their handles for Playwright's serializer."""
    if isinstance(value, PlaywrightNode):
        return value.handle
    if isinstance(value, list | tuple):
        return [_unwrap_args(v) for v in value]
    if isinstance(value, dict):
        return {k: _unwrap_args(v) for k, v in value.items()}
    return value


def _rehydrate(value: Any, nodes: list[PlaywrightNode | None]) -> Any:
    if isinstance(value, list):
        return [_rehydrate(v, nodes) for v in value]
    if isinstance(value, dict):
        if len(value) == 1 and isinstance(value.get(_NODE_MARKER), int):
            return nodes[value[_NODE_MARKER]]
        return {k: _rehydrate(v, nodes) for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Document (one generation)
# ---------------------------------------------------------------------------


class PlaywrightContext:
    """``engine.EngineContext`` over one Playwright ``Page``.

    Only element handles wrapped as ``PlaywrightNode`` outlive a call; every
    other handle a query or script creates is disposed before returning.
    """

    def __init__(self, page: Page, document_token: str | None = None) -> None:
        self._page = page
        self._document_token = document_token
        self._listeners: list[Callable[[], None]] = []
        page.on("framenavigated", self._on_frame_navigated)

    @property
    def page(self) -> Page:
        return self._page

    @property
    def url(self) -> str:
        return self._page.url

    def on_document_replaced(self, callback: Callable[[], None]) -> None:
        self._listeners.append(callback)

    async def _on_frame_navigated(self, frame: Frame) -> None:
        if frame.parent_frame is not None:
            return
        try:
            token = await frame.evaluate(_DOCUMENT_TOKEN_JS)
        except PlaywrightError:
            token = None
        # Fragment and history API navigations keep the document.
        if token is not None and token == self._document_token:
            return
        self._document_token = token
        logger.debug("Page loaded a new document: %s", frame.url)
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.warning("Document replacement listener failed", exc_info=True)

    async def title(self) -> str:
        return await self._page.title()

    async def _single(self, js: str, arg: Any = None) -> PlaywrightNode | None:
        try:
            handle = await self._page.evaluate_handle(js, arg)
        except PlaywrightError as exc:
            raise _translate_error(exc) from exc
        node = _wrap(handle)
        if node is None:
            await _dispose(handle)
        return node

    async def query(self, selector: str, scope: PlaywrightNode | None = None) -> PlaywrightNode | None:
        root = scope.handle if scope is not None else None
        return await self._single(_QUERY_JS, [selector, root])

    async def query_all(self, selector: str, scope: PlaywrightNode | None = None) -> list[PlaywrightNode]:
        root = scope.handle if scope is not None else None
        try:
            handle = await self._page.evaluate_handle(_QUERY_ALL_JS, [selector, root])
        except PlaywrightError as exc:
            raise _translate_error(exc) from exc
        try:
            return [node for node in await self._elements(handle) if node is not None]
        finally:
            await _dispose(handle)

    async def active_element(self) -> PlaywrightNode | None:
        return await self._single("() => document.activeElement")

    async def serialize(self) -> str:
        return await self._page.content()

    async def evaluate(self, script: str, args: Sequence[Any], *, asynchronous: bool = False) -> Any:
        try:
            handle = await self._page.evaluate_handle(_INVOKE_JS, [script, _unwrap_args(list(args)), asynchronous])
        except PlaywrightError as exc:
            raise _translate_error(exc) from exc
        owned: list[JSHandle] = [handle]
        try:
            value_handle = await handle.get_property("value")
            owned.append(value_handle)
            value = await value_handle.json_value()
            nodes_handle = await handle.get_property("nodes")
            owned.append(nodes_handle)
            # Index-aligned with the markers in ``value``.
            nodes = await self._elements(nodes_handle)
        finally:
            await _dispose(*owned)
        return _rehydrate(value, nodes)

    async def _elements(self, array: JSHandle) -> list[PlaywrightNode | None]:
        """Wrap the entries of a JS array; entries that are not elements are disposed."""
        properties = await array.get_properties()
        nodes: list[PlaywrightNode | None] = []
        for index in range(len(properties)):
            entry = properties[str(index)]
            node = _wrap(entry)
            if node is None:
                await _dispose(entry)
            nodes.append(node)
        return nodes

    async def close(self) -> None:
        if not self._page.is_closed():
            await self._page.close()


# ---------------------------------------------------------------------------
# Cookie store
# ---------------------------------------------------------------------------


def _cookie_from_playwright(raw: dict[str, Any]) -> Cookie:
    domain = raw.get("domain", "")
    expires = raw.get("expires", -1)
    return Cookie(
        name=raw["name"],
        value=raw["value"],
        domain=domain.lstrip(".").lower(),
        path=raw.get("path") or "/",
        secure=bool(raw.get("secure")),
        http_only=bool(raw.get("httpOnly")),
        expiry=int(expires) if expires is not None and expires >= 0 else None,
        host_only=not domain.startswith("."),
        same_site=raw.get("sameSite"),
    )


def _cookie_to_playwright(cookie: Cookie) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "name": cookie.name,
        "value": cookie.value,
        # A leading dot makes it a domain cookie; without one it is host-only.
        "domain": cookie.domain if cookie.host_only else f".{cookie.domain}",
        "path": cookie.path,
        "secure": cookie.secure,
        "httpOnly": cookie.http_only,
    }
    if cookie.expired:
        entry["expires"] = 1
    elif cookie.expiry is not None:
        entry["expires"] = cookie.expiry
    if cookie.same_site:
        entry["sameSite"] = cookie.same_site
    return entry


class PlaywrightCookieStore:
    """``engine.CookieStore`` over a Playwright ``BrowserContext``."""

    def __init__(self, context: BrowserContext) -> None:
        self.context = context

    async def get_cookies(self, url: str) -> list[Cookie]:
        return [_cookie_from_playwright(c) for c in await self.context.cookies(url)]

    async def set_cookie(self, cookie: Cookie, url: str) -> None:
        # An already-expired cookie replaces and removes its match.
        await self.context.add_cookies([_cookie_to_playwright(cookie)])

    async def close(self) -> None:
        await self.context.close()


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class PlaywrightEngine:
    """``engine.DocumentEngine`` driving one shared headless Chromium."""

    name = "chromium"

    def __init__(self, config: EngineConfig | None = None) -> None:
        self.config = config or EngineConfig()
        self.version = ""
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise EngineError("Document engine not started")
        return self._browser

    async def _launch_browser(self) -> Browser:
        """Launch Chromium, auto-installing on first 'executable not found' error."""
        args = chromium_launch_args()
        try:
            return await self._playwright.chromium.launch(headless=self.config.headless, args=args)
        except Exception as exc:
            if "executable doesn't exist" not in str(exc).lower():
                raise
            if await _auto_install_chromium():
                return await self._playwright.chromium.launch(headless=self.config.headless, args=args)
            raise EngineError(
                "Chromium is not installed and auto-install failed. Please run: playwright install chromium"
            ) from exc

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._launch_browser()
        except Exception:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
            raise
        self.version = self._browser.version
        logger.info("Document engine started (chromium %s, headless=%s)", self.version, self.config.headless)

    async def stop(self) -> None:
        """Close browser and Playwright. Safe to call on a crashed browser."""
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
        logger.info("Document engine stopped")

    async def new_cookie_store(self) -> PlaywrightCookieStore:
        context = await self.browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            user_agent=self.config.user_agent,
            ignore_https_errors=self.config.ignore_https_errors,
            bypass_csp=True,
            service_workers="block",
            accept_downloads=False,
        )
        context.on("dialog", _on_dialog)
        if self.config.blocked_url_patterns:
            await self._install_block_route(context)
        return PlaywrightCookieStore(context)

    async def _install_block_route(self, context: BrowserContext) -> None:
        patterns = self.config.blocked_url_patterns

        async def _handler(route: Route) -> None:
            url = route.request.url
            if any(p in url for p in patterns):
                logger.debug("Request blocked: %s", url)
                await route.abort("blockedbyclient")
                return
            await route.continue_()

        await context.route("**/*", _handler)

    async def navigate(self, url: str, referrer: str | None, cookie_store: PlaywrightCookieStore) -> PlaywrightContext:
        page = await cookie_store.context.new_page()
        try:
            await page.goto(url, referer=referrer, wait_until=self.config.wait_until)
            token = await page.evaluate(_DOCUMENT_TOKEN_JS)
        except Exception:
            with suppress(Exception):
                await page.close()
            raise
        return PlaywrightContext(page, token)
