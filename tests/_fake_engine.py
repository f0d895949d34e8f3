# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""In-memory document engine for unit tests.

Documents are small node trees built per navigation, so every navigation
yields fresh node identities.  Scripts are not interpreted: a test registers
a Python callable per exact script body on ``FakeEngine.scripts``.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

from docdriver.engine import Cookie
from docdriver.errors import JavascriptError

_keys = itertools.count(1)

_SIMPLE_SELECTOR_RE = re.compile(r"^(?P<tag>[A-Za-z][\w-]*|\*)?(?P<rest>(?:[#.][\w-]+)*)$")


@dataclass(eq=False)
class FakeNode:
    tag: str
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[FakeNode] = field(default_factory=list)
    own_text: str = ""
    properties: dict[str, Any] = field(default_factory=dict)
    style: dict[str, str] = field(default_factory=dict)
    parent: FakeNode | None = field(default=None, repr=False)
    key: int = field(default_factory=lambda: next(_keys))
    clicks: int = 0
    css_text: str = ""

    async def identity(self):
        return self.key

    async def get_attribute(self, name: str) -> str | None:
        return self.attrs.get(name)

    async def get_property(self, name: str) -> Any:
        return self.properties.get(name)

    async def computed_style(self, name: str) -> str:
        return self.style.get(name, "")

    async def text(self) -> str:
        return self.own_text + "".join([await c.text() for c in self.children])

    async def tag_name(self) -> str:
        return self.tag.upper()

    async def is_disabled(self) -> bool:
        return bool(self.properties.get("disabled"))

    async def is_checked(self) -> bool:
        return bool(self.properties.get("checked") or self.properties.get("selected"))

    async def inline_style(self) -> str | None:
        return self.css_text

    async def rect(self) -> dict[str, float]:
        return {"x": 0.0, "y": 0.0, "width": 100.0, "height": 20.0}

    async def click(self) -> None:
        self.clicks += 1
        if self.properties.get("type") in ("checkbox", "radio"):
            self.properties["checked"] = not self.properties.get("checked")

    async def clear(self) -> None:
        self.properties["value"] = ""

    async def set_value(self, value: str) -> None:
        self.properties["value"] = value

    def descendants(self):
        for child in self.children:
            yield child
            yield from child.descendants()

    def matches(self, selector: str) -> bool:
        m = _SIMPLE_SELECTOR_RE.match(selector.strip())
        if m is None or not selector.strip():
            raise JavascriptError(f"SyntaxError: '{selector}' is not a valid selector")
        tag = m.group("tag")
        if tag and tag != "*" and tag.lower() != self.tag.lower():
            return False
        for part in re.findall(r"[#.][\w-]+", m.group("rest")):
            if part[0] == "#" and self.attrs.get("id") != part[1:]:
                return False
            if part[0] == "." and part[1:] not in self.attrs.get("class", "").split():
                return False
        return True

    def serialize(self) -> str:
        attrs = "".join(f' {k}="{v}"' for k, v in self.attrs.items())
        inner = self.own_text + "".join(c.serialize() for c in self.children)
        return f"<{self.tag}{attrs}>{inner}</{self.tag}>"


def el(tag: str, attrs: dict[str, str] | None = None, *children: FakeNode, text: str = "", **props) -> FakeNode:
    node = FakeNode(tag=tag, attrs=dict(attrs or {}), children=list(children), own_text=text)
    node.properties.update({"id": node.attrs.get("id", ""), "className": node.attrs.get("class", "")})
    if tag == "input":
        node.properties["type"] = node.attrs.get("type", "text")
        node.properties["value"] = node.attrs.get("value", "")
        node.properties["checked"] = "checked" in node.attrs
    if "disabled" in node.attrs:
        node.properties["disabled"] = True
    node.properties.update(props)
    for child in node.children:
        child.parent = node
    return node


def default_document(url: str) -> tuple[str, FakeNode]:
    """``<html>`` with a ``#root`` container and a few form controls."""
    body = el(
        "body",
        None,
        el(
            "div",
            {"id": "root"},
            el("p", {"class": "item"}, text="One"),
            el("p", {"class": "item"}, text="Two"),
            el("input", {"id": "name", "type": "text", "value": "abc"}),
            el("input", {"id": "check", "type": "checkbox", "checked": ""}),
            el("input", {"id": "pass", "type": "password"}),
            el("input", {"id": "upload", "type": "file"}),
            el("button", {"id": "go", "disabled": ""}, text="Go"),
            el("a", {"id": "link", "href": "/next"}, text="  next  ", href=urljoin(url, "/next")),
            el("span", {"id": "ghost", "hidden": ""}, text="ghost"),
        ),
    )
    root = el("html", None, el("head", None), body)
    return "Fake Page", root


def blank_document(url: str) -> tuple[str, FakeNode]:
    return "", el("html", None, el("head", None), el("body", None))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

ScriptImpl = Callable[[list[Any]], Any]


class FakeContext:
    def __init__(self, engine: FakeEngine, url: str, title: str, root: FakeNode) -> None:
        self._engine = engine
        self._url = url
        self._title = title
        self.root = root
        self.active: FakeNode | None = None
        self.closed = False
        self.evaluated: list[tuple[str, list[Any], bool]] = []
        self.listeners: list[Callable[[], None]] = []

    @property
    def url(self) -> str:
        return self._url

    async def title(self) -> str:
        return self._title

    def on_document_replaced(self, callback: Callable[[], None]) -> None:
        self.listeners.append(callback)

    def load_in_place(self, url: str) -> None:
        """Replace the document the way a followed link would."""
        builder = self._engine.documents.get(url, default_document)
        self._url = url
        self._title, self.root = builder(url)
        self.active = None
        for callback in list(self.listeners):
            callback()

    async def query(self, selector: str, scope: FakeNode | None = None) -> FakeNode | None:
        nodes = await self.query_all(selector, scope)
        return nodes[0] if nodes else None

    async def query_all(self, selector: str, scope: FakeNode | None = None) -> list[FakeNode]:
        start = scope or self.root
        candidates = list(start.descendants()) if scope is not None else [self.root, *self.root.descendants()]
        return [n for n in candidates if n.matches(selector)]

    async def active_element(self) -> FakeNode | None:
        if self.active is not None:
            return self.active
        return await self.query("body")

    async def serialize(self) -> str:
        return "<!DOCTYPE html>" + self.root.serialize()

    async def evaluate(self, script: str, args: Sequence[Any], *, asynchronous: bool = False) -> Any:
        self.evaluated.append((script, list(args), asynchronous))
        impl = self._engine.scripts.get(script)
        if impl is None:
            raise JavascriptError(f"ReferenceError: unsupported script in fake engine: {script[:40]}")
        if not asynchronous:
            return impl(self, list(args))
        results: list[Any] = []
        impl(self, [*args, results.append])
        return results[0] if results else None

    async def close(self) -> None:
        if self._engine.fail_close:
            raise RuntimeError("context close failed")
        self.closed = True


class FakeCookieStore:
    def __init__(self) -> None:
        self.cookies: list[Cookie] = []
        self.closed = False

    async def get_cookies(self, url: str) -> list[Cookie]:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        path = parsed.path or "/"
        visible = []
        for c in self.cookies:
            if c.host_only and host != c.domain:
                continue
            if not c.host_only and host != c.domain and not host.endswith("." + c.domain):
                continue
            if not path.startswith(c.path):
                continue
            if c.secure and parsed.scheme != "https":
                continue
            visible.append(c)
        return visible

    async def set_cookie(self, cookie: Cookie, url: str) -> None:
        self.cookies = [
            c
            for c in self.cookies
            if not (c.name == cookie.name and c.domain == cookie.domain and c.path == cookie.path)
        ]
        if not cookie.expired:
            self.cookies.append(cookie)

    async def close(self) -> None:
        self.closed = True


def _return_sum(ctx: FakeContext, args: list[Any]) -> Any:
    return 3


def _return_arguments(ctx: FakeContext, args: list[Any]) -> Any:
    return args


def _return_first(ctx: FakeContext, args: list[Any]) -> Any:
    return args[0]


def _return_root(ctx: FakeContext, args: list[Any]) -> Any:
    return next(n for n in ctx.root.descendants() if n.attrs.get("id") == "root")


def _return_items(ctx: FakeContext, args: list[Any]) -> Any:
    return {"items": [n for n in ctx.root.descendants() if "item" in n.attrs.get("class", "").split()]}


def _throw(ctx: FakeContext, args: list[Any]) -> Any:
    raise JavascriptError("Error: boom")


def _callback_later(ctx: FakeContext, args: list[Any]) -> Any:
    args[-1](args[0] * 2)


DEFAULT_SCRIPTS: dict[str, Callable[[FakeContext, list[Any]], Any]] = {
    "return 1+2": _return_sum,
    "return arguments": _return_arguments,
    "return arguments[0]": _return_first,
    "return document.querySelector('#root')": _return_root,
    "return {items: document.querySelectorAll('.item')}": _return_items,
    "throw new Error('boom')": _throw,
    "arguments[arguments.length - 1](arguments[0] * 2)": _callback_later,
}


class FakeEngine:
    name = "fake"
    version = "1.0"

    def __init__(self) -> None:
        self.documents: dict[str, Callable[[str], tuple[str, FakeNode]]] = {}
        self.scripts = dict(DEFAULT_SCRIPTS)
        self.fail_urls: set[str] = set()
        self.fail_close = False
        self.navigations: list[tuple[str, str | None]] = []
        self.contexts: list[FakeContext] = []
        self.stores: list[FakeCookieStore] = []
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def new_cookie_store(self) -> FakeCookieStore:
        store = FakeCookieStore()
        self.stores.append(store)
        return store

    async def navigate(self, url: str, referrer: str | None, cookie_store: FakeCookieStore) -> FakeContext:
        self.navigations.append((url, referrer))
        if url in self.fail_urls:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        if url == "about:blank":
            builder = blank_document
        else:
            builder = self.documents.get(url, default_document)
        title, root = builder(url)
        context = FakeContext(self, url, title, root)
        self.contexts.append(context)
        return context
