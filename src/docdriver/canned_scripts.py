# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Native fast path for well-known client helper scripts.

Selenium clients implement ``get_attribute()`` by sending a large JavaScript
"atom" through Execute Script.  Incoming script bodies are compared with the
atoms shipped in the installed ``selenium`` package; a near-identical body
(similarity >= 0.99) is answered by a native implementation against the
already-resolved element instead of being evaluated.  A native
implementation must answer exactly what the atom would, so only atoms that
can be mirrored branch for branch are listed; ``isDisplayed`` (opacity,
overflow clipping, option and map handling) always runs in the page.  The
atom texts are versioned data owned by the client library, so they are read
from it at runtime rather than copied here.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from importlib import resources
from typing import Any

from rapidfuzz import fuzz, process

from .engine import Node

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.99

_ATOM_PACKAGE = "selenium.webdriver.remote"

# Attributes the atom reports as "true"/None rather than by value.
BOOLEAN_ATTRIBUTES = frozenset(
    {
        "allowfullscreen",
        "allowpaymentrequest",
        "allowusermedia",
        "async",
        "autofocus",
        "autoplay",
        "checked",
        "compact",
        "complete",
        "controls",
        "declare",
        "default",
        "defaultchecked",
        "defaultselected",
        "defer",
        "disabled",
        "ended",
        "formnovalidate",
        "hidden",
        "indeterminate",
        "iscontenteditable",
        "ismap",
        "itemscope",
        "loop",
        "multiple",
        "muted",
        "nohref",
        "nomodule",
        "noresize",
        "noshade",
        "novalidate",
        "nowrap",
        "open",
        "paused",
        "playsinline",
        "pubdate",
        "readonly",
        "required",
        "reversed",
        "scoped",
        "seamless",
        "seeking",
        "selected",
        "truespeed",
        "typemustmatch",
        "willvalidate",
    }
)

PROPERTY_ALIASES = {"class": "className", "readonly": "readOnly"}

NativeImpl = Callable[[Sequence[Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class CannedScript:
    """A client helper script and its native replacement."""

    name: str
    text: str
    arity: int
    run: NativeImpl

    def accepts(self, args: Sequence[Any]) -> bool:
        """Native path only applies to the exact argument shape the client sends."""
        if len(args) != self.arity or not isinstance(args[0], Node):
            return False
        return all(isinstance(a, str) for a in args[1:])


# ---------------------------------------------------------------------------
# Native implementations
# ---------------------------------------------------------------------------


def _js_string(value: Any) -> str:
    """``String(value)`` for JSON scalars; a missing property is ``undefined``."""
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


async def _is_selectable(node: Node, tag: str) -> bool:
    if tag == "OPTION":
        return True
    if tag == "INPUT":
        return str(await node.get_property("type") or "").lower() in ("checkbox", "radio")
    return False


async def _get_attribute(args: Sequence[Any]) -> str | None:
    """Same answers as the client's ``getAttribute`` atom, branch for branch."""
    node: Node = args[0]
    name: str = args[1]
    lname = name.lower()
    tag = (await node.tag_name()).upper()

    if lname == "style":
        return await node.inline_style()

    if lname in ("selected", "checked") and await _is_selectable(node, tag):
        state = await node.get_property("selected" if tag == "OPTION" else "checked")
        return "true" if state else None

    if (tag == "A" and lname == "href") or (tag == "IMG" and lname == "src"):
        raw = await node.get_attribute(lname)
        if not raw:
            return raw
        return _js_string(await node.get_property(lname))

    if lname == "spellcheck":
        raw = await node.get_attribute(lname)
        if raw is not None and raw.lower() in ("true", "false"):
            return raw.lower()
        return _js_string(await node.get_property(lname))

    prop_name = PROPERTY_ALIASES.get(lname, name)

    if lname in BOOLEAN_ATTRIBUTES:
        present = await node.get_attribute(lname) is not None or bool(await node.get_property(prop_name))
        return "true" if present else None

    if lname == "value" and tag == "LI":
        return await node.get_attribute(lname)

    value = await node.get_property(prop_name)
    if value is None or isinstance(value, dict | list):
        return await node.get_attribute(lname)
    return _js_string(value)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _read_atom(filename: str) -> str | None:
    try:
        return resources.files(_ATOM_PACKAGE).joinpath(filename).read_text(encoding="utf-8")
    except (ModuleNotFoundError, FileNotFoundError):
        logger.warning("Client atom %s not found in %s; fast path disabled for it", filename, _ATOM_PACKAGE)
        return None


@functools.lru_cache(maxsize=1)
def catalog() -> tuple[CannedScript, ...]:
    """Known helper scripts, wrapped exactly as the Python client sends them."""
    entries: list[CannedScript] = []
    attribute = _read_atom("getAttribute.js")
    if attribute:
        entries.append(
            CannedScript(
                name="get-attribute",
                text=f"/* getAttribute */return ({attribute}).apply(null, arguments);",
                arity=2,
                run=_get_attribute,
            )
        )
    logger.debug("Canned script catalog loaded: %s", [e.name for e in entries])
    return tuple(entries)


def match(script: str, entries: Sequence[CannedScript] | None = None) -> CannedScript | None:
    """Return the catalog entry *script* is a near-verbatim copy of, if any."""
    entries = catalog() if entries is None else entries
    if not entries or not script:
        return None
    best = process.extractOne(
        script,
        [e.text for e in entries],
        scorer=fuzz.ratio,
        score_cutoff=SIMILARITY_THRESHOLD * 100,
    )
    if best is None:
        return None
    _text, score, index = best
    logger.debug("Canned script matched: %s (score=%.2f)", entries[index].name, score)
    return entries[index]
