# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""WebDriver command table.

Every endpoint docdriver answers is registered here against the module-level
``router``.  Handlers receive a ``CommandContext`` with the session (and
element, when the path names one) already resolved and the session's lock
held.  Unimplemented commands are registered too, so clients get
``unsupported operation`` rather than ``unknown command``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from . import __version__, element_reference
from .context import CommandContext
from .error_codes import ErrorResponse, invalid_argument, unsupported
from .errors import NoSuchElementError, UnsupportedOperationError
from .router import CommandRouter
from .scripts import evaluate_async, evaluate_sync
from .session_manager import NavigationMode

logger = logging.getLogger(__name__)

router = CommandRouter()

LOCATOR_STRATEGIES = ("css selector", "tag name")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _validate_locator(params: dict[str, Any]) -> ErrorResponse | None:
    using = params.get("using")
    value = params.get("value")
    if not isinstance(using, str) or not isinstance(value, str):
        return invalid_argument("'using' and 'value' must be strings")
    if using not in LOCATOR_STRATEGIES:
        return unsupported(message=f"Locator strategy '{using}' is not supported yet")
    return None


def _validate_url(params: dict[str, Any]) -> ErrorResponse | None:
    if not isinstance(params.get("url"), str):
        return invalid_argument("'url' must be a string")
    return None


def _validate_property_name(params: dict[str, Any]) -> ErrorResponse | None:
    name = params.get("property_name", "")
    if not _IDENTIFIER_RE.match(name):
        return invalid_argument(f"'{name}' is not a valid property name")
    return None


def _validate_script(params: dict[str, Any]) -> ErrorResponse | None:
    if not isinstance(params.get("script"), str):
        return invalid_argument("'script' must be a string")
    args = params.get("args")
    if args is not None and not isinstance(args, list):
        return invalid_argument("'args' must be an array")
    return None


def _validate_cookie(params: dict[str, Any]) -> ErrorResponse | None:
    if not isinstance(params.get("cookie"), dict):
        return invalid_argument("'cookie' must be an object")
    return None


def _validate_send_keys(params: dict[str, Any]) -> ErrorResponse | None:
    text = params.get("text")
    value = params.get("value")
    if isinstance(text, str):
        return None
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return None
    return invalid_argument("'text' must be a string")


# ---------------------------------------------------------------------------
# Server and sessions
# ---------------------------------------------------------------------------


@router.command("GET", "/status", name="Status")
async def status(ctx: CommandContext) -> dict[str, Any]:
    return {
        "ready": True,
        "message": "server ready",
        "build": {"version": __version__},
        "sessions": ctx.sessions.active_sessions,
    }


@router.command("POST", "/session", name="New Session")
async def new_session(ctx: CommandContext) -> dict[str, Any]:
    return await ctx.sessions.create()


@router.command("DELETE", "/session/{session id}", name="Delete Session")
async def delete_session(ctx: CommandContext) -> None:
    await ctx.sessions.delete(ctx.require_session())


router.unsupported("GET", "/session/{session id}/timeouts", "Get Timeouts")
router.unsupported("POST", "/session/{session id}/timeouts", "Set Timeouts")


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@router.command("POST", "/session/{session id}/url", name="Navigate To", validator=_validate_url)
async def navigate_to(ctx: CommandContext) -> None:
    await ctx.sessions.navigate(ctx.require_session(), ctx.string_param("url"), NavigationMode.GO)


@router.command("GET", "/session/{session id}/url", name="Get Current URL")
async def get_current_url(ctx: CommandContext) -> str:
    return ctx.require_session().context.url


router.unsupported("POST", "/session/{session id}/back", "Back")
router.unsupported("POST", "/session/{session id}/forward", "Forward")


@router.command("POST", "/session/{session id}/refresh", name="Refresh")
async def refresh(ctx: CommandContext) -> None:
    session = ctx.require_session()
    await ctx.sessions.navigate(session, session.context.url, NavigationMode.REFRESH)


@router.command("GET", "/session/{session id}/title", name="Get Title")
async def get_title(ctx: CommandContext) -> str:
    return await ctx.require_session().context.title()


# ---------------------------------------------------------------------------
# Windows and frames
# ---------------------------------------------------------------------------

router.unsupported("GET", "/session/{session id}/window", "Get Window Handle")
router.unsupported("DELETE", "/session/{session id}/window", "Close Window")
router.unsupported("POST", "/session/{session id}/window", "Switch To Window")
router.unsupported("GET", "/session/{session id}/window/handles", "Get Window Handles")
router.unsupported("POST", "/session/{session id}/window/new", "New Window")
router.unsupported("POST", "/session/{session id}/frame", "Switch To Frame")
router.unsupported("POST", "/session/{session id}/frame/parent", "Switch To Parent Frame")
router.unsupported("GET", "/session/{session id}/window/rect", "Get Window Rect")
router.unsupported("POST", "/session/{session id}/window/rect", "Set Window Rect")
router.unsupported("POST", "/session/{session id}/window/maximize", "Maximize Window")
router.unsupported("POST", "/session/{session id}/window/minimize", "Minimize Window")
router.unsupported("POST", "/session/{session id}/window/fullscreen", "Fullscreen Window")


# ---------------------------------------------------------------------------
# Element retrieval
# ---------------------------------------------------------------------------


def _selector(ctx: CommandContext) -> str:
    # Both strategies are plain CSS selectors; a tag name is a type selector.
    return ctx.string_param("value")


async def _find_one(ctx: CommandContext, scope=None) -> dict[str, str]:
    session = ctx.require_session()
    selector = _selector(ctx)
    node = await session.context.query(selector, scope)
    if node is None:
        raise NoSuchElementError(f"Unable to locate element: {ctx.params['using']}={selector}")
    return element_reference(await session.elements.get_or_create(node))


async def _find_all(ctx: CommandContext, scope=None) -> list[dict[str, str]]:
    session = ctx.require_session()
    nodes = await session.context.query_all(_selector(ctx), scope)
    return [element_reference(await session.elements.get_or_create(node)) for node in nodes]


@router.command("POST", "/session/{session id}/element", name="Find Element", validator=_validate_locator)
async def find_element(ctx: CommandContext) -> dict[str, str]:
    return await _find_one(ctx)


@router.command("POST", "/session/{session id}/elements", name="Find Elements", validator=_validate_locator)
async def find_elements(ctx: CommandContext) -> list[dict[str, str]]:
    return await _find_all(ctx)


@router.command(
    "POST",
    "/session/{session id}/element/{element id}/element",
    name="Find Element From Element",
    validator=_validate_locator,
)
async def find_element_from_element(ctx: CommandContext) -> dict[str, str]:
    return await _find_one(ctx, ctx.require_element())


@router.command(
    "POST",
    "/session/{session id}/element/{element id}/elements",
    name="Find Elements From Element",
    validator=_validate_locator,
)
async def find_elements_from_element(ctx: CommandContext) -> list[dict[str, str]]:
    return await _find_all(ctx, ctx.require_element())


@router.command("GET", "/session/{session id}/element/active", name="Get Active Element")
async def get_active_element(ctx: CommandContext) -> dict[str, str]:
    session = ctx.require_session()
    node = await session.context.active_element()
    if node is None:
        raise NoSuchElementError("The document has no active element")
    return element_reference(await session.elements.get_or_create(node))


# ---------------------------------------------------------------------------
# Element state
# ---------------------------------------------------------------------------


@router.command("GET", "/session/{session id}/element/{element id}/selected", name="Is Element Selected")
async def is_element_selected(ctx: CommandContext) -> bool:
    return await ctx.require_element().is_checked()


@router.command(
    "GET",
    "/session/{session id}/element/{element id}/attribute/{attribute name}",
    name="Get Element Attribute",
)
async def get_element_attribute(ctx: CommandContext) -> str | None:
    return await ctx.require_element().get_attribute(ctx.string_param("attribute_name"))


@router.command(
    "GET",
    "/session/{session id}/element/{element id}/property/{property name}",
    name="Get Element Property",
    validator=_validate_property_name,
)
async def get_element_property(ctx: CommandContext) -> Any:
    return await ctx.require_element().get_property(ctx.string_param("property_name"))


@router.command(
    "GET",
    "/session/{session id}/element/{element id}/css/{css property name}",
    name="Get Element CSS Value",
)
async def get_element_css_value(ctx: CommandContext) -> str:
    return await ctx.require_element().computed_style(ctx.string_param("css_property_name"))


@router.command("GET", "/session/{session id}/element/{element id}/text", name="Get Element Text")
async def get_element_text(ctx: CommandContext) -> str:
    return (await ctx.require_element().text()).strip()


@router.command("GET", "/session/{session id}/element/{element id}/name", name="Get Element Tag Name")
async def get_element_tag_name(ctx: CommandContext) -> str:
    return await ctx.require_element().tag_name()


@router.command("GET", "/session/{session id}/element/{element id}/rect", name="Get Element Rect")
async def get_element_rect(ctx: CommandContext) -> dict[str, float]:
    return await ctx.require_element().rect()


@router.command("GET", "/session/{session id}/element/{element id}/enabled", name="Is Element Enabled")
async def is_element_enabled(ctx: CommandContext) -> bool:
    return not await ctx.require_element().is_disabled()


# ---------------------------------------------------------------------------
# Element interaction
# ---------------------------------------------------------------------------


@router.command("POST", "/session/{session id}/element/{element id}/click", name="Element Click")
async def element_click(ctx: CommandContext) -> None:
    await ctx.require_element().click()


@router.command("POST", "/session/{session id}/element/{element id}/clear", name="Element Clear")
async def element_clear(ctx: CommandContext) -> None:
    await ctx.require_element().clear()


@router.command(
    "POST",
    "/session/{session id}/element/{element id}/value",
    name="Element Send Keys",
    validator=_validate_send_keys,
)
async def element_send_keys(ctx: CommandContext) -> None:
    """Only ``<input>`` elements react: text inputs append, others are replaced."""
    element = ctx.require_element()
    text = ctx.param("text")
    if not isinstance(text, str):
        text = "".join(ctx.param("value") or [])

    if (await element.tag_name()).upper() != "INPUT":
        logger.debug("Send keys ignored on non-input element")
        return

    input_type = str(await element.get_property("type") or "text").lower()
    if input_type == "file":
        raise UnsupportedOperationError("Sending keys to file inputs is not supported yet")
    if input_type == "text":
        current = await element.get_property("value")
        text = f"{current or ''}{text}"
    await element.set_value(text)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


@router.command("GET", "/session/{session id}/source", name="Get Page Source")
async def get_page_source(ctx: CommandContext) -> str:
    return await ctx.require_session().context.serialize()


@router.command("POST", "/session/{session id}/execute/sync", name="Execute Script", validator=_validate_script)
async def execute_script(ctx: CommandContext) -> Any:
    return await evaluate_sync(ctx.require_session(), ctx.string_param("script"), ctx.param("args"))


@router.command(
    "POST",
    "/session/{session id}/execute/async",
    name="Execute Async Script",
    validator=_validate_script,
)
async def execute_async_script(ctx: CommandContext) -> Any:
    return await evaluate_async(ctx.require_session(), ctx.string_param("script"), ctx.param("args"))


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------


@router.command("GET", "/session/{session id}/cookie", name="Get All Cookies")
async def get_all_cookies(ctx: CommandContext) -> list[dict[str, Any]]:
    return await ctx.require_session().cookies.get_all()


@router.command("GET", "/session/{session id}/cookie/{name}", name="Get Named Cookie")
async def get_named_cookie(ctx: CommandContext) -> dict[str, Any]:
    return await ctx.require_session().cookies.get_named(ctx.string_param("name"))


@router.command("POST", "/session/{session id}/cookie", name="Add Cookie", validator=_validate_cookie)
async def add_cookie(ctx: CommandContext) -> None:
    await ctx.require_session().cookies.add(ctx.params["cookie"])


@router.command("DELETE", "/session/{session id}/cookie/{name}", name="Delete Cookie")
async def delete_cookie(ctx: CommandContext) -> None:
    await ctx.require_session().cookies.delete_one(ctx.string_param("name"))


@router.command("DELETE", "/session/{session id}/cookie", name="Delete All Cookies")
async def delete_all_cookies(ctx: CommandContext) -> None:
    await ctx.require_session().cookies.delete_all()


# ---------------------------------------------------------------------------
# Actions, alerts, screenshots
# ---------------------------------------------------------------------------

router.unsupported("POST", "/session/{session id}/actions", "Perform Actions")
router.unsupported("DELETE", "/session/{session id}/actions", "Release Actions")
router.unsupported("POST", "/session/{session id}/alert/dismiss", "Dismiss Alert")
router.unsupported("POST", "/session/{session id}/alert/accept", "Accept Alert")
router.unsupported("GET", "/session/{session id}/alert/text", "Get Alert Text")
router.unsupported("POST", "/session/{session id}/alert/text", "Send Alert Text")
router.unsupported("GET", "/session/{session id}/screenshot", "Take Screenshot")
router.unsupported("GET", "/session/{session id}/element/{element id}/screenshot", "Take Element Screenshot")
