# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Command router: declarative WebDriver command table on top of Starlette.

Commands are registered once, at import time, as (method, path template) ->
{validator, handler}.  Path templates are written the way the WebDriver
command catalog writes them (``/session/{session id}/url``); placeholder
names become parameter keys with spaces replaced by underscores.

Dispatch order for every request:

1. parse the JSON body and merge it with the path parameters (path wins)
2. run the validator; an ``ErrorResponse`` short-circuits the request
3. resolve ``session_id`` / ``element_id``, holding the session's lock
4. run the handler and wrap its result as ``{"value": result}``

Any exception escaping a handler is converted to the error envelope here;
nothing propagates to the ASGI server.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .context import CommandContext
from .error_codes import ErrorResponse, from_exception, unsupported
from .errors import (
    InvalidArgumentError,
    NoSuchSessionError,
    UnknownCommandError,
    UnknownError,
    UnknownMethodError,
    WebDriverError,
)

if TYPE_CHECKING:
    from .session_manager import SessionRegistry

logger = logging.getLogger(__name__)

Validator = Callable[[dict[str, Any]], ErrorResponse | None]
Handler = Callable[[CommandContext], Awaitable[Any]]

_PLACEHOLDER_RE = re.compile(r"\{(.*?)\}")
_MAX_LOGGED_SCRIPT = 250


def no_validation(params: dict[str, Any]) -> ErrorResponse | None:
    return None


def unsupported_validator(name: str) -> Validator:
    """Validator for a registered-but-unimplemented command."""

    def _validate(params: dict[str, Any]) -> ErrorResponse | None:
        return unsupported(name)

    return _validate


def route_path(template: str) -> str:
    """``/session/{session id}/url`` -> ``/session/{session_id}/url``."""
    return _PLACEHOLDER_RE.sub(lambda m: "{" + re.sub(r"\s+", "_", m.group(1).strip()) + "}", template)


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """One WebDriver command: name, validator and handler."""

    name: str
    handler: Handler
    validator: Validator = no_validation


@dataclass(frozen=True, slots=True)
class _Registration:
    method: str
    template: str
    spec: CommandSpec


async def _unreachable(ctx: CommandContext) -> Any:
    raise UnknownError(f"{ctx.command} has no handler")


# ---------------------------------------------------------------------------
# Request helpers
# ---------------------------------------------------------------------------


async def _read_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidArgumentError(f"Request body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return body


def _summarize(params: dict[str, Any]) -> dict[str, Any]:
    script = params.get("script")
    if isinstance(script, str) and len(script) > _MAX_LOGGED_SCRIPT:
        return {**params, "script": script[:_MAX_LOGGED_SCRIPT] + "..."}
    return params


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------


class CommandRouter:
    """Static command table; frozen once routes are built."""

    def __init__(self) -> None:
        self._registrations: list[_Registration] = []
        self._frozen = False

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self):
        return ((r.method, r.template, r.spec) for r in self._registrations)

    def register(self, method: str, template: str, spec: CommandSpec) -> None:
        if self._frozen:
            raise RuntimeError(f"Command table is frozen; cannot register {method} {template}")
        method = method.upper()
        for r in self._registrations:
            if r.method == method and route_path(r.template) == route_path(template):
                raise ValueError(f"Duplicate command: {method} {template}")
        self._registrations.append(_Registration(method, template, spec))

    def command(self, method: str, template: str, *, name: str, validator: Validator = no_validation):
        """Decorator form of :meth:`register`."""

        def _decorator(handler: Handler) -> Handler:
            self.register(method, template, CommandSpec(name=name, handler=handler, validator=validator))
            return handler

        return _decorator

    def unsupported(self, method: str, template: str, name: str) -> None:
        """Register a command that always answers ``unsupported operation``."""
        self.register(
            method,
            template,
            CommandSpec(name=name, handler=_unreachable, validator=unsupported_validator(name)),
        )

    def lookup(self, method: str, template: str) -> CommandSpec | None:
        target = route_path(template)
        for r in self._registrations:
            if r.method == method.upper() and route_path(r.template) == target:
                return r.spec
        return None

    # ── Starlette integration ────────────────────────────────────────

    def routes(self, *, include_stacktrace: bool = False) -> list[Route]:
        """Build Starlette routes for every registered command and freeze the table."""
        self._frozen = True
        return [
            Route(
                route_path(r.template),
                self._endpoint(r.spec, include_stacktrace),
                methods=[r.method],
                name=r.spec.name,
            )
            for r in self._registrations
        ]

    def _endpoint(self, spec: CommandSpec, include_stacktrace: bool):
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(spec, request, include_stacktrace=include_stacktrace)

        return endpoint

    async def dispatch(self, spec: CommandSpec, request: Request, *, include_stacktrace: bool = False) -> Response:
        request_id = uuid.uuid4().hex[:12]
        path_params: dict[str, Any] = dict(request.path_params)
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            command=spec.name,
            session_id=path_params.get("session_id", ""),
        )
        with suppress(Exception):
            logger.info("%6s %s", request.method, request.url.path)

        try:
            body = await _read_body(request)
            params = {**body, **path_params}
            with suppress(Exception):
                logger.debug("PARAMS: %s", json.dumps(_summarize(params), default=repr))

            error = spec.validator(params)
            if error is not None:
                resolved = error.resolved(spec.name)
                with suppress(Exception):
                    logger.info("REJECTED: %s (%s)", resolved.error, resolved.message)
                return resolved.to_response()

            result = await self._run(spec, request, params, request_id)
            response = JSONResponse({"value": result})
        except Exception as exc:
            if not isinstance(exc, WebDriverError):
                logger.exception("Command %s failed", spec.name)
            problem = from_exception(exc, include_stacktrace=include_stacktrace)
            with suppress(Exception):
                logger.info("ERROR: %s %s (%s)", problem.status, problem.error, problem.message.splitlines()[0])
            return problem.to_response()

        with suppress(Exception):
            logger.debug("RESULT: %s", json.dumps(result, default=repr)[:1000])
        return response

    async def _run(self, spec: CommandSpec, request: Request, params: dict[str, Any], request_id: str) -> Any:
        sessions: SessionRegistry = request.app.state.sessions
        path_params = request.path_params

        if "session_id" not in path_params:
            ctx = CommandContext(request_id=request_id, command=spec.name, params=params, sessions=sessions)
            return await spec.handler(ctx)

        session_id = path_params["session_id"]
        session = sessions.get(session_id)
        async with session.lock:
            if session.closed:
                raise NoSuchSessionError(session_id)
            element = None
            if "element_id" in path_params:
                element = session.elements.resolve(path_params["element_id"])
            ctx = CommandContext(
                request_id=request_id,
                command=spec.name,
                params=params,
                sessions=sessions,
                session=session,
                element=element,
            )
            return await spec.handler(ctx)


# ---------------------------------------------------------------------------
# Routing failures
# ---------------------------------------------------------------------------


async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Unknown paths and wrong methods still answer with the WebDriver envelope."""
    if exc.status_code == 404:
        err: WebDriverError = UnknownCommandError(f"Unknown command: {request.method} {request.url.path}")
    elif exc.status_code == 405:
        err = UnknownMethodError(f"Method {request.method} is not allowed for {request.url.path}")
    else:
        err = UnknownError(exc.detail or "")
        err.status = exc.status_code
    response = from_exception(err).to_response()
    if exc.headers:
        response.headers.update(exc.headers)
    return response
