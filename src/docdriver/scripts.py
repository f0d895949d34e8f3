# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Script bridge: Execute Script / Execute Async Script.

Arguments arrive as JSON; element references inside them are swapped for
live nodes before the engine sees them, and nodes inside the result are
swapped back for element references.  Script text and arguments are handed
to the engine as data, never spliced into source text.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from . import ELEMENT_KEY, canned_scripts, element_reference, is_element_reference
from .elements import ElementRegistry
from .engine import Node
from .errors import InvalidArgumentError

if TYPE_CHECKING:
    from .session_manager import Session

logger = logging.getLogger(__name__)


def marshal_args(raw: Any, registry: ElementRegistry) -> Any:
    """Deep-copy *raw*, replacing element references with live nodes.

    Raises ``StaleElementReferenceError`` if any reference fails to resolve.
    """
    if isinstance(raw, list):
        return [marshal_args(item, registry) for item in raw]
    if isinstance(raw, dict):
        if is_element_reference(raw):
            element_id = raw[ELEMENT_KEY]
            if not isinstance(element_id, str):
                raise InvalidArgumentError("Element reference id must be a string")
            return registry.resolve(element_id)
        return {key: marshal_args(value, registry) for key, value in raw.items()}
    return raw


async def unmarshal_result(value: Any, registry: ElementRegistry) -> Any:
    """Deep-copy an engine result, replacing nodes with element references."""
    if isinstance(value, Node):
        return element_reference(await registry.get_or_create(value))
    if isinstance(value, list | tuple):
        return [await unmarshal_result(item, registry) for item in value]
    if isinstance(value, dict):
        return {key: await unmarshal_result(item, registry) for key, item in value.items()}
    return value


def _check_call(script: Any, args: Any) -> Sequence[Any]:
    if not isinstance(script, str):
        raise InvalidArgumentError("'script' must be a string")
    if args is None:
        return []
    if not isinstance(args, list):
        raise InvalidArgumentError("'args' must be an array")
    return args


async def evaluate_sync(session: Session, script: str, args: Sequence[Any] | None) -> Any:
    """Execute Script: run *script* synchronously and return its JSON result."""
    raw_args = _check_call(script, args)
    marshaled = marshal_args(list(raw_args), session.elements)

    canned = canned_scripts.match(script)
    if canned is not None and canned.accepts(marshaled):
        logger.debug("Answering %s natively", canned.name)
        result = await canned.run(marshaled)
        return await unmarshal_result(result, session.elements)

    result = await session.context.evaluate(script, marshaled, asynchronous=False)
    return await unmarshal_result(result, session.elements)


async def evaluate_async(session: Session, script: str, args: Sequence[Any] | None) -> Any:
    """Execute Async Script: resolves when the script calls its completion callback."""
    raw_args = _check_call(script, args)
    marshaled = marshal_args(list(raw_args), session.elements)
    result = await session.context.evaluate(script, marshaled, asynchronous=True)
    return await unmarshal_result(result, session.elements)
