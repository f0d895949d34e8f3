# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""CommandContext: leaf-ish module handed to every command handler.

Dependency graph: context.py <- router.py, context.py <- commands.py (acyclic).
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Any

from .errors import InvalidArgumentError, NoSuchSessionError

# Avoid importing the registry and engine at module level to keep this a leaf.
if TYPE_CHECKING:
    from .engine import Node
    from .session_manager import Session, SessionRegistry


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class CommandContext:
    """Per-request context passed to command handlers.

    ``params`` merges the request body with the path parameters (path wins).
    ``session`` and ``element`` are resolved by the router when the path
    names them; the session's lock is held while the handler runs.
    """

    request_id: str
    command: str
    params: dict[str, Any]
    sessions: SessionRegistry = dataclasses.field(repr=False)
    session: Session | None = None
    element: Node | None = dataclasses.field(default=None, repr=False)

    def param(self, name: str, default: Any = None) -> Any:
        return self.params.get(name, default)

    def string_param(self, name: str) -> str:
        value = self.params.get(name)
        if not isinstance(value, str):
            raise InvalidArgumentError(f"'{name}' must be a string")
        return value

    def require_session(self) -> Session:
        if self.session is None:
            raise NoSuchSessionError(str(self.params.get("session_id", "")))
        return self.session

    def require_element(self) -> Node:
        if self.element is None:
            raise InvalidArgumentError("Command requires an element")
        return self.element
