# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-session element registry.

Arena of live node handles keyed by opaque string ids, scoped to one engine
context generation.  Navigation discards the arena wholesale; the id counter
is never reset, so an id issued before a navigation can't name a node after
it.
"""

from __future__ import annotations

import logging
from collections.abc import Hashable

from .engine import Node
from .errors import StaleElementReferenceError

logger = logging.getLogger(__name__)


class ElementRegistry:
    """Bidirectional id <-> node mapping for one session."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._ids: dict[Hashable, str] = {}
        self._count = 0
        self.generation = 1

    def __len__(self) -> int:
        return len(self._nodes)

    def resolve(self, element_id: str) -> Node:
        """Return the node for *element_id* or raise ``stale element reference``."""
        node = self._nodes.get(element_id)
        if node is None:
            raise StaleElementReferenceError(element_id)
        return node

    async def get_or_create(self, node: Node) -> str:
        """Return the id of *node*, allocating the next one on first sight."""
        key = await node.identity()
        element_id = self._ids.get(key)
        if element_id is not None:
            return element_id
        self._count += 1
        element_id = str(self._count)
        self._ids[key] = element_id
        self._nodes[element_id] = node
        return element_id

    def invalidate_all(self) -> None:
        """Forget every handle; called on each navigation."""
        dropped = len(self._nodes)
        self._nodes = {}
        self._ids = {}
        self.generation += 1
        logger.debug("Element registry invalidated (dropped=%d, generation=%d)", dropped, self.generation)
