# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the per-session element registry."""

from __future__ import annotations

import pytest

from docdriver.elements import ElementRegistry
from docdriver.errors import StaleElementReferenceError
from tests._fake_engine import el


class TestGetOrCreate:
    async def test_first_id_is_one(self):
        registry = ElementRegistry()
        assert await registry.get_or_create(el("div")) == "1"

    async def test_same_node_same_id(self):
        registry = ElementRegistry()
        node = el("div")
        assert await registry.get_or_create(node) == await registry.get_or_create(node)
        assert len(registry) == 1

    async def test_distinct_nodes_distinct_ids(self):
        registry = ElementRegistry()
        ids = [await registry.get_or_create(el("p")) for _ in range(5)]
        assert ids == ["1", "2", "3", "4", "5"]

    async def test_identity_not_object_equality(self):
        """Two handles reporting the same identity share an id."""

        class Handle:
            def __init__(self, key):
                self.key = key

            async def identity(self):
                return self.key

        registry = ElementRegistry()
        first = await registry.get_or_create(Handle(42))
        assert await registry.get_or_create(Handle(42)) == first
        assert await registry.get_or_create(Handle(43)) != first

    async def test_same_counter_in_two_documents_does_not_collide(self):
        """A page that loaded a new document restarts its node counter."""

        class Handle:
            def __init__(self, key):
                self.key = key

            async def identity(self):
                return self.key

        registry = ElementRegistry()
        old = Handle(("doc-a", 1))
        new = Handle(("doc-b", 1))
        old_id = await registry.get_or_create(old)
        new_id = await registry.get_or_create(new)
        assert old_id != new_id
        assert registry.resolve(old_id) is old
        assert registry.resolve(new_id) is new


class TestResolve:
    async def test_resolve_returns_node(self):
        registry = ElementRegistry()
        node = el("div")
        element_id = await registry.get_or_create(node)
        assert registry.resolve(element_id) is node

    def test_unknown_id_is_stale(self):
        with pytest.raises(StaleElementReferenceError):
            ElementRegistry().resolve("99")


class TestInvalidateAll:
    async def test_old_ids_become_stale(self):
        registry = ElementRegistry()
        element_id = await registry.get_or_create(el("div"))
        registry.invalidate_all()
        with pytest.raises(StaleElementReferenceError):
            registry.resolve(element_id)
        assert len(registry) == 0

    async def test_ids_never_reissued(self):
        registry = ElementRegistry()
        old = await registry.get_or_create(el("div"))
        registry.invalidate_all()
        new = await registry.get_or_create(el("div"))
        assert new != old
        with pytest.raises(StaleElementReferenceError):
            registry.resolve(old)

    async def test_same_node_gets_new_id_after_invalidate(self):
        registry = ElementRegistry()
        node = el("div")
        old = await registry.get_or_create(node)
        registry.invalidate_all()
        assert await registry.get_or_create(node) != old

    def test_generation_bumps(self):
        registry = ElementRegistry()
        before = registry.generation
        registry.invalidate_all()
        assert registry.generation == before + 1
