# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""docdriver: a WebDriver-compatible automation server over a scriptable document engine.

Exposes the W3C WebDriver HTTP command surface:
- sessions: one document engine context + cookie store + element registry each
- elements: opaque per-session ids for live document nodes
- scripts: sync/async evaluation with element references marshalled both ways
- cookies: wire <-> engine cookie translation
"""

from __future__ import annotations

__version__ = "0.1.0"

# Fixed W3C WebDriver web element identifier.
ELEMENT_KEY = "element-6066-11e4-a52e-4f735466cecf"


def element_reference(element_id: str) -> dict[str, str]:
    """Serialize an element id as a WebDriver web element reference."""
    return {ELEMENT_KEY: element_id}


def is_element_reference(value: object) -> bool:
    return isinstance(value, dict) and ELEMENT_KEY in value
