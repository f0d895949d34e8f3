# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Server log setup: structlog over the stdlib ``logging`` tree.

Modules keep logging through ``logging.getLogger(__name__)``; uvicorn runs
with ``log_config=None`` so its records land here too.  Every record picks
up the request context the command router binds (``request_id``,
``command``, ``session_id``).  Output is the console renderer by default and
one JSON object per line with ``--json-logs``.

Leaf module, no docdriver imports. Safe to call before the app is built.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Request context keys bound by the router; blank values are not rendered.
REQUEST_CONTEXT_KEYS = ("request_id", "command", "session_id")

# Per-request chatter from the asyncio loop and the Selenium client helper.
_NOISY_LOGGERS = ("asyncio", "urllib3", "selenium.webdriver.remote.remote_connection")


def level_for_verbosity(verbose: int) -> str:
    """Map the repeatable ``-v`` count to a root log level."""
    if verbose >= 2:
        return "DEBUG"
    if verbose == 1:
        return "INFO"
    return "WARNING"


def _drop_blank_context(logger, method_name, event_dict):
    # Server-level commands (Status, New Session) have no session id.
    for key in REQUEST_CONTEXT_KEYS:
        if event_dict.get(key) in ("", None):
            event_dict.pop(key, None)
    return event_dict


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the structlog formatter on a single stderr handler.

    Args:
        json_output: JSON lines for log shippers, else coloured console output.
        level: Root logger level name; unknown names fall back to INFO.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _drop_blank_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(root.level, logging.INFO))
