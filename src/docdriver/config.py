# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Server configuration.

Defaults live on the dataclasses below; ``ServerConfig.from_env()`` applies
``DOCDRIVER_*`` environment overrides and ``server.parse_args()`` applies
command-line flags on top of that.
"""

from __future__ import annotations

import os
from contextlib import suppress
from dataclasses import dataclass, field

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4444
DEFAULT_BROWSER_NAME = "docdriver"

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in _TRUTHY


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.environ.get(name, "").strip()
    return tuple(p.strip() for p in raw.split(",") if p.strip())


@dataclass
class EngineConfig:
    """Document engine (Playwright/Chromium) configuration."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    user_agent: str | None = None
    ignore_https_errors: bool = True
    wait_until: str = "load"  # "load" | "domcontentloaded" | "networkidle" | "commit"
    blocked_url_patterns: tuple[str, ...] = ()  # URL substrings never fetched


@dataclass
class ServerConfig:
    """HTTP server configuration."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    verbose: int = 0
    json_logs: bool = False
    browser_name: str = DEFAULT_BROWSER_NAME
    error_stacktraces: bool = False  # append tracebacks to error messages
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        config = cls()
        env_host = os.environ.get("DOCDRIVER_HOST", "").strip()
        if env_host:
            config.host = env_host
        env_port = os.environ.get("DOCDRIVER_PORT", "").strip()
        if env_port:
            with suppress(ValueError):
                config.port = int(env_port)
        env_verbose = os.environ.get("DOCDRIVER_VERBOSE", "").strip()
        if env_verbose:
            with suppress(ValueError):
                config.verbose = int(env_verbose)
        config.json_logs = _env_flag("DOCDRIVER_JSON_LOGS", config.json_logs)
        config.browser_name = os.environ.get("DOCDRIVER_BROWSER_NAME", "").strip() or config.browser_name
        config.error_stacktraces = _env_flag("DOCDRIVER_ERROR_STACKTRACES", config.error_stacktraces)

        engine = config.engine
        engine.headless = _env_flag("DOCDRIVER_HEADLESS", engine.headless)
        engine.ignore_https_errors = _env_flag("DOCDRIVER_IGNORE_HTTPS_ERRORS", engine.ignore_https_errors)
        engine.user_agent = os.environ.get("DOCDRIVER_USER_AGENT", "").strip() or engine.user_agent
        env_wait = os.environ.get("DOCDRIVER_WAIT_UNTIL", "").strip().lower()
        if env_wait in ("load", "domcontentloaded", "networkidle", "commit"):
            engine.wait_until = env_wait
        engine.blocked_url_patterns = _env_list("DOCDRIVER_BLOCKED_URLS") or engine.blocked_url_patterns
        return config
