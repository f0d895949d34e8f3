# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""docdriver HTTP server.

Starlette application serving the WebDriver command table, with the session
registry on ``app.state.sessions``.  The lifespan starts the document engine
and, on shutdown, releases every session before stopping it.

Usage::

    docdriver --port 4444 -v
    python -m docdriver --json-logs
"""

from __future__ import annotations

import argparse
import contextlib
import logging
import platform
import sys
from collections.abc import AsyncIterator

from starlette.applications import Starlette
from starlette.exceptions import HTTPException

from . import __version__
from .commands import router
from .config import ServerConfig
from .engine import DocumentEngine
from .router import http_exception_handler
from .session_manager import SessionRegistry

logger = logging.getLogger(__name__)

_PAGE_LOAD_STRATEGIES = {
    "load": "normal",
    "networkidle": "normal",
    "domcontentloaded": "eager",
    "commit": "none",
}


def session_capabilities(config: ServerConfig) -> dict[str, object]:
    """Capabilities reported by New Session (``browserVersion`` is added by the registry)."""
    return {
        "browserName": config.browser_name,
        "platformName": platform.system().lower(),
        "acceptInsecureCerts": config.engine.ignore_https_errors,
        "pageLoadStrategy": _PAGE_LOAD_STRATEGIES.get(config.engine.wait_until, "normal"),
    }


def create_app(config: ServerConfig | None = None, engine: DocumentEngine | None = None) -> Starlette:
    """Build the ASGI application.

    *engine* defaults to the Playwright engine; tests pass an in-memory one.
    """
    config = config or ServerConfig()
    if engine is None:
        from .playwright_engine import PlaywrightEngine

        engine = PlaywrightEngine(config.engine)

    sessions = SessionRegistry(engine, capabilities=session_capabilities(config))

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await engine.start()
        logger.info("docdriver %s listening on %s:%d", __version__, config.host, config.port)
        try:
            yield
        finally:
            await sessions.shutdown()
            await engine.stop()
            logger.info("docdriver shutdown complete")

    app = Starlette(
        routes=router.routes(include_stacktrace=config.error_stacktraces),
        exception_handlers={HTTPException: http_exception_handler},
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.sessions = sessions
    return app


def parse_args(argv: list[str] | None = None) -> ServerConfig:
    """Parse CLI flags on top of ``DOCDRIVER_*`` environment overrides."""
    parser = argparse.ArgumentParser(
        prog="docdriver",
        description="WebDriver-compatible automation server over a scriptable document engine",
    )
    parser.add_argument("--host", default=None, help="Bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: 4444)")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=None,
        help="Log requests (-v) and parameters/results (-vv)",
    )
    parser.add_argument("--json-logs", action="store_true", default=None, help="Emit JSON log lines")
    parser.add_argument("--headed", action="store_true", default=False, help="Show the Chromium window")
    parser.add_argument("--browser-name", default=None, help="browserName capability (default: docdriver)")
    parser.add_argument(
        "--error-stacktraces",
        action="store_true",
        default=None,
        help="Append tracebacks to error messages",
    )
    parser.add_argument(
        "--block-url",
        action="append",
        default=None,
        metavar="SUBSTRING",
        help="Never fetch URLs containing SUBSTRING (repeatable)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args(argv)

    config = ServerConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.verbose is not None:
        config.verbose = args.verbose
    if args.json_logs:
        config.json_logs = True
    if args.headed:
        config.engine.headless = False
    if args.browser_name:
        config.browser_name = args.browser_name
    if args.error_stacktraces:
        config.error_stacktraces = True
    if args.block_url:
        config.engine.blocked_url_patterns = (*config.engine.blocked_url_patterns, *args.block_url)
    return config


def main(argv: list[str] | None = None) -> None:
    """Entry point for the docdriver server."""
    import uvicorn

    config = parse_args(argv if argv is not None else sys.argv[1:])

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging
    from .logging_config import level_for_verbosity

    level = level_for_verbosity(config.verbose)
    configure_logging(json_output=config.json_logs, level=level)

    app = create_app(config)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.host,
            port=config.port,
            log_config=None,
            log_level=level.lower(),
            access_log=False,
        )
    )
    server.run()


if __name__ == "__main__":
    main()
