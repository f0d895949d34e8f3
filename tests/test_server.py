# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for configuration, CLI parsing, the app factory and lifespan."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from docdriver import __version__
from docdriver.config import DEFAULT_PORT, ServerConfig
from docdriver.server import create_app, main, parse_args, session_capabilities


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "DOCDRIVER_HOST",
        "DOCDRIVER_PORT",
        "DOCDRIVER_VERBOSE",
        "DOCDRIVER_JSON_LOGS",
        "DOCDRIVER_BROWSER_NAME",
        "DOCDRIVER_ERROR_STACKTRACES",
        "DOCDRIVER_HEADLESS",
        "DOCDRIVER_IGNORE_HTTPS_ERRORS",
        "DOCDRIVER_USER_AGENT",
        "DOCDRIVER_WAIT_UNTIL",
        "DOCDRIVER_BLOCKED_URLS",
    ):
        monkeypatch.delenv(name, raising=False)


class TestServerConfigFromEnv:
    def test_defaults(self):
        config = ServerConfig.from_env()
        assert config.host == "127.0.0.1"
        assert config.port == DEFAULT_PORT
        assert config.engine.headless is True
        assert config.engine.ignore_https_errors is True

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("DOCDRIVER_PORT", "9515")
        monkeypatch.setenv("DOCDRIVER_JSON_LOGS", "yes")
        monkeypatch.setenv("DOCDRIVER_HEADLESS", "0")
        monkeypatch.setenv("DOCDRIVER_WAIT_UNTIL", "domcontentloaded")
        monkeypatch.setenv("DOCDRIVER_BLOCKED_URLS", "ads.example, tracker.example ,")
        config = ServerConfig.from_env()
        assert config.port == 9515
        assert config.json_logs is True
        assert config.engine.headless is False
        assert config.engine.wait_until == "domcontentloaded"
        assert config.engine.blocked_url_patterns == ("ads.example", "tracker.example")

    def test_bad_values_ignored(self, monkeypatch):
        monkeypatch.setenv("DOCDRIVER_PORT", "many")
        monkeypatch.setenv("DOCDRIVER_WAIT_UNTIL", "whenever")
        config = ServerConfig.from_env()
        assert config.port == DEFAULT_PORT
        assert config.engine.wait_until == "load"


class TestParseArgs:
    def test_flags(self):
        config = parse_args(
            ["--host", "0.0.0.0", "--port", "5555", "-vv", "--json-logs", "--headed", "--browser-name", "jsdom"]
        )
        assert (config.host, config.port, config.verbose) == ("0.0.0.0", 5555, 2)
        assert config.json_logs is True
        assert config.engine.headless is False
        assert config.browser_name == "jsdom"

    def test_flags_override_env(self, monkeypatch):
        monkeypatch.setenv("DOCDRIVER_PORT", "9000")
        assert parse_args(["--port", "9001"]).port == 9001
        assert parse_args([]).port == 9000

    def test_block_url_appends_to_env(self, monkeypatch):
        monkeypatch.setenv("DOCDRIVER_BLOCKED_URLS", "a.example")
        config = parse_args(["--block-url", "b.example", "--block-url", "c.example"])
        assert config.engine.blocked_url_patterns == ("a.example", "b.example", "c.example")

    def test_error_stacktraces(self):
        assert parse_args(["--error-stacktraces"]).error_stacktraces is True
        assert parse_args([]).error_stacktraces is False

    def test_version(self, capsys):
        with pytest.raises(SystemExit):
            parse_args(["--version"])
        assert __version__ in capsys.readouterr().out


class TestCapabilities:
    def test_page_load_strategy(self):
        config = ServerConfig()
        config.engine.wait_until = "domcontentloaded"
        assert session_capabilities(config)["pageLoadStrategy"] == "eager"

    def test_browser_name(self):
        config = ServerConfig(browser_name="custom")
        assert session_capabilities(config)["browserName"] == "custom"


class TestLifespan:
    async def test_engine_started_and_sessions_released(self, engine):
        app = create_app(ServerConfig(), engine=engine)
        async with app.router.lifespan_context(app):
            assert engine.started
            await app.state.sessions.create()
        assert app.state.sessions.active_sessions == 0
        assert engine.stores[0].closed
        assert engine.stopped

    def test_default_engine_is_playwright(self):
        from docdriver.playwright_engine import PlaywrightEngine

        app = create_app(ServerConfig())
        assert isinstance(app.state.sessions.engine, PlaywrightEngine)


class TestMain:
    def test_main_runs_uvicorn(self):
        server = MagicMock()
        with (
            patch("uvicorn.Server", return_value=server) as server_cls,
            patch("uvicorn.Config") as config_cls,
            patch("docdriver.logging_config.configure") as configure,
        ):
            main(["--port", "4445", "-v", "--json-logs"])
        configure.assert_called_once_with(json_output=True, level="INFO")
        kwargs = config_cls.call_args.kwargs
        assert kwargs["port"] == 4445
        assert kwargs["log_config"] is None
        server_cls.assert_called_once_with(config_cls.return_value)
        server.run.assert_called_once_with()
