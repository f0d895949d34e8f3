# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Selenium client helpers for docdriver.

``WebDriver`` starts a local docdriver server in a child process (through
``Service``) and talks to it with the stock Selenium remote client::

    from docdriver.webdriver import WebDriver

    driver = WebDriver()
    driver.get("https://example.com")
    print(driver.title)
    driver.quit()  # also stops the server

``connect()`` attaches to a server that is already running.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping, Sequence

from selenium.webdriver.common.options import ArgOptions
from selenium.webdriver.common.service import Service as _BaseService
from selenium.webdriver.remote.webdriver import WebDriver as RemoteWebDriver

from .config import DEFAULT_BROWSER_NAME


class Options(ArgOptions):
    """Capabilities for a docdriver session."""

    @property
    def default_capabilities(self) -> dict:
        return {"browserName": DEFAULT_BROWSER_NAME}


class Service(_BaseService):
    """Runs ``python -m docdriver --port N`` as a child process."""

    def __init__(
        self,
        port: int = 0,
        *,
        python: str | None = None,
        service_args: Sequence[str] | None = None,
        log_output=None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.service_args = list(service_args or [])
        super().__init__(
            executable_path=python or sys.executable,
            port=port,
            log_output=log_output,
            env=dict(env) if env is not None else None,
        )

    def enable_verbose_logging(self) -> Service:
        self.service_args.append("-vv")
        return self

    def command_line_args(self) -> list[str]:
        return ["-m", "docdriver", "--port", str(self.port), *self.service_args]

    def send_remote_shutdown_command(self) -> None:
        # The server has no shutdown endpoint; stop() terminates the process.
        return None


class WebDriver(RemoteWebDriver):
    """Remote WebDriver that owns its docdriver server process."""

    def __init__(self, options: Options | None = None, service: Service | None = None) -> None:
        self.service = service or Service()
        self.service.start()
        try:
            super().__init__(command_executor=self.service.service_url, options=options or Options())
        except Exception:
            self.service.stop()
            raise
        self._is_remote = False

    def quit(self) -> None:
        try:
            super().quit()
        finally:
            self.service.stop()


def connect(url: str, options: Options | None = None) -> RemoteWebDriver:
    """Open a session on an already running docdriver server, e.g. ``http://127.0.0.1:4444``."""
    return RemoteWebDriver(command_executor=url, options=options or Options())
