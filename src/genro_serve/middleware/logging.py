# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Access log middleware - one request line per request.

The status line is written by the dispatcher and the emitter (``< 200 OK``),
so this middleware only opens each request block::

    ------------------------        (separator, when configured)
    > GET /docs/guide
    < 200 OK                        (genro_serve.emitter)

Client address, request headers and the elapsed time go to DEBUG::

    from 192.168.1.1
    = GET /docs/guide 200 (1.2ms)

Config:
    logger_name (str): Logger name. Default: "genro_serve.access".
    level (str): Level of the request line. Default: "INFO".
    separator (str): Line logged before each request. Default: none.
    include_headers (bool): Log request headers at DEBUG. Default: False.

Example:
    Disable in genro-serve.toml::

        [middleware]
        logging = "off"
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any, MutableMapping

from . import BaseMiddleware

if TYPE_CHECKING:
    from ..types import ASGIApp, Receive, Scope, Send


class LoggingMiddleware(BaseMiddleware):
    """Request-line logger for HTTP scopes; other scopes pass through.

    Attributes:
        logger: Access logger.
        level: Numeric level of the request line.
        separator: Optional line that opens each request block.
        include_headers: Whether to log request headers at DEBUG.
    """

    middleware_name = "logging"
    middleware_order = 200
    middleware_default = True

    __slots__ = ("logger", "level", "separator", "include_headers")

    def __init__(
        self,
        app: ASGIApp,
        logger_name: str = "genro_serve.access",
        level: str = "INFO",
        separator: str | None = None,
        include_headers: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(app, **kwargs)
        self.logger = logging.getLogger(logger_name)
        self.level = getattr(logging, level.upper(), logging.INFO)
        self.separator = separator or None
        self.include_headers = include_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started_at = time.perf_counter()
        request_line = f"{scope.get('method', '?')} {scope.get('path', '/')}"

        if self.separator:
            self.logger.log(self.level, self.separator)
        self.logger.log(self.level, "> %s", request_line)

        client = scope.get("client")
        if client:
            self.logger.debug("  from %s", client[0])
        if self.include_headers:
            for name, value in scope.get("headers", []):
                self.logger.debug("  %s: %s", name.decode("latin-1"), value.decode("latin-1"))

        status: int | None = None

        async def send_recording_status(message: MutableMapping[str, Any]) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message.get("status")
            await send(message)

        try:
            await self.app(scope, receive, send_recording_status)
        finally:
            elapsed = (time.perf_counter() - started_at) * 1000
            self.logger.debug("= %s %s (%.1fms)", request_line, status or "-", elapsed)
