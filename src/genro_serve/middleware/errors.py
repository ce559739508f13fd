# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Error handling middleware - last line of defense.

The dispatcher already contains per-request failures. Anything that still
escapes the chain (a failing send, a bug in another middleware) is logged
here and answered with an empty 500 when the response is uncommitted. A
committed response cannot be revised; the error is logged and dropped.

Exception handling:
    - HTTPException: status code and its headers, empty body
    - Exception: 500 Internal Server Error, empty body

Note:
    This middleware is enabled by default (middleware_default=True) and
    runs first in the chain (middleware_order=100) to catch all errors.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, MutableMapping

from . import BaseMiddleware
from ..exceptions import HTTPException

if TYPE_CHECKING:
    from ..types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("genro_serve")


class ErrorMiddleware(BaseMiddleware):
    """Error handling middleware for HTTP requests.

    Tracks whether ``http.response.start`` went out, so that it never sends
    a second start message. Non-HTTP scopes pass through unchanged.

    Class Attributes:
        middleware_name: "errors" - identifier for config.
        middleware_order: 100 - runs first to catch all errors.
        middleware_default: True - enabled by default.
    """

    middleware_name = "errors"
    middleware_order = 100
    middleware_default = True

    __slots__ = ()

    def __init__(self, app: ASGIApp, **kwargs: Any) -> None:
        super().__init__(app, **kwargs)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def send_tracking(message: MutableMapping[str, Any]) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, receive, send_tracking)
        except HTTPException as e:
            logger.info("Unhandled HTTP %s for %s: %s", e.status_code, scope.get("path"), e.detail)
            if not started:
                await self._send_empty(send, e.status_code, e.headers)
        except Exception:
            logger.exception("Unhandled error for %s %s", scope.get("method"), scope.get("path"))
            if not started:
                await self._send_empty(send, 500)

    async def _send_empty(
        self, send: Send, status: int, headers: list[tuple[str, str]] | None = None
    ) -> None:
        """Send status and headers with an empty body."""
        raw_headers = [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in headers or []
        ]
        await send({"type": "http.response.start", "status": status, "headers": raw_headers})
        await send({"type": "http.response.body", "body": b""})
