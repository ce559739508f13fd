# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Dispatcher - per-request orchestration.

Steps::

    1. method not GET/HEAD                -> 405 (no filesystem access)
    2. forbidden_pattern matches URL path -> 403
    3. join + normalize onto root         -> 403 outside root, 400 on NUL
    4. PathResolver.resolve()             -> 403 if strict_forbidden matches
                                             the resolved path
    5. STATIC_FILE -> ResponseEmitter.emit
       REDIRECT    -> 302 + Location, empty body
       DYNAMIC     -> handler(request, response, helpers)
       NOT_FOUND   -> fallback page with 404, else empty 404

Client errors answer with the status only. Anything else is logged with its
traceback and becomes an empty 500 when the response is still uncommitted;
a committed response is closed instead. A request never stops the server.
"""

from __future__ import annotations

import inspect
import logging
import os
from typing import TYPE_CHECKING, cast

from .exceptions import (
    HandlerError,
    HTTPBadRequest,
    HTTPException,
    HTTPForbidden,
    HTTPMethodNotAllowed,
    HTTPNotFound,
    Redirect,
)
from .handlers import HandlerHelpers, HandlerRegistry
from .request import ServeRequest
from .resolver import ResolutionKind
from .response import ResponseWriter
from .utils import is_within, status_phrase

if TYPE_CHECKING:
    from .config import ServeConfig
    from .emitter import ResponseEmitter
    from .probe import FileProbe
    from .resolver import PathResolver, Resolution
    from .types import Receive, Scope, Send

__all__ = ["ALLOWED_METHODS", "Dispatcher"]

logger = logging.getLogger("genro_serve.dispatcher")

ALLOWED_METHODS = ("GET", "HEAD")


class Dispatcher:
    """Routes ASGI HTTP requests through resolver, emitter and handlers."""

    __slots__ = ("config", "probe", "resolver", "emitter", "handlers")

    def __init__(
        self,
        config: ServeConfig,
        probe: FileProbe,
        resolver: PathResolver,
        emitter: ResponseEmitter,
        handlers: HandlerRegistry | None = None,
    ) -> None:
        self.config = config
        self.probe = probe
        self.resolver = resolver
        self.emitter = emitter
        self.handlers = handlers if handlers is not None else HandlerRegistry()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI interface - dispatch one HTTP request."""
        request = ServeRequest(scope)
        response = ResponseWriter(send, receive)
        await self.dispatch(request, response)

    async def dispatch(self, request: ServeRequest, response: ResponseWriter) -> None:
        """Handle ``request``; never raises for per-request failures."""
        try:
            await self._dispatch(request, response)
        except HTTPException as e:
            self._log_status(e.status_code, request, e.detail)
            if not response.started:
                response.clear_headers()
                await response.send_empty(e.status_code, e.headers)
            elif not response.finished:
                await response.end()
        except Exception:
            logger.exception("Error handling %s %s", request.method, request.url)
            await self._abort(response)

    async def _abort(self, response: ResponseWriter) -> None:
        """500 if uncommitted, otherwise close the response."""
        try:
            if not response.started:
                response.clear_headers()
                await response.send_empty(500)
            elif not response.finished:
                await response.end()
        except Exception as e:
            logger.debug("Could not close response: %s", e)

    @staticmethod
    def _log_status(status: int, request: ServeRequest, detail: str = "") -> None:
        phrase = status_phrase(status)
        if detail:
            logger.info("< %s %s (%s %s: %s)", status, phrase, request.method, request.path, detail)
        else:
            logger.info("< %s %s", status, phrase)

    def _fs_path(self, url_path: str) -> str:
        """Join ``url_path`` onto root, normalized and contained."""
        if "\x00" in url_path:
            raise HTTPBadRequest("NUL byte in path")
        root = self.config.root
        path = os.path.normpath(os.path.join(root, url_path.lstrip("/")))
        if not is_within(path, root):
            raise HTTPForbidden(f"Path escapes root: {url_path}")
        if url_path.endswith("/") and not path.endswith(os.sep):
            path += os.sep
        return path

    def _is_forbidden_target(self, target: str) -> bool:
        """Match the forbidden pattern against the root-relative target, URL style."""
        pattern = self.config.forbidden_pattern
        if pattern is None:
            return False
        relative = os.path.relpath(target, self.config.root).replace(os.sep, "/")
        return bool(pattern.search("/" + relative))

    async def _dispatch(self, request: ServeRequest, response: ResponseWriter) -> None:
        config = self.config

        if request.method not in ALLOWED_METHODS:
            raise HTTPMethodNotAllowed(f"Method {request.method} not allowed", ALLOWED_METHODS)

        url_path = request.path
        if config.forbidden_pattern is not None and config.forbidden_pattern.search(url_path):
            raise HTTPForbidden(f"URL matches forbidden pattern: {url_path}")

        path = self._fs_path(url_path)
        dynamic = bool(
            config.dynamic_extension
            and config.dynamic_pattern is not None
            and config.dynamic_pattern.search(url_path)
        )

        resolution = await self.resolver.resolve(
            path,
            url_path,
            dynamic=dynamic,
            query_string=request.query_string,
            raw_path=request.raw_path,
        )
        logger.debug(
            "%s %s -> %s %s",
            request.method,
            url_path,
            resolution.kind.name,
            resolution.target_path,
        )

        target = resolution.target_path
        if config.strict_forbidden and target is not None and self._is_forbidden_target(target):
            raise HTTPForbidden(f"Resolved path matches forbidden pattern: {target}")

        await self._branch(request, response, resolution)

    async def _branch(
        self, request: ServeRequest, response: ResponseWriter, resolution: Resolution
    ) -> None:
        kind = resolution.kind
        if kind is ResolutionKind.STATIC_FILE:
            await self.emitter.emit(request, response, cast(str, resolution.target_path))
        elif kind is ResolutionKind.REDIRECT:
            raise Redirect(cast(str, resolution.redirect_location))
        elif kind is ResolutionKind.DYNAMIC:
            await self._invoke_handler(request, response, cast(str, resolution.target_path))
        else:
            await self._not_found(request, response)

    async def _invoke_handler(
        self, request: ServeRequest, response: ResponseWriter, target: str
    ) -> None:
        handler = await self.probe.run(self.handlers.get, target)
        helpers = HandlerHelpers(self.config, self.emitter, request, response)
        result = handler(request, response, helpers)
        if inspect.isawaitable(result):
            await result
        if not response.started:
            raise HandlerError(f"Handler {target} returned without sending a response")
        if not response.finished:
            await response.end()

    async def _not_found(self, request: ServeRequest, response: ResponseWriter) -> None:
        fallback = self.config.fallback_page
        if fallback:
            page = os.path.normpath(os.path.join(self.config.root, fallback.lstrip("/")))
            if await self.probe.is_file(page):
                await self.emitter.emit(request, response, page, status=404)
                return
        raise HTTPNotFound(f"Nothing resolves for {request.path}")
