# Copyright 2025 Softwell S.r.l.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     https://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
ServeServer - lifecycle object for genro-serve.

Builds every collaborator once and exposes the result as an ASGI app::

    server = ServeServer(root="./public", spa_page="200.html")
    server.run()  # Starts uvicorn

Embedded use (the hosting process owns signals and exit codes)::

    server = ServeServer(config)
    task = asyncio.create_task(server.start())
    ...
    server.stop()
    await task

Request flow::

    ASGI Server (uvicorn) → ServeServer.__call__
        → Middleware chain (errors → logging)
        → Dispatcher → PathResolver → ResponseEmitter | handler

A listener that cannot bind raises TransportError from ``start()``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import uvicorn

from .config import ConfigError, ServeConfig
from .dispatcher import Dispatcher
from .emitter import ResponseEmitter
from .exceptions import TransportError
from .handlers import HandlerRegistry
from .lifespan import ServerLifespan
from .middleware import middleware_chain
from .probe import FileProbe, LocalFileProbe
from .resolver import PathResolver
from .types import ASGIApp, Receive, Scope, Send

__all__ = ["ServeServer"]


class ServeServer:
    """
    Static-asset server as an ASGI application.

    Attributes:
        config: Immutable ServeConfig.
        probe: FileProbe shared by resolver, emitter and dispatcher.
        resolver: PathResolver.
        emitter: ResponseEmitter.
        handlers: HandlerRegistry for dynamic handlers.
        dispatcher: Dispatcher (innermost ASGI app).
        app: Middleware chain wrapping the dispatcher.
        lifespan: ServerLifespan.
        logger: Server logger ("genro_serve").
    """

    __slots__ = (
        "config",
        "probe",
        "resolver",
        "emitter",
        "handlers",
        "dispatcher",
        "app",
        "lifespan",
        "logger",
        "_uvicorn",
    )

    def __init__(
        self,
        config: ServeConfig | None = None,
        *,
        probe: FileProbe | None = None,
        handlers: HandlerRegistry | None = None,
        **options: Any,
    ) -> None:
        """
        Initialize ServeServer.

        Args:
            config: Ready ServeConfig. When None, one is built with
                ``ServeConfig.load(**options)``.
            probe: FileProbe (default: LocalFileProbe with config.max_workers).
            handlers: HandlerRegistry (default: autoload per config).
            **options: Options for ServeConfig.load (config_file, root, ...).

        Raises:
            ConfigError: Invalid configuration.
        """
        if config is None:
            config = ServeConfig.load(**options)
        elif options:
            raise ConfigError(f"Options not allowed with an explicit config: {sorted(options)}")

        self.config = config
        self.logger = logging.getLogger("genro_serve")
        self.probe = probe if probe is not None else LocalFileProbe(max_workers=config.max_workers)
        self.resolver = PathResolver(config, self.probe)
        self.emitter = ResponseEmitter(config, self.probe)
        self.handlers = (
            handlers if handlers is not None else HandlerRegistry(autoload=config.dynamic_autoload)
        )
        self.dispatcher = Dispatcher(config, self.probe, self.resolver, self.emitter, self.handlers)
        try:
            self.app: ASGIApp = middleware_chain(config.middleware, self.dispatcher)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        self.lifespan = ServerLifespan(self)
        self._uvicorn: uvicorn.Server | None = None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Handle ASGI request.

        Lifespan scopes go to ServerLifespan, HTTP scopes to the middleware
        chain. Other scope types (websocket) are not served.
        """
        if scope["type"] == "lifespan":
            await self.lifespan(scope, receive, send)
        elif scope["type"] == "http":
            await self.app(scope, receive, send)
        else:
            self.logger.debug("Ignoring %s scope", scope["type"])

    @property
    def started(self) -> bool:
        """True between lifespan startup and shutdown."""
        return self.lifespan.started

    async def start(self, host: str | None = None, port: int | None = None) -> None:
        """Serve with uvicorn until ``stop()`` is called.

        Args:
            host: Listen address (default: config.host).
            port: Listen port (default: config.port).

        Raises:
            TransportError: The listener could not bind.
        """
        host = host or self.config.host
        port = self.config.port if port is None else port
        uv_config = uvicorn.Config(
            self,
            host=host,
            port=port,
            lifespan="on",
            access_log=False,
            log_config=None,
        )
        server = uvicorn.Server(uv_config)
        self._uvicorn = server
        self.logger.info("Starting server on %s:%s", host, port)
        try:
            await server.serve()
        except (OSError, SystemExit) as e:
            # uvicorn exits the startup with SystemExit when bind fails
            raise TransportError(f"Cannot listen on {host}:{port}") from e
        finally:
            self._uvicorn = None

    def stop(self) -> None:
        """Request graceful shutdown of a running ``start()``."""
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Blocking ``start()`` for the CLI."""
        asyncio.run(self.start(host, port))

    def __repr__(self) -> str:
        return f"ServeServer(root={self.config.root!r})"
