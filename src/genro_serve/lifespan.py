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
ASGI Lifespan Management.

Purpose
=======
ServerLifespan handles the ASGI lifespan protocol for ServeServer.

Startup logs the served root and the active options. Shutdown drops the
loaded handler modules and stops the filesystem probe's worker pool.

Definition::

    class ServerLifespan:
        __slots__ = ("server", "_logger", "_started")

        def __init__(self, server: ServeServer)
        async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None
        async def startup(self) -> None
        async def shutdown(self) -> None

Design Notes
============
- Errors during startup send lifespan.startup.failed
- Errors during shutdown are logged but don't prevent completion
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .types import Receive, Scope, Send

if TYPE_CHECKING:
    from .server import ServeServer

__all__ = ["ServerLifespan"]


class ServerLifespan:
    """
    ASGI Lifespan handler for ServeServer.

    Attributes:
        server: The ServeServer instance this lifespan manages.
    """

    __slots__ = ("server", "_logger", "_started")

    def __init__(self, server: ServeServer) -> None:
        self.server = server
        self._logger = logging.getLogger("genro_serve.lifespan")
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def __call__(
        self, scope: Scope, receive: Receive, send: Send  # noqa: ARG002
    ) -> None:
        """
        Handle ASGI lifespan protocol.

        Args:
            scope: ASGI scope dict (type="lifespan").
            receive: ASGI receive callable.
            send: ASGI send callable.
        """
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    await self.startup()
                    await send({"type": "lifespan.startup.complete"})
                except Exception as e:
                    self._logger.exception("Startup failed")
                    await send({
                        "type": "lifespan.startup.failed",
                        "message": str(e),
                    })
                    return

            elif msg_type == "lifespan.shutdown":
                try:
                    await self.shutdown()
                except Exception:
                    self._logger.exception("Shutdown error")
                finally:
                    await send({"type": "lifespan.shutdown.complete"})
                return

    async def startup(self) -> None:
        """Log the served root and options."""
        config = self.server.config
        self._logger.info("Serving %s", config.root)
        self._logger.debug(
            "Options: default_page=%s default_extension=%s spa_page=%s fallback_page=%s "
            "cache=%s compression=%s encodings=%s",
            config.default_page,
            config.default_extension,
            config.spa_page,
            config.fallback_page,
            config.cache,
            config.compression,
            ",".join(config.encodings),
        )
        if config.dynamic_pattern is not None:
            self._logger.info(
                "Dynamic handlers: %s (*%s)",
                config.dynamic_pattern.pattern,
                config.dynamic_extension,
            )
        self._started = True

    async def shutdown(self) -> None:
        """Unload handler modules and stop the probe pool."""
        self._logger.info("genro-serve shutting down...")
        try:
            self.server.handlers.unload_all()
        finally:
            self.server.probe.shutdown(wait=True)
            self._started = False
        self._logger.info("genro-serve stopped")
