# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Dynamic handlers - registry, loader and helper view.

A dynamic handler is a callable invoked instead of serving a static file when
the URL matches ``dynamic_pattern`` and resolves to a file with
``dynamic_extension``. Handlers are keyed by absolute resolved path.

Two ways in:
    - Explicit registration::

        registry = HandlerRegistry()

        @registry.handler("/srv/www/api/create.py")
        async def create(request, response, helpers):
            await response.send_json({"created": True})

    - Loading through HandlerLoader (autoload on): the file is executed as an
      isolated module under the ``genro_serve_handlers`` namespace (never on
      sys.path) and must define ``handle``::

        # /srv/www/api/create.py
        async def handle(request, response, helpers):
            await response.send_json({"created": True})

Loaded handlers are cached by path and mtime; a changed file is reloaded.

Handler contract::

    handle(request: ServeRequest, response: ResponseWriter, helpers: HandlerHelpers)

Sync and async callables are both accepted. The handler owns the response and
must start it before returning.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import os
import re
import sys
import threading
from collections.abc import Awaitable, Callable
from types import ModuleType
from typing import TYPE_CHECKING, Any

from .exceptions import HandlerError, HTTPForbidden, HTTPNotFound
from .utils import is_within

if TYPE_CHECKING:
    from .config import ServeConfig
    from .emitter import ResponseEmitter
    from .mime_types import TypeRegistry
    from .request import ServeRequest
    from .response import ResponseWriter

__all__ = [
    "HANDLER_NAMESPACE",
    "Handler",
    "HandlerHelpers",
    "HandlerLoader",
    "HandlerRegistry",
]

logger = logging.getLogger("genro_serve.handlers")

HANDLER_NAMESPACE = "genro_serve_handlers"

Handler = Callable[["ServeRequest", "ResponseWriter", "HandlerHelpers"], Awaitable[None] | None]


class HandlerHelpers:
    """Restricted view of server resources passed to handlers.

    Handlers never see the server itself: only the type map, the read-only
    config, a logger and a file-emission helper bound to the current request.

    Example:
        >>> async def handle(request, response, helpers):
        ...     helpers.logger.info("serving %s", request.path)
        ...     await helpers.emit_file("static/report.html")
    """

    __slots__ = ("_config", "_emitter", "_request", "_response")

    def __init__(
        self,
        config: ServeConfig,
        emitter: ResponseEmitter,
        request: ServeRequest,
        response: ResponseWriter,
    ) -> None:
        self._config = config
        self._emitter = emitter
        self._request = request
        self._response = response

    @property
    def config(self) -> ServeConfig:
        return self._config

    @property
    def types(self) -> TypeRegistry:
        return self._config.types

    @property
    def logger(self) -> logging.Logger:
        return logger

    async def emit_file(self, path: str, status: int = 200) -> None:
        """Send a file through the response pipeline.

        Args:
            path: Absolute path, or path relative to root.
            status: Status to send.

        Raises:
            HTTPForbidden: Path escapes root.
            HTTPNotFound: Not an existing file.
        """
        root = self._config.root
        target = os.path.normpath(os.path.join(root, path))
        if not is_within(target, root):
            raise HTTPForbidden(f"Path outside root: {path}")
        if not await self._emitter.probe.is_file(target):
            raise HTTPNotFound(f"No such file: {path}")
        await self._emitter.emit(self._request, self._response, target, status=status)


class HandlerLoader:
    """Loads handler files into an isolated virtual namespace.

    Avoids sys.path pollution by registering each file under a unique name
    in sys.modules: ``genro_serve_handlers.<stem>_<hash>``.

    Args:
        prefix: Namespace prefix (default: "genro_serve_handlers").
    """

    __slots__ = ("prefix", "_loaded_modules")

    def __init__(self, prefix: str = HANDLER_NAMESPACE) -> None:
        self.prefix = prefix
        self._loaded_modules: list[str] = []
        self._ensure_namespace()

    def _ensure_namespace(self) -> None:
        if self.prefix not in sys.modules:
            root = ModuleType(self.prefix)
            root.__path__ = []  # Make it a package
            sys.modules[self.prefix] = root

    def module_name(self, path: str) -> str:
        """Unique, stable module name for a handler file."""
        stem = re.sub(r"\W", "_", os.path.splitext(os.path.basename(path))[0])
        digest = hashlib.md5(path.encode("utf-8")).hexdigest()[:12]
        return f"{self.prefix}.{stem}_{digest}"

    def load(self, path: str) -> ModuleType:
        """Execute ``path`` as a fresh module (replacing any previous load).

        Raises:
            HandlerError: The file cannot be loaded or raised while executing.
        """
        self._ensure_namespace()
        full_name = self.module_name(path)
        self.unload(path)

        spec = importlib.util.spec_from_file_location(full_name, path)
        if spec is None or spec.loader is None:
            raise HandlerError(f"Cannot load handler module from {path}")

        module = importlib.util.module_from_spec(spec)
        module.__package__ = self.prefix
        sys.modules[full_name] = module
        self._loaded_modules.append(full_name)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            self.unload(path)
            raise HandlerError(f"Error loading handler {path}: {e}") from e
        return module

    def unload(self, path: str) -> None:
        full_name = self.module_name(path)
        sys.modules.pop(full_name, None)
        if full_name in self._loaded_modules:
            self._loaded_modules.remove(full_name)

    def unload_all(self) -> None:
        """Unload all modules loaded by this loader."""
        for name in reversed(self._loaded_modules):
            sys.modules.pop(name, None)
        self._loaded_modules.clear()

    def list_loaded(self) -> list[str]:
        """List all loaded module names."""
        return list(self._loaded_modules)


class HandlerRegistry:
    """Handlers keyed by absolute resolved path.

    ``get()`` is called from the probe's worker threads: the module cache is
    guarded by a lock. Explicitly registered handlers always win over files.

    Attributes:
        loader: HandlerLoader used when autoload is on.
        autoload: Load ``handle`` from the file when no handler is registered.
    """

    __slots__ = ("loader", "autoload", "_registered", "_cache", "_lock")

    def __init__(self, loader: HandlerLoader | None = None, autoload: bool = True) -> None:
        self.loader = loader if loader is not None else HandlerLoader()
        self.autoload = autoload
        self._registered: dict[str, Handler] = {}
        self._cache: dict[str, tuple[int, Handler]] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _key(path: str) -> str:
        return os.path.normpath(os.path.abspath(path))

    def register(self, path: str, handler: Handler) -> None:
        if not callable(handler):
            raise TypeError(f"Handler for {path} is not callable")
        with self._lock:
            self._registered[self._key(path)] = handler

    def unregister(self, path: str) -> None:
        with self._lock:
            self._registered.pop(self._key(path), None)

    def handler(self, path: str) -> Callable[[Handler], Handler]:
        """Decorator form of ``register``."""

        def decorator(func: Handler) -> Handler:
            self.register(path, func)
            return func

        return decorator

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self._key(path) in self._registered

    def __len__(self) -> int:
        return len(self._registered)

    def get(self, path: str) -> Handler:
        """Return the handler for ``path``, loading it if needed.

        Blocking: stats and possibly executes the file. Run it off the loop.

        Raises:
            HandlerError: No handler registered and autoload disabled, or
                the file cannot be loaded or does not define ``handle``.
        """
        key = self._key(path)
        with self._lock:
            registered = self._registered.get(key)
            if registered is not None:
                return registered
            if not self.autoload:
                raise HandlerError(f"No handler registered for {key}")

            try:
                mtime = os.stat(key).st_mtime_ns
            except OSError as e:
                raise HandlerError(f"Handler file not accessible: {key}") from e

            cached = self._cache.get(key)
            if cached is not None and cached[0] == mtime:
                return cached[1]

            module = self.loader.load(key)
            handle: Any = getattr(module, "handle", None)
            if not callable(handle):
                self.loader.unload(key)
                raise HandlerError(f"Handler module {key} does not define handle()")
            self._cache[key] = (mtime, handle)
            logger.debug("Loaded handler %s", key)
            return handle  # type: ignore[no-any-return]

    def unload_all(self) -> None:
        """Drop loaded handler modules (explicit registrations are kept)."""
        with self._lock:
            self._cache.clear()
            self.loader.unload_all()
