# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Middleware package - ASGI middleware wrapped around the dispatcher."""

from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..utils import parse_enabled

if TYPE_CHECKING:
    from ..types import ASGIApp, Receive, Scope, Send

MIDDLEWARE_REGISTRY: dict[str, type["BaseMiddleware"]] = {}


class BaseMiddleware(ABC):
    """Base class for all middleware. Subclasses auto-register via __init_subclass__.

    Class attributes:
        middleware_name: Registry key (default: class name).
        middleware_order: Order in chain (lower = earlier). Ranges:
            100: Core (errors)
            200: Logging/Tracing
            500-800: Custom
        middleware_default: Default on/off state. Default: False.
    """

    middleware_name: str = ""
    middleware_order: int = 500
    middleware_default: bool = False

    __slots__ = ("app",)

    def __init__(self, app: ASGIApp, **kwargs: Any) -> None:
        """Initialize middleware with wrapped app.

        Args:
            app: The ASGI app to wrap (next in chain).
            **kwargs: Middleware-specific configuration.
        """
        self.app = app

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        name = cls.middleware_name or cls.__name__
        if name in MIDDLEWARE_REGISTRY:
            raise ValueError(f"Middleware name '{name}' already registered")
        cls.middleware_name = name
        MIDDLEWARE_REGISTRY[name] = cls

    @abstractmethod
    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None: ...


def _autodiscover() -> None:
    """Import all middleware modules in this package to trigger registration."""
    package_dir = Path(__file__).parent
    for py_file in package_dir.glob("*.py"):
        if py_file.name.startswith("_"):
            continue
        importlib.import_module(f".{py_file.stem}", __package__)


def middleware_chain(
    middleware_config: str | list[str] | Mapping[str, Any] | None,
    app: ASGIApp,
    options: Mapping[str, Mapping[str, Any]] | None = None,
) -> ASGIApp:
    """Build middleware chain from config with automatic ordering.

    Uses middleware_order class attribute for sorting (lower = earlier in chain).
    Uses middleware_default class attribute for default on/off state.

    TOML format::

        [middleware]
        logging = "off"   # errors stays on (default)

    Args:
        middleware_config: Dict {name: on/off}, comma-separated string, or list.
        app: The innermost ASGI app (usually Dispatcher).
        options: Optional {name: kwargs} passed to each middleware constructor.

    Returns:
        Wrapped ASGI app with middleware chain.
    """
    config_dict: dict[str, bool] = {}

    if isinstance(middleware_config, str):
        # "errors, logging" -> all enabled
        for name in middleware_config.split(","):
            name = name.strip()
            if name:
                config_dict[name] = True
    elif isinstance(middleware_config, Mapping):
        for name, value in middleware_config.items():
            config_dict[name] = parse_enabled(value)
    elif middleware_config:
        for name in middleware_config:
            config_dict[name] = True

    unknown = set(config_dict) - set(MIDDLEWARE_REGISTRY)
    if unknown:
        raise ValueError(f"Unknown middleware: {', '.join(sorted(unknown))}")

    enabled: list[tuple[int, str, type[BaseMiddleware]]] = []
    for name, cls in MIDDLEWARE_REGISTRY.items():
        is_enabled = config_dict.get(name, cls.middleware_default)
        if is_enabled:
            enabled.append((cls.middleware_order, name, cls))

    enabled.sort(key=lambda x: x[0])

    # Build chain (reversed: first in order = outermost wrapper)
    for _order, name, cls in reversed(enabled):
        kwargs = dict(options.get(name, {})) if options else {}
        app = cls(app, **kwargs)

    return app


_autodiscover()
globals().update(MIDDLEWARE_REGISTRY)

__all__ = [
    "BaseMiddleware",
    "MIDDLEWARE_REGISTRY",
    "middleware_chain",
    *MIDDLEWARE_REGISTRY.keys(),
]
