# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
ServeRequest - read-only view of an ASGI HTTP scope.

Exposes what the dispatcher, resolver and handlers consume: method, URL,
path (query stripped), query string and case-insensitive headers. The
request body is never read.

Example::

    request = ServeRequest(scope)
    request.method                          # "GET"
    request.url                             # "/bar?x=1"
    request.path                            # "/bar"
    request.headers.get("accept-encoding")  # "gzip, br"
"""

from __future__ import annotations

from typing import Any

from .datastructures import Headers, headers_from_scope
from .types import Scope

__all__ = ["ServeRequest"]


class ServeRequest:
    """HTTP request adapter wrapping ASGI scope.

    Attributes:
        scope: The raw ASGI scope.
    """

    __slots__ = ("scope", "_headers")

    def __init__(self, scope: Scope) -> None:
        self.scope = scope
        self._headers: Headers | None = None

    @property
    def method(self) -> str:
        return str(self.scope.get("method", "GET")).upper()

    @property
    def path(self) -> str:
        """URL path, percent-decoded by the server, query stripped."""
        return str(self.scope.get("path", "/")) or "/"

    @property
    def raw_path(self) -> str | None:
        """Path as sent by the client, still percent-encoded (None if unknown)."""
        raw = self.scope.get("raw_path")
        if not raw:
            return None
        if isinstance(raw, bytes):
            return raw.decode("latin-1")
        return str(raw)

    @property
    def query_string(self) -> str:
        raw = self.scope.get("query_string", b"")
        if isinstance(raw, bytes):
            return raw.decode("latin-1")
        return str(raw)

    @property
    def url(self) -> str:
        """Path plus ``?query`` when a query string is present."""
        query = self.query_string
        return f"{self.path}?{query}" if query else self.path

    @property
    def headers(self) -> Headers:
        if self._headers is None:
            self._headers = headers_from_scope(self.scope)
        return self._headers

    @property
    def client(self) -> tuple[str, int] | None:
        client: Any = self.scope.get("client")
        if client is None:
            return None
        return (str(client[0]), int(client[1]))

    def __repr__(self) -> str:
        return f"ServeRequest(method={self.method!r}, url={self.url!r})"
