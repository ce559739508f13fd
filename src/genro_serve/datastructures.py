# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Case-insensitive HTTP request headers.

ASGI provides headers as ``list[tuple[bytes, bytes]]`` with Latin-1
encoding. ``Headers`` decodes them once and offers case-insensitive,
read-only lookup. Response headers are built as plain lists of tuples by
``ResponseWriter``.

Example::

    from genro_serve.datastructures import headers_from_scope

    scope = {"headers": [(b"Accept-Encoding", b"gzip, br")]}
    headers = headers_from_scope(scope)
    headers.get("accept-encoding")  # "gzip, br"
"""

from collections.abc import Mapping
from typing import Any, Iterator

__all__ = ["Headers", "headers_from_scope"]


class Headers:
    """
    Immutable, case-insensitive HTTP headers with multi-value support.

    Names are normalized to lowercase, values are preserved as-is. The same
    header may appear several times; ``get`` returns the first value and
    ``getlist`` all of them.

    Example:
        >>> headers = Headers([(b"If-None-Match", b'"abc"')])
        >>> headers["if-none-match"]
        '"abc"'
        >>> "IF-NONE-MATCH" in headers
        True
    """

    __slots__ = ("_headers",)

    def __init__(self, raw_headers: list[tuple[bytes, bytes]]) -> None:
        self._headers: list[tuple[str, str]] = [
            (name.decode("latin-1").lower(), value.decode("latin-1"))
            for name, value in raw_headers
        ]

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the first value for ``key`` (case-insensitive), or default."""
        key_lower = key.lower()
        for name, value in self._headers:
            if name == key_lower:
                return value
        return default

    def getlist(self, key: str) -> list[str]:
        """Return all values for ``key``, empty list if absent."""
        key_lower = key.lower()
        return [value for name, value in self._headers if name == key_lower]

    def keys(self) -> list[str]:
        """Return unique header names in order of first occurrence."""
        seen: set[str] = set()
        result: list[str] = []
        for name, _ in self._headers:
            if name not in seen:
                seen.add(name)
                result.append(name)
        return result

    def items(self) -> list[tuple[str, str]]:
        """Return all (name, value) pairs, duplicates included."""
        return list(self._headers)

    def __getitem__(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        return self.get(key) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"


def headers_from_scope(scope: Mapping[str, Any]) -> Headers:
    """Create Headers from an ASGI scope. Empty Headers if none present."""
    return Headers(scope.get("headers", []))
