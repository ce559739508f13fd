# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""TypeRegistry - file extension to MIME type mapping.

Extensions are stored lowercase and without the leading dot. Lookups accept
either form (``"css"`` or ``".css"``). Unknown extensions return None and the
emitter omits Content-Type in that case.

Example::

    registry = TypeRegistry({"webmanifest": "application/manifest+json"})
    registry.lookup(".html")        # "text/html"
    registry.lookup("webmanifest")  # "application/manifest+json"
    registry.lookup("unknown")      # None
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from types import MappingProxyType

__all__ = ["DEFAULT_TYPES", "TypeRegistry"]

DEFAULT_TYPES: Mapping[str, str] = MappingProxyType({
    # text
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "text/javascript",
    "mjs": "text/javascript",
    "cjs": "text/javascript",
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
    "xml": "application/xml",
    "json": "application/json",
    "jsonld": "application/ld+json",
    "map": "application/json",
    "webmanifest": "application/manifest+json",
    "rss": "application/rss+xml",
    "atom": "application/atom+xml",
    "yaml": "application/yaml",
    "yml": "application/yaml",
    # images
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "avif": "image/avif",
    "ico": "image/x-icon",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    # fonts
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    # media
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "flac": "audio/flac",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogv": "video/ogg",
    "mov": "video/quicktime",
    # documents and archives
    "pdf": "application/pdf",
    "zip": "application/zip",
    "gz": "application/gzip",
    "tar": "application/x-tar",
    "7z": "application/x-7z-compressed",
    "wasm": "application/wasm",
    "bin": "application/octet-stream",
})


class TypeRegistry:
    """Read-only extension to MIME type registry.

    Built once from ``DEFAULT_TYPES`` with optional overrides merged on top;
    shared by every request without locking.

    Attributes:
        types: Read-only mapping of extension (no dot) to MIME type.
    """

    __slots__ = ("_types",)

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        *,
        defaults: Mapping[str, str] = DEFAULT_TYPES,
    ) -> None:
        merged = {self._normalize(ext): mime for ext, mime in defaults.items()}
        if overrides:
            merged.update({self._normalize(ext): mime for ext, mime in overrides.items()})
        self._types: Mapping[str, str] = MappingProxyType(merged)

    @staticmethod
    def _normalize(extension: str) -> str:
        return extension.lower().lstrip(".")

    @property
    def types(self) -> Mapping[str, str]:
        """Read-only view of the registered types."""
        return self._types

    def lookup(self, extension: str) -> str | None:
        """Return the MIME type for ``extension`` or None if unknown."""
        if not extension:
            return None
        return self._types.get(self._normalize(extension))

    def __contains__(self, extension: object) -> bool:
        return isinstance(extension, str) and self.lookup(extension) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._types)

    def __len__(self) -> int:
        return len(self._types)

    def __repr__(self) -> str:
        return f"TypeRegistry({len(self._types)} types)"
