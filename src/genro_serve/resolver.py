# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Path resolver - turns a contained filesystem path into a Resolution.

Purpose
=======
Given ``root`` joined with the URL path (normalized and verified to stay
inside root by the dispatcher), decide what to serve. Rules are evaluated as
an ordered, short-circuiting chain: the first existing candidate wins and
later rules are never probed.

Resolution chain::

    1. path is a file
           -> STATIC_FILE (DYNAMIC if dynamic-eligible and path has the
              dynamic extension)
    2. path is a directory
       a. <path>/<default_page> exists
              URL ends with "/"  -> STATIC_FILE <path>/<default_page>
              otherwise          -> REDIRECT "<url>/"
       b. <path><default_extension> is a file      -> STATIC_FILE
       c. <path>/<spa_page> is a file              -> STATIC_FILE
       d.                                          -> NOT_FOUND
    3. path does not exist
       -. last URL segment contains "."            -> NOT_FOUND
       a. dynamic and <path><dynamic_extension>    -> DYNAMIC
       b. <path><default_extension> is a file      -> STATIC_FILE
       c. <nearest existing ancestor>/<spa_page>   -> STATIC_FILE
       d. <path>/<default_page> exists             -> STATIC_FILE
       e.                                          -> NOT_FOUND

Every probe is logged as ``Find <path>`` at DEBUG on ``genro_serve.resolver``.

Example::

    resolver = PathResolver(config, LocalFileProbe())
    resolution = await resolver.resolve("/srv/www/bar", "/bar")
    resolution.kind               # ResolutionKind.REDIRECT
    resolution.redirect_location  # "/bar/"
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import quote

from .utils import is_within

if TYPE_CHECKING:
    from .config import ServeConfig
    from .probe import FileProbe

__all__ = ["PathResolver", "Resolution", "ResolutionKind"]

logger = logging.getLogger("genro_serve.resolver")


class ResolutionKind(Enum):
    STATIC_FILE = "static_file"
    DYNAMIC = "dynamic"
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of path resolution for one request.

    Attributes:
        kind: What the dispatcher must do.
        target_path: Absolute file to serve or invoke (None for REDIRECT and
            NOT_FOUND).
        redirect_location: Location header value, only for REDIRECT.
    """

    kind: ResolutionKind
    target_path: str | None = None
    redirect_location: str | None = None

    @classmethod
    def static(cls, path: str) -> Resolution:
        return cls(ResolutionKind.STATIC_FILE, path)

    @classmethod
    def dynamic(cls, path: str) -> Resolution:
        return cls(ResolutionKind.DYNAMIC, path)

    @classmethod
    def redirect(cls, location: str) -> Resolution:
        return cls(ResolutionKind.REDIRECT, redirect_location=location)

    @classmethod
    def not_found(cls) -> Resolution:
        return cls(ResolutionKind.NOT_FOUND)


class PathResolver:
    """Path-resolution engine.

    Holds no per-request state; one instance serves all requests.

    Attributes:
        config: Server configuration (pages, extensions, root).
        probe: Filesystem probe used for every existence check.
    """

    __slots__ = ("config", "probe")

    def __init__(self, config: ServeConfig, probe: FileProbe) -> None:
        self.config = config
        self.probe = probe

    async def _is_file(self, path: str) -> bool:
        logger.debug("Find %s", path)
        return await self.probe.is_file(path)

    async def _is_dir(self, path: str) -> bool:
        logger.debug("Find %s", path)
        return await self.probe.is_dir(path)

    async def _exists(self, path: str) -> bool:
        logger.debug("Find %s", path)
        return await self.probe.exists(path)

    async def resolve(
        self,
        path: str,
        url_path: str,
        dynamic: bool = False,
        query_string: str = "",
        raw_path: str | None = None,
    ) -> Resolution:
        """Resolve ``path`` to a Resolution.

        Args:
            path: Root-joined, normalized, contained filesystem path. A
                trailing separator mirrors a trailing "/" in the URL.
            url_path: URL path (query stripped), used for the redirect
                location and the final-segment check.
            dynamic: True if the URL matches the dynamic pattern.
            query_string: Preserved on redirects.
            raw_path: Still-encoded request path, reused as the redirect
                location. When missing, ``url_path`` is percent-encoded.

        Returns:
            Resolution for the request.
        """
        bare = path.rstrip(os.sep) or os.sep

        if await self._is_file(bare) and not path.endswith(os.sep):
            if dynamic and self._has_dynamic_extension(bare):
                return Resolution.dynamic(bare)
            return Resolution.static(bare)

        if await self._is_dir(bare):
            return await self._resolve_directory(bare, url_path, query_string, raw_path)

        return await self._resolve_missing(bare, url_path, dynamic)

    def _has_dynamic_extension(self, path: str) -> bool:
        ext = self.config.dynamic_extension
        return ext is not None and path.endswith(ext)

    async def _resolve_directory(
        self, path: str, url_path: str, query_string: str, raw_path: str | None
    ) -> Resolution:
        config = self.config

        if config.default_page:
            index = os.path.join(path, config.default_page)
            if await self._exists(index):
                if url_path.endswith("/"):
                    return Resolution.static(index)
                location = (raw_path or quote(url_path)) + "/"
                if query_string:
                    location += "?" + query_string
                return Resolution.redirect(location)

        if config.default_extension and path != config.root:
            candidate = path + config.default_extension
            if await self._is_file(candidate):
                return Resolution.static(candidate)

        if config.spa_page:
            spa = os.path.join(path, config.spa_page)
            if await self._is_file(spa):
                return Resolution.static(spa)

        return Resolution.not_found()

    async def _resolve_missing(self, path: str, url_path: str, dynamic: bool) -> Resolution:
        config = self.config

        segment = url_path.rstrip("/").rsplit("/", 1)[-1]
        if "." in segment:
            return Resolution.not_found()

        if dynamic and config.dynamic_extension:
            candidate = path + config.dynamic_extension
            if await self._is_file(candidate):
                return Resolution.dynamic(candidate)

        if config.default_extension:
            candidate = path + config.default_extension
            if await self._is_file(candidate):
                return Resolution.static(candidate)

        if config.spa_page:
            ancestor = await self._nearest_directory(os.path.dirname(path))
            if ancestor is not None:
                spa = os.path.join(ancestor, config.spa_page)
                if await self._is_file(spa):
                    return Resolution.static(spa)

        if config.default_page:
            index = os.path.join(path, config.default_page)
            if await self._exists(index):
                return Resolution.static(index)

        return Resolution.not_found()

    async def _nearest_directory(self, path: str) -> str | None:
        """Walk up from ``path`` to the nearest existing directory, never above root."""
        root = self.config.root
        while is_within(path, root):
            if await self._is_dir(path):
                return path
            if path == root:
                break
            parent = os.path.dirname(path)
            if parent == path:
                break
            path = parent
        return None
