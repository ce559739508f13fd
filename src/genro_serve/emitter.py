# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Response emitter - streams a resolved file with caching and compression.

Steps, in order:
    1. Content-Type from the TypeRegistry (omitted when unknown).
    2. Encoding negotiation: first of br, gzip, deflate that the client
       accepts and the server enables. ``Vary: Accept-Encoding`` whenever
       compression is on.
    3. ETag: MD5 of the full content, with
       ``Cache-Control: public, max-age=31536000, no-cache``. A matching
       If-None-Match answers 304 with ETag and Cache-Control only, for
       status 200 responses.
    4. Content-Encoding (compressed) or Content-Length (raw), then status and
       headers are sent and the status is logged at INFO.
    5. HEAD ends with an empty body; otherwise the file is streamed through
       the incremental compressor.

Streaming races a disconnect watcher: when the client goes away the file
stream is cancelled and closed. Read errors propagate to the dispatcher.

Config:
    cache (bool): ETag + Cache-Control. Default: True.
    compression (bool): Encoding negotiation. Default: True.
    encodings (tuple): Server-enabled encodings. Default: br, gzip, deflate.
    chunk_size (int): Read size. Default: 65536.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import zlib
from contextlib import aclosing
from typing import TYPE_CHECKING, Protocol

import brotli

from .config import SUPPORTED_ENCODINGS
from .utils import status_phrase

if TYPE_CHECKING:
    from .config import ServeConfig
    from .probe import FileProbe
    from .request import ServeRequest
    from .response import ResponseWriter

__all__ = ["CACHE_CONTROL", "ResponseEmitter", "parse_accept_encoding"]

logger = logging.getLogger("genro_serve.emitter")

CACHE_CONTROL = "public, max-age=31536000, no-cache"


class _Compressor(Protocol):
    def compress(self, data: bytes) -> bytes: ...

    def flush(self) -> bytes: ...


class _BrotliCompressor:
    """Adapts brotli.Compressor to the compress/flush protocol."""

    __slots__ = ("_compressor",)

    def __init__(self) -> None:
        self._compressor = brotli.Compressor()

    def compress(self, data: bytes) -> bytes:
        result: bytes = self._compressor.process(data)
        return result

    def flush(self) -> bytes:
        result: bytes = self._compressor.finish()
        return result


def _make_compressor(encoding: str) -> _Compressor:
    if encoding == "br":
        return _BrotliCompressor()
    if encoding == "gzip":
        return zlib.compressobj(wbits=16 + zlib.MAX_WBITS)
    if encoding == "deflate":
        return zlib.compressobj()
    raise ValueError(f"Unsupported encoding: {encoding}")


def parse_accept_encoding(value: str | None) -> set[str]:
    """Return the codings the client accepts.

    Tokens are lowercased; ``q=0`` refuses a coding. ``*`` is kept as-is.

    Example:
        >>> sorted(parse_accept_encoding("gzip;q=1.0, br;q=0, deflate"))
        ['deflate', 'gzip']
    """
    accepted: set[str] = set()
    if not value:
        return accepted
    for item in value.split(","):
        token, _, params = item.partition(";")
        token = token.strip().lower()
        if not token:
            continue
        quality = 1.0
        for param in params.split(";"):
            key, _, raw = param.partition("=")
            if key.strip().lower() == "q":
                try:
                    quality = float(raw.strip())
                except ValueError:
                    quality = 0.0
        if quality > 0:
            accepted.add(token)
    return accepted


def _etag_matches(if_none_match: str | None, digest: str) -> bool:
    """True if any If-None-Match entry matches ``digest``."""
    if not if_none_match:
        return False
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate.strip('"') == digest:
            return True
    return False


class ResponseEmitter:
    """Response pipeline for static files.

    Stateless between requests; one instance is shared by the dispatcher and
    by handler helpers.

    Attributes:
        config: Server configuration (toggles, encodings, chunk size, types).
        probe: Filesystem probe used to stat and read the file.
    """

    __slots__ = ("config", "probe")

    def __init__(self, config: ServeConfig, probe: FileProbe) -> None:
        self.config = config
        self.probe = probe

    def choose_encoding(self, accept_encoding: str | None) -> str | None:
        """First supported encoding both accepted by the client and enabled."""
        if not self.config.compression:
            return None
        accepted = parse_accept_encoding(accept_encoding)
        for encoding in SUPPORTED_ENCODINGS:
            if encoding in self.config.encodings and encoding in accepted:
                return encoding
        return None

    async def fingerprint(self, path: str) -> str:
        """MD5 hex digest of the full content of ``path``."""
        digest = hashlib.md5()
        async with aclosing(self.probe.open_read(path, self.config.chunk_size)) as chunks:
            async for chunk in chunks:
                digest.update(chunk)
        return digest.hexdigest()

    async def emit(
        self,
        request: ServeRequest,
        response: ResponseWriter,
        path: str,
        status: int = 200,
    ) -> None:
        """Send ``path`` as the response body.

        Args:
            request: Current request (method and headers are consulted).
            response: Uncommitted response writer.
            path: Absolute path of an existing file.
            status: Status to send (404 for the fallback page).
        """
        config = self.config

        # 304 carries ETag and Cache-Control only, so check before other headers.
        # Only a 200 can turn into 304; the fallback page keeps its 404.
        digest: str | None = None
        if config.cache:
            digest = await self.fingerprint(path)
            if status == 200 and _etag_matches(request.headers.get("if-none-match"), digest):
                await self._send_not_modified(response, digest)
                return

        content_type = config.types.lookup(os.path.splitext(path)[1])
        if content_type:
            response.set_header("content-type", content_type)

        encoding = self.choose_encoding(request.headers.get("accept-encoding"))
        if config.compression:
            response.set_header("vary", "Accept-Encoding")

        if digest is not None:
            response.set_header("cache-control", CACHE_CONTROL)
            response.set_header("etag", f'"{digest}"')

        if encoding:
            response.set_header("content-encoding", encoding)
        else:
            size = (await self.probe.stat(path)).st_size
            response.set_header("content-length", str(size))

        await response.start(status)
        self._log_status(status)

        if request.method == "HEAD":
            await response.end()
            return

        await self._stream_until_disconnect(response, path, encoding)

    async def _send_not_modified(self, response: ResponseWriter, digest: str) -> None:
        await response.send_empty(
            304,
            [("etag", f'"{digest}"'), ("cache-control", CACHE_CONTROL)],
        )
        self._log_status(304)

    @staticmethod
    def _log_status(status: int) -> None:
        logger.info("< %s %s", status, status_phrase(status))

    async def _stream_until_disconnect(
        self, response: ResponseWriter, path: str, encoding: str | None
    ) -> None:
        stream = asyncio.ensure_future(self._stream(response, path, encoding))
        watcher = asyncio.ensure_future(response.wait_disconnect())
        try:
            done, _ = await asyncio.wait({stream, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (stream, watcher):
                if not task.done():
                    task.cancel()
            await asyncio.gather(stream, watcher, return_exceptions=True)

        if stream in done:
            # re-raise read errors
            stream.result()
        else:
            logger.debug("Client disconnected while streaming %s", path)

    async def _stream(self, response: ResponseWriter, path: str, encoding: str | None) -> None:
        compressor = _make_compressor(encoding) if encoding else None
        async with aclosing(self.probe.open_read(path, self.config.chunk_size)) as chunks:
            async for chunk in chunks:
                if compressor is not None:
                    chunk = compressor.compress(chunk)
                await response.write(chunk)
        await response.end(compressor.flush() if compressor is not None else b"")
