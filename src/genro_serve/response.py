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
ResponseWriter - streaming HTTP response channel over ASGI send.

The writer tracks whether the response is committed (headers sent) and
finished (final body message sent). The dispatcher relies on this to decide
between answering 500 and simply closing a response whose headers are
already on the wire.

Lifecycle
=========
::

    response.set_header("content-type", "text/html")
    await response.start(200)          # http.response.start, committed
    await response.write(b"<html>")    # http.response.body, more_body=True
    await response.end()               # http.response.body, more_body=False

Shortcuts
=========
send_empty(status, headers)
    Start and end with an empty body.

send_text(text, status, media_type)
    Encoded UTF-8 body with Content-Length.

send_json(data, status)
    Body serialized with orjson, ``application/json``.

Disconnect
==========
``wait_disconnect()`` completes when the client goes away (``http.disconnect``
on receive). The emitter races it against file streaming.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import orjson

from .types import Receive, Send

__all__ = ["ResponseWriter"]

# Type alias for headers input
HeadersInput = Mapping[str, str] | list[tuple[str, str]] | None


def _normalize_headers(headers: HeadersInput) -> list[tuple[str, str]]:
    """Normalize headers input to list of tuples. Empty list if None."""
    if headers is None:
        return []
    if isinstance(headers, list):
        return list(headers)
    return list(headers.items())


class ResponseWriter:
    """
    Response channel with committed-state tracking.

    Attributes:
        started: True once ``http.response.start`` was sent.
        finished: True once the final body message was sent.
        status_code: Status sent (None until started).

    Example:
        >>> response = ResponseWriter(send, receive)
        >>> await response.send_text("Hello", status=200)
        >>> response.started, response.finished
        (True, True)
    """

    __slots__ = ("_send", "_receive", "_headers", "started", "finished", "status_code")

    def __init__(self, send: Send, receive: Receive | None = None) -> None:
        self._send = send
        self._receive = receive
        self._headers: list[tuple[str, str]] = []
        self.started = False
        self.finished = False
        self.status_code: int | None = None

    @property
    def headers(self) -> list[tuple[str, str]]:
        """Pending headers (copy)."""
        return list(self._headers)

    def set_header(self, name: str, value: str) -> None:
        """Set a header before start, replacing any value with the same name."""
        if self.started:
            raise RuntimeError("Cannot set headers after the response has started")
        name = name.lower()
        self._headers = [(n, v) for n, v in self._headers if n != name]
        self._headers.append((name, value))

    def clear_headers(self) -> None:
        """Drop pending headers before start."""
        if self.started:
            raise RuntimeError("Cannot clear headers after the response has started")
        self._headers = []

    def _build_headers(self) -> list[tuple[bytes, bytes]]:
        """
        Build headers list for ASGI.

        Header names are lowercased and encoded as latin-1 (HTTP standard).
        """
        return [
            (name.lower().encode("latin-1"), value.encode("latin-1"))
            for name, value in self._headers
        ]

    async def start(self, status: int = 200, headers: HeadersInput = None) -> None:
        """Send status and headers. The response is committed afterwards."""
        if self.started:
            raise RuntimeError("Response already started")
        for name, value in _normalize_headers(headers):
            self.set_header(name, value)
        # encoding errors leave the response uncommitted
        raw_headers = self._build_headers()
        self.started = True
        self.status_code = status
        await self._send(
            {
                "type": "http.response.start",
                "status": status,
                "headers": raw_headers,
            }
        )

    async def write(self, chunk: bytes) -> None:
        """Send a body chunk; empty chunks are skipped."""
        if not self.started:
            raise RuntimeError("Response not started")
        if self.finished:
            raise RuntimeError("Response already finished")
        if chunk:
            await self._send({"type": "http.response.body", "body": chunk, "more_body": True})

    async def end(self, chunk: bytes = b"") -> None:
        """Send the final body message."""
        if not self.started:
            raise RuntimeError("Response not started")
        if self.finished:
            raise RuntimeError("Response already finished")
        self.finished = True
        await self._send({"type": "http.response.body", "body": chunk, "more_body": False})

    async def send_empty(self, status: int, headers: HeadersInput = None) -> None:
        await self.start(status, headers)
        await self.end()

    async def send_text(
        self, text: str, status: int = 200, media_type: str = "text/plain; charset=utf-8"
    ) -> None:
        body = text.encode("utf-8")
        await self.start(
            status,
            [("content-type", media_type), ("content-length", str(len(body)))],
        )
        await self.end(body)

    async def send_json(self, data: Any, status: int = 200) -> None:
        body = orjson.dumps(data)
        await self.start(
            status,
            [("content-type", "application/json"), ("content-length", str(len(body)))],
        )
        await self.end(body)

    async def wait_disconnect(self) -> None:
        """Return when the client disconnects. Never returns without receive."""
        if self._receive is None:
            await asyncio.Event().wait()
            return
        while True:
            message = await self._receive()
            if message.get("type") == "http.disconnect":
                return

    def __repr__(self) -> str:
        state = "finished" if self.finished else "started" if self.started else "pending"
        return f"ResponseWriter(status={self.status_code}, {state})"
