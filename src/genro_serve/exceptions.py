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
Exception classes for genro-serve.

Error taxonomy
--------------
ClientError (HTTPException and subclasses)
    Disallowed or unresolvable requests: bad method, forbidden URL, path
    traversal, unresolved path. Reported to the client through the status
    code only; the body is always empty.

HandlerError
    A dynamic handler could not be loaded or did not honour its contract.
    Any exception raised *by* a handler is treated the same way: the
    dispatcher converts it to a 500 when the response is not yet committed.

TransportError
    The listener could not bind or accept. This is the only condition that
    stops the server; it is raised from ``ServeServer.start()`` and the
    hosting process decides the exit status.

HTTPException
-------------
Attributes:
    status_code (int): HTTP status code (expected 4xx or 5xx)
    detail (str): Error detail, used for logging only
    headers (list[tuple[str, str]] | None): Extra response headers. Input can
        be dict[str, str] or list[tuple[str, str]], stored as list.

Example:
    >>> raise HTTPForbidden("URL matches forbidden pattern")
    >>> raise HTTPMethodNotAllowed(allow=("GET", "HEAD"))
"""

from __future__ import annotations

__all__ = [
    "HTTPException",
    "HTTPBadRequest",
    "HTTPForbidden",
    "HTTPNotFound",
    "HTTPMethodNotAllowed",
    "Redirect",
    "HandlerError",
    "TransportError",
]


class HTTPException(Exception):
    """
    HTTP exception with status code and detail.

    Raised inside the dispatcher to short-circuit a request. The dispatcher
    catches it and answers with ``status_code`` and an empty body.

    Attributes:
        status_code: HTTP status code (expected 4xx or 5xx, not validated)
        detail: Error detail message (logged, never sent)
        headers: Response headers as list of tuples
    """

    def __init__(
        self,
        status_code: int,
        detail: str = "",
        headers: dict[str, str] | list[tuple[str, str]] | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        if headers is None:
            self.headers: list[tuple[str, str]] | None = None
        elif isinstance(headers, dict):
            self.headers = list(headers.items())
        else:
            self.headers = list(headers)
        super().__init__(detail)

    def __repr__(self) -> str:
        """Return detailed string representation."""
        return f"HTTPException(status_code={self.status_code}, detail={self.detail!r})"


class Redirect(HTTPException):
    """HTTP redirect exception. Raises 302 redirect by default."""

    def __init__(self, url: str, status_code: int = 302) -> None:
        super().__init__(status_code, headers={"Location": url})
        self.url = url

    def __repr__(self) -> str:
        return f"Redirect(url={self.url!r}, status_code={self.status_code})"


class HTTPBadRequest(HTTPException):
    """HTTP 400 Bad Request exception."""

    def __init__(self, detail: str = "Bad request") -> None:
        super().__init__(400, detail=detail)


class HTTPForbidden(HTTPException):
    """HTTP 403 Forbidden exception."""

    def __init__(self, detail: str = "Forbidden") -> None:
        super().__init__(403, detail=detail)


class HTTPNotFound(HTTPException):
    """HTTP 404 Not Found exception."""

    def __init__(self, detail: str = "Not found") -> None:
        super().__init__(404, detail=detail)


class HTTPMethodNotAllowed(HTTPException):
    """HTTP 405 Method Not Allowed, with the Allow header filled in."""

    def __init__(
        self,
        detail: str = "Method not allowed",
        allow: tuple[str, ...] = ("GET", "HEAD"),
    ) -> None:
        super().__init__(405, detail=detail, headers={"Allow": ", ".join(allow)})


class HandlerError(Exception):
    """A dynamic handler could not be loaded or broke its contract."""


class TransportError(Exception):
    """The listener failed to bind or accept connections."""
