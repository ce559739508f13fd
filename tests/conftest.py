# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: ASGI capture, in-memory probe and a sample site."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from asgi_helpers import MemoryFileProbe, MockSend, Receiver, make_scope

from genro_serve import LocalFileProbe, ServeConfig, ServeServer


# =============================================================================
# Fixtures
# =============================================================================

HANDLER_SOURCE = '''
async def handle(request, response, helpers):
    await response.send_json({"created": True, "path": request.path})
'''


@pytest.fixture
def send() -> MockSend:
    """Create a mock send callable."""
    return MockSend()


@pytest.fixture
def receive() -> Receiver:
    return Receiver()


@pytest.fixture
def memory_probe() -> Callable[..., MemoryFileProbe]:
    """Factory for MemoryFileProbe."""
    return MemoryFileProbe


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """Sample site::

        foo.html  200.html  style.css  big.txt
        bar/index.html
        secret/file.txt
        api/create.py
        docs/guide.html
    """
    root = tmp_path / "site"
    root.mkdir()
    (root / "foo.html").write_text("<h1>foo</h1>")
    (root / "200.html").write_text("<h1>spa</h1>")
    (root / "style.css").write_text("body { color: red; }")
    (root / "big.txt").write_text("genro-serve compresses text. " * 500)
    (root / "bar").mkdir()
    (root / "bar" / "index.html").write_text("<h1>bar</h1>")
    (root / "secret").mkdir()
    (root / "secret" / "file.txt").write_text("top secret")
    (root / "api").mkdir()
    (root / "api" / "create.py").write_text(HANDLER_SOURCE)
    (root / "docs").mkdir()
    (root / "docs" / "guide.html").write_text("<h1>guide</h1>")
    return root


@pytest.fixture
def config(site: Path) -> ServeConfig:
    return ServeConfig(root=str(site), forbidden_pattern="/secret/", dynamic_pattern="^/api/")


@pytest.fixture
def server(config: ServeConfig) -> Iterator[ServeServer]:
    server = ServeServer(config, probe=LocalFileProbe(bypass=True))
    yield server
    server.handlers.unload_all()


@pytest.fixture
def call(
    receive: Receiver,
) -> Callable[..., Awaitable[MockSend]]:
    """``await call(app, "/path", method=..., headers=..., query_string=...)``."""

    async def _call(app: Any, path: str, **kwargs: Any) -> MockSend:
        send = MockSend()
        await app(make_scope(path, **kwargs), receive, send)
        return send

    return _call
