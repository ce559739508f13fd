# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""End-to-end dispatch tests over a temporary site."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest
from asgi_helpers import MemoryFileProbe, MockSend

from genro_serve import (
    Dispatcher,
    HandlerRegistry,
    LocalFileProbe,
    PathResolver,
    ResponseEmitter,
    ServeConfig,
    ServeServer,
)

Call = Callable[..., Awaitable[MockSend]]


def make_server(site: Path, **options: Any) -> ServeServer:
    config = ServeConfig(root=str(site), **options)
    return ServeServer(config, probe=LocalFileProbe(bypass=True))


class TestSecurity:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    async def test_method_not_allowed_without_filesystem_access(
        self, config: ServeConfig, call: Call, method: str
    ) -> None:
        probe = MemoryFileProbe({os.path.join(config.root, "foo.html"): b"foo"})
        dispatcher = Dispatcher(
            config, probe, PathResolver(config, probe), ResponseEmitter(config, probe)
        )
        send = await call(dispatcher, "/foo.html", method=method)
        assert send.status == 405
        assert send.header("allow") == "GET, HEAD"
        assert send.body == b""
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_forbidden_pattern(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/secret/file.txt")
        assert send.status == 403
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_forbidden_regardless_of_existence(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/secret/missing.txt")
        assert send.status == 403

    @pytest.mark.asyncio
    async def test_path_traversal(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/../outside.txt")
        assert send.status == 403

    @pytest.mark.asyncio
    async def test_deep_traversal(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/bar/../../../etc/passwd")
        assert send.status == 403

    @pytest.mark.asyncio
    async def test_inner_dotdot_stays_inside(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/bar/../foo.html")
        assert send.status == 200
        assert send.body == b"<h1>foo</h1>"

    @pytest.mark.asyncio
    async def test_nul_byte(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/foo\x00.html")
        assert send.status == 400

    @pytest.mark.asyncio
    async def test_strict_forbidden_checks_resolved_path(self, site: Path, call: Call) -> None:
        (site / "private.html").write_text("private")
        relaxed = make_server(site, forbidden_pattern=r"\.html$")
        assert (await call(relaxed, "/private")).status == 200

        strict = make_server(site, forbidden_pattern=r"\.html$", strict_forbidden=True)
        assert (await call(strict, "/private")).status == 403


class TestStaticScenarios:
    @pytest.mark.asyncio
    async def test_default_extension(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/foo")
        assert send.status == 200
        assert send.body == b"<h1>foo</h1>"
        assert send.header("content-type") == "text/html"

    @pytest.mark.asyncio
    async def test_directory_redirect(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/bar")
        assert send.status == 302
        assert send.header("location") == "/bar/"
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_directory_redirect_keeps_query(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/bar", query_string="page=2")
        assert send.header("location") == "/bar/?page=2"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("name", "location"),
        [
            ("\u65e5\u672c", "/%E6%97%A5%E6%9C%AC/"),
            ("caf\u00e9", "/caf%C3%A9/"),
            ("my dir", "/my%20dir/"),
        ],
    )
    async def test_directory_redirect_encodes_location(
        self, site: Path, call: Call, name: str, location: str
    ) -> None:
        (site / name).mkdir()
        (site / name / "index.html").write_text("<h1>x</h1>")
        send = await call(make_server(site), "/" + name, query_string="a=1")
        assert send.status == 302
        assert send.header("location") == location + "?a=1"
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_directory_redirect_reuses_raw_path(self, site: Path, call: Call) -> None:
        (site / "\u65e5\u672c").mkdir()
        (site / "\u65e5\u672c" / "index.html").write_text("<h1>x</h1>")
        send = await call(make_server(site), "/\u65e5\u672c", raw_path=b"/%e6%97%a5%e6%9c%ac")
        assert send.status == 302
        assert send.header("location") == "/%e6%97%a5%e6%9c%ac/"

    @pytest.mark.asyncio
    async def test_directory_index(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/bar/")
        assert send.status == 200
        assert send.body == b"<h1>bar</h1>"

    @pytest.mark.asyncio
    async def test_spa_route(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/nonexistent/route")
        assert send.status == 200
        assert send.body == b"<h1>spa</h1>"

    @pytest.mark.asyncio
    async def test_spa_for_root(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/")
        assert send.status == 200
        assert send.body == b"<h1>spa</h1>"

    @pytest.mark.asyncio
    async def test_head(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/foo.html", method="HEAD")
        assert send.status == 200
        assert send.body == b""


class TestNotFound:
    @pytest.mark.asyncio
    async def test_empty_404_without_fallback(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/missing.css")
        assert send.status == 404
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_empty_404_when_nothing_resolves(self, site: Path, call: Call) -> None:
        server = make_server(site, spa_page=None)
        send = await call(server, "/not/found")
        assert send.status == 404
        assert send.body == b""

    @pytest.mark.asyncio
    async def test_fallback_page(self, site: Path, call: Call) -> None:
        (site / "404.html").write_text("<h1>not found</h1>")
        server = make_server(site)
        send = await call(server, "/missing.css")
        assert send.status == 404
        assert send.body == b"<h1>not found</h1>"
        assert send.header("content-type") == "text/html"

    @pytest.mark.asyncio
    async def test_fallback_page_ignores_if_none_match(self, site: Path, call: Call) -> None:
        (site / "404.html").write_text("<h1>not found</h1>")
        server = make_server(site)
        first = await call(server, "/missing.css")
        etag = first.header("etag")
        assert etag

        second = await call(server, "/missing.css", headers={"if-none-match": etag})
        assert second.status == 404
        assert second.body == b"<h1>not found</h1>"
        assert second.header("etag") == etag

    @pytest.mark.asyncio
    async def test_fallback_page_disabled(self, site: Path, call: Call) -> None:
        (site / "404.html").write_text("<h1>not found</h1>")
        server = make_server(site, fallback_page=None)
        send = await call(server, "/missing.css")
        assert send.status == 404
        assert send.body == b""


class TestDynamic:
    @pytest.mark.asyncio
    async def test_handler_invoked(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/api/create")
        assert send.status == 200
        assert send.header("content-type") == "application/json"
        assert send.body == b'{"created":true,"path":"/api/create"}'

    @pytest.mark.asyncio
    async def test_handler_source_never_served(self, server: ServeServer, call: Call) -> None:
        send = await call(server, "/api/create.py")
        assert send.status == 200
        assert b"async def" not in send.body

    @pytest.mark.asyncio
    async def test_not_dynamic_without_pattern(self, site: Path, call: Call) -> None:
        server = make_server(site)
        send = await call(server, "/api/create")
        assert send.status == 404

    @pytest.mark.asyncio
    async def test_registered_sync_handler(self, site: Path, call: Call) -> None:
        config = ServeConfig(root=str(site), dynamic_pattern="^/api/")
        registry = HandlerRegistry(autoload=False)
        calls: list[str] = []

        def create(request: Any, response: Any, helpers: Any) -> Any:
            calls.append(request.path)
            return response.send_text("sync ok")

        registry.register(os.path.join(config.root, "api", "create.py"), create)
        server = ServeServer(config, probe=LocalFileProbe(bypass=True), handlers=registry)
        send = await call(server, "/api/create")
        assert calls == ["/api/create"]
        assert send.body == b"sync ok"

    @pytest.mark.asyncio
    async def test_handler_emit_file(self, site: Path, call: Call) -> None:
        (site / "api" / "page.py").write_text(
            "async def handle(request, response, helpers):\n"
            "    await helpers.emit_file('foo.html')\n"
        )
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/page")
        assert send.status == 200
        assert send.body == b"<h1>foo</h1>"
        server.handlers.unload_all()

    @pytest.mark.asyncio
    async def test_handler_error_is_500(self, site: Path, call: Call) -> None:
        (site / "api" / "boom.py").write_text(
            "def handle(request, response, helpers):\n    raise RuntimeError('boom')\n"
        )
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/boom")
        assert send.status == 500
        assert send.body == b""
        server.handlers.unload_all()

    @pytest.mark.asyncio
    async def test_handler_without_response_is_500(self, site: Path, call: Call) -> None:
        (site / "api" / "silent.py").write_text(
            "def handle(request, response, helpers):\n    pass\n"
        )
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/silent")
        assert send.status == 500
        server.handlers.unload_all()

    @pytest.mark.asyncio
    async def test_module_without_handle_is_500(self, site: Path, call: Call) -> None:
        (site / "api" / "empty.py").write_text("VALUE = 1\n")
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/empty")
        assert send.status == 500

    @pytest.mark.asyncio
    async def test_error_after_commit_closes_response(self, site: Path, call: Call) -> None:
        (site / "api" / "half.py").write_text(
            "async def handle(request, response, helpers):\n"
            "    await response.start(200)\n"
            "    await response.write(b'partial')\n"
            "    raise RuntimeError('late')\n"
        )
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/half")
        assert send.status == 200
        assert send.body == b"partial"
        assert send.finished
        assert [m["type"] for m in send.messages].count("http.response.start") == 1
        server.handlers.unload_all()

    @pytest.mark.asyncio
    async def test_unencodable_header_is_500(self, site: Path, call: Call) -> None:
        (site / "api" / "header.py").write_text(
            "async def handle(request, response, helpers):\n"
            "    response.set_header('x-name', '\\u65e5\\u672c')\n"
            "    await response.send_text('never')\n"
        )
        server = make_server(site, dynamic_pattern="^/api/")
        send = await call(server, "/api/header")
        assert send.status == 500
        assert send.body == b""
        assert send.header("x-name") is None
        assert [m["type"] for m in send.messages].count("http.response.start") == 1
        server.handlers.unload_all()


class TestErrors:
    @pytest.mark.asyncio
    async def test_unexpected_probe_error_is_500(
        self, config: ServeConfig, call: Call, caplog: pytest.LogCaptureFixture
    ) -> None:
        class BrokenProbe(MemoryFileProbe):
            async def stat(self, path: str) -> os.stat_result:
                raise PermissionError(path)

        probe = BrokenProbe({})
        dispatcher = Dispatcher(
            config, probe, PathResolver(config, probe), ResponseEmitter(config, probe)
        )
        with caplog.at_level("ERROR", logger="genro_serve.dispatcher"):
            send = await call(dispatcher, "/foo.html")
        assert send.status == 500
        assert send.body == b""
        assert any(r.exc_info for r in caplog.records)
