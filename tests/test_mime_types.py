# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Tests for TypeRegistry."""

import pytest

from genro_serve import DEFAULT_TYPES, TypeRegistry


class TestTypeRegistry:
    @pytest.mark.parametrize(
        ("extension", "expected"),
        [
            ("html", "text/html"),
            (".css", "text/css"),
            ("JS", "text/javascript"),
            (".woff2", "font/woff2"),
            ("svg", "image/svg+xml"),
        ],
    )
    def test_defaults(self, extension: str, expected: str) -> None:
        assert TypeRegistry().lookup(extension) == expected

    def test_unknown(self) -> None:
        registry = TypeRegistry()
        assert registry.lookup("qqq") is None
        assert registry.lookup("") is None
        assert "qqq" not in registry

    def test_overrides(self) -> None:
        registry = TypeRegistry({".TXT": "text/x-custom", "qqq": "application/x-qqq"})
        assert registry.lookup("txt") == "text/x-custom"
        assert registry.lookup(".qqq") == "application/x-qqq"
        assert len(registry) == len(DEFAULT_TYPES) + 1

    def test_read_only(self) -> None:
        registry = TypeRegistry()
        with pytest.raises(TypeError):
            registry.types["qqq"] = "x"  # type: ignore[index]

    def test_custom_defaults(self) -> None:
        registry = TypeRegistry(defaults={"a": "text/a"})
        assert list(registry) == ["a"]
        assert repr(registry) == "TypeRegistry(1 types)"
