# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Tests for ServeConfig, load_config and find_config_file."""

from __future__ import annotations

from pathlib import Path

import pytest

from genro_serve.config import (
    ConfigError,
    ServeConfig,
    find_config_file,
    load_config,
    validate_keys,
)


@pytest.fixture
def root(tmp_path: Path) -> Path:
    public = tmp_path / "public"
    public.mkdir()
    return public


class TestDefaults:
    def test_defaults(self, root: Path) -> None:
        config = ServeConfig(root=str(root))
        assert config.root == str(root.resolve())
        assert config.host == "127.0.0.1"
        assert config.port == 8080
        assert config.default_page == "index.html"
        assert config.default_extension == ".html"
        assert config.spa_page == "200.html"
        assert config.fallback_page == "404.html"
        assert config.forbidden_pattern is None
        assert config.strict_forbidden is False
        assert config.dynamic_pattern is None
        assert config.dynamic_extension == ".py"
        assert config.cache is True
        assert config.compression is True
        assert config.encodings == ("br", "gzip", "deflate")
        assert config.chunk_size == 65536
        assert config.max_workers is None
        assert config.middleware == {}

    def test_patterns_compiled(self, root: Path) -> None:
        config = ServeConfig(root=str(root), forbidden_pattern="/secret/", dynamic_pattern="^/api/")
        assert config.forbidden_pattern is not None
        assert config.forbidden_pattern.search("/secret/file.txt")
        assert config.dynamic_pattern is not None
        assert config.dynamic_pattern.pattern == "^/api/"

    def test_types_override(self, root: Path) -> None:
        config = ServeConfig(root=str(root), types={".qqq": "application/x-qqq"})
        assert config.types.lookup("qqq") == "application/x-qqq"
        assert config.types.lookup("html") == "text/html"

    def test_immutable(self, root: Path) -> None:
        config = ServeConfig(root=str(root))
        with pytest.raises(AttributeError):
            config.port = 9000  # type: ignore[misc]

    @pytest.mark.parametrize("value", [None, False, "", "off", "none", "OFF"])
    def test_optional_strings_disabled(self, root: Path, value: object) -> None:
        config = ServeConfig(root=str(root), spa_page=value, default_extension=value)
        assert config.spa_page is None
        assert config.default_extension is None

    @pytest.mark.parametrize(
        ("value", "expected"), [("false", False), ("on", True), (0, False), (True, True)]
    )
    def test_booleans(self, root: Path, value: object, expected: bool) -> None:
        assert ServeConfig(root=str(root), cache=value).cache is expected

    def test_encodings_canonical_order(self, root: Path) -> None:
        config = ServeConfig(root=str(root), encodings="gzip, br")
        assert config.encodings == ("br", "gzip")

    def test_integers_from_strings(self, root: Path) -> None:
        config = ServeConfig(root=str(root), port="9000", chunk_size="1024", max_workers="4")
        assert (config.port, config.chunk_size, config.max_workers) == (9000, 1024, 4)


class TestValidation:
    def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Root directory"):
            ServeConfig(root=str(tmp_path / "nope"))

    def test_root_is_a_file(self, tmp_path: Path) -> None:
        (tmp_path / "file").write_text("x")
        with pytest.raises(ConfigError):
            ServeConfig(root=str(tmp_path / "file"))

    def test_invalid_regex(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="forbidden_pattern"):
            ServeConfig(root=str(root), forbidden_pattern="([unclosed")

    def test_unknown_option(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="Unknown option"):
            ServeConfig(root=str(root), colour="blue")

    @pytest.mark.parametrize("option", ["default_extension", "dynamic_extension"])
    def test_extension_needs_dot(self, root: Path, option: str) -> None:
        with pytest.raises(ConfigError, match=option):
            ServeConfig(root=str(root), **{option: "html"})

    def test_page_must_be_file_name(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="default_page"):
            ServeConfig(root=str(root), default_page="sub/index.html")

    def test_fallback_outside_root(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="Fallback"):
            ServeConfig(root=str(root), fallback_page="../404.html")

    def test_unsupported_encoding(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="zstd"):
            ServeConfig(root=str(root), encodings="br,zstd")

    @pytest.mark.parametrize("port", [-1, 70000, "http"])
    def test_bad_port(self, root: Path, port: object) -> None:
        with pytest.raises(ConfigError):
            ServeConfig(root=str(root), port=port)

    def test_bad_chunk_size(self, root: Path) -> None:
        with pytest.raises(ConfigError, match="chunk_size"):
            ServeConfig(root=str(root), chunk_size=0)


class TestLoadConfig:
    def test_toml(self, tmp_path: Path, root: Path) -> None:
        path = tmp_path / "genro-serve.toml"
        path.write_text(
            '[serve]\nroot = "public"\nport = 9001\nspaPage = false\n'
            'forbiddenPattern = "^/private/"\n\n'
            '[types]\nqqq = "application/x-qqq"\n\n'
            '[middleware]\nlogging = "off"\n'
        )
        config = ServeConfig.load(config_file=path, env={})
        assert config.root == str(root.resolve())
        assert config.port == 9001
        assert config.spa_page is None
        assert config.forbidden_pattern is not None
        assert config.types.lookup("qqq") == "application/x-qqq"
        assert config.middleware == {"logging": "off"}

    def test_yaml(self, tmp_path: Path, root: Path) -> None:
        path = tmp_path / "genro-serve.yaml"
        path.write_text("serve:\n  root: public\n  defaultExtension: .htm\n  cache: false\n")
        config = ServeConfig.load(config_file=path, env={})
        assert config.default_extension == ".htm"
        assert config.cache is False

    def test_underscore_keys_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('[serve]\ndefault_page = "home.html"\n')
        with pytest.raises(ConfigError, match="underscore"):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[serve\n")
        with pytest.raises(ConfigError, match="Failed to parse"):
            load_config(path)

    def test_env_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SITE_PAGE", "home.html")
        monkeypatch.delenv("SPA", raising=False)
        path = tmp_path / "config.toml"
        path.write_text('[serve]\ndefaultPage = "${SITE_PAGE}"\nspaPage = "${SPA:-app.html}"\n')
        data = load_config(path)
        assert data["serve"] == {"defaultPage": "home.html", "spaPage": "app.html"}

    def test_env_expansion_required(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GENRO_SERVE_UNSET", raising=False)
        path = tmp_path / "config.toml"
        path.write_text('[serve]\nroot = "${GENRO_SERVE_UNSET}"\n')
        with pytest.raises(ConfigError, match="GENRO_SERVE_UNSET"):
            load_config(path)

    def test_validate_keys_nested(self) -> None:
        with pytest.raises(ConfigError, match="serve.inner.bad_key"):
            validate_keys({"serve": {"inner": {"bad_key": 1}}})


class TestLayering:
    def test_env_overrides_file_and_kwargs_override_env(self, tmp_path: Path, root: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('[serve]\nroot = "public"\nport = 9001\nspaPage = "app.html"\n')
        env = {"GENRO_SERVE_PORT": "9002", "GENRO_SERVE_SPA_PAGE": "env.html"}

        config = ServeConfig.load(config_file=path, env=env)
        assert config.port == 9002
        assert config.spa_page == "env.html"

        config = ServeConfig.load(config_file=path, env=env, port=9003, spa_page=None)
        assert config.port == 9003
        assert config.spa_page == "env.html"

    def test_kwargs_only(self, root: Path) -> None:
        config = ServeConfig.load(env={}, root=str(root), cache=False)
        assert config.cache is False


class TestFindConfigFile:
    def test_not_found(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GENRO_SERVE_CONFIG", raising=False)
        assert find_config_file() is None

    def test_cwd_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GENRO_SERVE_CONFIG", raising=False)
        (tmp_path / "genro-serve.yaml").write_text("serve: {}\n")
        found = find_config_file()
        assert found is not None
        assert found.name == "genro-serve.yaml"

    def test_env_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.chdir(tmp_path)
        (tmp_path / "genro-serve.toml").write_text("")
        custom = tmp_path / "custom.toml"
        custom.write_text("")
        monkeypatch.setenv("GENRO_SERVE_CONFIG", str(custom))
        assert find_config_file() == custom
