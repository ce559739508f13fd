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
Configuration for genro-serve.

ServeConfig is built once per server and never changes afterwards. Options
come from several sources, later ones overriding earlier ones:

    DEFAULTS < config file < GENRO_SERVE_* environment < explicit kwargs

Config file (TOML or YAML). Server options live under ``serve``; keys are
camelCase and CANNOT contain underscore (the underscore spelling is reserved
for Python option names and environment variables)::

    [serve]
    root = "./public"
    port = 8080
    defaultPage = "index.html"
    spaPage = "200.html"
    forbiddenPattern = "^/private/"
    dynamicPattern = "^/api/"
    cache = true

    [types]
    webmanifest = "application/manifest+json"

    [middleware]
    logging = "off"

Values may reference environment variables: ``${VAR}`` (required) or
``${VAR:-default}``. A relative ``root`` in a file is relative to the file.

Optional string options (pages, extensions, patterns) are disabled with
``false``, ``""``, ``"off"`` or ``"none"``.

Validation is eager: a bad regular expression, a missing root directory or
an unknown option raises ConfigError before any request is served.
"""

from __future__ import annotations

import os
import re
import tomllib
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .mime_types import TypeRegistry
from .utils import parse_enabled, split_and_strip

__all__ = [
    "ConfigError",
    "DEFAULTS",
    "ENV_PREFIX",
    "SUPPORTED_ENCODINGS",
    "ServeConfig",
    "find_config_file",
    "load_config",
    "validate_keys",
]

ENV_PREFIX = "GENRO_SERVE_"

# Preference order is fixed: the first encoding both accepted and enabled wins.
SUPPORTED_ENCODINGS: tuple[str, ...] = ("br", "gzip", "deflate")

DEFAULTS: Mapping[str, Any] = MappingProxyType({
    "root": ".",
    "host": "127.0.0.1",
    "port": 8080,
    "default_page": "index.html",
    "default_extension": ".html",
    "spa_page": "200.html",
    "fallback_page": "404.html",
    "forbidden_pattern": None,
    "strict_forbidden": False,
    "dynamic_pattern": None,
    "dynamic_extension": ".py",
    "dynamic_autoload": True,
    "cache": True,
    "compression": True,
    "encodings": SUPPORTED_ENCODINGS,
    "chunk_size": 64 * 1024,
    "max_workers": None,
})

_OPTIONAL_STRINGS = frozenset({
    "default_page",
    "default_extension",
    "spa_page",
    "fallback_page",
    "forbidden_pattern",
    "dynamic_pattern",
    "dynamic_extension",
})
_BOOLEANS = frozenset({"strict_forbidden", "dynamic_autoload", "cache", "compression"})
_INTEGERS = frozenset({"port", "chunk_size", "max_workers"})
_DISABLED = frozenset({"", "off", "none", "false", "no", "0"})


class ConfigError(Exception):
    """Configuration error."""


def validate_keys(data: Any, path: str = "") -> None:
    """
    Validate that no keys contain underscore.

    Args:
        data: Configuration data (dict, list, or value).
        path: Current path for error messages.

    Raises:
        ConfigError: If a key contains underscore.
    """
    if isinstance(data, dict):
        for key, value in data.items():
            full_path = f"{path}.{key}" if path else str(key)
            if "_" in str(key):
                raise ConfigError(
                    f"Invalid key '{full_path}': underscore (_) is not allowed in keys. "
                    f"Use camelCase instead (e.g. defaultPage)."
                )
            validate_keys(value, full_path)
    elif isinstance(data, list):
        for i, item in enumerate(data):
            validate_keys(item, f"{path}[{i}]")


def load_config(path: str | Path) -> dict[str, Any]:
    """
    Load configuration from a TOML or YAML file.

    Args:
        path: Path to a ``.toml``, ``.yaml`` or ``.yml`` file.

    Returns:
        Parsed configuration dict with environment variables expanded.

    Raises:
        ConfigError: If file not found, unparsable, or keys contain underscore.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        if path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        else:
            with open(path, "rb") as f:
                config = tomllib.load(f)
    except (tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse {path.name}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Configuration root must be a mapping: {path}")

    validate_keys(config)
    return dict(_expand_env_vars(config))


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-default} in string values."""
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _expand_string(obj)
    return obj


def _expand_string(s: str) -> str:
    """
    Expand environment variables in a string.

    Raises:
        ConfigError: If a required variable is not set.
    """
    pattern = r"\$\{([^}]+)\}"

    def replace(match: re.Match[str]) -> str:
        expr = match.group(1)
        if ":-" in expr:
            var_name, default = expr.split(":-", 1)
            return os.environ.get(var_name, default)
        value = os.environ.get(expr)
        if value is None:
            raise ConfigError(f"Required environment variable not set: {expr}")
        return value

    return re.sub(pattern, replace, s)


def find_config_file() -> Path | None:
    """
    Find a configuration file in standard locations.

    Searches:
    1. GENRO_SERVE_CONFIG environment variable
    2. ./genro-serve.toml
    3. ./genro-serve.yaml
    4. ./config.toml

    Returns:
        Path to config file or None if not found.
    """
    env_config = os.environ.get("GENRO_SERVE_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return path

    for name in ("genro-serve.toml", "genro-serve.yaml", "config.toml"):
        path = Path.cwd() / name
        if path.exists():
            return path

    return None


def _camel_to_snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _options_from_file(data: Mapping[str, Any], base_dir: Path) -> dict[str, Any]:
    """Translate a parsed config file into ServeConfig keyword options."""
    options: dict[str, Any] = {}
    serve = data.get("serve") or {}
    if not isinstance(serve, dict):
        raise ConfigError("'serve' section must be a table")
    for key, value in serve.items():
        options[_camel_to_snake(key)] = value

    root = options.get("root")
    if isinstance(root, str) and not os.path.isabs(root):
        options["root"] = str(base_dir / root)

    if data.get("types"):
        options["types"] = dict(data["types"])
    if data.get("middleware"):
        options["middleware"] = dict(data["middleware"])
    return options


def _options_from_env(env: Mapping[str, str]) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for name in DEFAULTS:
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in env:
            options[name] = env[env_key]
    return options


class ServeConfig:
    """
    Immutable server configuration.

    Every option has a read-only property. Patterns are compiled and the
    type map is built at construction; the instance is then shared by all
    requests without locking.

    Attributes:
        root: Absolute root directory (no trailing separator).
        types: TypeRegistry with defaults and configured overrides.
        forbidden_pattern: Compiled pattern or None.
        dynamic_pattern: Compiled pattern or None.

    Example:
        >>> config = ServeConfig(root="./public", spa_page=None)
        >>> config = ServeConfig.load(config_file="genro-serve.toml", port=9000)
    """

    __slots__ = ("_opts", "_types", "_middleware", "_forbidden", "_dynamic")

    def __init__(self, **options: Any) -> None:
        types = options.pop("types", None) or {}
        middleware = options.pop("middleware", None) or {}

        unknown = set(options) - set(DEFAULTS)
        if unknown:
            raise ConfigError(f"Unknown option(s): {', '.join(sorted(unknown))}")

        opts = dict(DEFAULTS)
        for name, value in options.items():
            opts[name] = self._coerce(name, value)

        opts["root"] = self._validate_root(opts["root"])
        self._validate(opts)

        if not isinstance(types, Mapping):
            raise ConfigError("'types' must be a mapping of extension to MIME type")
        if not isinstance(middleware, Mapping):
            raise ConfigError("'middleware' must be a mapping of name to on/off")

        object.__setattr__(self, "_opts", MappingProxyType(opts))
        object.__setattr__(self, "_types", TypeRegistry({str(k): str(v) for k, v in types.items()}))
        object.__setattr__(self, "_middleware", MappingProxyType(dict(middleware)))
        object.__setattr__(self, "_forbidden", self._compile("forbidden_pattern", opts))
        object.__setattr__(self, "_dynamic", self._compile("dynamic_pattern", opts))

    @classmethod
    def load(
        cls,
        config_file: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ServeConfig:
        """Build a config from file, environment and explicit overrides.

        Args:
            config_file: TOML/YAML file. None means no file (use
                ``find_config_file()`` explicitly to search for one).
            env: Environment mapping (default: ``os.environ``).
            **overrides: Explicit options; None values are ignored.

        Raises:
            ConfigError: On any invalid source or value.
        """
        options: dict[str, Any] = {}
        if config_file is not None:
            path = Path(config_file).resolve()
            options.update(_options_from_file(load_config(path), path.parent))
        options.update(_options_from_env(os.environ if env is None else env))
        options.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**options)

    def _coerce(self, name: str, value: Any) -> Any:
        if name in _OPTIONAL_STRINGS:
            if value is None or value is False:
                return None
            text = str(value).strip()
            return None if text.lower() in _DISABLED else text
        if name in _BOOLEANS:
            return parse_enabled(value)
        if name in _INTEGERS:
            if value is None or value == "":
                if name == "max_workers":
                    return None
                raise ConfigError(f"Option '{name}' requires an integer")
            try:
                return int(value)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Option '{name}' must be an integer, got {value!r}") from e
        if name == "encodings":
            names = [n.lower() for n in split_and_strip(value) if n]
            unsupported = set(names) - set(SUPPORTED_ENCODINGS)
            if unsupported:
                raise ConfigError(f"Unsupported encoding(s): {', '.join(sorted(unsupported))}")
            return tuple(enc for enc in SUPPORTED_ENCODINGS if enc in names)
        return value

    def _validate_root(self, root: Any) -> str:
        if not root:
            raise ConfigError("Option 'root' is required")
        resolved = Path(str(root)).expanduser().resolve()
        if not resolved.is_dir():
            raise ConfigError(f"Root directory does not exist: {resolved}")
        return str(resolved)

    def _validate(self, opts: dict[str, Any]) -> None:
        for name in ("default_extension", "dynamic_extension"):
            ext = opts[name]
            if ext is not None and (not ext.startswith(".") or len(ext) < 2):
                raise ConfigError(f"Option '{name}' must start with '.', got {ext!r}")
        for name in ("default_page", "spa_page"):
            page = opts[name]
            if page is not None and ("/" in page or os.sep in page):
                raise ConfigError(f"Option '{name}' must be a file name, got {page!r}")
        fallback = opts["fallback_page"]
        if fallback is not None:
            target = os.path.normpath(os.path.join(opts["root"], fallback.lstrip("/")))
            if target != opts["root"] and not target.startswith(opts["root"] + os.sep):
                raise ConfigError(f"Fallback page must be inside root: {fallback!r}")
        if not 0 <= opts["port"] <= 65535:
            raise ConfigError(f"Port out of range: {opts['port']}")
        if opts["chunk_size"] <= 0:
            raise ConfigError("Option 'chunk_size' must be positive")
        if opts["max_workers"] is not None and opts["max_workers"] <= 0:
            raise ConfigError("Option 'max_workers' must be positive")

    @staticmethod
    def _compile(name: str, opts: Mapping[str, Any]) -> re.Pattern[str] | None:
        pattern = opts[name]
        if pattern is None:
            return None
        try:
            return re.compile(pattern)
        except re.error as e:
            raise ConfigError(f"Invalid regular expression for '{name}': {e}") from e

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def root(self) -> str:
        """Absolute root directory."""
        result: str = self._opts["root"]
        return result

    @property
    def host(self) -> str:
        return str(self._opts["host"])

    @property
    def port(self) -> int:
        return int(self._opts["port"])

    @property
    def default_page(self) -> str | None:
        return self._opts["default_page"]

    @property
    def default_extension(self) -> str | None:
        return self._opts["default_extension"]

    @property
    def spa_page(self) -> str | None:
        return self._opts["spa_page"]

    @property
    def fallback_page(self) -> str | None:
        return self._opts["fallback_page"]

    @property
    def forbidden_pattern(self) -> re.Pattern[str] | None:
        return self._forbidden

    @property
    def strict_forbidden(self) -> bool:
        return bool(self._opts["strict_forbidden"])

    @property
    def dynamic_pattern(self) -> re.Pattern[str] | None:
        return self._dynamic

    @property
    def dynamic_extension(self) -> str | None:
        return self._opts["dynamic_extension"]

    @property
    def dynamic_autoload(self) -> bool:
        return bool(self._opts["dynamic_autoload"])

    @property
    def cache(self) -> bool:
        return bool(self._opts["cache"])

    @property
    def compression(self) -> bool:
        return bool(self._opts["compression"])

    @property
    def encodings(self) -> tuple[str, ...]:
        """Server-enabled encodings in preference order."""
        result: tuple[str, ...] = self._opts["encodings"]
        return result

    @property
    def chunk_size(self) -> int:
        return int(self._opts["chunk_size"])

    @property
    def max_workers(self) -> int | None:
        return self._opts["max_workers"]

    @property
    def types(self) -> TypeRegistry:
        return self._types

    @property
    def middleware(self) -> dict[str, Any]:
        """Middleware on/off configuration."""
        return dict(self._middleware)

    def as_dict(self) -> dict[str, Any]:
        """Plain dict of the scalar options (patterns as source strings)."""
        return dict(self._opts)

    def __repr__(self) -> str:
        return f"ServeConfig(root={self.root!r}, port={self.port})"


if __name__ == "__main__":
    import argparse
    import json
    import sys

    parser = argparse.ArgumentParser(description="Load and validate config")
    parser.add_argument("config", nargs="?", help="Config file path")
    args = parser.parse_args()

    config_path = Path(args.config) if args.config else find_config_file()
    try:
        config = ServeConfig.load(config_file=config_path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(json.dumps(config.as_dict(), indent=2, default=str))
