# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""Small helpers shared by config and middleware.

Exports:
    split_and_strip: Split comma-separated string and strip whitespace.
    parse_enabled: Parse on/off/true/false value to bool.
    is_within: Check that a path lies inside a root directory.
    status_phrase: HTTP reason phrase for a status code.
"""

from __future__ import annotations

import os
from http import HTTPStatus
from typing import Any

__all__ = ["is_within", "parse_enabled", "split_and_strip", "status_phrase"]


def split_and_strip(
    value: str | list[str] | tuple[str, ...] | None, default: list[str] | None = None
) -> list[str]:
    """Split comma-separated string and strip whitespace from each item.

    If value is already a list, returns a copy. If None, returns default.

    Examples:
        split_and_strip("br, gzip")  # ["br", "gzip"]
        split_and_strip(["x", "y"])  # ["x", "y"]
        split_and_strip(None, ["default"])  # ["default"]
    """
    if value is None:
        return default if default is not None else []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",")]
    return [str(v).strip() for v in value]


def parse_enabled(value: Any) -> bool:
    """Parse on/off/true/false value to bool."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("on", "true", "yes", "1")
    return bool(value)


def is_within(path: str, root: str) -> bool:
    """True if normalized ``path`` is ``root`` itself or below it."""
    path = path.rstrip(os.sep) or os.sep
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def status_phrase(status: int) -> str:
    """Reason phrase for ``status`` ("" for non-standard codes)."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""
