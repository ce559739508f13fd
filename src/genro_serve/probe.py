# Copyright 2025 Softwell S.r.l.
# Licensed under the Apache License, Version 2.0

"""
Filesystem probe - async, non-blocking file system queries.

Purpose
=======
Path resolution asks many "does this exist?" questions per request. Each one
is a blocking syscall; FileProbe runs them on a thread pool so the event loop
keeps serving other connections. The resolver and the emitter only talk to
the FileProbe interface, which makes them testable with an in-memory double.

Definition::

    class FileProbe(ABC):
        async def exists(self, path: str) -> bool
        async def is_file(self, path: str) -> bool
        async def is_dir(self, path: str) -> bool
        async def stat(self, path: str) -> os.stat_result
        def open_read(self, path: str, chunk_size: int) -> AsyncGenerator[bytes, None]
        async def run(self, func, *args) -> Any
        def shutdown(self, wait: bool = True) -> None

    class LocalFileProbe(FileProbe):
        def __init__(self, max_workers: int | None = None, bypass: bool = False)

Bypass Mode::

    # For testing - queries run inline on the loop thread
    probe = LocalFileProbe(bypass=True)

    # Set GENRO_SERVE_PROBE_BYPASS=1 to bypass every LocalFileProbe

Design Notes
============
- Probe errors other than "not found" propagate: a permission error on stat
  is a server error, not a missing file.
- File content is streamed with aiofiles, which uses its own executor.
"""

from __future__ import annotations

import asyncio
import os
import stat as stat_module
from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable

import aiofiles

__all__ = ["FileProbe", "LocalFileProbe"]


class FileProbe(ABC):
    """Abstract async filesystem interface used by resolver and emitter."""

    __slots__ = ()

    @abstractmethod
    async def stat(self, path: str) -> os.stat_result:
        """Return stat for ``path``. Raises FileNotFoundError if missing."""

    @abstractmethod
    def open_read(self, path: str, chunk_size: int) -> AsyncGenerator[bytes, None]:
        """Yield the content of ``path`` in chunks of at most ``chunk_size``."""

    @abstractmethod
    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run a blocking callable off the event loop."""

    async def _mode(self, path: str) -> int | None:
        try:
            return (await self.stat(path)).st_mode
        except (FileNotFoundError, NotADirectoryError):
            return None

    async def exists(self, path: str) -> bool:
        return await self._mode(path) is not None

    async def is_file(self, path: str) -> bool:
        mode = await self._mode(path)
        return mode is not None and stat_module.S_ISREG(mode)

    async def is_dir(self, path: str) -> bool:
        mode = await self._mode(path)
        return mode is not None and stat_module.S_ISDIR(mode)

    def shutdown(self, wait: bool = True) -> None:  # noqa: B027
        """Release resources. Default: nothing to release."""


class LocalFileProbe(FileProbe):
    """
    FileProbe backed by the local filesystem and a thread pool.

    Attributes:
        pool: The ThreadPoolExecutor, or None in bypass mode.

    Example:
        >>> probe = LocalFileProbe(max_workers=8)
        >>> await probe.is_file("/srv/www/index.html")
        True
    """

    __slots__ = ("pool",)

    def __init__(self, max_workers: int | None = None, bypass: bool = False) -> None:
        """
        Initialize LocalFileProbe.

        Args:
            max_workers: Pool threads (default: ThreadPoolExecutor default).
            bypass: If True, run synchronously without pool (for testing).
        """
        env_bypass = os.environ.get("GENRO_SERVE_PROBE_BYPASS") == "1"
        if bypass or env_bypass:
            self.pool: ThreadPoolExecutor | None = None
        else:
            self.pool = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="genro-serve-probe"
            )

    async def run(self, func: Callable[..., Any], *args: Any) -> Any:
        if self.pool is None:
            return func(*args)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.pool, partial(func, *args))

    async def stat(self, path: str) -> os.stat_result:
        result: os.stat_result = await self.run(os.stat, path)
        return result

    async def open_read(self, path: str, chunk_size: int) -> AsyncGenerator[bytes, None]:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def shutdown(self, wait: bool = True) -> None:
        """
        Shutdown the thread pool.

        Args:
            wait: If True, wait for pending queries to complete.
        """
        if self.pool is not None:
            self.pool.shutdown(wait=wait)

    def __repr__(self) -> str:
        mode = "bypass" if self.pool is None else "thread"
        return f"LocalFileProbe(mode={mode})"
