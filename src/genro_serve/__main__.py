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
genro-serve CLI entry point.

Usage:
    genro-serve                          # Serve the current directory on :8080
    genro-serve ./public -p 9000         # Serve ./public on :9000
    genro-serve ./public --no-spa -s '^/api/'

Options given on the command line override the config file
(``--config`` or ``find_config_file()``) and GENRO_SERVE_* variables.

Exit status: 0 on normal shutdown, 1 on configuration or listener errors.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    from . import __version__

    parser = argparse.ArgumentParser(
        prog="genro-serve",
        description="Serve static files with SPA routing, caching and compression.",
    )
    parser.add_argument("root", nargs="?", default=None, help="Directory to serve (default: .)")
    parser.add_argument("--config", default=None, help="TOML/YAML config file")
    parser.add_argument("--host", default=None, help="Listen address (default: 127.0.0.1)")
    parser.add_argument("-p", "--port", type=int, default=None, help="Listen port (default: 8080)")

    def optional(flag: str, dest: str, help_text: str) -> None:
        group = parser.add_mutually_exclusive_group()
        group.add_argument(f"--{flag}", dest=dest, default=None, help=help_text)
        group.add_argument(
            f"--no-{flag}", dest=dest, action="store_const", const=False, help=f"Disable {dest}"
        )

    optional("default-page", "default_page", "Directory index file (default: index.html)")
    optional("default-ext", "default_extension", "Extension for bare URLs (default: .html)")
    optional("spa", "spa_page", "SPA fallback page (default: 200.html)")
    optional("fallback-page", "fallback_page", "Page served with 404 (default: 404.html)")

    parser.add_argument(
        "--forbidden", dest="forbidden_pattern", default=None, help="Regex of URLs answered 403"
    )
    parser.add_argument(
        "--strict-forbidden", action="store_const", const=True, default=None,
        help="Also match --forbidden against the resolved path",
    )
    parser.add_argument(
        "-s", "--dynamic", dest="dynamic_pattern", default=None,
        help="Regex of URLs that may run handlers",
    )
    parser.add_argument(
        "--dynamic-ext", dest="dynamic_extension", default=None,
        help="Handler file extension (default: .py)",
    )
    parser.add_argument(
        "--no-cache", dest="cache", action="store_const", const=False, default=None,
        help="Disable ETag and Cache-Control",
    )
    parser.add_argument(
        "--no-zip", dest="compression", action="store_const", const=False, default=None,
        help="Disable compression",
    )
    parser.add_argument(
        "-l", "--log-level", default="info", choices=["debug", "info", "warning", "error"],
        help="Log level (default: info)",
    )
    parser.add_argument("--silent", action="store_true", help="Disable all log output")
    parser.add_argument("--version", action="version", version=f"genro-serve {__version__}")
    return parser


def configure_logging(level: str, silent: bool = False) -> None:
    logging.basicConfig(level=getattr(logging, level.upper()), format=LOG_FORMAT)
    if silent:
        logging.disable(logging.CRITICAL)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    from .config import ConfigError, find_config_file
    from .exceptions import TransportError
    from .server import ServeServer

    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, args.silent)
    logger = logging.getLogger("genro_serve")

    options: dict[str, Any] = {
        key: value
        for key, value in vars(args).items()
        if key not in ("config", "log_level", "silent")
    }
    config_file = args.config or find_config_file()

    try:
        server = ServeServer(config_file=config_file, **options)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 1

    try:
        server.run()
    except TransportError as e:
        logger.error("%s: %s", e, e.__cause__)
        return 1
    except KeyboardInterrupt:
        logger.info("Shutdown.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
