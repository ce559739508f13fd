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
genro-serve - static-asset ASGI server.

Resolves request paths to files (or dynamic handlers) through layered
fallbacks: default pages, default extensions, SPA routing and a final error
page. Files are streamed with content-type detection, ETag revalidation and
br/gzip/deflate negotiation.

Example::

    from genro_serve import ServeServer

    server = ServeServer(root="./public")
    server.run()

Or from the command line::

    genro-serve ./public --port 8080
"""

__version__ = "0.1.0"

from .config import ConfigError, ServeConfig, find_config_file, load_config
from .datastructures import Headers
from .dispatcher import Dispatcher
from .emitter import ResponseEmitter
from .exceptions import (
    HandlerError,
    HTTPBadRequest,
    HTTPException,
    HTTPForbidden,
    HTTPMethodNotAllowed,
    HTTPNotFound,
    Redirect,
    TransportError,
)
from .handlers import HandlerHelpers, HandlerLoader, HandlerRegistry
from .lifespan import ServerLifespan
from .mime_types import DEFAULT_TYPES, TypeRegistry
from .probe import FileProbe, LocalFileProbe
from .request import ServeRequest
from .resolver import PathResolver, Resolution, ResolutionKind
from .response import ResponseWriter
from .server import ServeServer

__all__ = [
    "__version__",
    "ConfigError",
    "DEFAULT_TYPES",
    "Dispatcher",
    "FileProbe",
    "HandlerError",
    "HandlerHelpers",
    "HandlerLoader",
    "HandlerRegistry",
    "Headers",
    "HTTPBadRequest",
    "HTTPException",
    "HTTPForbidden",
    "HTTPMethodNotAllowed",
    "HTTPNotFound",
    "LocalFileProbe",
    "PathResolver",
    "Redirect",
    "Resolution",
    "ResolutionKind",
    "ResponseEmitter",
    "ResponseWriter",
    "ServeConfig",
    "ServeRequest",
    "ServeServer",
    "ServerLifespan",
    "TransportError",
    "TypeRegistry",
    "find_config_file",
    "load_config",
]
