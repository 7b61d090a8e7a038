"""
=============================================================================
MINIHTTP - A Static File Server and a Forwarding Proxy on Raw Sockets
=============================================================================

Two small programs sharing one connection-handling pipeline:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   minihttp-server PORT     GET serves files, POST stores them        │
    │   minihttp-proxy  PORT     GET forwarded to the origin, relayed back │
    │                                                                      │
    │   Both:  one thread per connection, at most 10 at a time             │
    │          one request per connection, always Connection: close        │
    │          plain-text error responses "<code> <reason>"                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    minihttp/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry points
    ├── server.py            # ConnectionPipeline, Server, factories
    ├── config.py            # ServerConfig dataclass
    ├── errors.py            # HTTPError taxonomy
    ├── logging.py           # setup_logging, access log
    ├── core/
    │   ├── socket_server.py # Accept loop, thread per connection
    │   ├── gate.py          # Concurrency gate (counting semaphore)
    │   └── connection.py    # Connection wrapper
    ├── http/
    │   ├── request.py       # Request parser and body streams
    │   ├── response.py      # Response building, error responder
    │   ├── dispatcher.py    # Method → handler table
    │   ├── status_codes.py  # HTTPStatus
    │   └── mime_types.py    # Servable extensions
    └── handlers/
        ├── static.py        # File GET/POST
        └── proxy.py         # Proxy forwarder

=============================================================================
QUICK START
=============================================================================

    from minihttp import ServerConfig, create_file_server

    server = create_file_server(ServerConfig(port=8080, root_dir="./public"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import ConnectionPipeline, Server, create_file_server, create_proxy

__all__ = [
    "ServerConfig",
    "Server",
    "ConnectionPipeline",
    "create_file_server",
    "create_proxy",
    "__version__",
]
