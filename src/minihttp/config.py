"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for both programs (file server and proxy).

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── minihttp-server 8080 --root ./public                      │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── MINIHTTP_ROOT=./public minihttp-server 8080               │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The port has no environment fallback on the command line: it is the one
required positional argument of both programs.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the file server and the proxy.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK        host, port, backlog, buffer_size
    DEADLINES      timeout, connect_timeout, upstream_timeout
    ADMISSION      max_connections
    PARSING        max_line_size, max_header_size, max_body_size
    FILES          root_dir
    LOGGING        log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. All interfaces by default, matching a
    listener started as ":<port>".
    """

    port: int = 8080
    """
    The port number to listen on. 0 asks the OS for a free port (tests).
    """

    backlog: int = 128
    """
    Kernel accept queue length. While every concurrency slot is busy,
    new clients wait here.
    """

    buffer_size: int = 8192
    """
    Read buffer and copy chunk size in bytes.
    """

    # ─────────────────────────────────────────────────────────────────────
    # DEADLINES
    # ─────────────────────────────────────────────────────────────────────

    timeout: Optional[float] = 30.0
    """
    Client socket timeout in seconds, applied to every read and write.
    None = block forever (a slow client then holds a slot forever).
    """

    connect_timeout: float = 10.0
    """
    Proxy: seconds allowed for the upstream TCP connect.
    """

    upstream_timeout: Optional[float] = 30.0
    """
    Proxy: seconds allowed for each upstream read or write.
    """

    # ─────────────────────────────────────────────────────────────────────
    # ADMISSION CONTROL
    # ─────────────────────────────────────────────────────────────────────

    max_connections: int = 10
    """
    Connections handled at once. The accept loop stalls when all are
    busy. 0 disables the gate (unbounded threads).
    """

    # ─────────────────────────────────────────────────────────────────────
    # PARSING LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_line_size: int = 8192
    max_header_size: int = 64 * 1024
    max_body_size: Optional[int] = None
    """
    Largest accepted request body; None = unlimited (bodies are streamed,
    never held in memory).
    """

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    root_dir: str = "."
    """
    File server: directory URL paths are resolved against.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """
    Access log format: 'text' (Apache-like) or 'json'.
    """

    @property
    def gated(self) -> bool:
        return self.max_connections > 0

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        MINIHTTP_HOST               Bind address (default: 0.0.0.0)
        MINIHTTP_PORT               Port (default: 8080)
        MINIHTTP_ROOT               File server root (default: .)
        MINIHTTP_MAX_CONNECTIONS    Concurrency cap (default: 10, 0 = off)
        MINIHTTP_TIMEOUT            Client socket timeout (default: 30)
        MINIHTTP_CONNECT_TIMEOUT    Upstream connect timeout (default: 10)
        MINIHTTP_UPSTREAM_TIMEOUT   Upstream read/write timeout (default: 30)
        MINIHTTP_LOG_LEVEL          Logging level (default: INFO)
        MINIHTTP_LOG_FORMAT         text | json (default: text)

        =====================================================================

        Keyword arguments override the environment (used by the CLI);
        None values are ignored.
        """
        values = dict(
            host=os.getenv("MINIHTTP_HOST", cls.host),
            port=int(os.getenv("MINIHTTP_PORT", str(cls.port))),
            root_dir=os.getenv("MINIHTTP_ROOT", cls.root_dir),
            max_connections=int(os.getenv("MINIHTTP_MAX_CONNECTIONS", str(cls.max_connections))),
            timeout=float(os.getenv("MINIHTTP_TIMEOUT", str(cls.timeout))),
            connect_timeout=float(os.getenv("MINIHTTP_CONNECT_TIMEOUT", str(cls.connect_timeout))),
            upstream_timeout=float(os.getenv("MINIHTTP_UPSTREAM_TIMEOUT", str(cls.upstream_timeout))),
            log_level=os.getenv("MINIHTTP_LOG_LEVEL", cls.log_level),
            log_format=os.getenv("MINIHTTP_LOG_FORMAT", cls.log_format),
        )
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at startup so a bad value fails before the socket is bound,
        not on the first request.

        Raises:
            ValueError: Describing the first invalid field.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")
        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.max_connections < 0:
            raise ValueError("max_connections must be >= 0")
        for name in ("timeout", "upstream_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if self.max_body_size is not None and self.max_body_size < 0:
            raise ValueError("max_body_size must be >= 0")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}")
