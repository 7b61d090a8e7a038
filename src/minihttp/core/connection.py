"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the small API the pipeline needs:
a buffered reader for parsing, write helpers, and a close that happens
exactly once.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:                    Server might receive:
        "GET /index.html HTTP/1.1"       recv() → "GET /ind"
        "\r\nHost: x\r\n\r\n"            recv() → "ex.html HTTP/1.1\r\nHo"
                                         recv() → "st: x\r\n\r\n"

TCP only guarantees bytes arrive IN ORDER and INTACT, not in the chunks
they were sent in. So the parser never touches recv() directly: it reads
lines from `socket.makefile("rb")`, a buffered reader that does the
reassembly for us.

=============================================================================
ONE REQUEST PER CONNECTION
=============================================================================

There is no keep-alive. Every connection lives through exactly one
exchange and is then closed:

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSED
     │         │             │                        ▲
     └─────────┴─────────────┴────────────────────────┘
                 (any failure goes straight to close)

Every response we write says "Connection: close", and the proxy asks
upstreams for the same.

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"                # Just accepted
    READING = "reading"        # Parsing the request head
    PROCESSING = "processing"  # Handler is running
    WRITING = "writing"        # Response bytes going out
    CLOSED = "closed"          # Socket released


@dataclass
class Connection:
    """
    One accepted client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BUFFERED READING    reader → socket.makefile("rb")              │
    │  2. TIMEOUTS            every recv/send bounded by `timeout`         │
    │  3. WRITE ACCOUNTING    bytes_sent, response_status (access log)     │
    │  4. CLOSE EXACTLY ONCE  second close() is a no-op                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Owned by exactly one handler thread; never shared, never reused.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    drain_timeout: float = 0.5

    # Filled in as the response goes out
    bytes_sent: int = 0
    response_status: Optional[int] = None

    _reader: Optional[BinaryIO] = field(default=None, repr=False)

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def client_port(self) -> int:
        return self.address[1] if self.address else 0

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def response_started(self) -> bool:
        """True once any response byte was written (no more error responses)."""
        return self.bytes_sent > 0

    @property
    def reader(self) -> BinaryIO:
        """
        Buffered binary reader over the socket.

        Created on first use. Reads obey the socket timeout and raise
        socket.timeout when it expires.
        """
        if self._reader is None:
            self._reader = self.socket.makefile("rb", buffering=self.buffer_size)
        return self._reader

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> None:
        """
        Send all of `data`.

        sendall() loops until every byte is written; plain send() may stop
        short when the kernel buffer is full.

        Raises:
            OSError: Client went away or the write timed out.
        """
        self.state = ConnectionState.WRITING
        self.socket.sendall(data)
        self.bytes_sent += len(data)

    def send_quietly(self, data: bytes) -> bool:
        """
        Send all of `data`, reporting failure instead of raising.

        Returns:
            True if every byte was written.
        """
        try:
            self.send(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def send_file(self, file: BinaryIO, count: Optional[int] = None) -> int:
        """
        Stream an open binary file to the client.

        socket.sendfile() uses os.sendfile() where available (the kernel
        copies file pages straight to the socket) and falls back to a
        read/send loop elsewhere.

        Returns:
            Number of bytes sent.

        Raises:
            OSError: Client went away or the write timed out.
        """
        self.state = ConnectionState.WRITING
        sent = self.socket.sendfile(file, count=count)
        self.bytes_sent += sent
        return sent

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Safe to call more than once.

        Sequence:
            1. shutdown(SHUT_WR)   send FIN, the client sees EOF
            2. drain briefly       unread request bytes left in the kernel
                                   buffer would turn our FIN into an RST
                                   and could destroy the response in flight
            3. close()             release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(self.drain_timeout)
            deadline = time.monotonic() + self.drain_timeout
            while time.monotonic() < deadline and self.socket.recv(4096):
                pass
        except OSError:
            pass  # Includes socket.timeout; we're closing anyway

        if self._reader is not None:
            try:
                self._reader.close()
            except OSError:
                pass

        try:
            self.socket.close()
        except OSError:
            pass

        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s, {self.bytes_sent} bytes sent")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
