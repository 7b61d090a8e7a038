"""
=============================================================================
CONNECTION ACCEPTOR
=============================================================================

Owns the listening socket and turns every accepted client into one
handler thread, never running more handler threads than the gate allows.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create the listening socket
    2. bind()      Reserve IP:PORT            ── failure here is FATAL
    3. listen()    Kernel starts queueing connections (backlog)
    4. accept()    Returns a NEW socket per client ── failure here is NOT
    5. close()     Release the listening socket at shutdown

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Thread 1  │         │ Thread 2  │   ...   │ Thread N  │   N ≤ capacity
    │ (conn 1)  │         │ (conn 2)  │         │ (conn N)  │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
ADMISSION CONTROL
=============================================================================

The acceptor takes a gate slot before it starts the thread for the client
it just accepted. When all slots are busy the loop sits in acquire(), and
later clients queue in the kernel backlog until a handler finishes:

    accept() ─► acquire slot ─► Thread(_run) ─► accept() ─► acquire slot ...
                    ▲                │
                    │                └── finally: conn.close(); release slot
                    └── blocks while capacity handlers are running

Acquire and accept both poll once a second so shutdown() is noticed.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:  rebind immediately after a restart (no TIME_WAIT wait).
TCP_NODELAY:   disable Nagle; our responses are small and latency matters.

SO_REUSEPORT is deliberately not set: two processes silently sharing a
port would break the "bind failure is fatal" contract.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection
from .gate import ConcurrencyGate


logger = logging.getLogger(__name__)


# How often blocking waits wake up to check for shutdown
POLL_INTERVAL = 1.0


class SocketServer:
    """
    TCP accept loop with a thread per connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)                                                    │
    │        ├──► _create_socket()   SO_REUSEADDR, TCP_NODELAY, timeout    │
    │        ├──► bind()             OSError → logged and re-raised        │
    │        ├──► listen()                                                 │
    │        ├──► _setup_signals()   main thread only                      │
    │        └──► _accept_loop()     blocks until shutdown()               │
    │                 └──► accept → Connection → gate → Thread(_run)       │
    │                                                                      │
    │    _run(conn)                  one per client, on its own thread     │
    │        └──► handler(conn), then ALWAYS close + release               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle(conn: Connection):
            ...

        server = SocketServer(config, gate=ConcurrencyGate(10))
        server.start(handle)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig, gate: Optional[ConcurrencyGate] = None):
        """
        Args:
            config: host, port, backlog, buffer_size, timeout.
            gate: Concurrency limit; None runs ungated.

        The socket is not created here; start() does that.
        """
        self.config = config
        self.gate = gate

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        self._running = False
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()

        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (IP, port).

        After start() this is the real address, so a config port of 0
        reports the port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to check self._running
        sock.settimeout(POLL_INTERVAL)

        return sock

    def _setup_signals(self):
        """
        Install SIGTERM/SIGINT handlers that call shutdown().

        signal.signal() only works on the main thread; servers started on
        a background thread (tests, embedding) skip this and are stopped
        with shutdown() instead.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept until shutdown() is called.

        This method BLOCKS.

        Args:
            connection_handler: Called once per client on the client's own
                                thread. The connection is closed and its
                                gate slot released after it returns or
                                raises; the handler does not need to.

        Raises:
            OSError: The address could not be bound. Nothing was accepted.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self._bound_address
        logger.info(f"Server listening on {host}:{port}")
        self._ready_event.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Main loop for accepting connections.

        An accept() error is logged and the loop keeps going: one failed
        accept (EMFILE, ECONNABORTED) must not take the server down.
        """
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                logger.error(f"Accept error: {e}")
                # Brief pause so a persistent error (e.g. out of fds) doesn't spin
                self._shutdown_event.wait(0.1)
                continue

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
            )

            if not self._admit(conn):
                conn.close()
                break

            self._spawn(conn, connection_handler)

    def _admit(self, conn: Connection) -> bool:
        """
        Take a gate slot for `conn`, waiting as long as it takes.

        Returns:
            False only if the server is shutting down.
        """
        if self.gate is None:
            return True

        while self._running:
            if self.gate.acquire(timeout=POLL_INTERVAL):
                return True
            logger.debug(f"[{conn.id}] Waiting for a free slot ({self.gate.in_flight} in flight)")
        return False

    def _spawn(self, conn: Connection, connection_handler: Callable[[Connection], None]):
        thread = threading.Thread(
            target=self._run,
            args=(conn, connection_handler),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError as e:
            # Thread never ran, so its finally never will either
            logger.error(f"[{conn.id}] Could not start handler thread: {e}")
            conn.close()
            if self.gate is not None:
                self.gate.release()

    def _run(self, conn: Connection, connection_handler: Callable[[Connection], None]):
        try:
            connection_handler(conn)
        except Exception:
            logger.exception(f"[{conn.id}] Unhandled error in connection handler")
        finally:
            conn.close()
            if self.gate is not None:
                self.gate.release()

    def shutdown(self):
        """
        Stop accepting. Safe to call more than once, from any thread.

        Handler threads already running are left to finish on their own.
        """
        if self._running:
            logger.info("Shutting down socket server...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._ready_event.clear()
        logger.info("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the socket is listening.

        Returns:
            True once ready, False on timeout.
        """
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
