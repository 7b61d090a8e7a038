"""
=============================================================================
CONNECTION PIPELINE AND SERVER
=============================================================================

Both programs are the same machine with a different method table:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      PER-CONNECTION PIPELINE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──(gate slot)──► ConnectionPipeline.handle(conn)      │
    │                                     │                                │
    │                                     ├──► RequestParser               │
    │                                     │      BENIGN    → close, silent │
    │                                     │      MALFORMED → 400           │
    │                                     │      SUCCESS   ↓               │
    │                                     ├──► MethodDispatcher            │
    │                                     │      unknown method → 501      │
    │                                     │      GET/POST → handler        │
    │                                     │                                │
    │                                     ├──► HTTPError raised?           │
    │                                     │      → error responder         │
    │                                     │        (unless a response      │
    │                                     │         already started)       │
    │                                     │                                │
    │                                     └──► one access log record       │
    │                                                                      │
    │   SocketServer then closes the connection and releases the slot.     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────┬──────────────────────────────┬────────────────────────┐
    │ Program     │ GET                          │ POST                   │
    ├─────────────┼──────────────────────────────┼────────────────────────┤
    │ file server │ StaticFileHandler.handle_get │ .handle_post           │
    │ proxy       │ ProxyForwarder.handle        │ 501                    │
    └─────────────┴──────────────────────────────┴────────────────────────┘

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import ServerConfig
from .core import ConcurrencyGate, Connection, ConnectionState, SocketServer
from .errors import HTTPError
from .handlers import ProxyForwarder, StaticFileHandler
from .http.dispatcher import MethodDispatcher
from .http.request import ParseResult, RequestParser
from .http.response import send_error
from .http.status_codes import HTTPStatus
from .logging import AccessLog, AccessLogger


logger = logging.getLogger(__name__)


class ConnectionPipeline:
    """
    Handles exactly one request on one connection.

    Never raises: every failure ends as an error response, a log line, or
    both. Closing the connection is the caller's job (SocketServer does it
    in a finally).
    """

    def __init__(
        self,
        parser: RequestParser,
        dispatcher: MethodDispatcher,
        access_logger: Optional[AccessLogger] = None,
    ):
        self.parser = parser
        self.dispatcher = dispatcher
        self.access_logger = access_logger or AccessLogger()

    def handle(self, conn: Connection) -> None:
        logger.debug(f"[{conn.id}] Handling new connection: {conn.client_ip}:{conn.client_port}")

        conn.state = ConnectionState.READING
        outcome = self.parser.read_request(conn.reader, conn.address)

        if outcome.kind is ParseResult.BENIGN:
            logger.debug(f"[{conn.id}] Client went away: {outcome.reason}")
            self.access_logger.log(AccessLog.from_connection(conn, outcome="benign"))
            return

        if outcome.kind is ParseResult.MALFORMED:
            logger.info(f"[{conn.id}] Failed to parse request: {outcome.reason}")
            send_error(conn, HTTPStatus.BAD_REQUEST)
            self.access_logger.log(AccessLog.from_connection(conn, outcome="malformed"))
            return

        request = outcome.request
        conn.state = ConnectionState.PROCESSING
        result = "success"
        try:
            self.dispatcher.dispatch(request, conn)
        except HTTPError as e:
            result = "error"
            self._respond_with_error(conn, e.status, e.reason, str(e))
        except Exception:
            result = "error"
            logger.exception(f"[{conn.id}] Handler error for {request.method} {request.target}")
            self._respond_with_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR, None, "unexpected error")
        finally:
            self.access_logger.log(AccessLog.from_connection(conn, request, outcome=result))

    __call__ = handle

    @staticmethod
    def _respond_with_error(conn: Connection, status: HTTPStatus, reason: Optional[str], detail: str):
        if conn.response_started:
            # A head is already out; a second one would corrupt the stream
            logger.warning(f"[{conn.id}] {int(status)} after response started ({detail}); closing")
            return
        send_error(conn, status, reason)


class Server:
    """
    One listening program: acceptor + gate + pipeline.

    Usage:
        server = create_file_server(ServerConfig(port=8080, root_dir="./public"))
        server.run()   # Blocks until SIGINT/SIGTERM or shutdown()

    Owns its listening socket and its gate; nothing is module-global, so
    tests can run several servers in one process.
    """

    def __init__(self, config: ServerConfig, dispatcher: MethodDispatcher, name: str = "Server"):
        self.config = config
        self.config.validate()
        self.name = name

        self.gate = ConcurrencyGate(config.max_connections) if config.gated else None
        self.pipeline = ConnectionPipeline(
            parser=RequestParser(
                max_line_size=config.max_line_size,
                max_header_size=config.max_header_size,
                max_body_size=config.max_body_size,
            ),
            dispatcher=dispatcher,
            access_logger=AccessLogger(config.log_format),
        )
        self._socket_server = SocketServer(config, gate=self.gate)

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def run(self) -> None:
        """
        Bind and serve until shutdown.

        Raises:
            OSError: The port could not be bound.
        """
        limit = self.config.max_connections or "unlimited"
        logger.info(
            f"{self.name} will start on {self.config.host}:{self.config.port} "
            f"(max connections: {limit}, methods: {', '.join(self.pipeline.dispatcher.methods)})"
        )
        self._socket_server.start(self.pipeline.handle)
        logger.info(f"{self.name} stopped")

    def shutdown(self) -> None:
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)


# =============================================================================
# FACTORIES
# =============================================================================

def create_file_server(config: Optional[ServerConfig] = None) -> Server:
    """File server: GET serves from root_dir, POST stores into it."""
    config = config or ServerConfig()
    files = StaticFileHandler(config.root_dir, buffer_size=config.buffer_size)
    dispatcher = (MethodDispatcher()
        .register("GET", files.handle_get)
        .register("POST", files.handle_post))
    return Server(config, dispatcher, name="File server")


def create_proxy(config: Optional[ServerConfig] = None) -> Server:
    """Forwarding proxy: GET only."""
    config = config or ServerConfig()
    forwarder = ProxyForwarder(
        connect_timeout=config.connect_timeout,
        upstream_timeout=config.upstream_timeout,
        buffer_size=config.buffer_size,
    )
    dispatcher = MethodDispatcher().register("GET", forwarder.handle)
    return Server(config, dispatcher, name="Proxy")
