"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from minihttp import Server, ServerConfig, create_file_server, create_proxy
from minihttp.core.connection import Connection


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/index.html?page=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"hello, world"
    return (
        b"POST /uploads/note.txt HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: text/plain\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
    ) + body


@pytest.fixture
def config(tmp_path) -> ServerConfig:
    """Test configuration: loopback, ephemeral port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        timeout=5.0,
        connect_timeout=2.0,
        upstream_timeout=5.0,
        root_dir=str(tmp_path),
        log_level="WARNING",
    )


@pytest.fixture
def connection_pair() -> Generator[Tuple[Connection, socket.socket], None, None]:
    """A Connection wrapping one end of a socketpair, plus the peer socket."""
    server_sock, client_sock = socket.socketpair()
    conn = Connection(socket=server_sock, address=("127.0.0.1", 50000), timeout=5.0, drain_timeout=0.05)
    client_sock.settimeout(5.0)

    yield conn, client_sock

    conn.close()
    client_sock.close()


def read_all(sock: socket.socket) -> bytes:
    """Read until the peer closes."""
    chunks = []
    while True:
        data = sock.recv(65536)
        if not data:
            return b"".join(chunks)
        chunks.append(data)


class RunningServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: Server):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self) -> "RunningServer":
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def exchange(self, raw: bytes, timeout: float = 5.0) -> bytes:
        """Send raw request bytes, return everything until the server closes."""
        with socket.create_connection(self.address, timeout=timeout) as sock:
            sock.sendall(raw)
            return read_all(sock)


class FixedResponseUpstream:
    """
    Origin server stand-in: reads one request head (plus a Content-Length
    body), records it, answers with fixed bytes and closes.
    """

    def __init__(self, response: bytes):
        self.response = response
        self.requests: List[bytes] = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind(("127.0.0.1", 0))
        self._sock.listen(16)
        self._sock.settimeout(0.2)
        self._running = True
        self._thread = threading.Thread(target=self._serve, daemon=True)

    @property
    def port(self) -> int:
        return self._sock.getsockname()[1]

    @property
    def authority(self) -> str:
        return f"127.0.0.1:{self.port}"

    def start(self) -> "FixedResponseUpstream":
        self._thread.start()
        return self

    def stop(self):
        self._running = False
        self._thread.join(timeout=5.0)
        self._sock.close()

    def _serve(self):
        while self._running:
            try:
                client, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=self._answer, args=(client,), daemon=True).start()

    def _answer(self, client: socket.socket):
        with client:
            client.settimeout(5.0)
            data = b""
            while b"\r\n\r\n" not in data:
                chunk = client.recv(4096)
                if not chunk:
                    break
                data += chunk
            head, _, body = data.partition(b"\r\n\r\n")
            for line in head.split(b"\r\n")[1:]:
                name, _, value = line.partition(b":")
                if name.strip().lower() == b"content-length":
                    length = int(value.strip())
                    while len(body) < length:
                        chunk = client.recv(4096)
                        if not chunk:
                            break
                        body += chunk
            self.requests.append(head + b"\r\n\r\n" + body)
            client.sendall(self.response)


@pytest.fixture
def file_server(config) -> Generator[RunningServer, None, None]:
    """File server rooted at tmp_path, on an ephemeral port."""
    running = RunningServer(create_file_server(config)).start()
    yield running
    running.stop()


@pytest.fixture
def proxy_server(config) -> Generator[RunningServer, None, None]:
    """Proxy on an ephemeral port."""
    running = RunningServer(create_proxy(config)).start()
    yield running
    running.stop()


UPSTREAM_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Type: text/plain\r\n"
    b"Content-Length: 14\r\n"
    b"X-Upstream: yes\r\n"
    b"\r\n"
    b"from upstream\n"
)


@pytest.fixture
def upstream() -> Generator[FixedResponseUpstream, None, None]:
    """Origin server answering every request with UPSTREAM_RESPONSE."""
    server = FixedResponseUpstream(UPSTREAM_RESPONSE).start()
    yield server
    server.stop()


@pytest.fixture
def make_server(config) -> Generator[Callable[..., RunningServer], None, None]:
    """Factory for servers with custom dispatchers; all are stopped at teardown."""
    started: List[RunningServer] = []

    def factory(dispatcher, **overrides) -> RunningServer:
        cfg = ServerConfig(**{**config.__dict__, **overrides})
        running = RunningServer(Server(cfg, dispatcher)).start()
        started.append(running)
        return running

    yield factory

    for running in started:
        running.stop()
