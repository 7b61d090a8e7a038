"""
=============================================================================
PROXY FORWARDER
=============================================================================

Forwards one GET to the origin server named in the request and relays the
origin's response back to the client byte for byte.

=============================================================================
REQUEST FLOW
=============================================================================

    Client                      Proxy                            Origin
      │                           │                                 │
      │ GET http://h:8080/a?q=1   │                                 │
      │ HTTP/1.1                  │                                 │
      │ Proxy-Connection: keep... │                                 │
      │ ────────────────────────► │ 1. resolve target  → h:8080     │
      │                           │ 2. connect ───────────────────► │
      │                           │ 3. rewrite + send               │
      │                           │    GET /a?q=1 HTTP/1.1          │
      │                           │    Host: h:8080                 │
      │                           │    Connection: close            │
      │                           │ ──────────────────────────────► │
      │                           │ 4. relay until EOF              │
      │ ◄──────────────────────── │ ◄────────────────────────────── │
      │   (raw bytes, unparsed)   │                                 │

=============================================================================
TARGET RESOLUTION
=============================================================================

    absolute-form   GET http://example.test:8080/x   → URL authority
    origin-form     GET /x  +  Host: example.test    → Host header

    ┌──────────────────────┬──────────────────────┐
    │ authority            │ (host, port)         │
    ├──────────────────────┼──────────────────────┤
    │ example.test         │ ("example.test", 80) │
    │ example.test:8080    │ ("example.test", 8080)│
    │ [::1]:8080           │ ("::1", 8080)        │
    │ [::1]                │ ("::1", 80)          │
    │ ::1                  │ ("::1", 80)          │
    └──────────────────────┴──────────────────────┘

An empty host is refused before any connection attempt.

=============================================================================
FAILURE MAPPING
=============================================================================

    connect timed out                → 504
    connect refused / DNS failure    → 502 Bad Gateway: Could not connect to host
    writing the request failed       → 502 Bad Gateway: Error writing to remote
    reading failed, nothing relayed  → 502 Bad Gateway: Error reading from remote
                                       (504 if it was a timeout)
    reading failed, bytes relayed    → logged only; the client has a partial
                                       response and the connection closes

=============================================================================
"""

import re
import socket
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from ..errors import (
    IncompleteBody, InvalidHost, MissingHost, UnsupportedScheme,
    UpstreamConnectError, UpstreamReadError, UpstreamTimeout, UpstreamWriteError,
)
from ..http.request import HTTPRequest


logger = logging.getLogger(__name__)


DEFAULT_PORT = 80

# Dropped when forwarding, on top of whatever Connection: lists
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-connection",
    "proxy-authorization",
    "te",
    "trailer",
    "upgrade",
})

STATUS_LINE_PATTERN = re.compile(rb"^HTTP/\d\.\d (\d{3})")


# =============================================================================
# TARGET RESOLUTION
# =============================================================================

@dataclass(frozen=True)
class ProxyTarget:
    """
    Where one request gets forwarded.

    Attributes:
        host: Hostname or IP literal, IPv6 without brackets.
        port: Always explicit.
        authority: What the client asked for, used for the Host header.
    """

    host: str
    port: int
    authority: str

    @property
    def address(self) -> Tuple[str, int]:
        return (self.host, self.port)

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


def split_host_port(authority: str, default_port: int = DEFAULT_PORT) -> Tuple[str, int]:
    """
    Split "host[:port]" into (host, port), IPv6 aware.

    A bare IPv6 literal ("::1") is all host; a port needs brackets
    ("[::1]:8080").

    Raises:
        InvalidHost: Unbalanced brackets, empty host, or a port that is
                     not a number in 1-65535.
    """
    if authority.startswith("["):
        end = authority.find("]")
        if end < 0:
            raise InvalidHost()
        host, rest = authority[1:end], authority[end + 1:]
        if rest and not rest.startswith(":"):
            raise InvalidHost()
        port_str = rest[1:]
    elif authority.count(":") > 1:
        host, port_str = authority, ""
    elif ":" in authority:
        host, port_str = authority.rsplit(":", 1)
    else:
        host, port_str = authority, ""

    if not host or "]" in host:
        raise InvalidHost()
    if not port_str:
        return host, default_port
    if not port_str.isdigit() or not 0 < int(port_str) < 65536:
        raise InvalidHost()
    return host, int(port_str)


def resolve_target(request: HTTPRequest) -> ProxyTarget:
    """
    Work out the origin server for a proxied request.

    Raises:
        UnsupportedScheme: absolute-form with anything but http://
        MissingHost: No authority in the target and no Host header.
        InvalidHost: See split_host_port().
    """
    if request.is_absolute_form:
        url = request.url
        if url.scheme.lower() != "http":
            raise UnsupportedScheme()
        authority = url.netloc.rsplit("@", 1)[-1]
    else:
        authority = request.host.strip()

    if not authority:
        raise MissingHost()

    host, port = split_host_port(authority)
    return ProxyTarget(host=host, port=port, authority=authority)


# =============================================================================
# REQUEST REWRITE
# =============================================================================

def canonical_header_name(name: str) -> str:
    """"content-type" → "Content-Type"."""
    return "-".join(part.capitalize() for part in name.split("-"))


def origin_target(request: HTTPRequest) -> str:
    """The request-target to send upstream: path plus query, no fragment."""
    if not request.is_absolute_form:
        return request.target.split("#", 1)[0]
    url = request.url
    target = url.path or "/"
    if url.query:
        target += "?" + url.query
    return target


def forwarded_headers(request: HTTPRequest, target: ProxyTarget) -> Dict[str, str]:
    """
    Headers for the upstream request, in the order they will be written.

    Host comes first and names the authority the client asked for.
    Hop-by-hop headers are dropped, including any the client listed in
    its own Connection header. Connection: close goes last.
    """
    listed = {
        token.strip().lower()
        for token in request.headers.get("connection", "").split(",")
        if token.strip()
    }
    dropped = HOP_BY_HOP_HEADERS | listed | {"host"}

    headers = {"Host": target.authority}
    for name, value in request.headers.items():
        if name in dropped:
            continue
        headers[canonical_header_name(name)] = value
    headers["Connection"] = "close"
    return headers


def build_upstream_request(request: HTTPRequest, target: ProxyTarget) -> bytes:
    """Serialize the rewritten request head (the body is streamed after it)."""
    lines = [f"{request.method} {origin_target(request)} HTTP/1.1"]
    for name, value in forwarded_headers(request, target).items():
        lines.append(f"{name}: {value}")
    lines.append("")
    return "\r\n".join(lines).encode("latin-1") + b"\r\n"


# =============================================================================
# FORWARDER
# =============================================================================

class ProxyForwarder:
    """
    GET handler for the proxy.

    Usage:
        proxy = ProxyForwarder(connect_timeout=10.0)
        dispatcher.register("GET", proxy.handle)
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        upstream_timeout: Optional[float] = 30.0,
        buffer_size: int = 8192,
    ):
        self.connect_timeout = connect_timeout
        self.upstream_timeout = upstream_timeout
        self.buffer_size = buffer_size

    def handle(self, request: HTTPRequest, conn) -> int:
        """
        Forward `request` and relay the response.

        Returns:
            Number of response bytes relayed to the client.

        Raises:
            HTTPError: Resolution, connect or write failures, and read
                       failures before the first relayed byte.
        """
        target = resolve_target(request)
        logger.info(f"[{conn.id}] Proxying {request.method} {request.target} → {target}")

        upstream = self._connect(target, conn)
        try:
            self._send_request(upstream, request, target, conn)
            return self._relay(upstream, target, conn)
        finally:
            upstream.close()

    def _connect(self, target: ProxyTarget, conn) -> socket.socket:
        try:
            upstream = socket.create_connection(target.address, timeout=self.connect_timeout)
        except socket.timeout:
            logger.warning(f"[{conn.id}] Timed out connecting to target server {target}")
            raise UpstreamTimeout()
        except OSError as e:
            logger.warning(f"[{conn.id}] Failed to connect to target server {target}: {e}")
            raise UpstreamConnectError()
        upstream.settimeout(self.upstream_timeout)
        return upstream

    def _send_request(self, upstream: socket.socket, request: HTTPRequest, target: ProxyTarget, conn):
        self._write(upstream, build_upstream_request(request, target), target, conn)

        body = request.body
        chunked = request.is_chunked
        while True:
            try:
                data = body.read(self.buffer_size)
            except OSError as e:
                raise IncompleteBody(f"Client stopped sending body: {e}")
            if not data:
                break
            if chunked:
                data = b"%x\r\n%s\r\n" % (len(data), data)
            self._write(upstream, data, target, conn)

        if chunked:
            self._write(upstream, b"0\r\n\r\n", target, conn)

    def _write(self, upstream: socket.socket, data: bytes, target: ProxyTarget, conn):
        try:
            upstream.sendall(data)
        except socket.timeout:
            logger.warning(f"[{conn.id}] Timed out forwarding request to {target}")
            raise UpstreamTimeout()
        except OSError as e:
            logger.warning(f"[{conn.id}] Failed to forward request to {target}: {e}")
            raise UpstreamWriteError()

    def _relay(self, upstream: socket.socket, target: ProxyTarget, conn) -> int:
        """
        Copy upstream bytes to the client until upstream EOF.

        The bytes are not parsed. The status code is sniffed from the
        first chunk for the access log only.
        """
        relayed = 0
        while True:
            try:
                data = upstream.recv(self.buffer_size)
            except socket.timeout:
                if relayed == 0:
                    logger.warning(f"[{conn.id}] Timed out waiting for response from {target}")
                    raise UpstreamTimeout()
                logger.warning(f"[{conn.id}] Timed out mid-response from {target} after {relayed} bytes")
                break
            except OSError as e:
                if relayed == 0:
                    logger.warning(f"[{conn.id}] Failed to read response from {target}: {e}")
                    raise UpstreamReadError()
                logger.warning(f"[{conn.id}] Failed to copy response from {target}: {e}")
                break

            if not data:
                break

            if relayed == 0:
                match = STATUS_LINE_PATTERN.match(data)
                if match:
                    conn.response_status = int(match.group(1))

            if not conn.send_quietly(data):
                break
            relayed += len(data)

        logger.info(f"[{conn.id}] Copied {relayed} bytes of response from {target}")
        return relayed
