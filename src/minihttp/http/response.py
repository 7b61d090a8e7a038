"""
=============================================================================
HTTP RESPONSE BUILDING AND THE ERROR RESPONDER
=============================================================================

Both programs write very small, fixed-shape responses:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    SYNTHESIZED ERROR RESPONSE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTP/1.1 502 Bad Gateway: Could not connect to host\r\n           │
    │   Content-Type: text/plain\r\n                                      │
    │   Content-Length: 47\r\n          ← always len(body), in bytes      │
    │   Connection: close\r\n           ← we never keep connections       │
    │   \r\n                                                              │
    │   502 Bad Gateway: Could not connect to host                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The reason text on the status line is the same text as the body after
the code. Successful file responses have the same header shape with a
real Content-Type, and their body is streamed separately from the head
(see StaticFileHandler), so HTTPResponse can serialize just the head.

The proxy never builds a response for a successful exchange: upstream
bytes are relayed untouched.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

        Handler builds           head_bytes()/to_bytes()     Connection sends
        HTTPResponse    ─────►   serializes        ─────►    raw bytes

    Headers are written in insertion order. Content-Length is added from
    len(body) only when the caller did not set it; a streamed body sets it
    explicitly and leaves `body` empty.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    reason: Optional[str] = None
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Get the HTTP status line.

        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 404 Not Found"
        """
        return f"{self.version} {int(self.status)} {self.reason or self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def head_bytes(self) -> bytes:
        """Serialize the status line and headers, including the blank line."""
        response_headers = dict(self.headers)
        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        return "\r\n".join(lines).encode("latin-1") + b"\r\n"

    def to_bytes(self) -> bytes:
        """Serialize the full response: head followed by body."""
        return self.head_bytes() + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .content_type("text/plain")
            .close_connection()
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._reason: Optional[str] = None
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus, reason: Optional[str] = None) -> "ResponseBuilder":
        """Set the status code and, optionally, a custom reason text."""
        self._status = status
        self._reason = reason
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def content_length(self, length: int) -> "ResponseBuilder":
        """Declare the body size up front, for bodies streamed after the head."""
        return self.header("Content-Length", str(length))

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the body. Strings are encoded as UTF-8."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str) -> "ResponseBuilder":
        return self.content_type("text/plain").body(text)

    def close_connection(self) -> "ResponseBuilder":
        """
        Set Connection: close.

        Every response this project writes carries it: one request per
        connection, always.
        """
        return self.header("Connection", "close")

    def build(self) -> HTTPResponse:
        headers = dict(self._headers)
        # Content-Length goes before Connection for the canonical shape
        if "Content-Length" not in headers and "Connection" in headers:
            connection = headers.pop("Connection")
            headers["Content-Length"] = str(len(self._body))
            headers["Connection"] = connection
        return HTTPResponse(
            status=self._status,
            headers=headers,
            body=self._body,
            reason=self._reason,
        )


# =============================================================================
# ERROR RESPONDER
# =============================================================================

def error_response(status: HTTPStatus, reason: Optional[str] = None) -> bytes:
    """
    Build the complete bytes of a synthesized error response.

    Args:
        status: Status code to send.
        reason: Status line text. Defaults to the standard phrase.

    Returns:
        Status line, Content-Type: text/plain, exact Content-Length,
        Connection: close, blank line, body "<code> <reason>".
    """
    reason = reason or HTTPStatus(status).phrase
    return (ResponseBuilder()
        .status(HTTPStatus(status), reason)
        .text(f"{int(status)} {reason}")
        .close_connection()
        .build()
        .to_bytes())


def send_error(conn, status: HTTPStatus, reason: Optional[str] = None) -> bool:
    """
    Write a synthesized error response to a connection.

    Failures while sending are logged and swallowed: the connection is
    about to be closed either way, and there is nobody left to tell.
    Never retries.

    Args:
        conn: A Connection (anything with send_quietly()).
        status: Status code.
        reason: Status line text.

    Returns:
        True if the response was fully written.
    """
    reason = reason or HTTPStatus(status).phrase
    data = error_response(status, reason)
    logger.info(f"[{conn.id}] Sending error: {int(status)} {reason}")
    conn.response_status = int(status)
    return conn.send_quietly(data)
