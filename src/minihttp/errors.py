"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every per-connection failure that ends in a synthesized response is an
HTTPError subclass carrying the status code and the reason text that
goes on the status line.

    ┌──────────────────────────────────────────────────────────────────────┐
    │                         HTTPError(status, reason)                    │
    ├──────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   400  MalformedRequest ── HTTPParseError ── IncompleteBody          │
    │        UnsupportedFileType                                           │
    │        MissingHost, InvalidHost, UnsupportedScheme                   │
    │   404  ResourceNotFound                                              │
    │   413  PayloadTooLarge                                               │
    │   500  InternalIOError                                               │
    │   501  UnsupportedMethod                                             │
    │   502  UpstreamConnectError, UpstreamWriteError, UpstreamReadError   │
    │   504  UpstreamTimeout                                               │
    │                                                                      │
    └──────────────────────────────────────────────────────────────────────┘

A client that hangs up before sending anything is NOT an error here: the
parser reports it as a benign outcome and nothing is written back.

Handlers raise; ConnectionPipeline catches at the connection boundary and
answers through the error responder. Nothing propagates past one
connection and nothing here is ever fatal to the process.

=============================================================================
"""

from typing import Optional

from .http.status_codes import HTTPStatus


class HTTPError(Exception):
    """
    Base class for failures that map to an HTTP error response.

    Custom exceptions with metadata (status, reason) keep the handlers
    free of response-writing code: they raise, the pipeline responds.

    Attributes:
        status: Status code to send.
        reason: Text for the status line and body. Defaults to the
                standard phrase, optionally followed by ": detail".
    """

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, detail: Optional[str] = None, status: Optional[HTTPStatus] = None):
        if status is not None:
            self.status = status
        self.detail = detail
        super().__init__(detail or self.status.phrase)

    @property
    def reason(self) -> str:
        if self.detail:
            return f"{self.status.phrase}: {self.detail}"
        return self.status.phrase


# =============================================================================
# 4xx: THE CLIENT SENT SOMETHING WE WON'T HANDLE
# =============================================================================

class MalformedRequest(HTTPError):
    """Request line, headers or framing could not be parsed."""
    status = HTTPStatus.BAD_REQUEST


class HTTPParseError(MalformedRequest):
    """
    Raised by the request parser.

    The detail is for logs only: the client always gets a plain
    "400 Bad Request" for a malformed head.
    """

    @property
    def reason(self) -> str:
        return self.status.phrase


class IncompleteBody(HTTPParseError):
    """Body stream ended before its declared length, or a chunk was bad."""


class PayloadTooLarge(HTTPError):
    status = HTTPStatus.PAYLOAD_TOO_LARGE


class UnsupportedFileType(HTTPError):
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str = "Unsupported file type"):
        super().__init__(detail)


class MissingHost(HTTPError):
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str = "Missing host in request"):
        super().__init__(detail)


class InvalidHost(HTTPError):
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str = "Invalid host"):
        super().__init__(detail)


class UnsupportedScheme(HTTPError):
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, detail: str = "Unsupported scheme"):
        super().__init__(detail)


class ResourceNotFound(HTTPError):
    status = HTTPStatus.NOT_FOUND


# =============================================================================
# 5xx: WE (OR THE UPSTREAM) FAILED
# =============================================================================

class InternalIOError(HTTPError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR


class UnsupportedMethod(HTTPError):
    status = HTTPStatus.NOT_IMPLEMENTED


class UpstreamError(HTTPError):
    """Anything that went wrong talking to the proxy's upstream."""
    status = HTTPStatus.BAD_GATEWAY


class UpstreamConnectError(UpstreamError):
    def __init__(self, detail: str = "Could not connect to host"):
        super().__init__(detail)


class UpstreamWriteError(UpstreamError):
    def __init__(self, detail: str = "Error writing to remote"):
        super().__init__(detail)


class UpstreamReadError(UpstreamError):
    def __init__(self, detail: str = "Error reading from remote"):
        super().__init__(detail)


class UpstreamTimeout(UpstreamError):
    status = HTTPStatus.GATEWAY_TIMEOUT
