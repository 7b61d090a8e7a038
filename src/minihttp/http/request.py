"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Reads ONE HTTP/1.1 request from a buffered byte stream and classifies the
result. Implements the message syntax of RFC 7230 closely enough for a
file server and a forwarding proxy.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  REQUEST LINE      GET http://example.test/docs?x=1 HTTP/1.1\r\n    │
    │                    ─┬─ ────────────┬──────────────── ────┬───       │
    │                  Method      request-target           Version       │
    │                                                                      │
    │  HEADERS           Host: example.test\r\n                           │
    │                    Content-Length: 5\r\n                            │
    │                    \r\n                  ← end of head              │
    │                                                                      │
    │  BODY              hello                 ← framed by Content-Length │
    │                                            or chunked encoding      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

REQUEST-TARGET FORMS:
─────────────────────

    origin-form     /docs?x=1                  normal server requests
    absolute-form   http://example.test/docs   what clients send a proxy
    asterisk-form   *                          OPTIONS * (answered 501)
    authority-form  example.test:443           CONNECT only (answered 501)

=============================================================================
OUTCOME CLASSIFICATION
=============================================================================

    ┌───────────┬───────────────────────────────────┬──────────────────────┐
    │ Outcome   │ Cause                             │ Pipeline action      │
    ├───────────┼───────────────────────────────────┼──────────────────────┤
    │ SUCCESS   │ request line + headers parsed     │ dispatch by method   │
    │ BENIGN    │ EOF or reset before any byte,     │ close, send nothing  │
    │           │ idle read timeout                 │                      │
    │ MALFORMED │ bad request line / header syntax, │ 400 Bad Request      │
    │           │ oversize head, EOF mid-head       │                      │
    └───────────┴───────────────────────────────────┴──────────────────────┘

Writing an error to a peer that already hung up is pointless and can
itself fail, hence the BENIGN class.

The body is NOT read by the parser. It is exposed as a stream on the
request (HTTPRequest.body) so the handlers can copy it straight to a file
or to the upstream socket without buffering it whole.

=============================================================================
"""

import io
import re
import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Dict, Optional
from urllib.parse import unquote, urlsplit

from ..errors import HTTPParseError, IncompleteBody, PayloadTooLarge


# =============================================================================
# BODY STREAMS
# =============================================================================

class BodyReader:
    """
    Request body framed by Content-Length.

    Reads never go past the declared length, so whatever follows on the
    socket is left untouched.
    """

    def __init__(self, stream: Optional[BinaryIO], length: int):
        self._stream = stream
        self.length = length
        self._remaining = length

    @property
    def remaining(self) -> int:
        return self._remaining

    def read(self, size: int = -1) -> bytes:
        """
        Read up to `size` bytes (all remaining bytes if size < 0).

        Raises:
            IncompleteBody: If the stream ends before the declared length.
        """
        if self._remaining <= 0:
            return b""
        if size < 0 or size > self._remaining:
            size = self._remaining

        data = self._stream.read(size)
        if not data:
            raise IncompleteBody(
                f"Body ended after {self.length - self._remaining} of {self.length} bytes"
            )
        self._remaining -= len(data)
        return data


CHUNK_SIZE_PATTERN = re.compile(rb"^[0-9A-Fa-f]+$")


class ChunkedBodyReader:
    """
    Request body sent with Transfer-Encoding: chunked.

        5\r\n            ← chunk size in hex (extensions after ';' ignored)
        hello\r\n        ← chunk data + CRLF
        0\r\n            ← last chunk
        \r\n             ← end of (empty) trailer section

    read() hands out decoded data, one chunk at most per call.
    """

    MAX_LINE = 4096

    def __init__(self, stream: BinaryIO, max_size: Optional[int] = None):
        self._stream = stream
        self._max_size = max_size
        self._chunk_left = 0
        self._total = 0
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def _readline(self) -> bytes:
        line = self._stream.readline(self.MAX_LINE + 1)
        if not line:
            raise IncompleteBody("Stream ended inside chunked body")
        if len(line) > self.MAX_LINE:
            raise IncompleteBody("Chunk line too long")
        return line

    def _next_chunk(self):
        size_field = self._readline().split(b";", 1)[0].strip()
        if not CHUNK_SIZE_PATTERN.match(size_field):
            raise IncompleteBody(f"Invalid chunk size: {size_field!r}")
        size = int(size_field, 16)

        if size == 0:
            # Discard trailer fields up to the blank line
            while self._readline() not in (b"\r\n", b"\n"):
                pass
            self._done = True
            return

        self._total += size
        if self._max_size is not None and self._total > self._max_size:
            raise PayloadTooLarge(f"Body exceeds {self._max_size} bytes")
        self._chunk_left = size

    def read(self, size: int = -1) -> bytes:
        if self._done:
            return b""
        if self._chunk_left == 0:
            self._next_chunk()
            if self._done:
                return b""

        if size < 0 or size > self._chunk_left:
            size = self._chunk_left
        data = self._stream.read(size)
        if not data:
            raise IncompleteBody("Stream ended inside a chunk")
        self._chunk_left -= len(data)

        if self._chunk_left == 0 and self._stream.read(2) != b"\r\n":
            raise IncompleteBody("Missing CRLF after chunk data")
        return data


EMPTY_BODY = BodyReader(None, 0)


# =============================================================================
# PARSED REQUEST
# =============================================================================

@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         Method token, case-sensitive ("GET", "POST", ...)
        target:         The raw request-target from the request line
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Header name → value, names LOWERCASED.
                        A repeated header is folded into one value:
                        "a" + "b" → "a, b"
        body:           Readable body stream (empty if no body)
        client_address: (ip, port) of the client

    =========================================================================
    """

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: object = field(default=EMPTY_BODY, repr=False)
    client_address: tuple = ("", 0)

    @property
    def url(self):
        """The request-target split into scheme, netloc, path, query, fragment."""
        return urlsplit(self.target)

    @property
    def is_absolute_form(self) -> bool:
        """True for "http://host/path" style targets (sent to proxies)."""
        url = self.url
        return bool(url.scheme and url.netloc)

    @property
    def path(self) -> str:
        """URL-decoded path without the query string ("/" if empty)."""
        if self.is_absolute_form:
            return unquote(self.url.path) or "/"
        # Origin-form: "//a/b" is a path here, not a network location
        return unquote(self.target.split("#", 1)[0].split("?", 1)[0]) or "/"

    @property
    def query(self) -> str:
        if self.is_absolute_form:
            return self.url.query
        _, _, query = self.target.split("#", 1)[0].partition("?")
        return query

    @property
    def host(self) -> str:
        """Value of the Host header ("" if missing)."""
        return self.headers.get("host", "")

    @property
    def content_length(self) -> Optional[int]:
        """Declared Content-Length, or None if the header is absent."""
        value = self.headers.get("content-length")
        return int(value) if value is not None else None

    @property
    def is_chunked(self) -> bool:
        return isinstance(self.body, ChunkedBodyReader)

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value (case-insensitive lookup)."""
        return self.headers.get(name.lower(), default)


# =============================================================================
# PARSE OUTCOME
# =============================================================================

class ParseResult(Enum):
    SUCCESS = "success"
    BENIGN = "benign"        # peer closed or reset: send nothing
    MALFORMED = "malformed"  # send 400


@dataclass
class ParseOutcome:
    """Tagged result of one read_request() call."""

    kind: ParseResult
    request: Optional[HTTPRequest] = None
    reason: str = ""

    @classmethod
    def success(cls, request: HTTPRequest) -> "ParseOutcome":
        return cls(ParseResult.SUCCESS, request=request)

    @classmethod
    def benign(cls, reason: str) -> "ParseOutcome":
        return cls(ParseResult.BENIGN, reason=reason)

    @classmethod
    def malformed(cls, reason: str) -> "ParseOutcome":
        return cls(ParseResult.MALFORMED, reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind is ParseResult.SUCCESS


class _PeerGone(Exception):
    """Internal: the stream ended or was reset before the request began."""


class _HeadReader:
    """Per-request line reader that enforces the head size limits."""

    def __init__(self, stream: BinaryIO, max_line_size: int, max_header_size: int):
        self.stream = stream
        self.max_line_size = max_line_size
        self.max_header_size = max_header_size
        self.consumed = 0

    def readline(self) -> bytes:
        line = self.stream.readline(self.max_line_size + 1)
        self.consumed += len(line)
        if len(line) > self.max_line_size:
            raise HTTPParseError("Line too long")
        if self.consumed > self.max_header_size:
            raise HTTPParseError("Request head too large")
        return line


class RequestParser:
    """
    Parses one HTTP request head from a buffered binary stream.

    ==========================================================================
    PARSER FLOW
    ==========================================================================

        reader.readline()
              │
              ▼
        ┌───────────────────────────────────────────────────────────────────┐
        │  1. Skip leading blank lines; EOF/reset here → BENIGN             │
        │  2. Request line  METHOD SP target SP HTTP/x.y                    │
        │  3. Header lines until the blank line (obs-fold joined)           │
        │  4. Body framing: chunked │ Content-Length │ none                 │
        │  5. Any HTTPParseError along the way → MALFORMED                  │
        └───────────────────────────────────────────────────────────────────┘
              │
              ▼
        ParseOutcome(SUCCESS, HTTPRequest)

    ==========================================================================
    REGEX PATTERNS
    ==========================================================================

    TOKEN: RFC 7230 tchar+, used for method and header names.
    VERSION: HTTP/<digit>.<digit>
    HEADER: name ":" OWS value OWS (no whitespace allowed before the colon,
    which blocks a classic request-smuggling trick).

    ==========================================================================
    """

    TOKEN_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")
    VERSION_PATTERN = re.compile(r"^HTTP/\d\.\d$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):[ \t]*(.*?)[ \t]*$")

    def __init__(
        self,
        max_line_size: int = 8192,
        max_header_size: int = 64 * 1024,
        max_body_size: Optional[int] = None,
    ):
        """
        Args:
            max_line_size: Longest accepted request or header line.
            max_header_size: Largest accepted head (request line + headers).
            max_body_size: Largest accepted body, None for no limit.
        """
        self.max_line_size = max_line_size
        self.max_header_size = max_header_size
        self.max_body_size = max_body_size

    def read_request(
        self,
        reader: BinaryIO,
        client_address: tuple = ("", 0),
    ) -> ParseOutcome:
        """
        Read and classify one request.

        Never raises for I/O or syntax problems: every failure becomes a
        BENIGN or MALFORMED outcome.

        Args:
            reader: Buffered binary stream (socket.makefile("rb") or BytesIO).
            client_address: Client's (ip, port) for the request object.

        Returns:
            ParseOutcome
        """
        head = _HeadReader(reader, self.max_line_size, self.max_header_size)
        try:
            request = self._read(head, client_address)
        except _PeerGone as e:
            return ParseOutcome.benign(str(e))
        except HTTPParseError as e:
            return ParseOutcome.malformed(str(e))
        except socket.timeout:
            if head.consumed == 0:
                return ParseOutcome.benign("timed out waiting for request")
            return ParseOutcome.malformed("timed out reading request head")
        except (ConnectionResetError, BrokenPipeError) as e:
            return ParseOutcome.benign(f"connection reset: {e}")
        except OSError as e:
            if head.consumed == 0:
                return ParseOutcome.benign(f"read failed: {e}")
            return ParseOutcome.malformed(f"read failed: {e}")
        except (ValueError, IndexError) as e:
            return ParseOutcome.malformed(f"unparseable request: {e}")
        return ParseOutcome.success(request)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read(self, head: "_HeadReader", client_address: tuple) -> HTTPRequest:
        # ---------------------------------------------------------------------
        # STEP 1: Request line (tolerate stray CRLFs before it)
        # ---------------------------------------------------------------------
        while True:
            line = head.readline()
            if not line:
                if head.consumed == 0:
                    raise _PeerGone("EOF before request")
                raise HTTPParseError("Unexpected EOF before request line")
            if line not in (b"\r\n", b"\n"):
                break

        method, target, version = self._parse_request_line(line)

        # ---------------------------------------------------------------------
        # STEP 2: Headers
        # ---------------------------------------------------------------------
        header_lines = []
        while True:
            line = head.readline()
            if not line:
                raise HTTPParseError("Unexpected EOF in headers")
            if line in (b"\r\n", b"\n"):
                break
            header_lines.append(line)
        headers = self._parse_headers(header_lines)

        # ---------------------------------------------------------------------
        # STEP 3: Body framing
        # ---------------------------------------------------------------------
        body = self._body_reader(head.stream, headers)

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, raw: bytes) -> tuple:
        """
        Parse "METHOD SP request-target SP HTTP-version".

        Unknown but well-formed methods pass: answering them is the
        dispatcher's job (501), not the parser's.
        """
        line = raw.decode("latin-1").rstrip("\r\n")
        parts = line.split(" ")
        if len(parts) != 3:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = parts
        if not self.TOKEN_PATTERN.match(method):
            raise HTTPParseError(f"Invalid method: {method!r}")
        if not self.VERSION_PATTERN.match(version):
            raise HTTPParseError(f"Malformed HTTP version: {version!r}")
        if not self._valid_target(method, target):
            raise HTTPParseError(f"Invalid request target: {target!r}")

        return method, target, version

    @staticmethod
    def _valid_target(method: str, target: str) -> bool:
        if not target:
            return False
        if target.startswith("/") or target == "*":
            return True
        if method == "CONNECT":
            return True
        url = urlsplit(target)
        return bool(url.scheme and url.netloc)

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Continuation lines (starting with SP/HTAB) extend the previous
        value. Repeated names are folded with ", ".
        """
        headers: Dict[str, str] = {}
        current_name = None

        for raw in lines:
            line = raw.decode("latin-1").rstrip("\r\n")

            if not line:
                raise HTTPParseError("Empty header line")

            if line[0] in (" ", "\t"):
                if current_name is None:
                    raise HTTPParseError("Continuation line before first header")
                headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match or not self.TOKEN_PATTERN.match(match.group(1)):
                raise HTTPParseError(f"Malformed header line: {line!r}")

            name, value = match.groups()
            name = name.lower()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    def _body_reader(self, reader: BinaryIO, headers: Dict[str, str]):
        transfer_encoding = headers.get("transfer-encoding")
        if transfer_encoding is not None:
            if transfer_encoding.strip().lower() != "chunked":
                raise HTTPParseError(f"Unsupported transfer encoding: {transfer_encoding!r}")
            # Content-Length is ignored when chunked; drop it so nobody forwards it
            headers.pop("content-length", None)
            return ChunkedBodyReader(reader, self.max_body_size)

        raw_length = headers.get("content-length")
        if raw_length is None:
            return EMPTY_BODY

        values = {v.strip() for v in raw_length.split(",")}
        if len(values) != 1:
            raise HTTPParseError(f"Conflicting Content-Length: {raw_length!r}")
        value = values.pop()
        if not value.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {raw_length!r}")

        length = int(value)
        if self.max_body_size is not None and length > self.max_body_size:
            # Reported when the body is consumed, so a GET never trips it
            return _OversizedBody(length, self.max_body_size)
        headers["content-length"] = value
        return BodyReader(reader, length) if length else EMPTY_BODY


class _OversizedBody(BodyReader):
    """Body whose declared length exceeds the limit; reading it fails."""

    def __init__(self, length: int, limit: int):
        super().__init__(None, length)
        self._limit = limit

    def read(self, size: int = -1) -> bytes:
        raise PayloadTooLarge(f"Body of {self.length} bytes exceeds {self._limit}")


def parse_request(data: bytes, client_address: tuple = ("", 0)) -> ParseOutcome:
    """
    Convenience function: parse a request held entirely in memory.

    Mostly useful in tests.
    """
    return RequestParser().read_request(io.BytesIO(data), client_address)
