"""
Unit tests for response building and the error responder.
"""

import pytest

from minihttp.errors import (
    HTTPParseError, MissingHost, UnsupportedFileType, UnsupportedMethod,
    UpstreamConnectError, UpstreamTimeout,
)
from minihttp.http.response import HTTPResponse, ResponseBuilder, error_response, send_error
from minihttp.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)

        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_custom_reason(self):
        """Test that a custom reason replaces the standard phrase."""
        response = HTTPResponse(status=HTTPStatus.BAD_GATEWAY, reason="Bad Gateway: Could not connect to host")

        assert response.status_line == "HTTP/1.1 502 Bad Gateway: Could not connect to host"

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is added from the body."""
        response = HTTPResponse(body=b"hello")
        data = response.to_bytes()

        assert b"Content-Length: 5\r\n" in data
        assert data.endswith(b"\r\n\r\nhello")

    def test_explicit_content_length_is_kept(self):
        """Test that a streamed body can declare its length up front."""
        response = HTTPResponse(headers={"Content-Length": "1000"})

        assert b"Content-Length: 1000\r\n" in response.head_bytes()

    def test_set_header_chaining(self):
        response = HTTPResponse().set_header("X-A", "1").set_header("X-B", "2")

        assert response.headers == {"X-A": "1", "X-B": "2"}


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_header_order(self):
        """Test the canonical Content-Type, Content-Length, Connection order."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .text("hi")
            .close_connection()
            .build())

        assert list(response.headers) == ["Content-Type", "Content-Length", "Connection"]
        assert response.headers["Content-Length"] == "2"

    def test_created_response(self):
        """Test the exact bytes of the POST success response."""
        data = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .content_type("text/plain")
            .content_length(0)
            .close_connection()
            .build()
            .to_bytes())

        assert data == (
            b"HTTP/1.1 201 Created\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 0\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        )

    def test_string_body_is_utf8(self):
        response = ResponseBuilder().body("héllo").build()

        assert response.body == "héllo".encode("utf-8")
        assert response.headers.get("Content-Length") is None
        assert b"Content-Length: 6\r\n" in response.to_bytes()


class TestErrorResponder:
    """Tests for error_response() and send_error()."""

    def test_exact_bytes(self):
        """Test the exact shape of a synthesized error response."""
        data = error_response(HTTPStatus.BAD_GATEWAY, "Bad Gateway: Could not connect to host")
        body = b"502 Bad Gateway: Could not connect to host"

        assert data == (
            b"HTTP/1.1 502 Bad Gateway: Could not connect to host\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        ) + body

    def test_default_reason(self):
        """Test that the reason defaults to the standard phrase."""
        data = error_response(HTTPStatus.NOT_IMPLEMENTED)

        assert data.startswith(b"HTTP/1.1 501 Not Implemented\r\n")
        assert data.endswith(b"\r\n\r\n501 Not Implemented")

    @pytest.mark.parametrize("status", [400, 404, 500, 501, 502, 504])
    def test_content_length_matches_body(self, status: int):
        """Test that Content-Length is always the body length."""
        data = error_response(HTTPStatus(status))
        head, _, body = data.partition(b"\r\n\r\n")

        assert f"Content-Length: {len(body)}".encode() in head

    def test_send_error_writes_and_records_status(self, connection_pair):
        """Test that send_error writes the response and tags the connection."""
        conn, client = connection_pair

        assert send_error(conn, HTTPStatus.NOT_FOUND) is True
        assert conn.response_status == 404
        assert conn.response_started

        conn.close()
        data = client.recv(4096)
        assert data.startswith(b"HTTP/1.1 404 Not Found\r\n")

    def test_send_error_to_closed_peer_is_swallowed(self, connection_pair):
        """Test that a failing send is reported, not raised."""
        conn, client = connection_pair
        client.close()
        conn.socket.close()

        assert send_error(conn, HTTPStatus.BAD_REQUEST) is False


class TestErrorReasons:
    """The reason text each error kind puts on the status line."""

    @pytest.mark.parametrize("error, status, reason", [
        (HTTPParseError("Invalid method"), 400, "Bad Request"),
        (UnsupportedFileType(), 400, "Bad Request: Unsupported file type"),
        (MissingHost(), 400, "Bad Request: Missing host in request"),
        (UnsupportedMethod(), 501, "Not Implemented"),
        (UpstreamConnectError(), 502, "Bad Gateway: Could not connect to host"),
        (UpstreamTimeout(), 504, "Gateway Timeout"),
    ])
    def test_reason(self, error, status, reason):
        assert int(error.status) == status
        assert error.reason == reason
