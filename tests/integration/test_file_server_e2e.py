"""
End-to-end tests for the file server over real sockets.
"""

import socket
import threading

from minihttp.http.response import error_response
from minihttp.http.status_codes import HTTPStatus


def _status_line(data: bytes) -> bytes:
    return data.split(b"\r\n", 1)[0]


class TestFileServerGet:
    """GET against a running file server."""

    def test_serves_file_bytes(self, file_server, tmp_path):
        """Test that the body is the exact file contents with exact length."""
        content = bytes(range(256)) * 100
        (tmp_path / "image.gif").write_bytes(content)

        data = file_server.exchange(b"GET /image.gif HTTP/1.1\r\nHost: x\r\n\r\n")
        head, _, body = data.partition(b"\r\n\r\n")

        assert head == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Type: image/gif\r\n"
            b"Content-Length: 25600\r\n"
            b"Connection: close"
        )
        assert body == content

    def test_root_serves_index(self, file_server, tmp_path):
        (tmp_path / "index.html").write_bytes(b"<html>home</html>")

        data = file_server.exchange(b"GET / HTTP/1.1\r\n\r\n")

        assert _status_line(data) == b"HTTP/1.1 200 OK"
        assert data.endswith(b"<html>home</html>")

    def test_unsupported_file_type(self, file_server, tmp_path):
        (tmp_path / "archive.zip").write_bytes(b"PK")

        data = file_server.exchange(b"GET /archive.zip HTTP/1.1\r\n\r\n")

        assert data == error_response(HTTPStatus.BAD_REQUEST, "Bad Request: Unsupported file type")

    def test_missing_file(self, file_server):
        data = file_server.exchange(b"GET /nope.txt HTTP/1.1\r\n\r\n")

        assert data == error_response(HTTPStatus.NOT_FOUND)

    def test_traversal_stays_in_root(self, file_server):
        """Test that ../ cannot reach files outside the root."""
        data = file_server.exchange(b"GET /../../../../etc/hostname.txt HTTP/1.1\r\n\r\n")

        assert _status_line(data) == b"HTTP/1.1 404 Not Found"

    def test_malformed_request(self, file_server):
        data = file_server.exchange(b"NOT A REQUEST\r\n\r\n")

        assert data == error_response(HTTPStatus.BAD_REQUEST)

    def test_carriage_return_only_header_line_gets_400(self, file_server):
        data = file_server.exchange(b"GET /a.txt HTTP/1.1\r\nHost: x\r\n\r\r\n\r\n")

        assert data == error_response(HTTPStatus.BAD_REQUEST)

    def test_uppercase_extension_is_refused(self, file_server, tmp_path):
        (tmp_path / "X.HTML").write_bytes(b"<p>x</p>")

        data = file_server.exchange(b"GET /X.HTML HTTP/1.1\r\n\r\n")

        assert data == error_response(HTTPStatus.BAD_REQUEST, "Bad Request: Unsupported file type")

    def test_unsupported_method(self, file_server):
        data = file_server.exchange(b"PUT /a.txt HTTP/1.1\r\nContent-Length: 1\r\n\r\nx")

        assert data == error_response(HTTPStatus.NOT_IMPLEMENTED)

    def test_lowercase_method_is_not_get(self, file_server, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"a")

        data = file_server.exchange(b"get /a.txt HTTP/1.1\r\n\r\n")

        assert _status_line(data) == b"HTTP/1.1 501 Not Implemented"

    def test_client_that_sends_nothing_gets_nothing(self, file_server):
        """Test that a connect-and-close client gets no response and the server keeps going."""
        with socket.create_connection(file_server.address, timeout=5.0) as sock:
            sock.shutdown(socket.SHUT_WR)
            assert sock.recv(100) == b""

        data = file_server.exchange(b"GET /nope.txt HTTP/1.1\r\n\r\n")
        assert _status_line(data) == b"HTTP/1.1 404 Not Found"


class TestFileServerPost:
    """POST against a running file server."""

    def test_post_then_get_round_trip(self, file_server, tmp_path):
        body = b"stored via POST\n"
        request = (
            b"POST /new/dir/note.txt HTTP/1.1\r\n"
            b"Content-Length: " + str(len(body)).encode() + b"\r\n"
            b"\r\n"
        ) + body

        created = file_server.exchange(request)

        assert created == (
            b"HTTP/1.1 201 Created\r\n"
            b"Content-Type: text/plain\r\n"
            b"Content-Length: 0\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        )
        assert (tmp_path / "new" / "dir" / "note.txt").read_bytes() == body

        fetched = file_server.exchange(b"GET /new/dir/note.txt HTTP/1.1\r\n\r\n")
        assert fetched.endswith(b"\r\n\r\n" + body)

    def test_post_double_slash_target(self, file_server, tmp_path):
        data = file_server.exchange(b"POST //a/b.txt HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello")

        assert _status_line(data) == b"HTTP/1.1 201 Created"
        assert (tmp_path / "a" / "b.txt").read_bytes() == b"hello"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["a"]

    def test_chunked_post(self, file_server, tmp_path):
        request = (
            b"POST /chunked.txt HTTP/1.1\r\n"
            b"Transfer-Encoding: chunked\r\n"
            b"\r\n"
            b"4\r\nWiki\r\n5\r\npedia\r\n0\r\n\r\n"
        )

        data = file_server.exchange(request)

        assert _status_line(data) == b"HTTP/1.1 201 Created"
        assert (tmp_path / "chunked.txt").read_bytes() == b"Wikipedia"


class TestFileServerConcurrency:
    """The gate under a burst of clients."""

    def test_burst_of_clients_all_served(self, make_server, tmp_path):
        """Test that 30 simultaneous clients are all served with a gate of 10."""
        from minihttp.handlers import StaticFileHandler
        from minihttp.http.dispatcher import MethodDispatcher

        (tmp_path / "a.txt").write_bytes(b"A" * 1000)
        files = StaticFileHandler(str(tmp_path))
        running = make_server(MethodDispatcher().register("GET", files.handle_get), max_connections=10)

        results = []
        lock = threading.Lock()

        def client():
            data = running.exchange(b"GET /a.txt HTTP/1.1\r\n\r\n", timeout=10.0)
            with lock:
                results.append(data)

        threads = [threading.Thread(target=client) for _ in range(30)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=20.0)

        assert len(results) == 30
        assert all(r.endswith(b"A" * 1000) for r in results)
        assert running.server.gate.peak <= 10
