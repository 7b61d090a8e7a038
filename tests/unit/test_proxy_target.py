"""
Unit tests for proxy target resolution and request rewriting.
"""

import pytest

from minihttp.errors import InvalidHost, MissingHost, UnsupportedScheme
from minihttp.handlers.proxy import (
    ProxyTarget,
    build_upstream_request,
    canonical_header_name,
    resolve_target,
    split_host_port,
)
from minihttp.http.request import parse_request


def _request(raw: bytes):
    outcome = parse_request(raw)
    assert outcome.ok, outcome.reason
    return outcome.request


class TestSplitHostPort:
    """Tests for split_host_port()."""

    @pytest.mark.parametrize("authority, expected", [
        ("example.test", ("example.test", 80)),
        ("example.test:8080", ("example.test", 8080)),
        ("127.0.0.1", ("127.0.0.1", 80)),
        ("127.0.0.1:3128", ("127.0.0.1", 3128)),
        ("[::1]:8080", ("::1", 8080)),
        ("[::1]", ("::1", 80)),
        ("::1", ("::1", 80)),
        ("fe80::1:2", ("fe80::1:2", 80)),
        ("example.test:", ("example.test", 80)),
    ])
    def test_valid(self, authority, expected):
        assert split_host_port(authority) == expected

    def test_default_port_override(self):
        assert split_host_port("example.test", default_port=8000) == ("example.test", 8000)

    @pytest.mark.parametrize("authority", [
        "example.test:http",
        "example.test:0",
        "example.test:70000",
        "[::1",
        "[::1]x",
        ":8080",
        "[]:80",
    ])
    def test_invalid(self, authority):
        with pytest.raises(InvalidHost) as exc_info:
            split_host_port(authority)

        assert exc_info.value.reason == "Bad Request: Invalid host"


class TestResolveTarget:
    """Tests for resolve_target()."""

    def test_absolute_form_uses_url_authority(self):
        request = _request(b"GET http://example.test:8080/a HTTP/1.1\r\nHost: other.test\r\n\r\n")

        target = resolve_target(request)

        assert target == ProxyTarget("example.test", 8080, "example.test:8080")

    def test_origin_form_uses_host_header(self):
        request = _request(b"GET /a HTTP/1.1\r\nHost: example.test\r\n\r\n")

        target = resolve_target(request)

        assert target.address == ("example.test", 80)
        assert target.authority == "example.test"

    def test_userinfo_is_stripped(self):
        request = _request(b"GET http://user:pw@example.test/ HTTP/1.1\r\n\r\n")

        assert resolve_target(request).address == ("example.test", 80)

    def test_missing_host(self):
        """Test that no authority and no Host header is refused."""
        request = _request(b"GET /a HTTP/1.1\r\n\r\n")

        with pytest.raises(MissingHost) as exc_info:
            resolve_target(request)

        assert exc_info.value.reason == "Bad Request: Missing host in request"

    def test_empty_host_header(self):
        request = _request(b"GET /a HTTP/1.1\r\nHost: \r\n\r\n")

        with pytest.raises(MissingHost):
            resolve_target(request)

    def test_https_scheme_is_refused(self):
        request = _request(b"GET https://example.test/ HTTP/1.1\r\n\r\n")

        with pytest.raises(UnsupportedScheme):
            resolve_target(request)

    def test_ipv6_literal(self):
        request = _request(b"GET http://[::1]:8080/ HTTP/1.1\r\n\r\n")
        target = resolve_target(request)

        assert target.address == ("::1", 8080)
        assert str(target) == "[::1]:8080"


class TestRequestRewrite:
    """Tests for build_upstream_request()."""

    def test_rewrite_absolute_form(self):
        """Test request line, Host, hop-by-hop removal and Connection: close."""
        request = _request(
            b"GET http://example.test:8080/a/b?x=1#frag HTTP/1.1\r\n"
            b"Host: example.test:8080\r\n"
            b"Proxy-Connection: keep-alive\r\n"
            b"Proxy-Authorization: Basic Zm9vOmJhcg==\r\n"
            b"Keep-Alive: timeout=5\r\n"
            b"Connection: keep-alive\r\n"
            b"user-agent: pytest\r\n"
            b"\r\n"
        )
        target = resolve_target(request)

        data = build_upstream_request(request, target)

        assert data == (
            b"GET /a/b?x=1 HTTP/1.1\r\n"
            b"Host: example.test:8080\r\n"
            b"User-Agent: pytest\r\n"
            b"Connection: close\r\n"
            b"\r\n"
        )

    def test_empty_path_becomes_slash(self):
        request = _request(b"GET http://example.test HTTP/1.1\r\n\r\n")

        data = build_upstream_request(request, resolve_target(request))

        assert data.startswith(b"GET / HTTP/1.1\r\nHost: example.test\r\n")

    def test_origin_form_target_is_kept(self):
        request = _request(b"GET /x?y=2 HTTP/1.1\r\nHost: example.test\r\n\r\n")

        data = build_upstream_request(request, resolve_target(request))

        assert data.startswith(b"GET /x?y=2 HTTP/1.1\r\n")

    def test_headers_named_in_connection_are_dropped(self):
        request = _request(
            b"GET / HTTP/1.1\r\n"
            b"Host: example.test\r\n"
            b"Connection: X-Secret\r\n"
            b"X-Secret: 1\r\n"
            b"X-Public: 2\r\n"
            b"\r\n"
        )

        data = build_upstream_request(request, resolve_target(request))

        assert b"X-Secret" not in data
        assert b"X-Public: 2\r\n" in data

    def test_body_framing_headers_are_forwarded(self):
        request = _request(b"GET / HTTP/1.1\r\nHost: example.test\r\nContent-Length: 3\r\n\r\nabc")

        data = build_upstream_request(request, resolve_target(request))

        assert b"Content-Length: 3\r\n" in data


class TestCanonicalHeaderName:

    @pytest.mark.parametrize("name, expected", [
        ("content-type", "Content-Type"),
        ("x-forwarded-for", "X-Forwarded-For"),
        ("host", "Host"),
        ("www-authenticate", "Www-Authenticate"),
    ])
    def test_title_case(self, name, expected):
        assert canonical_header_name(name) == expected
