"""
Unit tests for HTTP response building.
"""

import pytest
import json
from datetime import datetime, timezone

from espresense_proxy.http.response import (
    HTTPResponse,
    ResponseBuilder,
    cache_control,
    ok,
    not_found,
    error_response,
    method_not_allowed,
    internal_error,
    redirect,
    format_http_date,
)
from espresense_proxy.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=HTTPStatus.FOUND).status_line == "HTTP/1.1 302 Found"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: espresense-proxy/1.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_without_body(self):
        """Test that HEAD serialization keeps Content-Length but drops the body."""
        response = HTTPResponse(body=b"firmware")
        result = response.to_bytes(include_body=False)

        assert b"Content-Length: 8\r\n" in result
        assert result.endswith(b"\r\n\r\n")
        assert b"firmware" not in result

    def test_copy_is_independent(self):
        """Test that copies do not share headers."""
        response = HTTPResponse(headers={"X-One": "1"}, body=b"x")
        clone = response.copy()
        clone.headers["X-Two"] = "2"

        assert "X-Two" not in response.headers
        assert clone.body == response.body
        assert clone.status == response.status

    def test_is_json(self):
        """Test JSON content-type detection."""
        assert ResponseBuilder().json({}).build().is_json
        assert not ResponseBuilder().text("OK").build().is_json

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status_accepts_int(self):
        """Test that plain integers are coerced to HTTPStatus."""
        response = ResponseBuilder().status(403).build()
        assert response.status is HTTPStatus.FORBIDDEN

    def test_unknown_status_becomes_bad_gateway(self):
        """Test that unknown upstream codes are reported as 502."""
        response = ResponseBuilder().status(599).build()
        assert response.status == HTTPStatus.BAD_GATEWAY

    def test_json_body(self):
        """Test JSON body encoding keeps key order."""
        data = {"name": "ESPresense v1", "new_install_prompt_erase": True, "builds": []}
        response = ResponseBuilder().json(data).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == data
        assert list(json.loads(response.body)) == ["name", "new_install_prompt_erase", "builds"]

    def test_text_body(self):
        """Test plain text body."""
        response = ResponseBuilder().text("OK").build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == b"OK"

    def test_binary_body(self):
        """Test binary body defaults to octet-stream."""
        response = ResponseBuilder().binary(b"\xe9\x00\x01").build()

        assert response.headers["Content-Type"] == "application/octet-stream"
        assert response.body == b"\xe9\x00\x01"

    def test_redirect(self):
        """Test redirect response."""
        response = ResponseBuilder().redirect("/artifacts/download/1/esp32.bin").build()

        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "/artifacts/download/1/esp32.bin"

    def test_redirect_permanent(self):
        """Test permanent redirect."""
        response = ResponseBuilder().redirect("/new", permanent=True).build()

        assert response.status == HTTPStatus.MOVED_PERMANENTLY

    def test_cache_headers(self):
        """Test cache header setting."""
        response = ResponseBuilder().cache(max_age=300).build()
        assert response.headers["Cache-Control"] == "public, max-age=300"
        assert cache_control(86400) == "public, max-age=86400"

    def test_close_connection(self):
        """Test connection close header."""
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"


class TestConvenienceFunctions:
    """Tests for module-level helpers."""

    def test_ok_picks_content_type(self):
        """Test that ok() chooses the Content-Type from the body type."""
        assert ok({"a": 1}).is_json
        assert ok("OK").headers["Content-Type"].startswith("text/plain")
        assert ok(b"\x00", "application/octet-stream").headers["Content-Type"] == "application/octet-stream"

    def test_error_response_keeps_status(self):
        """Test JSON errors with an upstream status."""
        response = error_response("Release not found", 403)

        assert response.status == HTTPStatus.FORBIDDEN
        assert json.loads(response.body) == {"error": "Release not found"}

    def test_not_found(self):
        """Test 404 helper."""
        response = not_found("No asset found")

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "No asset found"}

    def test_method_not_allowed(self):
        """Test 405 helper sets Allow."""
        response = method_not_allowed(["GET", "HEAD"])

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_internal_error(self):
        """Test 500 helper."""
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_redirect_helper(self):
        """Test redirect() helper."""
        response = redirect("https://github.com/x")
        assert response.status == HTTPStatus.FOUND
        assert response.headers["Location"] == "https://github.com/x"

    def test_format_http_date(self):
        """Test RFC 7231 date formatting."""
        dt = datetime(2026, 10, 18, 12, 0, 5, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Sun, 18 Oct 2026 12:00:05 GMT"


class TestHTTPStatus:
    """Tests for HTTPStatus helpers."""

    @pytest.mark.parametrize("code,expected", [
        (200, HTTPStatus.OK),
        (404, HTTPStatus.NOT_FOUND),
        (429, HTTPStatus.TOO_MANY_REQUESTS),
        (418, HTTPStatus.BAD_GATEWAY),
    ])
    def test_coerce(self, code, expected):
        """Test coercion of upstream codes."""
        assert HTTPStatus.coerce(code) == expected

    def test_classification(self):
        """Test success/redirect/error properties."""
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.FOUND.is_redirect
        assert HTTPStatus.NOT_FOUND.is_error
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
