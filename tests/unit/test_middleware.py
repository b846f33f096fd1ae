"""
Unit tests for CORS, pretty JSON and access logging middleware.
"""

import json
import logging

from espresense_proxy.http.request import HTTPRequest, parse_request
from espresense_proxy.http.response import ResponseBuilder, HTTPStatus
from espresense_proxy.middleware import (
    CORSConfig,
    CORSMiddleware,
    LoggingMiddleware,
    Middleware,
    MiddlewarePipeline,
    PrettyJSONMiddleware,
)


def json_handler(request):
    return ResponseBuilder().json({"name": "ESPresense v1", "builds": []}).build()


def text_handler(request):
    return ResponseBuilder().text("OK").build()


class TestMiddlewarePipeline:
    """Tests for MiddlewarePipeline ordering."""

    def test_first_added_is_outermost(self):
        """Test execution order."""
        calls = []

        class Record(Middleware):
            def __init__(self, label):
                self.label = label

            def __call__(self, request, next):
                calls.append(self.label)
                return next(request)

        pipeline = MiddlewarePipeline().add(Record("first")).add(Record("second"))
        pipeline.wrap(text_handler)(HTTPRequest(method="GET", path="/"))

        assert calls == ["first", "second"]
        assert len(pipeline) == 2


class TestCORSMiddleware:
    """Tests for CORSMiddleware."""

    def test_wildcard_origin_on_every_response(self):
        """Test that plain requests get ACAO: *."""
        response = CORSMiddleware()(HTTPRequest(method="GET", path="/"), text_handler)

        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_preflight_echoes_requested_headers(self):
        """Test a full preflight answer."""
        raw = (
            b"OPTIONS /artifacts/1.json HTTP/1.1\r\n"
            b"Origin: https://espresense.com\r\n"
            b"Access-Control-Request-Method: GET\r\n"
            b"Access-Control-Request-Headers: x-one, x-two\r\n"
            b"\r\n"
        )

        def never(request):
            raise AssertionError("preflight reached the handler")

        response = CORSMiddleware()(parse_request(raw), never)

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Access-Control-Allow-Methods"] == "GET, HEAD, POST, OPTIONS"
        assert response.headers["Access-Control-Allow-Headers"] == "x-one, x-two"
        assert response.headers["Access-Control-Max-Age"] == "86400"

    def test_plain_options(self):
        """Test OPTIONS without preflight headers."""
        response = CORSMiddleware()(HTTPRequest(method="OPTIONS", path="/"), text_handler)

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.headers["Allow"] == "GET, HEAD, POST, OPTIONS"
        assert "Access-Control-Allow-Origin" not in response.headers

    def test_allow_list(self):
        """Test that a listed origin is echoed with Vary."""
        middleware = CORSMiddleware(CORSConfig(allow_origins=["https://espresense.com"]))
        request = HTTPRequest(method="GET", path="/", headers={"origin": "https://espresense.com"})

        response = middleware(request, text_handler)

        assert response.headers["Access-Control-Allow-Origin"] == "https://espresense.com"
        assert response.headers["Vary"] == "Origin"

    def test_unlisted_origin(self):
        """Test that other origins get no CORS headers."""
        middleware = CORSMiddleware(CORSConfig(allow_origins=["https://espresense.com"]))
        request = HTTPRequest(method="GET", path="/", headers={"origin": "https://evil.example"})

        response = middleware(request, text_handler)

        assert "Access-Control-Allow-Origin" not in response.headers


class TestPrettyJSONMiddleware:
    """Tests for PrettyJSONMiddleware."""

    def test_compact_by_default(self):
        """Test that JSON stays compact without the flag."""
        response = PrettyJSONMiddleware()(HTTPRequest(method="GET", path="/"), json_handler)

        assert b"\n" not in response.body

    def test_pretty_flag(self):
        """Test indentation with ?pretty."""
        request = parse_request(b"GET /x?pretty HTTP/1.1\r\n\r\n")

        response = PrettyJSONMiddleware()(request, json_handler)

        assert response.body.decode() == json.dumps({"name": "ESPresense v1", "builds": []}, indent=2)

    def test_non_json_untouched(self):
        """Test that text bodies are left alone."""
        request = parse_request(b"GET /?pretty HTTP/1.1\r\n\r\n")

        assert PrettyJSONMiddleware()(request, text_handler).body == b"OK"


class TestLoggingMiddleware:
    """Tests for LoggingMiddleware."""

    def test_request_id_header(self):
        """Test that X-Request-ID is added."""
        response = LoggingMiddleware()(HTTPRequest(method="GET", path="/"), text_handler)

        assert len(response.headers["X-Request-ID"]) == 8

    def test_text_access_line(self, caplog):
        """Test the text log format."""
        request = parse_request(b"GET /releases/latest.json?flavor=cam HTTP/1.1\r\n\r\n")

        def cached(request):
            return ResponseBuilder().json({}).header("X-Cache", "HIT").build()

        with caplog.at_level(logging.INFO, logger="espresense_proxy.access"):
            LoggingMiddleware()(request, cached)

        line = caplog.records[-1].getMessage()
        assert '"GET /releases/latest.json?flavor=cam" 200' in line
        assert line.endswith("HIT")

    def test_json_access_line(self, caplog):
        """Test the JSON log format."""
        with caplog.at_level(logging.INFO, logger="espresense_proxy.access"):
            LoggingMiddleware(log_format="json")(HTTPRequest(method="GET", path="/x"), text_handler)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["path"] == "/x"
        assert entry["status_code"] == 200
        assert entry["cache"] == "-"

    def test_skip_paths(self, caplog):
        """Test that skipped paths are not logged."""
        with caplog.at_level(logging.INFO, logger="espresense_proxy.access"):
            LoggingMiddleware(skip_paths=["/"])(HTTPRequest(method="GET", path="/"), text_handler)

        assert not [r for r in caplog.records if r.name == "espresense_proxy.access"]
