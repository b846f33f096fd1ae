"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTPResponse objects and serializes them to bytes.

The proxies answer with only four shapes of response:

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │ Shape                │ Example                                      │
    ├──────────────────────┼──────────────────────────────────────────────┤
    │ JSON manifest        │ 200 {"name": "ESPresense v3.2", "builds":..} │
    │ Redirect             │ 302 Location: https://github.com/.../x.bin   │
    │ Firmware binary      │ 200 application/octet-stream                 │
    │ JSON error           │ 404 {"error": "Release not found"}           │
    └──────────────────────┴──────────────────────────────────────────────┘

plus the "OK" text on "/". Everything else (CORS, Cache-Control,
X-Request-ID) is layered on by middleware.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    An HTTP response on its way to the client.

    Mutable on purpose: middleware adds headers after the handler returns.
    Anything that keeps a response around (the response cache) must store
    a copy().
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. 'HTTP/1.1 302 Found'"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def content_type(self) -> str:
        return self.headers.get("Content-Type", "")

    @property
    def is_json(self) -> bool:
        return self.content_type.startswith("application/json")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def copy(self) -> "HTTPResponse":
        """Independent copy: new header dict, same immutable body bytes."""
        return HTTPResponse(
            status=self.status,
            headers=dict(self.headers),
            body=self.body,
            version=self.version,
        )

    def to_bytes(
        self,
        server_name: str = "espresense-proxy/1.0",
        include_body: bool = True,
    ) -> bytes:
        """
        Serialize the response for socket.sendall().

            HTTP/1.1 200 OK\\r\\n
            Content-Type: application/json; charset=utf-8\\r\\n
            Content-Length: 27\\r\\n          ← auto
            Date: Sun, 18 Oct 2026 ...\\r\\n   ← auto
            Server: espresense-proxy/1.0\\r\\n ← auto
            \\r\\n
            {"name": "ESPresense ..."}

        Args:
            server_name: Value for the Server header.
            include_body: False for HEAD; headers (including Content-Length)
                          still describe the body a GET would receive.
        """
        response_headers = dict(self.headers)

        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + (self.body if include_body else b"")


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.FOUND)
            .redirect(asset.browser_download_url)
            .cache(300)
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus.coerce(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Serialize data as the JSON body.

        Keys keep insertion order, so a manifest is emitted as
        name, new_install_prompt_erase, builds.
        """
        indent = 2 if pretty else None
        self._body = json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def binary(
        self,
        content: bytes,
        content_type: str = "application/octet-stream"
    ) -> "ResponseBuilder":
        """Firmware images and other opaque downloads."""
        self._body = content
        self._headers["Content-Type"] = content_type
        return self

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """302 Found (or 301 when permanent) with a Location header."""
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def cache(self, max_age: int) -> "ResponseBuilder":
        """Cache-Control: public, max-age=<seconds>"""
        self._headers["Cache-Control"] = cache_control(max_age)
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def cache_control(max_age: int) -> str:
    return f"public, max-age={max_age}"


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an RFC 7231 HTTP-date.

    Example: Sun, 18 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK with a body whose type picks the Content-Type:
    dict/list → JSON, str → text/plain, bytes → as given.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)

    return builder.build()


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def error_response(message: str, status: Union[HTTPStatus, int]) -> HTTPResponse:
    """
    JSON error body with an arbitrary status.

    Used to forward upstream failures: a 403 from a rate-limited GitHub
    reaches the client as 403 {"error": "Release not found"}.
    """
    return ResponseBuilder().status(status).json({"error": message}).build()


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(message, HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 7231 requires."""
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return error_response(message, HTTPStatus.INTERNAL_SERVER_ERROR)
