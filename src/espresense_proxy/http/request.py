"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.x request bytes into HTTPRequest objects.

The proxies only ever see small, bodiless requests from browsers running
ESP Web Tools and from curl:

    GET /releases/latest.json?flavor=cam HTTP/1.1\r\n
    Host: espresense.com\r\n
    Origin: https://espresense.com\r\n
    \r\n

    ─┬─ ──────────┬───────── ────┬─────
     │            │              │
   Method        URI          Version
                  │
        ┌─────────┴─────────┐
      Path              Query string
  /releases/latest.json   flavor=cam

The query string matters more than usual here: it is part of the response
cache key, and an empty value (?flavor=) or a bare flag (?pretty) must
survive parsing, so blank values are kept.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the client should receive:

        400 Bad Request                 malformed syntax
        405 Method Not Allowed          unknown method
        413 Payload Too Large           request over the size limit
        505 HTTP Version Not Supported  not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Headers are stored with lower-case names; HTTP header names are case
    insensitive and normalizing once saves a .lower() at every lookup.

    query_params maps a name to every value it was given:
        "?a=1&a=2&b=" → {"a": ["1", "2"], "b": [""]}

    path is percent-decoded; raw_path keeps the bytes the client sent and is
    what the router matches on, so "feature%2Fble" stays one segment.

    path_params is filled in by the router (values decoded):
        route "/download/:tag/:filename" + "/download/v3/esp32.bin"
        → {"tag": "v3", "filename": "esp32.bin"}
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    raw_path: str = ""

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    query_string: str = ""
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)

    @property
    def url(self) -> str:
        """
        Path plus query string, as the client sent it.

        This is the response cache key: two requests for the same manifest
        with different flavors must never share an entry.
        """
        path = self.raw_path or self.path
        if self.query_string:
            return f"{path}?{self.query_string}"
        return path

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def origin(self) -> str:
        return self.headers.get("origin", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection open unless told to close;
        HTTP/1.0 closes unless told to keep it open.
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """
        First value of a query parameter.

        Example:
            # URL: /releases/latest.json?flavor=cam&flavor=verbose
            request.get_query("flavor")  # "cam"
        """
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def has_query(self, name: str) -> bool:
        """True when the parameter is present at all, even without a value."""
        return name in self.query_params


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

        1. Size check                 too large → 413
        2. Find \\r\\n\\r\\n            missing → 400
        3. Request line               METHOD SP URI SP VERSION
        4. Header lines               "Name: value", names lower-cased
        5. Body                       exactly Content-Length bytes
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    VALID_METHODS = frozenset({
        "GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS",
    })

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data.

        Args:
            data: Raw request bytes as read from the socket.
            client_address: (ip, port) of the client, kept for access logs.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, raw_path, query_string, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=unquote(raw_path),
            version=version,
            raw_path=raw_path,
            headers=headers,
            query_params=parse_qs(query_string, keep_blank_values=True),
            query_string=query_string,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Split "GET /releases/latest.json?flavor=cam HTTP/1.1".

        Returns:
            (method, raw path, raw query string, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        parsed = urlparse(uri)
        path = parsed.path or "/"

        # Path segments are decoded and interpolated into upstream URLs
        if ".." in unquote(path):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, path, parsed.query, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-case names.

        Repeated headers are joined with ", " as RFC 7230 allows;
        obsolete line folding (leading whitespace) continues the
        previous header. Malformed lines are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """Parse a request in one call with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
