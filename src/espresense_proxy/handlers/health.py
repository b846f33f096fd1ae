"""
Root endpoint.

    GET /  →  200 text/plain "OK"

Uptime monitors and the deployment smoke test poke this path. It never
touches GitHub and is never cached.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder


def health(request: HTTPRequest) -> HTTPResponse:
    return (ResponseBuilder()
        .text("OK")
        .header("Cache-Control", "no-store")
        .build())
