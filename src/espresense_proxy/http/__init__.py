"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    request.py       raw bytes → HTTPRequest
    response.py      HTTPResponse, ResponseBuilder, ok/redirect/not_found...
    router.py        path patterns → handlers, per-route middleware
    status_codes.py  HTTPStatus with reason phrases and coerce()

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    cache_control,
    ok,
    no_content,
    redirect,
    error_response,
    not_found,
    method_not_allowed,
    internal_error,
)
from .router import Router, Route, RouteMatch
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "cache_control",
    "ok",
    "no_content",
    "redirect",
    "error_response",
    "not_found",
    "method_not_allowed",
    "internal_error",

    # Routing
    "Router",
    "Route",
    "RouteMatch",

    # Status codes
    "HTTPStatus",
]
