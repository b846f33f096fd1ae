"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

The flasher page (ESP Web Tools) runs in the browser on another origin and
fetches manifests and firmware with fetch(). Without CORS headers the
browser refuses to hand the bytes to the page.

Every response gets:

    Access-Control-Allow-Origin: *

Preflight (OPTIONS) requests are answered here, without touching the
router:

    OPTIONS /releases/latest.json
    Origin: https://espresense.com
    Access-Control-Request-Method: GET
    Access-Control-Request-Headers: x-flasher

    204 No Content
    Access-Control-Allow-Origin: *
    Access-Control-Allow-Methods: GET, HEAD, POST, OPTIONS
    Access-Control-Allow-Headers: x-flasher      ← echoed back
    Access-Control-Max-Age: 86400

An OPTIONS request that is not a real preflight (no Origin or no
Access-Control-Request-* headers) just gets an Allow header.

=============================================================================
"""

from typing import Optional, List
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


@dataclass
class CORSConfig:
    """
    CORS configuration.

    The defaults are what a public firmware mirror wants: any origin, read
    methods only, no credentials.
    """

    allow_origins: List[str] = None
    allow_methods: List[str] = None

    # None echoes whatever the browser asked for in the preflight
    allow_headers: Optional[List[str]] = None

    expose_headers: List[str] = None
    max_age: int = 86400

    def __post_init__(self):
        if self.allow_origins is None:
            self.allow_origins = ["*"]
        if self.allow_methods is None:
            self.allow_methods = ["GET", "HEAD", "POST", "OPTIONS"]
        if self.expose_headers is None:
            self.expose_headers = []


class CORSMiddleware(Middleware):
    """
    Adds CORS headers to every response and answers preflight requests.

        server.use(LoggingMiddleware())
        server.use(CORSMiddleware())
    """

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        origin = request.origin

        if request.method == "OPTIONS":
            if self._is_preflight(request):
                return self._handle_preflight(request, origin)
            return (ResponseBuilder()
                .status(HTTPStatus.NO_CONTENT)
                .header("Allow", ", ".join(self.config.allow_methods))
                .build())

        response = next(request)
        self._add_cors_headers(response, origin)
        return response

    @staticmethod
    def _is_preflight(request: HTTPRequest) -> bool:
        return bool(
            request.get_header("origin")
            and request.get_header("access-control-request-method")
            and request.get_header("access-control-request-headers")
        )

    def _handle_preflight(self, request: HTTPRequest, origin: str) -> HTTPResponse:
        response = ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()
        self._add_cors_headers(response, origin)

        response.headers["Access-Control-Allow-Methods"] = ", ".join(self.config.allow_methods)

        if self.config.allow_headers is None:
            allowed_headers = request.get_header("access-control-request-headers")
        else:
            allowed_headers = ", ".join(self.config.allow_headers)
        response.headers["Access-Control-Allow-Headers"] = allowed_headers

        response.headers["Access-Control-Max-Age"] = str(self.config.max_age)
        return response

    def _add_cors_headers(self, response: HTTPResponse, origin: str):
        """
        Wildcard config answers "*"; an allow list echoes the matching
        origin and adds Vary: Origin so shared caches keep them apart.
        Unlisted origins get no CORS headers and the browser blocks them.
        """
        if "*" in self.config.allow_origins:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in self.config.allow_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            vary = response.headers.get("Vary", "")
            if "Origin" not in vary:
                response.headers["Vary"] = f"{vary}, Origin".lstrip(", ")
        else:
            return

        if self.config.expose_headers:
            response.headers["Access-Control-Expose-Headers"] = ", ".join(
                self.config.expose_headers
            )
