"""
=============================================================================
URL ROUTER
=============================================================================

Maps request paths to handlers. Both proxies are small route tables:

    GET  /                                          → health
    GET  /releases/:tag.json                        → release manifest
    GET  /releases/download/:tag/:filename          → release asset bytes
    GET  /releases/latest-any/download/:filename    → newest asset redirect
    ANY  /artifacts/latest/download/:branch/:bin    → newest run redirect
    ANY  /artifacts/download/runs/:run_id/:sha/:bin → artifact id redirect
    GET  /artifacts/download/:artifact_id{[0-9]+}/* → unzipped firmware
    GET  /artifacts/:run_id{[0-9]+}.json            → run manifest

=============================================================================
SEGMENT SYNTAX
=============================================================================

    users            static, exact match
    :id              one segment             → (?P<id>[^/]+)
    :id{[0-9]+}      one constrained segment → (?P<id>[0-9]+)
    :tag.json        parameter plus suffix   → (?P<tag>[^/]+)\\.json
    *path            rest of the path        → (?P<path>.*)

The suffix form is what lets "/releases/v3.2.1.json" yield tag="v3.2.1":
the parameter is greedy but has to leave ".json" for the literal suffix.

Routes are tried in registration order and the first match wins, so the
more specific "/download/runs/..." route is registered before the
"/download/:artifact_id/*" catch-all.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List, Sequence
from urllib.parse import unquote
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


# Handler: request in, response out
Handler = Callable[[HTTPRequest], HTTPResponse]

# Route middleware: same contract as middleware.base.Middleware.__call__
RouteMiddleware = Callable[[HTTPRequest, Handler], HTTPResponse]

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

_PARAM_SEGMENT = re.compile(
    r"^:(?P<name>[A-Za-z_][A-Za-z0-9_]*)"   # :tag
    r"(?:\{(?P<regex>[^}]+)\})?"            # optional {[0-9]+}
    r"(?P<suffix>.*)$"                      # optional literal suffix (.json)
)


@dataclass
class Route:
    """
    A registered route.

        Route(
            path="/releases/:tag.json",
            method="GET",
            handler=release_manifest,
            middleware=[],
            _pattern=re.compile(r"^/releases/(?P<tag>[^/]+)\\.json$"),
        )

    endpoint is the handler wrapped in its route middleware; it is what
    the router actually calls.
    """

    path: str
    method: Optional[str]               # None = any method
    handler: Handler
    name: Optional[str] = None
    middleware: List[RouteMiddleware] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)
    endpoint: Optional[Handler] = field(default=None, repr=False)

    def accepts(self, method: str) -> bool:
        """GET routes also serve HEAD; the server drops the body."""
        if self.method is None or self.method == method:
            return True
        return method == "HEAD" and self.method == "GET"


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router with path parameters and per-route middleware.

        router = Router()

        @router.get("/:tag.json", middleware=[cache_for(300)])
        def manifest(request):
            tag = request.path_params["tag"]
            ...

        app_router.include("/releases", router)
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        middleware: Optional[Sequence[RouteMiddleware]] = None,
        **meta: Any
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern, e.g. "/download/:tag/:filename".
            handler: Function taking a request and returning a response.
            method: HTTP method, or None for any method.
            name: Optional route name (shows up in route listings).
            middleware: Route-level middleware, outermost first.
            **meta: Free-form metadata kept on the Route.

        Returns:
            The registered Route.
        """
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)
        route_middleware = list(middleware or [])

        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            middleware=route_middleware,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
            endpoint=self._wrap(handler, route_middleware),
        )

        self._routes.append(route)
        return route

    @staticmethod
    def _wrap(handler: Handler, middleware: List[RouteMiddleware]) -> Handler:
        """Fold route middleware around the handler, first entry outermost."""
        current = handler
        for mw in reversed(middleware):
            current = _bind(mw, current)
        return current

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a path pattern into an anchored regex.

        "/artifacts/:run_id{[0-9]+}.json"
            → ^/artifacts/(?P<run_id>[0-9]+)\\.json$
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                match = _PARAM_SEGMENT.match(segment)
                if not match:
                    raise ValueError(f"Invalid route segment {segment!r} in {path!r}")
                param_name = match.group("name")
                param_regex = match.group("regex") or "[^/]+"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>{param_regex})")
                regex_parts.append(re.escape(match.group("suffix")))

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.*)")
                break  # wildcard consumes the rest

            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")  # the root route

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        First route whose method and pattern both match, or None.

        path is matched as sent (still percent-encoded) and each captured
        value is decoded afterwards, so "/download/feature%2Fble/esp32.bin"
        gives branch="feature/ble" instead of an extra segment.
        """
        path = self._normalize(path)
        method = method.upper()

        for route in self._routes:
            if not route.accepts(method):
                continue

            match = route._pattern.match(path)
            if match:
                return RouteMatch(route=route, params={
                    name: unquote(value) for name, value in match.groupdict().items()
                })

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods with a route for this path, for the 405 Allow header."""
        path = self._normalize(path)
        methods = set()

        for route in self._routes:
            if route._pattern.match(path):
                if route.method is None:
                    return list(ALL_METHODS)
                methods.add(route.method)
                if route.method == "GET":
                    methods.add("HEAD")

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Dispatch a request.

        Match → inject path_params → call the route endpoint.
        No route: 405 if the path exists under another method, else 404.
        """
        path = request.raw_path or request.path
        match = self.match(request.method, path)

        if match:
            request.path_params = match.params
            return match.route.endpoint(request)

        allowed = self.get_allowed_methods(path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATOR-STYLE ROUTE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
        middleware: Optional[Sequence[RouteMiddleware]] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for registering routes.

            @router.route("/latest/download/:branch/:bin")   # any method
            def latest(request):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, middleware, **meta)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None,
            middleware: Optional[Sequence[RouteMiddleware]] = None,
            **meta: Any) -> Callable[[Handler], Handler]:
        """Register a GET (and HEAD) route."""
        return self.route(path, "GET", name, middleware, **meta)

    # =========================================================================
    # ROUTER COMPOSITION
    # =========================================================================

    def include(self, prefix: str, router: "Router") -> None:
        """
        Mount another router's routes under a prefix.

            releases = Router()
            releases.get("/:tag.json")(manifest)
            app.include("/releases", releases)   # → /releases/:tag.json

        Routes are copied at include time, so register them first.
        """
        for route in router.routes():
            self.add_route(
                prefix.rstrip("/") + route.path,
                route.handler,
                route.method,
                route.name,
                route.middleware,
                **route.meta
            )

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def routes(self) -> List[Route]:
        return list(self._routes)


def _bind(middleware: RouteMiddleware, next_handler: Handler) -> Handler:
    def wrapped(request: HTTPRequest) -> HTTPResponse:
        return middleware(request, next_handler)
    return wrapped
