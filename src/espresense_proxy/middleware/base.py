"""
=============================================================================
MIDDLEWARE BASE CLASSES
=============================================================================

Middleware wraps the router like layers of an onion. The proxies use:

        ┌─────────────────────────────────────────────────────────┐
        │  LoggingMiddleware        access line, X-Request-ID     │
        │  ┌───────────────────────────────────────────────────┐  │
        │  │  CORSMiddleware        preflight, Allow-Origin     │  │
        │  │  ┌─────────────────────────────────────────────┐  │  │
        │  │  │  PrettyJSONMiddleware   ?pretty              │  │  │
        │  │  │  ┌─────────────────────────────────────┐    │  │  │
        │  │  │  │  router.handle                      │    │  │  │
        │  │  │  │    └── CacheMiddleware (per route)  │    │  │  │
        │  │  │  │          └── handler                │    │  │  │
        │  │  │  └─────────────────────────────────────┘    │  │  │
        │  │  └─────────────────────────────────────────────┘  │  │
        │  └───────────────────────────────────────────────────┘  │
        └─────────────────────────────────────────────────────────┘

The cache sits innermost, per route, so a cached entry holds the
handler's response without CORS headers or a request id: those are added
fresh to every answer on the way out.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the final handler
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Base class for middleware.

        class AddHeader(Middleware):
            def __call__(self, request, next):
                response = next(request)      # continue the chain
                response.set_header("X-Proxy", "espresense")
                return response

    Not calling next() short-circuits the chain; CORS preflight and cache
    hits do exactly that.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """Process the request, usually by calling next(request)."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware around a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware()).add(CORSMiddleware())
        handler = pipeline.wrap(router.handle)

    First added is outermost: it sees the request first and the response
    last.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain.

        Given [MW1, MW2] and handler, wrapping in reverse order gives
        MW1 → MW2 → handler.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
