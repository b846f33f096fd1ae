"""
=============================================================================
MIDDLEWARE
=============================================================================

    base.py          Middleware ABC and MiddlewarePipeline
    logging.py       access log lines and X-Request-ID
    cors.py          Access-Control-* headers and preflight answers
    pretty_json.py   ?pretty re-indents JSON bodies
    cache.py         TTL store, ResponseCache and per-route CacheMiddleware

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .cors import CORSMiddleware, CORSConfig
from .pretty_json import PrettyJSONMiddleware
from .cache import TTLCache, ResponseCache, CacheMiddleware

__all__ = [
    # Base
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "LoggingMiddleware",
    "RequestLog",
    "CORSMiddleware",
    "CORSConfig",
    "PrettyJSONMiddleware",
    "CacheMiddleware",

    # Stores
    "TTLCache",
    "ResponseCache",
]
