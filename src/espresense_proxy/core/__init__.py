"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

    ┌──────────────────┐  accepted   ┌──────────────┐  per worker  ┌────────────┐
    │  SocketServer    │ ──────────► │  ThreadPool  │ ───────────► │ Connection │
    │  bind/listen/    │   socket    │  queue +     │   thread     │ framing,   │
    │  accept, signals │             │  workers     │              │ keep-alive │
    └──────────────────┘             └──────────────┘              └────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
]
