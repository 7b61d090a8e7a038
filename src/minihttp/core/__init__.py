"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing shared by the file server and the proxy.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Binds IP:PORT (failure is fatal) and runs the accept loop        │
    │  • One daemon thread per admitted connection                        │
    │  • SIGTERM/SIGINT → graceful stop of the accept loop                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ asks for a slot before each thread
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                        CONCURRENCY GATE                              │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Counting semaphore, capacity 10 by default                       │
    │  • Full? The accept loop waits; clients queue in the backlog        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ handler thread owns
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Buffered reader for the parser, send helpers, sendfile           │
    │  • Exactly one request, then close (no keep-alive)                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .gate import ConcurrencyGate

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ConcurrencyGate",
]
