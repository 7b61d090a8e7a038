"""
=============================================================================
METHOD DISPATCHER
=============================================================================

Routes a parsed request to a handler by method alone. There are no paths
to match: the file server maps every path to the filesystem and the proxy
forwards every target, so the only routing decision is the method.

    ┌─────────────┬──────────────────────┬──────────────────────┐
    │ Method      │ File server          │ Proxy                │
    ├─────────────┼──────────────────────┼──────────────────────┤
    │ GET         │ StaticFileHandler    │ ProxyForwarder       │
    │ POST        │ StaticFileHandler    │ 501 Not Implemented  │
    │ (anything)  │ 501 Not Implemented  │ 501 Not Implemented  │
    └─────────────┴──────────────────────┴──────────────────────┘

The dispatch is total: every method token has exactly one outcome.
Method tokens are case-sensitive (RFC 7231), so "get" is not GET.

=============================================================================
"""

import logging
from typing import Callable, Dict, List, Optional

from ..errors import UnsupportedMethod
from .request import HTTPRequest


logger = logging.getLogger(__name__)


# A handler writes its own response to the connection and returns nothing.
Handler = Callable[[HTTPRequest, "Connection"], None]


class MethodDispatcher:
    """
    Flat method → handler table.

    Usage:
        dispatcher = MethodDispatcher()
        dispatcher.register("GET", files.handle_get)
        dispatcher.register("POST", files.handle_post)

        dispatcher.dispatch(request, conn)   # raises UnsupportedMethod for PUT
    """

    def __init__(self, handlers: Optional[Dict[str, Handler]] = None):
        self._handlers: Dict[str, Handler] = dict(handlers or {})

    def register(self, method: str, handler: Handler) -> "MethodDispatcher":
        """Register a handler for a method. Returns self for chaining."""
        self._handlers[method] = handler
        return self

    @property
    def methods(self) -> List[str]:
        return sorted(self._handlers)

    def resolve(self, method: str) -> Handler:
        """
        Look up the handler for a method.

        Raises:
            UnsupportedMethod: No handler is registered (→ 501).
        """
        handler = self._handlers.get(method)
        if handler is None:
            logger.info(f"Unsupported method: {method}")
            raise UnsupportedMethod()
        return handler

    def dispatch(self, request: HTTPRequest, conn) -> None:
        handler = self.resolve(request.method)
        handler(request, conn)
