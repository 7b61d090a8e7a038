"""
=============================================================================
REQUEST HANDLERS
=============================================================================

A handler takes (request, connection), writes its own response, and
raises an HTTPError subclass for anything that should become an error
response.

    static.py   StaticFileHandler   GET serves a file, POST stores one
    proxy.py    ProxyForwarder      GET forwarded to the origin, relayed back

=============================================================================
USAGE
=============================================================================

    from minihttp.handlers import StaticFileHandler, ProxyForwarder

    files = StaticFileHandler("./public")
    dispatcher.register("GET", files.handle_get)
    dispatcher.register("POST", files.handle_post)

    proxy = ProxyForwarder(connect_timeout=10.0)
    dispatcher.register("GET", proxy.handle)

=============================================================================
"""

from .static import StaticFileHandler
from .proxy import ProxyForwarder, ProxyTarget, resolve_target, split_host_port

__all__ = [
    "StaticFileHandler",
    "ProxyForwarder",
    "ProxyTarget",
    "resolve_target",
    "split_host_port",
]
