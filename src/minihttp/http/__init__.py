"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

    status_codes.py   HTTPStatus enum with reason phrases
    mime_types.py     The fixed table of servable file extensions
    response.py       HTTPResponse, ResponseBuilder, the error responder
    request.py        RequestParser, HTTPRequest, ParseOutcome, body streams
    dispatcher.py     MethodDispatcher (method → handler table)

request.py and dispatcher.py depend on minihttp.errors, which itself
depends on status_codes; import them from their modules directly:

    from minihttp.http.request import RequestParser
    from minihttp.http.dispatcher import MethodDispatcher

=============================================================================
"""

from .status_codes import HTTPStatus
from .mime_types import MIME_TYPES, get_content_type
from .response import HTTPResponse, ResponseBuilder, error_response, send_error

__all__ = [
    "HTTPStatus",
    "MIME_TYPES",
    "get_content_type",
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "send_error",
]
