"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this project actually puts on the wire, with their
standard reason phrases.

=============================================================================
WHO SENDS WHAT
=============================================================================

    ┌──────┬──────────────────────────┬────────────────────────────────────┐
    │ Code │ Phrase                   │ Sent when                          │
    ├──────┼──────────────────────────┼────────────────────────────────────┤
    │ 200  │ OK                       │ file served                        │
    │ 201  │ Created                  │ POST body stored                   │
    │ 400  │ Bad Request              │ malformed request, bad file type,  │
    │      │                          │ missing/invalid proxy host         │
    │ 404  │ Not Found                │ file does not exist                │
    │ 413  │ Payload Too Large        │ POST body over the size cap        │
    │ 500  │ Internal Server Error    │ filesystem failure                 │
    │ 501  │ Not Implemented          │ any method without a handler       │
    │ 502  │ Bad Gateway              │ upstream connect/write/read failed │
    │ 504  │ Gateway Timeout          │ upstream deadline expired          │
    └──────┴──────────────────────────┴────────────────────────────────────┘

Note the proxy never synthesizes a 2xx: successful upstream responses are
relayed verbatim, status line included.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Extends IntEnum so a status compares equal to its integer code:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404
    PAYLOAD_TOO_LARGE = 413

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    GATEWAY_TIMEOUT = 504

    @property
    def phrase(self) -> str:
        """
        Get the reason phrase for this status code.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── Reason phrase
                      └───────── Status code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_success(self) -> bool:
        """Check if this is a 2xx status."""
        return 200 <= self < 300

    @property
    def is_client_error(self) -> bool:
        """Check if this is a 4xx status."""
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        """Check if this is a 5xx status."""
        return 500 <= self < 600


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
}
