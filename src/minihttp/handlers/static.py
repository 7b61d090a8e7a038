"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

GET serves a file from the root directory; POST stores the request body
as a file under it.

=============================================================================
URL PATH → FILE PATH
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   GET /docs/../a.txt                                                 │
    │        │                                                             │
    │        ├── posixpath.normpath("/docs/../a.txt")  → "/a.txt"          │
    │        ├── strip the leading "/"                 → "a.txt"           │
    │        └── join with root_dir                    → "<root>/a.txt"    │
    │                                                                      │
    │   GET /../../etc/passwd                                              │
    │        └── normpath("/../../etc/passwd")         → "/etc/passwd"     │
    │            → "<root>/etc/passwd"   (".." cannot climb above "/")    │
    │                                                                      │
    │   GET /                                                              │
    │        └── "<root>/index.html"                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Normalising against "/" BEFORE joining is what keeps every request inside
the root: the result of normpath on an absolute path can never start
with "..".

=============================================================================
GET: CHECK ORDER
=============================================================================

    1. Extension in the MIME table?   no → 400 Unsupported file type
                                      (decided without touching the disk)
    2. Open the file                  missing / a directory → 404
                                      anything else        → 500
    3. fstat for Content-Length       failure              → 500
    4. Head, then the body via socket.sendfile()

POST has no extension check and no index default: the body is written
to exactly the path that was asked for, creating parent directories.

=============================================================================
"""

import os
import logging
import posixpath

from ..errors import (
    IncompleteBody, InternalIOError, ResourceNotFound, UnsupportedFileType,
)
from ..http.mime_types import get_content_type, get_extension
from ..http.request import HTTPRequest
from ..http.response import ResponseBuilder
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    GET and POST against a directory tree.

    Usage:
        files = StaticFileHandler("./public")
        dispatcher.register("GET", files.handle_get)
        dispatcher.register("POST", files.handle_post)

    Failures are raised as HTTPError subclasses; the pipeline turns them
    into error responses.
    """

    INDEX_FILE = "index.html"
    DIR_MODE = 0o755

    def __init__(self, root_dir: str = ".", buffer_size: int = 8192):
        """
        Args:
            root_dir: Directory URL paths resolve against. Need not exist
                      yet: a POST creates it.
            buffer_size: Chunk size for writing uploaded bodies.
        """
        self.root_dir = os.path.abspath(root_dir)
        self.buffer_size = buffer_size

    # =========================================================================
    # PATH MAPPING
    # =========================================================================

    def resolve_path(self, url_path: str, use_index: bool = True) -> str:
        """
        Map a decoded URL path to a filesystem path under root_dir.

        Args:
            url_path: Decoded request path, e.g. "/docs/a.txt".
            use_index: Map "/" to index.html (GET only).
        """
        normalized = posixpath.normpath("/" + url_path.lstrip("/"))
        relative = normalized.lstrip("/")
        if not relative and use_index:
            relative = self.INDEX_FILE
        return os.path.join(self.root_dir, *relative.split("/")) if relative else self.root_dir

    # =========================================================================
    # GET
    # =========================================================================

    def handle_get(self, request: HTTPRequest, conn) -> None:
        path = self.resolve_path(request.path)

        content_type = get_content_type(path)
        if content_type is None:
            logger.info(f"[{conn.id}] Unsupported file type: {get_extension(path)!r} (path: {path})")
            raise UnsupportedFileType()

        try:
            file = open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            logger.info(f"[{conn.id}] File not found: {path}")
            raise ResourceNotFound()
        except OSError as e:
            logger.error(f"[{conn.id}] Failed to open file: {e}")
            raise InternalIOError()

        with file:
            try:
                size = os.fstat(file.fileno()).st_size
            except OSError as e:
                logger.error(f"[{conn.id}] Failed to stat file: {e}")
                raise InternalIOError()

            head = (ResponseBuilder()
                .status(HTTPStatus.OK)
                .content_type(content_type)
                .content_length(size)
                .close_connection()
                .build()
                .head_bytes())

            conn.response_status = int(HTTPStatus.OK)
            try:
                conn.send(head)
                sent = conn.send_file(file, count=size) if size else 0
            except OSError as e:
                # Head may be out already; nothing more can be said to the client
                logger.warning(f"[{conn.id}] Failed to send file body: {e}")
                return

        logger.debug(f"[{conn.id}] Served {sent} bytes from {path}")

    # =========================================================================
    # POST
    # =========================================================================

    def handle_post(self, request: HTTPRequest, conn) -> None:
        path = self.resolve_path(request.path, use_index=False)

        try:
            os.makedirs(os.path.dirname(path), mode=self.DIR_MODE, exist_ok=True)
        except OSError as e:
            logger.error(f"[{conn.id}] Failed to create directory: {e}")
            raise InternalIOError()

        try:
            file = open(path, "wb")
        except OSError as e:
            logger.error(f"[{conn.id}] Failed to create file: {e}")
            raise InternalIOError()

        with file:
            written = self._copy_body(request.body, file, conn)

        logger.info(f"[{conn.id}] Successfully POSTed {written} bytes to {path}")

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .content_type("text/plain")
            .content_length(0)
            .close_connection()
            .build())
        conn.response_status = int(HTTPStatus.CREATED)
        conn.send_quietly(response.to_bytes())

    def _copy_body(self, body, file, conn) -> int:
        """
        Stream the request body into `file` in buffer_size chunks.

        Socket errors while reading mean the client stopped sending: that
        is an incomplete body (400). Errors while writing are ours (500).
        """
        written = 0
        while True:
            try:
                chunk = body.read(self.buffer_size)
            except OSError as e:
                raise IncompleteBody(f"Client stopped sending body: {e}")
            if not chunk:
                return written
            try:
                file.write(chunk)
            except OSError as e:
                logger.error(f"[{conn.id}] Failed to write to file: {e}")
                raise InternalIOError()
            written += len(chunk)
