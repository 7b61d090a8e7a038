"""
=============================================================================
LOGGING SETUP AND ACCESS LOG
=============================================================================

Two kinds of log output:

    minihttp.*          diagnostic logs, one logger per module
                        (logging.getLogger(__name__))
    minihttp.access     exactly ONE record per handled connection

=============================================================================
ACCESS LOG FORMATS
=============================================================================

    TEXT (default, Apache-like):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [19/Oct/2026:10:55:36 +0000] "GET /a.txt" 200 12 1.40ms│
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"connection_id": "a1b2c3d4", "method": "GET", "target": "/a.txt", │
    │  "client_ip": "127.0.0.1", "status_code": 200, "bytes_sent": 12,   │
    │  "duration_ms": 1.4, "outcome": "success", ...}                    │
    └─────────────────────────────────────────────────────────────────────┘

Connections that never produced a request (client connected and left)
are logged with method "-" and status 0, so the record count always
equals the connection count.

=============================================================================
"""

import json
import time
import logging
from dataclasses import dataclass
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

access_logger = logging.getLogger("minihttp.access")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, at program start.

    Library code never calls this; only the CLI does.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logging.getLogger("minihttp").setLevel(numeric)


@dataclass
class AccessLog:
    """
    One access log record.

    Fields:
        connection_id:  Connection.id, ties the record to diagnostic logs
        method:         Request method, "-" if none was parsed
        target:         Raw request-target, "-" if none was parsed
        client_ip:      Peer address
        status_code:    Status of the response head we wrote; 0 = none
                        (benign disconnect, or a relayed proxy response)
        bytes_sent:     Bytes written to the client
        duration_ms:    Time from accept to the end of handling
        outcome:        success | benign | malformed | error
        timestamp:      Apache-style timestamp
    """

    connection_id: str
    method: str
    target: str
    client_ip: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    outcome: str
    timestamp: str

    @classmethod
    def from_connection(cls, conn, request=None, outcome: str = "success") -> "AccessLog":
        return cls(
            connection_id=conn.id,
            method=request.method if request is not None else "-",
            target=request.target if request is not None else "-",
            client_ip=conn.client_ip,
            status_code=conn.response_status or 0,
            bytes_sent=conn.bytes_sent,
            duration_ms=conn.age * 1000,
            outcome=outcome,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def to_dict(self) -> dict:
        return {
            "connection_id": self.connection_id,
            "method": self.method,
            "target": self.target,
            "client_ip": self.client_ip,
            "status_code": self.status_code,
            "bytes_sent": self.bytes_sent,
            "duration_ms": round(self.duration_ms, 2),
            "outcome": self.outcome,
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        status = self.status_code or "-"
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.target}" {status} '
            f'{self.bytes_sent} {self.duration_ms:.2f}ms'
        )


class AccessLogger:
    """
    Emits AccessLog records in the configured format.

        access = AccessLogger(log_format="json")
        access.log(AccessLog.from_connection(conn, request))
    """

    def __init__(self, log_format: str = "text", logger: Optional[logging.Logger] = None):
        self.log_format = log_format
        self.logger = logger or access_logger

    def format(self, entry: AccessLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        return entry.to_text()

    def log(self, entry: AccessLog) -> None:
        self.logger.info(self.format(entry))
