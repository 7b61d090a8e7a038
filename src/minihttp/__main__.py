"""
=============================================================================
COMMAND-LINE ENTRY POINTS
=============================================================================

    minihttp-server PORT [--root DIR] [options]
    minihttp-proxy  PORT [--connect-timeout S] [options]

    python -m minihttp server PORT ...
    python -m minihttp proxy PORT ...

Exit status:
    0   stopped by SIGINT/SIGTERM
    1   could not bind the port
    2   bad arguments or configuration (argparse)

Flags override MINIHTTP_* environment variables, which override the
defaults in ServerConfig.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .logging import setup_logging
from .server import create_file_server, create_proxy


logger = logging.getLogger("minihttp")


def port_number(value: str) -> int:
    """argparse type for PORT: an integer in 0-65535 (0 = any free port)."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port < 65536:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def _add_common_arguments(parser: argparse.ArgumentParser):
    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("port", metavar="PORT", type=port_number, help="Port to listen on")
    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind (default: 0.0.0.0, all interfaces)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-connections", "-c",
        type=int,
        default=None,
        help="Connections handled at once (default: 10; 0 = no limit)",
    )
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Client socket timeout in seconds (default: 30)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"minihttp {__version__}")


def build_server_parser(parser: Optional[argparse.ArgumentParser] = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser(
        prog="minihttp-server",
        description="Static file server: GET serves files, POST stores them.",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Directory to serve and store files in (default: .)",
    )
    parser.set_defaults(program="server")
    return parser


def build_proxy_parser(parser: Optional[argparse.ArgumentParser] = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser(
        prog="minihttp-proxy",
        description="Forwarding HTTP proxy (GET only).",
    )
    _add_common_arguments(parser)
    parser.add_argument(
        "--connect-timeout",
        type=float,
        default=None,
        help="Upstream connect timeout in seconds (default: 10)",
    )
    parser.add_argument(
        "--upstream-timeout",
        type=float,
        default=None,
        help="Upstream read/write timeout in seconds (default: 30)",
    )
    parser.set_defaults(program="proxy")
    return parser


def build_parser() -> argparse.ArgumentParser:
    """Parser for `python -m minihttp {server,proxy} PORT ...`."""
    parser = argparse.ArgumentParser(
        prog="python -m minihttp",
        description="Minimal HTTP file server and forwarding proxy.",
    )
    subparsers = parser.add_subparsers(dest="program", metavar="{server,proxy}")
    subparsers.required = True
    build_server_parser(subparsers.add_parser("server", help="Run the file server"))
    build_proxy_parser(subparsers.add_parser("proxy", help="Run the forwarding proxy"))
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Merge parsed arguments over the environment.

    Raises:
        ValueError: An environment value or flag combination is invalid.
    """
    config = ServerConfig.from_env(
        port=args.port,
        host=args.host,
        max_connections=args.max_connections,
        timeout=args.timeout,
        log_level=args.log_level,
        log_format=args.log_format,
        root_dir=getattr(args, "root", None),
        connect_timeout=getattr(args, "connect_timeout", None),
        upstream_timeout=getattr(args, "upstream_timeout", None),
    )
    config.validate()
    return config


def run(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    setup_logging(config.log_level)

    factory = create_file_server if args.program == "server" else create_proxy
    server = factory(config)
    try:
        server.run()
    except OSError as e:
        logger.error(f"Failed to listen on {config.host}:{config.port}: {e}")
        return 1
    return 0


def server_main(argv: Optional[List[str]] = None) -> int:
    parser = build_server_parser()
    return run(parser.parse_args(argv), parser)


def proxy_main(argv: Optional[List[str]] = None) -> int:
    parser = build_proxy_parser()
    return run(parser.parse_args(argv), parser)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    return run(parser.parse_args(argv), parser)


if __name__ == "__main__":
    sys.exit(main())
