#!/usr/bin/env python3
"""
Run the Lighthead HTTP service.

Usage:
    lighthead-server [--port PORT] [--host HOST] [-v]

PORT, HOST, API_KEY and VERBOSE are read from the environment (or a .env
file); the command-line flags take precedence.
"""

import logging
import sys
from dataclasses import replace

import uvicorn

from lighthead.config import Settings
from lighthead.io_utils import (
    ArgumentParsingError,
    GracefulArgumentParser,
    handle_argument_parsing_error,
    handle_unexpected_error,
    setup_logging,
)
from lighthead.server import create_app

logger = logging.getLogger(__name__)


def build_settings(args) -> Settings:
    settings = Settings()
    overrides = {}
    if args.port is not None:
        overrides["port"] = args.port
    if args.host:
        overrides["host"] = args.host
    if args.verbose:
        overrides["verbose"] = True
    return replace(settings, **overrides)


def main() -> None:
    """Main entry point."""
    parser = GracefulArgumentParser(prog="lighthead-server", description="Run the Lighthead HTTP service.")
    parser.add_argument("--port", type=int, help="Port to listen on (default: $PORT or 3005).")
    parser.add_argument("--host", help="Interface to bind (default: $HOST or 0.0.0.0).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Trace every fetch in the service log.")

    try:
        args = parser.parse_args()
        settings = build_settings(args)
        # The access log is emitted at INFO, so the service always logs at least that.
        setup_logging(True)

        logger.info(f"Lighthead API server running on port {settings.port}")
        if settings.api_key:
            logger.info("API key authentication is enabled")
        else:
            logger.info("API key authentication is disabled")
        if settings.verbose:
            logger.info("Verbose mode enabled for debugging")

        uvicorn.run(create_app(settings), host=settings.host, port=settings.port, access_log=False)
    except ArgumentParsingError as e:
        handle_argument_parsing_error(e)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Server stopped by user.")
    except Exception as e:
        handle_unexpected_error(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
