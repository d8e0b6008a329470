#!/usr/bin/env python3
"""Serve a health endpoint with the server TLS configuration from settings."""

import argparse
import json
import sys
from http.server import BaseHTTPRequestHandler
from pathlib import Path

from tls_debug.lib.config import load_settings
from tls_debug.lib.errors import TLSMaterialError
from tls_debug.lib.logging_config import LOGGER, set_debug
from tls_debug.lib.server import TLSServer


class HealthHandler(BaseHTTPRequestHandler):
    """Answer every GET with a JSON status and the client certificate subject."""

    def do_GET(self) -> None:  # noqa: N802
        peer_cert = getattr(self.connection, "getpeercert", lambda: None)()
        subject = dict(item[0] for item in peer_cert["subject"]) if peer_cert else None
        body = json.dumps({"status": "healthy", "client": subject}).encode("utf-8")

        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        LOGGER.debug(format, *args)


def main() -> int:
    """Start the server.

    Returns:
        Exit code (0 after a clean shutdown, 1 on configuration failure)
    """
    parser = argparse.ArgumentParser(description="Serve a health endpoint over HTTP or HTTPS")
    parser.add_argument("--config", type=Path, required=True, help="YAML settings file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    set_debug(args.debug)

    try:
        settings = load_settings(args.config)
        server = TLSServer(settings.server)
        server.start(HealthHandler)
    except TLSMaterialError as e:
        LOGGER.error("TLS configuration failed: %s", e)
        return 1
    except KeyboardInterrupt:
        LOGGER.info("Server stopped")
    except Exception as e:
        LOGGER.error("Server failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
