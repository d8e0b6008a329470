#!/usr/bin/env python3
"""Send one HTTP request through the client TLS configuration and log the exchange."""

import argparse
import sys
from pathlib import Path

import httpx

from tls_debug.lib.config import Settings, load_settings
from tls_debug.lib.debug_http import new_http_client
from tls_debug.lib.errors import TLSMaterialError
from tls_debug.lib.logging_config import LOGGER, set_debug


def main() -> int:
    """Issue a request using settings from a YAML file.

    Returns:
        Exit code (0 for a response below 400, 1 otherwise)
    """
    parser = argparse.ArgumentParser(description="Send a request with request/response logging")
    parser.add_argument("url", help="URL to request")
    parser.add_argument("--method", default="GET", help="HTTP method (default: GET)")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file with an 'http' section",
    )
    parser.add_argument(
        "--insecure",
        action="store_true",
        help="Skip server certificate verification",
    )
    parser.add_argument("--debug", action="store_true", help="Log each request and response")
    args = parser.parse_args()

    set_debug(args.debug)

    try:
        settings = load_settings(args.config) if args.config else Settings()
        settings.http.init()

        with new_http_client(LOGGER, settings.http, args.insecure or settings.insecure) as client:
            response = client.request(args.method, args.url)

        LOGGER.info("%s %s returned %d", args.method, args.url, response.status_code)
        return 0 if response.status_code < 400 else 1

    except TLSMaterialError as e:
        LOGGER.error("TLS configuration failed: %s", e)
        return 1
    except httpx.HTTPError as e:
        LOGGER.error("Request failed: %s", e)
        return 1
    except Exception as e:
        LOGGER.error("Debug request failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
