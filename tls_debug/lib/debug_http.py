"""HTTP client that logs every request and response at debug level."""

import logging
import re
from typing import Protocol
from urllib.parse import unquote_to_bytes

import httpx

from .config import POOL_LIMITS, TIMEOUT, ClientTLSConfig
from .models import ResolvedTLSConfig

_BAD_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class HTTPLogger(Protocol):
    """Sink for the two records produced per exchange."""

    def log_request(self, msg: str, *args: object) -> None: ...

    def log_response(self, msg: str, *args: object) -> None: ...


class DebugLogger:
    """HTTPLogger writing to a logging.Logger, only when it is at DEBUG."""

    def __init__(self, log: logging.Logger) -> None:
        self.log = log

    def log_request(self, msg: str, *args: object) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(msg, *args)

    def log_response(self, msg: str, *args: object) -> None:
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(msg, *args)


def path_unescape(value: str) -> str:
    """Decode every %XX escape in value.

    Raises:
        ValueError: On a malformed escape or escapes that are not valid UTF-8
    """
    if _BAD_ESCAPE_RE.search(value):
        raise ValueError(f"invalid URL escape in {value!r}")
    return unquote_to_bytes(value).decode("utf-8")


def render_url(url: httpx.URL | str) -> str:
    """Percent-decoded URL for logging, or the raw URL if it cannot be decoded."""
    raw = str(url)
    try:
        return path_unescape(raw)
    except ValueError:
        return raw


class InterceptorTransport(httpx.BaseTransport):
    """Transport wrapper logging each request and, on success, its response."""

    def __init__(self, transport: httpx.BaseTransport, logger: HTTPLogger) -> None:
        self.transport = transport
        self.logger = logger

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        url = render_url(request.url)
        self.logger.log_request(f"{request.method} --> {url}")
        response = self.transport.handle_request(request)
        self.logger.log_response(f"{response.status_code} <-- {url}")
        return response

    def close(self) -> None:
        self.transport.close()


def interceptor_tls_config(
    client_config: ClientTLSConfig | None, insecure: bool
) -> ResolvedTLSConfig:
    """Configured client TLS settings, or empty ones, with verification set by insecure."""
    if client_config is None:
        return ResolvedTLSConfig(insecure_skip_verify=insecure)
    return client_config.effective_tls_config(insecure)


def new_interceptor_http_client(
    log_sink: HTTPLogger | logging.Logger,
    client_config: ClientTLSConfig | None,
    insecure: bool,
) -> httpx.Client:
    """Build a pooled HTTP client whose transport logs every exchange.

    Args:
        log_sink: Sink for request/response records; a Logger is wrapped in DebugLogger
        client_config: Initialized client TLS configuration, may be None
        insecure: Skip peer certificate verification

    Returns:
        httpx.Client using an InterceptorTransport over a pooled HTTPTransport
    """
    if isinstance(log_sink, logging.Logger):
        log_sink = DebugLogger(log_sink)

    tls_config = interceptor_tls_config(client_config, insecure)
    transport = httpx.HTTPTransport(
        verify=tls_config.client_ssl_context(),
        limits=POOL_LIMITS,
    )
    return httpx.Client(
        transport=InterceptorTransport(transport, log_sink),
        timeout=TIMEOUT,
    )


def new_http_client(
    logger: logging.Logger, client_config: ClientTLSConfig, insecure: bool
) -> httpx.Client:
    """Interceptor client when logger is at DEBUG, plain client otherwise."""
    if logger.getEffectiveLevel() <= logging.DEBUG:
        return new_interceptor_http_client(logger, client_config, insecure)
    return client_config.new_client(insecure=insecure)
