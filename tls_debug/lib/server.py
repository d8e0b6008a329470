"""HTTP server with optional TLS and client certificate authentication."""

import socket
import ssl
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from .config import ServerConfig
from .logging_config import LOGGER
from .tls_config import server_tls_config

# Seconds a client has to complete the TLS handshake
HANDSHAKE_TIMEOUT = 10.0


class TLSHTTPServer(ThreadingHTTPServer):
    """ThreadingHTTPServer that runs the TLS handshake in the connection's thread.

    The listening socket stays plain; each accepted connection is wrapped
    in finish_request, so a slow or silent client only holds its own thread.
    """

    def __init__(
        self,
        server_address: tuple[str, int],
        handler_class: type[BaseHTTPRequestHandler],
        context: ssl.SSLContext | None = None,
    ) -> None:
        self.context = context
        super().__init__(server_address, handler_class)

    def finish_request(self, request: socket.socket, client_address) -> None:
        if self.context is None:
            super().finish_request(request, client_address)
            return

        request.settimeout(HANDSHAKE_TIMEOUT)
        try:
            tls_request = self.context.wrap_socket(request, server_side=True)
        except OSError as e:
            LOGGER.debug("TLS handshake with %s failed: %s", client_address[0], e)
            return
        tls_request.settimeout(None)

        try:
            super().finish_request(tls_request, client_address)
        finally:
            self.shutdown_request(tls_request)


class TLSServer:
    """Serve HTTP or HTTPS depending on ServerConfig.ssl.enabled."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.httpd: TLSHTTPServer | None = None
        self._serving = False

    def listen(self, handler_class: type[BaseHTTPRequestHandler]) -> TLSHTTPServer:
        """Bind the listening socket without serving.

        TLS material is resolved before the socket is opened, so a
        misconfiguration fails without any network I/O.

        Raises:
            TLSMaterialError: If SSL is enabled and the material cannot be loaded
        """
        context = None
        if self.config.ssl.enabled:
            context = server_tls_config(self.config.ssl).server_ssl_context()

        httpd = TLSHTTPServer((self.config.host, self.config.port), handler_class, context)

        self.httpd = httpd
        host, port = httpd.server_address[:2]
        LOGGER.info("Listening on %s:%d (TLS=%s)", host, port, self.config.ssl.enabled)
        return httpd

    def start(self, handler_class: type[BaseHTTPRequestHandler]) -> None:
        """Bind and serve until shutdown() is called from another thread."""
        httpd = self.listen(handler_class)
        self._serving = True
        httpd.serve_forever()

    def start_background(self, handler_class: type[BaseHTTPRequestHandler]) -> threading.Thread:
        """Bind and serve from a daemon thread."""
        httpd = self.listen(handler_class)
        thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._serving = True
        thread.start()
        return thread

    @property
    def url(self) -> str:
        """Base URL of the bound server."""
        if self.httpd is None:
            raise RuntimeError("server is not listening")
        host, port = self.httpd.server_address[:2]
        scheme = "https" if self.config.ssl.enabled else "http"
        return f"{scheme}://{host}:{port}"

    def shutdown(self) -> None:
        """Stop serving and close the listening socket."""
        if self.httpd is None:
            return
        if self._serving:
            self.httpd.shutdown()
            self._serving = False
        self.httpd.server_close()
        self.httpd = None
