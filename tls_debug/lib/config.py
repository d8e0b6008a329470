"""Configuration dataclasses for TLS clients and servers."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import httpx
import yaml

from .logging_config import LOGGER
from .models import ClientAuthType, ResolvedTLSConfig
from .tls_config import client_tls_config

# Pool settings shared by every client built here
POOL_LIMITS = httpx.Limits(
    max_connections=100,
    max_keepalive_connections=100,
    keepalive_expiry=90.0,
)
TIMEOUT = httpx.Timeout(30.0, connect=30.0)


@dataclass
class ClientTLSConfig:
    """Client-side certificate configuration.

    Call init() once after loading; the resolved configuration is cached
    and shared by every client built from this object.
    """

    cacert_file: str = ""
    client_cert_file: str = ""
    client_key_file: str = ""
    client_key_password: str = ""
    _tls_config: ResolvedTLSConfig | None = field(
        default=None, init=False, repr=False, compare=False
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ClientTLSConfig":
        """Bind from the camelCase keys used in settings files."""
        data = data or {}
        return cls(
            cacert_file=data.get("cacertFile", ""),
            client_cert_file=data.get("clientCertFile", ""),
            client_key_file=data.get("clientKeyFile", ""),
            client_key_password=data.get("clientKeyPassword", ""),
        )

    def init(self) -> None:
        """Resolve certificate material and cache the TLS configuration.

        Raises:
            TLSMaterialError: If configured material cannot be loaded; nothing is cached
        """
        self._tls_config = client_tls_config(
            self.cacert_file,
            self.client_cert_file,
            self.client_key_file,
            self.client_key_password,
        )

    def get_tls_config(self) -> ResolvedTLSConfig | None:
        """Return the cached configuration, None if no material is configured."""
        return self._tls_config

    def effective_tls_config(self, insecure: bool) -> ResolvedTLSConfig:
        """Cached settings, or empty ones, with verification set by insecure.

        The cached configuration is shared, so the flag is overlaid on a copy.
        """
        if self._tls_config is None:
            return ResolvedTLSConfig(insecure_skip_verify=insecure)
        return replace(self._tls_config, insecure_skip_verify=insecure)

    def new_client(self, insecure: bool = False) -> httpx.Client:
        """Build a pooled HTTP client using the cached TLS configuration.

        Args:
            insecure: Skip peer certificate verification
        """
        return httpx.Client(
            verify=self.effective_tls_config(insecure).client_ssl_context(),
            limits=POOL_LIMITS,
            timeout=TIMEOUT,
        )


@dataclass
class Ssl:
    """Server identity and client authentication settings."""

    enabled: bool = False
    cert_file: str = ""
    key_file: str = ""
    key_password: str = ""
    ca_cert_file: str = ""
    client_auth: ClientAuthType = ClientAuthType.NONE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Ssl":
        """Bind from settings keys.

        Raises:
            ValueError: If clientAuth is not a known mode
        """
        data = data or {}
        return cls(
            enabled=bool(data.get("enabled", False)),
            cert_file=data.get("certFile", ""),
            key_file=data.get("keyFile", ""),
            key_password=data.get("keyPassword", data.get("keyFilePassword", "")),
            ca_cert_file=data.get("CAcertFile", data.get("cacertFile", "")),
            client_auth=ClientAuthType(data.get("clientAuth") or ClientAuthType.NONE),
        )


@dataclass
class ServerConfig:
    """Listening address and TLS settings of an HTTP server."""

    host: str = ""
    port: int = 0
    ssl: Ssl = field(default_factory=Ssl)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ServerConfig":
        data = data or {}
        return cls(
            host=data.get("host", ""),
            port=int(data.get("port", 0)),
            ssl=Ssl.from_mapping(data.get("ssl")),
        )

    @property
    def addr(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class Settings:
    """Top-level settings: server, outgoing HTTP client and its TLS posture."""

    server: ServerConfig = field(default_factory=ServerConfig)
    http: ClientTLSConfig = field(default_factory=ClientTLSConfig)
    insecure: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "Settings":
        data = data or {}
        http = data.get("http") or {}
        return cls(
            server=ServerConfig.from_mapping(data.get("server")),
            http=ClientTLSConfig.from_mapping(http),
            insecure=bool(http.get("insecure", False)),
        )


def load_settings(path: Path) -> Settings:
    """Load settings from a YAML file.

    Args:
        path: YAML settings file

    Returns:
        Settings bound from the file; the client TLS configuration is not yet initialized
    """
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    LOGGER.debug("Loaded settings from %s", path)
    return Settings.from_mapping(data)
