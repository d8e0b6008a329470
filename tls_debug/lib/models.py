"""TLS material and resolved configuration models."""

import ssl
import tempfile
from dataclasses import dataclass, field
from enum import Enum, StrEnum
from pathlib import Path

import certifi
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes

from .logging_config import LOGGER
from .pem_utils import decode_pem_blocks


class ClientAuthType(StrEnum):
    """Server-side client certificate mode as written in configuration."""

    NONE = "none"
    REQUEST = "request"
    WANT = "want"
    NEED = "need"
    ANY = "any"


class ClientAuthPolicy(Enum):
    """Client certificate policy applied by a TLS server."""

    NO_CLIENT_CERT = "no-client-cert"
    REQUEST_CLIENT_CERT = "request-client-cert"
    REQUIRE_ANY_CLIENT_CERT = "require-any-client-cert"
    VERIFY_CLIENT_CERT_IF_GIVEN = "verify-client-cert-if-given"
    REQUIRE_AND_VERIFY_CLIENT_CERT = "require-and-verify-client-cert"


# ssl cannot request a certificate without verifying it, so REQUEST and
# REQUIRE_ANY fall back to the closest verifying mode.
_VERIFY_MODES = {
    ClientAuthPolicy.NO_CLIENT_CERT: ssl.CERT_NONE,
    ClientAuthPolicy.REQUEST_CLIENT_CERT: ssl.CERT_OPTIONAL,
    ClientAuthPolicy.VERIFY_CLIENT_CERT_IF_GIVEN: ssl.CERT_OPTIONAL,
    ClientAuthPolicy.REQUIRE_ANY_CLIENT_CERT: ssl.CERT_REQUIRED,
    ClientAuthPolicy.REQUIRE_AND_VERIFY_CLIENT_CERT: ssl.CERT_REQUIRED,
}


@dataclass(eq=False)
class KeyPair:
    """Leaf certificate and matching private key, both as clear PEM.

    chain_pem holds every non-key block of the file the leaf came from and
    is not part of equality.
    """

    cert_pem: bytes
    key_pem: bytes
    certificate: x509.Certificate
    private_key: PrivateKeyTypes
    chain_pem: bytes = b""

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyPair):
            return NotImplemented
        return self.cert_pem == other.cert_pem and self.key_pem == other.key_pem

    def load_into(self, context: ssl.SSLContext) -> None:
        """Install this pair as the context's certificate chain."""
        # load_cert_chain only reads from the filesystem
        with tempfile.TemporaryDirectory(prefix="keypair-") as tmp:
            cert_path = Path(tmp) / "cert.pem"
            key_path = Path(tmp) / "key.pem"
            cert_path.write_bytes(self.cert_pem)
            key_path.touch(mode=0o600)
            key_path.write_bytes(self.key_pem)
            context.load_cert_chain(certfile=cert_path, keyfile=key_path)


@dataclass
class CertPool:
    """Set of trusted CA certificates."""

    certificates: list[x509.Certificate] = field(default_factory=list)

    @classmethod
    def from_pem(cls, data: bytes) -> "CertPool":
        """Build a pool from every parseable CERTIFICATE block in data."""
        pool = cls()
        pool.append_certs_from_pem(data)
        return pool

    def append_certs_from_pem(self, data: bytes) -> bool:
        """Add certificates found in data; return True if any was added.

        Non-certificate blocks are ignored. When some certificate block is
        unparseable the bundle is walked block by block and only that block
        is skipped.
        """
        try:
            certificates = x509.load_pem_x509_certificates(data)
        except ValueError:
            certificates = []
            for block in decode_pem_blocks(data):
                if block.type != "CERTIFICATE":
                    continue
                try:
                    certificates.append(x509.load_pem_x509_certificate(block.encode()))
                except ValueError:
                    LOGGER.warning("Skipping unparseable certificate block")

        self.certificates.extend(certificates)
        return bool(certificates)

    def __len__(self) -> int:
        return len(self.certificates)

    def pem(self) -> str:
        """Return the pool as concatenated PEM text."""
        return "".join(
            cert.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for cert in self.certificates
        )


@dataclass
class ResolvedTLSConfig:
    """Materialized TLS settings for an HTTP client or server."""

    certificates: list[KeyPair] = field(default_factory=list)
    root_cas: CertPool | None = None
    client_cas: CertPool | None = None
    client_auth: ClientAuthPolicy = ClientAuthPolicy.NO_CLIENT_CERT
    min_version: ssl.TLSVersion | None = None
    prefer_server_cipher_suites: bool = False
    insecure_skip_verify: bool = False

    def client_ssl_context(self) -> ssl.SSLContext:
        """Build an SSL context for outgoing connections.

        Root CAs replace the default trust store when present; otherwise
        the certifi bundle is used.
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self.min_version is not None:
            context.minimum_version = self.min_version

        if self.insecure_skip_verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        if self.root_cas is not None:
            if len(self.root_cas):
                context.load_verify_locations(cadata=self.root_cas.pem())
        else:
            context.load_verify_locations(cafile=certifi.where())

        for pair in self.certificates:
            pair.load_into(context)
        return context

    def server_ssl_context(self) -> ssl.SSLContext:
        """Build an SSL context for accepting connections."""
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if self.min_version is not None:
            context.minimum_version = self.min_version
        if self.prefer_server_cipher_suites:
            context.options |= ssl.OP_CIPHER_SERVER_PREFERENCE

        for pair in self.certificates:
            pair.load_into(context)

        context.verify_mode = _VERIFY_MODES[self.client_auth]
        if self.client_cas is not None and len(self.client_cas):
            context.load_verify_locations(cadata=self.client_cas.pem())
        return context
