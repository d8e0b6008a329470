"""Test fixtures for tls_debug tests."""

import ipaddress
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from http.server import BaseHTTPRequestHandler
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from tls_debug.lib import secret_store
from tls_debug.lib.config import ServerConfig
from tls_debug.lib.server import TLSServer


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "GB"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )


def _generate_key() -> RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _build_certificate(
    common_name: str,
    key: RSAPrivateKey,
    issuer_cert: x509.Certificate | None,
    issuer_key: RSAPrivateKey,
    ca: bool = False,
) -> x509.Certificate:
    subject = _name(common_name)
    not_before = datetime.now(UTC) - timedelta(minutes=5)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_cert.subject if issuer_cert else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=not ca,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=ca,
                crl_sign=ca,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
            critical=False,
        )
    )
    if not ca:
        builder = builder.add_extension(
            x509.SubjectAlternativeName(
                [
                    x509.DNSName("localhost"),
                    x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                ]
            ),
            critical=False,
        ).add_extension(
            x509.ExtendedKeyUsage(
                [
                    ExtendedKeyUsageOID.SERVER_AUTH,
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                ]
            ),
            critical=False,
        )
    return builder.sign(issuer_key, hashes.SHA256())


class PemFactory:
    """Serializes test certificates and keys in the formats the loader sees."""

    @staticmethod
    def cert(cert: x509.Certificate) -> bytes:
        return cert.public_bytes(serialization.Encoding.PEM)

    @staticmethod
    def rsa_key(key: RSAPrivateKey, password: str | None = None) -> bytes:
        """RSA PRIVATE KEY block, legacy-encrypted when a password is given."""
        encryption: serialization.KeySerializationEncryption = serialization.NoEncryption()
        if password is not None:
            encryption = serialization.BestAvailableEncryption(password.encode("utf-8"))
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=encryption,
        )

    @staticmethod
    def pkcs8_key(key: RSAPrivateKey) -> bytes:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )


@pytest.fixture
def pem() -> PemFactory:
    """Return PEM serialization helpers."""
    return PemFactory()


@pytest.fixture(scope="session")
def ca_key() -> RSAPrivateKey:
    """Generate RSA private key for the test CA."""
    return _generate_key()


@pytest.fixture(scope="session")
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed test CA certificate."""
    return _build_certificate("Test Root CA", ca_key, None, ca_key, ca=True)


@pytest.fixture(scope="session")
def server_key() -> RSAPrivateKey:
    """Generate RSA private key for the server certificate."""
    return _generate_key()


@pytest.fixture(scope="session")
def server_cert(
    server_key: RSAPrivateKey, ca_cert: x509.Certificate, ca_key: RSAPrivateKey
) -> x509.Certificate:
    """Generate server certificate for localhost signed by the test CA."""
    return _build_certificate("localhost", server_key, ca_cert, ca_key)


@pytest.fixture(scope="session")
def client_key() -> RSAPrivateKey:
    """Generate RSA private key for the client certificate."""
    return _generate_key()


@pytest.fixture(scope="session")
def client_cert(
    client_key: RSAPrivateKey, ca_cert: x509.Certificate, ca_key: RSAPrivateKey
) -> x509.Certificate:
    """Generate client certificate signed by the test CA."""
    return _build_certificate("test-client-001", client_key, ca_cert, ca_key)


@pytest.fixture(scope="session")
def other_key() -> RSAPrivateKey:
    """Generate an RSA key matching no certificate."""
    return _generate_key()


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., str]:
    """Return a helper writing concatenated chunks to tmp_path/name."""

    def _write(name: str, *chunks: bytes) -> str:
        path = tmp_path / name
        path.write_bytes(b"".join(chunks))
        return str(path)

    return _write


class FakeDecrypter:
    """Decrypter serving values from an in-memory store."""

    store: dict[str, str] = {}

    def __init__(self, is_file: bool, params: dict[str, str]) -> None:
        self._is_file = is_file
        self.key = params["k"]

    def is_file(self) -> bool:
        return self._is_file

    def decrypt(self) -> str:
        value = self.store[self.key]
        if self._is_file:
            return secret_store.to_temp_file(value.encode("utf-8"))
        return value


@pytest.fixture
def fake_secrets(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Register the 'fake' secret engine; populate the returned dict with secrets.

    References look like ``encrypted:fake!k:<name>`` or ``encryptedFile:fake!k:<name>``.
    """
    store: dict[str, str] = {}
    monkeypatch.setattr(FakeDecrypter, "store", store)
    monkeypatch.setitem(secret_store.ENGINES, "fake", FakeDecrypter)
    return store


class RecordingSink:
    """HTTPLogger collecting formatted request and response records."""

    def __init__(self) -> None:
        self.requests: list[str] = []
        self.responses: list[str] = []

    def log_request(self, msg: str, *args: object) -> None:
        self.requests.append(msg % args if args else msg)

    def log_response(self, msg: str, *args: object) -> None:
        self.responses.append(msg % args if args else msg)


@pytest.fixture
def sink() -> RecordingSink:
    """Return an empty recording HTTP log sink."""
    return RecordingSink()


class OkHandler(BaseHTTPRequestHandler):
    """Answer every GET with 200 and a short body."""

    def do_GET(self) -> None:  # noqa: N802
        body = b"ok"
        self.send_response(200)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        pass


@pytest.fixture
def serve() -> Iterator[Callable[..., TLSServer]]:
    """Return a helper starting a TLSServer in the background; all are shut down afterwards."""
    servers: list[TLSServer] = []

    def _serve(
        config: ServerConfig, handler_class: type[BaseHTTPRequestHandler] = OkHandler
    ) -> TLSServer:
        server = TLSServer(config)
        servers.append(server)
        server.start_background(handler_class)
        return server

    yield _serve

    for server in servers:
        server.shutdown()
