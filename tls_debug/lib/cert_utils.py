"""Certificate and key loading from PEM files or secret-store references."""

from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from .errors import (
    KeyPairError,
    MaterialIOError,
    NotFoundError,
    PEMDecodeError,
    TLSMaterialError,
)
from .logging_config import LOGGER
from .models import CertPool, KeyPair
from .pem_utils import KeyPassword, read_and_decrypt_pem
from .secret_store import is_encrypted_secret, resolve_secret_file


def check_file_exists(filename: str) -> str:
    """Resolve filename and confirm it exists.

    Secret-store references are resolved first and must point at a file;
    the materialized path is returned in their place. The caller owns
    that file and removes it when done.

    Args:
        filename: Literal path or ``encryptedFile:`` reference

    Returns:
        Concrete path on the local filesystem

    Raises:
        SecretResolutionError: If the reference cannot be resolved to a file
        NotFoundError: If the path does not exist
        MaterialIOError: If the path cannot be inspected
    """
    if is_encrypted_secret(filename):
        filename = resolve_secret_file(filename)

    try:
        Path(filename).stat()
    except FileNotFoundError as e:
        raise NotFoundError(f"no such file: {filename}") from e
    except OSError as e:
        raise MaterialIOError(f"unable to stat {filename}: {e}") from e
    return filename


def read_file(filename: str) -> bytes:
    """Read a file after resolving it with check_file_exists.

    A file materialized from a secret reference is removed once read.
    """
    path = check_file_exists(filename)
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise MaterialIOError(f"unable to read {path}: {e}") from e
    finally:
        if path != filename:
            Path(path).unlink(missing_ok=True)


def x509_key_pair(cert_pem: bytes, key_pem: bytes | None) -> KeyPair:
    """Assemble a key pair from a leaf certificate and clear private key PEM.

    Raises:
        PEMDecodeError: If either input cannot be parsed
        KeyPairError: If the key is missing or does not match the certificate
    """
    if not key_pem:
        raise KeyPairError("missing private key")

    try:
        certificate = x509.load_pem_x509_certificate(cert_pem)
    except ValueError as e:
        raise PEMDecodeError(f"failed to parse certificate: {e}") from e

    try:
        private_key = serialization.load_pem_private_key(key_pem, password=None)
    except (ValueError, TypeError) as e:
        raise PEMDecodeError(f"failed to parse private key: {e}") from e

    spki = serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    if certificate.public_key().public_bytes(*spki) != private_key.public_key().public_bytes(*spki):
        raise KeyPairError("private key does not match public key")

    return KeyPair(
        cert_pem=cert_pem,
        key_pem=key_pem,
        certificate=certificate,
        private_key=private_key,
    )


def _private_key_from_file(key_file: str, key_password: KeyPassword) -> bytes | None:
    try:
        data = read_file(key_file)
        _, private_key = read_and_decrypt_pem(data, key_password)
    except TLSMaterialError as e:
        raise e.with_prefix(f"error with key file {key_file}") from e
    return private_key


def get_x509_key_pair(cert_file: str, key_file: str, key_password: str) -> KeyPair:
    """Load a certificate and its private key.

    cert_file may hold the leaf certificate alone or together with its chain
    and private key; the leaf must be the first non-key block. When no
    private key is found there, key_file is read. Encrypted RSA keys are
    decrypted with key_password, which may be a secret-store reference.

    Args:
        cert_file: Certificate path or ``encryptedFile:`` reference
        key_file: Key path used when cert_file carries no private key
        key_password: Password for an encrypted key, literal or reference

    Returns:
        KeyPair of the leaf certificate and the clear private key, with
        chain_pem set to every non-key block of cert_file

    Raises:
        TLSMaterialError: Any resolution, decoding, decryption or assembly failure
    """
    password = KeyPassword(key_password)

    try:
        data = read_file(cert_file)
        blocks, private_key = read_and_decrypt_pem(data, password)
    except TLSMaterialError as e:
        raise e.with_prefix(f"error with certificate file {cert_file}") from e

    if not blocks:
        raise PEMDecodeError(
            f"error with certificate file {cert_file}: no certificate PEM data found"
        )

    if private_key is None:
        LOGGER.debug("No private key in %s, reading %s", cert_file, key_file)
        private_key = _private_key_from_file(key_file, password)

    pair = x509_key_pair(blocks[0].encode(), private_key)
    pair.chain_pem = b"".join(block.encode() for block in blocks)
    return pair


def load_cert_pool(ca_file: str) -> CertPool:
    """Read a PEM bundle into a CertPool.

    Raises:
        TLSMaterialError: If the file cannot be resolved or read
    """
    pool = CertPool.from_pem(read_file(ca_file))
    if not len(pool):
        LOGGER.warning("No certificates found in %s", ca_file)
    return pool
