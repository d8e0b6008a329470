"""PEM block decoding and private key decryption."""

import base64
import binascii
import re
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .errors import DecryptError, MissingPasswordError, PEMDecodeError
from .logging_config import LOGGER
from .secret_store import is_encrypted_secret, resolve_secret

RSA_PRIVATE_KEY = "RSA PRIVATE KEY"

# Key block types that are not decrypted or used as the private key
_SKIPPED_KEY_TYPES = frozenset({"PRIVATE KEY", "ENCRYPTED PRIVATE KEY", "EC PRIVATE KEY"})

_PEM_BLOCK_RE = re.compile(
    rb"-----BEGIN (?P<type>[^\r\n-]+)-----\r?\n(?P<body>.*?)-----END (?P=type)-----",
    re.DOTALL,
)


@dataclass
class PemBlock:
    """A single decoded PEM block."""

    type: str
    data: bytes
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def encrypted(self) -> bool:
        """Legacy OpenSSL encryption is announced by a DEK-Info header."""
        return "DEK-Info" in self.headers

    def encode(self) -> bytes:
        """Serialize back to PEM text with 64-column base64 lines."""
        lines = [f"-----BEGIN {self.type}-----"]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        if self.headers:
            lines.append("")
        body = base64.b64encode(self.data).decode("ascii")
        lines.extend(body[i : i + 64] for i in range(0, len(body), 64))
        lines.append(f"-----END {self.type}-----")
        return ("\n".join(lines) + "\n").encode("ascii")


def _parse_body(block_type: str, body: bytes) -> PemBlock:
    lines = body.decode("ascii", errors="strict").splitlines()
    headers: dict[str, str] = {}
    if lines and ":" in lines[0]:
        while lines:
            line = lines.pop(0).strip()
            if not line:
                break
            name, _, value = line.partition(":")
            headers[name.strip()] = value.strip()

    try:
        data = base64.b64decode("".join(line.strip() for line in lines), validate=True)
    except binascii.Error as e:
        raise PEMDecodeError(f"invalid base64 in {block_type} block") from e
    return PemBlock(type=block_type, data=data, headers=headers)


def decode_pem_blocks(data: bytes) -> list[PemBlock]:
    """Decode every PEM block in data, in order.

    Raises:
        PEMDecodeError: If a block carries non-ASCII text or invalid base64
    """
    blocks = []
    for match in _PEM_BLOCK_RE.finditer(data):
        block_type = match.group("type").decode("ascii", errors="replace")
        try:
            blocks.append(_parse_body(block_type, match.group("body")))
        except UnicodeDecodeError as e:
            raise PEMDecodeError(f"non-ASCII data in {block_type} block") from e
    return blocks


def resolve_key_password(key_password: str) -> str:
    """Return the literal password or resolve a secret-store reference.

    Raises:
        MissingPasswordError: If no password is configured
    """
    if is_encrypted_secret(key_password):
        return resolve_secret(key_password)
    if key_password == "":
        raise MissingPasswordError("encrypted pem found but no password provided")
    return key_password


class KeyPassword:
    """Key password resolved on first use, at most once."""

    def __init__(self, value: str) -> None:
        self.value = value
        self._resolved: str | None = None

    def get(self) -> str:
        if self._resolved is None:
            self._resolved = resolve_key_password(self.value)
        return self._resolved


def decrypt_private_key_block(block: PemBlock, password: str) -> bytes:
    """Decrypt an encrypted RSA key block and return its clear DER bytes.

    Raises:
        DecryptError: If the password is wrong or the block is unreadable
    """
    try:
        key = serialization.load_pem_private_key(
            block.encode(), password=password.encode("utf-8")
        )
    except (ValueError, TypeError) as e:
        raise DecryptError(f"unable to decrypt private key: {e}") from e

    if not isinstance(key, RSAPrivateKey):
        raise DecryptError("encrypted key is not an RSA private key")
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def read_and_decrypt_pem(
    data: bytes, key_password: KeyPassword
) -> tuple[list[PemBlock], bytes | None]:
    """Separate the private key from the other PEM blocks in data.

    An RSA private key block is decrypted when needed and always returned
    as a clear PEM block. Every other block is kept in order.

    Args:
        data: Raw PEM file contents
        key_password: Password used if an encrypted key block is found

    Returns:
        Tuple of (non-key blocks, clear private key PEM or None)
    """
    blocks = []
    private_key = None

    for block in decode_pem_blocks(data):
        if block.type == RSA_PRIVATE_KEY:
            if block.encrypted:
                clear = decrypt_private_key_block(block, key_password.get())
                private_key = PemBlock(type=block.type, data=clear).encode()
            else:
                private_key = PemBlock(type=block.type, data=block.data).encode()
        else:
            if block.type in _SKIPPED_KEY_TYPES:
                LOGGER.warning(
                    "Ignoring %s block, only %s keys are loaded", block.type, RSA_PRIVATE_KEY
                )
            blocks.append(block)

    return blocks, private_key
