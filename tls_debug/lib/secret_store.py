"""Secret-store URI resolution.

Secrets are referenced with a tagged string:

    encrypted:<engine>!<k>:<v>!<k>:<v>        value is the secret itself
    encryptedFile:<engine>!<k>:<v>!<k>:<v>    value is materialized to a file

Engines are looked up in ENGINES by name. The ``ssm`` engine is registered
on import and reads AWS SSM Parameter Store values (``n`` = parameter name,
``r`` = region).
"""

import tempfile
from collections.abc import Callable
from typing import Protocol

from botocore.exceptions import BotoCoreError, ClientError

from .errors import SecretResolutionError
from .logging_config import LOGGER
from .ssm_client import DEFAULT_REGION, SSMClient

ENCRYPTED_PREFIX = "encrypted:"
ENCRYPTED_FILE_PREFIX = "encryptedFile:"


class Decrypter(Protocol):
    """Resolves one secret reference."""

    def is_file(self) -> bool: ...

    def decrypt(self) -> str: ...


EngineFactory = Callable[[bool, dict[str, str]], Decrypter]

ENGINES: dict[str, EngineFactory] = {}


def register_engine(name: str, factory: EngineFactory) -> None:
    """Register a decrypter factory under an engine name."""
    ENGINES[name] = factory


def is_encrypted_secret(value: str) -> bool:
    """Return True if value is a secret-store reference."""
    return value.startswith((ENCRYPTED_PREFIX, ENCRYPTED_FILE_PREFIX))


def parse_secret(value: str) -> tuple[str, bool, dict[str, str]]:
    """Split a secret reference into (engine, is_file, params).

    Raises:
        SecretResolutionError: If value is not a secret reference or names no engine
    """
    if value.startswith(ENCRYPTED_FILE_PREFIX):
        is_file = True
        body = value[len(ENCRYPTED_FILE_PREFIX) :]
    elif value.startswith(ENCRYPTED_PREFIX):
        is_file = False
        body = value[len(ENCRYPTED_PREFIX) :]
    else:
        raise SecretResolutionError("value is not an encrypted secret reference")

    engine, *tokens = body.split("!")
    if not engine:
        raise SecretResolutionError("secret format error - engine is required")

    params: dict[str, str] = {}
    for token in tokens:
        key, sep, param = token.partition(":")
        if sep:
            params[key] = param
    return engine, is_file, params


def new_decrypter(value: str) -> Decrypter:
    """Build the decrypter for a secret reference.

    Raises:
        SecretResolutionError: If the reference is malformed or its engine is unknown
    """
    engine, is_file, params = parse_secret(value)
    factory = ENGINES.get(engine)
    if factory is None:
        raise SecretResolutionError(f"secret engine {engine!r} is not registered")
    return factory(is_file, params)


def resolve_secret(value: str) -> str:
    """Return the secret string behind a reference."""
    return new_decrypter(value).decrypt()


def resolve_secret_file(value: str) -> str:
    """Return the path of the file materialized from a file reference.

    Raises:
        SecretResolutionError: If the reference does not point at a file
    """
    decrypter = new_decrypter(value)
    if not decrypter.is_file():
        raise SecretResolutionError("no file referenced, use encryptedFile")
    return decrypter.decrypt()


def to_temp_file(content: bytes) -> str:
    """Write secret content to a private temporary file and return its path."""
    with tempfile.NamedTemporaryFile(prefix="secret-", delete=False) as fh:
        fh.write(content)
    return fh.name


class SSMDecrypter:
    """Decrypter backed by AWS SSM Parameter Store."""

    def __init__(self, is_file: bool, params: dict[str, str]) -> None:
        self._is_file = is_file
        self.name = params.get("n", "")
        self.region = params.get("r") or DEFAULT_REGION
        if not self.name:
            raise SecretResolutionError(
                "secret format error - 'n' for parameter name is required"
            )

    def is_file(self) -> bool:
        return self._is_file

    def decrypt(self) -> str:
        try:
            value = SSMClient(self.region).get_parameter_value(self.name)
        except (ValueError, ClientError, BotoCoreError) as e:
            raise SecretResolutionError(
                f"unable to read SSM parameter {self.name}: {e}"
            ) from e

        LOGGER.debug("Fetched secret from SSM parameter %s", self.name)
        if self._is_file:
            return to_temp_file(value.encode("utf-8"))
        return value


register_engine("ssm", SSMDecrypter)
