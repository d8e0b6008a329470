"""Error kinds raised while resolving TLS material."""


class TLSMaterialError(Exception):
    """Base class for certificate, key and secret resolution failures."""

    def with_prefix(self, prefix: str) -> "TLSMaterialError":
        """Return an error of the same kind whose message starts with prefix."""
        return type(self)(f"{prefix}: {self}")


class NotFoundError(TLSMaterialError):
    """Path does not exist."""


class MaterialIOError(TLSMaterialError):
    """File could not be read or written."""


class SecretResolutionError(TLSMaterialError):
    """Secret-store lookup failed or the secret does not reference a file."""


class PEMDecodeError(TLSMaterialError):
    """Malformed or unexpected PEM data."""


class DecryptError(TLSMaterialError):
    """Encrypted private key could not be decrypted."""


class MissingPasswordError(TLSMaterialError):
    """Encrypted private key found with no password configured."""


class KeyPairError(TLSMaterialError):
    """Certificate and private key cannot be assembled into a key pair."""
