"""Client and server TLS configuration resolution."""

import ssl
from typing import TYPE_CHECKING

from .cert_utils import get_x509_key_pair, load_cert_pool
from .errors import TLSMaterialError
from .logging_config import LOGGER
from .models import CertPool, ClientAuthPolicy, ClientAuthType, ResolvedTLSConfig

if TYPE_CHECKING:
    from .config import Ssl

CLIENT_AUTH_POLICIES = {
    ClientAuthType.NONE: ClientAuthPolicy.NO_CLIENT_CERT,
    ClientAuthType.REQUEST: ClientAuthPolicy.REQUEST_CLIENT_CERT,
    ClientAuthType.WANT: ClientAuthPolicy.VERIFY_CLIENT_CERT_IF_GIVEN,
    ClientAuthType.NEED: ClientAuthPolicy.REQUIRE_AND_VERIFY_CLIENT_CERT,
    ClientAuthType.ANY: ClientAuthPolicy.REQUIRE_ANY_CLIENT_CERT,
}

# Policies the ssl module can only enforce by verifying the certificate
UNVERIFIED_POLICIES = frozenset(
    {ClientAuthPolicy.REQUEST_CLIENT_CERT, ClientAuthPolicy.REQUIRE_ANY_CLIENT_CERT}
)


def client_auth_policy(mode: ClientAuthType | str | None) -> ClientAuthPolicy:
    """Map a configured client-auth mode to the policy a server enforces.

    Unset and unknown modes mean no client certificate is requested.
    """
    if not mode:
        return ClientAuthPolicy.NO_CLIENT_CERT
    try:
        return CLIENT_AUTH_POLICIES[ClientAuthType(mode)]
    except ValueError:
        return ClientAuthPolicy.NO_CLIENT_CERT


def client_tls_config(
    cacert_file: str,
    client_cert_file: str,
    client_key_file: str,
    client_key_password: str,
) -> ResolvedTLSConfig | None:
    """Resolve client-side TLS material.

    Returns:
        ResolvedTLSConfig with root CAs and/or the client certificate, or
        None when neither a CA file nor a client certificate is configured

    Raises:
        TLSMaterialError: If any configured material cannot be loaded
    """
    tls_config = ResolvedTLSConfig()
    configured = False

    if cacert_file:
        try:
            tls_config.root_cas = load_cert_pool(cacert_file)
        except TLSMaterialError as e:
            raise e.with_prefix("unable to load CA certificate") from e
        configured = True

    if client_cert_file:
        try:
            pair = get_x509_key_pair(client_cert_file, client_key_file, client_key_password)
        except TLSMaterialError as e:
            raise e.with_prefix("unable to load client certificate") from e
        tls_config.certificates = [pair]
        configured = True

    if not configured:
        return None
    return tls_config


def server_tls_config(ssl_config: "Ssl") -> ResolvedTLSConfig:
    """Resolve server-side TLS material, including the mTLS client CA pool.

    When client authentication is requested the CA file is used to verify
    clients; without one the server certificate file doubles as the CA
    bundle (e.g. a self-signed combined PEM).

    Raises:
        TLSMaterialError: If the key pair or CA bundle cannot be loaded
    """
    try:
        pair = get_x509_key_pair(
            ssl_config.cert_file, ssl_config.key_file, ssl_config.key_password
        )
    except TLSMaterialError as e:
        raise e.with_prefix(f"error with certificate file {ssl_config.cert_file}") from e

    tls_config = ResolvedTLSConfig(
        certificates=[pair],
        min_version=ssl.TLSVersion.TLSv1_2,
        prefer_server_cipher_suites=True,
    )

    policy = client_auth_policy(ssl_config.client_auth)
    if policy is not ClientAuthPolicy.NO_CLIENT_CERT:
        if ssl_config.ca_cert_file:
            ca_source = ssl_config.ca_cert_file
            try:
                tls_config.client_cas = load_cert_pool(ca_source)
            except TLSMaterialError as e:
                raise e.with_prefix(f"error with certificate authority file {ca_source}") from e
        else:
            # cert_file doubles as the CA bundle; reuse the blocks already read
            ca_source = ssl_config.cert_file
            tls_config.client_cas = CertPool.from_pem(pair.chain_pem)
            if not len(tls_config.client_cas):
                LOGGER.warning("No certificates found in %s", ca_source)

        if policy in UNVERIFIED_POLICIES:
            LOGGER.warning(
                "Client auth mode %s is enforced with certificate verification",
                ssl_config.client_auth,
            )
        tls_config.client_auth = policy
        LOGGER.info("Client certificate policy %s using CAs from %s", policy.value, ca_source)

    return tls_config
