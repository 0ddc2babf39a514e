"""
Credential Provider
===================

Holds the mTLS client identity and the shared proxy secret for the lifetime
of the process.

The certificate and private key arrive base64-encoded (so that multi-line PEM
fits in a single environment variable). They are decoded exactly once, at
startup; any problem with them is a ``ConfigurationError`` and the service
refuses to start rather than failing on the first forwarded request.

Nothing in this module logs or returns secret material in a printable form:
the values are kept as ``SecretBytes`` / ``SecretStr`` and only unwrapped by
the explicit accessors.
"""

import base64
import binascii
import logging
import os
import ssl
import tempfile
from pathlib import Path
from typing import Optional

import certifi
from pydantic import BaseModel, ConfigDict, SecretBytes, SecretStr

from .config import Settings
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

PEM_MARKER = b"-----BEGIN "


class CredentialSet(BaseModel):
    """
    Immutable bundle of the proxy's secrets.

    Attributes:
        client_certificate: PEM-encoded client certificate (chain)
        client_private_key: PEM-encoded private key for the certificate
        proxy_secret: Shared secret callers present in x-proxy-secret
    """

    model_config = ConfigDict(frozen=True)

    client_certificate: SecretBytes
    client_private_key: SecretBytes
    proxy_secret: SecretStr

    def certificate(self) -> bytes:
        return self.client_certificate.get_secret_value()

    def private_key(self) -> bytes:
        return self.client_private_key.get_secret_value()

    def gateway_secret(self) -> str:
        return self.proxy_secret.get_secret_value()


# =============================================================================
# Loading
# =============================================================================

def decode_pem(name: str, encoded: Optional[SecretStr]) -> bytes:
    """
    Decode one base64-encoded PEM value.

    Whitespace (including line breaks introduced by ``base64 -w 76``) is
    ignored; anything else outside the base64 alphabet is rejected.

    Args:
        name: Environment variable name, used in error messages only
        encoded: The raw setting value

    Returns:
        The decoded PEM bytes

    Raises:
        ConfigurationError: If the value is absent, not base64, or not PEM
    """
    if encoded is None or not encoded.get_secret_value().strip():
        raise ConfigurationError(f"{name} is not set")

    compact = "".join(encoded.get_secret_value().split())
    try:
        decoded = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ConfigurationError(f"{name} is not valid base64: {e}") from e

    if PEM_MARKER not in decoded:
        raise ConfigurationError(f"{name} does not decode to PEM data")

    return decoded


def load_credentials(settings: Settings) -> CredentialSet:
    """
    Build the process-wide CredentialSet from settings.

    Args:
        settings: Loaded application settings

    Returns:
        CredentialSet holding the decoded certificate, key and proxy secret

    Raises:
        ConfigurationError: If any value is missing or cannot be decoded
    """
    certificate = decode_pem("CORA_CERT_BASE64", settings.CORA_CERT_BASE64)
    private_key = decode_pem("CORA_KEY_BASE64", settings.CORA_KEY_BASE64)

    if settings.PROXY_SECRET is None or not settings.PROXY_SECRET.get_secret_value():
        raise ConfigurationError("PROXY_SECRET is not set")

    logger.info("Loaded mTLS client credentials")

    return CredentialSet(
        client_certificate=certificate,
        client_private_key=private_key,
        proxy_secret=settings.PROXY_SECRET,
    )


# =============================================================================
# TLS Context
# =============================================================================

def refuse_passphrase() -> bytes:
    """Password callback for load_cert_chain; keeps OpenSSL from prompting."""
    raise ConfigurationError(
        "CORA_KEY_BASE64 holds an encrypted private key; supply it unencrypted"
    )


def build_ssl_context(
    credentials: CredentialSet,
    ca_bundle: Optional[str] = None,
) -> ssl.SSLContext:
    """
    Create a client SSLContext that presents the proxy's certificate.

    ``SSLContext.load_cert_chain`` only reads from files, so the PEM material
    is written into a private temporary directory, loaded, and the directory
    is removed before returning. The key never persists on disk.

    Args:
        credentials: Loaded CredentialSet
        ca_bundle: Optional CA bundle path for verifying the upstream;
                   defaults to the certifi bundle

    Returns:
        Configured ssl.SSLContext

    Raises:
        ConfigurationError: If the certificate/key pair is rejected or the
                            key is passphrase-protected
    """
    try:
        context = ssl.create_default_context(cafile=ca_bundle or certifi.where())
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"Cannot load CA bundle: {e}") from e

    with tempfile.TemporaryDirectory(prefix="cora-proxy-") as workdir:
        cert_path = Path(workdir) / "client.crt"
        key_path = Path(workdir) / "client.key"

        for path, data in ((cert_path, credentials.certificate()),
                           (key_path, credentials.private_key())):
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)

        try:
            context.load_cert_chain(
                certfile=str(cert_path),
                keyfile=str(key_path),
                password=refuse_passphrase,
            )
        except ssl.SSLError as e:
            raise ConfigurationError(
                f"Client certificate and key were rejected: {e.reason or e}"
            ) from e

    return context
