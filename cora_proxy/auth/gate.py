"""
Authentication Gate
===================

Callers prove they may use the proxy by sending the shared secret in the
``x-proxy-secret`` header. The check is an exact, constant-time string
comparison against the secret loaded at startup; there is no other identity
and no per-caller state.

The gate is a FastAPI dependency, so it runs before the route handler reads
the body, resolves the environment or touches the forwarder.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header, Request

from ..credentials import CredentialSet
from ..errors import Unauthorized

logger = logging.getLogger(__name__)

PROXY_SECRET_HEADER = "x-proxy-secret"


def secret_matches(presented: Optional[str], credentials: CredentialSet) -> bool:
    """
    Compare a presented secret with the configured one.

    Args:
        presented: Header value, or None when the header is absent
        credentials: Loaded CredentialSet

    Returns:
        True only for an exact match
    """
    if presented is None:
        return False
    return hmac.compare_digest(
        presented.encode("utf-8"),
        credentials.gateway_secret().encode("utf-8"),
    )


def get_credentials(request: Request) -> CredentialSet:
    """Return the CredentialSet the application was built with."""
    return request.app.state.credentials


async def require_proxy_secret(
    request: Request,
    x_proxy_secret: Optional[str] = Header(None, alias=PROXY_SECRET_HEADER),
) -> None:
    """
    Dependency that rejects callers without the proxy secret.

    Raises:
        Unauthorized: If the header is missing or does not match
    """
    if not secret_matches(x_proxy_secret, get_credentials(request)):
        logger.warning(
            "Rejected request with missing or invalid proxy secret",
            extra={"path": request.url.path, "method": request.method},
        )
        raise Unauthorized()
