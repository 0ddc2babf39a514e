"""
Authentication Package

Shared-secret gate in front of every forwarding route.

Modules:
- gate: x-proxy-secret check, exposed as the require_proxy_secret dependency
"""

from .gate import PROXY_SECRET_HEADER, require_proxy_secret, secret_matches

__all__ = [
    "PROXY_SECRET_HEADER",
    "require_proxy_secret",
    "secret_matches",
]
