"""
Environment Resolver
====================

Maps the caller's environment indicator onto an upstream host.

Only the exact string ``"production"`` reaches the production API. Anything
else (absent, empty, ``"Production"``, ``"prod"``, a number, ...) goes to
staging, so a production call always needs an explicit opt-in.
"""

from typing import Any

from ..config import Settings
from ..models import Environment, UpstreamTarget


def resolve_environment(indicator: Any) -> Environment:
    if indicator == Environment.PRODUCTION.value:
        return Environment.PRODUCTION
    return Environment.STAGE


def resolve_upstream(indicator: Any, settings: Settings) -> UpstreamTarget:
    """
    Resolve the upstream target for a request.

    Args:
        indicator: Value of x-environment (or the token body's environment field)
        settings: Application settings holding both hostnames

    Returns:
        UpstreamTarget for port 443 on the selected host
    """
    environment = resolve_environment(indicator)
    hostname = (
        settings.CORA_PRODUCTION_HOST
        if environment is Environment.PRODUCTION
        else settings.CORA_STAGE_HOST
    )
    return UpstreamTarget(environment=environment, hostname=hostname)
