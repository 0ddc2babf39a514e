"""
Data Models Module

This module defines the Pydantic models exchanged between the proxy's
components. Nothing here is persisted; every instance lives for one
request/response cycle at most.

Models are organized by functional area:
- Inbound models (token issuance body, health payload)
- Upstream models (resolved target, forwarded request and response)
"""

from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

UPSTREAM_PORT = 443

Header = Tuple[str, str]

# Upstream response headers, exactly as received on the wire
RawHeader = Tuple[bytes, bytes]


# ============================================================================
# Inbound Models
# ============================================================================

class TokenRequest(BaseModel):
    """Body of POST /oauth/token."""
    model_config = ConfigDict(extra="ignore")

    client_id: str = Field(default="", description="Cora client identifier")
    environment: Optional[Any] = Field(
        None, description="'production' selects production; any other value selects stage"
    )

    @field_validator("client_id", mode="before")
    @classmethod
    def client_id_as_text(cls, v: Any) -> Any:
        """Accept numeric and boolean ids as their JSON text."""
        if v is None:
            return ""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class HealthResponse(BaseModel):
    """Liveness payload returned by GET /health."""
    status: str = Field(default="ok", description="Always 'ok' while the process serves")
    service: str = Field(..., description="Configured service name")


# ============================================================================
# Upstream Models
# ============================================================================

class Environment(str, Enum):
    """Upstream environments the proxy can target."""
    STAGE = "stage"
    PRODUCTION = "production"


class UpstreamTarget(BaseModel):
    """Upstream host selected for a single request."""
    model_config = ConfigDict(frozen=True)

    environment: Environment
    hostname: str
    port: int = UPSTREAM_PORT


class ForwardedRequest(BaseModel):
    """
    One outbound request, fully resolved.

    ``path`` and ``query`` are kept apart so a path parameter containing
    ``?`` cannot leak into the query string. ``headers`` is an ordered list
    so repeated names keep their order.
    """
    model_config = ConfigDict(frozen=True)

    method: str
    target: UpstreamTarget
    path: str
    query: str = ""
    headers: List[Header] = Field(default_factory=list)
    body: Optional[bytes] = None


class ForwardedResponse(BaseModel):
    """
    Upstream answer, relayed to the caller without interpretation.

    Header names and values stay as raw bytes; they are never decoded.
    """
    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: List[RawHeader] = Field(default_factory=list)
    body: bytes = b""
