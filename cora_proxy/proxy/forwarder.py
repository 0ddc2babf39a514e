"""
Forwarding Engine
=================

Executes exactly one outbound HTTPS request against the Cora API, presenting
the proxy's mTLS client certificate, and hands the complete response back as
a ForwardedResponse.

Behaviour:
----------
- One call in, one upstream request out. No retries.
- The whole upstream body is read before returning; there is no streaming
  relay and no partial response.
- Upstream status and body are returned untouched. Upstream errors (4xx/5xx)
  are ordinary responses here.
- Anything that prevents a complete exchange (DNS, TLS handshake, refused or
  reset connection, timeout) raises UpstreamTransportError.
- The whole exchange, body included, is bounded by one overall deadline.
"""

import asyncio
import logging
import ssl
import time
from typing import List, Optional
from urllib.parse import quote

import httpx

from ..config import Settings
from ..credentials import CredentialSet, build_ssl_context
from ..errors import UpstreamTransportError
from ..models import ForwardedRequest, ForwardedResponse, RawHeader

logger = logging.getLogger(__name__)

# Connection-level and framing headers; the inbound server recomputes these.
HOP_BY_HOP_HEADERS = frozenset({
    b"connection",
    b"keep-alive",
    b"proxy-authenticate",
    b"proxy-authorization",
    b"te",
    b"trailer",
    b"transfer-encoding",
    b"upgrade",
    b"content-length",
    b"content-encoding",
})

# RFC 3986 pchar sub-delims plus "/"; everything else in a path is escaped
PATH_SAFE_CHARACTERS = "/:@!$&'()*+,;=~"


def relayable_headers(raw_headers: List[RawHeader]) -> List[RawHeader]:
    """
    Select the upstream response headers that can be relayed as-is.

    Args:
        raw_headers: Upstream response headers as received (``Headers.raw``)

    Returns:
        Ordered (name, value) byte pairs, repeated names preserved
    """
    return [
        (name, value)
        for name, value in raw_headers
        if name.lower() not in HOP_BY_HOP_HEADERS
    ]


def encode_path(path: str) -> str:
    """
    Percent-encode a decoded upstream path.

    Path parameters arrive decoded, so ``?``, ``#``, ``%`` and spaces inside
    an identifier are escaped here and stay part of the path.
    """
    return quote(path, safe=PATH_SAFE_CHARACTERS)


class UpstreamForwarder:
    """
    Sends ForwardedRequests to the upstream over mutual TLS.

    A single httpx.AsyncClient is shared by all requests. It only pools
    connections; it holds no per-request state, so concurrent forwards do
    not need any locking.

    Attributes:
        timeout: Per-operation bounds (connect, read, write, pool)
        deadline: Seconds allowed for the whole exchange, body included
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        timeout: httpx.Timeout,
        deadline: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the forwarder.

        Args:
            ssl_context: Client context carrying the mTLS certificate and key
            timeout: Per-operation timeouts handed to httpx
            deadline: Overall limit for one upstream exchange
            transport: Optional transport override (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self.deadline = deadline
        self._client = httpx.AsyncClient(
            verify=ssl_context,
            timeout=timeout,
            transport=transport,
            follow_redirects=False,
            # Ask for the body exactly as stored upstream.
            headers={"Accept-Encoding": "identity"},
        )

    @classmethod
    def from_credentials(
        cls,
        credentials: CredentialSet,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "UpstreamForwarder":
        """
        Build a forwarder whose every request presents the given identity.

        Raises:
            ConfigurationError: If the certificate/key pair cannot be loaded
        """
        ssl_context = build_ssl_context(credentials, settings.UPSTREAM_CA_BUNDLE)
        timeout = httpx.Timeout(
            settings.UPSTREAM_TIMEOUT_SECONDS,
            connect=settings.UPSTREAM_CONNECT_TIMEOUT_SECONDS,
        )
        return cls(
            ssl_context,
            timeout,
            deadline=settings.UPSTREAM_TIMEOUT_SECONDS,
            transport=transport,
        )

    def build_url(self, request: ForwardedRequest) -> httpx.URL:
        components = {
            "scheme": "https",
            "host": request.target.hostname,
            "port": request.target.port,
            "path": encode_path(request.path),
        }
        # An empty query would still render a trailing "?"
        if request.query:
            components["query"] = request.query.encode("ascii")
        return httpx.URL(**components)

    async def forward(self, request: ForwardedRequest) -> ForwardedResponse:
        """
        Perform the upstream exchange.

        Args:
            request: Fully resolved outbound request

        Returns:
            ForwardedResponse with the upstream status, headers and body

        Raises:
            UpstreamTransportError: If no complete response was received
        """
        started = time.perf_counter()

        try:
            outbound = self._client.build_request(
                request.method,
                self.build_url(request),
                headers=request.headers,
                content=request.body,
            )
            # httpx timeouts apply per read/write; this bounds the total.
            response = await asyncio.wait_for(
                self._client.send(outbound), timeout=self.deadline
            )
        except asyncio.TimeoutError as e:
            message = f"Upstream did not respond within {self.deadline:g}s"
            logger.error(
                message,
                extra={
                    "method": request.method,
                    "environment": request.target.environment.value,
                    "upstream_path": request.path,
                },
            )
            raise UpstreamTransportError(message) from e
        except httpx.RequestError as e:
            message = str(e) or type(e).__name__
            logger.error(
                f"Upstream request failed: {type(e).__name__}: {message}",
                extra={
                    "method": request.method,
                    "environment": request.target.environment.value,
                    "upstream_path": request.path,
                },
            )
            raise UpstreamTransportError(message) from e
        except httpx.InvalidURL as e:
            logger.error(f"Cannot build upstream URL: {e}")
            raise UpstreamTransportError(str(e)) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.path} -> {response.status_code} "
            f"({request.target.environment.value}, {elapsed_ms:.0f}ms)"
        )

        return ForwardedResponse(
            status_code=response.status_code,
            headers=relayable_headers(response.headers.raw),
            body=response.content,
        )

    async def aclose(self) -> None:
        """Close pooled upstream connections."""
        await self._client.aclose()
