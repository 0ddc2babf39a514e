"""
Proxy Routes - Upstream Request Forwarding
==========================================

FastAPI router exposing the route table plus token issuance.

Security Model:
---------------
1. Every route on this router requires the x-proxy-secret header
   (router-level dependency, evaluated before the handler runs)
2. x-environment selects the upstream; only "production" reaches production
3. Only Authorization is passed through; the caller never sees or supplies
   the mTLS identity
4. Upstream status, headers and body are relayed as received

Endpoints:
----------
- POST /oauth/token: client-credentials token from Cora
- Everything in ROUTE_TABLE, wildcard /proxy/* last
"""

import asyncio
import logging
from typing import Awaitable, Callable
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import ValidationError

from ..auth import require_proxy_secret
from ..config import Settings
from ..errors import ClientDisconnected, InvalidRequestBody
from ..models import ForwardedRequest, ForwardedResponse, TokenRequest
from .environment import resolve_upstream
from .forwarder import UpstreamForwarder
from .route_table import ENVIRONMENT_HEADER, ROUTE_TABLE, RouteDefinition, build_forwarded_request

logger = logging.getLogger(__name__)

TOKEN_PATH = "/token"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# How often a pending upstream call checks whether the caller is still there.
DISCONNECT_POLL_SECONDS = 0.5

proxy_router = APIRouter(dependencies=[Depends(require_proxy_secret)])


# ============================================================================
# Dependencies
# ============================================================================

def get_forwarder(request: Request) -> UpstreamForwarder:
    """Return the application's UpstreamForwarder."""
    return request.app.state.forwarder


def get_app_settings(request: Request) -> Settings:
    """Return the Settings the application was built with."""
    return request.app.state.settings


# ============================================================================
# Forwarding Helpers
# ============================================================================

async def forward_while_connected(
    request: Request,
    forwarder: UpstreamForwarder,
    forwarded: ForwardedRequest,
) -> ForwardedResponse:
    """
    Run the upstream call, abandoning it if the caller disconnects.

    The inbound body must already have been read: disconnect detection
    consumes ASGI receive messages.

    Raises:
        ClientDisconnected: If the caller went away first
        UpstreamTransportError: Propagated from the forwarder
    """
    forward_task = asyncio.ensure_future(forwarder.forward(forwarded))
    try:
        while True:
            done, _ = await asyncio.wait({forward_task}, timeout=DISCONNECT_POLL_SECONDS)
            if done:
                return forward_task.result()
            if await request.is_disconnected():
                logger.info(
                    f"Caller disconnected, abandoning {forwarded.method} {forwarded.path}"
                )
                raise ClientDisconnected()
    finally:
        if not forward_task.done():
            forward_task.cancel()


def relay(upstream: ForwardedResponse) -> Response:
    """Build the caller-facing response from the upstream one, unchanged."""
    response = Response(content=upstream.body, status_code=upstream.status_code)
    response.raw_headers.extend(
        (name.lower(), value) for name, value in upstream.headers
    )
    return response


def parse_token_request(body: bytes) -> TokenRequest:
    """
    Read the token issuance body.

    An empty body is accepted and yields an empty client_id, which Cora
    rejects on its side.

    Raises:
        InvalidRequestBody: If the body is not a JSON object
    """
    if not body.strip():
        return TokenRequest()
    try:
        return TokenRequest.model_validate_json(body)
    except ValidationError as e:
        raise InvalidRequestBody(
            f"Invalid token request body: {e.errors()[0]['msg']}"
        ) from e


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.post("/oauth/token")
async def issue_token(
    request: Request,
    forwarder: UpstreamForwarder = Depends(get_forwarder),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """
    Obtain an access token from Cora with the client-credentials grant.

    The environment comes from the JSON body rather than x-environment, and
    no Authorization header is forwarded since the caller has no token yet.
    """
    token_request = parse_token_request(await request.body())
    target = resolve_upstream(token_request.environment, settings)

    form = urlencode({
        "grant_type": "client_credentials",
        "client_id": token_request.client_id,
    }).encode("ascii")

    forwarded = ForwardedRequest(
        method="POST",
        target=target,
        path=TOKEN_PATH,
        headers=[
            ("Content-Type", FORM_CONTENT_TYPE),
            ("Content-Length", str(len(form))),
        ],
        body=form,
    )

    upstream = await forward_while_connected(request, forwarder, forwarded)
    return relay(upstream)


def make_route_handler(route: RouteDefinition) -> Callable[..., Awaitable[Response]]:
    """
    Create the FastAPI endpoint for one route table entry.

    Args:
        route: Route definition to serve

    Returns:
        Async endpoint function
    """

    async def handler(
        request: Request,
        forwarder: UpstreamForwarder = Depends(get_forwarder),
        settings: Settings = Depends(get_app_settings),
    ) -> Response:
        body = await request.body()
        target = resolve_upstream(request.headers.get(ENVIRONMENT_HEADER), settings)

        forwarded = build_forwarded_request(
            route,
            method=request.method,
            path_params=request.path_params,
            query_items=request.query_params.multi_items(),
            headers=request.headers,
            body=body,
            target=target,
        )

        upstream = await forward_while_connected(request, forwarder, forwarded)
        return relay(upstream)

    handler.__name__ = route.name
    handler.__doc__ = f"Forward {' / '.join(route.methods)} {route.inbound_path} to {route.upstream_template}"
    return handler


for _route in ROUTE_TABLE:
    proxy_router.add_api_route(
        _route.inbound_path,
        make_route_handler(_route),
        methods=_route.methods,
        name=_route.name,
    )
