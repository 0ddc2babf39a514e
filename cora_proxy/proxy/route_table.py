"""
Route Table
===========

Ordered list of inbound endpoints and the upstream request each one maps to.

Every named entry is a shortcut for something the ``/proxy/*`` wildcard can
already express; they only spare callers from knowing Cora's path layout.
All entries, wildcard included, are turned into a ForwardedRequest by the
same function, so a named route and the equivalent wildcard call produce
identical upstream requests.

The wildcard is always the last entry.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field
from starlette.datastructures import Headers

from ..models import ForwardedRequest, Header, UpstreamTarget

ENVIRONMENT_HEADER = "x-environment"

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
WILDCARD_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]

DEFAULT_BODY_CONTENT_TYPE = "application/json"


class RouteDefinition(BaseModel):
    """
    One inbound endpoint.

    Attributes:
        name: Route name (also used as the FastAPI route name)
        methods: Inbound HTTP methods accepted
        inbound_path: FastAPI path pattern, parameters in braces
        upstream_template: Upstream path; inbound parameters substituted verbatim
        forward_query: Whether the inbound query string is forwarded
        forward_body: Whether non-GET bodies are forwarded
    """
    model_config = ConfigDict(frozen=True)

    name: str
    methods: List[str]
    inbound_path: str
    upstream_template: str
    forward_query: bool = False
    forward_body: bool = False

    def upstream_path(self, path_params: Dict[str, str]) -> str:
        return self.upstream_template.format(**path_params)


ROUTE_TABLE: Tuple[RouteDefinition, ...] = (
    RouteDefinition(
        name="create_invoice",
        methods=["POST"],
        inbound_path="/invoices",
        upstream_template="/invoices",
        forward_body=True,
    ),
    RouteDefinition(
        name="list_invoices",
        methods=["GET"],
        inbound_path="/invoices",
        upstream_template="/invoices",
        forward_query=True,
    ),
    RouteDefinition(
        name="get_invoice",
        methods=["GET"],
        inbound_path="/invoices/{invoice_id}",
        upstream_template="/invoices/{invoice_id}",
    ),
    RouteDefinition(
        name="cancel_invoice",
        methods=["DELETE"],
        inbound_path="/invoices/{invoice_id}",
        upstream_template="/invoices/{invoice_id}",
    ),
    RouteDefinition(
        name="get_balance",
        methods=["GET"],
        inbound_path="/businesses/{business_id}/balance",
        upstream_template="/businesses/{business_id}/balance",
    ),
    RouteDefinition(
        name="get_transfer",
        methods=["GET"],
        inbound_path="/cora/transfers/{transfer_id}",
        upstream_template="/transfers/{transfer_id}",
    ),
    RouteDefinition(
        name="list_transfers",
        methods=["GET"],
        inbound_path="/cora/transfers",
        upstream_template="/transfers",
        forward_query=True,
    ),
    RouteDefinition(
        name="get_statements",
        methods=["GET"],
        inbound_path="/businesses/{business_id}/statements",
        upstream_template="/businesses/{business_id}/statements",
        forward_query=True,
    ),
    # Catch-all; must stay last.
    RouteDefinition(
        name="proxy",
        methods=WILDCARD_METHODS,
        inbound_path="/proxy/{upstream_path:path}",
        upstream_template="/{upstream_path}",
        forward_query=True,
        forward_body=True,
    ),
)


# =============================================================================
# Request Construction
# =============================================================================

def encode_query(query_items: Sequence[Tuple[str, str]]) -> str:
    """
    Re-serialize inbound query parameters.

    Order and repeated keys are preserved; the encoding itself is
    normalised (spaces become '+', reserved characters are escaped).
    """
    return urlencode(list(query_items))


def forwarded_headers(inbound: Headers) -> List[Header]:
    """Authorization values to pass through, in inbound order."""
    return [("Authorization", value) for value in inbound.getlist("authorization")]


def build_forwarded_request(
    route: RouteDefinition,
    method: str,
    path_params: Dict[str, str],
    query_items: Sequence[Tuple[str, str]],
    headers: Headers,
    body: Optional[bytes],
    target: UpstreamTarget,
) -> ForwardedRequest:
    """
    Turn an inbound request matched by ``route`` into a ForwardedRequest.

    Args:
        route: Matched route definition
        method: Inbound HTTP method (also the upstream method)
        path_params: Decoded path parameters from the inbound match
        query_items: Inbound query parameters as (key, value) pairs
        headers: Inbound headers
        body: Raw inbound body
        target: Resolved upstream

    Returns:
        ForwardedRequest ready for the forwarder
    """
    method = method.upper()
    outbound_headers = forwarded_headers(headers)

    outbound_body = None
    if route.forward_body and method not in BODYLESS_METHODS and body:
        outbound_body = body
        outbound_headers.append(
            ("Content-Type", headers.get("content-type") or DEFAULT_BODY_CONTENT_TYPE)
        )
        outbound_headers.append(("Content-Length", str(len(body))))

    return ForwardedRequest(
        method=method,
        target=target,
        path=route.upstream_path(path_params),
        query=encode_query(query_items) if route.forward_query else "",
        headers=outbound_headers,
        body=outbound_body,
    )
