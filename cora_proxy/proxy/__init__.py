"""
Proxy Package
=============

Forwards authenticated caller requests to the Cora API over mutual TLS.

Main Components:
----------------
- environment.py: x-environment → upstream host
- route_table.py: inbound endpoints and their upstream paths
- forwarder.py: single mTLS exchange per request
- routes.py: FastAPI router tying the above together

Usage:
------
    from cora_proxy.proxy import proxy_router
    app.include_router(proxy_router)
"""

from .forwarder import UpstreamForwarder
from .routes import proxy_router

__all__ = ["UpstreamForwarder", "proxy_router"]
