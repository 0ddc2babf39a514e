"""
Cora mTLS Proxy

Lets internal services call the Cora banking API with plain HTTP requests.
The proxy holds the mTLS client certificate, authenticates callers with a
shared secret and selects the staging or production API per request.

Packages:
- auth: x-proxy-secret gate
- proxy: environment resolution, route table and the forwarding engine
"""

__version__ = "1.0.0"
