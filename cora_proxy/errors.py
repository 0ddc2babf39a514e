"""
Error types raised by the proxy.

Every per-request error is turned into an HTTP response by the exception
handlers registered in ``cora_proxy.main``. ``ConfigurationError`` is the only
one that is allowed to stop the process.
"""


class ProxyError(Exception):
    """Base exception for proxy errors"""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(ProxyError):
    """Caller did not present the expected x-proxy-secret"""

    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class InvalidRequestBody(ProxyError):
    """Inbound body could not be read as the JSON object a route needs"""

    status_code = 400


class UpstreamTransportError(ProxyError):
    """
    The upstream could not be reached or the exchange did not complete.

    Covers DNS failures, TLS handshake failures, refused or reset
    connections and timeouts. An upstream that *answers* with a non-2xx
    status is not an error and never produces this exception.
    """

    status_code = 500


class ClientDisconnected(ProxyError):
    """Caller went away before the upstream answered; the exchange was abandoned"""

    # nginx's "client closed request"; never actually seen by the caller
    status_code = 499

    def __init__(self, message: str = "Client disconnected"):
        super().__init__(message)


class ConfigurationError(Exception):
    """Credential material is missing or unusable; the process must not start"""
