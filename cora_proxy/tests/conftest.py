"""
Shared fixtures for the proxy tests.

A throwaway self-signed certificate is generated once per session so the
real credential loading and TLS context code runs in every test; the
upstream itself is replaced by an httpx.MockTransport that records what it
receives.
"""

import base64
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from fastapi.testclient import TestClient

from cora_proxy.config import Settings
from cora_proxy.credentials import CredentialSet, load_credentials
from cora_proxy.main import create_app
from cora_proxy.proxy.forwarder import UpstreamForwarder

TEST_PROXY_SECRET = "test-proxy-secret-0123456789abcdef"
STAGE_HOST = "stage.cora.test"
PRODUCTION_HOST = "production.cora.test"


def generate_test_identity():
    """Generate a self-signed certificate and its private key as PEM bytes"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "cora-proxy-test")])
    now = datetime.now(timezone.utc)

    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )

    cert_pem = certificate.public_bytes(serialization.Encoding.PEM)
    key_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


class MockUpstream:
    """
    Stand-in for the Cora API.

    Records every request it receives and answers with a configurable
    status/body, or raises ``error`` to simulate a transport failure.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.status_code = 200
        self.body = b'{"ok": true}'
        self.headers = {"Content-Type": "application/json"}
        self.error: Optional[Exception] = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, headers=self.headers, content=self.body)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "upstream received no request"
        return self.requests[-1]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def test_identity():
    """PEM certificate and key shared by the whole session"""
    return generate_test_identity()


@pytest.fixture
def mock_settings(test_identity):
    """Settings with a valid identity and test upstream hosts"""
    cert_pem, key_pem = test_identity
    return Settings(
        _env_file=None,
        CORA_CERT_BASE64=b64(cert_pem),
        CORA_KEY_BASE64=b64(key_pem),
        PROXY_SECRET=TEST_PROXY_SECRET,
        CORA_STAGE_HOST=STAGE_HOST,
        CORA_PRODUCTION_HOST=PRODUCTION_HOST,
        UPSTREAM_TIMEOUT_SECONDS=5,
        UPSTREAM_CONNECT_TIMEOUT_SECONDS=2,
    )


@pytest.fixture
def credentials(mock_settings) -> CredentialSet:
    return load_credentials(mock_settings)


@pytest.fixture
def upstream():
    return MockUpstream()


@pytest.fixture
def forwarder(credentials, mock_settings, upstream):
    """Real forwarder, real TLS context, mocked network"""
    return UpstreamForwarder.from_credentials(
        credentials, mock_settings, transport=httpx.MockTransport(upstream)
    )


@pytest.fixture
def app(mock_settings, credentials, forwarder):
    return create_app(mock_settings, credentials=credentials, forwarder=forwarder)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Headers of a correctly authenticated caller"""
    return {
        "x-proxy-secret": TEST_PROXY_SECRET,
        "Authorization": "Bearer cora-access-token",
    }
