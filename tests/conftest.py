"""
Pytest configuration and fixtures for identity_mcp tests.

Sets up required environment variables before any imports.
"""

import os

# Set required environment variables BEFORE any identity_mcp imports
# These are only needed to satisfy pydantic-settings validation
os.environ.setdefault("IDENTITY_MCP_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("IDENTITY_MCP_OAUTH_CLIENT_ID", "test-client-id")
os.environ.setdefault("IDENTITY_MCP_OAUTH_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("IDENTITY_MCP_OAUTH_REDIRECT_URI", "http://localhost:3001/auth/callback")
os.environ.setdefault("IDENTITY_MCP_PUBLIC_BASE_URL", "http://localhost:3001")

import time  # noqa: E402
from dataclasses import dataclass, field  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from cryptography.hazmat.primitives import serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from jose import jwk, jwt  # noqa: E402

from identity_mcp.auth.providers import GOOGLE_ISSUERS, IdentityProvider  # noqa: E402
from identity_mcp.db import create_engine, create_session_factory, init_database  # noqa: E402
from identity_mcp.user_repository import UserRepository  # noqa: E402

TEST_KID = "test-key-1"
CLIENT_ID = "test-client-id"


@dataclass
class SigningKey:
    kid: str
    private_pem: bytes
    public_jwk: Dict[str, Any]

    def sign(self, claims: Dict[str, Any], algorithm: str = "RS256") -> str:
        return jwt.encode(claims, self.private_pem, algorithm=algorithm, headers={"kid": self.kid})


def generate_signing_key(kid: str = TEST_KID) -> SigningKey:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = private_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    public_pem = private_key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    public_jwk = jwk.construct(public_pem, algorithm="RS256").to_dict()
    public_jwk["kid"] = kid
    public_jwk["use"] = "sig"
    return SigningKey(kid=kid, private_pem=private_pem, public_jwk=public_jwk)


@pytest.fixture(scope="session")
def signing_key() -> SigningKey:
    return generate_signing_key()


def id_token_claims(**overrides: Any) -> Dict[str, Any]:
    """Google-style ID token claims. Pass a claim as None to drop it."""
    now = int(time.time())
    claims = {
        "iss": "https://accounts.google.com",
        "aud": CLIENT_ID,
        "sub": "google-sub-123",
        "email": "alice@example.com",
        "email_verified": True,
        "name": "Alice",
        "picture": "https://example.com/alice.png",
        "iat": now,
        "exp": now + 600,
    }
    claims.update(overrides)
    return {key: value for key, value in claims.items() if value is not None}


@pytest.fixture
def provider() -> IdentityProvider:
    return IdentityProvider(
        name="google",
        client_id=CLIENT_ID,
        client_secret="test-client-secret",
        redirect_uri="http://localhost:3001/auth/callback",
        authorize_url="https://idp.test/authorize",
        token_url="https://idp.test/token",
        userinfo_url="https://idp.test/userinfo",
        jwks_url="https://idp.test/jwks",
        issuers=list(GOOGLE_ISSUERS),
        extra_authorize_params={"prompt": "consent", "access_type": "offline"},
    )


@dataclass
class FakeIdentityProvider:
    """Serves token, JWKS and userinfo endpoints through httpx.MockTransport."""

    keys: List[Dict[str, Any]]
    token_status: int = 200
    token_json: Optional[Dict[str, Any]] = None
    userinfo_status: int = 200
    userinfo_json: Dict[str, Any] = field(default_factory=dict)
    requests: List[httpx.Request] = field(default_factory=list)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/jwks":
            return httpx.Response(200, json={"keys": self.keys})
        if path == "/token":
            if self.token_status != 200:
                return httpx.Response(self.token_status, text='{"error":"invalid_grant"}')
            return httpx.Response(200, json=self.token_json or {})
        if path == "/userinfo":
            return httpx.Response(self.userinfo_status, json=self.userinfo_json)
        return httpx.Response(404)

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


@pytest.fixture
def fake_idp(signing_key) -> FakeIdentityProvider:
    return FakeIdentityProvider(keys=[signing_key.public_jwk])


@pytest_asyncio.fixture
async def http_client(fake_idp):
    async with fake_idp.client() as client:
        yield client


@pytest_asyncio.fixture
async def engine():
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def repository(engine) -> UserRepository:
    return UserRepository(create_session_factory(engine))
