"""
Authentication module for Identity MCP.

OAuth2 authorization-code login with ID token verification against a single
configured provider, plus bearer authentication for protected MCP requests.
"""

from identity_mcp.auth.errors import (
    AuthError,
    EmailNotVerified,
    ExchangeFailed,
    InvalidClaims,
    InvalidState,
    MissingEmail,
    MissingSubject,
    NonceMismatch,
    PersistenceFailure,
    ProviderError,
    ProviderUnavailable,
    SignatureInvalid,
    TokenVerificationError,
)
from identity_mcp.auth.providers import IdentityProvider, build_provider
from identity_mcp.auth.state_store import StateStore
from identity_mcp.auth.authorize import build_authorize_url
from identity_mcp.auth.token_exchange import TokenExchanger, TokenResponse
from identity_mcp.auth.jwks import JwksCache
from identity_mcp.auth.id_token import IdTokenVerifier, VerifiedIdentity

__all__ = [
    "AuthError",
    "EmailNotVerified",
    "ExchangeFailed",
    "InvalidClaims",
    "InvalidState",
    "MissingEmail",
    "MissingSubject",
    "NonceMismatch",
    "PersistenceFailure",
    "ProviderError",
    "ProviderUnavailable",
    "SignatureInvalid",
    "TokenVerificationError",
    "IdentityProvider",
    "build_provider",
    "StateStore",
    "build_authorize_url",
    "TokenExchanger",
    "TokenResponse",
    "JwksCache",
    "IdTokenVerifier",
    "VerifiedIdentity",
]
