"""
ID token verification.

Validates tokens issued by the configured provider:
1. Signature against the provider JWKS (RS256/ES256 family)
2. Expiry, issuer allow-list and audience intersection
3. Nonce binding to the login attempt (callback flow only)
4. Subject and verified email, with a userinfo fallback for email

The same verifier handles bearer tokens on protected MCP requests; those
carry no nonce.
"""

import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError
from loguru import logger

from identity_mcp.auth.errors import (
    EmailNotVerified,
    InvalidClaims,
    MissingEmail,
    MissingSubject,
    NonceMismatch,
    SignatureInvalid,
)
from identity_mcp.auth.jwks import JwksCache
from identity_mcp.auth.providers import IdentityProvider

ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384"]


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity asserted by a cryptographically verified token."""

    subject: str
    email: str
    email_verified: Optional[bool]  # None when the provider did not say
    name: Optional[str] = None
    picture: Optional[str] = None


def _is_explicitly_false(value: Any) -> bool:
    if value is False:
        return True
    return isinstance(value, str) and value.lower() == "false"


class IdTokenVerifier:
    """Verifies provider-issued JWTs and projects them into VerifiedIdentity."""

    def __init__(
        self,
        *,
        provider: IdentityProvider,
        jwks: JwksCache,
        http_client: httpx.AsyncClient,
        leeway_seconds: int = 0,
    ):
        self.provider = provider
        self._jwks = jwks
        self.http_client = http_client
        self._leeway = leeway_seconds

    async def verify(
        self,
        token: str,
        *,
        expected_nonce: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> VerifiedIdentity:
        """
        Verify a token and return the identity it asserts.

        Args:
            token: Compact-serialised JWT
            expected_nonce: Nonce issued for this login attempt. When given,
                the token's nonce must equal it exactly.
            access_token: Access token from the same exchange; validated
                against at_hash and used for the userinfo fallback

        Returns:
            VerifiedIdentity

        Raises:
            SignatureInvalid, InvalidClaims, NonceMismatch, MissingSubject,
            MissingEmail, EmailNotVerified
        """
        claims = await self._decode(token, access_token)

        if expected_nonce is not None:
            nonce = claims.get("nonce")
            if not isinstance(nonce, str) or not hmac.compare_digest(nonce, expected_nonce):
                raise NonceMismatch("Token nonce does not match the login attempt")

        subject = claims.get("sub")
        if not subject:
            raise MissingSubject("Missing subject (sub) claim in token")

        if not claims.get("email"):
            userinfo = await self._fetch_userinfo(access_token or token)
            if userinfo.get("sub") not in (None, subject):
                logger.warning("Userinfo subject does not match token subject, ignoring it")
                userinfo = {}
            for field in ("email", "email_verified", "name", "picture"):
                if claims.get(field) is None and userinfo.get(field) is not None:
                    claims[field] = userinfo[field]

        email = claims.get("email")
        if not email:
            raise MissingEmail("Missing email claim in token")

        email_verified = claims.get("email_verified")
        if _is_explicitly_false(email_verified):
            raise EmailNotVerified(f"Email {email} is not verified by {self.provider.name}")

        return VerifiedIdentity(
            subject=str(subject),
            email=email,
            email_verified=None if email_verified is None else True,
            name=claims.get("name"),
            picture=claims.get("picture"),
        )

    async def _decode(self, token: str, access_token: Optional[str]) -> Dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise SignatureInvalid(f"Malformed token header: {e}") from e

        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise SignatureInvalid(f"Unsupported token algorithm: {algorithm}")

        key = await self._jwks.get_key(header.get("kid"))

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                access_token=access_token,
                options={
                    # Issuer and audience are checked below against allow-lists
                    "verify_aud": False,
                    "verify_iss": False,
                    "verify_at_hash": access_token is not None,
                    "leeway": self._leeway,
                },
            )
        except ExpiredSignatureError as e:
            raise InvalidClaims("Token has expired") from e
        except JWTClaimsError as e:
            raise InvalidClaims(str(e)) from e
        except JWTError as e:
            raise SignatureInvalid(f"Signature verification failed: {e}") from e

        issuer = claims.get("iss")
        if issuer not in self.provider.issuers:
            raise InvalidClaims(f"Unexpected issuer: {issuer}")

        audience = claims.get("aud")
        token_audiences = [audience] if isinstance(audience, str) else list(audience or [])
        if not set(token_audiences) & set(self.provider.audiences):
            raise InvalidClaims(f"Unexpected audience: {audience}")

        return claims

    async def _fetch_userinfo(self, bearer: str) -> Dict[str, Any]:
        """Look up profile claims. Failures are logged and yield {}."""
        if not self.provider.userinfo_url:
            return {}

        try:
            response = await self.http_client.get(
                self.provider.userinfo_url,
                headers={"Authorization": f"Bearer {bearer}", "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Userinfo lookup failed: {e}")
            return {}

        if not response.is_success:
            logger.warning(f"Userinfo lookup returned {response.status_code}")
            return {}

        try:
            data = response.json()
        except ValueError:
            logger.warning("Userinfo response is not valid JSON")
            return {}

        return data if isinstance(data, dict) else {}
