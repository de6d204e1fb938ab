"""
Identity provider definitions.

A deployment talks to exactly one provider. Google, Auth0 and generic OIDC
share one model; they differ only in endpoints, accepted issuers, accepted
audiences and the extra parameters sent to the authorize endpoint.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from identity_mcp.config import Settings

GOOGLE_AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
GOOGLE_JWKS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ["https://accounts.google.com", "accounts.google.com"]


class IdentityProvider(BaseModel):
    """Endpoints and trust settings for one OAuth2/OIDC provider."""

    name: str
    client_id: str
    client_secret: str
    redirect_uri: str
    authorize_url: str
    token_url: str
    userinfo_url: Optional[str] = None
    jwks_url: str
    issuers: List[str]
    # Audience requested at the authorize endpoint (Auth0 API identifier)
    api_audience: Optional[str] = None
    scopes: List[str] = Field(default_factory=lambda: ["openid", "email", "profile"])
    extra_authorize_params: Dict[str, str] = Field(default_factory=dict)

    @property
    def issuer(self) -> str:
        """Canonical issuer, advertised as the authorization server."""
        return self.issuers[0]

    @property
    def audiences(self) -> List[str]:
        """Token audiences this deployment accepts."""
        allowed = [self.client_id]
        if self.api_audience:
            allowed.append(self.api_audience)
        return allowed


def google_provider(settings: Settings) -> IdentityProvider:
    return IdentityProvider(
        name="google",
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret,
        redirect_uri=settings.oauth_redirect_uri,
        authorize_url=settings.oauth_authorize_url or GOOGLE_AUTHORIZE_URL,
        token_url=settings.oauth_token_url or GOOGLE_TOKEN_URL,
        userinfo_url=settings.oauth_userinfo_url or GOOGLE_USERINFO_URL,
        jwks_url=settings.oauth_jwks_url or GOOGLE_JWKS_URL,
        issuers=list(GOOGLE_ISSUERS),
        scopes=settings.scopes,
        extra_authorize_params={"prompt": "consent", "access_type": "offline"},
    )


def auth0_provider(settings: Settings) -> IdentityProvider:
    base = settings.oauth_issuer.rstrip("/")
    return IdentityProvider(
        name="auth0",
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret,
        redirect_uri=settings.oauth_redirect_uri,
        authorize_url=settings.oauth_authorize_url or f"{base}/authorize",
        token_url=settings.oauth_token_url or f"{base}/oauth/token",
        userinfo_url=settings.oauth_userinfo_url or f"{base}/userinfo",
        jwks_url=settings.oauth_jwks_url or f"{base}/.well-known/jwks.json",
        # Auth0 issues "iss" with a trailing slash
        issuers=[f"{base}/", base],
        api_audience=settings.oauth_audience,
        scopes=settings.scopes,
    )


def oidc_provider(settings: Settings) -> IdentityProvider:
    issuer = settings.oauth_issuer
    variants = [issuer]
    alternate = issuer[:-1] if issuer.endswith("/") else f"{issuer}/"
    variants.append(alternate)
    return IdentityProvider(
        name="oidc",
        client_id=settings.oauth_client_id,
        client_secret=settings.oauth_client_secret,
        redirect_uri=settings.oauth_redirect_uri,
        authorize_url=settings.oauth_authorize_url,
        token_url=settings.oauth_token_url,
        userinfo_url=settings.oauth_userinfo_url,
        jwks_url=settings.oauth_jwks_url,
        issuers=variants,
        api_audience=settings.oauth_audience,
        scopes=settings.scopes,
    )


_FACTORIES = {
    "google": google_provider,
    "auth0": auth0_provider,
    "oidc": oidc_provider,
}


def build_provider(settings: Settings) -> IdentityProvider:
    """Build the configured provider. Call validate_oauth_config() first."""
    try:
        factory = _FACTORIES[settings.oauth_provider]
    except KeyError:
        raise ValueError(f"Unsupported identity provider: {settings.oauth_provider}")
    return factory(settings)
