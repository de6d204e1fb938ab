"""Tests for provider variants and OAuth configuration validation."""

import pytest

from identity_mcp.auth.providers import (
    GOOGLE_AUTHORIZE_URL,
    GOOGLE_JWKS_URL,
    build_provider,
)
from identity_mcp.config import Settings


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite+aiosqlite:///:memory:",
        oauth_client_id="client-123",
        oauth_client_secret="secret",
        oauth_redirect_uri="https://mcp.example.com/auth/callback",
        public_base_url="https://mcp.example.com",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestGoogle:
    def test_defaults(self):
        provider = build_provider(make_settings(oauth_provider="google"))

        assert provider.name == "google"
        assert provider.authorize_url == GOOGLE_AUTHORIZE_URL
        assert provider.jwks_url == GOOGLE_JWKS_URL
        assert provider.issuers == ["https://accounts.google.com", "accounts.google.com"]
        assert provider.audiences == ["client-123"]
        assert provider.extra_authorize_params == {"prompt": "consent", "access_type": "offline"}


class TestAuth0:
    def test_endpoints_derived_from_issuer(self):
        provider = build_provider(
            make_settings(
                oauth_provider="auth0",
                oauth_issuer="https://tenant.auth0.com/",
                oauth_audience="https://api.example.com",
            )
        )

        assert provider.authorize_url == "https://tenant.auth0.com/authorize"
        assert provider.token_url == "https://tenant.auth0.com/oauth/token"
        assert provider.userinfo_url == "https://tenant.auth0.com/userinfo"
        assert provider.jwks_url == "https://tenant.auth0.com/.well-known/jwks.json"
        assert provider.issuer == "https://tenant.auth0.com/"
        assert "https://tenant.auth0.com" in provider.issuers
        assert provider.audiences == ["client-123", "https://api.example.com"]

    def test_requires_issuer(self):
        with pytest.raises(ValueError, match="IDENTITY_MCP_OAUTH_ISSUER"):
            make_settings(oauth_provider="auth0").validate_oauth_config()


class TestGenericOidc:
    def test_requires_all_endpoints(self):
        settings = make_settings(
            oauth_provider="oidc",
            oauth_issuer="https://login.example.com",
            oauth_authorize_url="https://login.example.com/auth",
        )

        with pytest.raises(ValueError, match="IDENTITY_MCP_OAUTH_TOKEN_URL"):
            settings.validate_oauth_config()

    def test_uses_configured_endpoints(self):
        settings = make_settings(
            oauth_provider="oidc",
            oauth_issuer="https://login.example.com",
            oauth_authorize_url="https://login.example.com/auth",
            oauth_token_url="https://login.example.com/token",
            oauth_userinfo_url="https://login.example.com/me",
            oauth_jwks_url="https://login.example.com/keys",
        )
        settings.validate_oauth_config()

        provider = build_provider(settings)

        assert provider.name == "oidc"
        assert provider.token_url == "https://login.example.com/token"
        assert provider.issuers == ["https://login.example.com", "https://login.example.com/"]


class TestResourceId:
    def test_defaults_to_mcp_url(self):
        assert make_settings().resource_id == "https://mcp.example.com/mcp"

    def test_falls_back_to_audience(self):
        settings = make_settings(oauth_audience="https://api.example.com")

        assert settings.resource_id == "https://api.example.com"

    def test_explicit_resource_id_wins(self):
        settings = make_settings(
            oauth_audience="https://api.example.com",
            oauth_resource_id="urn:mcp",
        )

        assert settings.resource_id == "urn:mcp"

    def test_metadata_url(self):
        assert (
            make_settings().resource_metadata_url
            == "https://mcp.example.com/.well-known/oauth-protected-resource"
        )
