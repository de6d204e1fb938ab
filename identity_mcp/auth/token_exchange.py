"""
Authorization-code exchange against the provider token endpoint.

Swaps the code returned to /auth/callback for the provider's token set.
The ID token in the response is NOT validated here; that is the job of
IdTokenVerifier.
"""

from typing import Optional

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from identity_mcp.auth.errors import ExchangeFailed, ProviderUnavailable
from identity_mcp.auth.providers import IdentityProvider


class TokenResponse(BaseModel):
    """Token endpoint response."""

    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: Optional[str] = None


class TokenExchanger:
    """Performs the authorization_code grant for one provider."""

    def __init__(self, *, provider: IdentityProvider, http_client: httpx.AsyncClient):
        self.provider = provider
        self.http_client = http_client

    async def exchange(self, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the provider redirect

        Returns:
            Parsed token response

        Raises:
            ProviderUnavailable: If the token endpoint cannot be reached
            ExchangeFailed: If the provider answers with a non-2xx status
                or an unparseable body
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self.provider.client_id,
            "client_secret": self.provider.client_secret,
            "redirect_uri": self.provider.redirect_uri,
        }

        try:
            response = await self.http_client.post(
                self.provider.token_url,
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailable(
                f"Token endpoint {self.provider.token_url} unreachable: {e}"
            ) from e

        if not response.is_success:
            raise ExchangeFailed(response.status_code, response.text)

        try:
            tokens = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ExchangeFailed(response.status_code, response.text) from e

        logger.debug(
            f"✓ Authorization code exchanged with {self.provider.name} "
            f"(scope={tokens.scope}, expires_in={tokens.expires_in})"
        )
        return tokens
