"""
Browser login flow for /auth/login and /auth/callback.

Login attempt lifecycle:

    STARTED -> CALLBACK_RECEIVED -> PROVIDER_ERROR | STATE_INVALID | CODE_MISSING
                                 -> TOKEN_EXCHANGED -> IDENTITY_VERIFIED
                                 -> USER_RESOLVED -> COMPLETED

Any failure between TOKEN_EXCHANGED and USER_RESOLVED ends in INTERNAL_ERROR.
Every outcome maps to a fixed page and status code; provider payloads and
exception details only go to the server log.
"""

import json
from dataclasses import dataclass
from enum import Enum
from html import escape
from typing import TYPE_CHECKING, Mapping, Optional
from urllib.parse import urlsplit

from loguru import logger

from identity_mcp.auth.authorize import build_authorize_url
from identity_mcp.auth.errors import (
    AuthError,
    ExchangeFailed,
    InvalidState,
    ProviderError,
    TokenVerificationError,
)
from identity_mcp.auth.id_token import IdTokenVerifier
from identity_mcp.auth.providers import IdentityProvider
from identity_mcp.auth.state_store import StateStore
from identity_mcp.auth.token_exchange import TokenExchanger
from identity_mcp.models import User

if TYPE_CHECKING:
    from identity_mcp.user_repository import UserRepository


class LoginState(str, Enum):
    STARTED = "started"
    CALLBACK_RECEIVED = "callback_received"
    PROVIDER_ERROR = "provider_error"
    STATE_INVALID = "state_invalid"
    CODE_MISSING = "code_missing"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_VERIFIED = "identity_verified"
    USER_RESOLVED = "user_resolved"
    COMPLETED = "completed"
    INTERNAL_ERROR = "internal_error"


MSG_PROVIDER_ERROR = "Authentication failed. Please close this window and try again."
MSG_STATE_INVALID = "Authentication session expired. Please close this window and restart login."
MSG_CODE_MISSING = "Missing authorization code. Please try again."
MSG_INTERNAL_ERROR = "Unable to complete authentication. Please close this window and try again."


@dataclass
class CallbackResult:
    """Terminal outcome of a callback, ready to render."""

    state: LoginState
    status_code: int
    html: str
    user: Optional[User] = None


def origin_of(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def render_error_page(message: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Authentication Error</title>
  </head>
  <body>
    <p>{escape(message)}</p>
  </body>
</html>
"""


def render_success_page(id_token: str, nonce: str, target_origin: str) -> str:
    """Page that hands the ID token to the window that opened the login popup."""
    # Escape markup characters so the JSON cannot close the script element
    payload = (
        json.dumps({"id_token": id_token, "nonce": nonce})
        .replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
    )
    origin = json.dumps(target_origin).replace("<", "\\u003c")
    return f"""<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <title>Authentication Complete</title>
  </head>
  <body>
    <script>
      const payload = {payload};
      if (window.opener) {{
        window.opener.postMessage({{ type: "authorization_response", payload }}, {origin});
      }}
      window.close();
    </script>
    <p>Authentication complete. You may close this window.</p>
  </body>
</html>
"""


class LoginFlow:
    """Drives one provider's authorization-code + ID token login."""

    def __init__(
        self,
        *,
        provider: IdentityProvider,
        state_store: StateStore,
        exchanger: TokenExchanger,
        verifier: IdTokenVerifier,
        repository: "UserRepository",
        public_base_url: str,
    ):
        self.provider = provider
        self.state_store = state_store
        self.exchanger = exchanger
        self.verifier = verifier
        self.repository = repository
        self.origin = origin_of(public_base_url)

    def start_login(self) -> str:
        """Issue state + nonce and return the provider authorize URL."""
        state, nonce = self.state_store.issue()
        logger.debug(f"Login {LoginState.STARTED.value}: redirecting to {self.provider.name}")
        return build_authorize_url(
            self.provider.authorize_url,
            client_id=self.provider.client_id,
            redirect_uri=self.provider.redirect_uri,
            scopes=self.provider.scopes,
            state=state,
            nonce=nonce,
            audience=self.provider.api_audience,
            extra_params=self.provider.extra_authorize_params,
        )

    async def handle_callback(self, params: Mapping[str, str]) -> CallbackResult:
        """
        Complete a login from the provider redirect's query parameters.

        Args:
            params: Query parameters (code, state, error, error_description)

        Returns:
            CallbackResult with the terminal state and page to render
        """
        try:
            nonce = self._consume_state(params)
        except ProviderError as e:
            logger.error(f"OAuth error from {self.provider.name}: {e}")
            return self._fail(LoginState.PROVIDER_ERROR, 400, MSG_PROVIDER_ERROR)
        except InvalidState:
            logger.warning("Invalid or expired OAuth state")
            return self._fail(LoginState.STATE_INVALID, 400, MSG_STATE_INVALID)

        code = params.get("code")
        if not code:
            logger.warning("OAuth callback without authorization code")
            return self._fail(LoginState.CODE_MISSING, 400, MSG_CODE_MISSING)

        stage = LoginState.CALLBACK_RECEIVED
        try:
            tokens = await self.exchanger.exchange(code)
            if not tokens.id_token:
                raise ExchangeFailed(200, f"Missing id_token in {self.provider.name} response")
            stage = LoginState.TOKEN_EXCHANGED

            identity = await self.verifier.verify(
                tokens.id_token,
                expected_nonce=nonce,
                access_token=tokens.access_token,
            )
            stage = LoginState.IDENTITY_VERIFIED

            user = await self.repository.upsert_identity(self.provider.name, identity)
            stage = LoginState.USER_RESOLVED
        except ExchangeFailed as e:
            logger.error(f"Token exchange failed: {e.status_code} {e.body}")
            return self._fail(LoginState.INTERNAL_ERROR, 500, MSG_INTERNAL_ERROR)
        except TokenVerificationError as e:
            logger.error(f"ID token rejected after {stage.value}: {type(e).__name__}: {e}")
            return self._fail(LoginState.INTERNAL_ERROR, 500, MSG_INTERNAL_ERROR)
        except AuthError as e:
            logger.error(f"Login failed after {stage.value}: {type(e).__name__}: {e}")
            return self._fail(LoginState.INTERNAL_ERROR, 500, MSG_INTERNAL_ERROR)
        except Exception:
            logger.exception(f"Unexpected error completing login after {stage.value}")
            return self._fail(LoginState.INTERNAL_ERROR, 500, MSG_INTERNAL_ERROR)

        logger.info(f"🔐 Authenticated {self.provider.name} user {user.email} ({user.id})")
        return CallbackResult(
            state=LoginState.COMPLETED,
            status_code=200,
            html=render_success_page(tokens.id_token, nonce, self.origin),
            user=user,
        )

    def _consume_state(self, params: Mapping[str, str]) -> str:
        """Reject provider errors, then consume the state. Returns the nonce."""
        error = params.get("error")
        if error:
            raise ProviderError(error, params.get("error_description"))

        nonce = self.state_store.validate_and_consume(params.get("state"))
        if nonce is None:
            raise InvalidState("Unknown, expired or reused state")
        return nonce

    def _fail(self, state: LoginState, status_code: int, message: str) -> CallbackResult:
        return CallbackResult(state=state, status_code=status_code, html=render_error_page(message))
