"""
Bearer authentication for protected MCP paths.

Requests under /mcp must carry `Authorization: Bearer <token>`. The token is
verified with the provider's keys (no nonce), the User is resolved, and the
downstream transport runs inside a bound RequestContext. Failures return 401
with a WWW-Authenticate challenge that points at the protected resource
metadata document (RFC 9728). A database failure while resolving the User
returns a fixed 500 body.
"""

from typing import TYPE_CHECKING, Optional

from loguru import logger
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from identity_mcp.auth.errors import AuthError, PersistenceFailure
from identity_mcp.auth.id_token import IdTokenVerifier
from identity_mcp.request_context import RequestContext, bind_request_context

if TYPE_CHECKING:
    from identity_mcp.user_repository import UserRepository

PROTECTED_PREFIX = "/mcp"


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """
    Pull the token out of an Authorization header.

    The scheme is matched case-insensitively. Returns None for a missing or
    malformed header.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    if not token or " " in token:
        return None
    return token


def is_protected_path(path: str) -> bool:
    return path == PROTECTED_PREFIX or path.startswith(PROTECTED_PREFIX + "/")


def protected_resource_metadata(resource: str, issuer: str) -> dict:
    """Body of /.well-known/oauth-protected-resource."""
    return {"resource": resource, "authorization_servers": [issuer]}


class BearerAuthMiddleware:
    """Pure ASGI middleware guarding PROTECTED_PREFIX."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        verifier: IdTokenVerifier,
        repository: "UserRepository",
        resource_metadata_url: str,
    ):
        self.app = app
        self.verifier = verifier
        self.repository = repository
        self.challenge = f'Bearer resource_metadata="{resource_metadata_url}"'

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not is_protected_path(scope.get("path", "")):
            await self.app(scope, receive, send)
            return

        token = extract_bearer_token(Headers(scope=scope).get("authorization"))
        if token is None:
            logger.warning(f"Missing or malformed bearer token: path={scope.get('path')}")
            await self._unauthorized(scope, receive, send)
            return

        try:
            identity = await self.verifier.verify(token)
        except AuthError as e:
            logger.warning(f"Bearer token rejected: {type(e).__name__}: {e}")
            await self._unauthorized(scope, receive, send)
            return

        try:
            user = await self.repository.upsert_identity(self.verifier.provider.name, identity)
        except PersistenceFailure as e:
            logger.error(f"Could not resolve user for bearer token: {e}")
            response = JSONResponse({"error": "internal_error"}, status_code=500)
            await response(scope, receive, send)
            return

        logger.debug(f"Authenticated request: user={user.id}, path={scope.get('path')}")
        with bind_request_context(RequestContext(user=user)):
            await self.app(scope, receive, send)

    async def _unauthorized(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(
            {"error": "unauthorized"},
            status_code=401,
            headers={"WWW-Authenticate": self.challenge},
        )
        await response(scope, receive, send)
