"""
Error taxonomy for the login flow and bearer authentication.

The callback orchestrator and the bearer middleware are the only places
these are turned into HTTP responses.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for authentication failures."""

    pass


class InvalidState(AuthError):
    """Raised when a callback carries an unknown, expired or reused state."""

    pass


class ProviderError(AuthError):
    """Raised when the identity provider reports a failed login."""

    def __init__(self, error: str, description: Optional[str] = None):
        self.error = error
        self.description = description
        super().__init__(f"{error} - {description or 'Unknown error'}")


class ProviderUnavailable(AuthError):
    """Raised when the identity provider cannot be reached."""

    pass


class ExchangeFailed(AuthError):
    """Raised when the token endpoint returns a non-2xx response."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Token exchange failed: {status_code} {body}")


class TokenVerificationError(AuthError):
    """Raised when an ID or access token fails verification."""

    pass


class SignatureInvalid(TokenVerificationError):
    pass


class InvalidClaims(TokenVerificationError):
    """Expired token, unexpected issuer or audience."""

    pass


class NonceMismatch(TokenVerificationError):
    pass


class MissingSubject(TokenVerificationError):
    pass


class MissingEmail(TokenVerificationError):
    pass


class EmailNotVerified(TokenVerificationError):
    pass


class PersistenceFailure(AuthError):
    """Raised when the user/account upsert transaction fails."""

    pass
