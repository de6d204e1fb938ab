"""
Per-request authenticated context.

The bearer middleware binds the resolved User for the duration of one
downstream call. The binding lives in a ContextVar, so each asyncio task sees
only its own request, and it is reset when the with-block exits, including
on exceptions.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Iterator, Optional

from identity_mcp.models import User


@dataclass(frozen=True)
class RequestContext:
    user: User


_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "identity_mcp_request_context", default=None
)


@contextmanager
def bind_request_context(context: RequestContext) -> Iterator[RequestContext]:
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)


def get_request_context() -> Optional[RequestContext]:
    return _request_context.get()


def require_user() -> User:
    """
    Return the authenticated user for the current request.

    Raises:
        LookupError: If called outside an authenticated request
    """
    context = _request_context.get()
    if context is None:
        raise LookupError("No authenticated request context")
    return context.user
