"""
In-memory store of pending login attempts.

Each /auth/login issues a state token and a nonce. The callback consumes the
state exactly once. Entries older than the TTL are treated as invalid and are
swept on every issue.

Note: This is per-process storage. A multi-instance deployment would need a
shared store, and a restart drops every pending login.
"""

import secrets
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple

from loguru import logger

DEFAULT_STATE_TTL = timedelta(minutes=5)


@dataclass(frozen=True)
class PendingLogin:
    """A login attempt waiting for its callback."""

    nonce: str
    created_at: float  # clock() reading at issue time


class StateStore:
    """
    Registry of pending login attempts keyed by state token.

    All operations are synchronous, so under a single event loop no two
    callbacks can interleave inside issue() or validate_and_consume().
    """

    def __init__(
        self,
        ttl: timedelta = DEFAULT_STATE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl_seconds = ttl.total_seconds()
        self._clock = clock
        self._pending: Dict[str, PendingLogin] = {}

    def issue(self) -> Tuple[str, str]:
        """
        Start a login attempt.

        Returns:
            (state, nonce), both 128-bit random hex tokens
        """
        self.purge_expired()

        state = secrets.token_hex(16)
        nonce = secrets.token_hex(16)
        self._pending[state] = PendingLogin(nonce=nonce, created_at=self._clock())
        return state, nonce

    def validate_and_consume(self, state: Optional[str]) -> Optional[str]:
        """
        Consume a state token.

        The entry is removed before the age check, so a state validates at
        most once even when it turns out to be expired.

        Returns:
            The nonce bound to the state, or None if unknown/expired/reused
        """
        if not state:
            return None

        record = self._pending.pop(state, None)
        if record is None:
            return None

        if self._clock() - record.created_at > self._ttl_seconds:
            logger.debug("Pending login expired before callback")
            return None

        return record.nonce

    def purge_expired(self) -> int:
        """
        Remove entries older than the TTL.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            state
            for state, record in self._pending.items()
            if now - record.created_at > self._ttl_seconds
        ]
        for state in expired:
            del self._pending[state]
        return len(expired)

    def __len__(self) -> int:
        return len(self._pending)
