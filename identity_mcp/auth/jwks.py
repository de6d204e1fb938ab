"""
Provider signing key cache.

Fetches the provider's JSON Web Key Set, caches it in memory and refetches
when the TTL lapses or a token names a key id we have not seen (key rotation).
"""

import asyncio
import time
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import httpx
from loguru import logger

from identity_mcp.auth.errors import ProviderUnavailable, SignatureInvalid


class JwksCache:
    """
    Caches the provider key set keyed by key id.

    Concurrent refreshes are serialised via asyncio.Lock with the same
    double-checked pattern as a token cache: check, lock, check again.
    """

    def __init__(
        self,
        *,
        jwks_url: str,
        http_client: httpx.AsyncClient,
        ttl: timedelta = timedelta(hours=1),
        min_refresh_interval: timedelta = timedelta(seconds=30),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jwks_url = jwks_url
        self.http_client = http_client
        self._ttl = ttl.total_seconds()
        self._min_refresh_interval = min_refresh_interval.total_seconds()
        self._clock = clock

        self._keys: Dict[str, Dict[str, Any]] = {}
        self._unnamed: list[Dict[str, Any]] = []
        self._fetched_at: Optional[float] = None

        self._lock = asyncio.Lock()

    async def get_key(self, kid: Optional[str]) -> Dict[str, Any]:
        """
        Resolve the signing key for a token header.

        Args:
            kid: Key id from the token header (may be None)

        Returns:
            JWK dict usable by jose

        Raises:
            SignatureInvalid: If no matching key exists after a refresh
            ProviderUnavailable: If the key set cannot be fetched
        """
        if not self._is_fresh():
            await self._refresh(force=False)

        key = self._lookup(kid)
        if key is not None:
            return key

        # Unknown kid: the provider may have rotated keys
        await self._refresh(force=True)
        key = self._lookup(kid)
        if key is None:
            raise SignatureInvalid(f"No signing key matches kid={kid!r}")
        return key

    def _lookup(self, kid: Optional[str]) -> Optional[Dict[str, Any]]:
        if kid is not None:
            return self._keys.get(kid)
        everything = list(self._keys.values()) + self._unnamed
        if len(everything) == 1:
            return everything[0]
        return None

    def _is_fresh(self) -> bool:
        if self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl

    async def _refresh(self, *, force: bool) -> None:
        fetched_before = self._fetched_at

        async with self._lock:
            # Another coroutine refreshed while we waited
            if self._fetched_at != fetched_before and self._is_fresh():
                return
            if force and fetched_before is not None:
                if self._clock() - fetched_before < self._min_refresh_interval:
                    logger.debug("Skipping JWKS refetch, last fetch too recent")
                    return

            logger.debug(f"Fetching JWKS from {self.jwks_url}")
            try:
                response = await self.http_client.get(self.jwks_url)
                response.raise_for_status()
                document = response.json()
            except httpx.HTTPError as e:
                raise ProviderUnavailable(f"Failed to fetch JWKS from {self.jwks_url}: {e}") from e
            except ValueError as e:
                raise ProviderUnavailable(f"JWKS at {self.jwks_url} is not valid JSON") from e

            keys: Dict[str, Dict[str, Any]] = {}
            unnamed: list[Dict[str, Any]] = []
            for jwk in document.get("keys", []):
                if jwk.get("use", "sig") != "sig":
                    continue
                if "kid" in jwk:
                    keys[jwk["kid"]] = jwk
                else:
                    unnamed.append(jwk)

            self._keys = keys
            self._unnamed = unnamed
            self._fetched_at = self._clock()

            logger.info(f"JWKS refreshed: {len(keys) + len(unnamed)} signing key(s)")
