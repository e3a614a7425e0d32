"""
Remote JWKS cache

Two levels:
1. RemoteKeySet - one per JWKS URI. Fetches the key set lazily with httpx,
   keeps it in a cachetools TTLCache and refetches once when a token
   references an unknown 'kid' (key rotation).
2. KeySetCache - process-wide map of JWKS URI -> RemoteKeySet, so that
   key fetches are amortized across requests.
"""

import asyncio
import logging
import threading
import time
from typing import Any, Dict, Optional

import cachetools
import httpx
from jose import jwt, JWTError

logger = logging.getLogger(__name__)

_JWKS_KEY = "jwks"


class KeySetError(Exception):
    """Error fetching a key set or finding a signing key in it."""
    pass


class RemoteKeySet:
    """
    Signing keys published at a JWKS URI.

    Nothing is fetched until the first call to get_signing_key().
    """

    def __init__(
        self,
        jwks_uri: str,
        cache_ttl: int = 600,
        http_timeout: float = 10.0,
        refresh_cooldown: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Args:
            jwks_uri: URL of the JSON Web Key Set
            cache_ttl: Seconds a fetched key set stays valid
            http_timeout: Timeout for the JWKS request in seconds
            refresh_cooldown: Minimum seconds between refetches triggered by unknown kids
            transport: Optional httpx transport (tests)
        """
        self.jwks_uri = jwks_uri
        self.http_timeout = http_timeout
        self.refresh_cooldown = refresh_cooldown
        self.transport = transport
        self.jwks_cache = cachetools.TTLCache(maxsize=1, ttl=cache_ttl)
        self._last_fetch: Optional[float] = None
        self._fetch_lock = asyncio.Lock()

    async def _fetch_jwks(self) -> Dict[str, Any]:
        logger.info(f"Fetching JWKS from {self.jwks_uri}")
        try:
            async with httpx.AsyncClient(timeout=self.http_timeout, transport=self.transport) as client:
                response = await client.get(self.jwks_uri)
                response.raise_for_status()
                jwks = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch JWKS from {self.jwks_uri}: {e}")
            raise KeySetError(f"HTTP error fetching JWKS: {e}") from e
        except ValueError as e:
            raise KeySetError(f"JWKS response from {self.jwks_uri} is not JSON") from e

        if not isinstance(jwks, dict) or not isinstance(jwks.get("keys"), list):
            raise KeySetError("Invalid JWKS response: missing 'keys' field")

        self._last_fetch = time.monotonic()
        self.jwks_cache[_JWKS_KEY] = jwks
        logger.debug(f"JWKS cached with {len(jwks['keys'])} keys")
        return jwks

    async def fetch_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Get the key set, using the cache while it is valid.

        Args:
            force_refresh: Bypass the cache

        Returns:
            JWKS dictionary with a 'keys' list

        Raises:
            KeySetError: If the fetch fails or the document is invalid
        """
        if not force_refresh and _JWKS_KEY in self.jwks_cache:
            logger.debug("Using cached JWKS")
            return self.jwks_cache[_JWKS_KEY]

        requested = time.monotonic()
        # Concurrent callers share one fetch
        async with self._fetch_lock:
            cached = self.jwks_cache.get(_JWKS_KEY)
            if cached is not None and (not force_refresh or self._fetched_since(requested)):
                return cached
            return await self._fetch_jwks()

    def _fetched_since(self, moment: float) -> bool:
        return self._last_fetch is not None and self._last_fetch > moment

    @staticmethod
    def _select_key(jwks: Dict[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
        keys = jwks.get("keys", [])
        if not keys:
            return None
        if kid is None:
            # Without a kid, take the first key usable for signatures
            for key in keys:
                if key.get("use") in (None, "sig"):
                    return key
            return None
        for key in keys:
            if key.get("kid") == kid:
                return key
        return None

    def _may_refresh(self) -> bool:
        if self._last_fetch is None:
            return True
        return time.monotonic() - self._last_fetch >= self.refresh_cooldown

    async def get_signing_key(self, token: str) -> Dict[str, Any]:
        """
        Find the JWK that signed a token.

        Args:
            token: Compact JWT

        Returns:
            The matching JWK dictionary

        Raises:
            KeySetError: If the token header is unreadable or no key matches
        """
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as e:
            raise KeySetError(f"Invalid token header: {e}") from e

        kid = header.get("kid")
        jwks = await self.fetch_jwks()
        key = self._select_key(jwks, kid)

        if key is None and kid is not None and self._may_refresh():
            logger.info(f"Key {kid} not in cached JWKS, refreshing")
            jwks = await self.fetch_jwks(force_refresh=True)
            key = self._select_key(jwks, kid)

        if key is None:
            raise KeySetError(f"No signing key found for kid: {kid}")
        return key

    def clear_cache(self) -> None:
        """Drop the cached key set."""
        self.jwks_cache.clear()
        self._last_fetch = None
        logger.info(f"JWKS cache cleared for {self.jwks_uri}")


class KeySetCache:
    """
    Memoizes one RemoteKeySet per JWKS URI for the process lifetime.

    The number of URIs is bounded by the configured issuers, so entries are
    never evicted.
    """

    def __init__(
        self,
        cache_ttl: int = 600,
        http_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.cache_ttl = cache_ttl
        self.http_timeout = http_timeout
        self.transport = transport
        self._key_sets: Dict[str, RemoteKeySet] = {}
        self._lock = threading.Lock()

    def get(self, jwks_uri: str) -> RemoteKeySet:
        """Return the RemoteKeySet for a URI, creating it on first use."""
        key_set = self._key_sets.get(jwks_uri)
        if key_set is not None:
            return key_set

        with self._lock:
            key_set = self._key_sets.get(jwks_uri)
            if key_set is None:
                key_set = RemoteKeySet(
                    jwks_uri,
                    cache_ttl=self.cache_ttl,
                    http_timeout=self.http_timeout,
                    transport=self.transport
                )
                self._key_sets[jwks_uri] = key_set
                logger.debug(f"Created remote key set for {jwks_uri}")
        return key_set

    def __len__(self) -> int:
        return len(self._key_sets)

    def clear(self) -> None:
        """Forget every key set."""
        with self._lock:
            self._key_sets.clear()
