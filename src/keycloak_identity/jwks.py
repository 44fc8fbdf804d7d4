# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Process-wide cache for realm key sets (JWKS).
"""

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import anyio
import httpx

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import KeySetFetchError
from keycloak_identity.models import HttpMethod, build_descriptor
from keycloak_identity.request_executor import RequestExecutor
from keycloak_identity.utils.logger import logger

KeySetFetcher = Callable[[], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class _CachedKeySet:
    keys: dict[str, Any]
    fetched_at: float


class JWKSCache:
    """
    Caches key sets per realm URL with a time-to-live.

    Entries are replaced wholesale, never mutated. Each realm has its own lock so
    that only one fetch per realm is in flight.

    Attributes:
        ttl (float): The cache time-to-live in seconds.
        refresh_cooldown (float): Minimum time in seconds between forced refreshes of one realm.
    """

    def __init__(self, ttl: float = 3600, refresh_cooldown: float = 30.0) -> None:
        """
        Initialize the JWKSCache.

        Args:
            ttl: Time-to-live for cached key sets in seconds. Defaults to 3600 (1 hour).
            refresh_cooldown: Minimum time in seconds between forced refreshes. Defaults to 30.0.
        """
        self.ttl = ttl
        self.refresh_cooldown = refresh_cooldown
        self._entries: dict[str, _CachedKeySet] = {}
        self._locks: dict[str, anyio.Lock] = {}

    def _lock_for(self, realm_url: str) -> anyio.Lock:
        lock = self._locks.get(realm_url)
        if lock is None:
            lock = self._locks.setdefault(realm_url, anyio.Lock())
        return lock

    def _fresh(self, entry: _CachedKeySet | None, now: float, max_age: float) -> bool:
        return entry is not None and (now - entry.fetched_at) < max_age

    async def get(
        self,
        realm_url: str,
        fetch: KeySetFetcher,
        force_refresh: bool = False,
        ttl: float | None = None,
        refresh_cooldown: float | None = None,
    ) -> dict[str, Any]:
        """
        Returns the key set for a realm, using the cache if valid.

        Args:
            realm_url: Cache key.
            fetch: Coroutine function fetching the key set on a miss.
            force_refresh: Bypass a valid entry (key rotation). Ignored while in cooldown.
            ttl: Overrides `self.ttl` for this lookup.
            refresh_cooldown: Overrides `self.refresh_cooldown` for this lookup.

        Returns:
            dict[str, Any]: The JWKS dictionary.

        Raises:
            KeySetFetchError: If fetching fails.
        """
        ttl = self.ttl if ttl is None else ttl
        cooldown = self.refresh_cooldown if refresh_cooldown is None else refresh_cooldown

        # Double-checked locking (Check 1: no lock)
        if not force_refresh and self._fresh(self._entries.get(realm_url), time.time(), ttl):
            return self._entries[realm_url].keys

        async with self._lock_for(realm_url):
            now = time.time()
            entry = self._entries.get(realm_url)

            if not force_refresh and self._fresh(entry, now, ttl):
                return entry.keys  # type: ignore[union-attr]

            if force_refresh and self._fresh(entry, now, cooldown):
                logger.warning("JWKS refresh cooldown active. Returning cached keys despite force_refresh request.")
                return entry.keys  # type: ignore[union-attr]

            keys = await fetch()
            self._entries[realm_url] = _CachedKeySet(keys=keys, fetched_at=time.time())
            logger.debug(f"Cached JWKS for {realm_url} ({len(keys.get('keys', []))} keys)")
            return keys

    def clear(self) -> None:
        self._entries.clear()


default_jwks_cache = JWKSCache()


async def fetch_jwks(executor: RequestExecutor, config: KeycloakConfig) -> dict[str, Any]:
    """
    Fetches the realm's key set from the certs endpoint. No retries.

    Raises:
        KeySetFetchError: If the request fails or the body is not a key set.
    """
    response = await executor.execute(
        build_descriptor(
            method=HttpMethod.GET,
            url=config.jwks_url,
            headers={"Accept": "application/json"},
            error_kind=KeySetFetchError,
            error_message=f"Failed to fetch JWKS from {config.jwks_url}",
            timeout=config.http_timeout,
        )
    )
    try:
        data = response.json()
    except ValueError as e:
        raise KeySetFetchError(f"Invalid JWKS from {config.jwks_url}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
        raise KeySetFetchError(f"Invalid JWKS from {config.jwks_url}: missing 'keys'")
    return data


class KeySetProvider:
    """
    Binds a config and an HTTP client to a JWKSCache.
    """

    def __init__(
        self,
        config: KeycloakConfig,
        client: httpx.AsyncClient,
        cache: JWKSCache | None = None,
    ) -> None:
        self.config = config
        self.executor = RequestExecutor(client)
        self.cache = cache or default_jwks_cache

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        return await self.cache.get(
            self.config.realm_url,
            lambda: fetch_jwks(self.executor, self.config),
            force_refresh=force_refresh,
            ttl=self.config.jwks_cache_ttl,
            refresh_cooldown=self.config.jwks_refresh_cooldown,
        )
