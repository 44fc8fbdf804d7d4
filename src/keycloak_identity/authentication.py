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
Authenticator component: the entry point web middleware calls once per request.
"""

import weakref
from typing import Any, Generic, TypeVar

import anyio
import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from keycloak_identity.admin import AdminClient
from keycloak_identity.async_context import get_current_user, is_resolved, set_current_user
from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import AuthenticationError
from keycloak_identity.session import SessionStore, UserLookup
from keycloak_identity.token_service import TokenService

UserT = TypeVar("UserT")


def create_http_client(config: KeycloakConfig) -> httpx.AsyncClient:
    """
    Builds the async HTTP client used for Keycloak calls, instrumented for tracing.
    """
    client = httpx.AsyncClient(timeout=config.http_timeout)
    HTTPXClientInstrumentor().instrument_client(client)
    return client


class Authenticator(Generic[UserT]):
    """
    Resolves and memoizes the current user of a request.

    Handles resources via async context manager: an internally created HTTP client
    is closed on exit, an injected one is left to its owner.
    """

    def __init__(
        self,
        config: KeycloakConfig,
        user_lookup: UserLookup[UserT],
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the Authenticator.

        Args:
            config: The validated configuration.
            user_lookup: Resolves the identity claim to an application user.
            client: External async client (optional). If not provided, one is created from `config`.
        """
        self.config = config
        self.user_lookup = user_lookup
        self._internal_client = client is None
        self._client = client or create_http_client(config)
        self._refresh_locks: weakref.WeakKeyDictionary[Any, anyio.Lock] = weakref.WeakKeyDictionary()

    async def __aenter__(self) -> "Authenticator[UserT]":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    def token_service(self, session: SessionStore) -> TokenService[UserT]:
        """
        Builds the TokenService for one session.

        Services built for the same session object share one refresh lock, so concurrent
        callers refresh its tokens once. Sessions that cannot be weakly referenced get their own lock.
        """
        try:
            lock = self._refresh_locks.setdefault(session, anyio.Lock())
        except TypeError:
            lock = None
        return TokenService(session, self.config, self.user_lookup, client=self._client, refresh_lock=lock)

    def admin(self) -> AdminClient:
        """Builds an AdminClient sharing this authenticator's HTTP client."""
        return AdminClient(self.config, self._client)

    async def current_user(self, session: SessionStore) -> UserT | None:
        """
        Returns the request's user, resolving it on first call within the current context.
        """
        if is_resolved(session):
            return get_current_user()  # type: ignore[no-any-return]

        user = await self.token_service(session).resolve_current_user()
        set_current_user(user, session)
        return user

    async def require_user(self, session: SessionStore) -> UserT:
        """
        Returns the request's user.

        Raises:
            AuthenticationError: If the request is unauthenticated. Middleware maps this to
                a redirect to the login entry point.
        """
        user = await self.current_user(session)
        if user is None:
            raise AuthenticationError("Authentication required")
        return user
