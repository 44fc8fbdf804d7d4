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
TokenService component: resolves the authenticated user of a session.

State machine driven by `resolve_current_user()`:

    no access token      -> None
    token decodes        -> user lookup (unknown identity clears the session)
    token expired        -> single-flight refresh, store, decode again once
    token invalid        -> clear the session, no refresh
"""

import time
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import anyio
import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import (
    TokenExpired,
    TokenInvalid,
    TokenRefreshFailed,
    TokenVerificationFailed,
)
from keycloak_identity.jwks import KeySetProvider
from keycloak_identity.models import SessionKey, TokenResponse, TokenSet
from keycloak_identity.session import SessionStore, UserLookup
from keycloak_identity.token_decoder import TokenDecoder
from keycloak_identity.token_refresher import TokenRefresher
from keycloak_identity.utils.logger import anonymize, logger

if TYPE_CHECKING:
    from loguru import Logger

UserT = TypeVar("UserT")

tracer = trace.get_tracer(__name__)


class TokenService(Generic[UserT]):
    """
    Per-session token lifecycle: decode, detect expiry, refresh once, look up the user.

    One instance serves one session. Concurrent callers on the same instance share a
    refresh lock, so an expired token is refreshed by exactly one of them.

    Attributes:
        session (SessionStore): The caller's session.
        config (KeycloakConfig): The validated configuration.
        user_lookup (UserLookup): Resolves the identity claim to an application user.
        decoder (TokenDecoder): Verifies and decodes tokens.
        refresher (TokenRefresher): Runs the refresh-token grant.
    """

    def __init__(
        self,
        session: SessionStore,
        config: KeycloakConfig,
        user_lookup: UserLookup[UserT],
        *,
        client: httpx.AsyncClient | None = None,
        decoder: TokenDecoder | None = None,
        refresher: TokenRefresher | None = None,
        log: "Logger | None" = None,
        refresh_lock: anyio.Lock | None = None,
    ) -> None:
        """
        Initialize the TokenService.

        Args:
            session: The caller's session store.
            config: The validated configuration.
            user_lookup: Resolves the identity claim to an application user.
            client: Async HTTP client for key-set and token requests. Required unless
                both `decoder` and `refresher` are given.
            decoder: Custom decoder (defaults to one backed by the process-wide JWKS cache).
            refresher: Custom refresher.
            log: Logger for lifecycle events. Defaults to the package logger.
            refresh_lock: Lock shared by every service bound to the same session.
        """
        if client is None and (decoder is None or refresher is None):
            raise ValueError("An httpx.AsyncClient is required unless decoder and refresher are both provided.")

        self.session = session
        self.config = config
        self.user_lookup = user_lookup
        self.log = log or logger.bind(component="token_service")
        self.decoder = decoder or TokenDecoder(config, KeySetProvider(config, client))  # type: ignore[arg-type]
        self.refresher = refresher or TokenRefresher(config, client, log=self.log)  # type: ignore[arg-type]
        self._refresh_lock = refresh_lock or anyio.Lock()

    async def resolve_current_user(self) -> UserT | None:
        """
        Returns the user the session is authenticated as, or None.

        Never raises for expired, invalid, or unrefreshable tokens; those degrade to None.
        """
        with tracer.start_as_current_span("resolve_current_user") as span:
            claims = await self.current_claims()
            if claims is None:
                span.set_attribute("keycloak.authenticated", False)
                return None

            identity = claims.get(self.config.identity_claim)
            if not identity:
                self.log.warning(f"Token has no '{self.config.identity_claim}' claim, clearing session tokens")
                self.clear_tokens()
                span.set_attribute("keycloak.authenticated", False)
                return None

            identity_hash = anonymize(str(identity), self.config.pii_salt.get_secret_value())
            user = await self.user_lookup.find_by_identity(str(identity))
            if user is None:
                self.log.info(f"No local user for identity {identity_hash}, clearing session tokens")
                self.clear_tokens()
                span.set_attribute("keycloak.authenticated", False)
                return None

            span.set_attribute("enduser.id", identity_hash)
            span.set_attribute("keycloak.authenticated", True)
            span.set_status(Status(StatusCode.OK))
            return user

    async def current_claims(self) -> dict[str, Any] | None:
        """
        Returns verified claims of the session's access token, refreshing it if expired.
        """
        token = self.session.get(SessionKey.ACCESS_TOKEN)
        if not token:
            return None

        try:
            return await self.decoder.decode(token)
        except TokenExpired:
            self.log.info("Access token expired, refreshing")
            return await self._refresh_and_decode(token)
        except TokenInvalid as e:
            self.log.error(f"JWT error: {e}")
            self.clear_tokens()
            return None
        except TokenVerificationFailed as e:
            # Key set unavailable: the token may still be good, keep it for the next request
            self.log.error(f"Unable to verify token: {e}")
            return None

    async def _refresh_and_decode(self, expired_token: str) -> dict[str, Any] | None:
        async with self._refresh_lock:
            current = self.session.get(SessionKey.ACCESS_TOKEN)
            if current and current != expired_token:
                # Another caller refreshed while we waited for the lock
                return await self._decode_after_refresh(current)
            if not current:
                # Another caller's refresh failed and cleared the session
                return None

            try:
                new_tokens = await self.refresher.refresh(self.session)
            except TokenRefreshFailed as e:
                self.log.error(f"Refresh failed: {e}")
                self.clear_tokens()
                return None

            self.store_tokens(new_tokens)
            return await self._decode_after_refresh(self.session.get(SessionKey.ACCESS_TOKEN))

    async def _decode_after_refresh(self, token: str) -> dict[str, Any] | None:
        try:
            return await self.decoder.decode(token)
        except (TokenExpired, TokenInvalid) as e:
            # A fresh token that still fails ends this call instead of looping
            self.log.error(f"Refreshed token rejected: {e}")
            self.clear_tokens()
            return None
        except TokenVerificationFailed as e:
            self.log.error(f"Unable to verify refreshed token: {e}")
            return None

    def store_tokens(self, data: Mapping[str, Any] | TokenResponse) -> None:
        """
        Writes a token response to the session.

        The access token is read from `access_token`, falling back to `token`
        (the field name used by some login integrations). Refresh and ID tokens are
        only written when present.

        The expiry is taken from `expires_at`, else computed from `expires_in`; a
        response without either drops any stored expiry.
        """
        if isinstance(data, TokenResponse):
            data = data.model_dump(exclude_none=True)

        access_token = data.get("access_token") or data.get("token")
        if not access_token:
            raise TokenInvalid("Token data contains no access token")

        self.session.set(SessionKey.ACCESS_TOKEN, access_token)
        if data.get("refresh_token"):
            self.session.set(SessionKey.REFRESH_TOKEN, data["refresh_token"])
        if data.get("id_token"):
            self.session.set(SessionKey.ID_TOKEN, data["id_token"])

        expires_at = _expires_at(data)
        if expires_at is None:
            self.session.delete(SessionKey.EXPIRES_AT)
        else:
            self.session.set(SessionKey.EXPIRES_AT, expires_at)

    def clear_tokens(self) -> None:
        """Removes all tokens from the session. Idempotent."""
        for key in SessionKey:
            self.session.delete(key)

    def token_set(self) -> TokenSet | None:
        """Reads the stored tokens back, or None when there is no access token."""
        access_token = self.session.get(SessionKey.ACCESS_TOKEN)
        if not access_token:
            return None
        return TokenSet(
            access_token=access_token,
            refresh_token=self.session.get(SessionKey.REFRESH_TOKEN),
            id_token=self.session.get(SessionKey.ID_TOKEN),
            expires_at=self.session.get(SessionKey.EXPIRES_AT),
        )


def _expires_at(data: Mapping[str, Any]) -> int | None:
    # Unparseable values are treated as absent
    try:
        if data.get("expires_at") is not None:
            return int(data["expires_at"])
        if data.get("expires_in") is not None:
            return int(time.time()) + int(data["expires_in"])
    except (TypeError, ValueError):
        return None
    return None
