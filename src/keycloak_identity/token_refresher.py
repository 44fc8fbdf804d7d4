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
TokenRefresher component for the OAuth2 refresh-token grant.
"""

from typing import TYPE_CHECKING, Any

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import TokenRefreshFailed
from keycloak_identity.models import HttpMethod, SessionKey, build_descriptor
from keycloak_identity.request_executor import RequestExecutor
from keycloak_identity.response_validator import ResponseValidator
from keycloak_identity.session import SessionStore
from keycloak_identity.utils.logger import logger, truncate
from keycloak_identity.version import USER_AGENT

if TYPE_CHECKING:
    from loguru import Logger

tracer = trace.get_tracer(__name__)

# Every status is handed to ResponseValidator, which knows the OAuth2 error shapes.
ANY_STATUS = range(100, 600)


class TokenRefresher:
    """
    Exchanges the session's refresh token for a new token set.

    Performs exactly one attempt per call. Callers decide what to do on failure
    (usually: the user must log in again).

    Attributes:
        config (KeycloakConfig): The validated configuration.
        executor (RequestExecutor): Executor used to reach the token endpoint.
    """

    def __init__(self, config: KeycloakConfig, client: httpx.AsyncClient, log: "Logger | None" = None) -> None:
        """
        Initialize the TokenRefresher.

        Args:
            config: The validated configuration.
            client: The async HTTP client to use for requests.
            log: Logger for refresh attempts and failures. Defaults to the package logger.
        """
        self.config = config
        self.log = log or logger.bind(component="token_refresher")
        self.executor = RequestExecutor(client, log=self.log)

    async def refresh(self, session: SessionStore) -> dict[str, Any]:
        """
        Runs the refresh-token grant for the given session.

        Args:
            session: The session holding the refresh token.

        Returns:
            dict[str, Any]: The validated token data (contains a non-empty `access_token`).

        Raises:
            TokenRefreshFailed: If there is no refresh token, the request cannot be sent,
                or Keycloak rejects the grant.
        """
        with tracer.start_as_current_span("refresh_token") as span:
            refresh_token = session.get(SessionKey.REFRESH_TOKEN)
            if not refresh_token:
                msg = "Token refresh failed: no refresh token in session"
                self.log.warning(msg)
                span.set_status(Status(StatusCode.ERROR, msg))
                raise TokenRefreshFailed(msg)

            self.log.info(f"Attempting token refresh for client: {self.config.oauth_client_id}")

            descriptor = build_descriptor(
                method=HttpMethod.POST,
                url=self.config.token_url,
                headers=self._headers(),
                data=self._refresh_params(str(refresh_token)),
                accepted_statuses=ANY_STATUS,
                error_kind=TokenRefreshFailed,
                error_message="Token refresh HTTP error",
                timeout=self.config.http_timeout,
            )

            try:
                response = await self.executor.execute(descriptor)
            except TokenRefreshFailed as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("http.response.status_code", response.status_code)
            validator = ResponseValidator(response)
            if not validator.is_valid():
                self.log.error(
                    f"Token refresh failed. Status: {response.status_code}, Body: {truncate(response.text)}"
                )
                try:
                    validator.assert_valid()
                except TokenRefreshFailed as e:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise

            self.log.info(f"Successfully refreshed tokens for client: {self.config.oauth_client_id}")
            span.set_status(Status(StatusCode.OK))
            return validator.assert_valid()

    def _refresh_params(self, refresh_token: str) -> dict[str, str]:
        return {
            "grant_type": "refresh_token",
            "client_id": self.config.oauth_client_id,
            "client_secret": self.config.oauth_client_secret.get_secret_value(),
            "refresh_token": refresh_token,
        }

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
