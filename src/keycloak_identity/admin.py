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
AdminClient component for Keycloak user and client administration.
"""

from typing import Any
from urllib.parse import quote

import httpx

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import (
    APIError,
    ClientError,
    ConfigurationError,
    ConnectionError,
    InvalidCredentials,
    TokenVerificationFailed,
    UserCreationError,
    UserDeletionError,
    UserNotFound,
)
from keycloak_identity.models import HttpMethod, TokenResponse, build_descriptor
from keycloak_identity.request_executor import RequestExecutor
from keycloak_identity.utils.logger import logger

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class AdminClient:
    """
    Wraps the Keycloak admin REST API and the password grant.

    Failures propagate as typed exceptions; nothing is absorbed here.

    Attributes:
        config (KeycloakConfig): The validated configuration.
        executor (RequestExecutor): Executor for all requests.
    """

    def __init__(self, config: KeycloakConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self.executor = RequestExecutor(client)

    async def authenticate_user(self, username: str, password: str) -> TokenResponse:
        """
        Authenticates a user with the password grant.

        Returns:
            TokenResponse: The issued tokens.

        Raises:
            InvalidCredentials: If Keycloak rejects the credentials.
        """
        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.POST,
                url=self.config.token_url,
                headers=FORM_HEADERS,
                data={
                    "client_id": self.config.oauth_client_id,
                    "client_secret": self.config.oauth_client_secret.get_secret_value(),
                    "username": username,
                    "password": password,
                    "grant_type": "password",
                },
                error_kind=InvalidCredentials,
                error_message="Failed to authenticate with Keycloak",
            )
        )
        return TokenResponse.model_validate(response.json())

    async def create_user(self, username: str, email: str, password: str, temporary: bool = True) -> dict[str, Any]:
        """
        Creates a user and returns its representation.

        Args:
            username: The username for the new user.
            email: The user's email.
            password: The initial password.
            temporary: Whether to force a password update on first login.

        Raises:
            UserCreationError: If creation fails.
            UserNotFound: If the created user cannot be fetched back.
        """
        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.POST,
                url=f"{self.config.admin_realm_url}/users",
                headers=await self._admin_headers(),
                json_body=self.build_user_data(username, email, password, temporary),
                accepted_statuses=201,
                error_kind=UserCreationError,
                error_message="Failed to create Keycloak user",
            )
        )

        location = response.headers.get("Location")
        if not location:
            raise UserCreationError("Keycloak did not return the location of the created user")
        user_id = location.rstrip("/").rsplit("/", 1)[-1]
        logger.info(f"Created Keycloak user {user_id}")
        return await self.fetch_user(user_id)

    async def fetch_user(self, user_id: str) -> dict[str, Any]:
        """
        Raises:
            UserNotFound: If the user cannot be fetched.
        """
        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.GET,
                url=f"{self.config.admin_realm_url}/users/{quote(user_id, safe='')}",
                headers=await self._admin_headers(),
                error_kind=UserNotFound,
                error_message=f"Failed to fetch Keycloak user with ID {user_id}",
            )
        )
        return response.json()  # type: ignore[no-any-return]

    async def find_users(self, search: str) -> list[dict[str, Any]]:
        """
        Finds users whose username, email, or name matches `search`.

        Raises:
            APIError: If the request fails.
        """
        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.GET,
                url=f"{self.config.admin_realm_url}/users",
                params={"search": search},
                headers=await self._admin_headers(),
                error_kind=APIError,
                error_message="Failed to get Keycloak users",
            )
        )
        users = response.json()
        if not isinstance(users, list):
            raise APIError("Failed to get Keycloak users: unexpected response shape")
        return users

    async def delete_user_by_id(self, user_id: str) -> None:
        """
        Raises:
            UserDeletionError: If the deletion fails.
        """
        await self.executor.execute(
            build_descriptor(
                method=HttpMethod.DELETE,
                url=f"{self.config.admin_realm_url}/users/{quote(user_id, safe='')}",
                headers=await self._admin_headers(),
                accepted_statuses=204,
                error_kind=UserDeletionError,
                error_message=f"Failed to delete Keycloak user with ID {user_id}",
            )
        )

    async def delete_users(self, search: str) -> int:
        """Deletes every user matching `search`. Returns the number deleted."""
        users = await self.find_users(search)
        for user in users:
            await self.delete_user_by_id(user["id"])
        return len(users)

    async def find_or_create_user(
        self, username: str, email: str, password: str, temporary: bool = True
    ) -> tuple[dict[str, Any], bool]:
        """
        Finds a user by exact (case-insensitive) email, creating it when absent.

        Keycloak's search is a substring match, so results are filtered again here.

        Returns:
            tuple[dict[str, Any], bool]: The user data and whether it was created.

        Raises:
            UserCreationError: If more than one user matches, or creation fails.
        """
        wanted = email.casefold()
        matches = [u for u in await self.find_users(email) if str(u.get("email") or "").casefold() == wanted]

        if len(matches) > 1:
            raise UserCreationError(f"Multiple Keycloak users match email {email!r} ({len(matches)} found)")
        if matches:
            return matches[0], False
        return await self.create_user(username, email, password, temporary), True

    async def update_client_redirect_uris(self, client_id: str, redirect_uris: list[str]) -> None:
        """
        Replaces the redirect URIs of the client whose `clientId` is `client_id`.

        Raises:
            ClientError: If the client cannot be found.
            ConnectionError: If the update fails.
        """
        headers = await self._admin_headers()
        record = await self._find_client(client_id, headers)
        await self.executor.execute(
            build_descriptor(
                method=HttpMethod.PUT,
                url=f"{self.config.admin_realm_url}/clients/{record['id']}",
                headers=headers,
                json_body={"redirectUris": redirect_uris},
                accepted_statuses=range(200, 300),
                error_kind=ConnectionError,
                error_message=f"Failed to update redirectUris for client {client_id}",
            )
        )

    async def _find_client(self, client_id: str, headers: dict[str, str]) -> dict[str, Any]:
        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.GET,
                url=f"{self.config.admin_realm_url}/clients",
                headers=headers,
                error_kind=ClientError,
                error_message="Failed to fetch clients",
            )
        )
        records = response.json()
        if not isinstance(records, list):
            raise ClientError("Failed to fetch clients: unexpected response shape")
        for record in records:
            if isinstance(record, dict) and record.get("clientId") == client_id:
                return record  # type: ignore[no-any-return]
        raise ClientError(f"Client {client_id} not found")

    async def admin_token(self) -> str:
        """
        Obtains an admin API token with the client-credentials grant.

        Raises:
            ConfigurationError: If admin credentials are not configured.
            TokenVerificationFailed: If the token request fails.
        """
        if not self.config.admin_client_id or not self.config.admin_client_secret:
            raise ConfigurationError("admin_client_id and admin_client_secret are required for admin calls")

        response = await self.executor.execute(
            build_descriptor(
                method=HttpMethod.POST,
                url=self.config.token_url,
                headers=FORM_HEADERS,
                data={
                    "client_id": self.config.admin_client_id,
                    "client_secret": self.config.admin_client_secret.get_secret_value(),
                    "grant_type": "client_credentials",
                },
                error_kind=TokenVerificationFailed,
                error_message="Failed to get Keycloak admin token",
            )
        )
        token = response.json().get("access_token")
        if not token:
            raise TokenVerificationFailed("Failed to get Keycloak admin token: access token missing from response")
        return str(token)

    async def _admin_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {await self.admin_token()}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_user_data(username: str, email: str, password: str, temporary: bool = True) -> dict[str, Any]:
        return {
            "username": username,
            "email": email,
            "enabled": True,
            "credentials": [{"type": "password", "value": password, "temporary": temporary}],
        }
