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
Custom exceptions for the keycloak-identity package.
"""


class KeycloakError(Exception):
    """
    Base exception for all keycloak-identity errors.

    Attributes:
        status_code (int | None): HTTP status of the failing response, when one was received.
        body (str | None): Raw body of the failing response, when one was received.
    """

    def __init__(self, message: str = "", *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConfigurationError(KeycloakError):
    """Raised when required configuration is missing or cannot be loaded."""


# Authentication


class AuthenticationError(KeycloakError):
    """Base class for authentication failures."""


class InvalidCredentials(AuthenticationError):
    """Raised when Keycloak rejects a login attempt."""


class UserNotFound(AuthenticationError):
    """Raised when a Keycloak user cannot be found."""


class AccountLocked(AuthenticationError):
    """Raised when a Keycloak account is temporarily locked."""


# User management


class UserCreationError(KeycloakError):
    """Raised when user creation fails."""


class UserUpdateError(KeycloakError):
    """Raised when a user update fails."""


class UserDeletionError(KeycloakError):
    """Raised when user deletion fails."""


# Tokens


class TokenError(KeycloakError):
    """Base class for all token-related errors."""


class TokenExpired(TokenError):
    """
    Raised when a token has expired.
    Internal signal: TokenService handles it by refreshing and never lets it escape.
    """


class TokenInvalid(TokenError):
    """Raised when a token is malformed, badly signed, or carries the wrong issuer/audience."""


class TokenRefreshFailed(TokenError):
    """Raised when the refresh-token grant is rejected or the request cannot be sent."""


class TokenVerificationFailed(TokenError):
    """Raised when a token needed for verification cannot be obtained (admin token, key set)."""


class KeySetFetchError(TokenVerificationFailed):
    """Raised when the realm's JWKS cannot be fetched."""


# API communication


class APIError(KeycloakError):
    """Raised when a Keycloak API request fails."""


class ClientError(APIError):
    """Raised for 4xx responses from Keycloak."""


class ServerError(APIError):
    """Raised for 5xx responses from Keycloak."""


class ConnectionError(APIError):  # noqa: A001
    """Raised when the connection to Keycloak fails."""
