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
Data models for the keycloak-identity package.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from keycloak_identity.exceptions import APIError, KeycloakError

AcceptedStatuses = int | frozenset[int] | range


class HttpMethod(StrEnum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class SessionKey(StrEnum):
    """Keys under which tokens are kept in the caller's session store."""

    ACCESS_TOKEN = "access_token"
    REFRESH_TOKEN = "refresh_token"
    ID_TOKEN = "id_token"
    EXPIRES_AT = "expires_at"


class RequestDescriptor(BaseModel):
    """
    Declarative description of one HTTP request and of what counts as success.

    This model is frozen: build a new descriptor per call.

    Attributes:
        method (HttpMethod): The HTTP verb.
        url (str): Absolute request URL.
        headers (dict[str, str]): Request headers.
        content (str | bytes | None): Raw request body.
        data (dict[str, str] | None): Form fields, sent form-encoded.
        json_body (Any): Payload sent as JSON.
        params (dict[str, str] | None): Query parameters.
        accepted_statuses (int | frozenset[int] | range): Exact code, set of codes, or range of codes.
        error_kind (type[KeycloakError]): Exception raised on any non-accepted outcome.
        error_message (str): Human-readable prefix for the raised error.
        timeout (float | None): Per-request timeout; None uses the client default.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: HttpMethod
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    content: str | bytes | None = None
    data: dict[str, str] | None = None
    json_body: Any = None
    params: dict[str, str] | None = None
    accepted_statuses: AcceptedStatuses = 200
    error_kind: type[KeycloakError] = APIError
    error_message: str = "Request failed"
    timeout: float | None = None

    @field_validator("accepted_statuses", mode="before")
    @classmethod
    def normalize_statuses(cls, v: Any) -> Any:
        if isinstance(v, (set, list, tuple)):
            return frozenset(v)
        return v

    def accepts(self, status_code: int) -> bool:
        """Checks a response code against `accepted_statuses`."""
        accepted = self.accepted_statuses
        if isinstance(accepted, (range, frozenset)):
            return status_code in accepted
        return status_code == accepted


def build_descriptor(**opts: Any) -> RequestDescriptor:
    """
    Builds a RequestDescriptor, filling defaults for omitted options.

    Defaults: no headers, accepted status 200, `APIError`, "Request failed".
    """
    opts.setdefault("headers", {})
    opts.setdefault("accepted_statuses", 200)
    opts.setdefault("error_kind", APIError)
    opts.setdefault("error_message", "Request failed")
    return RequestDescriptor(**opts)


class TokenSet(BaseModel):
    """
    The tokens held in a session.

    Attributes:
        access_token (str): The current access token.
        refresh_token (str | None): The refresh token, if issued.
        id_token (str | None): The ID token, if issued.
        expires_at (int | None): Expiry of the access token as a Unix timestamp, if known.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    expires_at: int | None = None

    def __repr__(self) -> str:
        # Token values MUST NOT leak into logs
        return (
            "TokenSet(access_token='<REDACTED>', "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None!r}, "
            f"id_token={'<REDACTED>' if self.id_token else None!r}, "
            f"expires_at={self.expires_at!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class TokenResponse(BaseModel):
    """
    Body of a successful token-endpoint response.

    Attributes:
        access_token (str): The access token issued by Keycloak.
        refresh_token (str | None): The refresh token, if issued.
        id_token (str | None): The ID token, if issued.
        token_type (str | None): The type of the token (e.g. "Bearer").
        expires_in (int | None): Lifetime of the access token in seconds.
        refresh_expires_in (int | None): Lifetime of the refresh token in seconds.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None
    refresh_expires_in: int | None = None
