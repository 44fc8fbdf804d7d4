# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

MOCK_KEYCLOAK_URL = "https://sso.example.com"
MOCK_REALM = "test-realm"
MOCK_CLIENT_ID = "test-client"
MOCK_KID = "test-key"
MOCK_REALM_URL = f"{MOCK_KEYCLOAK_URL}/realms/{MOCK_REALM}"
MOCK_TOKEN_URL = f"{MOCK_REALM_URL}/protocol/openid-connect/token"
MOCK_JWKS_URL = f"{MOCK_REALM_URL}/protocol/openid-connect/certs"
MOCK_ADMIN_URL = f"{MOCK_KEYCLOAK_URL}/admin/realms/{MOCK_REALM}"

Handler = Callable[[httpx.Request], httpx.Response]


@dataclass
class User:
    email: str


class DictUserLookup:
    """Async user lookup over a set of known emails."""

    def __init__(self, *emails: str) -> None:
        self.users = {email: User(email) for email in emails}
        self.calls: list[str] = []

    async def find_by_identity(self, value: str) -> User | None:
        self.calls.append(value)
        return self.users.get(value)


def json_response(status_code: int, payload: Any, **kwargs: Any) -> httpx.Response:
    return httpx.Response(status_code, json=payload, **kwargs)


def mock_client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
