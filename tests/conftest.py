# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import os
import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
from authlib.jose import JsonWebKey, jwt
from helpers import MOCK_CLIENT_ID, MOCK_KEYCLOAK_URL, MOCK_KID, MOCK_REALM, MOCK_REALM_URL

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.jwks import default_jwks_cache


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Keeps host KEYCLOAK_* variables out of the settings model and resets the
    process-wide JWKS cache between tests.
    """
    for name in list(os.environ):
        if name.upper().startswith("KEYCLOAK_") or name == "APP_ENV":
            monkeypatch.delenv(name, raising=False)
    default_jwks_cache.clear()
    yield
    default_jwks_cache.clear()


@pytest.fixture
def config() -> KeycloakConfig:
    return KeycloakConfig(
        keycloak_url=MOCK_KEYCLOAK_URL,
        realm=MOCK_REALM,
        app_host="https://app.example.com",
        oauth_client_id=MOCK_CLIENT_ID,
        oauth_client_secret="test-secret",
        admin_client_id="admin-cli",
        admin_client_secret="admin-secret",
        http_timeout=5.0,
    )


@pytest.fixture(scope="session")
def key_pair() -> Any:
    return JsonWebKey.generate_key("RSA", 2048, is_private=True)


@pytest.fixture(scope="session")
def jwks(key_pair: Any) -> dict[str, Any]:
    public = key_pair.as_dict(is_private=False)
    public.update({"kid": MOCK_KID, "alg": "RS256", "use": "sig"})
    return {"keys": [public]}


@pytest.fixture
def make_token(key_pair: Any) -> Callable[..., str]:
    """
    Builds an RS256 token. Claims default to a valid token for a@x.com;
    pass a claim as None to drop it.
    """

    def _make(key: Any = None, headers: dict[str, Any] | None = None, **overrides: Any) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "sub": "user-1",
            "email": "a@x.com",
            "iss": MOCK_REALM_URL,
            "aud": MOCK_CLIENT_ID,
            "iat": now,
            "exp": now + 3600,
        }
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        header = headers or {"alg": "RS256", "kid": MOCK_KID}
        return jwt.encode(header, claims, key or key_pair).decode("utf-8")  # type: ignore[no-any-return]

    return _make
