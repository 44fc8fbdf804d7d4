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
Helpers for application test suites.

The tokens built here are unsigned (`alg: none`). They are only accepted by a
TokenService whose config sets `unsafe_skip_signature_verification=True`.
"""

import time
from typing import Any

from authlib.common.encoding import json_dumps, to_bytes, to_unicode, urlsafe_b64encode

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.models import SessionKey
from keycloak_identity.session import SessionStore


def make_unsigned_token(claims: dict[str, Any]) -> str:
    """Encodes claims as a JWS with `alg: none` and an empty signature."""
    header = {"alg": "none", "typ": "JWT"}
    segments = [
        urlsafe_b64encode(to_bytes(json_dumps(header))),
        urlsafe_b64encode(to_bytes(json_dumps(claims))),
        b"",
    ]
    return to_unicode(b".".join(segments))


def fake_claims(email: str, config: KeycloakConfig, ttl: int = 7200, **extra: Any) -> dict[str, Any]:
    """Claims shaped like a Keycloak access token for `email`."""
    now = int(time.time())
    claims = {
        "sub": f"uid-{email}",
        "email": email,
        "iss": config.realm_url,
        "aud": config.oauth_client_id,
        "iat": now,
        "exp": now + ttl,
    }
    claims.update(extra)
    return claims


def fake_token_set(email: str, config: KeycloakConfig, ttl: int = 7200) -> dict[str, Any]:
    """A token response for `email`, valid for `ttl` seconds (negative for an expired one)."""
    return {
        "access_token": make_unsigned_token(fake_claims(email, config, ttl)),
        "refresh_token": f"fake-refresh-{email}",
        "id_token": f"fake-id-{email}",
        "expires_at": int(time.time()) + ttl,
    }


def sign_in(session: SessionStore, email: str, config: KeycloakConfig, ttl: int = 7200) -> dict[str, Any]:
    """Stores a fake token set in `session`, as if `email` had just logged in."""
    tokens = fake_token_set(email, config, ttl)
    session.set(SessionKey.ACCESS_TOKEN, tokens["access_token"])
    session.set(SessionKey.REFRESH_TOKEN, tokens["refresh_token"])
    session.set(SessionKey.ID_TOKEN, tokens["id_token"])
    session.set(SessionKey.EXPIRES_AT, tokens["expires_at"])
    return tokens
