# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import time
from collections.abc import Callable
from typing import Any

import pytest
from authlib.jose import JsonWebKey
from helpers import MOCK_CLIENT_ID, MOCK_KID, MOCK_REALM_URL

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import KeySetFetchError, TokenExpired, TokenInvalid
from keycloak_identity.testing import fake_claims, make_unsigned_token
from keycloak_identity.token_decoder import TokenDecoder


class StubKeySource:
    """Returns key sets in order; the last one repeats."""

    def __init__(self, *key_sets: dict[str, Any], error: Exception | None = None) -> None:
        self.key_sets = list(key_sets)
        self.error = error
        self.calls: list[bool] = []

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]:
        self.calls.append(force_refresh)
        if self.error:
            raise self.error
        if len(self.key_sets) > 1:
            return self.key_sets.pop(0)
        return self.key_sets[0]


@pytest.fixture
def source(jwks: dict[str, Any]) -> StubKeySource:
    return StubKeySource(jwks)


@pytest.mark.asyncio
async def test_valid_token(config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]) -> None:
    claims = await TokenDecoder(config, source).decode(make_token())

    assert claims["email"] == "a@x.com"
    assert claims["iss"] == MOCK_REALM_URL
    assert source.calls == [False]


@pytest.mark.asyncio
async def test_returns_fresh_dict(config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]) -> None:
    decoder = TokenDecoder(config, source)
    token = make_token()
    first = await decoder.decode(token)
    first["email"] = "mutated"
    assert (await decoder.decode(token))["email"] == "a@x.com"


@pytest.mark.asyncio
async def test_surrounding_whitespace_is_ignored(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]
) -> None:
    claims = await TokenDecoder(config, source).decode(f"  {make_token()}\n")
    assert claims["sub"] == "user-1"


@pytest.mark.asyncio
async def test_audience_list(config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]) -> None:
    claims = await TokenDecoder(config, source).decode(make_token(aud=["account", MOCK_CLIENT_ID]))
    assert MOCK_CLIENT_ID in claims["aud"]


@pytest.mark.asyncio
async def test_expired(config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]) -> None:
    with pytest.raises(TokenExpired):
        await TokenDecoder(config, source).decode(make_token(exp=int(time.time()) - 60))


@pytest.mark.asyncio
async def test_leeway_tolerates_small_skew(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]
) -> None:
    lenient = config.model_copy(update={"clock_skew_leeway": 120})
    claims = await TokenDecoder(lenient, source).decode(make_token(exp=int(time.time()) - 30))
    assert claims["email"] == "a@x.com"


@pytest.mark.parametrize(
    "overrides",
    [
        {"aud": "another-client"},
        {"iss": "https://evil.example.com/realms/test-realm"},
        {"exp": None},
        {"iss": None},
    ],
    ids=["wrong-audience", "wrong-issuer", "missing-exp", "missing-iss"],
)
@pytest.mark.asyncio
async def test_invalid_claims(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str], overrides: dict[str, Any]
) -> None:
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode(make_token(**overrides))


@pytest.mark.asyncio
async def test_expired_with_wrong_audience_is_invalid(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]
) -> None:
    token = make_token(aud="another-client", exp=int(time.time()) - 60)
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode(token)


@pytest.mark.asyncio
async def test_garbage(config: KeycloakConfig, source: StubKeySource) -> None:
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode("not-a-jwt")


@pytest.mark.asyncio
async def test_unsigned_token_rejected(config: KeycloakConfig, source: StubKeySource) -> None:
    token = make_unsigned_token(fake_claims("a@x.com", config))
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode(token)


@pytest.mark.asyncio
async def test_algorithm_not_allowed(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]
) -> None:
    token = make_token(headers={"alg": "RS512", "kid": MOCK_KID})
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode(token)


@pytest.mark.asyncio
async def test_bad_signature_retries_once_then_fails(
    config: KeycloakConfig, source: StubKeySource, make_token: Callable[..., str]
) -> None:
    other_key = JsonWebKey.generate_key("RSA", 2048, is_private=True)
    with pytest.raises(TokenInvalid):
        await TokenDecoder(config, source).decode(make_token(key=other_key))
    assert source.calls == [False, True]


@pytest.mark.asyncio
async def test_key_rotation(
    config: KeycloakConfig, jwks: dict[str, Any], key_pair: Any, make_token: Callable[..., str]
) -> None:
    rotated = {"keys": [{**jwks["keys"][0], "kid": "new-key"}]}
    source = StubKeySource(jwks, rotated)
    token = make_token(headers={"alg": "RS256", "kid": "new-key"})

    claims = await TokenDecoder(config, source).decode(token)

    assert claims["email"] == "a@x.com"
    assert source.calls == [False, True]


@pytest.mark.asyncio
async def test_key_set_failure_propagates(config: KeycloakConfig, make_token: Callable[..., str]) -> None:
    source = StubKeySource(error=KeySetFetchError("Failed to fetch JWKS"))
    with pytest.raises(KeySetFetchError):
        await TokenDecoder(config, source).decode(make_token())


class TestUnverified:
    @pytest.fixture
    def unsafe_config(self, config: KeycloakConfig) -> KeycloakConfig:
        return config.model_copy(update={"unsafe_skip_signature_verification": True})

    @pytest.mark.asyncio
    async def test_unsigned_token_accepted(self, unsafe_config: KeycloakConfig, source: StubKeySource) -> None:
        token = make_unsigned_token(fake_claims("b@x.com", unsafe_config))
        claims = await TokenDecoder(unsafe_config, source).decode(token)
        assert claims["email"] == "b@x.com"
        assert source.calls == []

    @pytest.mark.asyncio
    async def test_expiry_still_checked(self, unsafe_config: KeycloakConfig, source: StubKeySource) -> None:
        token = make_unsigned_token(fake_claims("b@x.com", unsafe_config, ttl=-60))
        with pytest.raises(TokenExpired):
            await TokenDecoder(unsafe_config, source).decode(token)

    @pytest.mark.asyncio
    async def test_audience_still_checked(self, unsafe_config: KeycloakConfig, source: StubKeySource) -> None:
        token = make_unsigned_token(fake_claims("b@x.com", unsafe_config, aud="someone-else"))
        with pytest.raises(TokenInvalid):
            await TokenDecoder(unsafe_config, source).decode(token)

    @pytest.mark.parametrize("token", ["abc", "a.b", "a.b.c.d", "!!!.???.sig"])
    @pytest.mark.asyncio
    async def test_malformed(self, unsafe_config: KeycloakConfig, source: StubKeySource, token: str) -> None:
        with pytest.raises(TokenInvalid):
            await TokenDecoder(unsafe_config, source).decode(token)
