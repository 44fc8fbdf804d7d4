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
TokenDecoder component for verifying and decoding Keycloak access tokens.
"""

from typing import Any, Protocol, cast

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebToken, JWTClaims
from authlib.jose.errors import BadSignatureError, ExpiredTokenError, JoseError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from keycloak_identity.config import KeycloakConfig
from keycloak_identity.exceptions import TokenExpired, TokenInvalid
from keycloak_identity.utils.logger import logger

tracer = trace.get_tracer(__name__)


class KeySetSource(Protocol):
    """Anything that can hand out the realm's JWKS (see `jwks.KeySetProvider`)."""

    async def get_jwks(self, force_refresh: bool = False) -> dict[str, Any]: ...


class TokenDecoder:
    """
    Verifies a token's signature against the realm key set and validates its claims.

    Checks: allowed signing algorithms, `iss` equal to the realm URL, `aud` containing
    the OAuth client id, and an essential, unexpired `exp`.

    Attributes:
        config (KeycloakConfig): The validated configuration.
        key_source (KeySetSource): Source of the realm JWKS.
        verify_signature (bool): False only when `config.unsafe_skip_signature_verification` is set.
    """

    def __init__(self, config: KeycloakConfig, key_source: KeySetSource) -> None:
        self.config = config
        self.key_source = key_source
        self.verify_signature = not config.unsafe_skip_signature_verification
        self.jwt = JsonWebToken(config.allowed_algorithms)
        if not self.verify_signature:
            logger.warning("Token signature verification is DISABLED (unsafe_skip_signature_verification=True).")

    def _claims_options(self) -> dict[str, Any]:
        return {
            "exp": {"essential": True},
            "iss": {"essential": True, "value": self.config.realm_url},
            "aud": {"essential": True, "value": self.config.oauth_client_id},
        }

    async def decode(self, token: str) -> dict[str, Any]:
        """
        Decodes and validates a token.

        Args:
            token: The raw JWT string.

        Returns:
            dict[str, Any]: The claims. A fresh dict on every call.

        Raises:
            TokenExpired: If the token is otherwise valid but its `exp` is in the past.
            TokenInvalid: For any other decode or validation failure.
            KeySetFetchError: If the key set cannot be fetched.
        """
        with tracer.start_as_current_span("decode_token") as span:
            token = token.strip()
            try:
                if self.verify_signature:
                    claims = await self._decode_verified(token)
                else:
                    claims = self._decode_unverified(token)
                claims.validate(leeway=self.config.clock_skew_leeway)
            except TokenInvalid as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise
            except ExpiredTokenError as e:
                span.set_status(Status(StatusCode.ERROR, "expired"))
                raise TokenExpired(f"Token has expired: {e}") from e
            except JoseError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenInvalid(f"Token validation failed: {e}") from e
            except (ValueError, KeyError, TypeError) as e:
                # Authlib raises these for unknown key ids and unparseable segments
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise TokenInvalid(f"Malformed token or signing key not found: {e}") from e

            span.set_status(Status(StatusCode.OK))
            return dict(claims)

    async def _decode_verified(self, token: str) -> JWTClaims:
        jwks = await self.key_source.get_jwks()
        try:
            return self._jwt_decode(token, jwks)
        except (ValueError, KeyError, BadSignatureError):
            # Unknown kid or bad signature may mean the realm rotated its keys
            logger.info("Verification failed with cached keys, refreshing JWKS and retrying...")
            jwks = await self.key_source.get_jwks(force_refresh=True)
            return self._jwt_decode(token, jwks)

    def _jwt_decode(self, token: str, jwks: dict[str, Any]) -> JWTClaims:
        # Cast to Any to bypass missing overloads in authlib's stubs
        jwt_any = cast("Any", self.jwt)
        return jwt_any.decode(token, jwks, claims_options=self._claims_options())  # type: ignore[no-any-return]

    def _decode_unverified(self, token: str) -> JWTClaims:
        """
        Parses the JWS segments without checking the signature.
        Claim validation still applies.
        """
        segments = to_bytes(token).split(b".")
        if len(segments) != 3:
            raise TokenInvalid("Token validation failed: not enough segments")
        try:
            header = json_loads(urlsafe_b64decode(segments[0]).decode("utf-8"))
            payload = json_loads(urlsafe_b64decode(segments[1]).decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise TokenInvalid(f"Token validation failed: {e}") from e
        if not isinstance(header, dict) or not isinstance(payload, dict):
            raise TokenInvalid("Token validation failed: header and payload must be JSON objects")
        return JWTClaims(payload, header, options=self._claims_options())
