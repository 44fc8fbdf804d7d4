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
Keycloak relying-party toolkit: session token lifecycle, JWKS caching and a typed request pipeline.
"""

from .admin import AdminClient
from .authentication import Authenticator, create_http_client
from .config import KeycloakConfig
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    KeycloakError,
    TokenExpired,
    TokenInvalid,
    TokenRefreshFailed,
)
from .jwks import JWKSCache, KeySetProvider, default_jwks_cache
from .models import HttpMethod, RequestDescriptor, TokenResponse, TokenSet, build_descriptor
from .request_executor import RequestExecutor
from .response_validator import ResponseValidator
from .session import MappingSessionStore, MemorySessionStore, SessionStore, UserLookup
from .token_decoder import TokenDecoder
from .token_refresher import TokenRefresher
from .token_service import TokenService
from .version import __version__

__all__ = [
    "AdminClient",
    "AuthenticationError",
    "Authenticator",
    "ConfigurationError",
    "HttpMethod",
    "JWKSCache",
    "KeySetProvider",
    "KeycloakConfig",
    "KeycloakError",
    "MappingSessionStore",
    "MemorySessionStore",
    "RequestDescriptor",
    "RequestExecutor",
    "ResponseValidator",
    "SessionStore",
    "TokenDecoder",
    "TokenExpired",
    "TokenInvalid",
    "TokenRefreshFailed",
    "TokenRefresher",
    "TokenResponse",
    "TokenService",
    "TokenSet",
    "UserLookup",
    "__version__",
    "build_descriptor",
    "create_http_client",
    "default_jwks_cache",
]
