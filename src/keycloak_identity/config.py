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
Configuration for the keycloak-identity package.
"""

import os
from pathlib import Path
from typing import Any, ClassVar

import yaml
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from keycloak_identity.exceptions import ConfigurationError

DEFAULT_ENV = "development"


class KeycloakConfig(BaseSettings):
    """
    Connection settings for a Keycloak realm.

    Instances are frozen and validated on construction, so a config that reaches
    network code always has every required attribute.

    Attributes:
        keycloak_url (str): Base URL of the Keycloak server (e.g. https://sso.example.com).
        realm (str): The realm name.
        app_host (str): Public base URL of the embedding application.
        oauth_client_id (str): Client ID used for the login and refresh grants. Also the expected audience.
        oauth_client_secret (SecretStr): Secret for `oauth_client_id`.
        admin_client_id (str | None): Client ID with admin API permissions (service account).
        admin_client_secret (SecretStr | None): Secret for `admin_client_id`.
        unsafe_skip_signature_verification (bool): Decode tokens WITHOUT checking their signature.
            Security relevant: only for test suites that use unsigned tokens.
    """

    model_config = SettingsConfigDict(
        env_prefix="KEYCLOAK_",
        case_sensitive=False,
        frozen=True,
    )

    REQUIRED_ATTRIBUTES: ClassVar[tuple[str, ...]] = (
        "keycloak_url",
        "app_host",
        "realm",
        "oauth_client_id",
        "oauth_client_secret",
    )

    keycloak_url: str = ""
    realm: str = ""
    app_host: str = ""
    oauth_client_id: str = ""
    oauth_client_secret: SecretStr = SecretStr("")
    admin_client_id: str | None = None
    admin_client_secret: SecretStr | None = None

    http_timeout: float = Field(default=30.0, gt=0, description="Timeout in seconds for all Keycloak requests.")
    jwks_cache_ttl: int = Field(default=3600, gt=0, description="Lifetime of a cached key set in seconds.")
    jwks_refresh_cooldown: float = Field(default=30.0, ge=0, description="Minimum seconds between forced refreshes.")
    clock_skew_leeway: int = Field(default=0, ge=0)
    allowed_algorithms: list[str] = Field(default_factory=lambda: ["RS256"])
    identity_claim: str = "email"
    unsafe_skip_signature_verification: bool = False
    pii_salt: SecretStr = SecretStr("keycloak-identity-unsafe-default-salt")

    @field_validator("keycloak_url", "app_host", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip("/")

    @field_validator("allowed_algorithms", mode="after")
    @classmethod
    def reject_none_algorithm(cls, v: list[str]) -> list[str]:
        """
        Ensures 'none' can never be configured as a signing algorithm.
        Unsigned tokens are only accepted through `unsafe_skip_signature_verification`.
        """
        if not v:
            raise ValueError("At least one signing algorithm is required.")
        if any(alg.lower() == "none" for alg in v):
            raise ValueError("The 'none' algorithm is not allowed.")
        return v

    @model_validator(mode="after")
    def check_required(self) -> "KeycloakConfig":
        self.validate_required()
        return self

    def validate_required(self) -> None:
        """
        Validates that all required attributes are present.

        Raises:
            ConfigurationError: Naming the first missing attribute.
        """
        for attr in self.REQUIRED_ATTRIBUTES:
            value = getattr(self, attr)
            if isinstance(value, SecretStr):
                value = value.get_secret_value()
            if not value or not str(value).strip():
                raise ConfigurationError(f"{attr} is required")

    @property
    def realm_url(self) -> str:
        return f"{self.keycloak_url}/realms/{self.realm}"

    @property
    def token_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/token"

    @property
    def logout_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/logout"

    @property
    def jwks_url(self) -> str:
        return f"{self.realm_url}/protocol/openid-connect/certs"

    @property
    def admin_realm_url(self) -> str:
        return f"{self.keycloak_url}/admin/realms/{self.realm}"

    @property
    def redirect_url(self) -> str:
        return f"{self.app_host}/auth/callback"

    @classmethod
    def from_yaml(cls, path: str | Path, env: str | None = None, **overrides: Any) -> "KeycloakConfig":
        """
        Loads the section for one environment from a YAML file.

        Example file:

            development:
              keycloak_url: "https://keycloak.example.com"
              app_host: "http://localhost:3000"
              realm: "my-realm"
              oauth_client_id: "my-client"
              oauth_client_secret: "secret"

        Args:
            path: Path to the YAML file.
            env: Section name. Defaults to the APP_ENV environment variable, then "development".
            **overrides: Values that take precedence over the file.

        Returns:
            KeycloakConfig: The validated configuration.

        Raises:
            ConfigurationError: If the file cannot be read or parsed, or required values are missing.
        """
        path = Path(path)
        env = env or os.environ.get("APP_ENV") or DEFAULT_ENV

        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load YAML from {path}: {e}") from e

        if not isinstance(content, dict):
            raise ConfigurationError(f"Failed to load YAML from {path}: top level must be a mapping")

        section = content.get(env) or {}
        # Unknown keys are ignored
        known = {k: v for k, v in section.items() if k in cls.model_fields}
        known.update(overrides)
        return cls(**known)
