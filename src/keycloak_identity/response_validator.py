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
ResponseValidator component for OAuth2-level validation of token responses.

HTTP-level success is not enough: Keycloak can answer 200 with an `error` field,
or omit the access token. Two entry points are offered:

    validator = ResponseValidator(response)
    if validator.is_valid():
        ...

    data = ResponseValidator(response).assert_valid()  # raises TokenRefreshFailed
"""

from typing import Any

import httpx

from keycloak_identity.exceptions import TokenRefreshFailed

INVALID_GRANT = "invalid_grant"
MAX_INLINE_BODY = 100


class ResponseValidator:
    """
    Validates a Keycloak token-endpoint response.

    Attributes:
        response (httpx.Response): The raw response.
        data (dict[str, Any]): The parsed body; empty when the body is not a JSON object.
    """

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.data = self._parse_body()

    def is_valid(self) -> bool:
        """
        Returns True only for a 2xx response with a non-empty `access_token` and no `error`.
        """
        if not self._http_ok():
            return False
        if self._invalid_grant():
            return False
        if self._error_present():
            return False
        return self._access_token_present()

    def assert_valid(self) -> dict[str, Any]:
        """
        Returns the parsed body of a valid response.

        Returns:
            dict[str, Any]: The token data.

        Raises:
            TokenRefreshFailed: With a message describing the first failing check.
        """
        if not self.is_valid():
            raise TokenRefreshFailed(
                self._failure_message(),
                status_code=self.response.status_code,
                body=self.response.text,
            )
        return self.data

    def _parse_body(self) -> dict[str, Any]:
        try:
            data = self.response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _http_ok(self) -> bool:
        return self.response.is_success

    def _invalid_grant(self) -> bool:
        return self.data.get("error") == INVALID_GRANT

    def _error_present(self) -> bool:
        return "error" in self.data

    def _access_token_present(self) -> bool:
        token = self.data.get("access_token")
        return isinstance(token, str) and bool(token.strip())

    def _failure_message(self) -> str:
        description = self.data.get("error_description")
        if not self._http_ok():
            return f"Keycloak API request failed with status {self.response.status_code}: {self._extract_error_message()}"
        if self._invalid_grant():
            return f"Invalid grant: {description or 'Refresh token invalid or expired'}"
        if self._error_present():
            return f"Keycloak error: {self.data['error']} - {description}"
        return "Invalid response: access token missing from response"

    def _extract_error_message(self) -> str:
        description = self.data.get("error_description")
        if description:
            return str(description)
        body = self.response.text
        if len(body) < MAX_INLINE_BODY:
            return body
        return "See response body for details"
