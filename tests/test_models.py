# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import pytest
from pydantic import ValidationError

from keycloak_identity.exceptions import APIError, UserDeletionError
from keycloak_identity.models import HttpMethod, RequestDescriptor, TokenResponse, TokenSet, build_descriptor


class TestRequestDescriptor:
    def test_build_descriptor_defaults(self) -> None:
        descriptor = build_descriptor(method=HttpMethod.GET, url="https://x")
        assert descriptor.headers == {}
        assert descriptor.accepted_statuses == 200
        assert descriptor.error_kind is APIError
        assert descriptor.error_message == "Request failed"
        assert descriptor.content is None

    def test_scalar_status(self) -> None:
        descriptor = build_descriptor(method=HttpMethod.DELETE, url="https://x", accepted_statuses=204)
        assert descriptor.accepts(204)
        assert not descriptor.accepts(200)

    def test_set_of_statuses(self) -> None:
        descriptor = build_descriptor(method=HttpMethod.GET, url="https://x", accepted_statuses=[200, 201])
        assert isinstance(descriptor.accepted_statuses, frozenset)
        assert descriptor.accepts(201)
        assert not descriptor.accepts(204)

    def test_range_is_inclusive_of_both_ends(self) -> None:
        descriptor = build_descriptor(method=HttpMethod.PUT, url="https://x", accepted_statuses=range(200, 300))
        assert isinstance(descriptor.accepted_statuses, range)
        assert descriptor.accepts(200)
        assert descriptor.accepts(204)
        assert descriptor.accepts(299)
        assert not descriptor.accepts(300)
        assert not descriptor.accepts(199)

    def test_descriptor_is_frozen(self) -> None:
        descriptor = build_descriptor(method=HttpMethod.GET, url="https://x", error_kind=UserDeletionError)
        with pytest.raises(ValidationError):
            descriptor.url = "https://y"  # type: ignore[misc]

    def test_method_accepts_string(self) -> None:
        descriptor = RequestDescriptor(method="POST", url="https://x")  # type: ignore[arg-type]
        assert descriptor.method is HttpMethod.POST


def test_token_set_repr_redacts_tokens() -> None:
    tokens = TokenSet(access_token="secret-access", refresh_token="secret-refresh")
    text = repr(tokens)
    assert "secret" not in text
    assert "<REDACTED>" in text
    assert str(tokens) == text


def test_token_response_allows_extra_fields() -> None:
    response = TokenResponse.model_validate({"access_token": "a", "session_state": "xyz", "expires_in": 300})
    assert response.access_token == "a"
    assert response.expires_in == 300
    assert response.model_extra == {"session_state": "xyz"}
