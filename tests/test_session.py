# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

from typing import Any

from keycloak_identity.models import SessionKey
from keycloak_identity.session import MappingSessionStore, MemorySessionStore


def test_mapping_store_writes_through() -> None:
    backing: dict[str, Any] = {"csrf": "x"}
    store = MappingSessionStore(backing)

    store.set(SessionKey.ACCESS_TOKEN, "T1")
    assert backing["access_token"] == "T1"
    assert store.get("csrf") == "x"

    store.delete(SessionKey.ACCESS_TOKEN)
    assert backing == {"csrf": "x"}


def test_delete_missing_key_is_noop() -> None:
    store = MemorySessionStore()
    store.delete(SessionKey.REFRESH_TOKEN)
    assert store.get(SessionKey.REFRESH_TOKEN) is None


def test_memory_store_copies_initial_data() -> None:
    initial = {"access_token": "T1"}
    store = MemorySessionStore(initial)
    store.set("access_token", "T2")

    assert initial == {"access_token": "T1"}
    assert store.as_dict() == {"access_token": "T2"}
