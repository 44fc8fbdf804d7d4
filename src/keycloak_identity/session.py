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
Narrow interfaces to the collaborators supplied by the embedding application.
"""

from collections.abc import MutableMapping
from typing import Any, Protocol, TypeVar

UserT_co = TypeVar("UserT_co", covariant=True)


class SessionStore(Protocol):
    """Key-value capability over the caller's session. Only single-key operations are assumed."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None:
        """Removes the key. Must not fail when the key is absent."""
        ...


class UserLookup(Protocol[UserT_co]):
    """Resolves the value of the identity claim (e.g. an email) to an application user."""

    async def find_by_identity(self, value: str) -> UserT_co | None: ...


class MappingSessionStore:
    """
    Adapts any mutable mapping (e.g. a framework's `request.session` dict) to SessionStore.
    """

    def __init__(self, mapping: MutableMapping[str, Any]) -> None:
        self._mapping = mapping

    def get(self, key: str) -> Any | None:
        return self._mapping.get(key)

    def set(self, key: str, value: Any) -> None:
        self._mapping[key] = value

    def delete(self, key: str) -> None:
        self._mapping.pop(key, None)


class MemorySessionStore(MappingSessionStore):
    """
    In-memory implementation of SessionStore.
    Not shared between processes; intended for tests and single-process tools.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        super().__init__(dict(initial or {}))

    def as_dict(self) -> dict[str, Any]:
        return dict(self._mapping)
