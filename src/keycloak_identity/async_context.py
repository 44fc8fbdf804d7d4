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
Async Context Management for the request-scoped current user.

The resolved user is remembered together with the session it was resolved from,
so a lookup for a different session in the same context is not answered from memory.
"""

from contextvars import ContextVar
from typing import Any

# Sentinel distinguishing "not resolved yet" from "resolved to no user"
UNRESOLVED: Any = object()

_current_user: ContextVar[Any] = ContextVar("keycloak_current_user", default=UNRESOLVED)
_resolved_session: ContextVar[int | None] = ContextVar("keycloak_resolved_session", default=None)


def get_current_user() -> Any | None:
    """
    Retrieve the current user from the async context.

    Returns:
        The user resolved for this request, or None if unauthenticated or not resolved yet.
    """
    user = _current_user.get()
    return None if user is UNRESOLVED else user


def is_resolved(session: Any | None = None) -> bool:
    """
    True once the current request's user has been resolved (even to None).

    Args:
        session: When given, only a resolution made for this same session object counts.
    """
    if _current_user.get() is UNRESOLVED:
        return False
    return session is None or _resolved_session.get() == id(session)


def set_current_user(user: Any | None, session: Any | None = None) -> None:
    """
    Set the current user for the async task.

    Args:
        user: The resolved user, or None for an unauthenticated request.
        session: The session the user was resolved from.
    """
    _current_user.set(user)
    _resolved_session.set(None if session is None else id(session))


def clear_current_user() -> None:
    """
    Reset to the unresolved state.
    """
    _current_user.set(UNRESOLVED)
    _resolved_session.set(None)
