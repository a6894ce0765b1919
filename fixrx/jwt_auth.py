"""
Authentication Guard Decorator.

Provides a factory that produces a decorator for gating service-layer
coroutines behind an authenticated session, optionally restricted to
specific roles.

Usage::

    from fixrx.auth import SessionManager
    from fixrx.jwt_auth import require_auth
    from fixrx.models.enums import UserRole

    session = SessionManager()
    vendor_only = require_auth(session, roles={UserRole.VENDOR})

    @vendor_only
    async def publish_listing(...) -> None:
        ...
"""

from __future__ import annotations

from functools import wraps
from typing import Awaitable, Callable, Iterable, Optional, ParamSpec, TypeVar

from fixrx.auth import SessionManager
from fixrx.errors import AuthenticationRequired
from fixrx.models.enums import UserRole

P = ParamSpec("P")
R = TypeVar("R")


def require_auth(
    session: SessionManager,
    roles: Optional[Iterable[UserRole]] = None,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Return a decorator that enforces authentication via *session*.

    The returned decorator checks ``session.is_authenticated`` (and the
    actor's role when *roles* is given) before every call to the wrapped
    coroutine function.

    Args:
        session: The injectable ``SessionManager`` that holds the
            current auth state.
        roles: Roles allowed to call the function.  ``None`` admits any
            authenticated actor.

    Returns:
        A decorator suitable for wrapping service-layer coroutines.

    Raises:
        AuthenticationRequired: At call time, when no actor is signed in
            or the actor's role is not admitted.
    """
    allowed: Optional[frozenset[UserRole]] = frozenset(roles) if roles is not None else None

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            user = session.get_current_user()
            if allowed is not None and user.role not in allowed:
                raise AuthenticationRequired(
                    "Your account type is not allowed to perform this action."
                )
            return await func(*args, **kwargs)

        return wrapper

    return decorator
