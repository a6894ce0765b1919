"""
Navigation Resolver.

Maps an :class:`AuthState` to the screen the client should show.  The
mapping is a pure function so every UI shell (CLI, desktop, tests)
routes identically.

Routing table::

    AUTHENTICATING                    -> SPLASH
    ANONYMOUS / ERROR                 -> WELCOME
    authenticated, no role            -> USER_TYPE_SELECTION
    AUTHENTICATED_NO_PROFILE          -> <ROLE>_PROFILE_SETUP
    AUTHENTICATED_WITH_PROFILE        -> <ROLE>_DASHBOARD
    ADMIN (profile never loaded)      -> ADMIN_DASHBOARD
"""

from __future__ import annotations

from enum import StrEnum

from fixrx.models.auth_models import AuthState
from fixrx.models.enums import AuthPhase, UserRole


class Route(StrEnum):
    SPLASH = "SPLASH"
    WELCOME = "WELCOME"
    USER_TYPE_SELECTION = "USER_TYPE_SELECTION"
    CONSUMER_PROFILE_SETUP = "CONSUMER_PROFILE_SETUP"
    VENDOR_PROFILE_SETUP = "VENDOR_PROFILE_SETUP"
    CONSUMER_DASHBOARD = "CONSUMER_DASHBOARD"
    VENDOR_DASHBOARD = "VENDOR_DASHBOARD"
    ADMIN_DASHBOARD = "ADMIN_DASHBOARD"


_PROFILE_SETUP: dict[UserRole, Route] = {
    UserRole.CONSUMER: Route.CONSUMER_PROFILE_SETUP,
    UserRole.VENDOR: Route.VENDOR_PROFILE_SETUP,
}

_DASHBOARD: dict[UserRole, Route] = {
    UserRole.CONSUMER: Route.CONSUMER_DASHBOARD,
    UserRole.VENDOR: Route.VENDOR_DASHBOARD,
    UserRole.ADMIN: Route.ADMIN_DASHBOARD,
}


def resolve_route(state: AuthState) -> Route:
    """Return the route for *state*.  Never raises."""
    phase = state.phase
    if phase == AuthPhase.AUTHENTICATING:
        return Route.SPLASH
    if phase in (AuthPhase.ANONYMOUS, AuthPhase.ERROR):
        return Route.WELCOME

    role = state.role
    if role is None:
        return Route.USER_TYPE_SELECTION
    if role == UserRole.ADMIN:
        return Route.ADMIN_DASHBOARD
    if phase == AuthPhase.AUTHENTICATED_NO_PROFILE:
        return _PROFILE_SETUP[role]
    return _DASHBOARD[role]
