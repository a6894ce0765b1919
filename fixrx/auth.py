"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the immutable
:class:`AuthState` for the lifetime of a client session, plus the pure
:func:`derive_phase` classifier used by the UI and navigation layers.

Usage::

    from fixrx.auth import SessionManager

    session = SessionManager()
    unsubscribe = session.subscribe(lambda state: print(state.phase))
    session.update(is_loading=True)
    state = session.snapshot
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from fixrx.errors import AuthenticationRequired
from fixrx.models.auth_models import AuthState
from fixrx.models.enums import AuthPhase
from fixrx.models.profile_models import RoleProfile
from fixrx.models.user import User

StateListener = Callable[[AuthState], None]


def derive_phase(
    *,
    is_authenticated: bool,
    user: Optional[User],
    profile: Optional[RoleProfile],
    is_loading: bool,
    error: Optional[str],
) -> AuthPhase:
    """Classify a session.  Pure; never raises.

    ``ERROR`` only applies while no actor is authenticated: an
    authenticated actor with a recorded error keeps its phase.
    """
    if is_loading:
        return AuthPhase.AUTHENTICATING
    if is_authenticated and user is not None:
        if profile is not None:
            return AuthPhase.AUTHENTICATED_WITH_PROFILE
        return AuthPhase.AUTHENTICATED_NO_PROFILE
    if error:
        return AuthPhase.ERROR
    return AuthPhase.ANONYMOUS


class SessionManager:
    """Injectable holder for the current :class:`AuthState`.

    Each instance maintains its own state, eliminating the need for
    module-level globals.  Pass a single ``SessionManager`` through the
    dependency-injection layer so every component shares the same
    session.

    State is replaced wholesale on every transition.  Listeners are
    invoked synchronously, outside the lock, with the new state.
    """

    def __init__(self, initial: Optional[AuthState] = None) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._state: AuthState = initial or AuthState()
        self._listeners: list[StateListener] = []

    @property
    def snapshot(self) -> AuthState:
        """Return the current immutable state."""
        with self._lock:
            return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def update(self, **changes: Any) -> AuthState:
        """Apply *changes* to the current state and notify listeners."""
        with self._lock:
            unknown = set(changes) - set(AuthState.model_fields)
            if unknown:
                raise TypeError(f"Unknown AuthState fields: {sorted(unknown)}")
            new_state = self._state.model_copy(update=changes)
            self._state = new_state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(new_state)
        return new_state

    def set_state(self, state: AuthState) -> AuthState:
        """Replace the whole state and notify listeners."""
        with self._lock:
            self._state = state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state)
        return state

    def reset(self) -> AuthState:
        """Return to the anonymous initial state."""
        return self.set_state(AuthState())

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        """``True`` when an actor is currently signed in."""
        state = self.snapshot
        return state.is_authenticated and state.user is not None

    def get_current_user(self) -> User:
        """Return the authenticated actor.

        Raises
        ------
        AuthenticationRequired
            If no actor is currently authenticated.
        """
        state = self.snapshot
        if not state.is_authenticated or state.user is None:
            raise AuthenticationRequired()
        return state.user
