"""
Authentication Service (Auth State Machine).

Single orchestrator for every session-lifecycle concern: login,
registration, logout, current-user reload, profile loading, startup
hydration, and the profile/user update actions.

Sits between the UI layer and the identity/profile layers so that views
remain thin: a view invokes an action, then reads
``session.snapshot`` (or subscribes to it) and asks
:func:`fixrx.navigation.resolve_route` where to go.

Transitions::

    ANONYMOUS --login/register--> AUTHENTICATING --profile--> AUTHENTICATED_WITH_PROFILE
                                               \\--absent--> AUTHENTICATED_NO_PROFILE
    any --logout / SessionExpired--> ANONYMOUS (snapshot + credentials cleared)
    any --identity error--> ERROR (only while no actor is signed in)

Actions re-raise every ``FixRxError`` after recording it in ``error``;
``SessionExpired`` always evicts the actor first.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import ValidationError

from fixrx.auth import SessionManager
from fixrx.errors import FixRxError, InvalidInput, NetworkError, SessionExpired, StorageError
from fixrx.jwt_auth import require_auth
from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import AuthState, RegisterRequest, SessionSnapshot
from fixrx.models.enums import ProfileLoadOutcome, UserRole
from fixrx.models.profile_models import ConsumerProfile, VendorProfile
from fixrx.models.user import User
from fixrx.services.credential_store import CredentialStore
from fixrx.services.identity_service import IdentityService, validation_message
from fixrx.services.profile_loader import ProfileLoader
from fixrx.services.session_snapshot import SessionSnapshotStore


class AuthService:
    """Auth state machine actions over an injectable ``SessionManager``.

    Parameters
    ----------
    session:
        The shared state container.
    identity:
        Identity operations (login, register, logout, current user).
    profiles:
        Role-conditional profile loader.
    credentials:
        The Credential Store, consulted to validate hydrated snapshots.
    snapshots:
        Persistence for the token-free session snapshot.
    logger:
        A ``StructuredLogger`` instance for the audit trail.
    """

    def __init__(
        self,
        session: SessionManager,
        identity: IdentityService,
        profiles: ProfileLoader,
        credentials: CredentialStore,
        snapshots: SessionSnapshotStore,
        logger: StructuredLogger,
    ) -> None:
        self._session: SessionManager = session
        self._identity: IdentityService = identity
        self._profiles: ProfileLoader = profiles
        self._credentials: CredentialStore = credentials
        self._snapshots: SessionSnapshotStore = snapshots
        self._logger: StructuredLogger = logger

        self._persisted: Optional[SessionSnapshot] = None
        self._unsubscribe = session.subscribe(self._persist)

        self._any_actor = require_auth(session)
        self._consumers_only = require_auth(session, roles={UserRole.CONSUMER})
        self._vendors_only = require_auth(session, roles={UserRole.VENDOR})

    @property
    def session(self) -> SessionManager:
        return self._session

    @property
    def state(self) -> AuthState:
        return self._session.snapshot

    def close(self) -> None:
        """Detach the persistence listener."""
        self._unsubscribe()

    # ==================================================================
    # Login / registration / logout
    # ==================================================================

    async def login(self, email: str, password: str) -> AuthState:
        """Sign in, then load the role profile before leaving ``AUTHENTICATING``.

        Raises
        ------
        InvalidInput, InvalidCredentials, NetworkError, StorageError
            After recording the message in ``error``.
        """
        self._session.update(is_loading=True, error=None)
        try:
            response = await self._identity.login(email, password)
        except FixRxError as exc:
            self._record_failure(exc)
            raise
        return await self._complete_sign_in(response.user)

    async def register(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: UserRole,
        phone: Optional[str] = None,
    ) -> AuthState:
        """Create an account, sign it in, and load its (usually absent) profile.

        Raises
        ------
        InvalidInput, AccountExists, NetworkError, StorageError
            After recording the message in ``error``.
        """
        self._session.update(is_loading=True, error=None)
        try:
            try:
                request = RegisterRequest(
                    email=email,
                    password=password,
                    first_name=first_name,
                    last_name=last_name,
                    role=role,
                    phone=phone,
                )
            except ValidationError as exc:
                raise InvalidInput(validation_message(exc)) from exc
            response = await self._identity.register(request)
        except FixRxError as exc:
            self._record_failure(exc)
            raise
        return await self._complete_sign_in(response.user)

    async def logout(self) -> AuthState:
        """End the session locally and (best-effort) on the server.  Never raises."""
        user = self._session.snapshot.user
        await self._identity.logout()
        try:
            self._session.reset()
        except StorageError as exc:
            self._logger.error("Could not clear the session snapshot during logout: %s", exc)
        try:
            self._snapshots.clear()
        except StorageError as exc:
            self._logger.error("Could not clear the session snapshot during logout: %s", exc)
        self._persisted = None
        self._logger.info(
            "User logged out: %s",
            user.email if user is not None else "unknown",
            extra={"event": "LOGOUT", "user_id": user.id if user is not None else "unknown"},
        )
        return self._session.snapshot

    # ==================================================================
    # Reload / hydration
    # ==================================================================

    async def load_user(self) -> AuthState:
        """Re-fetch the actor (``GET /users/me``) and its profile.

        With no stored credentials the session is forced anonymous.  A
        ``NetworkError`` keeps the current actor and is recorded, then
        re-raised.
        """
        if not self._credentials.has_credentials:
            self._force_anonymous()
            return self._session.snapshot

        self._session.update(is_loading=True)
        try:
            user = await self._identity.get_current_user()
        except FixRxError as exc:
            self._record_failure(exc)
            raise

        self._session.update(user=user, is_authenticated=True, error=None)
        await self._apply_profile(user)
        return self._session.snapshot

    async def load_profile(self) -> AuthState:
        """Reload the role profile of the current actor, if any."""
        user = self._session.snapshot.user
        if user is None or not self._session.snapshot.is_authenticated:
            return self._session.snapshot
        self._session.update(is_loading=True)
        await self._apply_profile(user)
        return self._session.snapshot

    def hydrate(self) -> AuthState:
        """Restore the persisted snapshot, trusting it only if credentials exist.

        A snapshot that claims an authenticated actor while the Credential
        Store is empty is discarded and the session forced anonymous.  A
        trusted snapshot leaves the session in ``AUTHENTICATING`` until
        :meth:`load_user` confirms it.
        """
        snapshot = self._snapshots.load()
        if snapshot is None:
            return self._session.snapshot

        if snapshot.is_authenticated and (
            snapshot.user is None or not self._credentials.has_credentials
        ):
            self._logger.warning(
                "Discarding stale session snapshot: no stored credentials.",
                extra={"event": "SNAPSHOT_DISCARDED"},
            )
            self._force_anonymous()
            return self._session.snapshot

        self._persisted = snapshot
        state = self._session.set_state(
            AuthState(
                user=snapshot.user,
                consumer=snapshot.consumer,
                vendor=snapshot.vendor,
                is_authenticated=snapshot.is_authenticated,
                is_loading=snapshot.is_authenticated,
            )
        )
        if snapshot.user is not None:
            self._logger.info(
                "Session restored for %s.",
                snapshot.user.email,
                extra={"event": "SESSION_RESTORED", "user_id": snapshot.user.id},
            )
        return state

    async def restore_session(self) -> AuthState:
        """Startup entry point: :meth:`hydrate`, then revalidate with the server.

        Offline starts keep the hydrated actor; the ``NetworkError`` is
        recorded in ``error`` rather than raised.
        """
        self.hydrate()
        if not self._credentials.has_credentials:
            if self._session.snapshot.is_loading:
                self._session.update(is_loading=False)
            return self._session.snapshot
        try:
            return await self.load_user()
        except NetworkError:
            return self._session.snapshot

    # ==================================================================
    # Updates (guarded)
    # ==================================================================

    async def update_user(self, changes: Mapping[str, Any]) -> User:
        """Update the signed-in actor (``PUT /users/me``)."""
        return await self._any_actor(self._update_user)(changes)

    async def update_consumer_profile(self, changes: Mapping[str, Any]) -> ConsumerProfile:
        """Update the consumer profile; consumers only."""
        return await self._consumers_only(self._update_consumer_profile)(changes)

    async def update_vendor_profile(self, changes: Mapping[str, Any]) -> VendorProfile:
        """Update the vendor profile; vendors only."""
        return await self._vendors_only(self._update_vendor_profile)(changes)

    def clear_error(self) -> AuthState:
        return self._session.update(error=None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _complete_sign_in(self, user: User) -> AuthState:
        # Credentials are already written; the actor goes in before the
        # profile fetch and is_loading holds until its outcome is applied.
        self._session.update(
            user=user,
            consumer=None,
            vendor=None,
            is_authenticated=True,
            is_loading=True,
            error=None,
        )
        await self._apply_profile(user)
        return self._session.snapshot

    async def _apply_profile(self, user: User) -> None:
        try:
            result = await self._profiles.load(user)
        except FixRxError as exc:
            self._record_failure(exc)
            raise

        if result.outcome == ProfileLoadOutcome.FOUND:
            self._session.update(consumer=result.consumer, vendor=result.vendor, is_loading=False)
        elif result.outcome == ProfileLoadOutcome.NOT_FOUND:
            self._session.update(consumer=None, vendor=None, is_loading=False)
        else:
            self._session.update(is_loading=False)

    async def _update_user(self, changes: Mapping[str, Any]) -> User:
        try:
            user = await self._identity.update_user(changes)
        except FixRxError as exc:
            self._record_failure(exc)
            raise
        self._session.update(user=user, error=None)
        return user

    async def _update_consumer_profile(self, changes: Mapping[str, Any]) -> ConsumerProfile:
        try:
            profile = await self._profiles.update_consumer_profile(changes)
        except FixRxError as exc:
            self._record_failure(exc)
            raise
        self._session.update(consumer=profile, error=None)
        return profile

    async def _update_vendor_profile(self, changes: Mapping[str, Any]) -> VendorProfile:
        try:
            profile = await self._profiles.update_vendor_profile(changes)
        except FixRxError as exc:
            self._record_failure(exc)
            raise
        self._session.update(vendor=profile, error=None)
        return profile

    def _record_failure(self, exc: FixRxError) -> None:
        if isinstance(exc, SessionExpired):
            self.evict(exc.message)
            return
        self._session.update(is_loading=False, error=exc.message)

    def evict(self, message: Optional[str] = None) -> None:
        """Drop the actor after a forced session loss.

        Registered with the API client so that business-service calls
        that lose their session evict the actor too.  Idempotent.
        """
        self._credentials.clear()
        self._snapshots.clear()
        self._persisted = None
        self._session.set_state(
            AuthState(error=message or SessionExpired().message)
        )

    def _force_anonymous(self) -> None:
        self._snapshots.clear()
        self._persisted = None
        self._session.reset()

    def _persist(self, state: AuthState) -> None:
        """State listener: write the persisted slice whenever it changes."""
        snapshot = state.to_snapshot()
        if snapshot == self._persisted or (snapshot.is_blank and self._persisted is None):
            return
        self._snapshots.save(snapshot)
        self._persisted = None if snapshot.is_blank else snapshot
