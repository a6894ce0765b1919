"""
Identity Operations.

Thin, typed wrappers over the FixRx identity endpoints.  Each call goes
through the :class:`ApiClient` pipeline, normalises the server payload
exactly once, writes credentials through to the :class:`CredentialStore`
and translates transport/API failures into the session error taxonomy:

=========================  ===========================================
Server outcome             Raised
=========================  ===========================================
login 400 / 401            ``InvalidCredentials``
register 409 / "exists"    ``AccountExists``
2xx without user / role    ``MalformedResponse``
anything else              ``NetworkError``
=========================  ===========================================

This layer never touches the auth state container; the state machine in
:mod:`fixrx.services.auth_service` decides what each outcome means for
the session.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from pydantic import ValidationError

from fixrx.errors import (
    AccountExists,
    ApiError,
    FixRxError,
    InvalidCredentials,
    InvalidInput,
    NetworkError,
    StorageError,
)
from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import (
    AuthResponse,
    CredentialPair,
    LoginRequest,
    RegisterRequest,
)
from fixrx.models.user import User
from fixrx.services.api_client import LOGIN_PATH, LOGOUT_PATH, REGISTER_PATH, ApiClient
from fixrx.services.payload_normalizer import (
    extract_message,
    normalize_auth_payload,
    normalize_user,
)

USERS_ME_PATH: str = "/users/me"

_ACCOUNT_EXISTS_MARKERS: tuple[str, ...] = ("already exists", "already registered")


def member(body: Any, name: str) -> Any:
    """Return ``body[name]`` when the server nested the object, else *body*."""
    if isinstance(body, Mapping) and isinstance(body.get(name), Mapping):
        return body[name]
    return body


def validation_message(exc: ValidationError) -> str:
    """First human-readable message of a pydantic ``ValidationError``."""
    errors = exc.errors()
    if not errors:
        return str(exc)
    message = str(errors[0].get("msg", ""))
    return message.removeprefix("Value error, ")


class IdentityService:
    """Login, registration, logout, renewal and current-user calls.

    Parameters
    ----------
    api:
        The shared ``ApiClient`` pipeline.
    logger:
        A ``StructuredLogger`` instance.  Passwords and tokens are never
        logged.
    """

    def __init__(self, api: ApiClient, logger: StructuredLogger) -> None:
        self._api: ApiClient = api
        self._logger: StructuredLogger = logger

    # ==================================================================
    # Login / registration
    # ==================================================================

    async def login(self, email: str, password: str) -> AuthResponse:
        """Authenticate with email + password.

        Raises
        ------
        InvalidInput
            If the email or password fails client-side validation.
        InvalidCredentials
            If the server rejects the credentials (HTTP 400/401).
        NetworkError
            On transport failure, server error, or a malformed payload.
        """
        try:
            form = LoginRequest(email=email, password=password)
        except ValidationError as exc:
            raise InvalidInput(validation_message(exc)) from exc

        try:
            payload = await self._api.request_json(
                "POST",
                LOGIN_PATH,
                json={"email": form.email, "password": form.password},
                authenticate=False,
                unwrap=False,
            )
        except ApiError as exc:
            raise self._classify_login_error(exc, form.email) from exc
        except NetworkError:
            self._logger.warning(
                "Network error during login for %s.", form.email,
                extra={"event": "LOGIN_NETWORK_ERROR"},
            )
            raise

        response = normalize_auth_payload(payload)
        self._write_through(response)
        self._logger.info(
            "User authenticated: %s (role: %s)",
            response.user.email,
            response.user.role,
            extra={"event": "LOGIN", "user_id": response.user.id},
        )
        return response

    async def register(self, request: RegisterRequest) -> AuthResponse:
        """Create an account and sign it in.

        Raises
        ------
        AccountExists
            If the email (or phone) is already registered.
        NetworkError
            On transport failure, server error, or a malformed payload.
        """
        try:
            payload = await self._api.request_json(
                "POST",
                REGISTER_PATH,
                json=request.to_wire(),
                authenticate=False,
                unwrap=False,
            )
        except ApiError as exc:
            raise self._classify_registration_error(exc) from exc

        response = normalize_auth_payload(payload)
        self._write_through(response)
        self._logger.info(
            "User registered: %s (role: %s)",
            response.user.email,
            response.user.role,
            extra={"event": "REGISTER", "user_id": response.user.id},
        )
        return response

    # ==================================================================
    # Logout / renewal
    # ==================================================================

    async def logout(self) -> None:
        """Best-effort server sign-out, then clear the Credential Store.

        Never raises: the local session ends regardless of what the
        server or the network says.
        """
        pair = CredentialPair.empty()
        signed_in = False
        try:
            pair = self._api.credentials.get()
            signed_in = self._api.credentials.has_credentials
        except StorageError as exc:
            self._logger.error("Could not read credentials during logout: %s", exc)

        if signed_in:
            body = {"refreshToken": pair.refresh_token} if not pair.is_empty else {}
            try:
                await self._api.request_json(
                    "POST",
                    LOGOUT_PATH,
                    json=body,
                    allow_renewal=False,
                )
            except FixRxError as exc:
                self._logger.warning("Server-side logout failed: %s", exc)

        try:
            self._api.credentials.clear()
        except StorageError as exc:
            self._logger.error("Could not clear credentials during logout: %s", exc)

    async def refresh(self) -> CredentialPair:
        """Renew credentials through the pipeline's coalesced path."""
        return await self._api.renew()

    # ==================================================================
    # Current user
    # ==================================================================

    async def get_current_user(self) -> User:
        """``GET /users/me``.

        Raises
        ------
        SessionExpired
            If the session could not be renewed.
        NetworkError
            On transport failure or any other API error.
        """
        try:
            body = await self._api.get(USERS_ME_PATH)
        except ApiError as exc:
            raise NetworkError(extract_message(exc.payload)) from exc
        return normalize_user(member(body, "user"))

    async def update_user(self, changes: Mapping[str, Any]) -> User:
        """``PUT /users/me`` with camelCase *changes*; returns the updated user."""
        try:
            body = await self._api.put(USERS_ME_PATH, json=dict(changes))
        except ApiError as exc:
            if exc.status_code in (400, 422):
                raise InvalidInput(extract_message(exc.payload)) from exc
            raise NetworkError(extract_message(exc.payload)) from exc
        user = normalize_user(member(body, "user"))
        self._logger.info(
            "User updated: %s", user.id, extra={"event": "USER_UPDATED", "user_id": user.id},
        )
        return user

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _write_through(self, response: AuthResponse) -> None:
        pair: Optional[CredentialPair] = response.credentials
        if pair is None:
            # Usable now, but not renewable and gone after restart.
            self._logger.warning(
                "Auth response carried no refresh token; access token held in memory only.",
                extra={"event": "CREDENTIALS_NOT_PERSISTED", "user_id": response.user.id},
            )
            self._api.credentials.hold_access_token(response.access_token)
            return
        self._api.credentials.set(pair)

    def _classify_login_error(self, exc: ApiError, email: str) -> FixRxError:
        if exc.status_code in (400, 401):
            self._logger.warning(
                "Login rejected for %s (HTTP %d).", email, exc.status_code,
                extra={"event": "LOGIN_FAILED", "status": exc.status_code},
            )
            return InvalidCredentials()
        self._logger.warning(
            "Login failed for %s (HTTP %d).", email, exc.status_code,
            extra={"event": "LOGIN_FAILED", "status": exc.status_code},
        )
        return NetworkError()

    def _classify_registration_error(self, exc: ApiError) -> FixRxError:
        message = (extract_message(exc.payload) or "").lower()
        if exc.status_code == 409 or any(m in message for m in _ACCOUNT_EXISTS_MARKERS):
            self._logger.warning(
                "Registration rejected: account exists.",
                extra={"event": "REGISTER_FAILED", "status": exc.status_code},
            )
            return AccountExists()
        self._logger.warning(
            "Registration failed (HTTP %d).", exc.status_code,
            extra={"event": "REGISTER_FAILED", "status": exc.status_code},
        )
        return NetworkError()
