"""
Session Core Exception Hierarchy.

Every failure that crosses a component boundary is one of these types.
Each carries a machine-readable :class:`AuthErrorCode` for the UI layer
and a human-readable message suitable for direct display.

Propagation rules:

- ``InvalidCredentials`` / ``AccountExists`` / ``NetworkError`` surface to
  the initiating call site *and* are recorded in the state machine's
  ``error`` field.
- ``SessionExpired`` always forces the logout side effect first.
- ``ProfileNotFound`` is swallowed at the Profile Loader boundary.
- ``StorageError`` is fatal to the attempted operation and never retried.
"""

from __future__ import annotations

from typing import Any, Optional

from fixrx.models.auth_models import AUTH_ERROR_MESSAGES, AuthErrorCode


class FixRxError(RuntimeError):
    """Base class for all session-core errors."""

    code: AuthErrorCode = AuthErrorCode.API_ERROR

    def __init__(self, message: Optional[str] = None) -> None:
        self.message: str = message or AUTH_ERROR_MESSAGES[self.code]
        super().__init__(self.message)


class InvalidCredentials(FixRxError):
    """Login rejected by the identity service."""

    code = AuthErrorCode.INVALID_CREDENTIALS


class AccountExists(FixRxError):
    """Registration rejected because the email or phone is already taken."""

    code = AuthErrorCode.ACCOUNT_EXISTS


class SessionExpired(FixRxError):
    """Credentials are gone or renewal failed; the actor must sign in again."""

    code = AuthErrorCode.SESSION_EXPIRED


class ProfileNotFound(FixRxError):
    """The role profile endpoint answered 404 (onboarding not finished)."""

    code = AuthErrorCode.PROFILE_NOT_FOUND


class NetworkError(FixRxError):
    """Transport failure, timeout, or an unexpected server-side failure."""

    code = AuthErrorCode.NETWORK_ERROR


class MalformedResponse(NetworkError):
    """The server answered 2xx but the payload is missing required fields."""

    code = AuthErrorCode.MALFORMED_RESPONSE


class StorageError(FixRxError):
    """Durable client storage is unavailable or rejected a write."""

    code = AuthErrorCode.STORAGE_ERROR


class InvalidInput(FixRxError):
    """Client-side validation failed before any network call was made."""

    code = AuthErrorCode.VALIDATION_ERROR


class AuthenticationRequired(FixRxError):
    """A guarded operation was invoked without an authenticated actor."""

    code = AuthErrorCode.AUTHENTICATION_REQUIRED


class ApiError(FixRxError):
    """Non-2xx response from a JSON endpoint.

    Raised by the API client's JSON helpers; the identity layer translates
    it into the specific types above.

    Attributes
    ----------
    status_code:
        HTTP status of the final (possibly replayed) response.
    errors:
        Field-level error strings when the server supplied them.
    payload:
        The decoded response body, or ``None`` when it was not JSON.
    """

    code = AuthErrorCode.API_ERROR

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        errors: Optional[list[str]] = None,
        payload: Any = None,
    ) -> None:
        self.status_code: int = status_code
        self.errors: list[str] = errors or []
        self.payload: Any = payload
        super().__init__(message or f"HTTP {status_code}")
