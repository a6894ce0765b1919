"""
Authentication Pipeline Models.

Pydantic models and enumerations for the contracts between the identity
layer, the credential store, the state machine and the UI layer.

Every auth operation exchanges one of these typed shapes rather than
raw dicts, so heterogeneous server payloads are normalised exactly once
(see :mod:`fixrx.services.payload_normalizer`).
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from fixrx.models.enums import AuthPhase, ProfileLoadOutcome, UserRole
from fixrx.models.profile_models import ConsumerProfile, RoleProfile, VendorProfile
from fixrx.models.user import User


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of authentication error categories.

    Used by the exception hierarchy in :mod:`fixrx.errors` and by the UI
    layer to decide which feedback to display.
    """

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_EXISTS = "account_exists"
    SESSION_EXPIRED = "session_expired"
    PROFILE_NOT_FOUND = "profile_not_found"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"
    STORAGE_ERROR = "storage_error"
    VALIDATION_ERROR = "validation_error"
    AUTHENTICATION_REQUIRED = "authentication_required"
    API_ERROR = "api_error"


AUTH_ERROR_MESSAGES: dict[AuthErrorCode, str] = {
    AuthErrorCode.INVALID_CREDENTIALS: "Incorrect email or password.",
    AuthErrorCode.ACCOUNT_EXISTS: (
        "This email is already registered. Please try logging in instead."
    ),
    AuthErrorCode.SESSION_EXPIRED: "Your session has expired. Please sign in again.",
    AuthErrorCode.PROFILE_NOT_FOUND: "Profile has not been created yet.",
    AuthErrorCode.NETWORK_ERROR: (
        "Cannot reach the server. Check your internet connection."
    ),
    AuthErrorCode.MALFORMED_RESPONSE: (
        "The server returned an unexpected response. Please try again later."
    ),
    AuthErrorCode.STORAGE_ERROR: "Local storage is unavailable.",
    AuthErrorCode.VALIDATION_ERROR: "Please check the highlighted fields.",
    AuthErrorCode.AUTHENTICATION_REQUIRED: (
        "Authentication required. Please log in before performing this action."
    ),
    AuthErrorCode.API_ERROR: "The request could not be completed.",
}


# ---------------------------------------------------------------------------
# Request models (client-side validated before any network call)
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)

# Matches C0 controls (U+0000–U+001F), DEL (U+007F), and C1 controls (U+0080–U+009F).
_CONTROL_CHAR_RE: re.Pattern[str] = re.compile(r"[\x00-\x1f\x7f-\x9f]")


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


class LoginRequest(BaseModel):
    """Login form payload."""

    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = normalize_email(value)
        if not _EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address.")
        return value


class RegisterRequest(BaseModel):
    """Registration form payload.

    Mirrors the server's password policy (8+ characters with lower case,
    upper case and a digit) so obviously invalid forms never leave the
    device.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str
    password: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: UserRole

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = normalize_email(value)
        if not _EMAIL_RE.match(value):
            raise ValueError("Please enter a valid email address.")
        return value

    @field_validator("password")
    @classmethod
    def _check_password(cls, value: str) -> str:
        if len(value) < 8:
            raise ValueError("Password must be at least 8 characters.")
        if not re.search(r"[a-z]", value) or not re.search(r"[A-Z]", value):
            raise ValueError(
                "Password must contain upper and lower case letters."
            )
        if not re.search(r"\d", value):
            raise ValueError("Password must contain at least one digit.")
        return value

    @field_validator("first_name", "last_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 2:
            raise ValueError("Names must be at least 2 characters.")
        if _CONTROL_CHAR_RE.search(stripped):
            raise ValueError("Names may only contain printable characters.")
        return stripped

    @field_validator("role")
    @classmethod
    def _check_role(cls, value: UserRole) -> UserRole:
        if value == UserRole.ADMIN:
            raise ValueError("Self-registration is limited to consumers and vendors.")
        return value

    def to_wire(self) -> dict[str, object]:
        """camelCase body for ``POST /auth/register``."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class CredentialPair(BaseModel):
    """Access token + refresh token held by the Credential Store.

    Both are absent, or both are present and non-empty.  The tokens are
    opaque: nothing client-side inspects their contents.
    """

    model_config = ConfigDict(frozen=True)

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @model_validator(mode="after")
    def _both_or_neither(self) -> "CredentialPair":
        has_access = bool(self.access_token)
        has_refresh = bool(self.refresh_token)
        if has_access != has_refresh:
            raise ValueError("access_token and refresh_token must be set together")
        if self.access_token == "" or self.refresh_token == "":
            raise ValueError("tokens must be non-empty strings")
        return self

    @classmethod
    def empty(cls) -> "CredentialPair":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.access_token is None

    def __repr__(self) -> str:
        # Keep tokens out of tracebacks and log lines.
        state = "empty" if self.is_empty else "set"
        return f"CredentialPair(<{state}>)"

    __str__ = __repr__


class AuthResponse(BaseModel):
    """Canonical result of login/register after payload normalisation."""

    user: User
    access_token: str
    refresh_token: Optional[str] = None

    @property
    def credentials(self) -> Optional[CredentialPair]:
        """The storable pair, or ``None`` when the server omitted a refresh token."""
        if not self.refresh_token:
            return None
        return CredentialPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token,
        )


# ---------------------------------------------------------------------------
# Session snapshot (persisted, token-free)
# ---------------------------------------------------------------------------

class SessionSnapshot(BaseModel):
    """Durable, token-free subset of the auth state.

    Serialised under the ``SESSION_STORAGE_KEY`` namespace with the wire
    names ``user``, ``consumer``, ``vendor`` and ``isAuthenticated``.
    Transient flags (``is_loading``, ``error``) are never part of it.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user: Optional[User] = None
    consumer: Optional[ConsumerProfile] = None
    vendor: Optional[VendorProfile] = None
    is_authenticated: bool = False

    @property
    def is_blank(self) -> bool:
        """``True`` for the signed-out state, which is never written to disk."""
        return (
            self.user is None
            and self.consumer is None
            and self.vendor is None
            and not self.is_authenticated
        )


# ---------------------------------------------------------------------------
# In-memory auth state
# ---------------------------------------------------------------------------

class AuthState(BaseModel):
    """Immutable snapshot of the auth state machine.

    Instances are replaced wholesale on every transition; listeners
    receive the new instance.  Derived accessors never raise on a missing
    user or role.
    """

    model_config = ConfigDict(frozen=True)

    user: Optional[User] = None
    consumer: Optional[ConsumerProfile] = None
    vendor: Optional[VendorProfile] = None
    is_authenticated: bool = False
    is_loading: bool = False
    error: Optional[str] = None

    @property
    def role(self) -> Optional[UserRole]:
        return self.user.role if self.user is not None else None

    @property
    def is_consumer(self) -> bool:
        return self.role == UserRole.CONSUMER

    @property
    def is_vendor(self) -> bool:
        return self.role == UserRole.VENDOR

    @property
    def profile(self) -> Optional[RoleProfile]:
        """The Role Profile selected by the actor's role, if loaded."""
        if self.is_consumer:
            return self.consumer
        if self.is_vendor:
            return self.vendor
        return None

    @property
    def has_profile(self) -> bool:
        return self.profile is not None

    @property
    def phase(self) -> AuthPhase:
        # Local import keeps the models layer free of a hard dependency
        # on the state container module.
        from fixrx.auth import derive_phase
        return derive_phase(
            is_authenticated=self.is_authenticated,
            user=self.user,
            profile=self.profile,
            is_loading=self.is_loading,
            error=self.error,
        )

    def to_snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            user=self.user,
            consumer=self.consumer,
            vendor=self.vendor,
            is_authenticated=self.is_authenticated,
        )


# ---------------------------------------------------------------------------
# Profile loader result
# ---------------------------------------------------------------------------

class ProfileLoadResult(BaseModel):
    """Outcome of one role-conditional profile fetch."""

    model_config = ConfigDict(frozen=True)

    outcome: ProfileLoadOutcome
    consumer: Optional[ConsumerProfile] = None
    vendor: Optional[VendorProfile] = None
    detail: Optional[str] = None
