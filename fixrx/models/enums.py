"""
Shared Enumerations for FixRx Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so server payloads like ``"role": "VENDOR"`` validate directly.
"""

from __future__ import annotations
from enum import StrEnum


class UserRole(StrEnum):
    """Marketplace actor roles.

    The role selects which Role Profile (consumer or vendor) is loaded
    after authentication.  ``ADMIN`` has no role profile.
    """

    CONSUMER = "CONSUMER"
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


class UserStatus(StrEnum):
    """Account lifecycle status as reported by the identity service."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"


class LicenseVerificationStatus(StrEnum):
    """Vendor trade-license verification state."""

    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


class AuthPhase(StrEnum):
    """Derived classification of the current session.

    Never stored; always computed by :func:`fixrx.auth.derive_phase`.
    """

    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED_NO_PROFILE = "AUTHENTICATED_NO_PROFILE"
    AUTHENTICATED_WITH_PROFILE = "AUTHENTICATED_WITH_PROFILE"
    ERROR = "ERROR"


class ProfileLoadOutcome(StrEnum):
    """Result classification of a single Profile Loader run."""

    FOUND = "FOUND"
    NOT_FOUND = "NOT_FOUND"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
