"""
Data Models Package.

Re-exports all Pydantic models for short imports:
    from fixrx.models import User, UserRole, CredentialPair, AuthState
"""

from __future__ import annotations

from fixrx.models.enums import (
    AuthPhase,
    LicenseVerificationStatus,
    ProfileLoadOutcome,
    UserRole,
    UserStatus,
)
from fixrx.models.user import User
from fixrx.models.profile_models import ConsumerProfile, Location, RoleProfile, VendorProfile
from fixrx.models.auth_models import (
    AuthErrorCode,
    AuthResponse,
    AuthState,
    CredentialPair,
    LoginRequest,
    ProfileLoadResult,
    RegisterRequest,
    SessionSnapshot,
)

__all__ = [
    "AuthPhase",
    "LicenseVerificationStatus",
    "ProfileLoadOutcome",
    "UserRole",
    "UserStatus",
    "User",
    "ConsumerProfile",
    "Location",
    "RoleProfile",
    "VendorProfile",
    "AuthErrorCode",
    "AuthResponse",
    "AuthState",
    "CredentialPair",
    "LoginRequest",
    "ProfileLoadResult",
    "RegisterRequest",
    "SessionSnapshot",
]
