"""
User Model.

Canonical authenticated-actor record, independent of the role-specific
profile.  The identity service speaks camelCase JSON; fields are declared
in snake_case with camelCase aliases so both spellings validate.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from fixrx.models.enums import UserRole, UserStatus


class User(BaseModel):
    """Represents the authenticated marketplace actor.

    Only ``id`` is strictly required: the login endpoint of some backend
    builds returns a trimmed user object (``{id, role}``), and the full
    record is fetched later through ``GET /users/me``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str
    email: str = ""
    phone: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    avatar: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    email_verified: bool = False
    phone_verified: bool = False
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        """Display name: ``first last``, falling back to the email local part."""
        name = f"{self.first_name} {self.last_name}".strip()
        if name:
            return name
        return self.email.split("@")[0] if self.email else self.id
