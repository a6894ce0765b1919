"""
Role Profile Models.

At most one of these is populated for the current actor, selected by
``User.role``.  Their presence is what the navigation layer reads as
"onboarding finished".
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fixrx.models.enums import LicenseVerificationStatus

_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


class Location(BaseModel):
    """Geocoded consumer location."""

    model_config = _WIRE_CONFIG

    latitude: float
    longitude: float
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""


class ConsumerProfile(BaseModel):
    """Consumer-side onboarding record."""

    model_config = _WIRE_CONFIG

    id: str
    user_id: str
    location: Optional[Location] = None
    search_radius: float = 25.0
    preferences: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VendorProfile(BaseModel):
    """Vendor business metadata and rating aggregates."""

    model_config = _WIRE_CONFIG

    id: str
    user_id: str
    business_name: str = ""
    business_description: Optional[str] = None
    business_phone: Optional[str] = None
    business_email: Optional[str] = None
    website: Optional[str] = None
    service_categories: list[str] = Field(default_factory=list)
    service_tags: list[str] = Field(default_factory=list)
    hourly_rate: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "US"
    license_number: Optional[str] = None
    license_verification: LicenseVerificationStatus = LicenseVerificationStatus.PENDING
    total_ratings: int = 0
    average_rating: float = 0.0
    total_jobs: int = 0
    portfolio_images: list[str] = Field(default_factory=list)
    certifications: list[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


RoleProfile = Union[ConsumerProfile, VendorProfile]
