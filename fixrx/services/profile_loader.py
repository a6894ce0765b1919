"""
Role Profile Loader.

Fetches the Role Profile that matches the actor's role:

============  ========================
Role          Endpoint
============  ========================
CONSUMER      ``GET /consumers/profile``
VENDOR        ``GET /vendors/profile``
ADMIN / none  no fetch (``SKIPPED``)
============  ========================

``fetch`` raises ``ProfileNotFound`` on a 404 (onboarding not finished);
``load`` swallows it as ``NOT_FOUND`` so it never becomes a user-visible
error.  Any other failure is ``FAILED`` so the caller can keep whatever
profile it already holds.  ``SessionExpired`` is the one error that propagates.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from fixrx.errors import ApiError, InvalidInput, MalformedResponse, NetworkError, ProfileNotFound
from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import ProfileLoadResult
from fixrx.models.enums import ProfileLoadOutcome, UserRole
from fixrx.models.profile_models import ConsumerProfile, VendorProfile
from fixrx.models.user import User
from fixrx.services.api_client import ApiClient
from fixrx.services.identity_service import member
from fixrx.services.payload_normalizer import extract_message

CONSUMER_PROFILE_PATH: str = "/consumers/profile"
VENDOR_PROFILE_PATH: str = "/vendors/profile"


class ProfileLoader:
    """Role-conditional profile fetch and update.

    Parameters
    ----------
    api:
        The shared ``ApiClient`` pipeline.
    logger:
        A ``StructuredLogger`` instance.
    """

    def __init__(self, api: ApiClient, logger: StructuredLogger) -> None:
        self._api: ApiClient = api
        self._logger: StructuredLogger = logger

    async def load(self, user: Optional[User]) -> ProfileLoadResult:
        """Fetch the profile for *user*'s role and classify the outcome.

        Raises
        ------
        SessionExpired
            If the pipeline could not keep the session alive.
        """
        try:
            profile = await self.fetch(user)
        except ProfileNotFound:
            return ProfileLoadResult(outcome=ProfileLoadOutcome.NOT_FOUND)
        except ApiError as exc:
            self._logger.warning(
                "Profile fetch failed (HTTP %d): %s", exc.status_code, exc.message,
            )
            return ProfileLoadResult(outcome=ProfileLoadOutcome.FAILED, detail=exc.message)
        except NetworkError as exc:
            self._logger.warning("Profile fetch failed: %s", exc.message)
            return ProfileLoadResult(outcome=ProfileLoadOutcome.FAILED, detail=exc.message)

        if profile is None:
            return ProfileLoadResult(outcome=ProfileLoadOutcome.SKIPPED)
        if isinstance(profile, ConsumerProfile):
            return ProfileLoadResult(outcome=ProfileLoadOutcome.FOUND, consumer=profile)
        return ProfileLoadResult(outcome=ProfileLoadOutcome.FOUND, vendor=profile)

    async def fetch(self, user: Optional[User]) -> Optional[Union[ConsumerProfile, VendorProfile]]:
        """Return *user*'s role profile, or ``None`` for roles without one.

        Raises
        ------
        ProfileNotFound
            If the endpoint answers 404.
        MalformedResponse
            If the profile payload does not validate.
        ApiError, NetworkError, SessionExpired
            Any other failure, unchanged.
        """
        role = user.role if user is not None else None
        if role == UserRole.CONSUMER:
            path, field = CONSUMER_PROFILE_PATH, "consumer"
        elif role == UserRole.VENDOR:
            path, field = VENDOR_PROFILE_PATH, "vendor"
        else:
            return None

        try:
            body = await self._api.get(path)
        except ApiError as exc:
            if exc.status_code == 404:
                self._logger.info("No %s profile yet for user %s.", field, user.id)
                raise ProfileNotFound() from exc
            raise

        try:
            profile = self._parse(field, member(body, field))
        except ValidationError as exc:
            self._logger.warning("Profile payload for %s is malformed: %s", field, exc)
            raise MalformedResponse("Malformed profile payload.") from exc

        self._logger.debug("Loaded %s profile %s.", field, profile.id)
        return profile

    async def update_consumer_profile(self, changes: Mapping[str, Any]) -> ConsumerProfile:
        """``PUT /consumers/profile``; returns the stored profile."""
        body = await self._put(CONSUMER_PROFILE_PATH, changes)
        try:
            return ConsumerProfile.model_validate(member(body, "consumer"))
        except ValidationError as exc:
            raise NetworkError("The server returned an invalid consumer profile.") from exc

    async def update_vendor_profile(self, changes: Mapping[str, Any]) -> VendorProfile:
        """``PUT /vendors/profile``; returns the stored profile."""
        body = await self._put(VENDOR_PROFILE_PATH, changes)
        try:
            return VendorProfile.model_validate(member(body, "vendor"))
        except ValidationError as exc:
            raise NetworkError("The server returned an invalid vendor profile.") from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _put(self, path: str, changes: Mapping[str, Any]) -> Any:
        try:
            return await self._api.put(path, json=dict(changes))
        except ApiError as exc:
            if exc.status_code in (400, 422):
                raise InvalidInput(extract_message(exc.payload)) from exc
            raise NetworkError(extract_message(exc.payload)) from exc

    @staticmethod
    def _parse(field: str, raw: Any) -> Union[ConsumerProfile, VendorProfile]:
        if field == "consumer":
            return ConsumerProfile.model_validate(raw)
        return VendorProfile.model_validate(raw)
