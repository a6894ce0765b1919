"""
Auth Payload Normalisation.

The identity endpoints have answered with several token layouts over
time (flat ``token``, ``accessToken``, snake_case, or a nested
``tokens`` object, optionally wrapped in a ``{success, data, message}``
envelope).  This module is the ONE place that knows about those shapes;
everything downstream sees an :class:`AuthResponse` or a
:class:`CredentialPair`.

All functions here are pure: no I/O, no logging, no storage.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from pydantic import ValidationError

from fixrx.errors import MalformedResponse
from fixrx.models.auth_models import AuthResponse, CredentialPair
from fixrx.models.user import User

# First present wins.  Dotted entries descend into nested objects.
ACCESS_TOKEN_PATHS: tuple[str, ...] = (
    "token",
    "accessToken",
    "access_token",
    "tokens.accessToken",
    "tokens.access_token",
)
REFRESH_TOKEN_PATHS: tuple[str, ...] = (
    "refreshToken",
    "refresh_token",
    "tokens.refreshToken",
    "tokens.refresh_token",
)


def unwrap_envelope(payload: Any) -> Any:
    """Return ``payload["data"]`` when *payload* is an API envelope.

    A mapping whose ``data`` member is itself present is treated as an
    envelope; anything else is returned untouched.
    """
    if isinstance(payload, Mapping) and payload.get("data") is not None:
        return payload["data"]
    return payload


def pick_token(body: Mapping[str, Any], paths: Sequence[str]) -> Optional[str]:
    """Return the first non-empty string found along *paths*."""
    for path in paths:
        node: Any = body
        for part in path.split("."):
            if not isinstance(node, Mapping):
                node = None
                break
            node = node.get(part)
        if isinstance(node, str) and node:
            return node
    return None


def normalize_user(raw: Any) -> User:
    """Validate a wire user object.

    Raises
    ------
    MalformedResponse
        If *raw* is not an object or fails validation.
    """
    if not isinstance(raw, Mapping):
        raise MalformedResponse()
    try:
        return User.model_validate(raw)
    except ValidationError as exc:
        raise MalformedResponse() from exc


def normalize_auth_payload(payload: Any) -> AuthResponse:
    """Turn a login/register response body into an :class:`AuthResponse`.

    Raises
    ------
    MalformedResponse
        If the user, its role, or the access token is missing.
    """
    body = unwrap_envelope(payload)
    if not isinstance(body, Mapping):
        raise MalformedResponse()

    user = normalize_user(body.get("user"))
    if user.role is None:
        raise MalformedResponse()

    access_token = pick_token(body, ACCESS_TOKEN_PATHS)
    if access_token is None:
        raise MalformedResponse()

    return AuthResponse(
        user=user,
        access_token=access_token,
        refresh_token=pick_token(body, REFRESH_TOKEN_PATHS),
    )


def normalize_credentials(
    payload: Any,
    previous_refresh_token: Optional[str] = None,
) -> CredentialPair:
    """Turn a ``/auth/refresh`` response body into a :class:`CredentialPair`.

    Servers that do not rotate the refresh token may omit it; the
    *previous_refresh_token* is then carried forward.

    Raises
    ------
    MalformedResponse
        If no access token, or no refresh token at all, can be found.
    """
    body = unwrap_envelope(payload)
    if not isinstance(body, Mapping):
        raise MalformedResponse()

    access_token = pick_token(body, ACCESS_TOKEN_PATHS)
    refresh_token = pick_token(body, REFRESH_TOKEN_PATHS) or previous_refresh_token
    if access_token is None or not refresh_token:
        raise MalformedResponse()
    return CredentialPair(access_token=access_token, refresh_token=refresh_token)


def extract_message(payload: Any) -> Optional[str]:
    """Server-supplied human message from an error body, if any."""
    if isinstance(payload, Mapping):
        for field in ("message", "error", "detail"):
            value = payload.get(field)
            if isinstance(value, str) and value:
                return value
    return None


def extract_errors(payload: Any) -> list[str]:
    """Field-level error strings from an error body."""
    if not isinstance(payload, Mapping):
        return []
    errors = payload.get("errors")
    if isinstance(errors, list):
        out: list[str] = []
        for item in errors:
            if isinstance(item, str):
                out.append(item)
            elif isinstance(item, Mapping):
                msg = item.get("msg") or item.get("message")
                if isinstance(msg, str):
                    out.append(msg)
        return out
    return []
