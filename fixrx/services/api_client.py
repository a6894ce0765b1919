"""
Authenticated HTTP Client (Interception Pipeline).

Every outgoing call to the FixRx API goes through :class:`ApiClient`,
which:

1. attaches ``Authorization: Bearer <access>`` when credentials are stored;
2. on a 401 for a first attempt, renews the credential pair through
   ``POST /auth/refresh`` and replays the request exactly once;
3. coalesces concurrent renewals: however many requests hit 401 at the
   same time, at most one refresh call is in flight and every waiter
   receives its outcome;
4. evicts the session (clears the Credential Store, notifies listeners,
   raises :class:`SessionExpired`) when renewal is impossible or rejected.

Renewal flow::

    request --401--> stored token differs from the one sent?
                        yes -> replay with the stored token
                        no  -> renew() (shared Task) -> replay once
                                  | error status / bad payload
                                  v
                            clear store -> listeners -> SessionExpired

The identity endpoints themselves are never renewed.  Transport errors
and timeouts surface as :class:`NetworkError` and leave the stored
credentials untouched.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional

import httpx

from fixrx.errors import ApiError, MalformedResponse, NetworkError, SessionExpired
from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import CredentialPair
from fixrx.services.credential_store import CredentialStore
from fixrx.services.payload_normalizer import (
    extract_errors,
    extract_message,
    normalize_credentials,
    unwrap_envelope,
)

LOGIN_PATH: str = "/auth/login"
REGISTER_PATH: str = "/auth/register"
REFRESH_PATH: str = "/auth/refresh"
LOGOUT_PATH: str = "/auth/logout"

# Requests to these paths are never renewed on 401.
AUTH_PATHS: frozenset[str] = frozenset({LOGIN_PATH, REGISTER_PATH, REFRESH_PATH, LOGOUT_PATH})

SessionExpiredListener = Callable[[], None]


@dataclass(frozen=True)
class RequestAttempt:
    """One send of a request, carrying its own retry state.

    Attributes
    ----------
    request:
        The fully built ``httpx.Request``.
    already_retried:
        ``True`` for a replay; replays are never renewed again.
    sent_with:
        The access token attached to this attempt (``None`` if anonymous).
    """

    request: httpx.Request
    already_retried: bool = False
    sent_with: Optional[str] = None


class ApiClient:
    """Async JSON client with credential injection and coalesced renewal.

    Parameters
    ----------
    credentials:
        The ``CredentialStore`` read on every request and written on renewal.
    logger:
        A ``StructuredLogger`` instance.  Tokens are never logged.
    base_url:
        API root, e.g. ``https://api.fixrx.example/api/v1``.
    timeout:
        Transport timeout in seconds; expiry raises ``NetworkError``.
    transport:
        Optional ``httpx`` transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        credentials: CredentialStore,
        logger: StructuredLogger,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._credentials: CredentialStore = credentials
        self._logger: StructuredLogger = logger
        self._http: httpx.AsyncClient = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        self._refresh_task: Optional[asyncio.Task[CredentialPair]] = None
        self._expired_listeners: list[SessionExpiredListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def credentials(self) -> CredentialStore:
        return self._credentials

    def on_session_expired(self, listener: SessionExpiredListener) -> Callable[[], None]:
        """Register *listener* for forced evictions.  Returns an unsubscribe callable."""
        self._expired_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._expired_listeners:
                self._expired_listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Raw pipeline
    # ------------------------------------------------------------------

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        authenticate: bool = True,
        allow_renewal: bool = True,
    ) -> httpx.Response:
        """Send one request through the pipeline and return the final response.

        Parameters
        ----------
        authenticate:
            Attach the stored access token, if any.
        allow_renewal:
            Permit the renew-and-replay path on 401.  Always off for the
            identity endpoints.

        Raises
        ------
        NetworkError
            On transport failure or timeout.
        SessionExpired
            When a 401 cannot be repaired.
        """
        token = self._credentials.access_token() if authenticate else None
        attempt = RequestAttempt(
            request=self._build_request(method, path, json=json, params=params, token=token),
            sent_with=token,
        )
        response = await self._dispatch(attempt)

        renewable = allow_renewal and authenticate and path not in AUTH_PATHS
        if response.status_code != 401 or not renewable or attempt.already_retried:
            return response
        await response.aclose()
        return await self._recover(attempt)

    async def renew(self) -> CredentialPair:
        """Renew the credential pair, joining any renewal already in flight.

        Raises
        ------
        SessionExpired
            If no refresh token is stored or the server rejects it.
        NetworkError
            If the refresh call could not be delivered.
        """
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._perform_refresh())
            task.add_done_callback(self._forget_refresh_task)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    async def request_json(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        authenticate: bool = True,
        allow_renewal: bool = True,
        unwrap: bool = True,
    ) -> Any:
        """Send a request and decode the JSON body.

        Returns the ``data`` member of a ``{success, data, message}``
        envelope when *unwrap* is set, else the whole decoded body.

        Raises
        ------
        ApiError
            For any non-2xx final response.
        MalformedResponse
            For a 2xx response whose body is not JSON.
        """
        response = await self.send(
            method,
            path,
            json=json,
            params=params,
            authenticate=authenticate,
            allow_renewal=allow_renewal,
        )
        payload = self._decode(response)
        if not response.is_success:
            body = None if payload is _UNDECODABLE else payload
            raise ApiError(
                response.status_code,
                extract_message(body),
                extract_errors(body),
                body,
            )
        if payload is _UNDECODABLE:
            raise MalformedResponse()
        return unwrap_envelope(payload) if unwrap else payload

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return await self.request_json("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request_json("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request_json("PUT", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request_json("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request_json("DELETE", path)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _build_request(
        self,
        method: str,
        path: str,
        *,
        json: Any,
        params: Optional[Mapping[str, Any]],
        token: Optional[str],
    ) -> httpx.Request:
        headers = {"Authorization": f"Bearer {token}"} if token else None
        return self._http.build_request(method, path, json=json, params=params, headers=headers)

    async def _dispatch(self, attempt: RequestAttempt) -> httpx.Response:
        request = attempt.request
        try:
            response = await self._http.send(request)
        except httpx.TimeoutException as exc:
            self._logger.warning("%s %s timed out.", request.method, request.url.path)
            raise NetworkError() from exc
        except httpx.TransportError as exc:
            self._logger.warning(
                "%s %s failed: %s", request.method, request.url.path, type(exc).__name__,
            )
            raise NetworkError() from exc
        self._logger.debug(
            "%s %s -> %d%s",
            request.method,
            request.url.path,
            response.status_code,
            " (replay)" if attempt.already_retried else "",
        )
        return response

    async def _recover(self, attempt: RequestAttempt) -> httpx.Response:
        """Repair a first-attempt 401 by replaying with a usable token."""
        current = self._credentials.get()
        if current.refresh_token is None:
            self._expire("401 with no refresh token stored")
            raise SessionExpired()

        if current.access_token != attempt.sent_with:
            # Another request already renewed the pair.
            self._logger.debug("Replaying with the already renewed access token.")
            return await self._replay(attempt, current.access_token)

        pair = await self.renew()
        return await self._replay(attempt, pair.access_token)

    async def _replay(self, attempt: RequestAttempt, token: Optional[str]) -> httpx.Response:
        original = attempt.request
        headers = original.headers.copy()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        request = httpx.Request(
            original.method,
            original.url,
            headers=headers,
            content=original.content,
            extensions=original.extensions,
        )
        retry = replace(attempt, request=request, already_retried=True, sent_with=token)
        return await self._dispatch(retry)

    async def _perform_refresh(self) -> CredentialPair:
        refresh_token = self._credentials.refresh_token()
        if not refresh_token:
            self._expire("no refresh token stored")
            raise SessionExpired()

        request = self._build_request(
            "POST", REFRESH_PATH, json={"refreshToken": refresh_token}, params=None, token=None,
        )
        response = await self._dispatch(RequestAttempt(request=request))

        if not response.is_success:
            self._expire(f"refresh rejected with HTTP {response.status_code}")
            raise SessionExpired()

        payload = self._decode(response)
        try:
            pair = normalize_credentials(payload, previous_refresh_token=refresh_token)
        except MalformedResponse as exc:
            self._expire("refresh response carried no usable credentials")
            raise SessionExpired() from exc

        self._credentials.set(pair)
        self._logger.info("Access token refreshed.", extra={"event": "TOKEN_REFRESHED"})
        return pair

    def _forget_refresh_task(self, task: asyncio.Task[CredentialPair]) -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    def _expire(self, reason: str) -> None:
        """Clear credentials and notify listeners of a forced eviction."""
        self._credentials.clear()
        self._logger.warning(
            "Session expired: %s.", reason, extra={"event": "SESSION_EXPIRED"},
        )
        for listener in list(self._expired_listeners):
            listener()

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return _UNDECODABLE


# Sentinel for a body that is present but not JSON.
_UNDECODABLE: Any = object()
