from __future__ import annotations

import json

import httpx
import pytest

from api_fakes import (
    FailingKeyValueStore,
    MockApi,
    auth_payload,
    bearer,
    consumer_profile,
    refresh_payload,
    vendor_profile,
)
from fixrx.auth import SessionManager
from fixrx.errors import (
    AuthenticationRequired,
    InvalidCredentials,
    InvalidInput,
    SessionExpired,
    StorageError,
)
from fixrx.models.auth_models import AuthState, CredentialPair, SessionSnapshot
from fixrx.models.enums import AuthPhase, UserRole
from fixrx.models.profile_models import ConsumerProfile
from fixrx.models.user import User
from fixrx.navigation import Route, resolve_route
from fixrx.services import ServiceContainer
from fixrx.services.key_value_store import InMemoryKeyValueStore

SESSION_KEY = "fixrx-auth-store"
TOKEN_KEY = "fixrx_tokens"


def _store_snapshot(kv: InMemoryKeyValueStore, **fields: object) -> None:
    snapshot = SessionSnapshot(
        user=User(id="u1", email="a@b.com", role=UserRole.CONSUMER),
        consumer=ConsumerProfile(id="c1", user_id="u1"),
        is_authenticated=True,
    ).model_copy(update=fields)
    kv.set(SESSION_KEY, snapshot.model_dump_json(by_alias=True))


def _current_user_route(mock_api: MockApi, role: str = "CONSUMER") -> None:
    mock_api.route(
        "GET", "/users/me",
        httpx.Response(200, json={"success": True, "data": {"user": {
            "id": "u1", "email": "a@b.com", "role": role, "firstName": "Ana",
        }}}),
    )


# ---------------------------------------------------------------------------
# Login / registration
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_login_moves_through_authenticating_to_profile(
    services: ServiceContainer, session: SessionManager, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    phases: list[AuthPhase] = [session.snapshot.phase]
    session.subscribe(lambda state: phases.append(state.phase))

    state = await services["auth_service"].login("a@b.com", "secret123")

    distinct = [p for i, p in enumerate(phases) if i == 0 or phases[i - 1] != p]
    assert distinct == [
        AuthPhase.ANONYMOUS,
        AuthPhase.AUTHENTICATING,
        AuthPhase.AUTHENTICATED_WITH_PROFILE,
    ]
    assert state.user is not None and state.user.id == "u1"
    assert state.consumer is not None and state.consumer.search_radius == 10
    assert state.error is None
    assert resolve_route(state) == Route.CONSUMER_DASHBOARD
    assert services["credential_store"].get() == CredentialPair(access_token="AT1", refresh_token="RT1")
    profile_call = mock_api.calls("GET", "/consumers/profile")[0]
    assert profile_call.headers["Authorization"] == "Bearer AT1"


@pytest.mark.asyncio
async def test_login_persists_token_free_snapshot(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))

    await services["auth_service"].login("a@b.com", "secret123")

    raw = kv.get(SESSION_KEY)
    assert raw is not None
    stored = json.loads(raw)
    assert stored["isAuthenticated"] is True
    assert stored["user"]["id"] == "u1"
    assert stored["consumer"]["id"] == "c1"
    assert "AT1" not in raw and "RT1" not in raw
    assert "isLoading" not in stored and "error" not in stored


@pytest.mark.asyncio
async def test_vendor_without_profile_goes_to_profile_setup(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(user_id="u2", role="VENDOR")))
    mock_api.route("GET", "/vendors/profile", httpx.Response(404, json={"success": False, "message": "Vendor profile not found"}))

    state = await services["auth_service"].login("a@b.com", "secret123")

    assert state.phase == AuthPhase.AUTHENTICATED_NO_PROFILE
    assert state.vendor is None
    assert state.error is None
    assert resolve_route(state) == Route.VENDOR_PROFILE_SETUP


@pytest.mark.asyncio
async def test_admin_skips_profile_fetch(services: ServiceContainer, mock_api: MockApi) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(role="ADMIN")))

    state = await services["auth_service"].login("a@b.com", "secret123")

    assert state.phase == AuthPhase.AUTHENTICATED_NO_PROFILE
    assert resolve_route(state) == Route.ADMIN_DASHBOARD
    assert mock_api.calls("GET", "/consumers/profile") == []
    assert mock_api.calls("GET", "/vendors/profile") == []


@pytest.mark.asyncio
async def test_rejected_login_records_error_phase(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(401, json={"success": False, "message": "Invalid email or password"}))

    with pytest.raises(InvalidCredentials):
        await services["auth_service"].login("a@b.com", "wrong")

    state = services["auth_service"].state
    assert state.phase == AuthPhase.ERROR
    assert state.error == InvalidCredentials().message
    assert state.is_loading is False
    assert resolve_route(state) == Route.WELCOME
    assert kv.dump() == {}


@pytest.mark.asyncio
async def test_clear_error_returns_to_anonymous(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(401))
    with pytest.raises(InvalidCredentials):
        await services["auth_service"].login("a@b.com", "wrong")

    state = services["auth_service"].clear_error()

    assert state.error is None
    assert state.phase == AuthPhase.ANONYMOUS


@pytest.mark.asyncio
async def test_register_signs_in_new_consumer(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route(
        "POST", "/auth/register",
        httpx.Response(201, json={"success": True, "data": {
            "user": {"id": "u5", "email": "new@example.com", "role": "CONSUMER"},
            "tokens": {"accessToken": "AT5", "refreshToken": "RT5"},
        }}),
    )

    state = await services["auth_service"].register(
        email="new@example.com",
        password="Passw0rd!",
        first_name="Ana",
        last_name="Lopez",
        role=UserRole.CONSUMER,
    )

    assert state.phase == AuthPhase.AUTHENTICATED_NO_PROFILE
    assert resolve_route(state) == Route.CONSUMER_PROFILE_SETUP


@pytest.mark.asyncio
async def test_register_with_weak_password_fails_before_network(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    with pytest.raises(InvalidInput) as info:
        await services["auth_service"].register(
            email="new@example.com",
            password="password",
            first_name="Ana",
            last_name="Lopez",
            role=UserRole.VENDOR,
        )

    assert mock_api.requests == []
    assert services["auth_service"].state.error == info.value.message


# ---------------------------------------------------------------------------
# Logout / eviction
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_login_then_logout_leaves_storage_unchanged(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    kv.set("unrelated", "keep-me")
    before = kv.dump()
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    mock_api.route("POST", "/auth/logout", httpx.Response(200, json={"success": True}))

    await services["auth_service"].login("a@b.com", "secret123")
    assert set(kv.dump()) == {"unrelated", TOKEN_KEY, SESSION_KEY}
    state = await services["auth_service"].logout()

    assert kv.dump() == before
    assert state == AuthState()
    assert resolve_route(state) == Route.WELCOME


@pytest.mark.asyncio
async def test_logout_succeeds_even_when_server_fails(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(role="ADMIN")))
    mock_api.route("POST", "/auth/logout", httpx.Response(502))

    await services["auth_service"].login("a@b.com", "secret123")
    state = await services["auth_service"].logout()

    assert state.phase == AuthPhase.ANONYMOUS
    assert kv.dump() == {}


@pytest.mark.asyncio
async def test_unrecoverable_401_evicts_the_actor(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    await services["auth_service"].login("a@b.com", "secret123")

    mock_api.route("GET", "/users/me", httpx.Response(401, json={"message": "Token expired"}))
    mock_api.route("POST", "/auth/refresh", httpx.Response(401, json={"message": "Invalid refresh token"}))

    with pytest.raises(SessionExpired):
        await services["auth_service"].load_user()

    state = services["auth_service"].state
    assert state.user is None
    assert state.is_authenticated is False
    assert state.error == SessionExpired().message
    assert resolve_route(state) == Route.WELCOME
    assert kv.dump() == {}


@pytest.mark.asyncio
async def test_business_call_losing_session_evicts_through_listener(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(role="ADMIN")))
    await services["auth_service"].login("a@b.com", "secret123")
    mock_api.route("GET", "/jobs", httpx.Response(401))
    mock_api.route("POST", "/auth/refresh", httpx.Response(403))

    with pytest.raises(SessionExpired):
        await services["api_client"].get("/jobs")

    assert services["auth_service"].state.is_authenticated is False
    assert kv.dump() == {}


@pytest.mark.asyncio
async def test_renewal_keeps_actor_signed_in(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    await services["auth_service"].login("a@b.com", "secret123")

    def users_me(request: httpx.Request) -> httpx.Response:
        if request.headers.get("Authorization") != "Bearer AT2":
            return httpx.Response(401)
        return httpx.Response(200, json={"success": True, "data": {"user": {
            "id": "u1", "email": "a@b.com", "role": "CONSUMER",
        }}})

    mock_api.route("GET", "/users/me", users_me)
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    mock_api.route("POST", "/auth/refresh", httpx.Response(200, json=refresh_payload()))

    state = await services["auth_service"].load_user()

    assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE
    assert services["credential_store"].get() == CredentialPair(access_token="AT2", refresh_token="RT2")


# ---------------------------------------------------------------------------
# Hydration / restore
# ---------------------------------------------------------------------------


def test_snapshot_without_credentials_is_discarded(
    services: ServiceContainer, kv: InMemoryKeyValueStore
) -> None:
    _store_snapshot(kv)

    state = services["auth_service"].hydrate()

    assert state.phase == AuthPhase.ANONYMOUS
    assert state.user is None
    assert kv.get(SESSION_KEY) is None


def test_trusted_snapshot_hydrates_as_authenticating(
    services: ServiceContainer, kv: InMemoryKeyValueStore
) -> None:
    services["credential_store"].set(CredentialPair(access_token="AT1", refresh_token="RT1"))
    _store_snapshot(kv)

    state = services["auth_service"].hydrate()

    assert state.phase == AuthPhase.AUTHENTICATING
    assert resolve_route(state) == Route.SPLASH
    assert state.user is not None and state.user.id == "u1"
    assert state.consumer is not None


def test_unreadable_snapshot_is_removed(
    services: ServiceContainer, kv: InMemoryKeyValueStore
) -> None:
    kv.set(SESSION_KEY, "{broken")

    state = services["auth_service"].hydrate()

    assert state == AuthState()
    assert kv.get(SESSION_KEY) is None


@pytest.mark.asyncio
async def test_restore_session_revalidates_with_server(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    services["credential_store"].set(CredentialPair(access_token="AT1", refresh_token="RT1"))
    _store_snapshot(kv)
    _current_user_route(mock_api)
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))

    state = await services["auth_service"].restore_session()

    assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE
    assert state.user is not None and state.user.first_name == "Ana"


@pytest.mark.asyncio
async def test_restore_session_offline_keeps_hydrated_actor(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    services["credential_store"].set(CredentialPair(access_token="AT1", refresh_token="RT1"))
    _store_snapshot(kv)

    def offline(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    mock_api.route("GET", "/users/me", offline)

    state = await services["auth_service"].restore_session()

    assert state.is_authenticated is True
    assert state.user is not None and state.user.id == "u1"
    assert state.is_loading is False
    assert state.error is not None
    assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE
    assert services["credential_store"].has_credentials


@pytest.mark.asyncio
async def test_load_user_without_credentials_forces_anonymous(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    state = await services["auth_service"].load_user()

    assert state.phase == AuthPhase.ANONYMOUS
    assert mock_api.requests == []


# ---------------------------------------------------------------------------
# Profile reload and updates
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failed_profile_reload_keeps_existing_profile(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    await services["auth_service"].login("a@b.com", "secret123")
    mock_api.route("GET", "/consumers/profile", httpx.Response(500, json={"message": "db down"}))

    state = await services["auth_service"].load_profile()

    assert state.consumer is not None and state.consumer.id == "c1"
    assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE


@pytest.mark.asyncio
async def test_update_vendor_profile_replaces_state_profile(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(user_id="u2", role="VENDOR")))
    mock_api.route("GET", "/vendors/profile", httpx.Response(404))
    await services["auth_service"].login("a@b.com", "secret123")
    mock_api.route("PUT", "/vendors/profile", httpx.Response(200, json=vendor_profile()))

    profile = await services["auth_service"].update_vendor_profile({"businessName": "Acme Plumbing"})

    state = services["auth_service"].state
    assert profile.business_name == "Acme Plumbing"
    assert state.vendor == profile
    assert resolve_route(state) == Route.VENDOR_DASHBOARD


@pytest.mark.asyncio
async def test_role_guard_blocks_other_roles_and_anonymous(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    with pytest.raises(AuthenticationRequired):
        await services["auth_service"].update_user({"firstName": "Zoe"})

    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(user_id="u2", role="VENDOR")))
    mock_api.route("GET", "/vendors/profile", httpx.Response(200, json=vendor_profile()))
    await services["auth_service"].login("a@b.com", "secret123")

    with pytest.raises(AuthenticationRequired):
        await services["auth_service"].update_consumer_profile({"searchRadius": 5})

    assert mock_api.calls("PUT", "/consumers/profile") == []


@pytest.mark.asyncio
async def test_update_user_rejection_is_recorded(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(role="ADMIN")))
    await services["auth_service"].login("a@b.com", "secret123")
    mock_api.route("PUT", "/users/me", httpx.Response(422, json={"success": False, "message": "Invalid phone number"}))

    with pytest.raises(InvalidInput):
        await services["auth_service"].update_user({"phone": "x"})

    state = services["auth_service"].state
    assert state.error == "Invalid phone number"
    assert state.is_authenticated is True


# ---------------------------------------------------------------------------
# Tokens without renewal / storage failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_login_without_refresh_token_keeps_actor_signed_in(
    services: ServiceContainer, kv: InMemoryKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(refresh_token=None)))

    def profile(request: httpx.Request) -> httpx.Response:
        if bearer(request) != "AT1":
            return httpx.Response(401)
        return httpx.Response(200, json=consumer_profile())

    mock_api.route("GET", "/consumers/profile", profile)

    state = await services["auth_service"].login("a@b.com", "secret123")

    assert [bearer(r) for r in mock_api.calls("GET", "/consumers/profile")] == ["AT1"]
    assert state.phase == AuthPhase.AUTHENTICATED_WITH_PROFILE
    assert state.error is None
    assert TOKEN_KEY not in kv.dump()


@pytest.mark.asyncio
async def test_held_access_token_rejected_later_expires_without_refresh(
    services: ServiceContainer, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload(role="ADMIN", refresh_token=None)))
    await services["auth_service"].login("a@b.com", "secret123")
    mock_api.route("GET", "/users/me", httpx.Response(401))

    with pytest.raises(SessionExpired):
        await services["auth_service"].load_user()

    assert mock_api.calls("POST", "/auth/refresh") == []
    assert services["auth_service"].state.is_authenticated is False
    assert services["credential_store"].access_token() is None


@pytest.mark.asyncio
async def test_credential_write_failure_aborts_login(
    fragile_services: ServiceContainer, failing_kv: FailingKeyValueStore, mock_api: MockApi
) -> None:
    failing_kv.fail("set", TOKEN_KEY)
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))

    with pytest.raises(StorageError):
        await fragile_services["auth_service"].login("a@b.com", "secret123")

    state = fragile_services["auth_service"].state
    assert state.is_authenticated is False
    assert state.is_loading is False
    assert state.error == "disk gone"
    assert state.phase == AuthPhase.ERROR
    assert mock_api.calls("GET", "/consumers/profile") == []
    assert failing_kv.dump() == {}


@pytest.mark.asyncio
async def test_logout_succeeds_when_snapshot_cannot_be_removed(
    fragile_services: ServiceContainer, failing_kv: FailingKeyValueStore, mock_api: MockApi
) -> None:
    mock_api.route("POST", "/auth/login", httpx.Response(200, json=auth_payload()))
    mock_api.route("GET", "/consumers/profile", httpx.Response(200, json=consumer_profile()))
    mock_api.route("POST", "/auth/logout", httpx.Response(200, json={"success": True}))
    await fragile_services["auth_service"].login("a@b.com", "secret123")
    failing_kv.fail("remove", SESSION_KEY)

    state = await fragile_services["auth_service"].logout()

    assert state == AuthState()
    assert fragile_services["auth_service"].state.phase == AuthPhase.ANONYMOUS
    assert TOKEN_KEY not in failing_kv.dump()
