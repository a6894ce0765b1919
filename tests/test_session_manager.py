from __future__ import annotations

import pytest

from fixrx.auth import SessionManager
from fixrx.errors import AuthenticationRequired
from fixrx.jwt_auth import require_auth
from fixrx.models.auth_models import AuthState
from fixrx.models.enums import UserRole
from fixrx.models.user import User


def test_update_replaces_state_and_notifies(session: SessionManager) -> None:
    seen: list[AuthState] = []
    unsubscribe = session.subscribe(seen.append)
    before = session.snapshot

    after = session.update(is_loading=True)
    unsubscribe()
    session.update(is_loading=False)

    assert before.is_loading is False
    assert after is not before
    assert seen == [after]
    assert session.snapshot.is_loading is False


def test_update_rejects_unknown_fields(session: SessionManager) -> None:
    with pytest.raises(TypeError):
        session.update(token="AT1")


def test_state_is_immutable(session: SessionManager) -> None:
    with pytest.raises(ValueError):
        session.snapshot.is_loading = True  # type: ignore[misc]


def test_get_current_user_requires_authenticated_actor() -> None:
    user = User(id="u1", role=UserRole.CONSUMER)

    with pytest.raises(AuthenticationRequired):
        SessionManager().get_current_user()
    with pytest.raises(AuthenticationRequired):
        SessionManager(AuthState(user=user)).get_current_user()

    session = SessionManager(AuthState(user=user, is_authenticated=True))
    assert session.get_current_user() == user
    assert session.is_authenticated is True


def test_reset_returns_to_initial_state() -> None:
    session = SessionManager(AuthState(user=User(id="u1"), is_authenticated=True))

    state = session.reset()

    assert state == AuthState()
    assert session.is_authenticated is False


@pytest.mark.asyncio
async def test_require_auth_checks_session_and_role() -> None:
    session = SessionManager()
    vendors_only = require_auth(session, roles={UserRole.VENDOR})

    @vendors_only
    async def publish(title: str) -> str:
        return f"published {title}"

    with pytest.raises(AuthenticationRequired):
        await publish("listing")

    session.update(user=User(id="u1", role=UserRole.CONSUMER), is_authenticated=True)
    with pytest.raises(AuthenticationRequired):
        await publish("listing")

    session.update(user=User(id="u2", role=UserRole.VENDOR))
    assert await publish("listing") == "published listing"
    assert publish.__name__ == "publish"
