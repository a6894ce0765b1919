"""
Session Core Services Package.

The ``create_services()`` factory wires storage, the HTTP pipeline, the
identity/profile layers and the auth state machine together, returning a
typed dict that the application layer (CLI / views) can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

import httpx

from fixrx.auth import SessionManager
from fixrx.config import AppConfig
from fixrx.logger import get_logger
from fixrx.services.api_client import ApiClient
from fixrx.services.auth_service import AuthService
from fixrx.services.credential_store import CredentialStore
from fixrx.services.identity_service import IdentityService
from fixrx.services.key_value_store import KeyValueStore
from fixrx.services.profile_loader import ProfileLoader
from fixrx.services.session_snapshot import SessionSnapshotStore
from fixrx.services.token_cipher import TokenCipher


class ServiceContainer(TypedDict):
    """Typed container for all session-core services."""

    credential_store: CredentialStore
    snapshot_store: SessionSnapshotStore
    api_client: ApiClient
    identity_service: IdentityService
    profile_loader: ProfileLoader
    auth_service: AuthService


def create_services(
    store: KeyValueStore,
    config: AppConfig,
    session: SessionManager,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ServiceContainer:
    """
    Wire all session-core services together.

    This is the single composition root for the service layer.  The
    application entry-point calls this once at startup and passes the
    returned dict to views / commands as needed.

    Args:
        store: Durable key-value storage (SQLite-backed or in-memory).
        config: Application configuration.
        session: The shared auth state container.
        transport: Optional ``httpx`` transport override (tests).

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("fixrx.services")

    # ------------------------------------------------------------------
    # 1. Storage
    # ------------------------------------------------------------------
    cipher: Optional[TokenCipher] = None
    if config.CREDENTIAL_ENCRYPTION:
        cipher = TokenCipher(
            store=store,
            salt_key=config.CREDENTIAL_SALT_KEY,
            logger=logger,
            iterations=config.CREDENTIAL_KDF_ITERATIONS,
        )
    credential_store = CredentialStore(
        store=store,
        storage_key=config.TOKEN_STORAGE_KEY,
        logger=logger,
        cipher=cipher,
    )
    snapshot_store = SessionSnapshotStore(
        store=store,
        storage_key=config.SESSION_STORAGE_KEY,
        logger=logger,
    )

    # ------------------------------------------------------------------
    # 2. HTTP pipeline and remote operations
    # ------------------------------------------------------------------
    api_client = ApiClient(
        credentials=credential_store,
        logger=logger,
        base_url=config.API_BASE_URL,
        timeout=config.API_TIMEOUT_S,
        transport=transport,
    )
    identity_service = IdentityService(api=api_client, logger=logger)
    profile_loader = ProfileLoader(api=api_client, logger=logger)

    # ------------------------------------------------------------------
    # 3. State machine
    # ------------------------------------------------------------------
    auth_service = AuthService(
        session=session,
        identity=identity_service,
        profiles=profile_loader,
        credentials=credential_store,
        snapshots=snapshot_store,
        logger=logger,
    )
    # Business-service calls that lose their session evict the actor too.
    api_client.on_session_expired(auth_service.evict)

    return ServiceContainer(
        credential_store=credential_store,
        snapshot_store=snapshot_store,
        api_client=api_client,
        identity_service=identity_service,
        profile_loader=profile_loader,
        auth_service=auth_service,
    )
