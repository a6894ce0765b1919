"""Shared fixtures for the session-core test-suite.

Provides:
1. An in-memory ``KeyValueStore`` and a quiet ``StructuredLogger``.
2. A scripted mock server (``api_fakes.MockApi``) behind ``httpx.MockTransport``.
3. A fully wired ``ServiceContainer`` pointed at the mock server, plus one
   backed by a store that can be told to fail.
"""

from __future__ import annotations

import io
import os
import tempfile
from pathlib import Path

import pytest

# Keep the file handler of every StructuredLogger out of the working tree.
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "fixrx-tests.log"))

from api_fakes import BASE_URL, FailingKeyValueStore, MockApi  # noqa: E402
from fixrx.auth import SessionManager  # noqa: E402
from fixrx.config import AppConfig  # noqa: E402
from fixrx.logger import StructuredLogger  # noqa: E402
from fixrx.services import ServiceContainer, create_services  # noqa: E402
from fixrx.services.key_value_store import InMemoryKeyValueStore  # noqa: E402


@pytest.fixture()
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture()
def logger() -> StructuredLogger:
    return StructuredLogger(name="fixrx.tests", stream=io.StringIO())


@pytest.fixture()
def mock_api() -> MockApi:
    return MockApi()


@pytest.fixture()
def config() -> AppConfig:
    return AppConfig(
        API_BASE_URL=BASE_URL,
        API_TIMEOUT_S=2.0,
        CREDENTIAL_ENCRYPTION=False,
    )


@pytest.fixture()
def session() -> SessionManager:
    return SessionManager()


@pytest.fixture()
def services(
    kv: InMemoryKeyValueStore,
    config: AppConfig,
    session: SessionManager,
    mock_api: MockApi,
) -> ServiceContainer:
    return create_services(store=kv, config=config, session=session, transport=mock_api.transport)


@pytest.fixture()
def failing_kv() -> FailingKeyValueStore:
    return FailingKeyValueStore()


@pytest.fixture()
def fragile_services(
    failing_kv: FailingKeyValueStore,
    config: AppConfig,
    session: SessionManager,
    mock_api: MockApi,
) -> ServiceContainer:
    return create_services(store=failing_kv, config=config, session=session, transport=mock_api.transport)
