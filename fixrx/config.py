"""
Application Configuration.

Pydantic Settings model for the FixRx session core.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Remote API ---
    API_BASE_URL: str = "http://localhost:3000/api/v1"
    API_TIMEOUT_S: float = 10.0

    # --- Durable client storage ---
    STORAGE_PATH: str = "fixrx_local.db"

    # The credential namespace and the session snapshot namespace are
    # separate keys so either can be cleared without touching the other.
    TOKEN_STORAGE_KEY: str = "fixrx_tokens"
    SESSION_STORAGE_KEY: str = "fixrx-auth-store"
    CREDENTIAL_SALT_KEY: str = "fixrx_tokens_salt"

    # --- Credential encryption at rest ---
    CREDENTIAL_ENCRYPTION: bool = True
    CREDENTIAL_KDF_ITERATIONS: int = 600_000

    # --- Logging ---
    LOG_FILE: str = "fixrx.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_suspicious_values(self) -> "AppConfig":
        """Emit startup warnings for configuration that is legal but risky.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators get a hint that the client is talking to the
        development backend.
        """
        _log = logging.getLogger("fixrx.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if self.API_BASE_URL.startswith("http://") and "localhost" not in self.API_BASE_URL:
            _log.warning(
                "API_BASE_URL uses plain HTTP (%s); bearer tokens will be "
                "sent unencrypted.",
                self.API_BASE_URL,
            )

        if self.TOKEN_STORAGE_KEY == self.SESSION_STORAGE_KEY:
            raise ValueError(
                "TOKEN_STORAGE_KEY and SESSION_STORAGE_KEY must differ"
            )

        if not self.CREDENTIAL_ENCRYPTION:
            _log.warning(
                "CREDENTIAL_ENCRYPTION is disabled; tokens are stored in "
                "plain text."
            )

        return self


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern to avoid the lock overhead on the fast path while remaining
    thread-safe during first initialisation.

    Prefer direct constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
