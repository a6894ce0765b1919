"""
Credential Store.

Holds the single current :class:`CredentialPair` in durable storage.
Both tokens are serialized into ONE key so no reader can ever observe an
access token without its refresh token (or vice versa), and ``clear()``
removes that key rather than writing an empty value.

An access token issued without a refresh token is held in memory for the
current process (``hold_access_token``) and never reaches storage.

Stored value (optionally sealed by :class:`TokenCipher`)::

    {"accessToken": "...", "refreshToken": "..."}
"""

from __future__ import annotations

import json
import threading
from typing import Optional

from pydantic import ValidationError

from fixrx.errors import StorageError
from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import CredentialPair
from fixrx.services.key_value_store import KeyValueStore
from fixrx.services.token_cipher import CipherError, TokenCipher


class CredentialStore:
    """Durable, lock-guarded holder of the current credential pair.

    Parameters
    ----------
    store:
        The durable ``KeyValueStore``.
    storage_key:
        Key of the credential namespace (``TOKEN_STORAGE_KEY``).
    logger:
        A ``StructuredLogger`` instance.  Token values are never logged.
    cipher:
        Optional ``TokenCipher``; when given, values are sealed at rest.
    """

    def __init__(
        self,
        store: KeyValueStore,
        storage_key: str,
        logger: StructuredLogger,
        cipher: Optional[TokenCipher] = None,
    ) -> None:
        self._store: KeyValueStore = store
        self._key: str = storage_key
        self._logger: StructuredLogger = logger
        self._cipher: Optional[TokenCipher] = cipher
        self._lock: threading.RLock = threading.RLock()
        # Access token issued without a refresh token; process memory only.
        self._held_access: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self) -> CredentialPair:
        """Return the stored pair, or an empty pair when nothing usable is stored.

        Raises
        ------
        StorageError
            If the underlying store cannot be read.
        """
        with self._lock:
            raw = self._store.get(self._key)
            if raw is None:
                return CredentialPair.empty()
            return self._decode(raw)

    def set(self, pair: CredentialPair) -> None:
        """Replace the stored pair.  An empty pair is equivalent to ``clear()``.

        Raises
        ------
        StorageError
            If the write is rejected.
        """
        if pair.is_empty:
            self.clear()
            return
        body = json.dumps(
            {"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
            separators=(",", ":"),
        )
        with self._lock:
            if self._cipher is not None:
                body = self._cipher.encrypt(body)
            self._store.set(self._key, body)
            self._held_access = None
        self._logger.debug("Credentials written.")

    def hold_access_token(self, access_token: str) -> None:
        """Keep an access token that arrived without a refresh token.

        The token is usable for this process only: it is never written to
        durable storage, any stored pair is removed, and a 401 on it
        cannot be renewed.

        Raises
        ------
        StorageError
            If the stored pair cannot be removed.
        """
        with self._lock:
            self._store.remove(self._key)
            self._held_access = access_token
        self._logger.debug("Access token held in memory only.")

    def clear(self) -> None:
        """Remove the credential namespace and any held token.  Idempotent."""
        with self._lock:
            self._held_access = None
            self._store.remove(self._key)
        self._logger.debug("Credentials cleared.")

    @property
    def has_credentials(self) -> bool:
        return self.access_token() is not None

    def access_token(self) -> Optional[str]:
        """Bearer for the next request: the stored pair's, else the held one."""
        with self._lock:
            return self.get().access_token or self._held_access

    def refresh_token(self) -> Optional[str]:
        return self.get().refresh_token

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _decode(self, raw: str) -> CredentialPair:
        text = raw
        if self._cipher is not None and TokenCipher.looks_sealed(raw):
            try:
                text = self._cipher.decrypt(raw)
            except CipherError as exc:
                self._logger.warning(
                    "Stored credentials could not be decrypted; treating as signed out: %s",
                    exc,
                )
                return CredentialPair.empty()
        elif self._cipher is not None:
            self._logger.warning(
                "Stored credentials are not sealed; they will be sealed on next write.",
            )

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError("Stored credentials are corrupted.") from exc
        if not isinstance(data, dict):
            raise StorageError("Stored credentials are corrupted.")

        try:
            return CredentialPair(
                access_token=data.get("accessToken") or None,
                refresh_token=data.get("refreshToken") or None,
            )
        except ValidationError as exc:
            raise StorageError("Stored credentials are incomplete.") from exc
