"""
Session Snapshot Persistence.

Serialises the token-free slice of the auth state (``user``,
``consumer``, ``vendor``, ``isAuthenticated``) under its own storage
key so the signed-in screen can be shown immediately after a restart.

A blank (signed-out) snapshot is never written: saving one removes the
key, which keeps storage after a login/logout cycle identical to
storage before it.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from fixrx.logger import StructuredLogger
from fixrx.models.auth_models import SessionSnapshot
from fixrx.services.key_value_store import KeyValueStore


class SessionSnapshotStore:
    """Reads and writes the persisted :class:`SessionSnapshot`.

    Parameters
    ----------
    store:
        The durable ``KeyValueStore``.
    storage_key:
        Key of the snapshot namespace (``SESSION_STORAGE_KEY``).
    logger:
        A ``StructuredLogger`` instance.
    """

    def __init__(self, store: KeyValueStore, storage_key: str, logger: StructuredLogger) -> None:
        self._store: KeyValueStore = store
        self._key: str = storage_key
        self._logger: StructuredLogger = logger

    def load(self) -> Optional[SessionSnapshot]:
        """Return the stored snapshot, or ``None`` if absent or unreadable.

        An unreadable snapshot is deleted so the next start is clean.
        """
        raw = self._store.get(self._key)
        if raw is None:
            return None
        try:
            return SessionSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            self._logger.warning("Discarding unreadable session snapshot: %s", exc)
            self._store.remove(self._key)
            return None

    def save(self, snapshot: SessionSnapshot) -> None:
        if snapshot.is_blank:
            self.clear()
            return
        self._store.set(
            self._key,
            snapshot.model_dump_json(by_alias=True),
        )

    def clear(self) -> None:
        self._store.remove(self._key)
