"""
Credential Encryption at Rest.

Seals the serialized credential pair with AES-256-GCM before it reaches
the key-value store, so a copied database file does not leak bearer
tokens.

Security model
--------------
- The key is derived at runtime from machine identity (hostname + OS
  username) via PBKDF2-HMAC-SHA256 with a random 32-byte per-install
  salt.  The key itself is **never** persisted.
- The salt lives in the key-value store under its own key
  (``CREDENTIAL_SALT_KEY``), separate from the credential namespace.
- GCM provides integrity: a tampered or foreign envelope fails
  verification and is reported as :class:`CipherError`.

Envelope layout (a single ASCII string)::

    v1:<nonce-b64>:<tag-b64>:<ciphertext-b64>
"""

from __future__ import annotations

import base64
import binascii
import getpass
import os
import socket
import threading
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2

from fixrx.logger import StructuredLogger
from fixrx.services.key_value_store import KeyValueStore


class CipherError(ValueError):
    """An envelope could not be opened (wrong key, tampering, bad format)."""


class TokenCipher:
    """AES-256-GCM sealing of credential payloads.

    Parameters
    ----------
    store:
        Key-value store that holds the per-install salt.
    salt_key:
        Storage key for the salt.
    logger:
        A ``StructuredLogger`` instance.
    iterations:
        PBKDF2 iteration count.  Production uses the OWASP 2023 figure;
        tests pass a small number.
    identity:
        Key material override.  Defaults to ``"<hostname>:<os user>"``.
    """

    _VERSION: str = "v1"
    _KEY_LENGTH: int = 32  # 256 bits
    _SALT_LENGTH: int = 32

    def __init__(
        self,
        store: KeyValueStore,
        salt_key: str,
        logger: StructuredLogger,
        iterations: int = 600_000,
        identity: Optional[str] = None,
    ) -> None:
        self._store: KeyValueStore = store
        self._salt_key: str = salt_key
        self._logger: StructuredLogger = logger
        self._iterations: int = iterations
        self._identity: Optional[str] = identity
        self._key: Optional[bytes] = None
        self._lock: threading.Lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> str:
        """Seal *plaintext* and return the envelope string."""
        cipher = AES.new(self._derive_key(), AES.MODE_GCM)
        ciphertext, tag = cipher.encrypt_and_digest(plaintext.encode("utf-8"))
        parts = [cipher.nonce, tag, ciphertext]
        encoded = [base64.b64encode(p).decode("ascii") for p in parts]
        return ":".join([self._VERSION, *encoded])

    def decrypt(self, envelope: str) -> str:
        """Open an envelope produced by :meth:`encrypt`.

        Raises
        ------
        CipherError
            If the envelope is malformed or fails GCM verification.
        """
        pieces = envelope.split(":")
        if len(pieces) != 4 or pieces[0] != self._VERSION:
            raise CipherError("Unrecognised credential envelope format.")
        try:
            nonce, tag, ciphertext = (base64.b64decode(p, validate=True) for p in pieces[1:])
        except (binascii.Error, ValueError) as exc:
            raise CipherError("Credential envelope is not valid base64.") from exc

        cipher = AES.new(self._derive_key(), AES.MODE_GCM, nonce=nonce)
        try:
            plaintext = cipher.decrypt_and_verify(ciphertext, tag)
        except (ValueError, KeyError) as exc:
            raise CipherError(
                "Credential envelope failed verification (tampered data or "
                "machine identity changed)."
            ) from exc
        return plaintext.decode("utf-8")

    @classmethod
    def looks_sealed(cls, value: str) -> bool:
        return value.startswith(cls._VERSION + ":")

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _derive_key(self) -> bytes:
        """Derive (once) the 256-bit AES key from identity + salt."""
        with self._lock:
            if self._key is None:
                password = self._identity or f"{socket.gethostname()}:{getpass.getuser()}"
                self._key = PBKDF2(
                    password=password,
                    salt=self._get_or_create_salt(),
                    dkLen=self._KEY_LENGTH,
                    count=self._iterations,
                    hmac_hash_module=SHA256,
                )
            return self._key

    def _get_or_create_salt(self) -> bytes:
        """Return the per-install salt, creating it on first use."""
        stored = self._store.get(self._salt_key)
        if stored is not None:
            try:
                salt = bytes.fromhex(stored)
            except ValueError:
                salt = b""
            if len(salt) == self._SALT_LENGTH:
                return salt
            # Corrupt or wrong length; anything sealed with it is unreadable.
            self._logger.warning(
                "Credential salt has unexpected length (%d); regenerating.",
                len(salt),
            )
        salt = os.urandom(self._SALT_LENGTH)
        self._store.set(self._salt_key, salt.hex())
        self._logger.info("Per-install credential salt created.")
        return salt
