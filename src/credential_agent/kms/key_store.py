"""KeyStore — in-memory signing key storage.

Holds Ed25519 key material for the lifetime of the process. Callers only
ever see a :class:`KeyRef`; the private bytes never leave the store. All
signing goes through :meth:`KeyStore.sign`.

There is no persistence: a restart loses every key, and DIDs bound to those
keys must be re-created on next use.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from credential_agent.errors import KeyNotFoundError
from credential_agent.kms.key_manager import Ed25519KeyManager

logger = logging.getLogger(__name__)

KEY_TYPE_ED25519: str = "Ed25519"
DEFAULT_KMS: str = "local"


@dataclass(frozen=True)
class KeyRef:
    """Opaque handle to a key held by a :class:`KeyStore`.

    Parameters
    ----------
    kid:
        Key identifier, unique within the store.
    kms:
        Name of the key management system holding the private part.
    type:
        Key algorithm family (currently always ``"Ed25519"``).
    public_key_hex:
        Hex encoding of the raw public key.
    """

    kid: str
    kms: str
    type: str
    public_key_hex: str

    @property
    def public_key(self) -> bytes:
        """The raw public key bytes."""
        return bytes.fromhex(self.public_key_hex)


class KeyStore:
    """Thread-safe in-memory key store backed by :class:`Ed25519KeyManager`.

    Example
    -------
    ::

        store = KeyStore()
        ref = store.create_key()
        signature = store.sign(ref.kid, b"payload")
    """

    def __init__(self, key_manager: Ed25519KeyManager | None = None, kms: str = DEFAULT_KMS) -> None:
        self._key_manager = key_manager or Ed25519KeyManager()
        self._kms = kms
        self._refs: dict[str, KeyRef] = {}
        self._private: dict[str, bytes] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_key(self, kid: str | None = None) -> KeyRef:
        """Generate a new Ed25519 key and return its reference.

        Parameters
        ----------
        kid:
            Optional key identifier. Defaults to the hex public key, which
            is how the local KMS names keys.
        """
        private_bytes, public_bytes = self._key_manager.generate_keypair()
        return self._store(private_bytes, public_bytes, kid)

    def import_key(self, private_key_hex: str, kid: str | None = None) -> KeyRef:
        """Import an existing raw Ed25519 private key given as hex.

        Raises
        ------
        ValueError
            If the hex string is not a valid 32-byte Ed25519 seed.
        """
        try:
            private_bytes = bytes.fromhex(private_key_hex.removeprefix("0x"))
            public_bytes = self._key_manager.public_key_for(private_bytes)
        except ValueError as exc:
            raise ValueError(f"Invalid Ed25519 private key material: {exc}") from exc
        return self._store(private_bytes, public_bytes, kid)

    def _store(self, private_bytes: bytes, public_bytes: bytes, kid: str | None) -> KeyRef:
        ref = KeyRef(
            kid=kid or public_bytes.hex(),
            kms=self._kms,
            type=KEY_TYPE_ED25519,
            public_key_hex=public_bytes.hex(),
        )
        with self._lock:
            self._refs[ref.kid] = ref
            self._private[ref.kid] = private_bytes
        logger.debug("Stored %s key %s in kms %r", ref.type, ref.kid, ref.kms)
        return ref

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, kid: str) -> KeyRef:
        """Return the :class:`KeyRef` for *kid*.

        Raises
        ------
        KeyNotFoundError
            If the key is not held by this store.
        """
        with self._lock:
            ref = self._refs.get(kid)
        if ref is None:
            raise KeyNotFoundError(kid)
        return ref

    def delete(self, kid: str) -> bool:
        """Forget a key. Returns ``True`` if it existed."""
        with self._lock:
            self._private.pop(kid, None)
            return self._refs.pop(kid, None) is not None

    def list_keys(self) -> list[KeyRef]:
        """Return a snapshot of all key references."""
        with self._lock:
            return list(self._refs.values())

    def __contains__(self, kid: object) -> bool:
        return kid in self._refs

    def __len__(self) -> int:
        return len(self._refs)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign(self, kid: str, data: bytes) -> bytes:
        """Sign *data* with the private key behind *kid*.

        Raises
        ------
        KeyNotFoundError
            If the key is not held by this store.
        """
        with self._lock:
            private_bytes = self._private.get(kid)
        if private_bytes is None:
            raise KeyNotFoundError(kid)
        return self._key_manager.sign(private_bytes, data)

    def verify(self, public_key: bytes, signature: bytes, data: bytes) -> bool:
        """Verify *signature* over *data* against a raw public key."""
        return self._key_manager.verify(public_key, signature, data)


__all__ = ["DEFAULT_KMS", "KEY_TYPE_ED25519", "KeyRef", "KeyStore"]
