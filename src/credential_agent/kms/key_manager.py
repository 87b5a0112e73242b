"""Ed25519KeyManager — Ed25519 key generation, signing, and verification.

A thin wrapper around the ``cryptography`` package's Ed25519 primitives.
All key material crosses this boundary as raw bytes so that the
:class:`~credential_agent.kms.key_store.KeyStore` can hold it without
depending on ``cryptography`` types.
"""
from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)


class Ed25519KeyManager:
    """Ed25519 key management: generate, derive, sign, and verify.

    Example
    -------
    ::

        manager = Ed25519KeyManager()
        private_bytes, public_bytes = manager.generate_keypair()
        signature = manager.sign(private_bytes, b"hello world")
        assert manager.verify(public_bytes, signature, b"hello world")
    """

    def generate_keypair(self) -> tuple[bytes, bytes]:
        """Generate a new Ed25519 keypair.

        Returns
        -------
        tuple[bytes, bytes]
            A ``(private_key_bytes, public_key_bytes)`` pair, both 32 bytes.
        """
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        return private_bytes, self.public_key_for(private_bytes)

    def public_key_for(self, private_key_bytes: bytes) -> bytes:
        """Derive the raw 32-byte public key from a raw private key.

        Raises
        ------
        ValueError
            If *private_key_bytes* is not a 32-byte Ed25519 seed.
        """
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        return private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)

    def sign(self, private_key_bytes: bytes, data: bytes) -> bytes:
        """Sign *data* and return the 64-byte Ed25519 signature."""
        private_key = Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        return private_key.sign(data)

    def verify(self, public_key_bytes: bytes, signature: bytes, data: bytes) -> bool:
        """Verify an Ed25519 signature.

        Returns
        -------
        bool
            ``True`` if the signature is valid, ``False`` otherwise. A
            malformed public key also yields ``False``.
        """
        try:
            public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
        except ValueError:
            return False
        try:
            public_key.verify(signature, data)
            return True
        except InvalidSignature:
            return False


__all__ = ["Ed25519KeyManager"]
