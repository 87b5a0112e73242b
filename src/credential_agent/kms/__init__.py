"""Key management: Ed25519 primitives and the in-memory key store."""
from __future__ import annotations

from credential_agent.kms.key_manager import Ed25519KeyManager
from credential_agent.kms.key_store import KeyRef, KeyStore

__all__ = ["Ed25519KeyManager", "KeyRef", "KeyStore"]
