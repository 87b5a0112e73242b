"""DIDProvider — the interface every DID-creating method implements.

A provider owns the DIDs it creates: it holds the DID → key reference
mapping and the DID document it produced. Providers are addressed by a
prefix such as ``did:cheqd:testnet`` or ``did:key``.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from credential_agent.did.document import DIDDocument
from credential_agent.kms.key_store import KeyRef, KeyStore


@dataclass(frozen=True)
class ManagedIdentifier:
    """A DID created and controlled by this process.

    Parameters
    ----------
    did:
        The fully qualified DID.
    provider:
        Prefix of the provider that created it.
    alias:
        The logical name it was created for.
    keys:
        Key references bound to its verification methods, in document order.
    document:
        The DID document produced at creation time.
    """

    did: str
    provider: str
    alias: str
    keys: tuple[KeyRef, ...]
    document: DIDDocument = field(hash=False, compare=False)

    @property
    def signing_key(self) -> KeyRef:
        """The key used to sign credentials on behalf of this DID."""
        return self.keys[0]

    @property
    def verification_method_id(self) -> str:
        """Id of the verification method matching :attr:`signing_key`."""
        return self.document.verification_method[0].id


class DIDProvider(ABC):
    """Base class for DID providers.

    Subclasses implement :meth:`create_identifier`; the in-memory bookkeeping
    of created identifiers is shared here.
    """

    def __init__(self, key_store: KeyStore, prefix: str) -> None:
        self._key_store = key_store
        self._prefix = prefix
        self._identifiers: dict[str, ManagedIdentifier] = {}
        self._lock = threading.Lock()

    @property
    def prefix(self) -> str:
        """Provider prefix, e.g. ``did:cheqd:testnet``."""
        return self._prefix

    @abstractmethod
    async def create_identifier(self, alias: str) -> ManagedIdentifier:
        """Create a new DID for *alias* and return it."""

    def _remember(self, identifier: ManagedIdentifier) -> ManagedIdentifier:
        with self._lock:
            self._identifiers[identifier.did] = identifier
        return identifier

    def get(self, did: str) -> ManagedIdentifier | None:
        """Return a DID previously created by this provider, or ``None``."""
        with self._lock:
            return self._identifiers.get(did)

    def identifiers(self) -> list[ManagedIdentifier]:
        """Snapshot of every identifier this provider created."""
        with self._lock:
            return list(self._identifiers.values())


__all__ = ["DIDProvider", "ManagedIdentifier"]
