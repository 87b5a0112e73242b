"""did:key — key-derived DIDs and their resolver.

Implements the ``did:key`` method for Ed25519 keys:
https://w3c-ccg.github.io/did-method-key/

did:key encoding
----------------
1. Take the 32-byte raw Ed25519 public key.
2. Prepend the Ed25519 multicodec prefix ``0xed 0x01``.
3. Encode with base58btc and prefix with ``z`` (multibase).
4. Assemble: ``did:key:z<base58btc-encoded>``.

The DID is self-describing, so resolution never touches the network: the
document is rebuilt from the DID string alone.
"""
from __future__ import annotations

import logging

from credential_agent.did.document import DID_CONTEXT, DIDDocument, VerificationMethod
from credential_agent.did.multibase import ed25519_to_multibase, multibase_to_ed25519
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.did.resolution import Resolver
from credential_agent.kms.key_store import KeyStore

logger = logging.getLogger(__name__)

DID_KEY_PREFIX: str = "did:key"
_ED25519_2020_CONTEXT: str = "https://w3id.org/security/suites/ed25519-2020/v1"


def public_key_to_did(public_key: bytes) -> str:
    """Encode a raw Ed25519 public key as a ``did:key`` DID."""
    return f"{DID_KEY_PREFIX}:{ed25519_to_multibase(public_key)}"


def did_key_document(did: str) -> DIDDocument:
    """Build the DID document implied by a ``did:key`` string.

    Raises
    ------
    ValueError
        If the DID is not ``did:key:z...`` or does not encode an Ed25519 key.
    """
    if not did.startswith(f"{DID_KEY_PREFIX}:z") or len(did) <= len(DID_KEY_PREFIX) + 2:
        raise ValueError(
            f"Invalid did:key format: {did!r}. "
            "Expected format: did:key:z<base58btc-encoded-public-key>"
        )
    fingerprint = did[len(DID_KEY_PREFIX) + 1:]
    # Decoding validates the multicodec prefix
    multibase_to_ed25519(fingerprint)
    method_id = f"{did}#{fingerprint}"
    return DIDDocument(
        context=[DID_CONTEXT, _ED25519_2020_CONTEXT],
        id=did,
        verification_method=[
            VerificationMethod(
                id=method_id,
                type="Ed25519VerificationKey2020",
                controller=did,
                public_key_multibase=fingerprint,
            )
        ],
        authentication=[method_id],
        assertion_method=[method_id],
    )


def did_key_resolver() -> Resolver:
    """Return a resolver for ``did:key`` DIDs (no network access)."""

    async def resolve(did: str) -> DIDDocument | None:
        try:
            return did_key_document(did)
        except ValueError as exc:
            logger.debug("did:key resolution failed for %s: %s", did, exc)
            return None

    return resolve


class DIDKeyProvider(DIDProvider):
    """Create ``did:key`` identifiers backed by keys in a :class:`KeyStore`.

    Example
    -------
    ::

        provider = DIDKeyProvider(KeyStore())
        identifier = await provider.create_identifier("local-issuer")
        print(identifier.did)  # did:key:z6Mk...
    """

    def __init__(self, key_store: KeyStore) -> None:
        super().__init__(key_store, DID_KEY_PREFIX)

    async def create_identifier(self, alias: str) -> ManagedIdentifier:
        key = self._key_store.create_key()
        did = public_key_to_did(key.public_key)
        identifier = ManagedIdentifier(
            did=did,
            provider=self.prefix,
            alias=alias,
            keys=(key,),
            document=did_key_document(did),
        )
        logger.info("Created did:key identifier %s for alias %r", did, alias)
        return self._remember(identifier)


__all__ = [
    "DID_KEY_PREFIX",
    "DIDKeyProvider",
    "did_key_document",
    "did_key_resolver",
    "public_key_to_did",
]
