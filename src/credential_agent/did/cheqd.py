"""did:cheqd — ledger-anchored DIDs.

DID format
----------
::

    did:cheqd:<network>:<uuid>

:class:`CheqdDIDProvider` generates an Ed25519 key in the
:class:`~credential_agent.kms.key_store.KeyStore`, builds the DID document,
self-signs it with the new key and hands it to a :class:`LedgerClient` for
anchoring. Transaction construction and fee payment happen behind the
ledger endpoint; this module only sees a request/response exchange.

Resolution of cheqd DIDs goes through :meth:`HttpLedgerClient.resolver`,
which queries the network's DID resolver over HTTP.
"""
from __future__ import annotations

import base64
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from credential_agent.did.document import DID_CONTEXT, DIDDocument, VerificationMethod
from credential_agent.did.multibase import ed25519_to_multibase
from credential_agent.did.network import NetworkType
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.did.resolution import Resolver, fetch_did_document
from credential_agent.errors import IdentityCreationError, KeyNotFoundError
from credential_agent.kms.key_store import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_CHEQD_RESOLVER_URL: str = "https://resolver.cheqd.net/1.0/identifiers/"
_ED25519_2020_CONTEXT: str = "https://w3id.org/security/suites/ed25519-2020/v1"


class LedgerError(Exception):
    """Raised by a ledger client when a DID document cannot be anchored."""


@dataclass(frozen=True)
class SignInput:
    """Signature over a DID document by one of its own verification methods."""

    verification_method_id: str
    signature: str

    def to_dict(self) -> dict[str, str]:
        return {"verificationMethodId": self.verification_method_id, "signature": self.signature}


class LedgerClient(Protocol):
    """What :class:`CheqdDIDProvider` needs from the ledger."""

    async def create_did_doc(
        self, document: DIDDocument, sign_inputs: list[SignInput], network: NetworkType
    ) -> None: ...


def canonical_bytes(data: dict[str, Any]) -> bytes:
    """Deterministic JSON encoding used as the signing input for documents."""
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


class HttpLedgerClient:
    """Anchor and resolve cheqd DID documents over HTTP.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient``; its timeout applies to every call.
    rpc_url:
        Endpoint accepting DID document creation requests.
    payer_key:
        Fee-payer credential presented to the ledger endpoint. Never logged.
    resolver_url:
        Base URL of the cheqd DID resolver.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        rpc_url: str,
        payer_key: str,
        resolver_url: str = DEFAULT_CHEQD_RESOLVER_URL,
    ) -> None:
        if not rpc_url:
            raise ValueError("Ledger RPC URL is required.")
        if not payer_key:
            raise ValueError("Ledger payer key material is required.")
        self._client = client
        self._rpc_url = rpc_url
        self._payer_key = payer_key
        self._resolver_url = resolver_url if resolver_url.endswith("/") else resolver_url + "/"

    async def create_did_doc(
        self, document: DIDDocument, sign_inputs: list[SignInput], network: NetworkType
    ) -> None:
        body = {
            "didDocument": document.to_dict(),
            "options": {"network": network.value},
            "secret": {"signingResponse": [s.to_dict() for s in sign_inputs]},
        }
        try:
            response = await self._client.post(
                self._rpc_url,
                json=body,
                headers={"Authorization": f"Bearer {self._payer_key}"},
            )
        except httpx.TimeoutException as exc:
            raise LedgerError(f"Ledger endpoint timed out creating {document.id}") from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise LedgerError(f"Ledger endpoint unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise LedgerError(
                f"Ledger rejected {document.id}: HTTP {response.status_code} {response.text[:200]}"
            )
        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        did_state = payload.get("didState") if isinstance(payload, dict) else None
        state = did_state.get("state", "finished") if isinstance(did_state, dict) else "finished"
        if state != "finished":
            raise LedgerError(f"Ledger left {document.id} in state {state!r}")

    def resolver(self) -> Resolver:
        """Return a resolver for ``did:cheqd`` backed by the network resolver."""
        return cheqd_resolver(self._client, self._resolver_url)


def cheqd_resolver(client: httpx.AsyncClient, resolver_url: str = DEFAULT_CHEQD_RESOLVER_URL) -> Resolver:
    """Return a resolver for ``did:cheqd`` DIDs using the network resolver at *resolver_url*."""
    base = resolver_url if resolver_url.endswith("/") else resolver_url + "/"

    async def resolve(did: str) -> DIDDocument | None:
        return await fetch_did_document(client, base + did, did)

    return resolve


class CheqdDIDProvider(DIDProvider):
    """Create ``did:cheqd:<network>`` identifiers.

    Parameters
    ----------
    key_store:
        Where the new DID's signing key is generated and held.
    ledger:
        Client used to anchor the new DID document.
    network:
        Target ledger network.

    Example
    -------
    ::

        provider = CheqdDIDProvider(key_store, ledger, NetworkType.TESTNET)
        identifier = await provider.create_identifier("demo")
        print(identifier.did)  # did:cheqd:testnet:...
    """

    def __init__(self, key_store: KeyStore, ledger: LedgerClient, network: NetworkType) -> None:
        super().__init__(key_store, f"did:cheqd:{network.value}")
        self._ledger = ledger
        self._network = network

    @property
    def network(self) -> NetworkType:
        return self._network

    async def create_identifier(self, alias: str) -> ManagedIdentifier:
        """Create, self-sign and anchor a new DID.

        Raises
        ------
        IdentityCreationError
            If the key cannot be produced or the ledger refuses or cannot be
            reached. The generated key is discarded in that case.
        """
        try:
            key = self._key_store.create_key()
        except (ValueError, KeyNotFoundError) as exc:
            raise IdentityCreationError(f"Could not generate a signing key for {alias!r}: {exc}") from exc

        did = f"{self.prefix}:{uuid.uuid4()}"
        method_id = f"{did}#key-1"
        document = DIDDocument(
            context=[DID_CONTEXT, _ED25519_2020_CONTEXT],
            id=did,
            controller=[did],
            verification_method=[
                VerificationMethod(
                    id=method_id,
                    type="Ed25519VerificationKey2020",
                    controller=did,
                    public_key_multibase=ed25519_to_multibase(key.public_key),
                )
            ],
            authentication=[method_id],
            assertion_method=[method_id],
        )
        signature = self._key_store.sign(key.kid, canonical_bytes(document.to_dict()))
        sign_input = SignInput(
            verification_method_id=method_id,
            signature=base64.b64encode(signature).decode("ascii"),
        )

        try:
            await self._ledger.create_did_doc(document, [sign_input], self._network)
        except Exception as exc:  # noqa: BLE001
            self._key_store.delete(key.kid)
            reason = str(exc) or type(exc).__name__
            raise IdentityCreationError(f"Could not anchor {did} on {self._network.value}: {reason}") from exc

        logger.info("Anchored %s on cheqd %s for alias %r", did, self._network.value, alias)
        return self._remember(
            ManagedIdentifier(did=did, provider=self.prefix, alias=alias, keys=(key,), document=document)
        )


__all__ = [
    "CheqdDIDProvider",
    "DEFAULT_CHEQD_RESOLVER_URL",
    "HttpLedgerClient",
    "LedgerClient",
    "LedgerError",
    "SignInput",
    "canonical_bytes",
    "cheqd_resolver",
]
