"""credential_agent.did — DID documents, providers and resolution.

Submodules
----------
document
    DIDDocument, VerificationMethod, ServiceEndpoint and DID parsing.
network
    NetworkType and namespace validation for did:cheqd.
provider
    DIDProvider base class and ManagedIdentifier.
cheqd
    Ledger-anchored did:cheqd provider and HTTP ledger client.
did_key
    Key-derived did:key provider and resolver.
resolution
    DIDResolutionRegistry, document cache, web and universal resolvers.
"""
from __future__ import annotations

from credential_agent.did.cheqd import (
    CheqdDIDProvider,
    HttpLedgerClient,
    LedgerClient,
    LedgerError,
    cheqd_resolver,
)
from credential_agent.did.did_key import DIDKeyProvider, did_key_resolver, public_key_to_did
from credential_agent.did.document import (
    DIDDocument,
    ParsedDID,
    ServiceEndpoint,
    VerificationMethod,
    parse_did,
)
from credential_agent.did.network import NetworkType, network_from_did, validate_network
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.did.resolution import (
    CacheConfig,
    DIDResolutionRegistry,
    DocumentCache,
    Resolver,
    universal_resolver,
    universal_resolver_for,
    web_resolver,
)

__all__ = [
    "CacheConfig",
    "CheqdDIDProvider",
    "DIDDocument",
    "DIDKeyProvider",
    "DIDProvider",
    "DIDResolutionRegistry",
    "DocumentCache",
    "HttpLedgerClient",
    "LedgerClient",
    "LedgerError",
    "ManagedIdentifier",
    "NetworkType",
    "ParsedDID",
    "Resolver",
    "ServiceEndpoint",
    "VerificationMethod",
    "cheqd_resolver",
    "did_key_resolver",
    "network_from_did",
    "parse_did",
    "public_key_to_did",
    "universal_resolver",
    "universal_resolver_for",
    "validate_network",
    "web_resolver",
]
