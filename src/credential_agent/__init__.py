"""credential-agent — issue and verify W3C Verifiable Credentials bound to DIDs.

Credentials are signed as compact EdDSA JWTs by an issuer DID anchored on
the cheqd ledger, verified against the issuer's resolved DID document, and
optionally delivered to the subject's Verida inbox.

Example
-------
>>> import credential_agent
>>> credential_agent.__version__
'0.1.0'

Quick start
-----------
::

    from credential_agent import Agent, AgentConfig

    async with Agent.from_config(AgentConfig.from_env()) as agent:
        result = await agent.issue_credential(
            {"subjectDid": "did:vda:testnet:0xabc", "attributes": {"name": "Alice"}}
        )
        print(result.delivery.state)
        verification = await agent.verify_credential(result.credential)
        assert verification.verified
"""
from __future__ import annotations

__version__: str = "0.1.0"

from credential_agent.agent import Agent
from credential_agent.audit import IssuanceAuditLog
from credential_agent.config import AgentConfig
from credential_agent.credentials.issuer import CredentialIssuer
from credential_agent.credentials.models import (
    Credential,
    CredentialPayload,
    CredentialRequest,
    DeliveryState,
    DeliveryStatus,
    IssuanceResult,
    VerificationErrorCode,
    VerificationResult,
)
from credential_agent.credentials.verifier import CredentialVerifier
from credential_agent.did.document import DIDDocument
from credential_agent.did.network import NetworkType
from credential_agent.did.resolution import DIDResolutionRegistry
from credential_agent.errors import (
    ConfigurationError,
    CredentialAgentError,
    DeliveryError,
    IdentityCreationError,
    InvalidNetworkError,
    InvalidRequestError,
    MalformedCredentialError,
    MessagingError,
    NotConnectedError,
    ResolutionError,
    UnresolvableIssuerError,
    UnsupportedMethodError,
)
from credential_agent.identity import IdentityResolver
from credential_agent.messaging.gateway import MessagingGateway

__all__ = [
    "Agent",
    "AgentConfig",
    "ConfigurationError",
    "Credential",
    "CredentialAgentError",
    "CredentialIssuer",
    "CredentialPayload",
    "CredentialRequest",
    "CredentialVerifier",
    "DIDDocument",
    "DIDResolutionRegistry",
    "DeliveryError",
    "DeliveryState",
    "DeliveryStatus",
    "IdentityCreationError",
    "IdentityResolver",
    "InvalidNetworkError",
    "InvalidRequestError",
    "IssuanceAuditLog",
    "IssuanceResult",
    "MalformedCredentialError",
    "MessagingError",
    "MessagingGateway",
    "NetworkType",
    "NotConnectedError",
    "ResolutionError",
    "UnresolvableIssuerError",
    "UnsupportedMethodError",
    "VerificationErrorCode",
    "VerificationResult",
    "__version__",
]
