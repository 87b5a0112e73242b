"""credential_agent.credentials — W3C credentials with JWT proofs.

Submodules
----------
models
    Request, payload, credential and result types.
jwt
    Compact EdDSA JWT encoding and the credential <-> claims mapping.
signer
    CredentialSigner: signs payloads with keys the agent holds.
issuer
    CredentialIssuer: request → signed credential → inbox delivery.
verifier
    CredentialVerifier: credential or JWT → VerificationResult.

Only the data types are re-exported here; import the services from their
submodules.
"""
from __future__ import annotations

from credential_agent.credentials.models import (
    Credential,
    CredentialPayload,
    CredentialRequest,
    DeliveryState,
    DeliveryStatus,
    IssuanceResult,
    Issuer,
    Proof,
    VerificationError,
    VerificationErrorCode,
    VerificationResult,
)

__all__ = [
    "Credential",
    "CredentialPayload",
    "CredentialRequest",
    "DeliveryState",
    "DeliveryStatus",
    "IssuanceResult",
    "Issuer",
    "Proof",
    "VerificationError",
    "VerificationErrorCode",
    "VerificationResult",
]
