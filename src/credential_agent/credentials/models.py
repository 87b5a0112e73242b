"""Credential data model.

Implements the shapes of the W3C Verifiable Credentials Data Model:
https://www.w3.org/TR/vc-data-model/

Every model has a typed core of the fields the pipeline relies on, plus one
explicit ``extensions`` mapping for anything else. Required fields such as
``proof.jwt`` are always read from the typed core, never discovered by
walking an open dictionary.

Wire names (``@context``, ``subjectDid``, ``issuanceDate``...) are pydantic
aliases; Python code uses snake_case attributes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ------------------------------------------------------------------
# Fixed values
# ------------------------------------------------------------------

VC_CONTEXT: tuple[str, ...] = ("https://www.w3.org/2018/credentials/v1",)
VC_TYPE: str = "VerifiableCredential"
VC_PROOF_FORMAT: str = "jwt"
VC_REMOVE_ORIGINAL_FIELDS: bool = True
JWT_PROOF_TYPE: str = "JwtProof2020"

#: JWT registered claims that duplicate W3C fields in a JWT-VC.
JWT_ENVELOPE_FIELDS: tuple[str, ...] = ("vc", "sub", "iss", "nbf", "exp")

_CORE_FIELDS = frozenset(
    {
        "@context",
        "id",
        "type",
        "issuer",
        "issuanceDate",
        "expirationDate",
        "credentialSubject",
        "credentialSchema",
        "proof",
    }
)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


# ------------------------------------------------------------------
# CredentialRequest
# ------------------------------------------------------------------


class CredentialRequest(BaseModel):
    """Caller intent for a new credential. Untrusted input.

    Parameters
    ----------
    subject_did:
        DID of the credential subject (``subjectDid``). The only field that
        must be present, checked by the issuer.
    attributes:
        Claims about the subject, merged into ``credentialSubject``.
    context:
        Extra JSON-LD contexts (``@context``), placed before the base ones.
    type:
        Extra credential types, placed before ``VerifiableCredential``.
    credential_schema:
        Schema URI (``credentialSchema``), passed through unchanged.
    expiration_date:
        ISO-8601 expiry (``expirationDate``), passed through unchanged.
    credential_name, credential_summary:
        Display metadata for inbox delivery only.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    subject_did: str | None = Field(default=None, alias="subjectDid")
    attributes: dict[str, Any] = Field(default_factory=dict)
    context: list[str] = Field(default_factory=list, alias="@context")
    type: list[str] = Field(default_factory=list)
    credential_schema: str | None = Field(default=None, alias="credentialSchema")
    expiration_date: str | None = Field(default=None, alias="expirationDate")
    credential_name: str | None = Field(default=None, alias="credentialName")
    credential_summary: str | None = Field(default=None, alias="credentialSummary")

    @field_validator("context", "type", mode="before")
    @classmethod
    def coerce_to_list(cls, value: Any) -> list[str]:
        return _as_list(value)

    @field_validator("attributes", mode="before")
    @classmethod
    def coerce_attributes(cls, value: Any) -> dict[str, Any]:
        return dict(value or {})


# ------------------------------------------------------------------
# CredentialPayload (unsigned)
# ------------------------------------------------------------------


class CredentialPayload(BaseModel):
    """An unsigned credential, frozen once built.

    ``credential_subject`` always carries the subject ``id``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    context: list[str] = Field(alias="@context")
    type: list[str]
    issuer: str
    issuance_date: str = Field(alias="issuanceDate")
    credential_subject: dict[str, Any] = Field(alias="credentialSubject")
    expiration_date: str | None = Field(default=None, alias="expirationDate")
    credential_schema: Any = Field(default=None, alias="credentialSchema")
    id: str | None = None
    extensions: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject_did(self) -> str | None:
        return self.credential_subject.get("id")

    def to_dict(self) -> dict[str, Any]:
        """W3C JSON form of the unsigned credential."""
        data: dict[str, Any] = {
            "@context": list(self.context),
            "type": list(self.type),
            "issuer": {"id": self.issuer},
            "issuanceDate": self.issuance_date,
            "credentialSubject": dict(self.credential_subject),
        }
        if self.id is not None:
            data["id"] = self.id
        if self.expiration_date is not None:
            data["expirationDate"] = self.expiration_date
        if self.credential_schema is not None:
            data["credentialSchema"] = self.credential_schema
        for key, value in self.extensions.items():
            data.setdefault(key, value)
        return data


# ------------------------------------------------------------------
# Credential (signed)
# ------------------------------------------------------------------


class Proof(BaseModel):
    """A credential proof. JWT proofs carry the compact token in ``jwt``."""

    model_config = ConfigDict(extra="allow")

    type: str = JWT_PROOF_TYPE
    jwt: str | None = None


class Issuer(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str


class Credential(BaseModel):
    """A signed W3C Verifiable Credential.

    The JWT envelope claims (``vc``, ``sub``, ``iss``, ``nbf``, ``exp``)
    are never part of this model; :meth:`from_dict` drops them.
    """

    model_config = ConfigDict(populate_by_name=True)

    context: list[str] = Field(alias="@context")
    type: list[str]
    issuer: Issuer
    issuance_date: str = Field(alias="issuanceDate")
    credential_subject: dict[str, Any] = Field(alias="credentialSubject")
    proof: Proof
    expiration_date: str | None = Field(default=None, alias="expirationDate")
    credential_schema: Any = Field(default=None, alias="credentialSchema")
    id: str | None = None
    extensions: dict[str, Any] = Field(default_factory=dict)

    @property
    def subject_did(self) -> str | None:
        return self.credential_subject.get("id")

    @property
    def jwt(self) -> str | None:
        return self.proof.jwt

    def to_dict(self) -> dict[str, Any]:
        """W3C JSON form, extensions merged at top level."""
        data: dict[str, Any] = {
            "@context": list(self.context),
            "type": list(self.type),
            "issuer": self.issuer.model_dump(),
            "issuanceDate": self.issuance_date,
            "credentialSubject": dict(self.credential_subject),
        }
        if self.id is not None:
            data["id"] = self.id
        if self.expiration_date is not None:
            data["expirationDate"] = self.expiration_date
        if self.credential_schema is not None:
            data["credentialSchema"] = self.credential_schema
        for key, value in self.extensions.items():
            if key not in JWT_ENVELOPE_FIELDS:
                data.setdefault(key, value)
        data["proof"] = self.proof.model_dump(exclude_none=True)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Credential":
        """Build a credential from its JSON form.

        Raises
        ------
        pydantic.ValidationError
            If required W3C fields are missing.
        """
        issuer = data.get("issuer")
        if isinstance(issuer, str):
            issuer = {"id": issuer}
        extensions = {
            k: v for k, v in data.items()
            if k not in _CORE_FIELDS and k not in JWT_ENVELOPE_FIELDS
        }
        return cls.model_validate(
            {
                "@context": _as_list(data.get("@context")),
                "type": _as_list(data.get("type")),
                "issuer": issuer,
                "issuanceDate": data.get("issuanceDate"),
                "credentialSubject": data.get("credentialSubject") or {},
                "proof": data.get("proof"),
                "expirationDate": data.get("expirationDate"),
                "credentialSchema": data.get("credentialSchema"),
                "id": data.get("id"),
                "extensions": extensions,
            }
        )


# ------------------------------------------------------------------
# Verification result
# ------------------------------------------------------------------


class VerificationErrorCode(str, Enum):
    """Reasons a structurally valid credential fails verification."""

    SIGNATURE_MISMATCH = "SignatureMismatch"
    CREDENTIAL_EXPIRED = "CredentialExpired"
    ISSUER_MISMATCH = "IssuerMismatch"
    NO_VERIFICATION_METHOD = "NoVerificationMethod"
    CREDENTIAL_MISMATCH = "CredentialMismatch"
    CREDENTIAL_NOT_YET_VALID = "CredentialNotYetValid"


@dataclass(frozen=True)
class VerificationError:
    code: VerificationErrorCode
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying a credential.

    Parameters
    ----------
    verified:
        ``True`` only if ``error`` is ``None``.
    issuer:
        The issuer DID that was resolved.
    error:
        Why verification failed, when it did.
    """

    verified: bool
    issuer: str | None = None
    error: VerificationError | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "verified", self.error is None and self.verified)

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"verified": self.verified, "issuer": self.issuer}
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data


# ------------------------------------------------------------------
# Issuance result
# ------------------------------------------------------------------


class DeliveryState(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class DeliveryStatus:
    """Outcome of the inbox delivery side channel."""

    state: DeliveryState
    reason: str | None = None

    @classmethod
    def delivered(cls) -> "DeliveryStatus":
        return cls(DeliveryState.DELIVERED)

    @classmethod
    def skipped(cls, reason: str) -> "DeliveryStatus":
        return cls(DeliveryState.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryStatus":
        return cls(DeliveryState.FAILED, reason)

    def to_dict(self) -> dict[str, object]:
        return {"state": self.state.value, "reason": self.reason}


@dataclass(frozen=True)
class IssuanceResult:
    """A signed credential together with its delivery outcome."""

    credential: Credential
    delivery: DeliveryStatus = field(default_factory=lambda: DeliveryStatus.skipped("not attempted"))

    def to_dict(self) -> dict[str, object]:
        return {"credential": self.credential.to_dict(), "delivery": self.delivery.to_dict()}


__all__ = [
    "Credential",
    "CredentialPayload",
    "CredentialRequest",
    "DeliveryState",
    "DeliveryStatus",
    "IssuanceResult",
    "Issuer",
    "JWT_ENVELOPE_FIELDS",
    "JWT_PROOF_TYPE",
    "Proof",
    "VC_CONTEXT",
    "VC_PROOF_FORMAT",
    "VC_REMOVE_ORIGINAL_FIELDS",
    "VC_TYPE",
    "VerificationError",
    "VerificationErrorCode",
    "VerificationResult",
]
