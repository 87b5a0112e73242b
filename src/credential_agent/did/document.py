"""DIDDocument — W3C DID Core document model shared by every DID method.

DID format
----------
::

    did:<method>:<method-specific-id>

Examples::

    did:cheqd:testnet:9b6d4a4e-7d38-4a0b-a3b6-1d4b3c0e2f11
    did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK
    did:web:issuer.example.com
    did:vda:testnet:0x6B2a1b...

Documents are produced in two ways only: by a DID provider when it creates
a DID, or by parsing resolver output with :meth:`DIDDocument.from_dict`.
Nothing in the issuance pipeline mutates a document after resolution.

Specification reference
-----------------------
https://www.w3.org/TR/did-core/#data-model
"""
from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from credential_agent.did.multibase import base58btc_decode, multibase_to_ed25519

DID_CONTEXT: str = "https://www.w3.org/ns/did/v1"

_DID_PATTERN = re.compile(r"^did:(?P<method>[a-z0-9]+):(?P<id>[A-Za-z0-9._%:\-]+)$")

_ED25519_TYPES = frozenset(
    {
        "Ed25519VerificationKey2018",
        "Ed25519VerificationKey2020",
        "JsonWebKey2020",
        "Multikey",
    }
)


@dataclass(frozen=True)
class ParsedDID:
    """The two top-level parts of a DID string."""

    did: str
    method: str
    method_specific_id: str

    @property
    def segments(self) -> list[str]:
        """The ``:``-separated segments of the method-specific id."""
        return self.method_specific_id.split(":")


def parse_did(did: str) -> ParsedDID:
    """Split a DID into method and method-specific id.

    Any fragment (``#key-1``) or query is ignored.

    Raises
    ------
    ValueError
        If *did* is not of the form ``did:<method>:<id>``.
    """
    bare = did.split("#", 1)[0].split("?", 1)[0]
    match = _DID_PATTERN.match(bare)
    if not match:
        raise ValueError(
            f"Malformed DID {did!r}. Expected format: did:<method>:<method-specific-id>"
        )
    return ParsedDID(did=bare, method=match.group("method"), method_specific_id=match.group("id"))


def _b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


# ------------------------------------------------------------------
# Verification method
# ------------------------------------------------------------------


@dataclass(frozen=True)
class VerificationMethod:
    """A verification method attached to a DID document.

    Exactly one public key representation is expected. Only Ed25519 keys
    can be used for proof checking; other key types are carried through
    so that documents of any method still parse.

    Parameters
    ----------
    id:
        Fully qualified method id, e.g. ``did:cheqd:testnet:abc#key-1``.
    type:
        Verification method type, e.g. ``"Ed25519VerificationKey2020"``.
    controller:
        The DID that controls this key.
    public_key_multibase:
        Multibase (``z`` + base58btc) public key, if published that way.
    public_key_base58:
        Raw base58btc public key, if published that way.
    public_key_jwk:
        JWK public key, if published that way.
    """

    id: str
    type: str
    controller: str
    public_key_multibase: str | None = None
    public_key_base58: str | None = None
    public_key_jwk: dict[str, Any] | None = field(default=None, hash=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("VerificationMethod.id must not be empty.")
        if not self.type:
            raise ValueError("VerificationMethod.type must not be empty.")
        if not self.controller:
            raise ValueError("VerificationMethod.controller must not be empty.")

    @property
    def is_ed25519(self) -> bool:
        """Whether this method can carry an Ed25519 key."""
        if self.type not in _ED25519_TYPES:
            return False
        if self.public_key_jwk is not None:
            return self.public_key_jwk.get("crv") == "Ed25519"
        return True

    def public_key_bytes(self) -> bytes:
        """Decode the raw Ed25519 public key from whichever form is present.

        Raises
        ------
        ValueError
            If no supported public key representation is present.
        """
        if self.public_key_multibase:
            return multibase_to_ed25519(self.public_key_multibase)
        if self.public_key_base58:
            return base58btc_decode(self.public_key_base58)
        if self.public_key_jwk and self.public_key_jwk.get("crv") == "Ed25519":
            return _b64url_decode(str(self.public_key_jwk["x"]))
        raise ValueError(
            f"Verification method {self.id!r} carries no Ed25519 public key."
        )

    def to_dict(self) -> dict[str, object]:
        """Serialize to a W3C-compatible plain dictionary."""
        data: dict[str, object] = {
            "id": self.id,
            "type": self.type,
            "controller": self.controller,
        }
        if self.public_key_multibase is not None:
            data["publicKeyMultibase"] = self.public_key_multibase
        if self.public_key_base58 is not None:
            data["publicKeyBase58"] = self.public_key_base58
        if self.public_key_jwk is not None:
            data["publicKeyJwk"] = self.public_key_jwk
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], document_id: str) -> "VerificationMethod":
        method_id = str(data.get("id", ""))
        if method_id.startswith("#"):
            method_id = document_id + method_id
        return cls(
            id=method_id,
            type=str(data.get("type", "")),
            controller=str(data.get("controller") or document_id),
            public_key_multibase=data.get("publicKeyMultibase"),
            public_key_base58=data.get("publicKeyBase58"),
            public_key_jwk=data.get("publicKeyJwk"),
        )


# ------------------------------------------------------------------
# Service endpoint
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceEndpoint:
    """A service endpoint advertised in a DID document.

    Parameters
    ----------
    id:
        The service identifier (e.g. ``did:vda:testnet:0xabc#messaging``).
    type:
        Service type string (e.g. ``"VeridaMessage"``, ``"LinkedDomains"``).
    endpoint:
        URI, list of URIs, or map as allowed by DID Core.
    """

    id: str
    type: str
    endpoint: Any = field(hash=False)

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("ServiceEndpoint.id must not be empty.")
        if not self.type:
            raise ValueError("ServiceEndpoint.type must not be empty.")
        if not self.endpoint:
            raise ValueError("ServiceEndpoint.endpoint must not be empty.")

    def to_dict(self) -> dict[str, object]:
        """Serialize to a W3C-compatible plain dictionary."""
        return {
            "id": self.id,
            "type": self.type,
            "serviceEndpoint": self.endpoint,
        }


# ------------------------------------------------------------------
# DID Document (Pydantic v2)
# ------------------------------------------------------------------


class DIDDocument(BaseModel):
    """A W3C DID Core document.

    Parameters
    ----------
    context:
        JSON-LD context URIs. Defaults to the W3C DID v1 context.
    id:
        The DID subject.
    controller:
        DID(s) authorised to change this document.
    verification_method:
        Public keys associated with this DID.
    authentication:
        Verification method ids authorised for authentication.
    assertion_method:
        Verification method ids authorised to issue credentials.
    service:
        Service endpoints associated with this DID subject.
    """

    model_config = {"arbitrary_types_allowed": True, "frozen": True}

    context: list[str] = Field(default_factory=lambda: [DID_CONTEXT])
    id: str
    controller: str | list[str] | None = None
    verification_method: list[VerificationMethod] = Field(default_factory=list)
    authentication: list[str] = Field(default_factory=list)
    assertion_method: list[str] = Field(default_factory=list)
    service: list[ServiceEndpoint] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def validate_did_format(cls, value: str) -> str:
        """Validate the document id is a well-formed DID."""
        parse_did(value)
        return value

    @model_validator(mode="after")
    def validate_references(self) -> "DIDDocument":
        """Validate relationship references point to declared methods."""
        method_ids = {vm.id for vm in self.verification_method}
        for relationship, refs in (
            ("authentication", self.authentication),
            ("assertionMethod", self.assertion_method),
        ):
            for ref in refs:
                if ref not in method_ids:
                    raise ValueError(
                        f"{relationship} reference {ref!r} does not match "
                        "any declared verificationMethod id."
                    )
        return self

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def method(self) -> str:
        """The DID method of this document's subject."""
        return parse_did(self.id).method

    def resolve_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Return the VerificationMethod with the given id, or ``None``.

        A relative id (``#key-1``) is resolved against this document's DID.
        """
        if method_id.startswith("#"):
            method_id = self.id + method_id
        for method in self.verification_method:
            if method.id == method_id:
                return method
        return None

    def assertion_candidates(self) -> list[VerificationMethod]:
        """Ed25519 methods usable for credential proofs, assertion methods first."""
        asserted = [
            vm for vm in self.verification_method
            if vm.id in self.assertion_method and vm.is_ed25519
        ]
        rest = [vm for vm in self.verification_method if vm not in asserted and vm.is_ed25519]
        return asserted + rest

    def find_service(self, service_type: str) -> ServiceEndpoint | None:
        for svc in self.service:
            if svc.type == service_type:
                return svc
        return None

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, object]:
        """Serialize to the W3C DID Core JSON representation."""
        data: dict[str, object] = {
            "@context": self.context,
            "id": self.id,
        }
        if self.controller is not None:
            data["controller"] = self.controller
        data["verificationMethod"] = [vm.to_dict() for vm in self.verification_method]
        data["authentication"] = list(self.authentication)
        data["assertionMethod"] = list(self.assertion_method)
        if self.service:
            data["service"] = [svc.to_dict() for svc in self.service]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DIDDocument":
        """Build a document from resolver output.

        Accepts either a bare DID document or a DID resolution result
        (``{"didDocument": {...}, "didResolutionMetadata": {...}}``).
        Embedded verification methods inside ``authentication`` or
        ``assertionMethod`` are lifted into ``verification_method``.

        Raises
        ------
        ValueError
            If the data is not a valid DID document.
        """
        if "didDocument" in data:
            data = data["didDocument"] or {}
        if not isinstance(data, dict) or "id" not in data:
            raise ValueError("DID document must be a JSON object with an 'id'.")

        document_id = str(data["id"])
        methods: dict[str, VerificationMethod] = {}
        for raw in data.get("verificationMethod", []) or []:
            vm = VerificationMethod.from_dict(raw, document_id)
            methods[vm.id] = vm

        def _refs(key: str) -> list[str]:
            refs: list[str] = []
            for entry in data.get(key, []) or []:
                if isinstance(entry, dict):
                    vm = VerificationMethod.from_dict(entry, document_id)
                    methods.setdefault(vm.id, vm)
                    refs.append(vm.id)
                else:
                    ref = str(entry)
                    refs.append(document_id + ref if ref.startswith("#") else ref)
            return refs

        authentication = _refs("authentication")
        assertion_method = _refs("assertionMethod")
        services = [
            ServiceEndpoint(
                id=str(svc["id"]),
                type=str(svc["type"]),
                endpoint=svc["serviceEndpoint"],
            )
            for svc in data.get("service", []) or []
        ]
        context = data.get("@context", [DID_CONTEXT])
        if isinstance(context, str):
            context = [context]

        return cls(
            context=[c for c in context if isinstance(c, str)] or [DID_CONTEXT],
            id=document_id,
            controller=data.get("controller"),
            verification_method=list(methods.values()),
            authentication=authentication,
            assertion_method=assertion_method,
            service=services,
        )


__all__ = [
    "DID_CONTEXT",
    "DIDDocument",
    "ParsedDID",
    "ServiceEndpoint",
    "VerificationMethod",
    "parse_did",
]
