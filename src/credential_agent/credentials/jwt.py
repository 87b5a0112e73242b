"""Compact JWT proof format for Verifiable Credentials (JWT-VC).

Token format
------------
::

    base64url(header).base64url(payload).base64url(signature)

- header: ``{"alg": "EdDSA", "typ": "JWT", "kid": "<verification method id>"}``
- payload: the W3C credential under ``vc`` plus the registered claims that
  replace its duplicated fields (``iss``, ``sub``, ``nbf``, ``exp``, ``jti``)
- signature: Ed25519 over ``header.payload``

Encoding follows the VC Data Model JWT mapping:
https://www.w3.org/TR/vc-data-model/#jwt-encoding
"""
from __future__ import annotations

import base64
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from credential_agent.credentials.models import CredentialPayload
from credential_agent.errors import MalformedCredentialError

JWT_ALG: str = "EdDSA"

Signer = Callable[[bytes], bytes]


# ------------------------------------------------------------------
# Encoding helpers
# ------------------------------------------------------------------


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


def _json_segment(data: dict[str, Any]) -> str:
    return b64url_encode(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def iso_to_epoch(value: str) -> int:
    """Convert an ISO-8601 timestamp to integer seconds since the epoch.

    Naive timestamps are taken as UTC.

    Raises
    ------
    ValueError
        If *value* is not ISO-8601.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def epoch_to_iso(value: int | float) -> str:
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ------------------------------------------------------------------
# Credential <-> claims
# ------------------------------------------------------------------


def credential_to_claims(payload: CredentialPayload, remove_original_fields: bool = True) -> dict[str, Any]:
    """Map an unsigned credential to JWT claims.

    With *remove_original_fields*, the fields expressed as registered
    claims (issuer, issuanceDate, expirationDate, id, credentialSubject.id)
    are removed from ``vc`` so they are not carried twice.

    Raises
    ------
    ValueError
        If ``issuanceDate`` or ``expirationDate`` is not ISO-8601.
    """
    vc = payload.to_dict()
    claims: dict[str, Any] = {
        "iss": payload.issuer,
        "nbf": iso_to_epoch(payload.issuance_date),
    }
    if payload.subject_did:
        claims["sub"] = payload.subject_did
    if payload.expiration_date is not None:
        claims["exp"] = iso_to_epoch(payload.expiration_date)
    if payload.id is not None:
        claims["jti"] = payload.id

    if remove_original_fields:
        vc.pop("issuer", None)
        vc.pop("issuanceDate", None)
        vc.pop("expirationDate", None)
        vc.pop("id", None)
        subject = dict(vc["credentialSubject"])
        subject.pop("id", None)
        vc["credentialSubject"] = subject

    claims["vc"] = vc
    return claims


def claims_to_credential(claims: dict[str, Any], remove_original_fields: bool = True) -> dict[str, Any]:
    """Rebuild the W3C credential from JWT claims.

    The inverse of :func:`credential_to_claims`. Registered claims that
    were consumed are removed when *remove_original_fields* is set; the
    caller is still expected to strip any envelope aliases that remain.
    """
    rest = {k: v for k, v in claims.items() if k != "vc"}
    vc = dict(claims.get("vc") or {})
    credential: dict[str, Any] = {**rest, **vc}

    subject = dict(vc.get("credentialSubject") or {})
    if "sub" in rest and "id" not in subject:
        subject["id"] = rest["sub"]
    credential["credentialSubject"] = subject

    issuer = vc.get("issuer")
    if "iss" in rest:
        issuer = {**issuer, "id": rest["iss"]} if isinstance(issuer, dict) else {"id": rest["iss"]}
    elif isinstance(issuer, str):
        issuer = {"id": issuer}
    if issuer is not None:
        credential["issuer"] = issuer

    if "nbf" in rest:
        credential["issuanceDate"] = epoch_to_iso(rest["nbf"])
    if "exp" in rest:
        credential["expirationDate"] = epoch_to_iso(rest["exp"])
    if "jti" in rest:
        credential["id"] = rest["jti"]

    if remove_original_fields:
        for key in ("iss", "sub", "nbf", "exp", "jti"):
            credential.pop(key, None)
    credential.pop("vc", None)
    return credential


# ------------------------------------------------------------------
# Compact JWT
# ------------------------------------------------------------------


def encode_jwt(claims: dict[str, Any], kid: str, sign: Signer) -> str:
    """Sign *claims* into a compact EdDSA JWT."""
    header = {"alg": JWT_ALG, "typ": "JWT", "kid": kid}
    signing_input = f"{_json_segment(header)}.{_json_segment(claims)}"
    signature = sign(signing_input.encode("ascii"))
    return f"{signing_input}.{b64url_encode(signature)}"


@dataclass(frozen=True)
class DecodedJWT:
    """A parsed but not yet verified compact JWT."""

    header: dict[str, Any]
    claims: dict[str, Any]
    signing_input: bytes
    signature: bytes

    @property
    def kid(self) -> str | None:
        kid = self.header.get("kid")
        return str(kid) if kid else None

    @property
    def issuer(self) -> str | None:
        iss = self.claims.get("iss")
        return str(iss) if iss else None


def decode_jwt(token: str) -> DecodedJWT:
    """Parse a compact JWT without verifying it.

    Raises
    ------
    MalformedCredentialError
        If the token is not three base64url JSON segments, or uses an
        algorithm other than EdDSA.
    """
    parts = token.strip().split(".")
    if len(parts) != 3:
        raise MalformedCredentialError(f"Expected 3 dot-separated JWT parts, got {len(parts)}")
    header_b64, claims_b64, signature_b64 = parts
    try:
        header = json.loads(b64url_decode(header_b64))
        claims = json.loads(b64url_decode(claims_b64))
        signature = b64url_decode(signature_b64)
    except (ValueError, UnicodeDecodeError) as exc:
        raise MalformedCredentialError(f"Could not decode JWT: {exc}") from exc
    if not isinstance(header, dict) or not isinstance(claims, dict):
        raise MalformedCredentialError("JWT header and payload must be JSON objects.")
    if header.get("alg") != JWT_ALG:
        raise MalformedCredentialError(
            f"Unsupported JWT algorithm {header.get('alg')!r}. Expected {JWT_ALG!r}."
        )
    return DecodedJWT(
        header=header,
        claims=claims,
        signing_input=f"{header_b64}.{claims_b64}".encode("ascii"),
        signature=signature,
    )


__all__ = [
    "DecodedJWT",
    "JWT_ALG",
    "Signer",
    "b64url_decode",
    "b64url_encode",
    "claims_to_credential",
    "credential_to_claims",
    "decode_jwt",
    "encode_jwt",
    "epoch_to_iso",
    "iso_to_epoch",
]
