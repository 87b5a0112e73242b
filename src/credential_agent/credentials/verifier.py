"""CredentialVerifier — check JWT credentials against their issuer's DID.

Verification resolves the issuer DID named by the JWT ``iss`` claim and
checks the Ed25519 signature against the verification method named by the
``kid`` header, falling back to the document's other Ed25519 methods
(assertion methods first). A credential passed as JSON or a
:class:`~credential_agent.credentials.models.Credential` must also match
the payload its JWT signed, field for field.

Outcomes are split in two:

- a credential that can be checked but fails (bad signature, edited fields,
  outside its validity window) yields ``VerificationResult(verified=False, error=...)``
- input that cannot be checked at all raises: malformed input raises
  :class:`~credential_agent.errors.MalformedCredentialError`, an issuer that
  cannot be resolved raises a
  :class:`~credential_agent.errors.ResolutionError` subclass
"""
from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from credential_agent.audit import IssuanceAuditLog
from credential_agent.credentials.jwt import (
    DecodedJWT,
    claims_to_credential,
    decode_jwt,
    epoch_to_iso,
    iso_to_epoch,
)
from credential_agent.credentials.models import (
    JWT_ENVELOPE_FIELDS,
    Credential,
    VerificationError,
    VerificationErrorCode,
    VerificationResult,
)
from credential_agent.did.document import DIDDocument, VerificationMethod
from credential_agent.did.resolution import DIDResolutionRegistry
from credential_agent.errors import MalformedCredentialError
from credential_agent.kms.key_manager import Ed25519KeyManager

logger = logging.getLogger(__name__)

#: Tolerance for an issuer clock running ahead when checking ``nbf``.
CLOCK_SKEW_SECONDS: int = 300

_W3C_FIELDS: tuple[str, ...] = (
    "@context",
    "type",
    "issuer",
    "issuanceDate",
    "expirationDate",
    "credentialSubject",
    "credentialSchema",
    "id",
)
_DATE_FIELDS = frozenset({"issuanceDate", "expirationDate"})


class CredentialVerifier:
    """Verify JWT-proofed credentials.

    Parameters
    ----------
    registry:
        Resolves issuer DIDs to documents.
    key_manager:
        Ed25519 verification. Defaults to a fresh manager.
    audit:
        Optional audit log receiving one event per verification.
    clock:
        Returns the current time; used for the ``nbf`` and ``exp`` checks.
    """

    def __init__(
        self,
        registry: DIDResolutionRegistry,
        key_manager: Ed25519KeyManager | None = None,
        audit: IssuanceAuditLog | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self._registry = registry
        self._key_manager = key_manager or Ed25519KeyManager()
        self._audit = audit
        self._clock = clock or (lambda: datetime.datetime.now(datetime.timezone.utc))

    async def verify(self, credential: Credential | dict[str, Any] | str) -> VerificationResult:
        """Verify *credential*.

        Parameters
        ----------
        credential:
            A :class:`Credential`, its JSON dictionary form, or a compact JWT.

        Returns
        -------
        VerificationResult
            ``verified=True`` only if the signature matches a key of the
            issuer and no other check fails.

        Raises
        ------
        MalformedCredentialError
            If there is no JWT proof or it cannot be parsed.
        UnresolvableIssuerError
            If the issuer DID has no resolver or resolves to nothing.
        ResolutionNetworkError, ResolutionTimeoutError
            If resolution fails in transport.
        """
        token, presented = self._extract(credential)
        decoded = decode_jwt(token)
        issuer = decoded.issuer or (presented.issuer.id if presented is not None else None)
        if not issuer:
            raise MalformedCredentialError("Credential names no issuer (no 'iss' claim or issuer.id).")

        document = await self._registry.resolve(issuer)
        result = self._check(decoded, document, issuer, presented)

        if result.verified:
            logger.info("Credential from %s verified", issuer)
        else:
            logger.info("Credential from %s failed verification: %s", issuer, result.error.code.value)
        if self._audit is not None:
            await self._audit.log_verification(
                issuer, result.verified, result.error.code.value if result.error else None
            )
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract(credential: Credential | dict[str, Any] | str) -> tuple[str, Credential | None]:
        if isinstance(credential, str):
            return credential, None
        if isinstance(credential, dict):
            try:
                credential = Credential.from_dict(credential)
            except ValidationError as exc:
                raise MalformedCredentialError(f"Not a verifiable credential: {exc}") from exc
        if not isinstance(credential, Credential):
            raise MalformedCredentialError(
                f"Cannot verify object of type {type(credential).__name__!r}. "
                "Expected a Credential, a dict or a compact JWT string."
            )
        if not credential.jwt:
            raise MalformedCredentialError("Credential has no proof.jwt to verify.")
        return credential.jwt, credential

    def _check(
        self,
        decoded: DecodedJWT,
        document: DIDDocument,
        issuer: str,
        presented: Credential | None,
    ) -> VerificationResult:
        candidates = self._candidates(decoded, document)
        if not candidates:
            return _failed(
                issuer,
                VerificationErrorCode.NO_VERIFICATION_METHOD,
                f"Issuer {issuer!r} publishes no Ed25519 verification method.",
            )
        if not any(self._matches(method, decoded) for method in candidates):
            return _failed(
                issuer,
                VerificationErrorCode.SIGNATURE_MISMATCH,
                f"Signature does not match any verification method of {issuer!r}.",
            )
        if presented is not None:
            if presented.issuer.id != issuer:
                return _failed(
                    issuer,
                    VerificationErrorCode.ISSUER_MISMATCH,
                    f"issuer.id {presented.issuer.id!r} does not match the signed issuer {issuer!r}.",
                )
            altered = altered_fields(presented, decoded.claims)
            if altered:
                return _failed(
                    issuer,
                    VerificationErrorCode.CREDENTIAL_MISMATCH,
                    f"Credential JSON does not match the JWT payload: {', '.join(altered)}.",
                )

        now = self._clock().timestamp()
        nbf = decoded.claims.get("nbf")
        if _is_number(nbf) and nbf > now + CLOCK_SKEW_SECONDS:
            return _failed(
                issuer,
                VerificationErrorCode.CREDENTIAL_NOT_YET_VALID,
                f"Credential is not valid before {epoch_to_iso(nbf)}.",
            )
        exp = decoded.claims.get("exp")
        if _is_number(exp) and exp <= now:
            return _failed(issuer, VerificationErrorCode.CREDENTIAL_EXPIRED, "Credential has expired.")
        return VerificationResult(verified=True, issuer=issuer)

    @staticmethod
    def _candidates(decoded: DecodedJWT, document: DIDDocument) -> list[VerificationMethod]:
        candidates: list[VerificationMethod] = []
        if decoded.kid:
            named = document.resolve_verification_method(decoded.kid)
            if named is not None and named.is_ed25519:
                candidates.append(named)
        for method in document.assertion_candidates():
            if method not in candidates:
                candidates.append(method)
        return candidates

    def _matches(self, method: VerificationMethod, decoded: DecodedJWT) -> bool:
        try:
            public_key = method.public_key_bytes()
        except ValueError:
            logger.debug("Skipping %s: no usable public key", method.id)
            return False
        return self._key_manager.verify(public_key, decoded.signature, decoded.signing_input)


def altered_fields(presented: Credential, claims: dict[str, Any]) -> list[str]:
    """Name the W3C fields of *presented* that differ from the signed *claims*.

    The signed credential is rebuilt from the JWT payload and both sides
    are compared in their normalised JSON form, ``proof`` excluded. Dates
    compare by instant, so ``2024-05-01T12:00:00.000Z`` matches ``nbf``.
    Extra registered claims in the JWT (``iat`` and the like) are ignored
    unless the presented credential carries a field of the same name.

    Returns
    -------
    list[str]
        Sorted field names; empty when the credential is unaltered.
    """
    shown = presented.to_dict()
    shown.pop("proof", None)

    rebuilt = claims_to_credential(claims, remove_original_fields=False)
    try:
        signed = Credential.from_dict({**rebuilt, "proof": presented.proof.model_dump()}).to_dict()
    except ValidationError:
        signed = {k: v for k, v in rebuilt.items() if k not in JWT_ENVELOPE_FIELDS}
    signed.pop("proof", None)

    names = set(shown) | set(_W3C_FIELDS)
    return sorted(name for name in names if not _same_value(name, shown.get(name), signed.get(name)))


def _same_value(name: str, shown: Any, signed: Any) -> bool:
    if name in _DATE_FIELDS and isinstance(shown, str) and isinstance(signed, str):
        try:
            return iso_to_epoch(shown) == iso_to_epoch(signed)
        except ValueError:
            return shown == signed
    return shown == signed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _failed(issuer: str, code: VerificationErrorCode, message: str) -> VerificationResult:
    return VerificationResult(verified=False, issuer=issuer, error=VerificationError(code, message))


__all__ = ["CLOCK_SKEW_SECONDS", "CredentialVerifier", "altered_fields"]
