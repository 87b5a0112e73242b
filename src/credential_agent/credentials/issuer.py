"""CredentialIssuer — turn a credential request into a signed credential.

Issuance steps, in order:

1. Validate the request (``subjectDid`` present, dates well formed).
2. Read the network from the configured issuer identifier
   (``did:cheqd:<network>:<id>``) and validate it. Nothing is created or
   signed for an unrecognised network.
3. Create-or-get the issuer DID for the issuer alias on that network.
4. Build the unsigned payload and sign it as a JWT credential.
5. Strip the JWT envelope claims from the normalised result.
6. Deliver to the subject's Verida inbox when the subject is a
   ``did:vda`` identifier. Delivery never fails issuance; its outcome is
   reported on the :class:`IssuanceResult`.
"""
from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from typing import Any, Protocol

from pydantic import ValidationError

from credential_agent.audit import IssuanceAuditLog
from credential_agent.credentials.jwt import iso_to_epoch
from credential_agent.credentials.models import (
    JWT_ENVELOPE_FIELDS,
    VC_CONTEXT,
    VC_PROOF_FORMAT,
    VC_REMOVE_ORIGINAL_FIELDS,
    VC_TYPE,
    Credential,
    CredentialPayload,
    CredentialRequest,
    DeliveryStatus,
    IssuanceResult,
)
from credential_agent.did.network import network_from_did
from credential_agent.errors import InvalidRequestError
from credential_agent.identity import IdentityResolver
from credential_agent.messaging.gateway import VERIDA_DID_PREFIX, MessagingGateway

logger = logging.getLogger(__name__)

DEFAULT_ISSUER_ALIAS: str = "demo"

Clock = Callable[[], datetime.datetime]


class VerifiableCredentialFactory(Protocol):
    async def create_verifiable_credential(
        self,
        payload: CredentialPayload,
        proof_format: str = VC_PROOF_FORMAT,
        remove_original_fields: bool = VC_REMOVE_ORIGINAL_FIELDS,
    ) -> dict[str, Any]: ...


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def format_issuance_date(moment: datetime.datetime) -> str:
    """ISO-8601 UTC with second precision, e.g. ``2024-05-01T12:00:00Z``."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(datetime.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def strip_envelope(credential: dict[str, Any]) -> dict[str, Any]:
    """Return *credential* without the JWT envelope claims."""
    return {k: v for k, v in credential.items() if k not in JWT_ENVELOPE_FIELDS}


class CredentialIssuer:
    """Issue JWT credentials from the agent's issuer DID.

    Parameters
    ----------
    identity:
        Resolves the issuer alias to a DID, creating it on first use.
    factory:
        Signs payloads; normally the :class:`~credential_agent.agent.Agent`.
    issuer_id:
        Configured issuer identifier; only its network segment is used.
    issuer_alias:
        Logical name of the issuer DID.
    gateway:
        Optional inbox delivery. Without one, delivery is always skipped.
    audit:
        Optional audit log.
    clock:
        Returns the current time; override in tests.
    """

    def __init__(
        self,
        identity: IdentityResolver,
        factory: VerifiableCredentialFactory,
        issuer_id: str,
        issuer_alias: str = DEFAULT_ISSUER_ALIAS,
        gateway: MessagingGateway | None = None,
        audit: IssuanceAuditLog | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._identity = identity
        self._factory = factory
        self._issuer_id = issuer_id
        self._issuer_alias = issuer_alias
        self._gateway = gateway
        self._audit = audit
        self._clock = clock or _utcnow

    @property
    def issuer_alias(self) -> str:
        return self._issuer_alias

    async def issue(self, request: CredentialRequest | dict[str, Any]) -> IssuanceResult:
        """Issue a credential for *request*.

        Raises
        ------
        InvalidRequestError
            If the request has no subject DID or malformed fields.
        InvalidNetworkError
            If the issuer identifier names an unrecognised network.
        IdentityCreationError
            If the issuer DID cannot be created.
        """
        request = self._validate(request)
        subject_did = request.subject_did or ""

        network = network_from_did(self._issuer_id)
        issuer_did = await self._identity.ensure_issuer_did(
            self._issuer_alias, f"did:cheqd:{network.value}"
        )

        payload = self.build_payload(request, issuer_did)
        signed = await self._factory.create_verifiable_credential(
            payload,
            proof_format=VC_PROOF_FORMAT,
            remove_original_fields=VC_REMOVE_ORIGINAL_FIELDS,
        )
        credential = Credential.from_dict(strip_envelope(signed))
        logger.info("Issued %s credential to %s from %s", credential.type[0], subject_did, issuer_did)
        if self._audit is not None:
            await self._audit.log_issuance(issuer_did, subject_did, credential.issuance_date, list(credential.type))

        delivery = await self._deliver(credential, request)
        return IssuanceResult(credential=credential, delivery=delivery)

    def build_payload(self, request: CredentialRequest, issuer_did: str) -> CredentialPayload:
        """Assemble the unsigned credential.

        Request contexts and types come first, the base ones last, so the
        base values are always present.
        """
        subject = {"id": request.subject_did, **{k: v for k, v in request.attributes.items() if k != "id"}}
        return CredentialPayload(
            context=[*request.context, *VC_CONTEXT],
            type=[*request.type, VC_TYPE],
            issuer=issuer_did,
            issuance_date=format_issuance_date(self._clock()),
            credential_subject=subject,
            expiration_date=request.expiration_date,
            credential_schema=request.credential_schema,
        )

    @staticmethod
    def _validate(request: CredentialRequest | dict[str, Any]) -> CredentialRequest:
        if not isinstance(request, CredentialRequest):
            try:
                request = CredentialRequest.model_validate(request)
            except ValidationError as exc:
                raise InvalidRequestError(f"Invalid credential request: {exc}") from exc
        if not request.subject_did or not request.subject_did.strip():
            raise InvalidRequestError("subjectDid is required.")
        if request.expiration_date is not None:
            try:
                iso_to_epoch(request.expiration_date)
            except ValueError as exc:
                raise InvalidRequestError(
                    f"expirationDate {request.expiration_date!r} is not an ISO-8601 timestamp."
                ) from exc
        return request

    async def _deliver(self, credential: Credential, request: CredentialRequest) -> DeliveryStatus:
        subject_did = credential.subject_did or ""
        if not subject_did.startswith(VERIDA_DID_PREFIX):
            return DeliveryStatus.skipped("subject is not a did:vda identifier")
        if self._gateway is None:
            return DeliveryStatus.skipped("no messaging gateway configured")
        try:
            await self._gateway.send_credential(
                subject_did,
                credential,
                name=request.credential_name,
                summary=request.credential_summary,
            )
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or type(exc).__name__
            logger.warning("Delivery of credential to %s failed: %s", subject_did, reason)
            if self._audit is not None:
                await self._audit.log_delivery_failure(subject_did, credential.issuer.id, reason)
            return DeliveryStatus.failed(reason)
        return DeliveryStatus.delivered()


__all__ = [
    "CredentialIssuer",
    "DEFAULT_ISSUER_ALIAS",
    "VerifiableCredentialFactory",
    "format_issuance_date",
    "strip_envelope",
]
