"""Sign unsigned credentials with keys held by the agent.

:class:`CredentialSigner` turns a :class:`CredentialPayload` issued by one
of the agent's own DIDs into a signed credential in its normalised W3C
form, with the compact JWT under ``proof.jwt``.
"""
from __future__ import annotations

import logging
from typing import Any

from credential_agent.credentials.jwt import claims_to_credential, credential_to_claims, encode_jwt
from credential_agent.credentials.models import (
    JWT_PROOF_TYPE,
    VC_PROOF_FORMAT,
    VC_REMOVE_ORIGINAL_FIELDS,
    CredentialPayload,
)
from credential_agent.errors import InvalidRequestError
from credential_agent.identity import IdentityResolver
from credential_agent.kms.key_store import KeyStore

logger = logging.getLogger(__name__)

SUPPORTED_PROOF_FORMATS: frozenset[str] = frozenset({VC_PROOF_FORMAT})


class CredentialSigner:
    """Produce JWT-proofed credentials for DIDs this agent controls.

    Parameters
    ----------
    identity:
        Used to find the managed identifier behind the payload's issuer.
    key_store:
        Holds the issuer's private key.
    """

    def __init__(self, identity: IdentityResolver, key_store: KeyStore) -> None:
        self._identity = identity
        self._key_store = key_store

    async def create_verifiable_credential(
        self,
        payload: CredentialPayload,
        proof_format: str = VC_PROOF_FORMAT,
        remove_original_fields: bool = VC_REMOVE_ORIGINAL_FIELDS,
    ) -> dict[str, Any]:
        """Sign *payload* and return the normalised credential dictionary.

        Parameters
        ----------
        payload:
            The unsigned credential. ``payload.issuer`` must be a DID
            created by this agent.
        proof_format:
            Only ``"jwt"`` is supported.
        remove_original_fields:
            Whether fields duplicated as JWT claims are removed from ``vc``
            and from the normalised result.

        Returns
        -------
        dict[str, Any]
            The W3C credential with ``proof = {"type": "JwtProof2020", "jwt": ...}``.

        Raises
        ------
        InvalidRequestError
            If the proof format is unsupported, the issuer is not managed by
            this agent, or a date field is not ISO-8601.
        """
        if proof_format not in SUPPORTED_PROOF_FORMATS:
            raise InvalidRequestError(
                f"Unsupported proof format {proof_format!r}. "
                f"Expected one of: {', '.join(sorted(SUPPORTED_PROOF_FORMATS))}"
            )
        identifier = self._identity.find_by_did(payload.issuer)
        if identifier is None:
            raise InvalidRequestError(
                f"Issuer {payload.issuer!r} is not a DID controlled by this agent."
            )

        try:
            claims = credential_to_claims(payload, remove_original_fields=remove_original_fields)
        except ValueError as exc:
            raise InvalidRequestError(f"Credential dates must be ISO-8601: {exc}") from exc

        key = identifier.signing_key
        token = encode_jwt(
            claims,
            kid=identifier.verification_method_id,
            sign=lambda data: self._key_store.sign(key.kid, data),
        )
        logger.debug("Signed credential for %s with %s", payload.subject_did, identifier.verification_method_id)

        credential = claims_to_credential(claims, remove_original_fields=remove_original_fields)
        credential["proof"] = {"type": JWT_PROOF_TYPE, "jwt": token}
        return credential


__all__ = ["CredentialSigner", "SUPPORTED_PROOF_FORMATS"]
