"""Tests for credential_agent.credentials.verifier — CredentialVerifier."""
from __future__ import annotations

import datetime
import json

import pytest

from credential_agent.credentials.jwt import b64url_encode, decode_jwt, encode_jwt
from credential_agent.credentials.models import VerificationErrorCode
from credential_agent.credentials.verifier import CLOCK_SKEW_SECONDS, altered_fields
from credential_agent.did.document import DIDDocument
from credential_agent.errors import MalformedCredentialError, UnresolvableIssuerError, UnsupportedMethodError
from credential_agent.kms.key_store import KeyStore

KEY_SUBJECT = "did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK"


async def _issue(agent, **request: object):  # type: ignore[no-untyped-def]
    return (await agent.issue_credential({"subjectDid": KEY_SUBJECT, **request})).credential


def _replace_claims(token: str, **claims: object) -> str:
    header, _, signature = token.split(".")
    payload = dict(decode_jwt(token).claims)
    payload.update(claims)
    body = b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{header}.{body}.{signature}"


class TestVerified:
    @pytest.mark.asyncio
    async def test_issued_credential_verifies(self, agent) -> None:
        credential = await _issue(agent, attributes={"name": "Alice"})
        result = await agent.verify_credential(credential)
        assert result.verified is True
        assert result.issuer == credential.issuer.id
        assert result.error is None

    @pytest.mark.asyncio
    async def test_dict_form_verifies(self, agent) -> None:
        credential = await _issue(agent)
        assert (await agent.verify_credential(credential.to_dict())).verified

    @pytest.mark.asyncio
    async def test_issued_credential_matches_its_jwt(self, agent) -> None:
        credential = await _issue(agent, attributes={"role": "guest"}, expirationDate="2999-01-01T00:00:00Z")
        assert altered_fields(credential, decode_jwt(credential.jwt).claims) == []

    @pytest.mark.asyncio
    async def test_compact_jwt_verifies(self, agent) -> None:
        credential = await _issue(agent)
        assert (await agent.verify_credential(credential.jwt)).verified

    @pytest.mark.asyncio
    async def test_future_expiry_verifies(self, agent) -> None:
        credential = await _issue(agent, expirationDate="2999-01-01T00:00:00Z")
        assert (await agent.verify_credential(credential)).verified

    @pytest.mark.asyncio
    async def test_verification_is_audited(self, agent) -> None:
        credential = await _issue(agent)
        agent.audit.drain_buffer()
        await agent.verify_credential(credential)
        [event] = [json.loads(line) for line in agent.audit.drain_buffer()]
        assert event["event_type"] == "credential_verified"
        assert event["details"] == {"verified": True, "error_code": None}


class TestNotVerified:
    @pytest.mark.asyncio
    async def test_tampered_claims_fail_signature(self, agent) -> None:
        credential = await _issue(agent, attributes={"level": "silver"})
        token = decode_jwt(credential.jwt)
        vc = dict(token.claims["vc"])
        vc["credentialSubject"] = {"level": "gold"}
        result = await agent.verify_credential(_replace_claims(credential.jwt, vc=vc))
        assert result.verified is False
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.SIGNATURE_MISMATCH

    @pytest.mark.asyncio
    async def test_signature_from_other_key_fails(self, agent) -> None:
        credential = await _issue(agent)
        decoded = decode_jwt(credential.jwt)
        store = KeyStore()
        key = store.create_key()
        forged = encode_jwt(decoded.claims, kid=decoded.kid or "", sign=lambda data: store.sign(key.kid, data))
        result = await agent.verify_credential(forged)
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.SIGNATURE_MISMATCH

    @pytest.mark.asyncio
    async def test_expired_credential(self, agent) -> None:
        credential = await _issue(agent, expirationDate="2020-01-01T00:00:00Z")
        result = await agent.verify_credential(credential)
        assert result.verified is False
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.CREDENTIAL_EXPIRED

    @pytest.mark.asyncio
    async def test_expiry_uses_clock(self, ledger, make_agent) -> None:
        later = datetime.datetime(2031, 1, 1, tzinfo=datetime.timezone.utc)
        issuing = make_agent(ledger)
        credential = await _issue(issuing, expirationDate="2030-01-01T00:00:00Z")
        checking = make_agent(ledger, clock=lambda: later)
        result = await checking.verify_credential(credential)
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.CREDENTIAL_EXPIRED

    @pytest.mark.asyncio
    async def test_issuer_mismatch(self, agent) -> None:
        credential = await _issue(agent)
        data = credential.to_dict()
        data["issuer"] = {"id": "did:cheqd:testnet:someone-else"}
        result = await agent.verify_credential(data)
        assert result.issuer == credential.issuer.id
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.ISSUER_MISMATCH

    @pytest.mark.asyncio
    async def test_edited_json_fields_fail(self, agent) -> None:
        credential = await _issue(agent, attributes={"role": "guest"})
        data = credential.to_dict()
        data["credentialSubject"]["role"] = "admin"
        data["type"] = ["AdminPass", "VerifiableCredential"]
        result = await agent.verify_credential(data)
        assert result.verified is False
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.CREDENTIAL_MISMATCH
        assert "credentialSubject" in result.error.message
        assert "type" in result.error.message

    @pytest.mark.asyncio
    async def test_edited_credential_object_fails(self, agent) -> None:
        credential = await _issue(agent, expirationDate="2999-01-01T00:00:00Z")
        edited = credential.model_copy(update={"expiration_date": "3999-01-01T00:00:00Z"})
        result = await agent.verify_credential(edited)
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.CREDENTIAL_MISMATCH
        assert "expirationDate" in result.error.message

    @pytest.mark.asyncio
    async def test_added_top_level_field_fails(self, agent) -> None:
        data = (await _issue(agent)).to_dict()
        data["evidence"] = [{"type": "DocumentVerification"}]
        result = await agent.verify_credential(data)
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.CREDENTIAL_MISMATCH

    @pytest.mark.asyncio
    async def test_equivalent_date_notation_still_verifies(self, agent) -> None:
        data = (await _issue(agent)).to_dict()
        data["issuanceDate"] = data["issuanceDate"].replace("Z", ".000+00:00")
        assert (await agent.verify_credential(data)).verified

    @pytest.mark.asyncio
    async def test_future_nbf_is_not_yet_valid(self, ledger, make_agent) -> None:
        future = datetime.datetime(2999, 1, 1, tzinfo=datetime.timezone.utc)
        issuing = make_agent(ledger, clock=lambda: future)
        credential = await _issue(issuing)
        checking = make_agent(ledger)
        for form in (credential, credential.jwt):
            result = await checking.verify_credential(form)
            assert result.verified is False
            assert result.error is not None
            assert result.error.code is VerificationErrorCode.CREDENTIAL_NOT_YET_VALID

    @pytest.mark.asyncio
    async def test_nbf_within_clock_skew_verifies(self, ledger, make_agent) -> None:
        ahead = datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(seconds=CLOCK_SKEW_SECONDS // 2)
        issuing = make_agent(ledger, clock=lambda: ahead)
        credential = await _issue(issuing)
        assert (await make_agent(ledger).verify_credential(credential)).verified

    @pytest.mark.asyncio
    async def test_document_without_keys(self, agent, ledger) -> None:
        did = "did:cheqd:testnet:keyless"
        ledger.documents[did] = DIDDocument(id=did)
        store = KeyStore()
        key = store.create_key()
        token = encode_jwt({"iss": did}, kid=f"{did}#key-1", sign=lambda data: store.sign(key.kid, data))
        result = await agent.verify_credential(token)
        assert result.error is not None
        assert result.error.code is VerificationErrorCode.NO_VERIFICATION_METHOD


class TestErrors:
    @pytest.mark.asyncio
    async def test_unsupported_issuer_method_raises(self, agent) -> None:
        store = KeyStore()
        key = store.create_key()
        token = encode_jwt(
            {"iss": "did:ethr:0xabc"}, kid="did:ethr:0xabc#controller", sign=lambda data: store.sign(key.kid, data)
        )
        with pytest.raises(UnsupportedMethodError):
            await agent.verify_credential(token)

    @pytest.mark.asyncio
    async def test_unknown_issuer_raises(self, agent) -> None:
        store = KeyStore()
        key = store.create_key()
        did = "did:cheqd:testnet:never-anchored"
        token = encode_jwt({"iss": did}, kid=f"{did}#key-1", sign=lambda data: store.sign(key.kid, data))
        with pytest.raises(UnresolvableIssuerError):
            await agent.verify_credential(token)

    @pytest.mark.asyncio
    async def test_missing_proof_is_malformed(self, agent) -> None:
        data = (await _issue(agent)).to_dict()
        del data["proof"]
        with pytest.raises(MalformedCredentialError):
            await agent.verify_credential(data)

    @pytest.mark.asyncio
    async def test_proof_without_jwt_is_malformed(self, agent) -> None:
        data = (await _issue(agent)).to_dict()
        data["proof"] = {"type": "Ed25519Signature2020", "proofValue": "z3abc"}
        with pytest.raises(MalformedCredentialError, match="proof.jwt"):
            await agent.verify_credential(data)

    @pytest.mark.asyncio
    async def test_garbage_token_is_malformed(self, agent) -> None:
        with pytest.raises(MalformedCredentialError):
            await agent.verify_credential("not-a-jwt")

    @pytest.mark.asyncio
    async def test_unsupported_input_type_is_malformed(self, agent) -> None:
        with pytest.raises(MalformedCredentialError):
            await agent.verify_credential(42)  # type: ignore[arg-type]
