"""Tests for credential_agent.did — parsing, documents, multibase, did:key, networks."""
from __future__ import annotations

import pytest

from credential_agent.did.did_key import DIDKeyProvider, did_key_document, public_key_to_did
from credential_agent.did.document import DIDDocument, VerificationMethod, parse_did
from credential_agent.did.multibase import (
    base58btc_decode,
    base58btc_encode,
    ed25519_to_multibase,
    multibase_to_ed25519,
)
from credential_agent.did.network import NetworkType, network_from_did, validate_network
from credential_agent.errors import InvalidNetworkError
from credential_agent.kms.key_store import KeyStore

CHEQD_DID = "did:cheqd:testnet:5a9dd4b1-6e4b-4b36-9d7d-2e1c7a4f3b10"


# ---------------------------------------------------------------------------
# parse_did
# ---------------------------------------------------------------------------


class TestParseDID:
    def test_splits_method_and_id(self) -> None:
        parsed = parse_did(CHEQD_DID)
        assert parsed.method == "cheqd"
        assert parsed.segments[0] == "testnet"

    def test_ignores_fragment_and_query(self) -> None:
        parsed = parse_did(CHEQD_DID + "#key-1")
        assert parsed.did == CHEQD_DID
        assert parse_did("did:web:example.com?service=x").did == "did:web:example.com"

    @pytest.mark.parametrize("value", ["", "did:", "did:cheqd", "cheqd:testnet:abc", "did:CHEQD:x"])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(ValueError, match="Malformed DID"):
            parse_did(value)


# ---------------------------------------------------------------------------
# Network namespaces
# ---------------------------------------------------------------------------


class TestNetwork:
    def test_validate_known_networks(self) -> None:
        assert validate_network("testnet") is NetworkType.TESTNET
        assert validate_network("mainnet") is NetworkType.MAINNET

    def test_network_from_did(self) -> None:
        assert network_from_did(CHEQD_DID) is NetworkType.TESTNET

    def test_unknown_network_raises(self) -> None:
        with pytest.raises(InvalidNetworkError) as exc_info:
            network_from_did("did:cheqd:bogusnet:abc123")
        assert exc_info.value.namespace == "bogusnet"
        assert "testnet" in exc_info.value.allowed

    def test_missing_network_segment_raises(self) -> None:
        with pytest.raises(InvalidNetworkError):
            network_from_did("did:cheqd:abc123")


# ---------------------------------------------------------------------------
# Multibase
# ---------------------------------------------------------------------------


class TestMultibase:
    def test_base58_known_vector(self) -> None:
        assert base58btc_encode(b"hello world") == "StV1DL6CwTryKyV"
        assert base58btc_decode("StV1DL6CwTryKyV") == b"hello world"

    def test_leading_zero_bytes_preserved(self) -> None:
        assert base58btc_decode(base58btc_encode(b"\x00\x00abc")) == b"\x00\x00abc"

    def test_ed25519_multibase_starts_with_z6mk(self) -> None:
        public_bytes = KeyStore().create_key().public_key
        value = ed25519_to_multibase(public_bytes)
        assert value.startswith("z6Mk")
        assert multibase_to_ed25519(value) == public_bytes

    def test_multibase_rejects_wrong_prefix(self) -> None:
        with pytest.raises(ValueError):
            multibase_to_ed25519("m" + base58btc_encode(b"\x00" * 34))


# ---------------------------------------------------------------------------
# DIDDocument
# ---------------------------------------------------------------------------


def _resolution_result() -> dict[str, object]:
    key = KeyStore().create_key().public_key
    return {
        "didDocument": {
            "@context": "https://www.w3.org/ns/did/v1",
            "id": CHEQD_DID,
            "controller": [CHEQD_DID],
            "verificationMethod": [
                {
                    "id": "#key-1",
                    "type": "Ed25519VerificationKey2020",
                    "controller": CHEQD_DID,
                    "publicKeyMultibase": ed25519_to_multibase(key),
                }
            ],
            "authentication": ["#key-1"],
            "assertionMethod": [CHEQD_DID + "#key-1"],
        },
        "didResolutionMetadata": {"contentType": "application/did+ld+json"},
    }


class TestDIDDocument:
    def test_from_resolution_result(self) -> None:
        document = DIDDocument.from_dict(_resolution_result())
        assert document.id == CHEQD_DID
        assert document.method == "cheqd"
        assert document.verification_method[0].id == CHEQD_DID + "#key-1"
        assert document.assertion_method == [CHEQD_DID + "#key-1"]

    def test_resolve_relative_method_id(self) -> None:
        document = DIDDocument.from_dict(_resolution_result())
        assert document.resolve_verification_method("#key-1") is not None
        assert document.resolve_verification_method("#key-9") is None

    def test_assertion_candidates_are_ed25519(self) -> None:
        document = DIDDocument.from_dict(_resolution_result())
        candidates = document.assertion_candidates()
        assert [vm.id for vm in candidates] == [CHEQD_DID + "#key-1"]
        assert len(candidates[0].public_key_bytes()) == 32

    def test_to_dict_uses_w3c_names(self) -> None:
        data = DIDDocument.from_dict(_resolution_result()).to_dict()
        assert data["id"] == CHEQD_DID
        assert "verificationMethod" in data
        assert "assertionMethod" in data
        assert "service" not in data

    def test_rejects_dangling_reference(self) -> None:
        with pytest.raises(ValueError):
            DIDDocument(id=CHEQD_DID, authentication=[CHEQD_DID + "#missing"])

    def test_from_dict_requires_id(self) -> None:
        with pytest.raises(ValueError):
            DIDDocument.from_dict({"verificationMethod": []})

    def test_jwk_method_requires_ed25519_curve(self) -> None:
        method = VerificationMethod(
            id=CHEQD_DID + "#jwk",
            type="JsonWebKey2020",
            controller=CHEQD_DID,
            public_key_jwk={"kty": "EC", "crv": "secp256k1", "x": "abc"},
        )
        assert method.is_ed25519 is False


# ---------------------------------------------------------------------------
# did:key
# ---------------------------------------------------------------------------


class TestDIDKey:
    def test_document_round_trips_public_key(self) -> None:
        key = KeyStore().create_key()
        did = public_key_to_did(key.public_key)
        document = did_key_document(did)
        assert document.id == did
        assert document.assertion_candidates()[0].public_key_bytes() == key.public_key

    def test_invalid_did_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid did:key"):
            did_key_document("did:key:abc")

    @pytest.mark.asyncio
    async def test_provider_creates_and_remembers(self) -> None:
        store = KeyStore()
        provider = DIDKeyProvider(store)
        identifier = await provider.create_identifier("local")
        assert identifier.did.startswith("did:key:z6Mk")
        assert provider.get(identifier.did) is identifier
        assert identifier.signing_key.kid in store
        assert identifier.verification_method_id.startswith(identifier.did + "#")
