"""Tests for credential_agent.identity — IdentityResolver create-or-get."""
from __future__ import annotations

import asyncio
import json

import pytest

from credential_agent.audit import IssuanceAuditLog
from credential_agent.did.cheqd import CheqdDIDProvider
from credential_agent.did.did_key import DIDKeyProvider
from credential_agent.did.network import NetworkType
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.errors import IdentityCreationError
from credential_agent.identity import IdentityResolver
from credential_agent.kms.key_store import KeyStore


def _resolver(ledger, audit: IssuanceAuditLog | None = None) -> IdentityResolver:
    store = KeyStore()
    cheqd = CheqdDIDProvider(store, ledger, NetworkType.TESTNET)
    did_key = DIDKeyProvider(store)
    return IdentityResolver({cheqd.prefix: cheqd, did_key.prefix: did_key}, cheqd.prefix, audit=audit)


class TestIdentityResolver:
    def test_default_provider_must_be_configured(self, ledger) -> None:
        cheqd = CheqdDIDProvider(KeyStore(), ledger, NetworkType.TESTNET)
        with pytest.raises(ValueError, match="Default provider"):
            IdentityResolver({cheqd.prefix: cheqd}, "did:key")

    @pytest.mark.asyncio
    async def test_ensure_issuer_did_is_idempotent(self, ledger) -> None:
        resolver = _resolver(ledger)
        first = await resolver.ensure_issuer_did("demo")
        second = await resolver.ensure_issuer_did("demo")
        assert first == second
        assert ledger.calls == 1

    @pytest.mark.asyncio
    async def test_distinct_aliases_get_distinct_dids(self, ledger) -> None:
        resolver = _resolver(ledger)
        demo = await resolver.ensure_issuer_did("demo")
        other = await resolver.ensure_issuer_did("other")
        assert demo != other
        assert resolver.aliases() == {
            "did:cheqd:testnet/demo": demo,
            "did:cheqd:testnet/other": other,
        }

    @pytest.mark.asyncio
    async def test_alias_is_scoped_per_provider(self, ledger) -> None:
        resolver = _resolver(ledger)
        cheqd_did = await resolver.ensure_issuer_did("demo")
        key_did = await resolver.ensure_issuer_did("demo", provider="did:key")
        assert cheqd_did.startswith("did:cheqd:testnet:")
        assert key_did.startswith("did:key:")
        assert resolver.get("demo", provider="did:key").did == key_did

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_create_once(self, ledger) -> None:
        ledger.delay = 0.01
        resolver = _resolver(ledger)
        dids = await asyncio.gather(*(resolver.ensure_issuer_did("demo") for _ in range(8)))
        assert len(set(dids)) == 1
        assert ledger.calls == 1

    @pytest.mark.asyncio
    async def test_unknown_provider_raises(self, ledger) -> None:
        resolver = _resolver(ledger)
        with pytest.raises(IdentityCreationError, match="did:cheqd:mainnet"):
            await resolver.ensure_issuer_did("demo", provider="did:cheqd:mainnet")

    @pytest.mark.asyncio
    async def test_ledger_failure_raises_and_binds_nothing(self, ledger) -> None:
        ledger.fail = True
        resolver = _resolver(ledger)
        with pytest.raises(IdentityCreationError):
            await resolver.ensure_issuer_did("demo")
        assert resolver.get("demo") is None

        ledger.fail = False
        assert (await resolver.ensure_issuer_did("demo")).startswith("did:cheqd:testnet:")

    @pytest.mark.asyncio
    async def test_find_by_did(self, ledger) -> None:
        resolver = _resolver(ledger)
        did = await resolver.ensure_issuer_did("demo")
        identifier = resolver.find_by_did(did)
        assert identifier is not None and identifier.alias == "demo"
        assert resolver.find_by_did("did:cheqd:testnet:unknown") is None

    @pytest.mark.asyncio
    async def test_creation_is_audited_once(self, ledger) -> None:
        audit = IssuanceAuditLog()
        resolver = _resolver(ledger, audit)
        await resolver.ensure_issuer_did("demo")
        await resolver.ensure_issuer_did("demo")
        events = [json.loads(line) for line in audit.drain_buffer()]
        assert [e["event_type"] for e in events] == ["issuer_did_created"]
        assert events[0]["details"]["alias"] == "demo"

    @pytest.mark.asyncio
    async def test_unexpected_provider_failure_is_wrapped(self) -> None:
        provider = _FailingProvider(KeyStore(), "did:example")
        resolver = IdentityResolver({provider.prefix: provider}, provider.prefix)
        with pytest.raises(IdentityCreationError, match="disk full") as exc_info:
            await resolver.ensure_issuer_did("demo")
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert resolver.get("demo") is None


class _FailingProvider(DIDProvider):
    async def create_identifier(self, alias: str) -> ManagedIdentifier:
        raise RuntimeError("disk full")
