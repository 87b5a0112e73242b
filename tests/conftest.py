"""Shared fixtures: in-memory ledger, messaging transport and a wired Agent."""
from __future__ import annotations

import asyncio
import datetime
from collections.abc import Callable

import pytest

from credential_agent.agent import Agent, MessagingSettings
from credential_agent.did.cheqd import CheqdDIDProvider, LedgerError, SignInput
from credential_agent.did.did_key import DIDKeyProvider, did_key_resolver
from credential_agent.did.document import DIDDocument
from credential_agent.did.network import NetworkType
from credential_agent.did.resolution import DIDResolutionRegistry, Resolver
from credential_agent.errors import DeliveryError
from credential_agent.kms.key_store import KeyStore
from credential_agent.messaging.gateway import (
    InboxMessage,
    MessagingGateway,
    SessionRequest,
    VeridaEnvironment,
)

ISSUER_ID = "did:cheqd:testnet:5a9dd4b1-6e4b-4b36-9d7d-2e1c7a4f3b10"
ACCOUNT_KEY = "11" * 32
CHAIN_KEY = "chain-key-for-tests"
VERIDA_SUBJECT = "did:vda:testnet:0x6B2a3eAa4b7A8d6C2f4a1B3e5D7c9E1f2A3b4C5d"
KEY_SUBJECT = "did:key:z6MkhaXgBZDvotDkL5257faiztiGiC2QtKLGpbnnEGta2doK"


class FakeLedger:
    """Ledger that keeps anchored documents in memory and can resolve them."""

    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.calls = 0
        self.documents: dict[str, DIDDocument] = {}
        self.sign_inputs: dict[str, list[SignInput]] = {}
        self.networks: list[NetworkType] = []

    async def create_did_doc(
        self, document: DIDDocument, sign_inputs: list[SignInput], network: NetworkType
    ) -> None:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise LedgerError("ledger unavailable")
        self.documents[document.id] = document
        self.sign_inputs[document.id] = sign_inputs
        self.networks.append(network)

    def resolver(self) -> Resolver:
        async def resolve(did: str) -> DIDDocument | None:
            return self.documents.get(did)

        return resolve


class FakeTransport:
    """Messaging transport that records sessions and messages."""

    def __init__(self, fail_send: bool = False) -> None:
        self.fail_send = fail_send
        self.sessions: list[SessionRequest] = []
        self.sent: list[tuple[str, InboxMessage]] = []
        self.closed: list[str] = []

    async def open_session(self, request: SessionRequest) -> str:
        self.sessions.append(request)
        return f"token-{len(self.sessions)}"

    async def send(self, token: str, message: InboxMessage) -> None:
        if self.fail_send:
            raise DeliveryError(message.recipient_did, "inbox unavailable")
        self.sent.append((token, message))

    async def close_session(self, token: str) -> None:
        self.closed.append(token)


def build_agent(
    ledger: FakeLedger,
    transport: FakeTransport | None = None,
    issuer_id: str = ISSUER_ID,
    network: NetworkType = NetworkType.TESTNET,
    clock: Callable[[], datetime.datetime] | None = None,
) -> Agent:
    key_store = KeyStore()
    cheqd = CheqdDIDProvider(key_store, ledger, network)
    did_key = DIDKeyProvider(key_store)
    registry = DIDResolutionRegistry({"cheqd": ledger.resolver(), "key": did_key_resolver()})
    gateway = MessagingGateway(transport) if transport is not None else None
    messaging = None
    if gateway is not None:
        messaging = MessagingSettings(
            environment=VeridaEnvironment.TESTNET,
            app_context="Credential Service",
            account_key=ACCOUNT_KEY,
            chain_key=CHAIN_KEY,
        )
    return Agent(
        key_store=key_store,
        providers={cheqd.prefix: cheqd, did_key.prefix: did_key},
        default_provider=cheqd.prefix,
        registry=registry,
        issuer_id=issuer_id,
        gateway=gateway,
        messaging=messaging,
        clock=clock,
    )


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def agent(ledger: FakeLedger, transport: FakeTransport) -> Agent:
    return build_agent(ledger, transport)


@pytest.fixture()
def make_agent() -> Callable[..., Agent]:
    return build_agent
