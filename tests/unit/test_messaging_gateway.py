"""Tests for credential_agent.messaging.gateway."""
from __future__ import annotations

import base64
import json

import httpx
import pytest

from credential_agent.credentials.models import Credential
from credential_agent.errors import DeliveryError, MessagingError, NotConnectedError
from credential_agent.kms.key_manager import Ed25519KeyManager
from credential_agent.messaging.gateway import (
    HttpMessagingTransport,
    InboxMessage,
    MessagingGateway,
    SessionRequest,
    VERIDA_CREDENTIAL_RECORD_SCHEMA,
    VeridaEnvironment,
    build_credential_record,
    default_credential_name,
)

ACCOUNT_KEY = "11" * 32
RECIPIENT = "did:vda:testnet:0x6B2a3eAa4b7A8d6C2f4a1B3e5D7c9E1f2A3b4C5d"
SERVER = "https://messages.example.net/"


def _credential(types: list[str] | None = None, jwt: str | None = "a.b.c") -> Credential:
    return Credential.from_dict(
        {
            "@context": ["https://www.w3.org/2018/credentials/v1"],
            "type": types or ["VerifiableCredential"],
            "issuer": {"id": "did:cheqd:testnet:abc"},
            "issuanceDate": "2024-05-01T12:00:00Z",
            "credentialSubject": {"id": RECIPIENT},
            "proof": {"type": "JwtProof2020", "jwt": jwt},
        }
    )


def _client(handler) -> httpx.AsyncClient:  # type: ignore[no-untyped-def]
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestCredentialRecord:
    def test_default_name_skips_base_type(self) -> None:
        assert default_credential_name(_credential(["VerifiableCredential", "Membership"])) == "Membership"
        assert default_credential_name(_credential()) == "Verifiable Credential"

    def test_record_shape(self) -> None:
        credential = _credential()
        record = build_credential_record(credential, "Membership", summary="Gold")
        assert record == {
            "name": "Membership",
            "schema": VERIDA_CREDENTIAL_RECORD_SCHEMA,
            "didJwtVc": "a.b.c",
            "credentialSchema": None,
            "credentialData": credential.to_dict(),
            "summary": "Gold",
        }

    def test_record_requires_jwt(self) -> None:
        with pytest.raises(ValueError):
            build_credential_record(_credential(jwt=None), "Membership")


# ---------------------------------------------------------------------------
# MessagingGateway
# ---------------------------------------------------------------------------


class TestMessagingGateway:
    @pytest.mark.asyncio
    async def test_deliver_before_connect_raises(self, transport) -> None:
        gateway = MessagingGateway(transport)
        assert gateway.connected is False
        with pytest.raises(NotConnectedError):
            await gateway.deliver(RECIPIENT, "hello", {})
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_connect_signs_context_name(self, transport) -> None:
        gateway = MessagingGateway(transport)
        session = await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")

        manager = Ed25519KeyManager()
        public_key = manager.public_key_for(bytes.fromhex(ACCOUNT_KEY))
        [request] = transport.sessions
        assert session.account_did == f"did:vda:testnet:{public_key.hex()}"
        assert request.account_did == session.account_did
        assert request.environment is VeridaEnvironment.TESTNET
        assert manager.verify(public_key, base64.b64decode(request.signature), b"Credential Service")
        assert "chain" not in json.dumps(request.to_dict())

    @pytest.mark.asyncio
    async def test_chain_key_is_not_retained(self, transport) -> None:
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain-secret")
        assert "chain-secret" not in repr(vars(gateway))

    @pytest.mark.asyncio
    async def test_connect_twice_raises(self, transport) -> None:
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        with pytest.raises(MessagingError, match="Already connected"):
            await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")

    @pytest.mark.asyncio
    async def test_reconnect_after_close(self, transport) -> None:
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        await gateway.close()
        assert gateway.connected is False
        assert transport.closed == ["token-1"]
        session = await gateway.connect("mainnet", "Credential Service", ACCOUNT_KEY, "chain")
        assert session.token == "token-2"
        assert session.account_did.startswith("did:vda:mainnet:")

    @pytest.mark.asyncio
    async def test_close_without_session_is_noop(self, transport) -> None:
        await MessagingGateway(transport).close()
        assert transport.closed == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "environment, app_context, account_key, chain_key",
        [
            ("devnet", "Credential Service", ACCOUNT_KEY, "chain"),
            ("testnet", "", ACCOUNT_KEY, "chain"),
            ("testnet", "Credential Service", ACCOUNT_KEY, ""),
            ("testnet", "Credential Service", "not-hex", "chain"),
            ("testnet", "Credential Service", "11" * 8, "chain"),
        ],
    )
    async def test_invalid_connect_arguments(
        self, transport, environment: str, app_context: str, account_key: str, chain_key: str
    ) -> None:
        gateway = MessagingGateway(transport)
        with pytest.raises(MessagingError):
            await gateway.connect(environment, app_context, account_key, chain_key)
        assert gateway.connected is False
        assert transport.sessions == []

    @pytest.mark.asyncio
    async def test_deliver_wraps_record(self, transport) -> None:
        gateway = MessagingGateway(transport)
        session = await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        await gateway.deliver(RECIPIENT, "hello", {"name": "x"})
        [(token, message)] = transport.sent
        assert token == session.token
        assert message.data == {"data": [{"name": "x"}]}
        assert message.sender_did == session.account_did
        assert message.sender_context == "Credential Service"

    @pytest.mark.asyncio
    async def test_send_credential_default_subject(self, transport) -> None:
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        await gateway.send_credential(RECIPIENT, _credential(["VerifiableCredential", "Membership"]))
        [(_, message)] = transport.sent
        assert message.subject == "New credential: Membership"

    @pytest.mark.asyncio
    async def test_send_credential_without_jwt_raises_delivery_error(self, transport) -> None:
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        with pytest.raises(DeliveryError):
            await gateway.send_credential(RECIPIENT, _credential(jwt=None))

    @pytest.mark.asyncio
    async def test_transport_failure_raises_delivery_error(self, transport) -> None:
        transport.fail_send = True
        gateway = MessagingGateway(transport)
        await gateway.connect("testnet", "Credential Service", ACCOUNT_KEY, "chain")
        with pytest.raises(DeliveryError) as exc_info:
            await gateway.deliver(RECIPIENT, "hello", {})
        assert exc_info.value.recipient_did == RECIPIENT


# ---------------------------------------------------------------------------
# HttpMessagingTransport
# ---------------------------------------------------------------------------


def _session_request() -> SessionRequest:
    return SessionRequest(VeridaEnvironment.TESTNET, "did:vda:testnet:abc", "Credential Service", "c2ln")


def _message() -> InboxMessage:
    return InboxMessage(RECIPIENT, "hello", {"data": []}, "did:vda:testnet:abc", "Credential Service")


class TestHttpMessagingTransport:
    def test_requires_a_server(self) -> None:
        with pytest.raises(ValueError):
            HttpMessagingTransport(httpx.AsyncClient(), servers=())

    @pytest.mark.asyncio
    async def test_open_session_returns_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"token": "abc"})

        async with _client(handler) as client:
            token = await HttpMessagingTransport(client, [SERVER]).open_session(_session_request())
        assert token == "abc"
        assert str(seen[0].url) == SERVER + "auth/session"
        assert json.loads(seen[0].content)["contextName"] == "Credential Service"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [httpx.Response(401), httpx.Response(200, json={}), httpx.Response(200, text="oops")],
    )
    async def test_open_session_failures(self, response: httpx.Response) -> None:
        async with _client(lambda request: response) as client:
            with pytest.raises(MessagingError):
                await HttpMessagingTransport(client, [SERVER]).open_session(_session_request())

    @pytest.mark.asyncio
    async def test_send_uses_bearer_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(202)

        async with _client(handler) as client:
            await HttpMessagingTransport(client, [SERVER.rstrip("/")]).send("abc", _message())
        [request] = seen
        body = json.loads(request.content)
        assert str(request.url) == SERVER + "messages"
        assert request.headers["Authorization"] == "Bearer abc"
        assert body["type"] == "inbox/type/dataSend"
        assert body["recipient"] == {"did": RECIPIENT, "contextName": "Verida: Vault"}

    @pytest.mark.asyncio
    async def test_send_http_error_raises_delivery_error(self) -> None:
        async with _client(lambda request: httpx.Response(500, text="boom")) as client:
            with pytest.raises(DeliveryError, match="HTTP 500"):
                await HttpMessagingTransport(client, [SERVER]).send("abc", _message())

    @pytest.mark.asyncio
    async def test_send_timeout_raises_delivery_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            with pytest.raises(DeliveryError, match="timed out"):
                await HttpMessagingTransport(client, [SERVER]).send("abc", _message())

    @pytest.mark.asyncio
    async def test_close_session_ignores_transport_errors(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            await HttpMessagingTransport(client, [SERVER]).close_session("abc")
