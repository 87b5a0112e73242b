"""MessagingGateway — deliver credentials to Verida inboxes.

A Verida user receives data through the inbox of their ``Verida: Vault``
context. The gateway opens one authenticated session for the application
context, then posts ``inbox/type/dataSend`` messages carrying
``{"data": [record]}`` to recipients by DID.

Session establishment is signed with the account key (Ed25519) over the
application context name. The chain key is only needed to register a new
account DID on chain; the gateway requires it but never keeps or sends it.

Usage
-----
::

    gateway = MessagingGateway(HttpMessagingTransport(client))
    await gateway.connect("testnet", "Credential Service", account_key, chain_key)
    await gateway.send_credential("did:vda:testnet:0xabc", credential, name="Membership")
"""
from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import httpx

from credential_agent.credentials.models import VC_TYPE, Credential
from credential_agent.errors import DeliveryError, MessagingError, NotConnectedError
from credential_agent.kms.key_manager import Ed25519KeyManager

logger = logging.getLogger(__name__)

VERIDA_DID_PREFIX: str = "did:vda:"
VERIDA_CREDENTIAL_RECORD_SCHEMA: str = (
    "https://common.schemas.verida.io/credential/base/v0.2.0/schema.json"
)
INBOX_MESSAGE_TYPE: str = "inbox/type/dataSend"
RECIPIENT_CONTEXT_NAME: str = "Verida: Vault"
DEFAULT_SERVERS: tuple[str, ...] = (
    "https://node1-use2.acacia.verida.tech/",
    "https://node2-use2.acacia.verida.tech/",
    "https://node3-use2.acacia.verida.tech/",
)


class VeridaEnvironment(str, Enum):
    LOCAL = "local"
    TESTNET = "testnet"
    MAINNET = "mainnet"


# ------------------------------------------------------------------
# Wire types
# ------------------------------------------------------------------


@dataclass(frozen=True)
class SessionRequest:
    """Signed request to open a messaging session for an application context."""

    environment: VeridaEnvironment
    account_did: str
    context_name: str
    signature: str

    def to_dict(self) -> dict[str, str]:
        return {
            "environment": self.environment.value,
            "did": self.account_did,
            "contextName": self.context_name,
            "signature": self.signature,
        }


@dataclass(frozen=True)
class InboxMessage:
    """A single inbox message addressed to a recipient DID."""

    recipient_did: str
    subject: str
    data: dict[str, Any]
    sender_did: str
    sender_context: str
    message_type: str = INBOX_MESSAGE_TYPE
    recipient_context: str = RECIPIENT_CONTEXT_NAME

    def to_dict(self) -> dict[str, object]:
        return {
            "type": self.message_type,
            "subject": self.subject,
            "data": self.data,
            "sender": {"did": self.sender_did, "contextName": self.sender_context},
            "recipient": {"did": self.recipient_did, "contextName": self.recipient_context},
        }


@dataclass(frozen=True)
class MessagingSession:
    environment: VeridaEnvironment
    context_name: str
    account_did: str
    token: str = field(repr=False)


class MessagingTransport(Protocol):
    """What :class:`MessagingGateway` needs from the message network."""

    async def open_session(self, request: SessionRequest) -> str: ...

    async def send(self, token: str, message: InboxMessage) -> None: ...

    async def close_session(self, token: str) -> None: ...


class HttpMessagingTransport:
    """Message server client over HTTP.

    The wire contract is this project's own, not the Verida SDK protocol:

    - ``POST auth/session`` with a :class:`SessionRequest` body, where the
      signature is Ed25519 by the account key over the context name; the
      response carries ``{"token": ...}``
    - ``POST messages`` with an :class:`InboxMessage` body and the session
      token as a bearer credential
    - ``DELETE auth/session`` to end the session

    A transport speaking the Verida network protocol should implement
    :class:`MessagingTransport` directly.

    Parameters
    ----------
    client:
        Shared ``httpx.AsyncClient``; its timeout applies to every call.
    servers:
        Message server base URLs. The first one is used.
    """

    def __init__(self, client: httpx.AsyncClient, servers: Sequence[str] = DEFAULT_SERVERS) -> None:
        if not servers:
            raise ValueError("At least one message server URL is required.")
        self._client = client
        self._server = servers[0] if servers[0].endswith("/") else servers[0] + "/"

    async def open_session(self, request: SessionRequest) -> str:
        try:
            response = await self._client.post(self._server + "auth/session", json=request.to_dict())
        except httpx.RequestError as exc:
            raise MessagingError(f"Message server {self._server} unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise MessagingError(
                f"Message server refused session for {request.account_did!r}: HTTP {response.status_code}"
            )
        try:
            token = response.json().get("token")
        except (ValueError, AttributeError):
            token = None
        if not token:
            raise MessagingError("Message server returned no session token.")
        return str(token)

    async def send(self, token: str, message: InboxMessage) -> None:
        try:
            response = await self._client.post(
                self._server + "messages",
                json=message.to_dict(),
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as exc:
            raise DeliveryError(message.recipient_did, "message server timed out") from exc
        except httpx.RequestError as exc:
            raise DeliveryError(message.recipient_did, f"message server unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise DeliveryError(message.recipient_did, f"HTTP {response.status_code} {response.text[:200]}")

    async def close_session(self, token: str) -> None:
        try:
            await self._client.delete(
                self._server + "auth/session",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.RequestError as exc:
            logger.debug("Ignoring error while closing messaging session: %s", exc)


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------


def default_credential_name(credential: Credential) -> str:
    """First credential type other than ``VerifiableCredential``."""
    for credential_type in credential.type:
        if credential_type != VC_TYPE:
            return credential_type
    return "Verifiable Credential"


def build_credential_record(
    credential: Credential, name: str, summary: str | None = None
) -> dict[str, Any]:
    """Wrap a signed credential in a Verida credential record.

    Raises
    ------
    ValueError
        If the credential carries no JWT proof.
    """
    if not credential.jwt:
        raise ValueError("Only JWT-proofed credentials can be delivered.")
    record: dict[str, Any] = {
        "name": name,
        "schema": VERIDA_CREDENTIAL_RECORD_SCHEMA,
        "didJwtVc": credential.jwt,
        "credentialSchema": credential.credential_schema,
        "credentialData": credential.to_dict(),
    }
    if summary is not None:
        record["summary"] = summary
    return record


# ------------------------------------------------------------------
# MessagingGateway
# ------------------------------------------------------------------


class MessagingGateway:
    """Connect once, then deliver records to recipient inboxes.

    Parameters
    ----------
    transport:
        Message network client.
    key_manager:
        Signs the session request. Defaults to a fresh
        :class:`~credential_agent.kms.key_manager.Ed25519KeyManager`.
    """

    def __init__(self, transport: MessagingTransport, key_manager: Ed25519KeyManager | None = None) -> None:
        self._transport = transport
        self._key_manager = key_manager or Ed25519KeyManager()
        self._session: MessagingSession | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> MessagingSession | None:
        return self._session

    async def connect(
        self,
        environment: VeridaEnvironment | str,
        app_context: str,
        account_key: str,
        chain_key: str,
    ) -> MessagingSession:
        """Open an authenticated session for *app_context*.

        Parameters
        ----------
        environment:
            ``local``, ``testnet`` or ``mainnet``.
        app_context:
            Application context name messages are sent from.
        account_key:
            Hex-encoded 32-byte Ed25519 private key of the sending account.
        chain_key:
            Chain key for account DID registration. Checked for presence
            only; it is neither stored nor transmitted.

        Raises
        ------
        MessagingError
            If already connected, the arguments are invalid, or the message
            server refuses the session.
        """
        async with self._lock:
            if self._session is not None:
                raise MessagingError(
                    f"Already connected as {self._session.account_did!r}. Call close() first."
                )
            try:
                env = VeridaEnvironment(environment)
            except ValueError:
                raise MessagingError(
                    f"Unknown messaging environment {environment!r}. "
                    f"Expected one of: {', '.join(e.value for e in VeridaEnvironment)}"
                ) from None
            if not app_context:
                raise MessagingError("Application context name is required.")
            if not chain_key:
                raise MessagingError("Chain key is required.")

            try:
                private_key = bytes.fromhex(account_key.removeprefix("0x"))
                public_key = self._key_manager.public_key_for(private_key)
            except ValueError as exc:
                raise MessagingError("Account key must be a hex-encoded 32-byte Ed25519 key.") from exc

            account_did = f"{VERIDA_DID_PREFIX}{env.value}:{public_key.hex()}"
            signature = self._key_manager.sign(private_key, app_context.encode("utf-8"))
            request = SessionRequest(
                environment=env,
                account_did=account_did,
                context_name=app_context,
                signature=base64.b64encode(signature).decode("ascii"),
            )
            token = await self._transport.open_session(request)

            self._session = MessagingSession(
                environment=env, context_name=app_context, account_did=account_did, token=token
            )
            logger.info("Messaging connected to %s as %s (%s)", env.value, account_did, app_context)
            return self._session

    async def deliver(self, recipient_did: str, subject: str, record: dict[str, Any]) -> None:
        """Send *record* to the inbox of *recipient_did*. No retries.

        Raises
        ------
        NotConnectedError
            If :meth:`connect` has not completed.
        DeliveryError
            If the message could not be delivered.
        """
        session = self._session
        if session is None:
            raise NotConnectedError()
        message = InboxMessage(
            recipient_did=recipient_did,
            subject=subject,
            data={"data": [record]},
            sender_did=session.account_did,
            sender_context=session.context_name,
        )
        try:
            await self._transport.send(session.token, message)
        except DeliveryError:
            raise
        except MessagingError as exc:
            raise DeliveryError(recipient_did, str(exc)) from exc
        logger.info("Delivered %r to %s", subject, recipient_did)

    async def send_credential(
        self,
        recipient_did: str,
        credential: Credential,
        name: str | None = None,
        summary: str | None = None,
        subject: str | None = None,
    ) -> None:
        """Wrap *credential* in a credential record and deliver it."""
        name = name or default_credential_name(credential)
        try:
            record = build_credential_record(credential, name, summary)
        except ValueError as exc:
            raise DeliveryError(recipient_did, str(exc)) from exc
        await self.deliver(recipient_did, subject or f"New credential: {name}", record)

    async def close(self) -> None:
        """End the session. :meth:`connect` may be called again afterwards."""
        async with self._lock:
            session, self._session = self._session, None
            if session is not None:
                await self._transport.close_session(session.token)
                logger.info("Messaging session for %s closed", session.account_did)


__all__ = [
    "DEFAULT_SERVERS",
    "HttpMessagingTransport",
    "INBOX_MESSAGE_TYPE",
    "InboxMessage",
    "MessagingGateway",
    "MessagingSession",
    "MessagingTransport",
    "RECIPIENT_CONTEXT_NAME",
    "SessionRequest",
    "VERIDA_CREDENTIAL_RECORD_SCHEMA",
    "VERIDA_DID_PREFIX",
    "VeridaEnvironment",
    "build_credential_record",
    "default_credential_name",
]
