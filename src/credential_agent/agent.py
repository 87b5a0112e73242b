"""Agent — the composition root of credential-agent.

An :class:`Agent` owns every collaborator of the issuance and
verification pipeline and is built once, eagerly, at process start:

- :class:`~credential_agent.kms.key_store.KeyStore` (key management)
- DID providers by prefix (``did:cheqd:<network>``, ``did:key``)
- :class:`~credential_agent.did.resolution.DIDResolutionRegistry`
- :class:`~credential_agent.identity.IdentityResolver`
- :class:`~credential_agent.credentials.issuer.CredentialIssuer` and
  :class:`~credential_agent.credentials.verifier.CredentialVerifier`
- an optional :class:`~credential_agent.messaging.gateway.MessagingGateway`
- :class:`~credential_agent.audit.IssuanceAuditLog`

Usage
-----
::

    config = AgentConfig.from_env()
    async with Agent.from_config(config) as agent:
        result = await agent.issue_credential({"subjectDid": "did:key:z6Mk..."})
        verification = await agent.verify_credential(result.credential)
"""
from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from credential_agent.audit import IssuanceAuditLog
from credential_agent.config import AgentConfig
from credential_agent.credentials.issuer import DEFAULT_ISSUER_ALIAS, CredentialIssuer
from credential_agent.credentials.models import (
    VC_PROOF_FORMAT,
    VC_REMOVE_ORIGINAL_FIELDS,
    Credential,
    CredentialPayload,
    CredentialRequest,
    IssuanceResult,
    VerificationResult,
)
from credential_agent.credentials.signer import CredentialSigner
from credential_agent.credentials.verifier import CredentialVerifier
from credential_agent.did.cheqd import CheqdDIDProvider, HttpLedgerClient, LedgerClient, cheqd_resolver
from credential_agent.did.did_key import DIDKeyProvider, did_key_resolver
from credential_agent.did.document import DIDDocument
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.did.resolution import (
    CacheConfig,
    DIDResolutionRegistry,
    DocumentCache,
    Resolver,
    universal_resolver_for,
    web_resolver,
)
from credential_agent.errors import MessagingError
from credential_agent.identity import IdentityResolver
from credential_agent.kms.key_store import KeyStore
from credential_agent.messaging.gateway import (
    HttpMessagingTransport,
    MessagingGateway,
    MessagingSession,
    MessagingTransport,
    VeridaEnvironment,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessagingSettings:
    """Arguments for :meth:`MessagingGateway.connect`, held until connect time."""

    environment: VeridaEnvironment
    app_context: str
    account_key: str = field(repr=False)
    chain_key: str = field(repr=False)


class Agent:
    """Explicit, typed composition of the credential pipeline.

    Prefer :meth:`from_config`; the constructor is for wiring custom
    collaborators (tests, alternative ledgers).

    Parameters
    ----------
    key_store:
        Key management for every DID the agent creates.
    providers:
        DID providers keyed by prefix.
    default_provider:
        Prefix used when no provider is named.
    registry:
        DID resolution dispatch table.
    issuer_id:
        Configured issuer identifier; its network segment selects the
        issuing provider.
    issuer_alias:
        Logical name of the issuer DID.
    gateway:
        Optional inbox delivery.
    messaging:
        Connection settings used by :meth:`connect_messaging`.
    audit:
        Audit log; an in-memory one is created if omitted.
    http_client:
        HTTP client closed by :meth:`aclose` when the agent owns it.
    clock:
        Current-time source shared by issuer and verifier.
    """

    def __init__(
        self,
        key_store: KeyStore,
        providers: dict[str, DIDProvider],
        default_provider: str,
        registry: DIDResolutionRegistry,
        issuer_id: str,
        issuer_alias: str = DEFAULT_ISSUER_ALIAS,
        gateway: MessagingGateway | None = None,
        messaging: MessagingSettings | None = None,
        audit: IssuanceAuditLog | None = None,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.key_store = key_store
        self.audit = audit or IssuanceAuditLog()
        self.registry = registry
        self.identity = IdentityResolver(providers, default_provider, audit=self.audit)
        self.gateway = gateway
        self.signer = CredentialSigner(self.identity, key_store)
        self.issuer = CredentialIssuer(
            self.identity,
            self,
            issuer_id,
            issuer_alias=issuer_alias,
            gateway=gateway,
            audit=self.audit,
            clock=clock,
        )
        self.verifier = CredentialVerifier(registry, audit=self.audit, clock=clock)
        self._messaging = messaging
        self._http_client = http_client

    @classmethod
    def from_config(
        cls,
        config: AgentConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        ledger: LedgerClient | None = None,
        messaging_transport: MessagingTransport | None = None,
        resolvers: dict[str, Resolver] | None = None,
    ) -> "Agent":
        """Build a fully wired agent from *config*.

        Parameters
        ----------
        config:
            Validated settings.
        http_client:
            Shared HTTP client. If omitted one is created with
            ``config.http_timeout`` and closed by :meth:`aclose`.
        ledger:
            Ledger client for cheqd DID creation. Defaults to
            :class:`~credential_agent.did.cheqd.HttpLedgerClient`.
        messaging_transport:
            Message network client. Defaults to
            :class:`~credential_agent.messaging.gateway.HttpMessagingTransport`.
        resolvers:
            Extra ``{method: resolver}`` entries, registered last.
        """
        owns_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(config.http_timeout))

        key_store = KeyStore()
        ledger = ledger or HttpLedgerClient(
            client,
            config.network_rpc_url,
            config.cosmos_payer_mnemonic.get_secret_value(),
            resolver_url=config.resolver_url,
        )
        cheqd = CheqdDIDProvider(key_store, ledger, config.cheqd_network)
        did_key = DIDKeyProvider(key_store)

        cache = None
        if config.resolution_cache_ttl > 0:
            cache = DocumentCache(CacheConfig(ttl_seconds=config.resolution_cache_ttl))
        registry = DIDResolutionRegistry(cache=cache)
        registry.register("cheqd", cheqd_resolver(client, config.resolver_url))
        registry.register("key", did_key_resolver())
        registry.register("web", web_resolver(client))
        registry.register_all(universal_resolver_for(client, url=config.universal_resolver_url))
        registry.register_all(resolvers or {})

        gateway = MessagingGateway(messaging_transport or HttpMessagingTransport(client))
        messaging = MessagingSettings(
            environment=config.verida_environment,
            app_context=config.verida_app_name,
            account_key=config.verida_account_key.get_secret_value(),
            chain_key=config.verida_chain_key.get_secret_value(),
        )

        agent = cls(
            key_store=key_store,
            providers={cheqd.prefix: cheqd, did_key.prefix: did_key},
            default_provider=cheqd.prefix,
            registry=registry,
            issuer_id=config.issuer_id,
            issuer_alias=config.issuer_alias,
            gateway=gateway,
            messaging=messaging,
            audit=IssuanceAuditLog(config.audit_log_path),
            http_client=client if owns_client else None,
        )
        logger.info(
            "Agent ready: issuer alias %r on %s, resolvers for %s",
            config.issuer_alias,
            cheqd.prefix,
            ", ".join(registry.methods()),
        )
        return agent

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def create_verifiable_credential(
        self,
        payload: CredentialPayload,
        proof_format: str = VC_PROOF_FORMAT,
        remove_original_fields: bool = VC_REMOVE_ORIGINAL_FIELDS,
    ) -> dict[str, Any]:
        """Sign *payload*; see :meth:`CredentialSigner.create_verifiable_credential`."""
        return await self.signer.create_verifiable_credential(payload, proof_format, remove_original_fields)

    async def resolve_did(self, did: str) -> DIDDocument:
        return await self.registry.resolve(did)

    async def did_manager_get_or_create(self, alias: str, provider: str | None = None) -> ManagedIdentifier:
        """Return the identifier bound to *alias*, creating it on first use."""
        return await self.identity.ensure_identifier(alias, provider)

    async def issue_credential(self, request: CredentialRequest | dict[str, Any]) -> IssuanceResult:
        return await self.issuer.issue(request)

    async def verify_credential(self, credential: Credential | dict[str, Any] | str) -> VerificationResult:
        return await self.verifier.verify(credential)

    async def connect_messaging(self) -> MessagingSession:
        """Connect the messaging gateway with the configured settings.

        Raises
        ------
        MessagingError
            If no gateway or settings are configured, or connecting fails.
        """
        if self.gateway is None or self._messaging is None:
            raise MessagingError("No messaging gateway is configured for this agent.")
        settings = self._messaging
        return await self.gateway.connect(
            settings.environment,
            settings.app_context,
            settings.account_key,
            settings.chain_key,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the messaging session and the owned HTTP client."""
        if self.gateway is not None:
            await self.gateway.close()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "Agent":
        if self.gateway is not None and self._messaging is not None and not self.gateway.connected:
            try:
                await self.connect_messaging()
            except MessagingError as exc:
                logger.warning("Messaging unavailable, inbox delivery will fail: %s", exc)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


__all__ = ["Agent", "MessagingSettings"]
