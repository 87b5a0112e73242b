"""IdentityResolver — create-or-get issuer DIDs by logical name.

The issuer of every credential is a logical name (``"demo"`` by default)
that must map to exactly one DID per provider for the lifetime of the
process. The first call for a name creates the DID; every later call
returns the same one.

Concurrent first calls for the same name are serialised with a per-name
:class:`asyncio.Lock`, so only one of them reaches the provider and the
rest observe its result.
"""
from __future__ import annotations

import asyncio
import logging

from credential_agent.audit import IssuanceAuditLog
from credential_agent.did.provider import DIDProvider, ManagedIdentifier
from credential_agent.errors import IdentityCreationError

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Alias → DID mapping with single-flight creation.

    Parameters
    ----------
    providers:
        DID providers keyed by prefix (``did:cheqd:testnet``, ``did:key``).
    default_provider:
        Prefix used when a call does not name one.
    audit:
        Optional audit log receiving an event for every DID created.

    Example
    -------
    ::

        resolver = IdentityResolver({provider.prefix: provider}, provider.prefix)
        did = await resolver.ensure_issuer_did("demo")
        assert did == await resolver.ensure_issuer_did("demo")
    """

    def __init__(
        self,
        providers: dict[str, DIDProvider],
        default_provider: str,
        audit: IssuanceAuditLog | None = None,
    ) -> None:
        if default_provider not in providers:
            raise ValueError(
                f"Default provider {default_provider!r} is not among the configured "
                f"providers: {sorted(providers)}"
            )
        self._providers = dict(providers)
        self._default_provider = default_provider
        self._aliases: dict[tuple[str, str], ManagedIdentifier] = {}
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._audit = audit

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def provider(self, prefix: str | None = None) -> DIDProvider:
        """Return the provider for *prefix* (default provider if ``None``).

        Raises
        ------
        IdentityCreationError
            If no provider is configured for the prefix.
        """
        prefix = prefix or self._default_provider
        provider = self._providers.get(prefix)
        if provider is None:
            raise IdentityCreationError(
                f"No DID provider configured for {prefix!r}. "
                f"Configured providers: {sorted(self._providers)}"
            )
        return provider

    async def ensure_identifier(self, logical_name: str, provider: str | None = None) -> ManagedIdentifier:
        """Return the identifier for *logical_name*, creating it on first use.

        Raises
        ------
        IdentityCreationError
            If *provider* is not configured or fails to create the DID.
        """
        did_provider = self.provider(provider)
        key = (did_provider.prefix, logical_name)

        existing = self._aliases.get(key)
        if existing is not None:
            return existing

        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            existing = self._aliases.get(key)
            if existing is not None:
                return existing
            try:
                identifier = await did_provider.create_identifier(logical_name)
            except IdentityCreationError:
                raise
            except Exception as exc:  # noqa: BLE001
                reason = str(exc) or type(exc).__name__
                raise IdentityCreationError(
                    f"Could not create a {did_provider.prefix} DID for {logical_name!r}: {reason}"
                ) from exc
            self._aliases[key] = identifier
            logger.info("Issuer alias %r bound to %s", logical_name, identifier.did)
            if self._audit is not None:
                await self._audit.log_issuer_created(identifier.did, logical_name, did_provider.prefix)
            return identifier

    async def ensure_issuer_did(self, logical_name: str, provider: str | None = None) -> str:
        """Return the DID for *logical_name*, creating it on first use."""
        identifier = await self.ensure_identifier(logical_name, provider)
        return identifier.did

    def get(self, logical_name: str, provider: str | None = None) -> ManagedIdentifier | None:
        """Return the identifier already bound to *logical_name*, if any."""
        prefix = provider or self._default_provider
        return self._aliases.get((prefix, logical_name))

    def find_by_did(self, did: str) -> ManagedIdentifier | None:
        """Return the managed identifier for *did* from any provider."""
        for provider in self._providers.values():
            identifier = provider.get(did)
            if identifier is not None:
                return identifier
        return None

    def aliases(self) -> dict[str, str]:
        """``{"<prefix>/<alias>": did}`` snapshot of every binding."""
        return {f"{prefix}/{alias}": ident.did for (prefix, alias), ident in self._aliases.items()}


__all__ = ["IdentityResolver"]
