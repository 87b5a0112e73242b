"""DIDResolutionRegistry — method-name → resolver dispatch.

A resolver is an async callable ``resolver(did) -> DIDDocument | None``.
The registry aggregates one resolver per DID method (ledger-anchored,
web-based, key-derived, or universal-resolver-backed) into a single
dispatch table and is otherwise stateless, apart from an optional bounded
TTL cache.

Failure semantics
-----------------
- Unregistered method → :class:`~credential_agent.errors.UnsupportedMethodError`
- Resolver returned nothing → :class:`~credential_agent.errors.UnresolvableIssuerError`
- Transport timeout → :class:`~credential_agent.errors.ResolutionTimeoutError`
- Other transport failure → :class:`~credential_agent.errors.ResolutionNetworkError`

None of these are swallowed: they reach the caller of ``issue``/``verify``.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from urllib.parse import unquote

import httpx

from credential_agent.did.document import DIDDocument, parse_did
from credential_agent.errors import (
    ResolutionNetworkError,
    ResolutionTimeoutError,
    UnresolvableIssuerError,
    UnsupportedMethodError,
)

logger = logging.getLogger(__name__)

Resolver = Callable[[str], Awaitable[DIDDocument | None]]

DEFAULT_UNIVERSAL_RESOLVER_URL: str = "https://dev.uniresolver.io/1.0/identifiers/"
UNIVERSAL_METHODS: tuple[str, ...] = ("ethr", "elem", "io", "ion", "sov")

_DID_ACCEPT = "application/did+ld+json, application/did+json, application/json"


# ------------------------------------------------------------------
# Document cache
# ------------------------------------------------------------------


@dataclass
class CacheConfig:
    """Configuration for :class:`DocumentCache`.

    Attributes:
        ttl_seconds: Lifetime of a cached document. Key rotation on the
            ledger goes unnoticed for at most this long.
        max_entries: Maximum entries before least-recently-used eviction.
    """

    ttl_seconds: float = 300.0
    max_entries: int = 256


@dataclass
class _CacheEntry:
    document: DIDDocument
    expires_at: datetime


class DocumentCache:
    """Bounded TTL cache of resolved DID documents keyed by DID."""

    def __init__(self, config: CacheConfig | None = None) -> None:
        self._config = config or CacheConfig()
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = asyncio.Lock()

    async def get(self, did: str) -> DIDDocument | None:
        async with self._lock:
            entry = self._entries.get(did)
            if entry is None:
                return None
            if entry.expires_at <= datetime.now(timezone.utc):
                del self._entries[did]
                return None
            self._entries.move_to_end(did)
            return entry.document

    async def put(self, did: str, document: DIDDocument) -> None:
        async with self._lock:
            if did not in self._entries and len(self._entries) >= self._config.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from DID document cache", evicted)
            self._entries[did] = _CacheEntry(
                document=document,
                expires_at=datetime.now(timezone.utc) + timedelta(seconds=self._config.ttl_seconds),
            )
            self._entries.move_to_end(did)

    async def invalidate(self, did: str) -> None:
        async with self._lock:
            self._entries.pop(did, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ------------------------------------------------------------------
# Registry
# ------------------------------------------------------------------


class DIDResolutionRegistry:
    """Dispatch table from DID method name to resolver.

    Parameters
    ----------
    resolvers:
        Initial ``{method: resolver}`` mapping.
    cache:
        Optional :class:`DocumentCache`. Without one, every call resolves.

    Example
    -------
    ::

        registry = DIDResolutionRegistry({"key": did_key_resolver()})
        document = await registry.resolve("did:key:z6Mk...")
    """

    def __init__(
        self,
        resolvers: dict[str, Resolver] | None = None,
        cache: DocumentCache | None = None,
    ) -> None:
        self._resolvers: dict[str, Resolver] = dict(resolvers or {})
        self._cache = cache

    def register(self, method: str, resolver: Resolver) -> None:
        """Register (or replace) the resolver for *method*."""
        self._resolvers[method] = resolver

    def register_all(self, mapping: dict[str, Resolver]) -> None:
        for method, resolver in mapping.items():
            self.register(method, resolver)

    def methods(self) -> list[str]:
        """Sorted list of DID methods that can be resolved."""
        return sorted(self._resolvers)

    def supports(self, method: str) -> bool:
        return method in self._resolvers

    async def resolve(self, did: str) -> DIDDocument:
        """Resolve *did* to its document.

        Raises
        ------
        UnsupportedMethodError
            If no resolver is registered for the DID's method.
        UnresolvableIssuerError
            If the DID is malformed or its resolver returned no document.
        ResolutionTimeoutError, ResolutionNetworkError
            On transport failure inside the resolver.
        """
        try:
            parsed = parse_did(did)
        except ValueError as exc:
            raise UnresolvableIssuerError(did, str(exc)) from exc

        resolver = self._resolvers.get(parsed.method)
        if resolver is None:
            raise UnsupportedMethodError(did, parsed.method)

        if self._cache is not None:
            cached = await self._cache.get(parsed.did)
            if cached is not None:
                logger.debug("DID document cache hit for %s", parsed.did)
                return cached

        document = await resolver(parsed.did)
        if document is None:
            raise UnresolvableIssuerError(parsed.did)

        if self._cache is not None:
            await self._cache.put(parsed.did, document)
        logger.debug("Resolved %s via %r resolver", parsed.did, parsed.method)
        return document


# ------------------------------------------------------------------
# HTTP-backed resolvers
# ------------------------------------------------------------------


async def fetch_did_document(client: httpx.AsyncClient, url: str, did: str) -> DIDDocument | None:
    """GET *url* and parse the body as a DID document or resolution result.

    A 404 or a body without a document yields ``None``.
    """
    try:
        response = await client.get(url, headers={"Accept": _DID_ACCEPT})
    except httpx.TimeoutException as exc:
        raise ResolutionTimeoutError(did, f"Timed out resolving {did!r} at {url}") from exc
    except httpx.RequestError as exc:
        raise ResolutionNetworkError(did, f"Network error resolving {did!r}: {exc}") from exc

    if response.status_code in (404, 410):
        return None
    if response.status_code >= 400:
        raise ResolutionNetworkError(
            did, f"Resolver at {url} answered HTTP {response.status_code} for {did!r}"
        )
    try:
        payload = response.json()
        return DIDDocument.from_dict(payload)
    except ValueError as exc:
        logger.warning("Resolver at %s returned an unusable document for %s: %s", url, did, exc)
        return None


def universal_resolver(client: httpx.AsyncClient, url: str = DEFAULT_UNIVERSAL_RESOLVER_URL) -> Resolver:
    """Return a resolver that delegates to a Universal Resolver instance.

    See https://uniresolver.io for the HTTP interface.
    """
    if not url:
        raise ValueError("Universal resolver URL is required.")
    base = url if url.endswith("/") else url + "/"

    async def resolve(did: str) -> DIDDocument | None:
        return await fetch_did_document(client, base + did, did)

    return resolve


def universal_resolver_for(
    client: httpx.AsyncClient,
    methods: Iterable[str] = UNIVERSAL_METHODS,
    url: str = DEFAULT_UNIVERSAL_RESOLVER_URL,
) -> dict[str, Resolver]:
    """Map every method in *methods* onto one universal resolver."""
    resolver = universal_resolver(client, url)
    return {method: resolver for method in methods}


def did_web_url(did: str) -> str:
    """Translate a ``did:web`` DID into the HTTPS URL of its document.

    ``did:web:example.com`` → ``https://example.com/.well-known/did.json``;
    ``did:web:example.com:users:alice`` → ``https://example.com/users/alice/did.json``.

    Raises
    ------
    ValueError
        If *did* is not a ``did:web`` DID.
    """
    parsed = parse_did(did)
    if parsed.method != "web":
        raise ValueError(f"Not a did:web DID: {did!r}")
    host, *path = parsed.segments
    host = unquote(host)
    if not path:
        return f"https://{host}/.well-known/did.json"
    return f"https://{host}/{'/'.join(unquote(p) for p in path)}/did.json"


def web_resolver(client: httpx.AsyncClient) -> Resolver:
    """Return a resolver for ``did:web`` DIDs."""

    async def resolve(did: str) -> DIDDocument | None:
        return await fetch_did_document(client, did_web_url(did), did)

    return resolve


__all__ = [
    "CacheConfig",
    "DEFAULT_UNIVERSAL_RESOLVER_URL",
    "DIDResolutionRegistry",
    "DocumentCache",
    "Resolver",
    "UNIVERSAL_METHODS",
    "did_web_url",
    "fetch_did_document",
    "universal_resolver",
    "universal_resolver_for",
    "web_resolver",
]
