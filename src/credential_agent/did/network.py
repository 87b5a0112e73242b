"""Ledger network namespaces for ``did:cheqd`` identifiers.

A cheqd DID carries its network as the third segment::

    did:cheqd:<network>:<unique-id>

The namespace must be validated before it is used to select a provider,
otherwise a typo in configuration would silently route issuance to a
provider that does not exist.
"""
from __future__ import annotations

from enum import Enum

from credential_agent.errors import InvalidNetworkError


class NetworkType(str, Enum):
    """Recognised cheqd ledger networks."""

    MAINNET = "mainnet"
    TESTNET = "testnet"


def validate_network(namespace: str) -> NetworkType:
    """Return the :class:`NetworkType` for *namespace*.

    Raises
    ------
    InvalidNetworkError
        If *namespace* is not a recognised network name.
    """
    try:
        return NetworkType(namespace)
    except ValueError:
        raise InvalidNetworkError(namespace, [n.value for n in NetworkType]) from None


def network_from_did(issuer_id: str) -> NetworkType:
    """Extract and validate the network segment of ``did:<method>:<network>:<id>``.

    Raises
    ------
    InvalidNetworkError
        If the identifier has no third segment or it is not recognised.
    """
    parts = issuer_id.split(":")
    namespace = parts[2] if len(parts) > 3 else ""
    return validate_network(namespace)


__all__ = ["NetworkType", "network_from_did", "validate_network"]
