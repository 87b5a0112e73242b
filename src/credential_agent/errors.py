"""Exception hierarchy for credential-agent.

Every error raised by the issuance and verification pipeline derives from
:class:`CredentialAgentError` so callers can catch the whole family with a
single ``except`` clause, while still distinguishing the individual kinds.

Hierarchy
---------
::

    CredentialAgentError
    ├── ConfigurationError
    ├── InvalidRequestError
    ├── InvalidNetworkError
    ├── IdentityCreationError
    ├── KeyNotFoundError
    ├── MalformedCredentialError
    ├── ResolutionError
    │   ├── UnresolvableIssuerError
    │   │   └── UnsupportedMethodError
    │   ├── ResolutionNetworkError
    │   └── ResolutionTimeoutError
    └── MessagingError
        ├── NotConnectedError
        └── DeliveryError

A signature that does not match is *not* an exception; see
:class:`~credential_agent.credentials.models.VerificationErrorCode`.
"""
from __future__ import annotations


class CredentialAgentError(Exception):
    """Base class for all credential-agent errors."""


class ConfigurationError(CredentialAgentError):
    """Raised at startup when required configuration is missing or invalid."""

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        super().__init__(message)


class InvalidRequestError(CredentialAgentError):
    """Raised when a credential request is malformed or incomplete."""


class InvalidNetworkError(CredentialAgentError):
    """Raised when a DID namespace segment is not a recognised network."""

    def __init__(self, namespace: str, allowed: list[str]) -> None:
        self.namespace = namespace
        self.allowed = allowed
        super().__init__(
            f"Unrecognised network namespace {namespace!r}. "
            f"Expected one of: {', '.join(allowed)}"
        )


class IdentityCreationError(CredentialAgentError):
    """Raised when a DID or its key material could not be created."""


class KeyNotFoundError(CredentialAgentError):
    """Raised when a key reference is unknown to the key store."""

    def __init__(self, kid: str) -> None:
        self.kid = kid
        super().__init__(f"Key {kid!r} is not held by this key store.")


class MalformedCredentialError(CredentialAgentError):
    """Raised when a credential or compact JWT cannot be parsed at all."""


class ResolutionError(CredentialAgentError):
    """Base class for DID resolution failures."""

    def __init__(self, did: str, message: str) -> None:
        self.did = did
        super().__init__(message)


class UnresolvableIssuerError(ResolutionError):
    """Raised when a DID resolves to no document."""

    def __init__(self, did: str, message: str | None = None) -> None:
        super().__init__(did, message or f"DID {did!r} could not be resolved to a document.")


class UnsupportedMethodError(UnresolvableIssuerError):
    """Raised when no resolver is registered for a DID method."""

    def __init__(self, did: str, method: str) -> None:
        self.method = method
        super().__init__(
            did,
            f"No resolver registered for DID method {method!r} (DID {did!r}).",
        )


class ResolutionNetworkError(ResolutionError):
    """Raised on a transport failure while resolving a DID."""


class ResolutionTimeoutError(ResolutionError):
    """Raised when DID resolution does not complete within its timeout."""


class MessagingError(CredentialAgentError):
    """Base class for messaging-network failures."""


class NotConnectedError(MessagingError):
    """Raised when the messaging gateway is used before ``connect``."""

    def __init__(self) -> None:
        super().__init__(
            "The messaging gateway has no session. "
            "Call connect() before delivering any message."
        )


class DeliveryError(MessagingError):
    """Raised when a message could not be delivered to a recipient inbox."""

    def __init__(self, recipient_did: str, reason: str) -> None:
        self.recipient_did = recipient_did
        self.reason = reason
        super().__init__(f"Delivery to {recipient_did!r} failed: {reason}")


__all__ = [
    "ConfigurationError",
    "CredentialAgentError",
    "DeliveryError",
    "IdentityCreationError",
    "InvalidNetworkError",
    "InvalidRequestError",
    "KeyNotFoundError",
    "MalformedCredentialError",
    "MessagingError",
    "NotConnectedError",
    "ResolutionError",
    "ResolutionNetworkError",
    "ResolutionTimeoutError",
    "UnresolvableIssuerError",
    "UnsupportedMethodError",
]
