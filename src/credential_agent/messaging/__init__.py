"""Verida inbox delivery."""
from __future__ import annotations

from credential_agent.messaging.gateway import (
    HttpMessagingTransport,
    MessagingGateway,
    MessagingTransport,
    VeridaEnvironment,
    build_credential_record,
)

__all__ = [
    "HttpMessagingTransport",
    "MessagingGateway",
    "MessagingTransport",
    "VeridaEnvironment",
    "build_credential_record",
]
