"""IssuanceAuditLog — JSONL audit trail for credential events.

Issuer DID creation, credential issuance, verification outcomes and inbox
delivery failures are appended as one JSON line each. Credential bodies
and key material are never written; events reference credentials by
issuer, subject and issuance date only.

If no file path is configured the log is kept in an in-memory buffer that
can be drained via :meth:`IssuanceAuditLog.drain_buffer`.

The event helpers (:meth:`IssuanceAuditLog.log_issuance` and friends) are
coroutines for use on the event loop: file appends run in a worker thread
through :func:`asyncio.to_thread`. :meth:`IssuanceAuditLog.log` stays
synchronous for threads and scripts.
"""
from __future__ import annotations

import asyncio
import datetime
import json
import threading
from dataclasses import dataclass, field
from pathlib import Path

EVENT_CREDENTIAL_ISSUED = "credential_issued"
EVENT_CREDENTIAL_VERIFIED = "credential_verified"
EVENT_DELIVERY_FAILED = "delivery_failed"
EVENT_ISSUER_DID_CREATED = "issuer_did_created"


@dataclass
class AuditEvent:
    """A single auditable credential event.

    Parameters
    ----------
    event_type:
        Short snake_case string identifying the event (e.g. "credential_issued").
    did:
        The primary DID involved: the issuer for issuance and creation
        events, the recipient for delivery events.
    details:
        Event-specific fields (alias, subject, error code...).
    timestamp:
        When the event happened, in UTC.
    """

    event_type: str
    did: str
    details: dict[str, object] = field(default_factory=dict)
    timestamp: datetime.datetime = field(
        default_factory=lambda: datetime.datetime.now(datetime.timezone.utc)
    )

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type,
            "did": self.did,
            "details": self.details,
        }


class IssuanceAuditLog:
    """Append-only JSONL audit log.

    Safe to share between threads. Every :meth:`log` call writes exactly
    one JSON line, to *log_path* when configured and to memory otherwise.

    Parameters
    ----------
    log_path:
        Path to the JSONL log file. Parent directories are created
        automatically. If None, events are buffered in memory only.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path
        self._buffer: list[str] = []
        self._lock = threading.Lock()

        if log_path is not None:
            log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
        with self._lock:
            if self._log_path is not None:
                with self._log_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
            else:
                self._buffer.append(line)

    def log_event(self, event_type: str, did: str, **details: object) -> None:
        """Log a simple event without constructing an :class:`AuditEvent`."""
        self.log(AuditEvent(event_type=event_type, did=did, details=dict(details)))

    async def log_async(self, event: AuditEvent) -> None:
        """Log *event* without blocking the running event loop."""
        if self._log_path is None:
            self.log(event)
        else:
            await asyncio.to_thread(self.log, event)

    async def _emit(self, event_type: str, did: str, **details: object) -> None:
        await self.log_async(AuditEvent(event_type=event_type, did=did, details=dict(details)))

    # ------------------------------------------------------------------
    # Convenience event loggers
    # ------------------------------------------------------------------

    async def log_issuer_created(self, did: str, alias: str, provider: str) -> None:
        await self._emit(EVENT_ISSUER_DID_CREATED, did, alias=alias, provider=provider)

    async def log_issuance(self, issuer_did: str, subject_did: str, issuance_date: str, types: list[str]) -> None:
        await self._emit(
            EVENT_CREDENTIAL_ISSUED,
            issuer_did,
            subject=subject_did,
            issuance_date=issuance_date,
            types=types,
        )

    async def log_verification(self, issuer_did: str | None, verified: bool, error_code: str | None = None) -> None:
        await self._emit(
            EVENT_CREDENTIAL_VERIFIED,
            issuer_did or "",
            verified=verified,
            error_code=error_code,
        )

    async def log_delivery_failure(self, recipient_did: str, issuer_did: str, reason: str) -> None:
        await self._emit(EVENT_DELIVERY_FAILED, recipient_did, issuer=issuer_did, reason=reason)

    # ------------------------------------------------------------------
    # Buffer access
    # ------------------------------------------------------------------

    def drain_buffer(self) -> list[str]:
        """Hand back the buffered JSON lines and empty the buffer.

        Only meaningful when no ``log_path`` was configured.

        Returns
        -------
        list[str]
            JSON lines, oldest first.
        """
        with self._lock:
            events = list(self._buffer)
            self._buffer.clear()
        return events

    def read_log(self, tail: int | None = None) -> list[dict[str, object]]:
        """Read events back as dictionaries, oldest first.

        Parameters
        ----------
        tail:
            Keep only the newest *tail* events.
        """
        with self._lock:
            if self._log_path is None or not self._log_path.exists():
                lines = list(self._buffer)
            else:
                lines = self._log_path.read_text(encoding="utf-8").splitlines()

        parsed: list[dict[str, object]] = []
        for line in lines:
            stripped = line.strip()
            if not stripped:
                continue
            try:
                parsed.append(json.loads(stripped))
            except json.JSONDecodeError:
                continue

        if tail is not None:
            return parsed[-tail:]
        return parsed


__all__ = [
    "AuditEvent",
    "EVENT_CREDENTIAL_ISSUED",
    "EVENT_CREDENTIAL_VERIFIED",
    "EVENT_DELIVERY_FAILED",
    "EVENT_ISSUER_DID_CREATED",
    "IssuanceAuditLog",
]
