"""
Audit trail for cryptographic operations.

This module provides:
- AuditEventName: Closed set of audited operation identifiers
- AuditEvent: Timestamped structured audit record
- AuditLogger: Writes events to the primary sink and forwards them to an
  optional webhook collector

The primary sink is written synchronously. Webhook forwarding runs as a
detached asyncio task that is never awaited by the operation being audited;
forwarding failures are logged locally and never raised.
"""

from __future__ import annotations

import asyncio
import json
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Set

import httpx
import structlog

logger = structlog.get_logger(__name__)

REDACTED = "[REDACTED]"

# Detail keys that could only ever hold key material, plaintext or credentials
SENSITIVE_DETAIL_KEYS = frozenset(
    {
        "plaintext",
        "plaintextkey",
        "key",
        "datakey",
        "secret",
        "secretaccesskey",
        "password",
        "token",
    }
)


class AuditEventName(str, Enum):
    """Audited operations."""

    DATA_KEY_GENERATED = "DATA_KEY_GENERATED"
    DATA_KEY_GENERATION_FAILED = "DATA_KEY_GENERATION_FAILED"
    DATA_KEY_DECRYPTED = "DATA_KEY_DECRYPTED"
    DATA_KEY_DECRYPTION_FAILED = "DATA_KEY_DECRYPTION_FAILED"
    DATA_ENCRYPTED = "DATA_ENCRYPTED"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DATA_DECRYPTED = "DATA_DECRYPTED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AuditEvent:
    """A single audit record."""

    event: AuditEventName
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def severity(self) -> str:
        return "ERROR" if self.error is not None else "INFO"

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form, as forwarded to the collector."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "event": self.event.value,
            "details": dict(self.details),
            "error": dict(self.error) if self.error is not None else None,
            "severity": self.severity,
        }


def _scrub(details: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    scrubbed: Dict[str, Any] = {}
    for name, value in (details or {}).items():
        if name.lower() in SENSITIVE_DETAIL_KEYS:
            scrubbed[name] = REDACTED
        elif isinstance(value, (bytes, bytearray, memoryview)):
            # Raw bytes are never audit material; keep the size only
            scrubbed[name] = f"<{len(value)} bytes>"
        else:
            scrubbed[name] = value
    return scrubbed


def _describe_error(error: BaseException) -> Dict[str, Any]:
    return {
        "message": str(error),
        "type": type(error).__name__,
        "stack": "".join(
            traceback.format_exception(type(error), error, error.__traceback__)
        ),
    }


class AuditLogger:
    """
    Records every security-relevant operation.

    Events go to `sink` (structlog by default). When `webhook_url` is set, each
    event is also POSTed as JSON to the collector on a best-effort basis.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        timeout: float = 5.0,
        sink: Optional[Callable[[AuditEvent], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the audit logger.

        Args:
            webhook_url: Optional external collector endpoint
            timeout: Timeout for a single forwarding request, in seconds
            sink: Replacement for the structlog primary sink
            transport: httpx transport override for the forwarding client
        """
        self._webhook_url = webhook_url
        self._timeout = timeout
        self._sink = sink if sink is not None else self._write
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> AuditLogger:
        """Create an AuditLogger from KmsSettings."""
        return cls(
            settings.audit_webhook_url,
            timeout=settings.timeout_seconds,
            **kwargs,
        )

    @property
    def forwarding_enabled(self) -> bool:
        return self._webhook_url is not None

    def log(
        self,
        event: AuditEventName,
        details: Optional[Mapping[str, Any]] = None,
        error: Optional[BaseException] = None,
    ) -> AuditEvent:
        """
        Record an audit event.

        Args:
            event: Operation identifier
            details: Non-sensitive context (key id, algorithm, sizes)
            error: Exception for failure events

        Returns:
            The recorded AuditEvent
        """
        record = AuditEvent(
            event=AuditEventName(event),
            details=_scrub(details),
            error=_describe_error(error) if error is not None else None,
        )
        self._sink(record)
        if self._webhook_url is not None:
            self._schedule_forward(record)
        return record

    async def drain(self) -> None:
        """Wait for in-flight forwards. Shutdown hook only."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _write(self, record: AuditEvent) -> None:
        payload = record.to_dict()
        method = logger.error if record.error is not None else logger.info
        method(
            "kms_audit",
            audit_event=payload["event"],
            audit_timestamp=payload["timestamp"],
            details=payload["details"],
            error=payload["error"],
            severity=payload["severity"],
        )

    def _schedule_forward(self, record: AuditEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "audit_forward_skipped",
                audit_event=record.event.value,
                reason="no running event loop",
            )
            return

        task = loop.create_task(self._forward(record.to_dict()))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _forward(self, payload: Dict[str, Any]) -> None:
        try:
            # Caller-supplied detail values need not be JSON-native
            body = json.dumps(payload, default=str)
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._webhook_url,
                    content=body,
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
        except Exception as e:
            logger.warning(
                "audit_forward_failed",
                audit_event=payload["event"],
                error=str(e),
            )
