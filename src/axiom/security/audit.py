"""
Audit Logging System.
Created: 2026-10-08

Append-only JSONL audit trail for authorization-server events: client
registrations, issued codes, issued tokens and rejected code replays.
Secrets (codes, tokens) are never written; only their short prefixes.
"""

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

logger = logging.getLogger("audit")


class AuditSeverity(str, Enum):
    INFO = "info"  # Normal operation (e.g. token issued)
    WARNING = "warning"  # Suspicious but handled (e.g. code replay)
    ALERT = "alert"  # Security violation


@dataclass
class AuditEvent:
    """A single audit log entry."""

    id: str
    timestamp: str
    severity: AuditSeverity
    actor: str  # user_id, client_id or "anonymous"
    action: str  # e.g. "token_issued"
    target: str  # e.g. "client:abc123"
    status: str  # "success", "block"
    context: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        severity: AuditSeverity,
        actor: str,
        action: str,
        target: str,
        status: str,
        **context: Any,
    ) -> "AuditEvent":
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(tz=UTC).isoformat(),
            severity=severity,
            actor=actor,
            action=action,
            target=target,
            status=status,
            context=context,
        )


class AuditLogger:
    """
    Append-only audit logger.
    Writes to {data_dir}/audit.jsonl.
    """

    def __init__(self, log_path: Path | None = None):
        if log_path is None:
            from axiom.config import get_config_dir

            log_path = get_config_dir() / "audit.jsonl"
        self.log_path = log_path

    def log(self, event: AuditEvent) -> None:
        """Write an event to the audit log.

        A failed write is reported on the system logger and never propagates:
        the audit trail must not turn a successful grant into a 500.
        """
        try:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(asdict(event)) + "\n")
        except OSError as e:
            logger.critical("FAILED TO WRITE AUDIT LOG: %s | Event: %s", e, event)

    def log_oauth_event(
        self,
        action: str,
        target: str,
        actor: str = "anonymous",
        severity: AuditSeverity = AuditSeverity.INFO,
        status: str = "success",
        **context: Any,
    ) -> str:
        """Helper to log an authorization-server event."""
        event = AuditEvent.create(
            severity=severity,
            actor=actor,
            action=action,
            target=target,
            status=status,
            **context,
        )
        self.log(event)
        return event.id


# Singleton
_audit_logger: AuditLogger | None = None


def get_audit_logger() -> AuditLogger:
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger
