"""
Audit notifications.

Audit records are fire-and-forget: a failing audit sink is logged and never
affects the protocol job.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List

from .models.protocol_schema import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    action: str
    metadata: Dict[str, Any]
    recorded_at: datetime = field(default_factory=utcnow)


class RecordingAuditLog:
    """Audit log keeping entries in memory and echoing them to the log."""

    def __init__(self):
        self._lock = threading.Lock()
        self.entries: List[AuditEntry] = []

    def record(self, action: str, metadata: Dict[str, Any]) -> None:
        with self._lock:
            self.entries.append(AuditEntry(action=action, metadata=dict(metadata)))
        logger.info(f"audit: {action} {metadata}")


def record_audit_action(audit_log, action: str, metadata: Dict[str, Any]) -> None:
    """Record an audit action, swallowing and logging any sink failure."""
    if audit_log is None:
        return
    try:
        audit_log.record(action, metadata)
    except Exception as e:
        logger.error(f"Failed to write audit log entry {action}: {e}")
