"""
Audit Logger
=============

JSONL audit trail of verification activity. Identifiers are masked
before they are written.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, List, Union

from crossid_core.utils.clock import Clock, SystemClock
from crossid_core.utils.masking import mask_pii

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Engine operations written to the audit trail."""
    CROSS_VALIDATION = "cross_validation"
    PRE_SCREEN = "pre_screen"
    STATUS_LOOKUP = "status_lookup"
    CONFIG_CHANGE = "config_change"
    CACHE_SWEEP = "cache_sweep"


@dataclass
class AuditEvent:
    """
    One line of the audit trail.

    Attributes:
        id: Unique event identifier
        timestamp: Event timestamp (UTC)
        action: Type of action performed
        subject: Masked identity the action concerns
        resource_id: ID of the resource (e.g. verification ID)
        details: Additional event details
        success: Whether the action succeeded
        error_message: Error message if failed
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: SystemClock().now())
    action: str = ""
    subject: str = "system"
    resource_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "action": self.action,
            "subject": self.subject,
            "resource_id": self.resource_id,
            "details": self.details,
            "success": self.success,
            "error_message": self.error_message,
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEvent":
        """Create from dictionary."""
        return cls(
            id=data.get("id", str(uuid.uuid4())),
            timestamp=datetime.fromisoformat(data["timestamp"]) if "timestamp" in data else SystemClock().now(),
            action=data.get("action", ""),
            subject=data.get("subject", "system"),
            resource_id=data.get("resource_id"),
            details=data.get("details", {}),
            success=data.get("success", True),
            error_message=data.get("error_message"),
        )


class AuditLogger:
    """
    Append-only audit trail, one JSONL file per day.

    Example:
        >>> audit = AuditLogger(log_path="./data/audit_logs")
        >>> audit.log_cross_validation(record.verification_id, user_id, record.passed,
        ...                            record.confidence, record.risk_score, record.sources)
        >>> audit.query(action=AuditAction.CROSS_VALIDATION.value)
    """

    def __init__(
        self,
        log_path: str = "./data/audit_logs",
        retention_days: int = 365,
        enabled: bool = True,
        mask: bool = True,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize audit logger.

        Args:
            log_path: Directory for log files
            retention_days: How long to retain logs
            enabled: Whether logging is enabled
            mask: Mask subject identifiers
            clock: Time source for event timestamps
        """
        self.log_path = Path(log_path)
        self.retention_days = retention_days
        self.enabled = enabled
        self.mask = mask
        self.clock = clock or SystemClock()
        self._lock = threading.Lock()

        if self.enabled:
            self.log_path.mkdir(parents=True, exist_ok=True)

    def log(self, event: AuditEvent) -> None:
        """
        Log an audit event.

        Args:
            event: Audit event to log
        """
        if not self.enabled:
            return

        log_file = self._get_log_file(event.timestamp)
        try:
            with self._lock, open(log_file, "a") as f:
                f.write(event.to_json() + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit event {event.id}: {e}")

    def _subject(self, value: Optional[str]) -> str:
        return mask_pii(value) if self.mask else (value or "undefined")

    def log_cross_validation(
        self,
        verification_id: str,
        subject: Optional[str],
        passed: bool,
        confidence: float,
        risk_score: float,
        sources: Dict[str, bool],
        cached: bool = False,
    ) -> None:
        """Log a cross-validation outcome."""
        self.log(AuditEvent(
            timestamp=self.clock.now(),
            action=AuditAction.CROSS_VALIDATION.value,
            subject=self._subject(subject),
            resource_id=verification_id,
            details={
                "passed": passed,
                "confidence": confidence,
                "risk_score": risk_score,
                "sources": sources,
                "cached": cached,
            },
            success=passed,
        ))

    def log_pre_screen(
        self,
        subject: Optional[str],
        passed: bool,
        score: int,
        issues: List[str],
    ) -> None:
        """Log a pre-screening outcome."""
        self.log(AuditEvent(
            timestamp=self.clock.now(),
            action=AuditAction.PRE_SCREEN.value,
            subject=self._subject(subject),
            details={"score": score, "issues": issues},
            success=passed,
        ))

    def log_status_lookup(self, verification_id: str, found: bool) -> None:
        """Log a verification status lookup."""
        self.log(AuditEvent(
            timestamp=self.clock.now(),
            action=AuditAction.STATUS_LOOKUP.value,
            resource_id=verification_id,
            success=found,
            error_message=None if found else "Verification not found",
        ))

    def log_config_change(self, changes: Dict[str, Any]) -> None:
        """Log a configuration change."""
        self.log(AuditEvent(
            timestamp=self.clock.now(),
            action=AuditAction.CONFIG_CHANGE.value,
            details={"changes": changes},
        ))

    def log_sweep(self, removed: Dict[str, int]) -> None:
        """Log a store sweep."""
        self.log(AuditEvent(
            timestamp=self.clock.now(),
            action=AuditAction.CACHE_SWEEP.value,
            details={"removed": removed},
        ))

    def _get_log_file(self, timestamp: Union[date, datetime]) -> Path:
        """Daily JSONL file holding events from ``timestamp``'s date."""
        date_str = timestamp.strftime("%Y-%m-%d")
        return self.log_path / f"audit_{date_str}.jsonl"

    def _read_day(self, day: date) -> Iterator[AuditEvent]:
        log_file = self._get_log_file(day)
        if not log_file.exists():
            return
        with open(log_file, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield AuditEvent.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, ValueError):
                    logger.warning(f"Skipping unreadable audit line in {log_file.name}")

    def query(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        action: Optional[str] = None,
        resource_id: Optional[str] = None,
        limit: int = 1000,
    ) -> List[AuditEvent]:
        """
        Read events back, oldest day first.

        Args:
            start_date: First day to read (default: 30 days before end_date)
            end_date: Last day to read (default: today)
            action: Only events with this action
            resource_id: Only events for this verification ID
            limit: Maximum results
        """
        last = (end_date or self.clock.now()).date()
        first = start_date.date() if start_date else last - timedelta(days=30)

        events: List[AuditEvent] = []
        day = first
        while day <= last:
            for event in self._read_day(day):
                if action and event.action != action:
                    continue
                if resource_id and event.resource_id != resource_id:
                    continue
                events.append(event)
                if len(events) >= limit:
                    return events
            day += timedelta(days=1)
        return events

    def purge_old_logs(self) -> int:
        """Delete daily files older than the retention period. Returns files removed."""
        if not self.log_path.exists():
            return 0

        cutoff = (self.clock.now() - timedelta(days=self.retention_days)).date()
        removed = 0
        for log_file in sorted(self.log_path.glob("audit_*.jsonl")):
            try:
                file_date = datetime.strptime(log_file.stem[len("audit_"):], "%Y-%m-%d").date()
            except ValueError:
                continue
            if file_date < cutoff:
                log_file.unlink()
                removed += 1

        if removed:
            logger.info(f"Purged {removed} audit log files older than {cutoff}")
        return removed
