"""
Compliance Domain Entities
==========================

Pure Python domain entities for checkpoint SLA compliance.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Stores hand
them plain documents (`id` + field dict) and get plain dicts back.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import NAMESPACE_URL, uuid5

from vericlean.config import (
    AlertStatus, AlertType, CheckpointStatus, DEFAULT_BREACH_SEVERITY
)


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes coming back from a store as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Checkpoint:
    """
    A monitored physical location that must be cleaned periodically.

    `last_cleaned_timestamp` is denormalized from the cleaning logs by the
    verification pipeline and only ever moves forward. Onboarding writes
    the epoch so never-cleaned checkpoints are still picked up by the
    overdue query.
    """

    id: str
    building_id: str
    is_active: bool = True
    last_cleaned_timestamp: Optional[datetime] = None
    last_cleaned_at: Optional[str] = None
    current_status: str = CheckpointStatus.UNKNOWN

    def __post_init__(self):
        self.last_cleaned_timestamp = ensure_utc(self.last_cleaned_timestamp)

    @property
    def never_serviced(self) -> bool:
        """True when no verified cleaning has ever been recorded."""
        return self.last_cleaned_timestamp is None or self.last_cleaned_timestamp <= EPOCH

    @property
    def last_cleaned_iso(self) -> str:
        """ISO string of the last cleaning, epoch when never cleaned."""
        if self.last_cleaned_at:
            return self.last_cleaned_at
        return (self.last_cleaned_timestamp or EPOCH).isoformat()

    @property
    def is_marked_overdue(self) -> bool:
        return self.current_status == CheckpointStatus.OVERDUE

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Checkpoint":
        return cls(
            id=doc_id,
            building_id=data.get("building_id", ""),
            is_active=bool(data.get("is_active", False)),
            last_cleaned_timestamp=data.get("last_cleaned_timestamp"),
            last_cleaned_at=data.get("last_cleaned_at"),
            current_status=data.get("current_status") or CheckpointStatus.UNKNOWN,
        )


@dataclass
class Alert:
    """
    A detected SLA breach for one checkpoint.

    Created only by the watchdog and never mutated by it afterwards;
    acknowledgement and closure belong to the operations workflow.
    """

    id: str
    checkpoint_id: str
    building_id: str
    message: str
    hours_overdue: float
    sla_threshold_hours: float
    last_cleaned_at: str
    created_at: datetime
    type: str = AlertType.SLA_MISSING_CLEAN
    severity: str = DEFAULT_BREACH_SEVERITY
    status: str = AlertStatus.OPEN
    extra_details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)

    @property
    def is_open(self) -> bool:
        return self.status == AlertStatus.OPEN

    @property
    def details(self) -> Dict[str, Any]:
        return {
            **self.extra_details,
            "hours_overdue": self.hours_overdue,
            "sla_threshold_hours": self.sla_threshold_hours,
        }

    @staticmethod
    def breach_key(checkpoint_id: str, alert_type: str, last_cleaned_at: str) -> str:
        """
        Deterministic alert id for one breach episode.

        A breach episode is identified by the checkpoint, the alert type and
        the last cleaning it was measured from. Two runs detecting the same
        episode produce the same id, so the second create is absorbed.
        """
        return str(uuid5(NAMESPACE_URL, f"vericlean:{alert_type}:{checkpoint_id}:{last_cleaned_at}"))

    def to_document(self) -> Dict[str, Any]:
        return {
            "building_id": self.building_id,
            "checkpoint_id": self.checkpoint_id,
            "type": self.type,
            "severity": self.severity,
            "status": self.status,
            "message": self.message,
            "details": self.details,
            "last_cleaned_at": self.last_cleaned_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Alert":
        details = dict(data.get("details") or {})
        hours_overdue = details.pop("hours_overdue", 0.0)
        threshold = details.pop("sla_threshold_hours", 0.0)
        return cls(
            id=doc_id,
            checkpoint_id=data.get("checkpoint_id", ""),
            building_id=data.get("building_id", ""),
            message=data.get("message", ""),
            hours_overdue=hours_overdue,
            sla_threshold_hours=threshold,
            last_cleaned_at=data.get("last_cleaned_at") or EPOCH.isoformat(),
            created_at=data.get("created_at") or EPOCH,
            type=data.get("type", AlertType.SLA_MISSING_CLEAN),
            severity=data.get("severity", DEFAULT_BREACH_SEVERITY),
            status=data.get("status", AlertStatus.OPEN),
            extra_details=details,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": self.id,
            **self.to_document(),
            "created_at": self.created_at.isoformat(),
        }
