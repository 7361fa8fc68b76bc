"""
Compliance Application DTOs
===========================

Query primitives exchanged with the document store, and Pydantic models
describing watchdog runs for logs, metrics and the API layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field


# ========== Store primitives ==========

FilterOp = Literal["==", "<", "<=", ">", ">=", "in"]
WriteKind = Literal["create", "update"]


@dataclass(frozen=True)
class FieldFilter:
    """One `field op value` predicate of a store query."""
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class StoredDocument:
    """A document read from a collection."""
    id: str
    data: Dict[str, Any]


@dataclass(frozen=True)
class WriteOperation:
    """
    One write inside a batch.

    create: insert the document unless a document with this id exists.
    update: merge `data` into an existing document.
    """
    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)


# Keyset pagination cursor: values of the order_by fields of the last row
Cursor = Tuple[Any, ...]


# ========== Response DTOs ==========

class WatchdogRunSummary(BaseModel):
    """Outcome of one watchdog invocation."""
    run_id: str = Field(..., description="Correlation id of the run")
    started_at: datetime = Field(..., description="The run's single 'now'")
    cutoff: Optional[datetime] = Field(None, description="Query cutoff (strictest policy)")
    outcome: str = Field(..., description="Terminal branch of the run")
    overdue_count: int = Field(default=0, ge=0)
    already_alerted_count: int = Field(default=0, ge=0)
    deduplicated_count: int = Field(default=0, ge=0, description="Overdue checkpoints with no open alert")
    alerts_created: int = Field(default=0, ge=0)
    statuses_updated: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)

    def counts(self) -> Dict[str, int]:
        return {
            "overdue_count": self.overdue_count,
            "already_alerted_count": self.already_alerted_count,
            "deduplicated_count": self.deduplicated_count,
            "alerts_created": self.alerts_created,
            "statuses_updated": self.statuses_updated,
        }


class AlertResponse(BaseModel):
    """Response model for a missing-clean alert."""
    id: str
    building_id: str
    checkpoint_id: str
    type: str
    severity: str
    status: str
    message: str
    details: Dict[str, Any]
    last_cleaned_at: str
    created_at: datetime


class AlertListResponse(BaseModel):
    """Response model for open alert listings."""
    total: int
    alerts: List[AlertResponse] = Field(default_factory=list)
