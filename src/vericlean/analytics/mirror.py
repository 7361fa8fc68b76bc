"""
Analytics Mirror
================

Copies every ingested cleaning log into a flat analytics table.

The warehouse prefers flat rows over nested documents, so the nested
proof-of-quality / proof-of-presence blocks are flattened into columns.
Mirroring is fire-and-forget: a failed insert is logged and dropped.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from vericlean.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class AnalyticsRow(BaseModel):
    """One flattened cleaning log."""
    log_id: str
    building_id: Optional[str] = None
    checkpoint_id: Optional[str] = None
    cleaner_id: Optional[str] = None
    timestamp: Optional[datetime] = None

    # Quality
    quality_score: Optional[float] = None
    ai_model: Optional[str] = None
    has_hazards: bool = False

    # Presence
    nfc_hash: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    status: str = "unknown"
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def flatten_service_log(log_id: str, data: Dict[str, Any]) -> AnalyticsRow:
    """Flatten a stored cleaning log document into an analytics row."""
    quality = _section(data, "proof_of_quality")
    presence = _section(data, "proof_of_presence")
    geo = _section(presence, "geo_location")
    verification = _section(data, "verification_result")

    return AnalyticsRow(
        log_id=log_id,
        building_id=data.get("building_id"),
        checkpoint_id=data.get("checkpoint_id"),
        cleaner_id=data.get("cleaner_id"),
        timestamp=data.get("created_at"),
        quality_score=quality.get("overall_score"),
        ai_model=quality.get("ai_model_used"),
        has_hazards=len(quality.get("detected_objects") or []) > 0,
        nfc_hash=presence.get("nfc_payload_hash"),
        lat=geo.get("latitude"),
        lng=geo.get("longitude"),
        status=verification.get("status") or "unknown",
    )


class IAnalyticsSink(ABC):
    """Destination for flattened analytics rows."""

    @abstractmethod
    async def insert(self, rows: List[AnalyticsRow]) -> None:
        """Append rows to the analytics table."""


class AnalyticsMirror:
    """Streams cleaning logs into an analytics sink."""

    def __init__(self, sink: IAnalyticsSink, enabled: bool = True):
        self._sink = sink
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def stream(self, log_id: str, data: Dict[str, Any]) -> bool:
        """
        Mirror one cleaning log.

        Returns True when the row was inserted. Never raises.
        """
        if not self._enabled:
            return False

        try:
            row = flatten_service_log(log_id, data)
            await self._sink.insert([row])
        except Exception as e:
            logger.error(
                "Analytics insert failed",
                extra={"log_id": log_id, "error": str(e), "error_type": type(e).__name__}
            )
            return False

        logger.info("Streamed cleaning log to analytics", extra={"log_id": log_id})
        return True
