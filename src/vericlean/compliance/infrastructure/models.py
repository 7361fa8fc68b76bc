"""
Compliance Infrastructure Models
================================

SQLAlchemy ORM models backing the `checkpoints` and `alerts` collections.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vericlean.infrastructure.database import Base
from vericlean.config import AlertSeverity, AlertStatus, AlertType, CheckpointStatus


class CheckpointModel(Base):
    """
    Database model for the Checkpoint entity.

    Maps to the 'checkpoints' table. The compound index serves the
    watchdog's overdue query in a single range scan.
    """
    __tablename__ = "checkpoints"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    building_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Denormalized from cleaning logs by the verification pipeline
    last_cleaned_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_cleaned_at: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    current_status: Mapped[str] = mapped_column(String(32), nullable=False, default=CheckpointStatus.UNKNOWN)

    __table_args__ = (
        Index("ix_checkpoints_active_last_cleaned", "is_active", "last_cleaned_timestamp"),
    )


class AlertModel(Base):
    """
    Database model for the Alert entity.

    Maps to the 'alerts' table. `id` is the deterministic breach key, so a
    second insert of the same breach episode is ignored.
    """
    __tablename__ = "alerts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    building_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    checkpoint_id: Mapped[str] = mapped_column(String(128), nullable=False)

    type: Mapped[str] = mapped_column(String(64), nullable=False, default=AlertType.SLA_MISSING_CLEAN)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default=AlertSeverity.MEDIUM)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=AlertStatus.OPEN)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    last_cleaned_at: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_alerts_checkpoint_type_status", "checkpoint_id", "type", "status"),
    )
