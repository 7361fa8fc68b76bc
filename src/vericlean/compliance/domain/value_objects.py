"""
Compliance Value Objects
========================

Immutable value objects and pure calculations for the SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from vericlean.config import DEFAULT_BREACH_SEVERITY, VALID_ALERT_SEVERITIES
from vericlean.compliance.domain.entities import EPOCH


@dataclass(frozen=True)
class SLAPolicy:
    """
    Maximum allowed gap between two cleanings.

    `building_id` is None for the global default policy.
    """
    max_gap_hours: float
    building_id: Optional[str] = None

    def __post_init__(self):
        if self.max_gap_hours <= 0:
            raise ValueError("max_gap_hours must be positive")

    @property
    def max_gap(self) -> timedelta:
        return timedelta(hours=self.max_gap_hours)

    @property
    def threshold_hours(self) -> float:
        """Gap in hours, as an int when it is a whole number."""
        if float(self.max_gap_hours).is_integer():
            return int(self.max_gap_hours)
        return self.max_gap_hours


class ThresholdCalculator:
    """
    Pure functions for SLA threshold calculations.

    `now` is computed once per watchdog run and passed in, so every
    checkpoint in a run is measured against the same instant.
    """

    @staticmethod
    def calculate_cutoff(now: datetime, policy: SLAPolicy) -> datetime:
        """Latest cleaning instant that still satisfies the policy at `now`."""
        return now - policy.max_gap

    @staticmethod
    def is_overdue(last_cleaned: Optional[datetime], cutoff: datetime) -> bool:
        """Strict comparison: cleaned exactly at the cutoff is compliant."""
        if last_cleaned is None:
            return False
        return last_cleaned < cutoff

    @staticmethod
    def calculate_hours_overdue(now: datetime, last_cleaned: Optional[datetime]) -> float:
        """
        Hours elapsed since the last cleaning, rounded to two decimals.

        Returns 0.0 for a checkpoint that was never cleaned (no timestamp
        or the epoch placeholder written at onboarding).
        """
        if last_cleaned is None or last_cleaned <= EPOCH:
            return 0.0
        elapsed = (now - last_cleaned).total_seconds() / 3600
        return round(max(0.0, elapsed), 2)


class SLAConfig(BaseModel):
    """
    SLA policy configuration loaded from YAML.

    Example:
        default_max_gap_hours: 4
        building_overrides:
          bld_hq: 2
          bld_warehouse: 8
    """
    default_max_gap_hours: float = Field(
        default=4.0,
        gt=0,
        description="Global maximum gap between cleanings in hours"
    )
    building_overrides: Dict[str, float] = Field(
        default_factory=dict,
        description="Per-building maximum gap in hours"
    )
    breach_severity: str = Field(
        default=DEFAULT_BREACH_SEVERITY,
        description="Severity assigned to missing-clean alerts"
    )

    @field_validator("building_overrides")
    @classmethod
    def validate_overrides(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject non-positive per-building gaps."""
        for building_id, hours in v.items():
            if hours <= 0:
                raise ValueError(f"max gap for building {building_id} must be positive")
        return v

    @field_validator("breach_severity")
    @classmethod
    def validate_severity(cls, v: str) -> str:
        v = v.upper()
        if v not in VALID_ALERT_SEVERITIES:
            raise ValueError(f"breach_severity must be one of {VALID_ALERT_SEVERITIES}")
        return v


class SLAPolicyResolver:
    """Resolves the policy that applies to a building."""

    def __init__(self, config: SLAConfig):
        self._config = config

    @property
    def breach_severity(self) -> str:
        return self._config.breach_severity

    def resolve(self, building_id: Optional[str] = None) -> SLAPolicy:
        """Building override when one exists, otherwise the global default."""
        if building_id is not None and building_id in self._config.building_overrides:
            return SLAPolicy(
                max_gap_hours=self._config.building_overrides[building_id],
                building_id=building_id
            )
        return SLAPolicy(max_gap_hours=self._config.default_max_gap_hours)

    def strictest_policy(self) -> SLAPolicy:
        """
        Policy with the smallest gap across all buildings.

        Its cutoff is the latest one, so a single query against it returns a
        superset of every building's overdue checkpoints.
        """
        policy = self.resolve(None)
        for building_id, hours in self._config.building_overrides.items():
            if hours < policy.max_gap_hours:
                policy = SLAPolicy(max_gap_hours=hours, building_id=building_id)
        return policy
