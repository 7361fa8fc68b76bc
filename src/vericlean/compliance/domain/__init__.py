"""
Compliance Domain Layer
=======================

Contains:
- Entities: Checkpoint, Alert
- Value Objects: SLAPolicy, SLAConfig
- Domain Services: ThresholdCalculator, SLAPolicyResolver

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from vericlean.compliance.domain.entities import Checkpoint, Alert, EPOCH, ensure_utc
from vericlean.compliance.domain.value_objects import (
    SLAPolicy,
    SLAConfig,
    SLAPolicyResolver,
    ThresholdCalculator,
)

__all__ = [
    # Entities
    "Checkpoint",
    "Alert",
    "EPOCH",
    "ensure_utc",
    # Value Objects & Services
    "SLAPolicy",
    "SLAConfig",
    "SLAPolicyResolver",
    "ThresholdCalculator",
]
