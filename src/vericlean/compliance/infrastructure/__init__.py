"""
Compliance Infrastructure Layer
===============================

Infrastructure implementations for the compliance watchdog:
- Models: SQLAlchemy ORM models
- Repositories: SQL-backed document store
- Memory: in-process document store
- External: SLA config watcher, scheduler, job wrapper
"""

from vericlean.compliance.infrastructure.models import CheckpointModel, AlertModel
from vericlean.compliance.infrastructure.repositories import SQLAlchemyDocumentStore
from vericlean.compliance.infrastructure.memory import InMemoryDocumentStore
from vericlean.compliance.infrastructure.external import (
    SLAConfigManager,
    WatchdogJob,
    WatchdogScheduler,
)

__all__ = [
    "CheckpointModel",
    "AlertModel",
    "SQLAlchemyDocumentStore",
    "InMemoryDocumentStore",
    "SLAConfigManager",
    "WatchdogJob",
    "WatchdogScheduler",
]
