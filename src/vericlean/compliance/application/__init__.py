"""
Compliance Application Layer
============================

Contains:
- Services: the watchdog pipeline and its components
- DTOs: store query primitives and run summaries

This layer depends on the domain layer and store interfaces,
but not on concrete infrastructure implementations.
"""

from vericlean.compliance.application.dto import (
    AlertListResponse,
    AlertResponse,
    Cursor,
    FieldFilter,
    StoredDocument,
    WatchdogRunSummary,
    WriteOperation,
)
from vericlean.compliance.application.services import (
    AlertDeduplicator,
    AlertQueryService,
    AlertWriter,
    ComplianceWatchdog,
    DedupResult,
    IDocumentStore,
    ISLAConfigProvider,
    OverdueQueryEngine,
    chunked,
)

__all__ = [
    # DTOs
    "AlertListResponse",
    "AlertResponse",
    "Cursor",
    "FieldFilter",
    "StoredDocument",
    "WatchdogRunSummary",
    "WriteOperation",
    # Services
    "AlertDeduplicator",
    "AlertQueryService",
    "AlertWriter",
    "ComplianceWatchdog",
    "DedupResult",
    "OverdueQueryEngine",
    "chunked",
    # Store Interfaces
    "IDocumentStore",
    "ISLAConfigProvider",
]
