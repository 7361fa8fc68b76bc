"""
Analytics Module
================

Fire-and-forget mirror of ingested cleaning logs into a flat analytics
table.
"""

from vericlean.analytics.mirror import (
    AnalyticsMirror,
    AnalyticsRow,
    IAnalyticsSink,
    flatten_service_log,
)
from vericlean.analytics.sinks import (
    AnalyticsLogModel,
    InMemoryAnalyticsSink,
    SQLAlchemyAnalyticsSink,
)

__all__ = [
    "AnalyticsMirror",
    "AnalyticsRow",
    "IAnalyticsSink",
    "flatten_service_log",
    "AnalyticsLogModel",
    "InMemoryAnalyticsSink",
    "SQLAlchemyAnalyticsSink",
]
