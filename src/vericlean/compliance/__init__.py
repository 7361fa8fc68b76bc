"""
Compliance Watchdog Module
==========================

Bounded context for checkpoint cleaning SLA compliance.

Responsibilities:
- Resolve the maximum allowed gap between cleanings per building
- Find overdue checkpoints with one indexed query
- Skip checkpoints that already have an open missing-clean alert
- Commit new alerts and OVERDUE status transitions in bounded batches
- Run on a fixed 15-minute cadence and report outcome counts
"""

__version__ = "1.0.0"
