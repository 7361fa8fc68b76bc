"""
VeriClean Compliance Watchdog
=============================

Periodic SLA evaluation of cleaning checkpoints.
"""

__version__ = "1.0.0"
