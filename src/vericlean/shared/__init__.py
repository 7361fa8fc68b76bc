"""
Shared Kernel Module
====================

This module contains shared infrastructure used across bounded contexts
(compliance watchdog, privacy filtering, analytics mirror).

DO NOT add watchdog business logic to the shared kernel.
"""

__version__ = "1.0.0"
