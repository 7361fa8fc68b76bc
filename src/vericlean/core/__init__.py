"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from vericlean.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    ConfigurationException,
    StoreLimitExceeded,
    BatchCommitException,
    WatchdogStageError,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "ConfigurationException",
    "StoreLimitExceeded",
    "BatchCommitException",
    "WatchdogStageError",
]
