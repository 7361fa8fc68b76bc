"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""



class StoreLimitExceeded(ValidationException):
    """Raised by a store when a request exceeds one of its hard ceilings."""

    def __init__(self, limit_name: str, limit: int, requested: int):
        self.limit_name = limit_name
        self.limit = limit
        self.requested = requested
        super().__init__(
            f"{limit_name} exceeded: {requested} > {limit}",
            {"limit_name": limit_name, "limit": limit, "requested": requested}
        )


class BatchCommitException(RepositoryException):
    """
    Raised when a sequence of write batches fails part way.

    `committed` counts the operations that were durably written before
    the failing batch.
    """

    def __init__(
        self,
        message: str,
        committed: int,
        attempted: int,
        details: Optional[dict] = None
    ):
        self.committed = committed
        self.attempted = attempted
        super().__init__(
            message,
            {"committed": committed, "attempted": attempted, **(details or {})}
        )


class WatchdogStageError(DomainException):
    """Exception raised when a watchdog run fails in one of its stages."""

    def __init__(
        self,
        stage: str,
        counts: Optional[dict] = None,
        cause: Optional[BaseException] = None
    ):
        self.stage = stage
        self.counts = counts or {}
        reason = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Compliance watchdog failed during {stage}{reason}",
            {"stage": stage, **self.counts}
        )
