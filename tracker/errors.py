"""
Error taxonomy for batch tracking.

Client-side errors are delivered to callers through on_error callbacks; they
are exception types so callers can use isinstance() checks, but observers
never raise them across the observer/reconciler boundary.
"""

from typing import List, Optional


class BatchTrackingError(Exception):
    """Base class for all batch tracking errors."""


# ============================================================================
# Client-side taxonomy
# ============================================================================

class TransportError(BatchTrackingError):
    """Connection dropped without a structured payload, or polling gave up."""

    def __init__(self, message: str = "connection lost", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class BusinessError(BatchTrackingError):
    """Structured failure reported by the server. Terminal."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class PartialFailureWarning(BatchTrackingError):
    """Some units failed but the batch keeps running. Non-terminal, dismissible."""

    def __init__(self, message: str, failed: int = 0):
        super().__init__(message)
        self.failed = failed


class StaleResumeError(BatchTrackingError):
    """A resume record outlived its TTL. Handled inside the resume registry only."""


# ============================================================================
# Server-side errors
# ============================================================================

class BatchNotFoundError(BatchTrackingError, KeyError):
    """No batch with the requested id is known to the registry."""

    def __init__(self, batch_id: str):
        super().__init__(f"Batch not found: {batch_id}")
        self.batch_id = batch_id

    def __str__(self) -> str:
        return self.args[0]


class PhaseRegressionError(BatchTrackingError):
    """An update tried to move a batch backwards or out of a terminal phase."""


class InvalidBatchRequestError(BatchTrackingError, ValueError):
    """A submission request failed validation."""
