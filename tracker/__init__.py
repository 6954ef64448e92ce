"""
Batch progress tracking.

Server side (tracker.server) keeps the authoritative job state and streams
it; client side (tracker.client) observes a batch through to its terminal
outcome, across restarts and transport failures.
"""

from .phases import Phase, parse_phase, can_transition
from .progress import percentage, elapsed, eta, format_duration, format_eta
from .errors import (
    BatchTrackingError,
    TransportError,
    BusinessError,
    PartialFailureWarning,
    StaleResumeError,
    BatchNotFoundError,
    PhaseRegressionError,
    InvalidBatchRequestError,
)
from .events import BatchEvent

__version__ = "1.0.0"

__all__ = [
    'Phase',
    'parse_phase',
    'can_transition',
    'percentage',
    'elapsed',
    'eta',
    'format_duration',
    'format_eta',
    'BatchTrackingError',
    'TransportError',
    'BusinessError',
    'PartialFailureWarning',
    'StaleResumeError',
    'BatchNotFoundError',
    'PhaseRegressionError',
    'InvalidBatchRequestError',
    'BatchEvent',
]
