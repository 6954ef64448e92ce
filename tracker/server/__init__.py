"""
Server side of batch tracking: registry, broadcaster, reporter, workers.
"""

from .models import BatchJob, BatchRequest
from .registry import JobRegistry
from .broadcaster import EventBroadcaster
from .reporter import ProgressReporter, ProgressCallback, create_logging_callback
from .worker import BatchWorker, StagedBatchWorker
from .service import BatchService

__all__ = [
    # State
    'BatchJob',
    'BatchRequest',
    'JobRegistry',
    # Streaming
    'EventBroadcaster',
    # Pipeline side
    'ProgressReporter',
    'ProgressCallback',
    'create_logging_callback',
    'BatchWorker',
    'StagedBatchWorker',
    'BatchService',
]
