"""
Client side of batch tracking: observers, resume, reconciliation.
"""

from .session import ObserverSession, SessionStore, TransportKind
from .view import ProgressView
from .resume_registry import (
    FileSlotStorage,
    MemorySlotStorage,
    ResumeRecord,
    ResumeRegistry,
    SlotStorage,
)
from .reconciler import (
    CollectionCache,
    Failure,
    LoggingNotifier,
    Notification,
    NotificationLevel,
    Notifier,
    Outcome,
    Success,
    TerminalReconciler,
)
from .transports import (
    HttpBatchSubmitter,
    HttpSnapshotFetcher,
    LocalBatchSubmitter,
    LocalPushTransport,
    LocalSnapshotFetcher,
    SSEPushTransport,
)
from .observer import ObserverCallbacks
from .push_observer import PushProgressObserver, PushState
from .poll_observer import PollProgressObserver, PollState
from .tracker import BatchTracker, ObservationHandle, get_default_tracker, observe_batch, try_resume

__all__ = [
    # Sessions & view
    'ObserverSession',
    'SessionStore',
    'TransportKind',
    'ProgressView',
    # Resume
    'FileSlotStorage',
    'MemorySlotStorage',
    'ResumeRecord',
    'ResumeRegistry',
    'SlotStorage',
    # Reconciliation
    'CollectionCache',
    'Failure',
    'LoggingNotifier',
    'Notification',
    'NotificationLevel',
    'Notifier',
    'Outcome',
    'Success',
    'TerminalReconciler',
    # Transports
    'HttpBatchSubmitter',
    'HttpSnapshotFetcher',
    'LocalBatchSubmitter',
    'LocalPushTransport',
    'LocalSnapshotFetcher',
    'SSEPushTransport',
    # Observers
    'ObserverCallbacks',
    'PushProgressObserver',
    'PushState',
    'PollProgressObserver',
    'PollState',
    # Facade
    'BatchTracker',
    'ObservationHandle',
    'get_default_tracker',
    'observe_batch',
    'try_resume',
]
