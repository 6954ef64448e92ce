"""
Observer sessions, keyed by batch id.

The terminal flag and phase history live here rather than on an observer
instance, so re-creating an observer for the same batch (remount, reload
within the process, transport switch) never resets them.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from config.constants import REGISTRY_TTL_SECONDS
from config.logging_config import get_logger
from tracker.client.view import ProgressView
from tracker.phases import Phase, is_regression

logger = get_logger(__name__)


class TransportKind(str, Enum):
    """How an observer receives updates."""
    PUSH = "push"
    POLL = "poll"


@dataclass
class ObserverSession:
    """Client-side tracking state for one batch."""
    batch_id: str
    transport: TransportKind = TransportKind.PUSH
    last_seen_phase: Optional[Phase] = None
    has_fired_terminal: bool = False
    finished_at: Optional[float] = None
    view: Optional[ProgressView] = None

    # Counts already surfaced as partial-failure warnings
    reported_failed: int = 0
    reported_warnings: int = 0

    def accept_phase(self, phase: Phase) -> bool:
        """
        Record phase if it does not move the view backwards.

        Returns:
            False when the phase is a regression and must be ignored
        """
        if is_regression(self.last_seen_phase, phase):
            return False
        self.last_seen_phase = phase
        return True

    def claim_terminal(self, now: Optional[float] = None) -> bool:
        """
        Flip has_fired_terminal false → true.

        Returns:
            True only for the first caller; every later call gets False
        """
        if self.has_fired_terminal:
            return False
        self.has_fired_terminal = True
        self.finished_at = time.time() if now is None else now
        return True


class SessionStore:
    """
    In-process registry of observer sessions.

    Finished sessions are kept for retention_seconds (the server's archive
    time by default) so a late remount still sees the terminal flag; after
    that they are dropped the next time a session is opened.
    """

    def __init__(
        self,
        retention_seconds: float = REGISTRY_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._sessions: Dict[str, ObserverSession] = {}

    def open(self, batch_id: str, transport: TransportKind) -> ObserverSession:
        """Return the existing session for batch_id, or create one."""
        self.prune()
        session = self._sessions.get(batch_id)
        if session is None:
            session = ObserverSession(batch_id=batch_id, transport=transport)
            self._sessions[batch_id] = session
            logger.debug(f"Session opened: {batch_id} ({transport.value})")
        elif session.transport != transport:
            logger.debug(f"Session {batch_id}: {session.transport.value} → {transport.value}")
            session.transport = transport
        return session

    def claim_terminal(self, session: ObserverSession) -> bool:
        """Claim the terminal step for session, stamped with this store's clock."""
        return session.claim_terminal(now=self._clock())

    def prune(self) -> int:
        """Drop finished sessions older than the retention window. Returns how many."""
        cutoff = self._clock() - self.retention_seconds
        expired = [
            batch_id
            for batch_id, session in self._sessions.items()
            if session.finished_at is not None and session.finished_at <= cutoff
        ]
        for batch_id in expired:
            self.discard(batch_id)
        if expired:
            logger.debug(f"Pruned {len(expired)} finished sessions")
        return len(expired)

    def get(self, batch_id: str) -> Optional[ObserverSession]:
        return self._sessions.get(batch_id)

    def discard(self, batch_id: str):
        self._sessions.pop(batch_id, None)

    def __contains__(self, batch_id: str) -> bool:
        return batch_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
