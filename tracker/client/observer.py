"""
Behaviour shared by the push and poll observers.

Both feed payloads through the same path: phase check against the session,
wholesale view replacement, partial-failure warnings, and a terminal step
guarded by the session's has_fired_terminal flag.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from config.logging_config import get_logger
from tracker.client.reconciler import Failure, Success, TerminalReconciler
from tracker.client.resume_registry import ResumeRegistry
from tracker.client.session import ObserverSession, SessionStore, TransportKind
from tracker.client.view import ProgressView
from tracker.errors import BatchTrackingError, BusinessError, PartialFailureWarning
from tracker.phases import Phase, parse_phase

logger = get_logger(__name__)


@dataclass
class ObserverCallbacks:
    """Caller hooks. Exceptions raised inside them are logged and ignored."""
    on_update: Optional[Callable[[ProgressView], None]] = None
    on_complete: Optional[Callable[[Success], None]] = None
    on_error: Optional[Callable[[BatchTrackingError], None]] = None
    # Called when a previously reported transient error no longer applies
    on_error_cleared: Optional[Callable[[], None]] = None


class BaseObserver:
    """Common payload handling; subclasses own the transport."""

    def __init__(
        self,
        sessions: SessionStore,
        reconciler: TerminalReconciler,
        resume_registry: ResumeRegistry,
        callbacks: Optional[ObserverCallbacks] = None,
    ):
        self.sessions = sessions
        self.reconciler = reconciler
        self.resume_registry = resume_registry
        self.callbacks = callbacks if callbacks is not None else ObserverCallbacks()
        self.session: Optional[ObserverSession] = None
        self.transient_error: Optional[BatchTrackingError] = None
        self._replay_pending = False

    @property
    def batch_id(self) -> Optional[str]:
        return self.session.batch_id if self.session else None

    @property
    def view(self) -> Optional[ProgressView]:
        return self.session.view if self.session else None

    def _bind_session(self, batch_id: str, transport: TransportKind):
        """Open the session for batch_id; its first snapshot goes to these callbacks even if unchanged."""
        self.session = self.sessions.open(batch_id, transport)
        self._replay_pending = True

    async def _close_transport(self):
        """Release the transport after a terminal outcome."""

    # ------------------------------------------------------------------
    # Payload handling
    # ------------------------------------------------------------------

    async def _apply_snapshot(self, payload: Dict[str, Any]):
        """Route a progress-shaped payload by its phase."""
        try:
            phase = parse_phase(payload.get("phase") or Phase.STARTING)
        except ValueError as e:
            logger.warning(f"Ignoring payload for {self.batch_id}: {e}")
            return

        if phase == Phase.COMPLETE:
            await self._handle_complete(payload)
        elif phase == Phase.FAILED:
            await self._handle_failure(payload)
        else:
            self._apply_progress(payload, phase)

    def _apply_progress(self, payload: Dict[str, Any], phase: Phase) -> bool:
        """
        Replace the view with payload.

        Returns:
            True when the view changed and callers were told
        """
        session = self.session
        if session.has_fired_terminal:
            return False
        if not session.accept_phase(phase):
            logger.debug(
                f"Ignoring {phase.value} for {session.batch_id}: "
                f"already at {session.last_seen_phase.value}"
            )
            return False

        view = ProgressView.from_payload(payload, batch_id=session.batch_id, phase=phase)
        if view == session.view and not self._replay_pending:
            return False

        self._replay_pending = False
        session.view = view
        previous_error, self.transient_error = self.transient_error, None
        self._notify("on_update", view)
        self._check_partial_failure(view)
        if previous_error is not None and self.transient_error is None:
            self._notify("on_error_cleared")
        return True

    def _check_partial_failure(self, view: ProgressView):
        session = self.session
        new_failures = view.failed > session.reported_failed
        new_warnings = len(view.warnings) > session.reported_warnings
        if not (new_failures or new_warnings):
            return

        session.reported_failed = max(session.reported_failed, view.failed)
        session.reported_warnings = max(session.reported_warnings, len(view.warnings))

        if new_warnings:
            message = view.warnings[-1]
        else:
            message = view.errors[-1] if view.errors else f"{view.failed} units failed"
        warning = PartialFailureWarning(message, failed=view.failed)
        self.transient_error = warning
        self._notify("on_error", warning)

    async def _handle_complete(self, data: Dict[str, Any]):
        if not self._claim_terminal("complete"):
            return

        view = self._terminal_view(data, Phase.COMPLETE)
        outcome = Success.from_payload(data)
        logger.info(
            f"Batch {self.batch_id} complete: {outcome.completed} completed, {outcome.failed} failed"
        )
        self._notify("on_update", view)
        self._reconcile(outcome)
        await self._close_transport()
        self._notify("on_complete", outcome)

    async def _handle_failure(self, data: Dict[str, Any]):
        if not self._claim_terminal("error"):
            return

        view = self._terminal_view(data, Phase.FAILED)
        outcome = Failure.from_payload(data)
        message = data.get("error") or (outcome.errors[-1] if outcome.errors else "Batch failed")
        logger.info(f"Batch {self.batch_id} failed: {message}")
        self._notify("on_update", view)
        self._reconcile(outcome)
        await self._close_transport()
        self._notify("on_error", BusinessError(message, outcome.errors))

    def _claim_terminal(self, kind: str) -> bool:
        if self.sessions.claim_terminal(self.session):
            return True
        logger.debug(f"Duplicate {kind} for {self.batch_id} ignored")
        return False

    def _terminal_view(self, data: Dict[str, Any], phase: Phase) -> ProgressView:
        previous = self.session.view
        payload = dict(data)
        if previous is not None:
            payload.setdefault("total", previous.total)
            payload.setdefault("started_at", previous.started_at)
            payload.setdefault("completed", previous.completed)
            payload.setdefault("failed", previous.failed)
        view = ProgressView.from_payload(payload, batch_id=self.batch_id, phase=phase)
        self.session.last_seen_phase = phase
        self.session.view = view
        return view

    def _reconcile(self, outcome):
        try:
            self.reconciler.reconcile(outcome)
        except Exception as e:
            logger.error(f"Reconciler error for {self.batch_id}: {e}")

    def _notify(self, name: str, *args: Any):
        callback = getattr(self.callbacks, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"{name} callback error: {e}")
