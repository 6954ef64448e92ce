"""
Local progress view.

A ProgressView is rebuilt wholesale from every payload; fields are never
merged across updates, so stale and fresh values cannot mix.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from config.constants import MAX_ERRORS_SHOWN
from tracker.phases import Phase, parse_phase
from tracker.progress import elapsed, format_duration, format_eta, percentage


def truncate_errors(errors: Sequence[str], max_shown: int = MAX_ERRORS_SHOWN) -> List[str]:
    """Errors to display, with a trailing '... and N more errors' when truncated."""
    lines = list(errors[:max_shown])
    hidden = len(errors) - max_shown
    if hidden > 0:
        lines.append(f"... and {hidden} more errors")
    return lines


@dataclass(frozen=True)
class ProgressView:
    """What the caller sees about a batch at one point in time."""
    batch_id: str
    phase: Phase
    completed: int = 0
    failed: int = 0
    total: int = 0
    current_unit_label: Optional[str] = None
    started_at: Optional[float] = None
    estimated_completion_at: Optional[float] = None
    current_chunk: int = 0
    total_chunks: int = 0
    images_generated: int = 0
    per_agent_status: Dict[str, str] = field(default_factory=dict)
    errors: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()

    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        batch_id: Optional[str] = None,
        phase: Optional[Phase] = None,
    ) -> "ProgressView":
        """
        Build a view from a progress/snapshot/complete payload.

        Args:
            payload: Event data as received
            batch_id: Fallback id when the payload does not carry one
            phase: Phase override (terminal events carry no phase field)
        """
        resolved = phase or parse_phase(payload.get("phase") or Phase.STARTING)
        return cls(
            batch_id=str(payload.get("batch_id") or batch_id or ""),
            phase=resolved,
            completed=int(payload.get("completed") or 0),
            failed=int(payload.get("failed") or 0),
            total=int(payload.get("total") or 0),
            current_unit_label=payload.get("current_unit_label"),
            started_at=payload.get("started_at"),
            estimated_completion_at=payload.get("estimated_completion_at"),
            current_chunk=int(payload.get("current_chunk") or 0),
            total_chunks=int(payload.get("total_chunks") or 0),
            images_generated=int(payload.get("images_generated") or 0),
            per_agent_status=dict(payload.get("per_agent_status") or {}),
            errors=tuple(payload.get("errors") or ()),
            warnings=tuple(payload.get("warnings") or ()),
        )

    @property
    def percentage(self) -> float:
        return percentage(self.completed, self.failed, self.total)

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    @property
    def label(self) -> str:
        return self.phase.label

    @property
    def summary_line(self) -> str:
        return f"Overall Progress ({self.processed}/{self.total})"

    @property
    def error_heading(self) -> str:
        count = len(self.errors)
        return f"{count} Error" if count == 1 else f"{count} Errors"

    def error_lines(self, max_shown: int = MAX_ERRORS_SHOWN) -> List[str]:
        return truncate_errors(self.errors, max_shown)

    def elapsed_text(self, now: Optional[float] = None) -> str:
        if self.started_at is None:
            return format_duration(None)
        return format_duration(elapsed(self.started_at, now))

    def eta_text(self, now: Optional[float] = None) -> str:
        return format_eta(self.estimated_completion_at, now)

    def render_lines(self, now: Optional[float] = None) -> List[str]:
        """Plain-text rendering for terminals and logs."""
        lines = [
            f"[{self.phase.value}] {self.label}",
            f"{self.summary_line} {self.percentage:.1f}%",
            f"Completed: {self.completed}  Failed: {self.failed}",
            f"Elapsed: {self.elapsed_text(now)}  ETA: {self.eta_text(now)}",
        ]
        if self.total_chunks:
            lines.append(f"Chunk {self.current_chunk}/{self.total_chunks}")
        if self.current_unit_label:
            lines.append(f"Current: {self.current_unit_label}")
        if self.per_agent_status:
            agents = ", ".join(f"{name}={status}" for name, status in self.per_agent_status.items())
            lines.append(f"Agents: {agents}")
        if self.images_generated:
            lines.append(f"{self.images_generated} images generated")
        if self.errors:
            lines.append(self.error_heading)
            lines.extend(f"  {line}" for line in self.error_lines())
        return lines
