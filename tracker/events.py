"""
Wire events shared by the broadcaster (server) and the observers (client).
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict

from tracker.phases import Phase, parse_phase

EVENT_CONNECTED = "connected"
EVENT_PROGRESS = "progress"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"

TERMINAL_EVENTS = (EVENT_COMPLETE, EVENT_ERROR)


@dataclass
class BatchEvent:
    """One named event on a batch stream."""
    event: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def to_sse(self) -> Dict[str, str]:
        """Shape expected by sse_starlette's EventSourceResponse."""
        return {"event": self.event, "data": json.dumps(self.data)}

    @classmethod
    def from_sse(cls, event: str, data: str) -> "BatchEvent":
        """Rebuild an event from a received SSE frame."""
        payload = json.loads(data) if data else {}
        return cls(event=event or "message", data=payload if isinstance(payload, dict) else {})


def event_from_snapshot(snapshot: Dict[str, Any]) -> BatchEvent:
    """Map a progress-shaped snapshot to the event that describes it."""
    phase = parse_phase(snapshot.get("phase") or Phase.STARTING)
    if phase == Phase.COMPLETE:
        return BatchEvent(EVENT_COMPLETE, {
            "batch_id": snapshot.get("batch_id"),
            "completed": snapshot.get("completed", 0),
            "failed": snapshot.get("failed", 0),
            "total": snapshot.get("total", 0),
            "errors": list(snapshot.get("errors") or []),
            "warnings": list(snapshot.get("warnings") or []),
            "metrics": snapshot.get("metrics") or {},
        })
    if phase == Phase.FAILED:
        return BatchEvent(EVENT_ERROR, {
            "batch_id": snapshot.get("batch_id"),
            "error": snapshot.get("error") or "Batch failed",
            "errors": list(snapshot.get("errors") or []),
        })
    return BatchEvent(EVENT_PROGRESS, dict(snapshot))
