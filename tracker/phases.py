"""
Canonical batch phases shared by server and client.

Older producers emit legacy names (planning, images, saving...); they are
translated once at the boundary by parse_phase() and never leak further.
"""

from enum import Enum
from typing import Dict, Optional, Union


class Phase(str, Enum):
    """Lifecycle phase of a batch job, in canonical order."""
    STARTING = "starting"
    GENERATING = "generating"
    VALIDATING = "validating"
    IMAGING = "imaging"
    STORING = "storing"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        """Position in the canonical ordering. Terminal phases share the top rank."""
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Phase.COMPLETE, Phase.FAILED)

    @property
    def label(self) -> str:
        """Human-readable description of what the batch is doing."""
        return PHASE_LABELS[self]


_RANKS: Dict[Phase, int] = {
    Phase.STARTING: 0,
    Phase.GENERATING: 1,
    Phase.VALIDATING: 2,
    Phase.IMAGING: 3,
    Phase.STORING: 4,
    Phase.COMPLETE: 5,
    Phase.FAILED: 5,
}

PHASE_LABELS: Dict[Phase, str] = {
    Phase.STARTING: "Initializing generation...",
    Phase.GENERATING: "Generating recipes with AI...",
    Phase.VALIDATING: "Validating recipe data...",
    Phase.IMAGING: "Generating recipe images...",
    Phase.STORING: "Saving to database...",
    Phase.COMPLETE: "Generation complete!",
    Phase.FAILED: "Generation failed",
}

# Legacy names still emitted by older producers
LEGACY_PHASE_NAMES: Dict[str, Phase] = {
    "planning": Phase.STARTING,
    "pending": Phase.STARTING,
    "images": Phase.IMAGING,
    "saving": Phase.STORING,
    "completed": Phase.COMPLETE,
    "error": Phase.FAILED,
}


def parse_phase(name: Union[str, Phase]) -> Phase:
    """
    Translate a phase name from the wire into the canonical enum.

    Args:
        name: Canonical or legacy phase name (case-insensitive)

    Returns:
        Canonical Phase

    Raises:
        ValueError: If the name is not a known phase
    """
    if isinstance(name, Phase):
        return name
    normalized = str(name or "").strip().lower()
    if normalized in LEGACY_PHASE_NAMES:
        return LEGACY_PHASE_NAMES[normalized]
    try:
        return Phase(normalized)
    except ValueError:
        raise ValueError(f"Unknown batch phase: {name!r}")


def can_transition(current: Optional[Phase], new: Phase) -> bool:
    """
    Check whether moving from current to new respects the canonical order.

    Staying in the same phase is allowed (duplicate progress). Terminal
    phases are final: nothing follows them, not even the other terminal.
    """
    if current is None:
        return True
    if current.is_terminal:
        return new == current
    return new.rank >= current.rank


def is_regression(last_seen: Optional[Phase], incoming: Phase) -> bool:
    """True when incoming would move an observer's view backwards."""
    return last_seen is not None and incoming.rank < last_seen.rank
