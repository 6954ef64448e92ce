"""
Resume Registry - remembers the one active batch across client restarts.

The persisted slot is touched only through this module. Nothing else reads,
writes or deletes it.
"""

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from config.constants import RESUME_TTL_SECONDS
from config.logging_config import get_logger
from tracker.errors import StaleResumeError

logger = get_logger(__name__)


@dataclass
class ResumeRecord:
    """The single active batch worth resuming."""
    batch_id: str
    started_at_ms: int

    def age_seconds(self, now_ms: int) -> float:
        return max(0, now_ms - self.started_at_ms) / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResumeRecord":
        return cls(batch_id=str(data["batch_id"]), started_at_ms=int(data["started_at_ms"]))


class SlotStorage(Protocol):
    """One well-known key/value slot."""

    def read(self) -> Optional[str]: ...

    def write(self, value: str) -> None: ...

    def remove(self) -> None: ...


class FileSlotStorage:
    """Slot kept as a small JSON file (survives process restarts)."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding='utf-8')

    def write(self, value: str):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + '.tmp')
        tmp_path.write_text(value, encoding='utf-8')
        tmp_path.replace(self.path)

    def remove(self):
        if self.path.exists():
            self.path.unlink()


class MemorySlotStorage:
    """Slot kept in memory; for tests and embedded use."""

    def __init__(self, value: Optional[str] = None):
        self.value = value

    def read(self) -> Optional[str]:
        return self.value

    def write(self, value: str):
        self.value = value

    def remove(self):
        self.value = None


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class ResumeRegistry:
    """
    Save/load/clear of the active batch id with a time-to-live.

    Saving a second batch overwrites the first; the first batch is then
    abandoned from the client's point of view.

    Example:
        >>> registry = ResumeRegistry(MemorySlotStorage())
        >>> registry.save("batch_1")
        >>> registry.load().batch_id
        'batch_1'
    """

    def __init__(
        self,
        storage: SlotStorage,
        ttl_seconds: float = RESUME_TTL_SECONDS,
        clock: Callable[[], int] = _epoch_ms,
    ):
        """
        Args:
            storage: Where the slot lives
            ttl_seconds: Records older than this are purged on load
            clock: Returns the current time in epoch milliseconds
        """
        self.storage = storage
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def save(self, batch_id: str) -> ResumeRecord:
        record = ResumeRecord(batch_id=batch_id, started_at_ms=self._clock())
        self.storage.write(json.dumps(record.to_dict()))
        logger.debug(f"Resume record saved: {batch_id}")
        return record

    def load(self) -> Optional[ResumeRecord]:
        """
        Return the saved record if it is younger than the TTL.

        Expired or unreadable records are removed and None is returned.
        """
        raw = self.storage.read()
        if not raw:
            return None

        try:
            record = ResumeRecord.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding unreadable resume record: {e}")
            self.storage.remove()
            return None

        try:
            self._check_fresh(record)
        except StaleResumeError as e:
            logger.debug(str(e))
            self.storage.remove()
            return None

        logger.debug(f"Resume record loaded: {record.batch_id}")
        return record

    def clear(self):
        if self.storage.read() is not None:
            logger.debug("Resume record cleared")
        self.storage.remove()

    def _check_fresh(self, record: ResumeRecord):
        age = record.age_seconds(self._clock())
        if age >= self.ttl_seconds:
            raise StaleResumeError(
                f"Resume record for {record.batch_id} expired ({age:.0f}s old, ttl {self.ttl_seconds}s)"
            )
