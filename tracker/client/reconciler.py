"""
Terminal Reconciler - side effects that run once a batch reaches its end.

The reconciler does no deduplication of its own: observers guard it with the
session's terminal flag, so each batch reaches reconcile() at most once.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Union

from config.constants import INVALIDATED_COLLECTIONS
from config.logging_config import get_logger
from tracker.client.resume_registry import ResumeRegistry

logger = get_logger(__name__)


@dataclass
class Success:
    """Batch reached Complete (possibly with some failed units)."""
    completed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Success":
        return cls(
            completed=int(data.get("completed") or 0),
            failed=int(data.get("failed") or 0),
            errors=list(data.get("errors") or []),
            metrics=dict(data.get("metrics") or {}),
        )


@dataclass
class Failure:
    """Batch reached Failed."""
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Failure":
        errors = list(data.get("errors") or [])
        message = data.get("error")
        if message and message not in errors:
            errors.append(message)
        return cls(errors=errors)


Outcome = Union[Success, Failure]


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    FAILURE = "failure"


@dataclass
class Notification:
    """User-facing message describing a terminal outcome."""
    level: NotificationLevel
    title: str
    message: str


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Writes notifications to the log; the default when no UI is attached."""

    def __init__(self):
        self.sent: List[Notification] = []

    def notify(self, notification: Notification):
        self.sent.append(notification)
        text = f"{notification.title}: {notification.message}"
        if notification.level == NotificationLevel.FAILURE:
            logger.error(text)
        elif notification.level == NotificationLevel.WARNING:
            logger.warning(text)
        else:
            logger.info(text)


class CollectionCache:
    """
    Client-side cache of collection views, keyed by collection path.

    invalidate() drops every entry whose key starts with one of the given
    prefixes, so "recipes" also clears "recipes/page-2".
    """

    def __init__(self):
        self._entries: Dict[str, Any] = {}
        self.invalidations = 0

    def put(self, key: str, value: Any):
        self._entries[key] = value

    def get(self, key: str) -> Optional[Any]:
        return self._entries.get(key)

    def invalidate(self, prefixes: Iterable[str]) -> int:
        prefixes = tuple(prefixes)
        stale = [key for key in self._entries if key.startswith(prefixes)]
        for key in stale:
            del self._entries[key]
        self.invalidations += 1
        logger.debug(f"Invalidated {len(stale)} cached entries for {', '.join(prefixes)}")
        return len(stale)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def build_notification(outcome: Outcome) -> Notification:
    """Pick the single notification that describes an outcome."""
    if isinstance(outcome, Failure):
        detail = outcome.errors[-1] if outcome.errors else "Batch failed"
        return Notification(NotificationLevel.FAILURE, "Generation Failed", detail)

    if outcome.completed == 0 and outcome.failed > 0:
        return Notification(
            NotificationLevel.FAILURE,
            "Generation Failed",
            f"All {outcome.failed} recipes failed",
        )
    if outcome.failed > 0:
        return Notification(
            NotificationLevel.WARNING,
            "Generation Completed With Warnings",
            f"Generated {outcome.completed} recipes ({outcome.failed} failed)",
        )
    return Notification(
        NotificationLevel.SUCCESS,
        "Generation Complete!",
        f"Successfully generated {outcome.completed} recipes",
    )


class TerminalReconciler:
    """Invalidate caches, notify once, forget the resume record."""

    def __init__(
        self,
        resume_registry: ResumeRegistry,
        cache: Optional[CollectionCache] = None,
        notifier: Optional[Notifier] = None,
        collections: Iterable[str] = INVALIDATED_COLLECTIONS,
    ):
        self.resume_registry = resume_registry
        self.cache = cache if cache is not None else CollectionCache()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.collections = tuple(collections)

    def reconcile(self, outcome: Outcome) -> Notification:
        self.cache.invalidate(self.collections)

        notification = build_notification(outcome)
        try:
            self.notifier.notify(notification)
        except Exception as e:
            logger.error(f"Notifier error: {e}")

        self.resume_registry.clear()
        logger.info(f"Reconciled batch outcome: {notification.level.value}")
        return notification
