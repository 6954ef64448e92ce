"""
Batch workers - the pipeline side that produces progress.

The actual AI generation is an external collaborator; StagedBatchWorker only
drives the canonical phases and delegates each stage to injected callables.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from config.constants import (
    AGENT_ARTIST,
    AGENT_COMPLETE,
    AGENT_CONCEPT,
    AGENT_IDLE,
    AGENT_STORAGE,
    AGENT_VALIDATOR,
    AGENT_WORKING,
    AGENTS,
    BATCH_CHUNK_SIZE,
)
from config.logging_config import get_logger
from tracker.phases import Phase
from tracker.server.models import BatchRequest
from tracker.server.reporter import ProgressReporter

logger = get_logger(__name__)


# (unit index, request or previous stage output) -> stage output
StageFn = Callable[[int, Any], Awaitable[Any]]


class BatchWorker(Protocol):
    """Anything that can run a batch and report on it."""

    async def run(self, request: BatchRequest, reporter: ProgressReporter) -> None: ...


async def _passthrough(index: int, value: Any) -> Any:
    return value


class StagedBatchWorker:
    """
    Runs units through generate → validate → illustrate → store.

    Phases advance batch-wide in canonical order (never per unit), so the
    monotonic-phase invariant holds by construction. Units are generated in
    chunks; a unit counts as completed once it is stored.

    Failure handling:
    - generation error or failed validation: unit failed, error recorded
    - image error: warning only, the unit is still stored
    - storage error: unit failed
    """

    def __init__(
        self,
        generate: StageFn,
        validate: Optional[StageFn] = None,
        illustrate: Optional[StageFn] = None,
        store: Optional[StageFn] = None,
        chunk_size: int = BATCH_CHUNK_SIZE,
    ):
        self._generate = generate
        self._validate = validate
        self._illustrate = illustrate or _passthrough
        self._store = store or _passthrough
        self.chunk_size = max(1, int(chunk_size))

    async def run(self, request: BatchRequest, reporter: ProgressReporter) -> None:
        started = time.monotonic()
        count = int(request.count)
        chunk_size = max(1, int(request.chunk_size or self.chunk_size))
        units = list(range(1, count + 1))
        chunks = [units[i:i + chunk_size] for i in range(0, len(units), chunk_size)]

        for agent in AGENTS:
            reporter.set_agent_status(agent, AGENT_IDLE)

        drafts = await self._generate_all(request, chunks, count, reporter)
        accepted = await self._validate_all(drafts, count, reporter)
        images = await self._illustrate_all(accepted, count, reporter)
        stored = await self._store_all(accepted, count, reporter)

        reporter.complete({
            "generated": len(drafts),
            "validated": len(accepted),
            "stored": stored,
            "images": images,
            "chunks": len(chunks),
            "duration_seconds": round(time.monotonic() - started, 3),
        })

    async def _generate_all(
        self,
        request: BatchRequest,
        chunks: List[List[int]],
        count: int,
        reporter: ProgressReporter,
    ) -> Dict[int, Any]:
        reporter.start_phase(Phase.GENERATING)
        reporter.set_agent_status(AGENT_CONCEPT, AGENT_WORKING)
        drafts: Dict[int, Any] = {}
        for chunk_index, chunk in enumerate(chunks, start=1):
            reporter.set_chunk(chunk_index, len(chunks))
            for index in chunk:
                label = _label(index, count)
                reporter.unit_started(label)
                try:
                    drafts[index] = await self._generate(index, request)
                except Exception as e:
                    logger.warning(f"Generation failed for {label}: {e}")
                    reporter.unit_failed(label, f"unit {index} generation failed: {e}")
        reporter.set_agent_status(AGENT_CONCEPT, AGENT_COMPLETE)
        return drafts

    async def _validate_all(
        self,
        drafts: Dict[int, Any],
        count: int,
        reporter: ProgressReporter,
    ) -> Dict[int, Any]:
        if not drafts:
            return {}
        reporter.start_phase(Phase.VALIDATING)
        reporter.set_agent_status(AGENT_VALIDATOR, AGENT_WORKING)
        accepted: Dict[int, Any] = {}
        for index, draft in drafts.items():
            label = _label(index, count)
            reporter.unit_started(label)
            try:
                valid = True if self._validate is None else bool(await self._validate(index, draft))
            except Exception as e:
                logger.warning(f"Validation raised for {label}: {e}")
                valid = False
            if valid:
                accepted[index] = draft
            else:
                reporter.unit_failed(label, f"unit {index} invalid")
        reporter.set_agent_status(AGENT_VALIDATOR, AGENT_COMPLETE)
        return accepted

    async def _illustrate_all(
        self,
        accepted: Dict[int, Any],
        count: int,
        reporter: ProgressReporter,
    ) -> int:
        if not accepted:
            return 0
        reporter.start_phase(Phase.IMAGING)
        reporter.set_agent_status(AGENT_ARTIST, AGENT_WORKING)
        images = 0
        for index, draft in accepted.items():
            label = _label(index, count)
            reporter.unit_started(label)
            try:
                accepted[index] = await self._illustrate(index, draft)
                images += 1
                reporter.image_generated()
            except Exception as e:
                reporter.warn(f"unit {index}: image generation failed ({e})")
        reporter.set_agent_status(AGENT_ARTIST, AGENT_COMPLETE)
        return images

    async def _store_all(
        self,
        accepted: Dict[int, Any],
        count: int,
        reporter: ProgressReporter,
    ) -> int:
        if not accepted:
            return 0
        reporter.start_phase(Phase.STORING)
        reporter.set_agent_status(AGENT_STORAGE, AGENT_WORKING)
        stored = 0
        for index, draft in accepted.items():
            label = _label(index, count)
            reporter.unit_started(label)
            try:
                await self._store(index, draft)
                stored += 1
                reporter.unit_completed(label)
            except Exception as e:
                reporter.unit_failed(label, f"unit {index} could not be saved: {e}")
        reporter.set_agent_status(AGENT_STORAGE, AGENT_COMPLETE)
        return stored


def _label(index: int, count: int) -> str:
    return f"Recipe {index}/{count}"
