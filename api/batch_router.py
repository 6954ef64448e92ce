"""
Batch Progress API Router

Submission, snapshot and live stream endpoints for recipe generation batches.
"""

from fastapi import APIRouter, HTTPException, Request
from sse_starlette.sse import EventSourceResponse

from config.logging_config import get_logger
from config.settings import settings
from tracker.errors import BatchNotFoundError, InvalidBatchRequestError
from tracker.server.models import BatchRequest

from .models import BatchSnapshotResponse, BatchSubmitRequest, BatchSubmitResponse
from .rate_limit import limiter

logger = get_logger(__name__)

router = APIRouter(prefix="/api/batches", tags=["Batch Progress"])


# ==================== ENDPOINTS ====================

@router.post(
    "",
    response_model=BatchSubmitResponse,
    summary="Start a recipe generation batch",
)
@limiter.limit(settings.submit_rate_limit)
async def submit_batch(request: Request, body: BatchSubmitRequest):
    """
    Start a batch and return its id immediately.

    **Limits:**
    - 1 to `max_units_per_batch` recipes per batch
    """
    service = request.app.state.batch_service
    try:
        result = await service.submit(BatchRequest(
            count=body.count,
            chunk_size=body.chunk_size,
            natural_language_prompt=body.natural_language_prompt,
            options=body.options,
        ))
    except InvalidBatchRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info(f"Batch started: {result['batch_id']} ({result['total_units']} units)")
    return BatchSubmitResponse(**result)


@router.get(
    "/{batch_id}",
    response_model=BatchSnapshotResponse,
    summary="Current progress snapshot",
)
async def get_batch(batch_id: str, request: Request):
    """Progress-shaped snapshot; used by polling clients."""
    try:
        return request.app.state.registry.snapshot(batch_id)
    except BatchNotFoundError:
        raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")


@router.get(
    "/{batch_id}/stream",
    summary="Live progress stream (server-sent events)",
)
async def stream_batch(batch_id: str, request: Request):
    """
    Named events: `connected` (latest snapshot), `progress`, then exactly one
    of `complete` / `error`, after which the stream closes.
    """
    registry = request.app.state.registry
    broadcaster = request.app.state.broadcaster
    if not registry.exists(batch_id):
        raise HTTPException(status_code=404, detail=f"Batch {batch_id} not found")

    async def event_publisher():
        try:
            async for event in broadcaster.subscribe(batch_id):
                yield event.to_sse()
        except BatchNotFoundError:
            logger.warning(f"Batch {batch_id} disappeared before streaming started")

    return EventSourceResponse(event_publisher(), ping=request.app.state.settings.sse_ping_seconds)
