#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for batch recipe generation progress.

This module wires the server side of batch tracking:
- Batch submission (returns immediately, work runs in the background)
- Progress snapshots for polling clients
- Live progress via Server-Sent Events
- Health monitoring

Usage:
    # Start server
    uvicorn api.main:app --host 0.0.0.0 --port 8000

    # Or run directly
    python -m api.main

Key Endpoints:
    POST /api/batches - Start a batch
    GET /api/batches/{batch_id} - Progress snapshot
    GET /api/batches/{batch_id}/stream - SSE progress stream
    GET /health - Health check

Configuration:
    Environment variables (see config/settings.py):
    - RATE_LIMIT: default API rate limit (default: "60/minute")
    - SUBMIT_RATE_LIMIT: batch submissions per IP (default: "30/minute")
    - SSE_PING_SECONDS: stream heartbeat interval (default: 15)
    - MAX_UNITS_PER_BATCH: largest accepted batch (default: 100)
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.constants import API_VERSION
from config.logging_config import get_logger
from config.settings import Settings, settings as default_settings
from tracker.server import BatchService, EventBroadcaster, JobRegistry, StagedBatchWorker
from tracker.server.worker import BatchWorker

from .batch_router import router as batch_router
from .models import HealthResponse
from .rate_limit import limiter

logger = get_logger(__name__)


# CORS middleware - local development origins
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",  # Vite dev server
    "http://127.0.0.1:5173",
    "http://localhost:8000",
    "http://127.0.0.1:8000",
]


def simulated_worker(config: Settings) -> StagedBatchWorker:
    """
    Worker used when no generation pipeline is plugged in.

    Each unit takes config.simulated_unit_seconds to "generate" and yields a
    placeholder recipe.
    """
    delay = max(0.0, config.simulated_unit_seconds)

    async def generate(index: int, request: Any) -> dict:
        await asyncio.sleep(delay)
        return {"index": index, "prompt": request.natural_language_prompt}

    return StagedBatchWorker(generate, chunk_size=config.chunk_size)


def create_app(worker: Optional[BatchWorker] = None, config: Optional[Settings] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        worker: Pipeline that runs submitted batches (simulated when omitted)
        config: Settings override (module settings when omitted)
    """
    config = config or default_settings

    app = FastAPI(
        title="Batch Progress Tracker API",
        description="Submit recipe generation batches and follow them live",
        version=API_VERSION,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    registry = JobRegistry(ttl_seconds=config.registry_ttl_seconds)
    broadcaster = EventBroadcaster(registry, queue_size=config.broadcaster_queue_size)
    service = BatchService(
        registry,
        broadcaster,
        worker or simulated_worker(config),
        max_units=config.max_units_per_batch,
    )

    app.state.settings = config
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.batch_service = service

    app.include_router(batch_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint."""
        purged = registry.purge_expired()
        if purged:
            logger.info(f"Archived {purged} finished batches")
        return HealthResponse(
            status="healthy",
            version=API_VERSION,
            active_batches=service.active_count,
            tracked_batches=len(registry.list_ids()),
        )

    @app.on_event("shutdown")
    async def shutdown_batches():
        """Stop running batches when the server stops."""
        if service.active_count:
            logger.info(f"Shutdown: cancelling {service.active_count} running batches")
        await service.shutdown()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
