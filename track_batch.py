#!/usr/bin/env python3
"""
Batch Tracking CLI - submit recipe generation batches and follow them live

Usage:
    python track_batch.py submit --count 10
    python track_batch.py watch batch_3f2a9c0d1e2b4a5f
    python track_batch.py watch batch_3f2a9c0d1e2b4a5f --poll
    python track_batch.py resume

Examples:
    # Start 25 recipes and watch until done
    python track_batch.py submit --count 25 --prompt "quick vegetarian dinners"

    # Pick up the batch left running by a previous session
    python track_batch.py resume
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

# Add project to path
sys.path.insert(0, str(Path(__file__).parent))

from config.settings import settings
from tracker.client import (
    BatchTracker,
    HttpBatchSubmitter,
    HttpSnapshotFetcher,
    LoggingNotifier,
    ProgressView,
    ResumeRegistry,
    FileSlotStorage,
    SSEPushTransport,
    Success,
    TerminalReconciler,
)
from tracker.client.view import truncate_errors
from tracker.errors import (
    BatchTrackingError,
    BusinessError,
    InvalidBatchRequestError,
    PartialFailureWarning,
    TransportError,
)
from tracker.server.models import BatchRequest


def build_tracker(api_url: str, use_push: bool = True) -> BatchTracker:
    """Tracker wired to the API server at api_url."""
    timeout = settings.request_timeout_seconds
    resume_registry = ResumeRegistry(
        FileSlotStorage(settings.resume_slot_path),
        ttl_seconds=settings.resume_ttl_seconds,
    )
    return BatchTracker(
        resume_registry=resume_registry,
        reconciler=TerminalReconciler(resume_registry, notifier=LoggingNotifier()),
        push_factory=(lambda: SSEPushTransport(api_url, timeout=timeout)) if use_push else None,
        poll_fetcher=HttpSnapshotFetcher(api_url, timeout=timeout),
    )


class ConsolePrinter:
    """Prints progress views and outcomes as they arrive."""

    def __init__(self):
        self.exit_code = 1
        self._last_line = None

    def on_update(self, view: ProgressView):
        line = f"{view.summary_line} {view.percentage:5.1f}%  {view.label}"
        if line == self._last_line:
            return
        self._last_line = line
        print(f"📊 {line}  (ETA {view.eta_text()})")
        if view.current_unit_label and not view.is_terminal:
            print(f"   → {view.current_unit_label}")

    def on_complete(self, outcome: Success):
        print("\n" + "=" * 60)
        if outcome.completed == 0 and outcome.failed > 0:
            print(f"❌ Generation failed: all {outcome.failed} recipes failed")
        elif outcome.failed:
            print(f"⚠️  Generated {outcome.completed} recipes ({outcome.failed} failed)")
        else:
            print(f"✅ Successfully generated {outcome.completed} recipes")
        for error in truncate_errors(outcome.errors):
            print(f"   • {error}")
        print("=" * 60)
        self.exit_code = 0 if outcome.completed > 0 or outcome.failed == 0 else 1

    def on_error(self, error: BatchTrackingError):
        if isinstance(error, PartialFailureWarning):
            print(f"⚠️  {error}")
        elif isinstance(error, BusinessError):
            print(f"\n❌ Generation failed: {error}")
            self.exit_code = 1
        elif isinstance(error, TransportError):
            print(f"\n❌ Lost connection to the server: {error}", file=sys.stderr)
            self.exit_code = 2
        else:
            print(f"\n❌ Error: {error}", file=sys.stderr)


async def watch(tracker: BatchTracker, batch_id: str) -> int:
    printer = ConsolePrinter()
    print(f"🔎 Watching {batch_id}")
    handle = await tracker.observe_batch(
        batch_id,
        on_update=printer.on_update,
        on_complete=printer.on_complete,
        on_error=printer.on_error,
    )
    try:
        await handle.wait()
    finally:
        await handle.stop()
        await tracker.poll_fetcher.close()
    return printer.exit_code


async def submit(tracker: BatchTracker, api_url: str, request: BatchRequest) -> int:
    printer = ConsolePrinter()
    submitter = HttpBatchSubmitter(api_url, timeout=settings.request_timeout_seconds)
    try:
        handle = await tracker.submit_and_observe(
            submitter,
            request,
            on_update=printer.on_update,
            on_complete=printer.on_complete,
            on_error=printer.on_error,
        )
    finally:
        await submitter.close()

    print(f"🚀 Batch started: {handle.batch_id} ({request.count} recipes)")
    try:
        await handle.wait()
    finally:
        await handle.stop()
        await tracker.poll_fetcher.close()
    return printer.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Submit recipe generation batches and follow their progress",
        epilog="""
Examples:
  %(prog)s submit --count 10
  %(prog)s watch batch_3f2a9c0d1e2b4a5f --poll
  %(prog)s resume
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        '--api-url',
        default=settings.api_base_url,
        help=f'API server URL (default: {settings.api_base_url})'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    submit_parser = subparsers.add_parser('submit', help='Start a batch and watch it')
    submit_parser.add_argument(
        '-n', '--count',
        type=int,
        required=True,
        help=f'Number of recipes (1-{settings.max_units_per_batch})'
    )
    submit_parser.add_argument(
        '--chunk-size',
        type=int,
        help='Recipes generated per chunk'
    )
    submit_parser.add_argument(
        '--prompt',
        help='Natural language description of the recipes'
    )

    watch_parser = subparsers.add_parser('watch', help='Follow an existing batch')
    watch_parser.add_argument('batch_id', help='Batch id returned at submission')
    watch_parser.add_argument(
        '--poll',
        action='store_true',
        help='Poll snapshots instead of streaming events'
    )

    subparsers.add_parser('resume', help='Resume watching the batch left running last time')

    args = parser.parse_args(argv)

    tracker = build_tracker(args.api_url, use_push=not getattr(args, 'poll', False))

    try:
        if args.command == 'submit':
            request = BatchRequest(
                count=args.count,
                chunk_size=args.chunk_size,
                natural_language_prompt=args.prompt,
            )
            return asyncio.run(submit(tracker, args.api_url, request))

        if args.command == 'watch':
            return asyncio.run(watch(tracker, args.batch_id))

        batch_id = tracker.try_resume()
        if batch_id is None:
            print("ℹ️  No active batch to resume")
            return 0
        print("🔄 Resuming progress tracking for ongoing batch")
        return asyncio.run(watch(tracker, batch_id))

    except InvalidBatchRequestError as e:
        print(f"\n❌ Invalid request: {e}", file=sys.stderr)
        return 1
    except TransportError as e:
        print(f"\n❌ Error: Cannot connect to API server at {args.api_url}", file=sys.stderr)
        print(f"Make sure the server is running. ({e})", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n⏸️  Stopped watching (the batch keeps running; use 'resume' to continue)")
        return 130


if __name__ == '__main__':
    sys.exit(main())
