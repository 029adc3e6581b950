"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable and delegates to the matching job coroutine.

    remindhook-worker                       # one scheduled tick (for cron)
    remindhook-worker execute --reminder-id=ID [--time-slot-id=SLOT]
    remindhook-worker log_cleanup
    remindhook-worker scheduler             # long-running, ticks every minute
"""

import argparse
import asyncio
import os
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from remindhook.config import settings
from remindhook.infrastructure.observability.logging import get_logger, setup_logging
from remindhook.jobs.execution_log_cleanup_job import run_execution_log_cleanup
from remindhook.jobs.reminder_dispatch_job import (
    run_manual_execution,
    run_scheduled_tick,
    start_reminder_scheduler,
)

logger = get_logger(__name__)

JobCoroutine = Callable[..., Awaitable[Any]]

JOB_REGISTRY: dict[str, JobCoroutine] = {
    "scheduled": run_scheduled_tick,
    "execute": run_manual_execution,
    "log_cleanup": run_execution_log_cleanup,
    "scheduler": start_reminder_scheduler,
}

DEFAULT_JOB = "scheduled"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="remindhook-worker", description="Run a reminder job")
    parser.add_argument("job", nargs="?", help=f"one of: {', '.join(sorted(JOB_REGISTRY))}")
    parser.add_argument("--reminder-id", dest="reminder_id")
    parser.add_argument("--time-slot-id", dest="time_slot_id")
    return parser


def _resolve_job_name(args: argparse.Namespace) -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if args.job:
        return args.job.strip().lower()
    if args.reminder_id:
        return "execute"
    return os.getenv("WORKER_JOB", DEFAULT_JOB).strip().lower()


async def run_worker(job_name: str, **job_kwargs) -> Any:
    """Run the requested background job."""
    name = job_name.strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    logger.info("Starting background worker", job=name)
    return await JOB_REGISTRY[name](**job_kwargs)


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint. Exit code 0 whenever the job ran, whatever the delivery outcomes."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(settings.LOG_LEVEL, environment=settings.environment)

    job_name = _resolve_job_name(args)
    job_kwargs = {}
    if job_name == "execute":
        if not args.reminder_id:
            parser.error("execute requires --reminder-id")
        job_kwargs = {"reminder_id": args.reminder_id, "time_slot_id": args.time_slot_id}

    try:
        result = asyncio.run(run_worker(job_name, **job_kwargs))
    except KeyboardInterrupt:
        logger.info("Worker stopped by user", job=job_name)
        return 0
    except Exception as e:
        logger.error("Worker job failed", job=job_name, error=str(e), error_type=type(e).__name__)
        return 1

    logger.info("Worker job finished", job=job_name, result=result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
