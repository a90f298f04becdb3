"""APScheduler-based interval scheduling for periodic posture reports."""

from __future__ import annotations

import logging
import time

from apscheduler.events import EVENT_JOB_ERROR
from apscheduler.schedulers.blocking import BlockingScheduler

from scripts.posture.config import CollectorConfig
from scripts.posture.errors import CollectorRunError
from scripts.posture.runner import CATEGORY_CONFIG, Emitter, run_config

logger = logging.getLogger("posture.scheduler")

BACKOFF_BASE_S = 30


def collect_with_retry(config: CollectorConfig, emit: Emitter, sleep=time.sleep) -> bool:
    """Run one collection, retrying network failures with exponential backoff.

    Configuration failures are not retried. Returns True once a record was
    emitted.
    """
    max_retries = config.scheduler.max_retries

    for attempt in range(max_retries + 1):
        try:
            run_config(config, emit)
            return True
        except CollectorRunError as exc:
            if exc.category == CATEGORY_CONFIG:
                logger.error("Collection misconfigured, not retrying: %s", exc.message)
                return False
            if attempt < max_retries:
                delay = BACKOFF_BASE_S * (2 ** attempt)
                logger.warning(
                    "Collection failed (attempt %d/%d), retrying in %ds: %s",
                    attempt + 1, max_retries, delay, exc.message,
                )
                sleep(delay)
            else:
                logger.error(
                    "Collection failed after %d retries: %s",
                    max_retries, exc.message,
                )
    return False


def _on_job_error(event) -> None:
    """Log job execution errors."""
    logger.error(
        "Job %s raised an exception: %s",
        event.job_id,
        event.exception,
    )


def build_scheduler(config: CollectorConfig, emit: Emitter) -> BlockingScheduler:
    """Create the scheduler with a single posture collection interval job."""
    scheduler = BlockingScheduler()
    scheduler.add_listener(_on_job_error, EVENT_JOB_ERROR)
    sched = config.scheduler

    scheduler.add_job(
        collect_with_retry,
        "interval",
        minutes=sched.interval_min,
        args=[config, emit],
        id="okta_posture",
        max_instances=1,
        misfire_grace_time=sched.misfire_grace_time,
    )
    return scheduler


def start_scheduler(config: CollectorConfig, emit: Emitter) -> None:
    """Start the blocking scheduler."""
    scheduler = build_scheduler(config, emit)
    logger.info("Starting scheduler with jobs: %s",
                [j.id for j in scheduler.get_jobs()])
    scheduler.start()
