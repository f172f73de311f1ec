"""Periodic trigger for scheduled check cycles."""

from __future__ import annotations

from datetime import timezone
from typing import Any, Awaitable, Callable

import structlog
from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger


logger = structlog.get_logger(__name__)

SCHEDULED_CHECK_JOB_ID = "scheduled-check"


def parse_cron_expression(cron_expression: str) -> CronTrigger:
    """Build a trigger from "minute hour day month day_of_week"."""
    cron_parts = (cron_expression or "").split()
    if len(cron_parts) != 5:
        raise ValueError(f"Invalid cron expression: {cron_expression!r}")
    return CronTrigger(
        minute=cron_parts[0],
        hour=cron_parts[1],
        day=cron_parts[2],
        month=cron_parts[3],
        day_of_week=cron_parts[4],
        timezone=timezone.utc,
    )


class CheckScheduler:
    """Runs registered coroutines on cron schedules using APScheduler."""

    def __init__(self) -> None:
        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self.jobs: dict[str, Job] = {}
        self.running = False

    def start(self) -> None:
        if self.running:
            logger.warning("Scheduler already running")
            return
        self.scheduler.start()
        self.running = True
        logger.info("Scheduler started", jobs=list(self.jobs))

    def stop(self) -> None:
        if not self.running:
            return
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Scheduler stopped")

    def add_cron_job(
        self,
        job_id: str,
        func: Callable[..., Awaitable[Any]],
        cron_expression: str,
        kwargs: dict[str, Any] | None = None,
        description: str | None = None,
    ) -> None:
        trigger = parse_cron_expression(cron_expression)
        if job_id in self.jobs:
            logger.warning("Job already exists, replacing", job_id=job_id)
            self.remove_job(job_id)

        # A slow cycle must not stack up behind itself.
        job = self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            kwargs=kwargs or {},
            name=description or job_id,
            max_instances=1,
            coalesce=True,
        )
        self.jobs[job_id] = job
        logger.info("Added cron job", job_id=job_id, cron=cron_expression, description=description)

    def remove_job(self, job_id: str) -> None:
        if job_id not in self.jobs:
            return
        self.scheduler.remove_job(job_id)
        del self.jobs[job_id]
        logger.info("Removed job", job_id=job_id)
