"""Timers for the reconciliation jobs.

Runs inside the API process on an APScheduler ``AsyncIOScheduler``. Each
firing takes a Redis lease named after the job, so with several replicas
only one runs a given job at a time; ``max_instances=1`` keeps a slow run
from overlapping itself in-process. Without Redis the job still runs and a
warning is logged.
"""

from __future__ import annotations

import time
from datetime import UTC
from typing import TYPE_CHECKING

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from atelier_clearinghouse.config import Settings, get_settings
from atelier_clearinghouse.infrastructure.redis_client import lease
from atelier_clearinghouse.logging_config import get_logger

if TYPE_CHECKING:
    import redis.asyncio as aioredis

    from atelier_clearinghouse.scheduler.jobs import JobReport, ReconciliationJobs

logger = get_logger(__name__)

SHIPMENT_POLLING = "shipment_polling"
AUTO_CONFIRM = "auto_confirm"
AUTO_CONFIRM_WARNING = "auto_confirm_warning"
DEADLINE_REMINDERS = "deadline_reminders"

# Scheduler job id -> ReconciliationJobs method.
JOB_METHODS = {
    SHIPMENT_POLLING: "poll_shipments",
    AUTO_CONFIRM: "auto_confirm",
    AUTO_CONFIRM_WARNING: "auto_confirm_warnings",
    DEADLINE_REMINDERS: "deadline_reminders",
}


class ReconciliationScheduler:
    """Owns the timers and the cross-instance lease for each job."""

    def __init__(
        self,
        jobs: ReconciliationJobs,
        redis_client: aioredis.Redis | None,
        settings: Settings | None = None,
    ) -> None:
        self._jobs = jobs
        self._redis = redis_client
        self._settings = settings or get_settings()
        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._configure()

    def _configure(self) -> None:
        s = self._settings
        triggers = {
            SHIPMENT_POLLING: IntervalTrigger(hours=s.shipment_poll_interval_hours),
            AUTO_CONFIRM: CronTrigger(hour=s.auto_confirm_hour, minute=0, timezone=UTC),
            AUTO_CONFIRM_WARNING: CronTrigger(
                hour=s.auto_confirm_warning_hour, minute=0, timezone=UTC
            ),
            DEADLINE_REMINDERS: CronTrigger(hour=s.deadline_reminder_hour, minute=0, timezone=UTC),
        }
        for job_id, trigger in triggers.items():
            self._scheduler.add_job(
                self.run_exclusive,
                trigger,
                args=[job_id],
                id=job_id,
                name=JOB_METHODS[job_id],
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )

    @property
    def job_ids(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        self._scheduler.start()
        logger.info("scheduler.started", jobs=self.job_ids)

    def shutdown(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("scheduler.stopped")

    async def run_exclusive(self, job_id: str) -> JobReport | None:
        """Run one job under its lease. Returns None when another holder has it."""
        with structlog.contextvars.bound_contextvars(job=job_id):
            if self._redis is None:
                logger.warning("scheduler.lease_unavailable")
                return await self._run(job_id)

            async with lease(
                self._redis, job_id, self._settings.scheduler_lease_seconds
            ) as acquired:
                if not acquired:
                    logger.info("scheduler.lease_held_elsewhere")
                    return None
                return await self._run(job_id)

    async def _run(self, job_id: str) -> JobReport:
        body = getattr(self._jobs, JOB_METHODS[job_id])
        started = time.monotonic()
        logger.info("scheduler.job_started")
        try:
            report = await body()
        except Exception:
            logger.exception("scheduler.job_crashed")
            raise
        logger.info(
            "scheduler.job_completed",
            duration_ms=round((time.monotonic() - started) * 1000, 1),
            failed=report.failed,
        )
        return report
