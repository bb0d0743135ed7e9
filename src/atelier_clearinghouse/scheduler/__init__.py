"""Reconciliation scheduler - shipment polling, auto-confirmation, reminders."""

from atelier_clearinghouse.scheduler.jobs import JobReport, ReconciliationJobs
from atelier_clearinghouse.scheduler.runner import JOB_METHODS, ReconciliationScheduler

__all__ = ["JOB_METHODS", "JobReport", "ReconciliationJobs", "ReconciliationScheduler"]
