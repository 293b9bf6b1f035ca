"""Background scheduler for periodic maintenance."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apscheduler.schedulers.background import BackgroundScheduler as APScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .errors import AppError
from .logging_config import get_logger

if TYPE_CHECKING:
    from .context import AppContext

logger = get_logger(__name__)


class BackgroundScheduler:
    """Drains the import queue and rolls recurring bills forward."""

    def __init__(self, ctx: AppContext):
        self.ctx = ctx
        self.scheduler = None

    def start(self) -> None:
        if self.scheduler is not None:
            logger.warning("Scheduler already running")
            return

        self.scheduler = APScheduler()
        self.scheduler.add_job(
            func=self._process_import_jobs,
            trigger=IntervalTrigger(minutes=1),
            id="import_jobs",
            name="Process Import Jobs",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            func=self._recurring_maintenance,
            trigger=CronTrigger(hour=2, minute=0),
            id="recurring_maintenance",
            name="Advance Billing Dates and Plan Payments",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("Background scheduler started")

    def stop(self) -> None:
        """Stop the background scheduler gracefully."""
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=True)
            self.scheduler = None
            logger.info("Background scheduler stopped")

    def _process_import_jobs(self) -> None:
        from .services.import_jobs import process_pending_jobs

        try:
            result = process_pending_jobs(self.ctx)
        except AppError as exc:
            logger.error("Scheduled job processing failed: %s", exc.message, exc_info=True)
            return
        if result["processed"]:
            logger.info("Processed %s import job(s)", result["processed"])

    def _recurring_maintenance(self) -> None:
        from .services.planned_payments import generate_from_service_subscriptions
        from .services.service_subscriptions import advance_billing_dates

        try:
            advanced = advance_billing_dates(self.ctx)
            created = generate_from_service_subscriptions(self.ctx)
        except AppError as exc:
            logger.error("Recurring maintenance failed: %s", exc.message, exc_info=True)
            return
        logger.info("Recurring maintenance done", extra={"advanced": advanced, "planned": created})


def create_scheduler(ctx: AppContext, *, auto_start: bool = False) -> BackgroundScheduler:
    """Create and optionally start a background scheduler."""
    scheduler = BackgroundScheduler(ctx)
    if auto_start:
        scheduler.start()
    return scheduler
