"""Persisted background import jobs with batching, progress and retry backoff."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from ..errors import AppError, NotFound
from ..models import ImportJob
from ..models.import_job import JOB_TYPES
from ..timeutils import utcnow
from . import jobs

logger = logging.getLogger(__name__)

MAX_JOBS_PER_RUN = 5
MAX_RETRIES = 3
RETRY_DELAY_BASE = timedelta(seconds=60)
BATCH_SIZE = 50


def retry_delay(retry_count: int) -> timedelta:
    """Backoff before retry number ``retry_count`` (1-based): 60s, 120s, 240s..."""

    return RETRY_DELAY_BASE * (2 ** (retry_count - 1))


def progress_percent(processed: int, total: int) -> int:
    if total <= 0:
        return 100
    return round(processed / total * 100)


def enqueue_job(
    ctx,
    *,
    user_id: int,
    job_type: str,
    account_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
    total_items: int = 0,
    run_now: bool = True,
) -> ImportJob:
    """Persist a pending job and, unless disabled, kick off processing in the background."""

    if job_type not in JOB_TYPES:
        raise AppError(f"Unknown job type: {job_type}")
    job = ctx.import_job_repo.create(
        ImportJob(
            user_id=user_id,
            account_id=account_id,
            job_type=job_type,
            payload=payload or {},
            total_items=total_items,
        )
    )
    jobs.update_progress(job.id, status="pending", total_items=total_items)
    logger.info("Import job queued", extra={"job_id": job.id, "job_type": job_type})
    if run_now:
        jobs.dispatch(f"import-{job.id}", process_pending_jobs, ctx=ctx, user_id=user_id)
    return job


def get_job(ctx, job_id: int, *, user_id: int) -> dict[str, Any]:
    job = ctx.import_job_repo.get_by_id(job_id, user_id=user_id)
    if job is None:
        raise NotFound("Import job not found")
    data = serialize_job(job)
    live = jobs.get_progress(job.id)
    if live is not None and job.status in ("pending", "processing"):
        data["progress"] = max(data["progress"], live["progress"])
        data["processed_items"] = max(data["processed_items"], live["processed_items"])
    return data


def list_jobs(ctx, *, user_id: int, limit: int = 20) -> list[dict[str, Any]]:
    return [serialize_job(job) for job in ctx.import_job_repo.list_recent(user_id=user_id, limit=limit)]


def serialize_job(job: ImportJob) -> dict[str, Any]:
    data = job.model_dump(mode="json", exclude={"payload"})
    if job.job_type == "plaid_sync":
        data["plaid_account_id"] = job.payload.get("plaid_account_id")
    return data


class JobReporter:
    """Persists counters after every batch and mirrors them in the live tracker."""

    def __init__(self, ctx, job: ImportJob):
        self.ctx = ctx
        self.job = job

    def set_total(self, total: int) -> None:
        self.job.total_items = total
        self.job = self.ctx.import_job_repo.save(self.job)
        self.mirror()

    def record(self, *, synced: int = 0, skipped: int = 0, errors: int = 0) -> None:
        self.job.synced_items += synced
        self.job.skipped_items += skipped
        self.job.error_items += errors
        self.job.processed_items += synced + skipped + errors

    def flush(self) -> None:
        self.job.progress = progress_percent(self.job.processed_items, self.job.total_items)
        self.job = self.ctx.import_job_repo.save(self.job)
        self.mirror()

    def mirror(self) -> None:
        jobs.update_progress(
            self.job.id,
            status=self.job.status,
            progress=self.job.progress,
            processed_items=self.job.processed_items,
            total_items=self.job.total_items,
        )


def _process_csv_import(ctx, reporter: JobReporter) -> None:
    from .import_csv import create_from_payload

    job = reporter.job
    items = list((job.payload or {}).get("transactions") or [])
    if not items:
        raise AppError("No transactions found in job metadata")
    if job.total_items != len(items):
        reporter.set_total(len(items))

    # Resume after the rows a previous attempt already handled.
    start = min(reporter.job.processed_items, len(items))
    for offset in range(start, len(items), BATCH_SIZE):
        for item in items[offset : offset + BATCH_SIZE]:
            try:
                create_from_payload(ctx, user_id=job.user_id, item=item)
            except AppError as exc:
                logger.warning(
                    "CSV row rejected", extra={"job_id": job.id, "row": item.get("row_index"), "error": exc.message}
                )
                reporter.record(errors=1)
            else:
                reporter.record(synced=1)
        reporter.flush()


def _process_plaid_sync(ctx, reporter: JobReporter) -> None:
    from .bank_sync import sync_account_transactions

    sync_account_transactions(ctx, reporter=reporter)


_PROCESSORS = {
    "csv_import": _process_csv_import,
    "plaid_sync": _process_plaid_sync,
}


def _mark_failed(ctx, job: ImportJob, message: str, *, now: datetime, retry: bool = True) -> ImportJob:
    job.status = "failed"
    job.error_message = message[:1024]
    if retry:
        job.retry_count += 1
        if job.retry_count < MAX_RETRIES:
            job.next_retry_at = now + retry_delay(job.retry_count)
        else:
            job.next_retry_at = None
            job.error_message = f"{message} (max retries reached)"[:1024]
    else:
        job.next_retry_at = None
    job = ctx.import_job_repo.save(job)
    jobs.update_progress(
        job.id,
        status=job.status,
        progress=job.progress,
        processed_items=job.processed_items,
        total_items=job.total_items,
        message=job.error_message,
    )
    return job


def process_job(ctx, job: ImportJob, *, now: Optional[datetime] = None) -> Optional[ImportJob]:
    """Run one job to completion or failure; never raises for job-level errors.

    Returns None when the job was already claimed by another worker.
    """

    now = now or utcnow()
    claimed = ctx.import_job_repo.claim(job.id)
    if claimed is None:
        logger.info("Import job %s already claimed, skipping", job.id)
        return None
    job = claimed
    processor = _PROCESSORS.get(job.job_type)
    if processor is None:
        logger.warning("Unknown job type %s for job %s", job.job_type, job.id)
        return _mark_failed(ctx, job, f"Unknown job type: {job.job_type}", now=now, retry=False)

    reporter = JobReporter(ctx, job)
    reporter.mirror()
    try:
        processor(ctx, reporter)
    except Exception as exc:  # job-level failure is persisted and retried with backoff
        logger.exception("Import job %s failed", job.id)
        message = exc.message if isinstance(exc, AppError) else (str(exc) or "Unknown error")
        return _mark_failed(ctx, reporter.job, message, now=now)

    job = reporter.job
    job.status = "completed"
    job.progress = 100
    job.completed_at = utcnow()
    job.next_retry_at = None
    job = ctx.import_job_repo.save(job)
    jobs.update_progress(
        job.id,
        status=job.status,
        progress=100,
        processed_items=job.processed_items,
        total_items=job.total_items,
    )
    logger.info(
        "Import job completed",
        extra={
            "job_id": job.id,
            "synced": job.synced_items,
            "skipped": job.skipped_items,
            "errors": job.error_items,
        },
    )
    return job


def process_pending_jobs(
    ctx, *, user_id: Optional[int] = None, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Process up to five runnable jobs (pending, or failed and due for retry)."""

    now = now or utcnow()
    runnable = ctx.import_job_repo.list_runnable(now=now, limit=MAX_JOBS_PER_RUN, user_id=user_id)
    results = []
    for job in runnable:
        finished = process_job(ctx, job, now=now)
        if finished is None:
            continue
        results.append(
            {
                "job_id": finished.id,
                "status": finished.status,
                "synced": finished.synced_items,
                "skipped": finished.skipped_items,
                "errors": finished.error_items,
                "retry_count": finished.retry_count,
                "error": finished.error_message,
            }
        )
    return {"processed": len(results), "results": results}
