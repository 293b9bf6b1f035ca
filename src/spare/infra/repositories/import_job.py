"""SQLModel implementation of ImportJob repository."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, or_, update
from sqlmodel import select

from ...models.import_job import ImportJob
from ...timeutils import utcnow
from .base import OwnedRepository


class SQLModelImportJobRepository(OwnedRepository[ImportJob]):
    model = ImportJob
    default_order = ("created_at",)

    def get(self, job_id: int) -> Optional[ImportJob]:
        """Unscoped lookup used by the job processor."""
        with self.session_factory() as session:
            obj = session.get(ImportJob, job_id)
            if obj:
                session.expunge(obj)
            return obj

    def list_recent(self, *, user_id: int, limit: int = 20) -> list[ImportJob]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(ImportJob)
                    .where(ImportJob.user_id == user_id)
                    .order_by(ImportJob.created_at.desc(), ImportJob.id.desc())  # type: ignore
                    .limit(limit)
                ).all()
            )
            session.expunge_all()
            return rows

    def list_runnable(
        self, *, now: datetime, limit: int, user_id: Optional[int] = None
    ) -> list[ImportJob]:
        """Pending jobs plus failed jobs whose retry time has come, oldest first."""
        with self.session_factory() as session:
            statement = select(ImportJob).where(
                or_(
                    ImportJob.status == "pending",
                    and_(
                        ImportJob.status == "failed",
                        ImportJob.next_retry_at.is_not(None),  # type: ignore[union-attr]
                        ImportJob.next_retry_at <= now,  # type: ignore[operator]
                    ),
                )
            )
            if user_id is not None:
                statement = statement.where(ImportJob.user_id == user_id)
            rows = list(
                session.exec(statement.order_by(ImportJob.created_at, ImportJob.id).limit(limit)).all()
            )
            session.expunge_all()
            return rows

    def claim(self, job_id: int) -> Optional[ImportJob]:
        """Atomically move a runnable job to ``processing``; None when another worker won."""
        with self.session_factory() as session:
            result = session.execute(
                update(ImportJob)
                .where(ImportJob.id == job_id)
                .where(
                    or_(
                        ImportJob.status == "pending",
                        and_(
                            ImportJob.status == "failed",
                            ImportJob.next_retry_at.is_not(None),  # type: ignore[union-attr]
                        ),
                    )
                )
                .values(status="processing", error_message=None, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount != 1:
                return None
            obj = session.get(ImportJob, job_id)
            session.expunge(obj)
            return obj

    def save(self, job: ImportJob) -> ImportJob:
        job.updated_at = utcnow()
        with self.session_factory() as session:
            merged = session.merge(job)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def count_by_status(self) -> dict[str, int]:
        with self.session_factory() as session:
            rows = session.exec(
                select(ImportJob.status, func.count()).group_by(ImportJob.status)
            ).all()
            return {status: count for status, count in rows}

    def has_open_job(self, *, account_id: int, job_type: str) -> bool:
        with self.session_factory() as session:
            return (
                session.exec(
                    select(ImportJob.id)
                    .where(ImportJob.account_id == account_id)
                    .where(ImportJob.job_type == job_type)
                    .where(ImportJob.status.in_(("pending", "processing")))  # type: ignore[attr-defined]
                ).first()
                is not None
            )
