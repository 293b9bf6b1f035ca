"""Persisted background import jobs (CSV imports and bank syncs)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

JOB_TYPES = ("csv_import", "plaid_sync")
JOB_STATUSES = ("pending", "processing", "completed", "failed")


class ImportJob(SQLModel, table=True):
    __tablename__: ClassVar[str] = "import_job"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    job_type: str = Field(nullable=False, max_length=16)
    status: str = Field(default="pending", nullable=False, max_length=16, index=True)
    progress: int = Field(default=0, nullable=False)
    total_items: int = Field(default=0, nullable=False)
    processed_items: int = Field(default=0, nullable=False)
    synced_items: int = Field(default=0, nullable=False)
    skipped_items: int = Field(default=0, nullable=False)
    error_items: int = Field(default=0, nullable=False)
    retry_count: int = Field(default=0, nullable=False)
    next_retry_at: Optional[datetime] = Field(default=None, index=True)
    error_message: Optional[str] = Field(default=None, max_length=1024)
    payload: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
    completed_at: Optional[datetime] = Field(default=None)
