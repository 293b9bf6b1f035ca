"""Process-local progress tracking and background dispatch for import jobs.

Progress snapshots mirror what is persisted on ``ImportJob`` rows so polling
clients get live percentages between batch commits. Snapshots are not durable
and the last write wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock, Thread
from typing import Any, Callable, Dict, Optional

__all__ = [
    "ProgressSnapshot",
    "clear_progress",
    "dispatch",
    "get_progress",
    "set_async_execution",
    "update_progress",
]


@dataclass
class ProgressSnapshot:
    """Latest known progress for one import job."""

    job_id: int
    status: str
    progress: int = 0
    processed_items: int = 0
    total_items: int = 0
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "progress": self.progress,
            "processed_items": self.processed_items,
            "total_items": self.total_items,
            "updated_at": self.updated_at.isoformat(),
            "message": self.message,
        }


_PROGRESS: Dict[int, ProgressSnapshot] = {}
_LOCK = Lock()
_MAX_SNAPSHOTS = 200
_RUN_ASYNC = True


def set_async_execution(enabled: bool) -> None:
    """Configure whether dispatched work runs in threads (True) or inline (False)."""

    global _RUN_ASYNC
    _RUN_ASYNC = enabled


def clear_progress() -> None:
    """Remove all tracked snapshots (useful for tests)."""

    with _LOCK:
        _PROGRESS.clear()


def update_progress(
    job_id: int,
    *,
    status: str,
    progress: int = 0,
    processed_items: int = 0,
    total_items: int = 0,
    message: Optional[str] = None,
) -> ProgressSnapshot:
    snapshot = ProgressSnapshot(
        job_id=job_id,
        status=status,
        progress=progress,
        processed_items=processed_items,
        total_items=total_items,
        message=message,
    )
    with _LOCK:
        _PROGRESS[job_id] = snapshot
        if len(_PROGRESS) > _MAX_SNAPSHOTS:
            # Prune oldest snapshots to keep memory bounded.
            for key in sorted(_PROGRESS, key=lambda k: _PROGRESS[k].updated_at)[
                : len(_PROGRESS) - _MAX_SNAPSHOTS
            ]:
                _PROGRESS.pop(key, None)
    return snapshot


def get_progress(job_id: int) -> Optional[Dict[str, Any]]:
    """Return the latest snapshot for ``job_id`` (or ``None`` if unknown)."""

    with _LOCK:
        snapshot = _PROGRESS.get(job_id)
    return snapshot.to_dict() if snapshot else None


def dispatch(name: str, target: Callable[..., Any], **kwargs: Any) -> None:
    """Run ``target`` in a daemon thread, or inline when async execution is off."""

    if _RUN_ASYNC:
        thread = Thread(target=target, kwargs=kwargs, name=f"SpareJob-{name}", daemon=True)
        thread.start()
    else:
        target(**kwargs)
