"""In-process state reported by the health endpoint."""
from __future__ import annotations

from datetime import datetime
from threading import Lock

from app.utils.time import utcnow

_state_lock = Lock()
_scheduler_active = False
_last_reconciliation: dict[str, object] | None = None


def set_scheduler_active(active: bool) -> None:
    global _scheduler_active
    _scheduler_active = active


def is_scheduler_active() -> bool:
    return _scheduler_active


def record_reconciliation(corrected: int, *, at: datetime | None = None) -> None:
    """Remember the outcome of the latest reconciliation pass run by this process."""

    global _last_reconciliation
    with _state_lock:
        _last_reconciliation = {"at": (at or utcnow()).isoformat(), "corrected": corrected}


def last_reconciliation() -> dict[str, object] | None:
    with _state_lock:
        return dict(_last_reconciliation) if _last_reconciliation else None


def reset_runtime_state() -> None:
    global _scheduler_active, _last_reconciliation
    with _state_lock:
        _scheduler_active = False
        _last_reconciliation = None
