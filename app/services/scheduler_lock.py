"""DB-backed lock so only one process runs the reconciliation scheduler."""
from __future__ import annotations

import logging
import os
import socket
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import db
from app.models.scheduler_lock import SchedulerLock
from app.utils.time import as_utc, utcnow

logger = logging.getLogger(__name__)

LOCK_NAME = "escrow-scheduler"
LOCK_TTL_SECONDS = 300


def _session(db_session: Session | None = None) -> tuple[Session, bool]:
    if db_session is not None:
        return db_session, False
    return db.get_sessionmaker()(), True


def owner_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def _locked_row(session: Session, name: str) -> SchedulerLock | None:
    stmt = select(SchedulerLock).where(SchedulerLock.name == name).with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def try_acquire_scheduler_lock(
    name: str = LOCK_NAME,
    *,
    ttl_seconds: int = LOCK_TTL_SECONDS,
    db_session: Session | None = None,
) -> bool:
    """Take the lock when free, expired, or already ours; extend it in every case."""

    session, should_close = _session(db_session)
    owner = owner_id()
    now = utcnow()
    expires = now + timedelta(seconds=ttl_seconds)

    try:
        with session.begin():
            lock = _locked_row(session, name)
            if lock is None:
                session.add(SchedulerLock(name=name, owner=owner, acquired_at=now, expires_at=expires))
                session.flush()
                logger.info("Scheduler lock acquired", extra={"lock": name, "owner": owner})
                return True

            if lock.owner == owner:
                lock.expires_at = expires
                return True

            if lock.expires_at is None or as_utc(lock.expires_at) <= now:
                logger.warning(
                    "Taking over expired scheduler lock",
                    extra={"lock": name, "previous_owner": lock.owner, "owner": owner},
                )
                lock.owner = owner
                lock.acquired_at = now
                lock.expires_at = expires
                return True

            return False
    except IntegrityError:
        # Another process inserted the row first.
        session.rollback()
        return False
    finally:
        if should_close:
            session.close()


def refresh_scheduler_lock(
    name: str = LOCK_NAME, *, ttl_seconds: int = LOCK_TTL_SECONDS, db_session: Session | None = None
) -> bool:
    """Extend the lock TTL; returns False when this process no longer owns it."""

    session, should_close = _session(db_session)
    owner = owner_id()
    try:
        with session.begin():
            lock = _locked_row(session, name)
            if lock is None or lock.owner != owner:
                return False
            lock.expires_at = utcnow() + timedelta(seconds=ttl_seconds)
            return True
    finally:
        if should_close:
            session.close()


def release_scheduler_lock(name: str = LOCK_NAME, *, db_session: Session | None = None) -> None:
    session, should_close = _session(db_session)
    owner = owner_id()
    try:
        with session.begin():
            lock = _locked_row(session, name)
            if lock is not None and lock.owner == owner:
                session.delete(lock)
                logger.info("Scheduler lock released", extra={"lock": name, "owner": owner})
    finally:
        if should_close:
            session.close()


def describe_scheduler_lock(name: str = LOCK_NAME, *, db_session: Session | None = None) -> dict[str, object]:
    """Lock state for the health endpoint."""

    session, should_close = _session(db_session)
    try:
        lock = session.execute(select(SchedulerLock).where(SchedulerLock.name == name)).scalar_one_or_none()
        if lock is None:
            return {"status": "none", "owner": None, "present": False}

        expires_in = (as_utc(lock.expires_at) - utcnow()).total_seconds() if lock.expires_at else None
        return {
            "status": "owned_by_self" if lock.owner == owner_id() else "owned_by_other",
            "owner": lock.owner,
            "present": True,
            "expires_in_seconds": expires_in,
            "stale": expires_in is not None and expires_in < 0,
        }
    finally:
        if should_close:
            session.close()


__all__ = [
    "LOCK_NAME",
    "describe_scheduler_lock",
    "owner_id",
    "refresh_scheduler_lock",
    "release_scheduler_lock",
    "try_acquire_scheduler_lock",
]
