import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy import select, update, and_, or_

from .config import settings
from .job_models import Job, JobStatus, JobOutcome, OUTSTANDING_STATUSES
from taskreminder.utils.timezone import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


def _claimable(now: datetime):
    """Scheduled jobs, or running jobs whose lease ran out (crashed worker)."""
    return or_(
        Job.status == JobStatus.SCHEDULED.value,
        and_(Job.status == JobStatus.RUNNING.value, Job.lock_expires_at <= now),
    )


def schedule_job(db: Session, fire_at: datetime, kind: str, payload: str, commit: bool = True) -> Job:
    job = Job(
        kind=kind,
        payload=str(payload),
        fire_at=to_utc_aware(fire_at),
        status=JobStatus.SCHEDULED.value,
        attempts=0,
    )
    db.add(job)
    if commit:
        db.commit()
        db.refresh(job)
    else:
        # Caller commits together with its own changes
        db.flush()
    logger.info(f"🗓️  [JobStore] Scheduled job={job.id} kind={kind} payload={payload} fire_at={job.fire_at}")
    return job


def cancel_jobs(db: Session, kind: str, payload: Optional[str] = None, commit: bool = True) -> int:
    """Cancel outstanding jobs of ``kind`` (optionally only for ``payload``).

    A job a worker is already executing is not interrupted; it simply will not
    be retried or reclaimed afterwards.
    """
    stmt = (
        update(Job)
        .where(Job.kind == kind)
        .where(Job.status.in_(OUTSTANDING_STATUSES))
        .values(status=JobStatus.CANCELLED.value, finished_at=utcnow(), updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if payload is not None:
        stmt = stmt.where(Job.payload == str(payload))
    result = db.execute(stmt)
    if commit:
        db.commit()
    if result.rowcount:
        logger.info(f"🛑 [JobStore] Cancelled {result.rowcount} job(s) kind={kind} payload={payload}")
    return result.rowcount


def claim_due_jobs(
    db: Session,
    worker_id: str,
    limit: int,
    kinds: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
    lock_lifetime: Optional[timedelta] = None,
) -> List[Job]:
    """Lease up to ``limit`` due jobs to ``worker_id``.

    Each job is taken with one conditional UPDATE that re-checks claimability,
    so concurrent callers can never both win the same row; a caller that
    loses the race just gets fewer jobs.
    """
    if limit <= 0:
        return []
    now = to_utc_aware(now) or utcnow()
    lease = lock_lifetime or timedelta(seconds=settings.LOCK_LIFETIME_SECONDS)

    stmt = (
        select(Job.id)
        .where(Job.fire_at <= now)
        .where(_claimable(now))
        .order_by(Job.fire_at.asc())
        .limit(limit)
    )
    if kinds is not None:
        stmt = stmt.where(Job.kind.in_(list(kinds)))
    candidate_ids = list(db.execute(stmt).scalars())
    db.commit()

    claimed_ids: List[str] = []
    for job_id in candidate_ids:
        result = db.execute(
            update(Job)
            .where(Job.id == job_id)
            .where(Job.fire_at <= now)
            .where(_claimable(now))
            .values(
                status=JobStatus.RUNNING.value,
                locked_by=worker_id,
                locked_at=now,
                lock_expires_at=now + lease,
                attempts=Job.attempts + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if result.rowcount == 1:
            claimed_ids.append(job_id)
        else:
            logger.debug(f"[JobStore] Lost claim race for job={job_id}")

    if not claimed_ids:
        return []
    jobs = db.execute(
        select(Job)
        .where(Job.id.in_(claimed_ids))
        .order_by(Job.fire_at.asc())
        .execution_options(populate_existing=True)
    ).scalars()
    return list(jobs)


def release_job(
    db: Session,
    job_id: str,
    worker_id: str,
    outcome: JobOutcome,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
    max_attempts: Optional[int] = None,
    retry_delay: Optional[timedelta] = None,
) -> Optional[str]:
    """Record the outcome of an execution and give up the lease.

    Success or skip completes the job. A failure puts it back on the schedule
    after ``retry_delay`` until ``max_attempts`` executions have been made,
    then marks it failed. Returns the resulting status, or ``None`` when the
    lease was no longer ours (expired and reclaimed, or cancelled meanwhile).
    """
    now = to_utc_aware(now) or utcnow()
    outcome = JobOutcome(outcome)
    max_attempts = max_attempts if max_attempts is not None else settings.JOB_MAX_ATTEMPTS
    retry_delay = retry_delay or timedelta(seconds=settings.JOB_RETRY_DELAY_SECONDS)

    job = db.execute(
        select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if job is None:
        return None

    cleared_lock = {"locked_by": None, "locked_at": None, "lock_expires_at": None}
    values = {
        "last_run_outcome": outcome.value,
        "last_error": error,
        "updated_at": now,
        **cleared_lock,
    }
    if outcome is JobOutcome.FAILED:
        if job.attempts < max_attempts:
            values.update(status=JobStatus.SCHEDULED.value, fire_at=now + retry_delay)
        else:
            values.update(status=JobStatus.FAILED.value, finished_at=now)
    else:
        values.update(status=JobStatus.COMPLETED.value, finished_at=now)

    owned = and_(
        Job.id == job_id,
        Job.locked_by == worker_id,
        Job.status == JobStatus.RUNNING.value,
    )
    result = db.execute(
        update(Job).where(owned).values(**values).execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        db.commit()
        return values["status"]

    # Cancelled while running: keep the cancellation, still record what happened
    db.execute(
        update(Job)
        .where(Job.id == job_id, Job.locked_by == worker_id)
        .values(last_run_outcome=outcome.value, last_error=error, updated_at=now, **cleared_lock)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.warning(f"⚠️  [JobStore] Lease on job={job_id} no longer held by {worker_id}; outcome={outcome.value}")
    return None


def get_job(db: Session, job_id: str) -> Optional[Job]:
    return db.execute(
        select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
    ).scalar_one_or_none()


def list_jobs(
    db: Session,
    kind: Optional[str] = None,
    payload: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
) -> List[Job]:
    stmt = select(Job).order_by(Job.fire_at.asc()).limit(limit)
    if kind:
        stmt = stmt.where(Job.kind == kind)
    if payload:
        stmt = stmt.where(Job.payload == str(payload))
    if status:
        stmt = stmt.where(Job.status == status)
    return list(db.execute(stmt.execution_options(populate_existing=True)).scalars())
