import threading
from datetime import timedelta

from taskreminder.reminders.job_models import JobOutcome, JobStatus, REMINDER_JOB_KIND
from taskreminder.reminders.repository import (
    cancel_jobs, claim_due_jobs, get_job, list_jobs, release_job, schedule_job,
)

from conftest import as_utc

LEASE = timedelta(minutes=10)


def test_job_is_not_claimable_before_fire_at(db, now):
    schedule_job(db, now + timedelta(minutes=5), REMINDER_JOB_KIND, "task-1")
    assert claim_due_jobs(db, "w1", 10, now=now) == []


def test_claim_leases_due_job(db, now):
    job = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    claimed = claim_due_jobs(db, "w1", 10, now=now, lock_lifetime=LEASE)

    assert [j.id for j in claimed] == [job.id]
    leased = claimed[0]
    assert leased.status == JobStatus.RUNNING.value
    assert leased.locked_by == "w1"
    assert leased.attempts == 1
    assert as_utc(leased.lock_expires_at) == now + LEASE


def test_claim_respects_limit_and_fire_order(db, now):
    late = schedule_job(db, now - timedelta(minutes=1), REMINDER_JOB_KIND, "a")
    early = schedule_job(db, now - timedelta(minutes=30), REMINDER_JOB_KIND, "b")
    schedule_job(db, now - timedelta(minutes=10), REMINDER_JOB_KIND, "c")

    claimed = claim_due_jobs(db, "w1", 2, now=now)
    assert len(claimed) == 2
    assert claimed[0].id == early.id
    assert late.id not in [j.id for j in claimed]


def test_leased_job_is_reclaimable_only_after_expiry(session_factory, now):
    db1, db2 = session_factory(), session_factory()
    try:
        job = schedule_job(db1, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
        assert len(claim_due_jobs(db1, "w1", 10, now=now, lock_lifetime=LEASE)) == 1

        assert claim_due_jobs(db2, "w2", 10, now=now + timedelta(minutes=5)) == []

        reclaimed = claim_due_jobs(db2, "w2", 10, now=now + LEASE + timedelta(seconds=1))
        assert [j.id for j in reclaimed] == [job.id]
        assert reclaimed[0].locked_by == "w2"
        assert reclaimed[0].attempts == 2
    finally:
        db1.close()
        db2.close()


def test_concurrent_claims_never_hand_out_a_job_twice(session_factory, now):
    db = session_factory()
    ids = {schedule_job(db, now - timedelta(seconds=i + 1), REMINDER_JOB_KIND, f"t{i}").id for i in range(20)}
    db.close()

    results = {}
    barrier = threading.Barrier(4)

    def worker(name):
        session = session_factory()
        try:
            barrier.wait()
            results[name] = [j.id for j in claim_due_jobs(session, name, 20, now=now)]
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(f"w{i}",)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    all_claimed = [job_id for claimed in results.values() for job_id in claimed]
    assert len(all_claimed) == len(set(all_claimed))
    assert set(all_claimed) == ids


def test_cancel_jobs_only_touches_matching_payload(db, now):
    mine = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    other = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-2")

    assert cancel_jobs(db, REMINDER_JOB_KIND, "task-1") == 1

    assert get_job(db, mine.id).status == JobStatus.CANCELLED.value
    assert get_job(db, other.id).status == JobStatus.SCHEDULED.value
    assert [j.id for j in claim_due_jobs(db, "w1", 10, now=now)] == [other.id]


def test_cancelling_a_running_job_survives_its_release(db, now):
    job = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    claim_due_jobs(db, "w1", 10, now=now)

    cancel_jobs(db, REMINDER_JOB_KIND, "task-1")
    assert release_job(db, job.id, "w1", JobOutcome.SUCCEEDED, now=now) is None

    stored = get_job(db, job.id)
    assert stored.status == JobStatus.CANCELLED.value
    assert stored.last_run_outcome == JobOutcome.SUCCEEDED.value
    assert stored.locked_by is None


def test_release_success_completes_job(db, now):
    job = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    claim_due_jobs(db, "w1", 10, now=now)

    assert release_job(db, job.id, "w1", JobOutcome.SUCCEEDED, now=now) == JobStatus.COMPLETED.value
    stored = get_job(db, job.id)
    assert stored.locked_by is None
    assert as_utc(stored.finished_at) == now
    assert claim_due_jobs(db, "w1", 10, now=now + timedelta(days=1)) == []


def test_failed_job_is_retried_then_marked_failed(db, now):
    job = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    delay = timedelta(minutes=5)
    t = now
    for attempt in range(1, 3):
        assert len(claim_due_jobs(db, "w1", 10, now=t)) == 1
        status = release_job(db, job.id, "w1", JobOutcome.FAILED, error="boom", now=t, max_attempts=3, retry_delay=delay)
        assert status == JobStatus.SCHEDULED.value
        stored = get_job(db, job.id)
        assert as_utc(stored.fire_at) == t + delay
        assert stored.attempts == attempt
        assert stored.last_error == "boom"
        assert claim_due_jobs(db, "w1", 10, now=t + timedelta(minutes=1)) == []
        t = t + delay

    assert len(claim_due_jobs(db, "w1", 10, now=t)) == 1
    status = release_job(db, job.id, "w1", JobOutcome.FAILED, now=t, max_attempts=3, retry_delay=delay)
    assert status == JobStatus.FAILED.value
    assert claim_due_jobs(db, "w1", 10, now=t + timedelta(days=1)) == []


def test_release_by_another_worker_is_ignored(db, now):
    job = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")
    claim_due_jobs(db, "w1", 10, now=now)

    assert release_job(db, job.id, "intruder", JobOutcome.SUCCEEDED, now=now) is None
    assert get_job(db, job.id).status == JobStatus.RUNNING.value


def test_claim_filters_by_kind(db, now):
    schedule_job(db, now - timedelta(seconds=1), "other_kind", "x")
    reminder = schedule_job(db, now - timedelta(seconds=1), REMINDER_JOB_KIND, "task-1")

    claimed = claim_due_jobs(db, "w1", 10, kinds=[REMINDER_JOB_KIND], now=now)
    assert [j.id for j in claimed] == [reminder.id]
    assert len(list_jobs(db, kind="other_kind", status=JobStatus.SCHEDULED.value)) == 1
