import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql

from daystart.storage.jobs_repo import JobConflictError
from daystart.storage.postgres_jobs_repo import build_lease_query
from tests.fakes import make_job


@pytest.mark.anyio
async def test_create_job_is_unique_per_user_and_date(jobs_repo, now):
  await jobs_repo.create_job(make_job(now))
  with pytest.raises(JobConflictError):
    await jobs_repo.create_job(make_job(now, job_id="job-2"))


@pytest.mark.anyio
async def test_lease_orders_by_priority_then_creation(jobs_repo, now):
  await jobs_repo.create_job(make_job(now, job_id="old-regular", user_id="a", priority=50, created_at=now - timedelta(minutes=10)))
  await jobs_repo.create_job(make_job(now, job_id="new-regular", user_id="b", priority=50, created_at=now - timedelta(minutes=1)))
  await jobs_repo.create_job(make_job(now, job_id="welcome", user_id="c", priority=100))
  await jobs_repo.create_job(make_job(now, job_id="background", user_id="d", priority=25))

  leased = await jobs_repo.lease_jobs(worker_id="w1", now=now, limit=3, lease_seconds=60)

  assert [job.job_id for job in leased] == ["welcome", "old-regular", "new-regular"]
  assert all(job.status == "script_processing" and job.lease_owner == "w1" and job.script_attempts == 1 for job in leased)


@pytest.mark.anyio
async def test_concurrent_workers_never_share_a_job(jobs_repo, now):
  for index in range(6):
    await jobs_repo.create_job(make_job(now, job_id=f"job-{index}", user_id=f"user-{index}"))

  first, second = await asyncio.gather(
    jobs_repo.lease_jobs(worker_id="w1", now=now, limit=4, lease_seconds=60),
    jobs_repo.lease_jobs(worker_id="w2", now=now, limit=4, lease_seconds=60),
  )

  first_ids = {job.job_id for job in first}
  second_ids = {job.job_id for job in second}
  assert not first_ids & second_ids
  assert len(first_ids | second_ids) == 6


@pytest.mark.anyio
async def test_lease_skips_future_and_backoff_jobs(jobs_repo, now):
  await jobs_repo.create_job(make_job(now, job_id="later", user_id="a", process_not_before=now + timedelta(minutes=30)))
  await jobs_repo.create_job(make_job(now, job_id="backoff", user_id="b", next_attempt_at=now + timedelta(seconds=30)))
  await jobs_repo.create_job(make_job(now, job_id="due", user_id="c"))

  leased = await jobs_repo.lease_jobs(worker_id="w1", now=now, limit=10, lease_seconds=60)

  assert [job.job_id for job in leased] == ["due"]


@pytest.mark.anyio
async def test_expired_lease_is_taken_over(jobs_repo, now):
  await jobs_repo.create_job(make_job(now))
  await jobs_repo.lease_jobs(worker_id="w1", now=now, limit=1, lease_seconds=60)

  assert await jobs_repo.lease_jobs(worker_id="w2", now=now + timedelta(seconds=30), limit=1, lease_seconds=60) == []
  taken = await jobs_repo.lease_jobs(worker_id="w2", now=now + timedelta(seconds=61), limit=1, lease_seconds=60)

  assert [job.lease_owner for job in taken] == ["w2"]
  assert taken[0].script_attempts == 2
  # The first worker lost its lease and cannot commit.
  assert await jobs_repo.transition("job-1", worker_id="w1", from_status="script_processing", to_status="script_ready", now=now + timedelta(seconds=62)) is None


@pytest.mark.anyio
async def test_mark_missed_only_touches_open_unleased_jobs(jobs_repo, now):
  await jobs_repo.create_job(make_job(now, job_id="late", user_id="a", latest_completion_at=now - timedelta(minutes=1)))
  await jobs_repo.create_job(make_job(now, job_id="done", user_id="b", status="ready", latest_completion_at=now - timedelta(minutes=1)))
  await jobs_repo.create_job(make_job(now, job_id="on-time", user_id="c"))

  missed = await jobs_repo.mark_missed(now=now)

  assert missed == ["late"]
  late = await jobs_repo.get_job("late")
  assert late.status == "failed_missed"
  assert late.failure_stage == "deadline"
  assert (await jobs_repo.get_job("done")).status == "ready"


@pytest.mark.anyio
async def test_update_unleased_refuses_leased_jobs(jobs_repo, now):
  await jobs_repo.create_job(make_job(now))
  await jobs_repo.lease_jobs(worker_id="w1", now=now, limit=1, lease_seconds=60)

  assert await jobs_repo.update_unleased("job-1", now=now, changes={"priority": 100}) is None


def test_lease_query_uses_skip_locked_and_priority_order(now):
  sql = str(build_lease_query(now, 5).compile(dialect=postgresql.dialect()))

  assert "FOR UPDATE SKIP LOCKED" in sql
  assert "ORDER BY jobs.priority DESC, jobs.created_at ASC" in sql
  assert "LIMIT" in sql
