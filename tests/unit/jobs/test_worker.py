"""Tests for the worker pool."""

import asyncio
import os
import socket
from datetime import datetime, timedelta, timezone

import pytest

from app.jobs.queue import STALLED_REASON, JobPolicy, ReportQueue
from app.jobs.rate_limit import RollingWindowLimiter
from app.jobs.types import JobStatus
from app.jobs.worker import WorkerPool, generate_worker_id


async def _eventually(predicate, timeout: float = 3.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
async def make_pool():
    pools = []

    def _make(queue, handler, **kwargs):
        kwargs.setdefault("poll_interval_s", 0.01)
        kwargs.setdefault("worker_id", "test-worker")
        pool = WorkerPool(queue, handler, **kwargs)
        pools.append(pool)
        return pool

    yield _make
    for pool in pools:
        await pool.stop(timeout=1.0)


async def succeed(job, ctx):
    await ctx["progress"](50)
    return {"report_id": str(job.id)}


class TestGenerateWorkerId:
    def test_worker_id_format(self):
        worker_id = generate_worker_id()
        # Format: hostname:pid
        assert ":" in worker_id
        hostname, pid = worker_id.split(":")
        assert hostname == socket.gethostname()
        assert pid == str(os.getpid())


class TestWorkerPoolConstruction:
    def test_defaults(self, queue):
        pool = WorkerPool(queue, succeed, worker_id="w1")
        status = pool.status()
        assert status["worker_id"] == "w1"
        assert status["running"] is False
        assert status["concurrency"] == 2
        assert status["in_flight"] == 0

    def test_rejects_zero_concurrency(self, queue):
        with pytest.raises(ValueError):
            WorkerPool(queue, succeed, concurrency=0)


class TestWorkerPoolExecution:
    @pytest.mark.asyncio
    async def test_job_runs_to_completion(self, queue, job_repo, make_payload, make_pool):
        job = await queue.submit(make_payload())
        pool = make_pool(queue, succeed)
        pool.start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)
        done = job_repo.jobs[job.id]
        assert done.attempt == 1
        assert done.progress == 100
        assert done.result == {"report_id": str(job.id)}
        assert (job.id, 1, 50) in job_repo.progress_log

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, queue, make_pool):
        pool = make_pool(queue, succeed)
        pool.start()
        dispatcher = pool._dispatcher
        pool.start()
        assert pool._dispatcher is dispatcher
        assert pool.running

    @pytest.mark.asyncio
    async def test_failed_attempt_is_retried(self, queue, job_repo, make_payload, make_pool):
        attempts = []

        async def flaky(job, ctx):
            attempts.append(job.attempt)
            if job.attempt == 1:
                raise RuntimeError("search provider timeout")
            return {"ok": True}

        job = await queue.submit(make_payload())
        make_pool(queue, flaky).start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)
        assert attempts == [1, 2]
        assert job_repo.jobs[job.id].attempt == 2
        assert job_repo.jobs[job.id].last_error == "search provider timeout"

    @pytest.mark.asyncio
    async def test_delayed_retry_is_promoted(self, job_repo, make_payload, make_pool):
        queue = ReportQueue(job_repo, JobPolicy(backoff_base_s=0.05))
        calls = []

        async def flaky(job, ctx):
            calls.append(job.attempt)
            if job.attempt == 1:
                raise RuntimeError("transient")
            return {}

        job = await queue.submit(make_payload())
        make_pool(queue, flaky).start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)
        assert calls == [1, 2]

    @pytest.mark.asyncio
    async def test_exhausted_attempts_fail_job(self, queue, job_repo, make_payload, make_pool):
        async def broken(job, ctx):
            raise RuntimeError("synthesis returned malformed output")

        job = await queue.submit(make_payload())
        make_pool(queue, broken).start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.FAILED)
        failed = job_repo.jobs[job.id]
        assert failed.attempt == 2
        assert failed.failure_reason == "synthesis returned malformed output"

    @pytest.mark.asyncio
    async def test_progress_resets_between_attempts(self, queue, job_repo, make_payload, make_pool):
        async def handler(job, ctx):
            if job.attempt == 1:
                await ctx["progress"](30)
                await ctx["progress"](20)
                raise RuntimeError("boom")
            await ctx["progress"](10)
            return {}

        job = await queue.submit(make_payload())
        make_pool(queue, handler).start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)
        assert job_repo.progress_log == [(job.id, 1, 30), (job.id, 2, 10)]

    @pytest.mark.asyncio
    async def test_active_job_cannot_be_removed(self, queue, job_repo, make_payload, make_pool):
        release = asyncio.Event()

        async def blocking(job, ctx):
            await release.wait()
            return {}

        job = await queue.submit(make_payload())
        make_pool(queue, blocking).start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.ACTIVE)
        assert await queue.remove(job.id) is False
        release.set()
        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)


class TestWorkerPoolLimits:
    @pytest.mark.asyncio
    async def test_concurrency_cap(self, queue, job_repo, make_payload, make_pool):
        release = asyncio.Event()
        running = 0
        peak = 0

        async def blocking(job, ctx):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            try:
                await release.wait()
            finally:
                running -= 1
            return {}

        for i in range(5):
            await queue.submit(make_payload(company_domain=f"c{i}.com"))
        pool = make_pool(queue, blocking, concurrency=2)
        pool.start()

        await _eventually(lambda: pool.in_flight == 2)
        await asyncio.sleep(0.1)
        assert peak == 2
        assert len(job_repo.by_status(JobStatus.WAITING)) == 3

        release.set()
        await _eventually(lambda: len(job_repo.by_status(JobStatus.COMPLETED)) == 5)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_rate_limit_holds_jobs_waiting(self, queue, job_repo, make_payload, make_pool):
        for i in range(4):
            await queue.submit(make_payload(company_domain=f"c{i}.com"))
        pool = make_pool(
            queue,
            succeed,
            concurrency=5,
            limiter=RollingWindowLimiter(max_starts=2, window_s=60.0),
        )
        pool.start()

        await _eventually(lambda: len(job_repo.by_status(JobStatus.COMPLETED)) == 2)
        await asyncio.sleep(0.1)
        assert len(job_repo.by_status(JobStatus.WAITING)) == 2
        assert pool.status()["starts_in_window"] == 2


class TestWorkerPoolResilience:
    @pytest.mark.asyncio
    async def test_loop_error_does_not_stop_pool(self, queue, job_repo, make_payload, make_pool):
        job_repo.fail_next_claims = 3
        job = await queue.submit(make_payload())
        pool = make_pool(queue, succeed)
        pool.start()

        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)
        assert job_repo.fail_next_claims == 0
        assert pool.running

    @pytest.mark.asyncio
    async def test_stale_final_attempt_is_abandoned(self, queue, job_repo, make_payload, make_pool):
        abandoned = []

        async def on_abandoned(job):
            abandoned.append(job)

        job = await queue.submit(make_payload())
        stored = job_repo.jobs[job.id]
        stored.status = JobStatus.ACTIVE
        stored.attempt = 2
        stored.locked_by = "dead-worker"
        stored.locked_at = datetime.now(timezone.utc) - timedelta(hours=3)

        make_pool(queue, succeed, on_abandoned=on_abandoned, reap_interval_s=0).start()

        await _eventually(lambda: len(abandoned) == 1)
        assert abandoned[0].id == job.id
        assert abandoned[0].status == JobStatus.FAILED
        assert abandoned[0].failure_reason == STALLED_REASON

    @pytest.mark.asyncio
    async def test_own_running_attempt_is_never_reaped(self, job_repo, make_payload, make_pool):
        queue = ReportQueue(job_repo, JobPolicy(backoff_base_s=0, stale_timeout_minutes=0))
        release = asyncio.Event()
        attempts = []

        async def hung_then_fails(job, ctx):
            attempts.append(job.attempt)
            await release.wait()
            raise RuntimeError("stage finally errored")

        job = await queue.submit(make_payload())
        pool = make_pool(queue, hung_then_fails, reap_interval_s=0)
        pool.start()
        await _eventually(lambda: pool.in_flight == 1)

        # Many maintenance passes run while the attempt hangs
        await asyncio.sleep(0.1)
        stored = job_repo.jobs[job.id]
        assert stored.status is JobStatus.ACTIVE
        assert stored.attempt == 1
        assert attempts == [1]

        release.set()
        await _eventually(lambda: len(attempts) == 2)
        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.FAILED)
        assert job_repo.jobs[job.id].failure_reason == "stage finally errored"
        assert attempts == [1, 2]

    @pytest.mark.asyncio
    async def test_running_attempt_renews_its_lock(self, queue, job_repo, make_payload, make_pool):
        release = asyncio.Event()

        async def slow(job, ctx):
            await release.wait()
            return {}

        job = await queue.submit(make_payload())
        pool = make_pool(queue, slow, lock_refresh_s=0.01)
        pool.start()
        await _eventually(lambda: pool.in_flight == 1)

        expired = datetime.now(timezone.utc) - timedelta(hours=3)
        job_repo.jobs[job.id].locked_at = expired
        await _eventually(lambda: job_repo.jobs[job.id].locked_at > expired)

        release.set()
        await _eventually(lambda: job_repo.jobs[job.id].status is JobStatus.COMPLETED)


class TestWorkerPoolStop:
    @pytest.mark.asyncio
    async def test_stop_drains_in_flight(self, queue, job_repo, make_payload):
        async def slow(job, ctx):
            await asyncio.sleep(0.2)
            return {}

        job = await queue.submit(make_payload())
        pool = WorkerPool(queue, slow, poll_interval_s=0.01)
        pool.start()
        await _eventually(lambda: pool.in_flight == 1)

        await pool.stop(timeout=5.0)
        assert not pool.running
        assert job_repo.jobs[job.id].status is JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_timeout_cancels_attempt(self, queue, job_repo, make_payload):
        async def hung(job, ctx):
            await asyncio.Event().wait()

        job = await queue.submit(make_payload())
        pool = WorkerPool(queue, hung, poll_interval_s=0.01)
        pool.start()
        await _eventually(lambda: pool.in_flight == 1)

        await pool.stop(timeout=0.05)
        assert pool.in_flight == 0
        # Left for the stale-job reaper
        assert job_repo.jobs[job.id].status is JobStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_no_claims_after_stop(self, queue, job_repo, make_payload):
        pool = WorkerPool(queue, succeed, poll_interval_s=0.01)
        pool.start()
        await pool.stop(timeout=1.0)

        job = await queue.submit(make_payload())
        await asyncio.sleep(0.05)
        assert job_repo.jobs[job.id].status is JobStatus.WAITING

    @pytest.mark.asyncio
    async def test_stop_without_start(self, queue):
        pool = WorkerPool(queue, succeed)
        await pool.stop(timeout=0.1)
        assert not pool.running
