"""Shared fixtures for unit tests: in-memory stand-ins for the Postgres repositories."""

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

import asyncpg
import pytest

from app.jobs.models import Job, QueueStats, ReportJobPayload
from app.jobs.queue import JobPolicy, ReportQueue
from app.jobs.types import JobStatus, ReportStatus, ReportType
from app.repositories.jobs import calculate_backoff
from app.repositories.report_configs import ReportConfig
from app.repositories.reports import GeneratedReport
from app.services.reports.store import ReportStore


class InMemoryJobRepository:
    """Same contract as JobRepository, held in a dict.

    Claims are serialized by a lock, standing in for FOR UPDATE SKIP LOCKED.
    Returned jobs are snapshots so callers cannot mutate stored state.
    """

    def __init__(self):
        self.jobs: dict[UUID, Job] = {}
        self.progress_log: list[tuple[UUID, int, int]] = []
        self.fail_next_claims = 0
        self._lock = asyncio.Lock()

    async def create(
        self,
        payload: ReportJobPayload,
        dedupe_key: Optional[str] = None,
        max_attempts: int = 2,
        run_after: Optional[datetime] = None,
    ) -> Job:
        async with self._lock:
            if dedupe_key is not None:
                for job in self.jobs.values():
                    if job.dedupe_key == dedupe_key:
                        return replace(job)
            job = Job(
                id=uuid4(),
                status=JobStatus.WAITING,
                payload=payload,
                max_attempts=max_attempts,
                dedupe_key=dedupe_key,
                run_after=run_after or datetime.now(timezone.utc),
            )
            self.jobs[job.id] = job
            return replace(job)

    async def claim(self, worker_id: str) -> Optional[Job]:
        async with self._lock:
            if self.fail_next_claims > 0:
                self.fail_next_claims -= 1
                raise ConnectionError("database unreachable")
            now = datetime.now(timezone.utc)
            for job in self.jobs.values():
                if job.status is JobStatus.WAITING and job.run_after <= now:
                    job.status = JobStatus.ACTIVE
                    job.attempt += 1
                    job.progress = 0
                    job.locked_by = worker_id
                    job.locked_at = now
                    job.started_at = now
                    return replace(job)
            return None

    def _owned(self, job_id: UUID, attempt: int, worker_id: str) -> Optional[Job]:
        job = self.jobs.get(job_id)
        if job is None or job.status is not JobStatus.ACTIVE:
            return None
        if job.attempt != attempt or job.locked_by != worker_id:
            return None
        return job

    async def update_progress(
        self, job_id: UUID, attempt: int, worker_id: str, progress: int
    ) -> bool:
        job = self._owned(job_id, attempt, worker_id)
        if job is None or progress < job.progress:
            return False
        job.progress = progress
        job.locked_at = datetime.now(timezone.utc)
        self.progress_log.append((job_id, job.attempt, progress))
        return True

    async def extend_lock(self, job_id: UUID, attempt: int, worker_id: str) -> bool:
        job = self._owned(job_id, attempt, worker_id)
        if job is None:
            return False
        job.locked_at = datetime.now(timezone.utc)
        return True

    async def complete(
        self, job_id: UUID, attempt: int, worker_id: str, result: dict[str, Any]
    ) -> Optional[Job]:
        job = self._owned(job_id, attempt, worker_id)
        if job is None:
            return None
        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.result = result
        job.locked_at = None
        job.locked_by = None
        job.finished_at = datetime.now(timezone.utc)
        return replace(job)

    async def fail(
        self,
        job_id: UUID,
        attempt: int,
        worker_id: str,
        error: str,
        backoff_base_s: float,
    ) -> Optional[Job]:
        if job_id not in self.jobs:
            raise ValueError(f"Job {job_id} not found")
        job = self._owned(job_id, attempt, worker_id)
        if job is None:
            return None
        job.locked_at = None
        job.locked_by = None
        job.last_error = error
        if job.attempt < job.max_attempts:
            delay = calculate_backoff(job.attempt, backoff_base_s)
            job.status = JobStatus.DELAYED if delay > 0 else JobStatus.WAITING
            job.run_after = datetime.now(timezone.utc) + timedelta(seconds=delay)
        else:
            job.status = JobStatus.FAILED
            job.failure_reason = error
            job.finished_at = datetime.now(timezone.utc)
        return replace(job)

    async def remove_pending(self, job_id: UUID) -> bool:
        job = self.jobs.get(job_id)
        if job is None or not job.status.is_pending:
            return False
        del self.jobs[job_id]
        return True

    async def get(self, job_id: UUID) -> Optional[Job]:
        job = self.jobs.get(job_id)
        return replace(job) if job else None

    async def counts(self) -> QueueStats:
        stats = QueueStats()
        for job in self.jobs.values():
            setattr(stats, job.status.value, getattr(stats, job.status.value) + 1)
        return stats

    async def promote_due(self) -> int:
        now = datetime.now(timezone.utc)
        promoted = 0
        for job in self.jobs.values():
            if job.status is JobStatus.DELAYED and job.run_after <= now:
                job.status = JobStatus.WAITING
                promoted += 1
        return promoted

    async def prune(self, keep_completed: int, keep_completed_age_s: int, keep_failed: int) -> int:
        return 0

    async def find_stale(
        self, stale_minutes: int, exclude_ids: Optional[list[UUID]] = None
    ) -> list[Job]:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=stale_minutes)
        excluded = set(exclude_ids or [])
        return [
            replace(job)
            for job in self.jobs.values()
            if job.status is JobStatus.ACTIVE
            and job.locked_at
            and job.locked_at < cutoff
            and job.id not in excluded
        ]

    def by_status(self, status: JobStatus) -> list[Job]:
        return [job for job in self.jobs.values() if job.status is status]


class InMemoryReportRepository:
    """Same contract as ReportRepository, including slug uniqueness."""

    def __init__(self):
        self.reports: dict[UUID, GeneratedReport] = {}

    def _check_slug(self, report_id: UUID, slug: Optional[str]) -> None:
        if slug is None:
            return
        for other in self.reports.values():
            if other.id != report_id and other.public_slug == slug:
                raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")

    async def create_generating(
        self,
        user_id: UUID,
        report_config_id: UUID,
        is_public: bool = False,
        job_id: Optional[UUID] = None,
    ) -> GeneratedReport:
        now = datetime.now(timezone.utc)
        report = GeneratedReport(
            id=uuid4(),
            report_config_id=report_config_id,
            user_id=user_id,
            status=ReportStatus.GENERATING,
            content=None,
            is_public=is_public,
            public_slug=None,
            view_count=0,
            created_at=now,
            job_id=job_id,
            generation_started_at=now,
        )
        self.reports[report.id] = report
        return replace(report)

    async def get(self, report_id: UUID) -> Optional[GeneratedReport]:
        report = self.reports.get(report_id)
        return replace(report) if report else None

    async def find_by_job(self, job_id: UUID) -> Optional[GeneratedReport]:
        for report in self.reports.values():
            if report.job_id == job_id:
                return replace(report)
        return None

    async def find_generating_for_config(self, report_config_id: UUID) -> Optional[GeneratedReport]:
        for report in self.reports.values():
            if report.report_config_id == report_config_id and report.status is ReportStatus.GENERATING:
                return replace(report)
        return None

    async def complete(
        self,
        report_id: UUID,
        content: dict[str, Any],
        duration_ms: int,
        public_slug: Optional[str],
    ) -> Optional[GeneratedReport]:
        report = self.reports.get(report_id)
        if report is None or report.status is not ReportStatus.GENERATING:
            return None
        slug = public_slug if report.is_public else None
        self._check_slug(report_id, slug)
        report.status = ReportStatus.COMPLETED
        report.content = content
        report.generation_duration_ms = duration_ms
        report.generation_completed_at = datetime.now(timezone.utc)
        report.public_slug = slug
        report.error_message = None
        return replace(report)

    async def fail(self, report_id: UUID, message: str) -> Optional[GeneratedReport]:
        report = self.reports.get(report_id)
        if report is None or report.status is not ReportStatus.GENERATING:
            return None
        report.status = ReportStatus.FAILED
        report.error_message = message
        report.generation_completed_at = datetime.now(timezone.utc)
        report.public_slug = None
        return replace(report)

    async def get_public_and_count_view(self, slug: str) -> Optional[GeneratedReport]:
        for report in self.reports.values():
            if report.public_slug == slug and report.is_public:
                report.view_count += 1
                return replace(report)
        return None

    async def update_visibility(
        self, report_id: UUID, is_public: bool, public_slug: Optional[str]
    ) -> Optional[GeneratedReport]:
        report = self.reports.get(report_id)
        if report is None:
            return None
        self._check_slug(report_id, public_slug)
        report.is_public = is_public
        report.public_slug = public_slug
        return replace(report)

    async def list_for_user(self, user_id: UUID, limit: int = 20, offset: int = 0) -> list[GeneratedReport]:
        owned = [r for r in self.reports.values() if r.user_id == user_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return [replace(r) for r in owned[offset:offset + limit]]

    async def delete(self, report_id: UUID) -> bool:
        return self.reports.pop(report_id, None) is not None


class InMemoryReportConfigRepository:
    """Same contract as ReportConfigRepository."""

    def __init__(self):
        self.owners: dict[str, UUID] = {}
        self.configs: dict[UUID, ReportConfig] = {}

    async def bootstrap_owner(self, company_domain: str) -> UUID:
        email = f"anonymous@{company_domain.strip().lower()}"
        return self.owners.setdefault(email, uuid4())

    async def ensure(
        self,
        user_id: UUID,
        company_name: str,
        company_domain: str,
        report_type: ReportType,
        search_parameters: dict[str, Any],
    ) -> UUID:
        domain = company_domain.strip().lower()
        for config in self.configs.values():
            if (config.user_id, config.company_domain, config.report_type) == (user_id, domain, report_type):
                return config.id
        config = ReportConfig(
            id=uuid4(),
            user_id=user_id,
            title=f"{company_name} - {report_type.value}",
            report_type=report_type,
            company_domain=domain,
            search_parameters=search_parameters,
        )
        self.configs[config.id] = config
        return config.id

    async def get(self, config_id: UUID) -> Optional[ReportConfig]:
        return self.configs.get(config_id)


@pytest.fixture
def job_repo():
    return InMemoryJobRepository()


@pytest.fixture
def queue(job_repo):
    """Queue with immediate retries and the default two attempts."""
    return ReportQueue(job_repo, JobPolicy(backoff_base_s=0))


@pytest.fixture
def report_repo():
    return InMemoryReportRepository()


@pytest.fixture
def config_repo():
    return InMemoryReportConfigRepository()


@pytest.fixture
def report_store(report_repo, config_repo):
    return ReportStore(report_repo, config_repo)


@pytest.fixture
def make_payload():
    def _make(company_name: str = "Acme Corp", company_domain: str = "acme.com", **kwargs):
        return ReportJobPayload(company_name=company_name, company_domain=company_domain, **kwargs)

    return _make
