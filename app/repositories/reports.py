"""Repository for generated reports."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog

from app.jobs.types import ReportStatus

logger = structlog.get_logger(__name__)


@dataclass
class GeneratedReport:
    """A persisted report and its sharing metadata."""

    id: UUID
    report_config_id: UUID
    user_id: UUID
    status: ReportStatus
    content: Optional[dict[str, Any]]
    is_public: bool
    public_slug: Optional[str]
    view_count: int
    created_at: datetime
    job_id: Optional[UUID] = None
    error_message: Optional[str] = None
    generation_started_at: Optional[datetime] = None
    generation_completed_at: Optional[datetime] = None
    generation_duration_ms: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "report_config_id": str(self.report_config_id),
            "user_id": str(self.user_id),
            "status": self.status.value,
            # Content is never exposed before completion
            "content": self.content if self.status is ReportStatus.COMPLETED else None,
            "is_public": self.is_public,
            "public_slug": self.public_slug,
            "view_count": self.view_count,
            "error_message": self.error_message,
            "generation_started_at": self.generation_started_at,
            "generation_completed_at": self.generation_completed_at,
            "generation_duration_ms": self.generation_duration_ms,
            "created_at": self.created_at,
        }


class ReportRepository:
    """Repository for generated report rows.

    Terminal updates are guarded by ``status = 'generating'`` so a report
    leaves the generating state exactly once.
    """

    def __init__(self, pool):
        self._pool = pool

    async def create_generating(
        self,
        user_id: UUID,
        report_config_id: UUID,
        is_public: bool = False,
        job_id: Optional[UUID] = None,
    ) -> GeneratedReport:
        query = """
            INSERT INTO generated_reports (
                user_id, report_config_id, status, is_public, job_id,
                generation_started_at
            ) VALUES ($1, $2, 'generating', $3, $4, now())
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, user_id, report_config_id, is_public, job_id)
        logger.info(
            "report_created",
            report_id=str(row["id"]),
            report_config_id=str(report_config_id),
        )
        return self._row_to_report(row)

    async def get(self, report_id: UUID) -> Optional[GeneratedReport]:
        query = "SELECT * FROM generated_reports WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_id)
        return self._row_to_report(row) if row else None

    async def find_by_job(self, job_id: UUID) -> Optional[GeneratedReport]:
        query = """
            SELECT * FROM generated_reports
            WHERE job_id = $1
            ORDER BY created_at DESC
            LIMIT 1
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, job_id)
        return self._row_to_report(row) if row else None

    async def find_generating_for_config(
        self, report_config_id: UUID
    ) -> Optional[GeneratedReport]:
        query = """
            SELECT * FROM generated_reports
            WHERE report_config_id = $1 AND status = 'generating'
            ORDER BY created_at DESC
            LIMIT 1
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_config_id)
        return self._row_to_report(row) if row else None

    async def complete(
        self,
        report_id: UUID,
        content: dict[str, Any],
        duration_ms: int,
        public_slug: Optional[str],
    ) -> Optional[GeneratedReport]:
        """Store content and mark completed. Returns None if not generating.

        The slug is only kept when the report is public. Raises
        asyncpg.UniqueViolationError on a slug collision.
        """
        query = """
            UPDATE generated_reports SET
                status = 'completed',
                content = $2,
                generation_duration_ms = $3,
                generation_completed_at = now(),
                public_slug = CASE WHEN is_public THEN $4 ELSE NULL END,
                error_message = NULL
            WHERE id = $1 AND status = 'generating'
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_id, content, duration_ms, public_slug)
        return self._row_to_report(row) if row else None

    async def fail(self, report_id: UUID, message: str) -> Optional[GeneratedReport]:
        query = """
            UPDATE generated_reports SET
                status = 'failed',
                error_message = $2,
                generation_completed_at = now(),
                public_slug = NULL
            WHERE id = $1 AND status = 'generating'
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_id, message)
        return self._row_to_report(row) if row else None

    async def get_public_and_count_view(self, slug: str) -> Optional[GeneratedReport]:
        """Fetch a public report by slug, incrementing its view count atomically."""
        query = """
            UPDATE generated_reports SET view_count = view_count + 1
            WHERE public_slug = $1 AND is_public = true
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, slug)
        return self._row_to_report(row) if row else None

    async def update_visibility(
        self, report_id: UUID, is_public: bool, public_slug: Optional[str]
    ) -> Optional[GeneratedReport]:
        """Set visibility. Raises asyncpg.UniqueViolationError on a slug collision."""
        query = """
            UPDATE generated_reports SET is_public = $2, public_slug = $3
            WHERE id = $1
            RETURNING *
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_id, is_public, public_slug)
        return self._row_to_report(row) if row else None

    async def list_for_user(
        self, user_id: UUID, limit: int = 20, offset: int = 0
    ) -> list[GeneratedReport]:
        query = """
            SELECT * FROM generated_reports
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2 OFFSET $3
        """
        async with self._pool.acquire() as conn:
            rows = await conn.fetch(query, user_id, limit, offset)
        return [self._row_to_report(row) for row in rows]

    async def delete(self, report_id: UUID) -> bool:
        query = "DELETE FROM generated_reports WHERE id = $1 RETURNING id"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, report_id)
        return row is not None

    def _row_to_report(self, row) -> GeneratedReport:
        return GeneratedReport(
            id=row["id"],
            report_config_id=row["report_config_id"],
            user_id=row["user_id"],
            status=ReportStatus(row["status"]),
            content=row["content"],
            is_public=row["is_public"],
            public_slug=row["public_slug"],
            view_count=row["view_count"],
            created_at=row["created_at"],
            job_id=row["job_id"],
            error_message=row["error_message"],
            generation_started_at=row["generation_started_at"],
            generation_completed_at=row["generation_completed_at"],
            generation_duration_ms=row["generation_duration_ms"],
        )
