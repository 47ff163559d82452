"""Repository for report configs and the placeholder owners behind them."""

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import structlog

from app.jobs.types import ReportType

logger = structlog.get_logger(__name__)


@dataclass
class ReportConfig:
    """Stored search-parameter profile a report run is based on."""

    id: UUID
    user_id: UUID
    title: str
    report_type: ReportType
    company_domain: str
    search_parameters: dict[str, Any]


class ReportConfigRepository:
    """Idempotent creation of report configs and placeholder users."""

    def __init__(self, pool):
        self._pool = pool

    async def bootstrap_owner(self, company_domain: str) -> UUID:
        """Return the placeholder owner for a domain, creating it on first use."""
        email = f"anonymous@{company_domain.strip().lower()}"
        query = """
            INSERT INTO users (email, name, company_domain, is_placeholder)
            VALUES ($1, 'Anonymous User', $2, true)
            ON CONFLICT (email) DO UPDATE SET email = users.email  -- no-op, return existing
            RETURNING id, (xmax = 0) AS inserted
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, email, company_domain)
        if row["inserted"]:
            logger.info("placeholder_owner_created", email=email)
        return row["id"]

    async def ensure(
        self,
        user_id: UUID,
        company_name: str,
        company_domain: str,
        report_type: ReportType,
        search_parameters: dict[str, Any],
    ) -> UUID:
        """Get or create the config for (owner, domain, report type)."""
        query = """
            INSERT INTO report_configs (
                user_id, title, description, report_type, company_domain,
                search_parameters
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id, company_domain, report_type)
            DO UPDATE SET updated_at = now()
            RETURNING id
        """
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(
                query,
                user_id,
                f"{company_name} - {report_type.value}",
                f"One-time report for {company_name}",
                report_type.value,
                company_domain.strip().lower(),
                search_parameters,
            )
        return row["id"]

    async def get(self, config_id: UUID) -> Optional[ReportConfig]:
        query = "SELECT * FROM report_configs WHERE id = $1"
        async with self._pool.acquire() as conn:
            row = await conn.fetchrow(query, config_id)
        if not row:
            return None
        return ReportConfig(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            report_type=ReportType(row["report_type"]),
            company_domain=row["company_domain"],
            search_parameters=row["search_parameters"] or {},
        )
