#!/usr/bin/env python3
"""Apply migration 001: users, report_configs, generated_reports, report_jobs."""
import asyncio
import asyncpg
import os

MIGRATION = """
CREATE TABLE IF NOT EXISTS users (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    email TEXT NOT NULL UNIQUE,
    name TEXT,
    company_domain TEXT,
    is_placeholder BOOLEAN NOT NULL DEFAULT false,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS report_configs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    description TEXT,
    report_type TEXT NOT NULL
        CHECK (report_type IN ('competitor_landscape', 'market_landscape', 'media_monitoring')),
    company_domain TEXT NOT NULL,
    search_parameters JSONB NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (user_id, company_domain, report_type)
);

CREATE TABLE IF NOT EXISTS generated_reports (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    report_config_id UUID NOT NULL REFERENCES report_configs(id) ON DELETE CASCADE,
    user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    job_id UUID,
    status TEXT NOT NULL DEFAULT 'generating'
        CHECK (status IN ('generating', 'completed', 'failed')),
    content JSONB,
    is_public BOOLEAN NOT NULL DEFAULT false,
    public_slug TEXT UNIQUE,
    view_count INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    generation_started_at TIMESTAMPTZ,
    generation_completed_at TIMESTAMPTZ,
    generation_duration_ms INTEGER,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CHECK (status <> 'completed' OR content IS NOT NULL),
    CHECK (public_slug IS NULL OR (is_public AND status = 'completed'))
);

CREATE INDEX IF NOT EXISTS idx_generated_reports_user ON generated_reports(user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_generated_reports_config_status
    ON generated_reports(report_config_id, status);
CREATE INDEX IF NOT EXISTS idx_generated_reports_job ON generated_reports(job_id);

CREATE TABLE IF NOT EXISTS report_jobs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    status TEXT NOT NULL DEFAULT 'waiting'
        CHECK (status IN ('waiting', 'active', 'completed', 'failed', 'delayed')),
    payload JSONB NOT NULL,
    dedupe_key TEXT,
    attempt INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 2,
    run_after TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    progress INTEGER NOT NULL DEFAULT 0 CHECK (progress BETWEEN 0 AND 100),
    locked_at TIMESTAMPTZ,
    locked_by TEXT,
    result JSONB,
    failure_reason TEXT,
    last_error TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    started_at TIMESTAMPTZ,
    finished_at TIMESTAMPTZ,
    CHECK (result IS NULL OR failure_reason IS NULL)
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_report_jobs_dedupe
    ON report_jobs(dedupe_key) WHERE dedupe_key IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_report_jobs_claim
    ON report_jobs(status, run_after, created_at);
CREATE INDEX IF NOT EXISTS idx_report_jobs_finished
    ON report_jobs(status, finished_at DESC);
"""


async def main():
    conn = await asyncpg.connect(os.environ["DATABASE_URL"])
    try:
        await conn.execute(MIGRATION)
        print("Migration 001 applied: report tables created")

        # Verify
        count = await conn.fetchval(
            """
            SELECT COUNT(*) FROM information_schema.tables
            WHERE table_name IN ('users', 'report_configs', 'generated_reports', 'report_jobs')
            """
        )
        print(f"{count}/4 tables present")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(main())
