"""Prometheus metrics for the report job system."""

from prometheus_client import Counter, Gauge, Histogram

JOBS_STARTED = Counter(
    "report_jobs_started_total",
    "Report job attempts started",
)
JOBS_FINISHED = Counter(
    "report_jobs_finished_total",
    "Report job attempts finished",
    ["status"],  # completed, failed
)
JOBS_RETRIED = Counter(
    "report_jobs_retried_total",
    "Failed attempts re-queued by the retry policy",
)
JOBS_ACTIVE = Gauge(
    "report_jobs_active",
    "Report jobs currently executing in this process",
)
JOB_DURATION = Histogram(
    "report_job_duration_seconds",
    "Wall time of a single report job attempt",
    buckets=[5, 15, 30, 60, 120, 300, 600, 1200],
)
PIPELINE_STAGE_FAILURES = Counter(
    "report_pipeline_stage_failures_total",
    "Fatal pipeline stage failures",
    ["stage"],
)
IMAGE_PLACEHOLDERS = Counter(
    "report_images_placeholder_total",
    "Article images replaced by the placeholder after a generation failure",
)
