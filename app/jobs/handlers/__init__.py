"""Job handlers package.

Handler contract:
    async def handler(job: Job, ctx: dict) -> dict:
        - job: The claimed Job with its payload and attempt number
        - ctx: Context dict with worker_id and ``progress``, an async
          callable that records a progress checkpoint for the attempt
        - Returns: Result dict stored in job.result on success

Raising fails the attempt; the queue's retry policy takes it from there.
"""

from app.jobs.handlers.report_generation import ReportGenerationHandler

__all__ = ["ReportGenerationHandler"]
