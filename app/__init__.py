"""Clipping Reports - report generation orchestrator

Queues natural-language report requests and drives the multi-stage
search/summarize/illustrate pipeline that turns them into shareable reports.
"""

__version__ = "0.1.0"
