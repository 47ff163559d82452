"""Business logic services for the report generation service."""
