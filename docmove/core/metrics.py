"""
Prometheus metrics for migration runs.

This module provides metrics collection for:
- Migration runs and their outcome
- Changelog executions by resulting status
- Lock acquisition outcomes
"""

from prometheus_client import Counter, Histogram, Info

from docmove.core.config import settings

# =============================================================================
# Service Info
# =============================================================================

SERVICE_INFO = Info("docmove", "Information about the migration engine")
SERVICE_INFO.info(
    {"version": "1.0.0", "service_name": settings.service_name, "environment": settings.environment}
)


# =============================================================================
# Migration Metrics
# =============================================================================

MIGRATION_RUNS = Counter(
    "docmove_migration_runs_total",
    "Total number of migration runs",
    ["outcome"],  # success, failed
)

CHANGELOGS_PROCESSED = Counter(
    "docmove_changelogs_processed_total",
    "Total number of changelogs processed",
    ["status"],  # executed, failed, skipped
)

CHANGELOG_DURATION = Histogram(
    "docmove_changelog_duration_seconds",
    "Time taken to apply a changelog",
    ["type", "status"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0),
)

LOCK_ACQUISITIONS = Counter(
    "docmove_lock_acquisitions_total",
    "Migration lock acquisition attempts",
    ["result"],  # acquired, contended, taken_over
)


def record_changelog(change_type: str, status: str, duration_ms: int) -> None:
    """Record the outcome of a changelog execution attempt."""
    CHANGELOGS_PROCESSED.labels(status=status).inc()
    CHANGELOG_DURATION.labels(type=change_type, status=status).observe(duration_ms / 1000)
