"""Observability module for the sync engine.

Provides structured logging, run ID correlation and Prometheus metrics.
"""

from .logging_config import configure_logging, get_logger, JSONFormatter, RunIDFilter
from .metrics import (
    task_runs_total,
    task_duration_seconds,
    worker_tasks_running,
    orders_imported_total,
    orders_duplicate_total,
    integration_errors_total,
    oauth_refresh_total,
    shipment_status_updates_total,
    listings_synced_total,
)
from .run_id import run_id_var, get_run_id, set_run_id, generate_run_id, run_context

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "JSONFormatter",
    "RunIDFilter",
    # Metrics
    "task_runs_total",
    "task_duration_seconds",
    "worker_tasks_running",
    "orders_imported_total",
    "orders_duplicate_total",
    "integration_errors_total",
    "oauth_refresh_total",
    "shipment_status_updates_total",
    "listings_synced_total",
    # Run ID
    "run_id_var",
    "get_run_id",
    "set_run_id",
    "generate_run_id",
    "run_context",
]
