"""Prometheus metrics for the sync engine.

Defines operational metrics for monitoring sync tasks and provider calls.
"""

from prometheus_client import Counter, Histogram, Gauge

# Task run metrics
task_runs_total = Counter(
    "syncengine_task_runs_total",
    "Total sync task runs",
    ["task", "status"]  # status: success|error|locked
)

task_duration_seconds = Histogram(
    "syncengine_task_duration_seconds",
    "Time spent in one sync task run in seconds",
    ["task"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0]
)

worker_tasks_running = Gauge(
    "syncengine_worker_tasks_running",
    "Number of task runs currently in progress"
)

# Order import metrics
orders_imported_total = Counter(
    "syncengine_orders_imported_total",
    "Total orders inserted from marketplaces",
    ["provider"]
)

orders_duplicate_total = Counter(
    "syncengine_orders_duplicate_total",
    "Orders skipped because the dedup key already exists",
    ["provider"]
)

# Per-integration failures, stage: decrypt|build|poll|order|cursor|refresh|tracking|stock
integration_errors_total = Counter(
    "syncengine_integration_errors_total",
    "Errors while processing an integration",
    ["task", "provider", "stage"]
)

oauth_refresh_total = Counter(
    "syncengine_oauth_refresh_total",
    "Total OAuth token refresh attempts",
    ["provider", "status"]  # status: success|error
)

shipment_status_updates_total = Counter(
    "syncengine_shipment_status_updates_total",
    "Shipment status transitions written by the tracking poller",
    ["provider", "status"]
)

listings_synced_total = Counter(
    "syncengine_listings_synced_total",
    "Listing stock updates pushed to marketplaces",
    ["provider", "status"]  # status: success|error
)
