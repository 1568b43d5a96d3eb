"""Prometheus metrics for the catalog sync service."""

import time

from prometheus_client import Counter, Gauge, Histogram, Info

# Application info
app_info = Info("catalog_sync", "Catalog reconciliation service info")
app_info.info({"version": "0.1.0", "name": "catalog-sync"})

# Sync pass metrics
sync_runs_total = Counter(
    "catalog_sync_runs_total",
    "Total number of vendor sync passes",
    ["vendor", "status"],
)

sync_run_duration_seconds = Histogram(
    "catalog_sync_run_duration_seconds",
    "Wall time of a vendor sync pass",
    ["vendor"],
    buckets=[5.0, 30.0, 60.0, 300.0, 900.0, 1800.0, 3600.0, 7200.0],
)

sync_candidates_total = Counter(
    "catalog_sync_candidates_total",
    "Candidate records processed, by outcome",
    ["vendor", "outcome"],
)

sync_conflicts_total = Counter(
    "catalog_sync_conflicts_total",
    "Sync passes rejected because one was already in progress",
    ["vendor"],
)

sync_stale_recovered_total = Counter(
    "catalog_sync_stale_recovered_total",
    "Stale in_progress runs forced to error",
)

# Merge metrics
image_changes_total = Counter(
    "catalog_image_changes_total",
    "Image field writes, by kind (added/upgraded)",
    ["vendor", "kind"],
)

# Feed transport metrics
feed_fetches_total = Counter(
    "catalog_feed_fetches_total",
    "Vendor feed fetch attempts",
    ["vendor", "status"],
)

feed_fetch_duration_seconds = Histogram(
    "catalog_feed_fetch_duration_seconds",
    "Time spent fetching a vendor feed",
    ["vendor"],
    buckets=[0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

feed_retries_total = Counter(
    "catalog_feed_retries_total",
    "Retries of transient vendor transport failures",
    ["vendor"],
)

# Request queue metrics
request_queue_running = Gauge(
    "catalog_request_queue_running",
    "Vendor requests currently executing",
)

request_queue_waiting = Gauge(
    "catalog_request_queue_waiting",
    "Vendor requests waiting for a slot",
)

request_queue_wait_seconds = Histogram(
    "catalog_request_queue_wait_seconds",
    "Time a vendor request waited for a slot",
    buckets=[0.01, 0.1, 1.0, 5.0, 30.0, 120.0, 600.0],
)

# Priority cache metrics
priority_lookups_total = Counter(
    "catalog_priority_lookups_total",
    "Priority resolver lookups",
    ["result"],
)

# Scheduler metrics
scheduler_runs_total = Counter(
    "catalog_scheduler_runs_total",
    "Total number of scheduler runs",
    ["job_type", "status"],
)

scheduler_last_run_timestamp = Gauge(
    "catalog_scheduler_last_run_timestamp",
    "Timestamp of last scheduler run",
    ["job_type"],
)

decryption_failures_total = Counter(
    "catalog_credential_decryption_failures_total",
    "Credential values that failed to decrypt",
    ["exception_type"],
)


def record_sync_run(vendor: str, status: str, duration: float):
    """Record a finished sync pass."""
    sync_runs_total.labels(vendor=vendor, status=status).inc()
    sync_run_duration_seconds.labels(vendor=vendor).observe(duration)


def record_candidate(vendor: str, outcome: str):
    """Record one candidate outcome (created/updated/unchanged/skipped/failed)."""
    sync_candidates_total.labels(vendor=vendor, outcome=outcome).inc()


def record_sync_conflict(vendor: str):
    sync_conflicts_total.labels(vendor=vendor).inc()


def record_stale_recovered(count: int = 1):
    sync_stale_recovered_total.inc(count)


def record_image_change(vendor: str, kind: str):
    image_changes_total.labels(vendor=vendor, kind=kind).inc()


def record_feed_fetch(vendor: str, success: bool, duration: float):
    """Record a vendor feed fetch."""
    status = "success" if success else "error"
    feed_fetches_total.labels(vendor=vendor, status=status).inc()
    feed_fetch_duration_seconds.labels(vendor=vendor).observe(duration)


def record_feed_retry(vendor: str):
    feed_retries_total.labels(vendor=vendor).inc()


def update_request_queue(running: int, waiting: int):
    request_queue_running.set(running)
    request_queue_waiting.set(waiting)


def record_queue_wait(seconds: float):
    request_queue_wait_seconds.observe(seconds)


def record_priority_lookup(result: str):
    """Record a priority cache lookup (hit/miss/default/stale)."""
    priority_lookups_total.labels(result=result).inc()


def record_decryption_failure(exception_type: str):
    decryption_failures_total.labels(exception_type=exception_type).inc()


def record_scheduler_run(job_type: str, success: bool):
    """Record a scheduler job run."""
    status = "success" if success else "error"
    scheduler_runs_total.labels(job_type=job_type, status=status).inc()
    scheduler_last_run_timestamp.labels(job_type=job_type).set(time.time())
