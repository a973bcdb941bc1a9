"""
Prometheus metrics for the title search platform.
"""

from prometheus_client import Counter, Histogram, Gauge


# ── Search Tasks ─────────────────────────────────────────────
tasks_created_total = Counter(
    "tasks_created_total",
    "Total search tasks created",
)

tasks_claimed_total = Counter(
    "tasks_claimed_total",
    "Total search tasks claimed by the scheduler",
)

task_runs_total = Counter(
    "task_runs_total",
    "Scheduler task runs by final status",
    ["status"],
)

tasks_by_status = Gauge(
    "tasks_by_status",
    "Current number of search tasks per status",
    ["status"],
)

# ── Portal Searches ──────────────────────────────────────────
portal_search_duration_seconds = Histogram(
    "portal_search_duration_seconds",
    "Time spent in a portal search call",
    ["adapter"],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600],
)

search_results_ingested_total = Counter(
    "search_results_ingested_total",
    "Search result rows ingested",
    ["source"],
)

# ── AI Assessment ────────────────────────────────────────────
assessments_total = Counter(
    "assessments_total",
    "Document assessments by outcome and assessment",
    ["outcome", "assessment"],
)

assessment_latency_seconds = Histogram(
    "assessment_latency_seconds",
    "Latency of a single AI assessment call",
    buckets=[0.5, 1, 2, 5, 10, 30, 60],
)

# ── Downloads ────────────────────────────────────────────────
downloads_total = Counter(
    "downloads_total",
    "Document downloads by outcome",
    ["outcome"],
)

# ── Worker ───────────────────────────────────────────────────
worker_jobs_active = Gauge(
    "worker_jobs_active",
    "Number of currently active background jobs",
    ["job"],
)
