"""Service metrics using the Prometheus client library.

Every metric the service exposes is defined here so there is one
inventory of what is measured.  Modules import the metric they own and
increment or observe it at the point of action.

  HTTP traffic       REQUEST_COUNT, REQUEST_DURATION, ACTIVE_REQUESTS
                     (populated by MetricsMiddleware)
  Roster and quizzes ENROLLMENTS, QUIZ_ATTEMPTS
  Aggregates         AGGREGATE_STEPS, AGGREGATE_DEGRADATIONS

DEGRADATION COUNTING
----------------------
Points, streaks, badges, teacher analytics and leaderboards are built
from many independent store reads.  When one of those reads fails the
aggregate substitutes a neutral value (0 points, empty list) instead of
failing the whole response.  That keeps dashboards available, but a
partial answer must never be invisible to operators:

  sum(rate(aggregate_degradations_total[5m])) by (component, step)
    / sum(rate(aggregate_steps_total[5m])) by (component)

is the share of sub-computations that were answered with a placeholder.
/health turns the same ratio into the "aggregate_completeness" SLO.

Prometheus pulls these values from GET /metrics on its scrape interval.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    # Roster and attempt writes land in the low buckets; analytics and
    # leaderboards fan out over many chunked reads and land higher.
    # 500ms is the p95 SLO target.
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Application-specific metrics
# ---------------------------------------------------------------------------
# These are incremented in the specific modules that own the behavior.
# Defining them here keeps the metric inventory in one place.

ENROLLMENTS = Counter(
    "enrollments_total",
    "Roster changes by outcome",
    ["outcome"],  # "enrolled", "already", "removed"
)

QUIZ_ATTEMPTS = Counter(
    "quiz_attempts_total",
    "Quiz attempt submissions by outcome",
    ["outcome"],  # "recorded" or "limit_reached"
)

AGGREGATE_STEPS = Counter(
    "aggregate_steps_total",
    "Sub-computations run inside an aggregate (points, analytics, ...)",
    ["component"],
)

AGGREGATE_DEGRADATIONS = Counter(
    "aggregate_degradations_total",
    "Sub-computations that failed and were replaced by a neutral value",
    ["component", "step"],
)

STORE_TRANSACTION_RETRIES = Counter(
    "store_transaction_retries_total",
    "Document store transactions retried after a write conflict",
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache operations by kind",
    ["operation"],  # "hit", "miss" or "invalidate"
)
