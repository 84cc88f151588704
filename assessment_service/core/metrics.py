"""Application metrics using the Prometheus client library.

All metrics are defined here so the service has a single inventory of
everything it measures.  Other modules import specific metrics and
increment/observe them at the point of action.

The resolution metrics answer the questions operators actually ask:

  - Is the document store flaky right now?
      rate(remote_call_retries_total[5m])
  - What are learners being told when it fails?
      sum by (cause) (rate(remote_call_failures_total[5m]))
  - Which schema shape does our data really use?
      lookup_strategy_hits_total{chain="learner"}
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
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Resilience layer
# ---------------------------------------------------------------------------

REMOTE_RETRIES = Counter(
    "remote_call_retries_total",
    "Remote store calls retried after a failure",
)

REMOTE_FAILURES = Counter(
    "remote_call_failures_total",
    "Remote store failures surfaced to callers after retries",
    ["cause"],  # one of the ErrorCause values
)

CONNECTIVITY_STATE = Gauge(
    "document_store_online",
    "1 when the last connectivity signal was online, 0 when offline",
)

# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

RESOLUTIONS = Counter(
    "test_resolutions_total",
    "resolve_tests_for_learner calls by outcome",
    ["outcome"],  # "ok", "empty", "error"
)

RESOLUTION_DURATION = Histogram(
    "test_resolution_duration_seconds",
    "Wall time of one resolve_tests_for_learner call, retries included",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

RESOLVED_TESTS = Counter(
    "resolved_tests_total",
    "Resolved test views returned to callers by status",
    ["status"],
)

LOOKUP_STRATEGY_HITS = Counter(
    "lookup_strategy_hits_total",
    "Which candidate query shape produced data",
    ["chain", "strategy"],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)
