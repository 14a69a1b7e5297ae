"""Prometheus metrics definitions for the health dashboard."""

from prometheus_client import Counter, Histogram

# -- Health fetches --
FETCHES = Counter(
    "health_dashboard_fetches_total",
    "Total health data fetch cycles",
    ["status"],
)
FETCH_DURATION = Histogram(
    "health_dashboard_fetch_duration_seconds",
    "Duration of a full fetch cycle",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
RECORDS_PRODUCED = Counter(
    "health_dashboard_records_produced_total",
    "Total daily health records produced",
)
SUBQUERIES_DEGRADED = Counter(
    "health_dashboard_subqueries_degraded_total",
    "Per-bucket sub-queries that failed and were replaced with 0",
    ["metric"],
)

# -- Sign in --
SIGN_INS = Counter(
    "health_dashboard_sign_ins_total",
    "Total sign-in attempts",
    ["outcome"],
)
