# core/metrics.py

import logging
from prometheus_client import Counter, Histogram, Gauge

logger = logging.getLogger(__name__)

# ----------------------------
# Dispatch Counters
# ----------------------------

DISPATCH_ATTEMPTS = Counter(
    "dispatch_attempts_total",
    "Total credential attempts made by the dispatcher",
    ["operation", "result"]  # success, quota_exceeded, error
)

DISPATCH_OUTCOMES = Counter(
    "dispatch_outcomes_total",
    "Total top-level dispatch outcomes",
    ["operation", "outcome"]  # success, no_credentials, quota_exhausted, service_error
)

# ----------------------------
# Latency Histograms
# ----------------------------

DISPATCH_LATENCY = Histogram(
    "dispatch_latency_seconds",
    "End-to-end dispatch latency including failover",
    ["operation"]
)

# Number of attempts used per dispatch (histogram)
DISPATCH_ATTEMPTS_PER_REQUEST = Histogram(
    "dispatch_attempts_per_request",
    "Number of credential attempts used per dispatch",
    buckets=(0, 1, 2, 3, 5, 10)
)

# ----------------------------
# Credential Pool
# ----------------------------

CREDENTIALS_CONFIGURED = Gauge(
    "credentials_configured",
    "Number of usable credentials loaded into the pool"
)

# ----------------------------
# Persistence
# ----------------------------

EMAILS_RECORDED = Counter(
    "emails_recorded_total",
    "Total sent emails recorded",
    ["category", "follow_up"]  # follow_up: scheduled, none
)


# ----------------------------
# Helper Functions
# ----------------------------

def record_attempt(operation: str, result: str) -> None:
    """Count a single credential attempt."""
    DISPATCH_ATTEMPTS.labels(operation=operation, result=result).inc()


def record_outcome(operation: str, outcome: str, attempts: int, duration_sec: float) -> None:
    """Record the terminal outcome of one dispatch with its duration."""
    DISPATCH_OUTCOMES.labels(operation=operation, outcome=outcome).inc()
    DISPATCH_LATENCY.labels(operation=operation).observe(duration_sec)
    DISPATCH_ATTEMPTS_PER_REQUEST.observe(attempts)


def set_credentials_configured(count: int) -> None:
    CREDENTIALS_CONFIGURED.set(count)


def record_email(category: str, follow_up_scheduled: bool) -> None:
    EMAILS_RECORDED.labels(
        category=category,
        follow_up="scheduled" if follow_up_scheduled else "none",
    ).inc()
