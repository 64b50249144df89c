"""
Prometheus Metrics for the credential lifecycle
"""
from prometheus_client import Counter, Histogram

# Credential refresh outcomes (success, failed, skipped)
CREDENTIAL_REFRESHES = Counter(
    "wif_credential_refreshes_total",
    "Total number of credential refresh attempts",
    ["status"]
)

# Remote call latency per exchange step
REMOTE_CALL_DURATION = Histogram(
    "wif_remote_call_duration_seconds",
    "Duration of calls to Google STS and IAM Credentials",
    ["step"],
    buckets=[0.1, 0.25, 0.5, 1, 2, 5, 10, 30]
)

# Remote call failures per exchange step
REMOTE_CALL_FAILURES = Counter(
    "wif_remote_call_failures_total",
    "Failed calls to Google STS and IAM Credentials",
    ["step"]
)

# Periodic trigger outcomes (resync, noop, error)
SCHEDULED_TRIGGER_RUNS = Counter(
    "wif_scheduled_trigger_runs_total",
    "Total number of scheduled expiry checks",
    ["outcome"]
)
