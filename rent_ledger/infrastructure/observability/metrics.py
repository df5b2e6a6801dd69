"""Prometheus metrics for monitoring payments, ledger edits and commits"""

from prometheus_client import Counter, Histogram

# Payment metrics
payment_counter = Counter(
    "rent_ledger_payments_total",
    "Payments applied through edit sessions",
    ["kind", "direction"],  # rent | deposit | advance ; in | out
)

allocation_shortfall_counter = Counter(
    "rent_ledger_allocation_shortfall_total",
    "Refunds that could not be fully deducted",
)

# Edit metrics
edit_operation_counter = Counter(
    "rent_ledger_edit_operations_total",
    "Ledger edit operations replayed",
    ["op"],
)

# Commit metrics
commit_counter = Counter(
    "rent_ledger_commits_total",
    "Ledger commit attempts",
    ["outcome"],  # committed | failed | rejected
)

commit_latency_histogram = Histogram(
    "rent_ledger_commit_seconds",
    "Time to replay and commit an edit batch",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(kind: str, amount: float, unresolved: float = 0.0) -> None:
    """Record a payment by kind and direction; count shortfalls separately"""
    direction = "in" if amount > 0 else "out"
    payment_counter.labels(kind=kind, direction=direction).inc()
    if unresolved > 0.01:
        allocation_shortfall_counter.inc()
