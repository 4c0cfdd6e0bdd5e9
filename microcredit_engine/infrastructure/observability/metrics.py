"""Prometheus metrics for monitoring credit volumes, settlement outcomes and notification delivery"""

from prometheus_client import Counter, Histogram

# Credit lifecycle metrics
credit_request_counter = Counter(
    "microcredit_credit_requests_total",
    "Credit requests by product and outcome",
    ["product", "outcome"],  # accepted | rejected
)

disbursement_counter = Counter(
    "microcredit_disbursements_total",
    "Credits disbursed",
    ["product", "currency"],
)

disbursed_amount_bucket_counter = Counter(
    "microcredit_disbursed_amount_bucket",
    "Disbursed amounts by bucket",
    ["bucket"],
)

repayment_counter = Counter(
    "microcredit_repayments_total",
    "Repayments recorded",
    ["product", "timeliness"],  # on_time | late
)

# Settlement metrics
settlement_outcome_counter = Counter(
    "microcredit_settlement_outcomes_total",
    "Settlement results per credit",
    ["outcome"],  # covered | shortfall | sponsor_covered | sponsor_shortfall | skipped
)

renewal_counter = Counter(
    "microcredit_renewals_total",
    "Auto-renewal attempts",
    ["outcome"],  # renewed | blocked
)

pass_duration_histogram = Histogram(
    "microcredit_pass_duration_seconds",
    "Scheduled pass duration",
    ["pass_name"],
    buckets=[0.1, 0.5, 1.0, 5.0, 15.0, 60.0, 300.0],
)

pass_item_failure_counter = Counter(
    "microcredit_pass_item_failures_total",
    "Credits that failed during a scheduled pass",
    ["pass_name"],
)

# Notification metrics
notification_latency_histogram = Histogram(
    "notification_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification deliveries",
)

collaborator_failure_counter = Counter(
    "collaborator_failures_total",
    "Best-effort collaborator calls that failed",
    ["collaborator"],  # notifier | audit
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_credit_request(product: str, accepted: bool) -> None:
    outcome = "accepted" if accepted else "rejected"
    credit_request_counter.labels(product=product, outcome=outcome).inc()


def record_disbursement(product: str, currency: str, amount_cents: int) -> None:
    """Record disbursement metrics for monitoring volumes and amount distribution"""
    disbursement_counter.labels(product=product, currency=currency).inc()

    # Bucket USD amounts for distribution analysis; CDF amounts are bucketed by currency only
    if currency != "USD":
        bucket = currency
    elif amount_cents <= 10_000:
        bucket = "$0-$100"
    elif amount_cents <= 50_000:
        bucket = "$100-$500"
    else:
        bucket = "$500+"

    disbursed_amount_bucket_counter.labels(bucket=bucket).inc()


def record_repayment(product: str, on_time: bool) -> None:
    repayment_counter.labels(product=product, timeliness="on_time" if on_time else "late").inc()


def record_settlement(outcome: str) -> None:
    settlement_outcome_counter.labels(outcome=outcome).inc()


def record_renewal(renewed: bool) -> None:
    renewal_counter.labels(outcome="renewed" if renewed else "blocked").inc()
