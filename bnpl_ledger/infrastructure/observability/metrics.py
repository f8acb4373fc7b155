"""Prometheus metrics for monitoring sales, payment confirmations, fulfillment and notifications"""

from prometheus_client import Counter, Histogram

# Sales metrics
purchase_counter = Counter(
    "bnpl_purchases_total",
    "Purchases created",
    ["purchase_type"],  # CASH | LAYAWAY | CREDIT
)

purchase_amount_bucket_counter = Counter(
    "bnpl_purchase_amount_bucket",
    "Purchase totals by bucket",
    ["bucket"],  # <100, 100-500, 500-2000, 2000+
)

# Payment workflow metrics
payment_event_counter = Counter(
    "bnpl_payment_events_total",
    "Payment workflow transitions",
    ["event", "method"],  # recorded | confirmed | rejected | deposit | refund
)

waybill_counter = Counter(
    "bnpl_waybills_total",
    "Waybills generated for completed purchases",
)

integrity_fault_counter = Counter(
    "bnpl_integrity_faults_total",
    "Ledger drift or stock underflow detected",
    ["kind"],  # stock | wallet
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

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_purchase(purchase_type: str, total_cents: int) -> None:
    """Record sale metrics for monitoring mix and ticket size"""
    purchase_counter.labels(purchase_type=purchase_type).inc()

    if total_cents < 10_000:
        bucket = "<100"
    elif total_cents <= 50_000:
        bucket = "100-500"
    elif total_cents <= 200_000:
        bucket = "500-2000"
    else:
        bucket = "2000+"

    purchase_amount_bucket_counter.labels(bucket=bucket).inc()


def record_payment_event(event: str, method: str) -> None:
    payment_event_counter.labels(event=event, method=method).inc()
