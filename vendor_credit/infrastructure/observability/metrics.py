"""Prometheus metrics for repayments, credit admission, reminders and sweeps"""

from prometheus_client import Counter, Histogram

# Repayment metrics
repayment_counter = Counter(
    "vendor_credit_repayments_total",
    "Repayments applied to credit cycles",
    ["tier_kind"],  # discount | neutral | interest
)

repayment_adjustment_counter = Counter(
    "vendor_credit_repayment_adjustment_cents_total",
    "Discount granted and interest charged on repayments, in cents",
    ["kind"],  # discount | interest
)

repayment_rejection_counter = Counter(
    "vendor_credit_repayment_rejections_total",
    "Repayments rejected by business rules",
    ["code"],
)

cycle_counter = Counter(
    "vendor_credit_cycles_total",
    "Credit cycle lifecycle events",
    ["event"],  # opened | closed
)

# Credit admission
purchase_validation_counter = Counter(
    "vendor_credit_purchase_validations_total",
    "New purchase admission checks",
    ["outcome"],  # allowed | insufficient_credit
)

credit_limit_change_counter = Counter(
    "vendor_credit_limit_changes_total",
    "Authorized credit limit changes",
    ["direction"],  # increase | decrease | unchanged
)

# Concurrency
concurrency_conflict_counter = Counter(
    "vendor_credit_concurrency_conflicts_total",
    "Lost lock or version races",
    ["entity_type"],
)

# Notifications and sweeps
notification_counter = Counter(
    "vendor_credit_notifications_total",
    "Notifications decided by the scheduler",
    ["notification_type", "outcome"],  # outcome: created | duplicate
)

notification_delivery_failure_counter = Counter(
    "vendor_credit_notification_delivery_failures_total",
    "Failed notification webhook deliveries",
)

notification_latency_histogram = Histogram(
    "vendor_credit_notification_latency_seconds",
    "Notification webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

sweep_duration_histogram = Histogram(
    "vendor_credit_sweep_duration_seconds",
    "Scheduler sweep duration",
    ["sweep"],
)

sweep_failure_counter = Counter(
    "vendor_credit_sweep_item_failures_total",
    "Per-item failures isolated during a sweep",
    ["sweep"],
)


def record_repayment(tier_kind: str, discount_cents: int, interest_cents: int) -> None:
    """Record repayment metrics for tier mix and adjustment totals"""
    repayment_counter.labels(tier_kind=tier_kind).inc()
    if discount_cents:
        repayment_adjustment_counter.labels(kind="discount").inc(discount_cents)
    if interest_cents:
        repayment_adjustment_counter.labels(kind="interest").inc(interest_cents)


def record_credit_limit_change(old_limit_cents: int, new_limit_cents: int) -> None:
    if new_limit_cents > old_limit_cents:
        direction = "increase"
    elif new_limit_cents < old_limit_cents:
        direction = "decrease"
    else:
        direction = "unchanged"
    credit_limit_change_counter.labels(direction=direction).inc()
