"""Prometheus metrics for savings volume, policy adjustments, goal allocation and write contention"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Transaction metrics
transaction_counter = Counter(
    "savemate_transactions_total",
    "Transactions recorded",
    ["type", "status"],  # EXPENSE|INCOME|SAVING|WITHDRAWAL x COMPLETED|PENDING
)

saving_amount_histogram = Histogram(
    "savemate_saving_amount",
    "Saving set aside per transaction",
    ["strategy"],  # round_up | percentage | income | deposit | none
    buckets=[0, 100, 500, 1000, 5000, 10000, 50000, 100000],
)

policy_adjustment_counter = Counter(
    "savemate_policy_adjustments_total",
    "Savings adjusted by the insufficient balance policy",
    ["policy"],  # SKIP_SAVING | DEFER_AS_PENDING | CAP_AT_SAFE_BALANCE
)

withdrawal_rejected_counter = Counter(
    "savemate_withdrawals_rejected_total",
    "Withdrawals rejected for insufficient funds",
)

pending_realized_counter = Counter(
    "savemate_pending_realized_total",
    "Deferred savings settled",
)

# Goal metrics
goal_allocation_counter = Counter(
    "savemate_goal_allocations_total",
    "Individual goal allocations made by the distributor",
)

goal_completed_counter = Counter(
    "savemate_goals_completed_total",
    "Goals that reached their target",
    ["source"],  # allocation | progress | sweep | manual
)

unallocated_amount_histogram = Histogram(
    "savemate_unallocated_amount",
    "Amount left unallocated after a distribution pass",
    buckets=[0, 1, 100, 1000, 10000, 100000],
)

# Storage contention
concurrency_conflict_counter = Counter(
    "savemate_concurrency_conflicts_total",
    "Optimistic concurrency conflicts (each one triggers a retry)",
)


def record_transaction(transaction_type: str, status: str, strategy: str, saving_amount: Decimal | None) -> None:
    """Record transaction metrics for monitoring saving volume per strategy"""
    transaction_counter.labels(type=transaction_type, status=status).inc()
    if saving_amount is not None:
        saving_amount_histogram.labels(strategy=strategy).observe(float(saving_amount))


def record_allocation(allocation_count: int, completed_count: int, unallocated: Decimal) -> None:
    """Record one distributor pass"""
    goal_allocation_counter.inc(allocation_count)
    if completed_count:
        goal_completed_counter.labels(source="allocation").inc(completed_count)
    unallocated_amount_histogram.observe(float(unallocated))
