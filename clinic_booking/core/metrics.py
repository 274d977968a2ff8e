"""Prometheus metrics for booking outcomes.

Registered on the default registry, so they are served at ``/metrics`` next
to the HTTP metrics of the instrumentator.
"""

from prometheus_client import Counter

booking_rejections_total = Counter(
    "booking_rejections_total",
    "Mutations refused by the conflict checker or ledger guard",
    ["operation", "reason"],
)

booking_transaction_retries_total = Counter(
    "booking_transaction_retries_total",
    "Transactions retried after a serialization failure, deadlock or lock timeout",
    ["operation"],
)

booking_transaction_failures_total = Counter(
    "booking_transaction_failures_total",
    "Transactions that failed with a storage error",
    ["operation", "error"],
)
