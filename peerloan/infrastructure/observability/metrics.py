"""Prometheus metrics for lifecycle transitions, repayments and event delivery"""

from prometheus_client import Counter, Histogram

# Lifecycle metrics
transition_counter = Counter(
    "peerloan_transitions_total",
    "Lifecycle status transitions",
    ["record_type", "to_status"],  # loan_request | loan_offer | loan
)

loan_opened_counter = Counter(
    "peerloan_loans_opened_total",
    "Loans created by the disbursement coordinator",
    ["source", "status"],  # DIRECT | OFFER
)

repayment_amount_counter = Counter(
    "peerloan_repaid_cents_total",
    "Repaid amount recorded by lenders, in cents",
)

conflict_counter = Counter(
    "peerloan_conflicts_total",
    "Operations aborted by a concurrent modification or uniqueness violation",
)

# Event metrics
event_publish_failure_counter = Counter(
    "peerloan_event_publish_failures_total",
    "Events that could not be handed to the event bus",
)

event_delivery_latency_histogram = Histogram(
    "peerloan_event_delivery_seconds",
    "Event webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

event_delivery_failure_counter = Counter(
    "peerloan_event_delivery_failures_total",
    "Failed event webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(record_type: str, to_status: str) -> None:
    transition_counter.labels(record_type=record_type, to_status=to_status).inc()


def record_loan_opened(source: str, status: str) -> None:
    loan_opened_counter.labels(source=source, status=status).inc()
