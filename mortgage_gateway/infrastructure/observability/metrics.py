"""Prometheus metrics for monitoring loan lifecycle, operation outcomes and custody performance"""

from prometheus_client import Counter, Histogram

from mortgage_gateway.domain.models import LoanEvent

# Lifecycle metrics
loan_event_counter = Counter(
    "mortgage_loan_events_total",
    "Loan lifecycle events emitted",
    ["event"],  # LoanCreated | LoanStarted | PaymentMade | LoanCompleted | LoanDefaulted
)

loan_operation_counter = Counter(
    "mortgage_loan_operations_total",
    "Loan operations by outcome",
    ["operation", "outcome"],  # outcome: ok | error kind name
)

# Custody metrics
custody_latency_histogram = Histogram(
    "custody_settlement_latency_seconds",
    "Custody settlement response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

custody_failure_counter = Counter(
    "custody_failures_total",
    "Failed custody settlement attempts",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_loan_event(event: LoanEvent) -> None:
    """Count lifecycle transitions by event type"""
    loan_event_counter.labels(event=event.name).inc()


def record_operation(operation: str, error: Exception | None = None) -> None:
    """Record an operation outcome; errors are labelled by their kind"""
    outcome = "ok" if error is None else type(error).__name__
    loan_operation_counter.labels(operation=operation, outcome=outcome).inc()
