"""
Prometheus metrics for the payment reconciliation flow.

Tracks:
- Payment attempts by terminal outcome
- Payment amounts
- Ledger backend request counts and latency
- Gateway widget session outcomes
"""
from prometheus_client import Counter, Histogram

# Payment attempt metrics
payment_attempts_total = Counter(
    "khata_payment_attempts_total",
    "Total payment attempts by terminal outcome",
    ["outcome"],  # succeeded, failed, cancelled
)

payment_amount_minor_units = Histogram(
    "khata_payment_amount_minor_units",
    "Submitted payment amounts in currency minor units",
    buckets=(100, 1000, 5000, 10000, 50000, 100000, 500000, 1000000, 5000000),
)

payment_flow_duration_seconds = Histogram(
    "khata_payment_flow_duration_seconds",
    "Time from submit to terminal state in seconds",
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

# Ledger backend metrics
backend_requests_total = Counter(
    "khata_backend_requests_total",
    "Total ledger backend requests",
    ["operation", "status"],  # status: ok, auth_error, business_error, transport_error
)

backend_request_duration_seconds = Histogram(
    "khata_backend_request_duration_seconds",
    "Ledger backend request duration in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

# Gateway widget metrics
gateway_sessions_total = Counter(
    "khata_gateway_sessions_total",
    "Total gateway widget sessions by outcome",
    ["outcome"],  # success, failure, dismissed
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_submitted(amount_minor_units: int) -> None:
        """Record an accepted submit."""
        payment_amount_minor_units.observe(amount_minor_units)

    @staticmethod
    def record_payment_outcome(outcome: str, duration_seconds: float) -> None:
        """Record a payment attempt reaching a terminal state."""
        payment_attempts_total.labels(outcome=outcome).inc()
        payment_flow_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_backend_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record a ledger backend call."""
        backend_requests_total.labels(operation=operation, status=status).inc()
        backend_request_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_gateway_session(outcome: str) -> None:
        """Record how a gateway widget session resolved."""
        gateway_sessions_total.labels(outcome=outcome).inc()


# Export singleton instance
metrics = MetricsCollector()
