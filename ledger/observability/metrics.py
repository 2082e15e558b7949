"""
Metrics Collection with Prometheus.

Exposes ledger and HTTP metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from ledger.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    TRANSACTION_TYPE = "transaction_type"
    ERROR_TYPE = "error_type"


class LedgerMetrics:
    """
    Centralized metrics for the marketplace ledger.

    Covers:
    - HTTP requests (rate, duration)
    - Purchases (outcome, price)
    - Credits added (by transaction type)
    - Withdrawals (outcome)
    - Outbox writes (outcome, pending depth)
    - Errors
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""
        self.service_info = Info("ledger_service", "Service information")
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "ledger_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "ledger_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )

        # ====================================================================
        # Ledger Metrics
        # ====================================================================
        self.purchases_total = Counter(
            "ledger_purchases_total",
            "Content purchases by outcome",
            [MetricLabels.OUTCOME],
        )

        self.purchase_price = Histogram(
            "ledger_purchase_price_credits",
            "Price of completed purchases in credits",
            buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000),
        )

        self.credits_added_total = Counter(
            "ledger_credits_added_total",
            "Balance adjustments by transaction type",
            [MetricLabels.TRANSACTION_TYPE],
        )

        self.withdrawals_total = Counter(
            "ledger_withdrawals_total",
            "Withdrawal requests by outcome",
            [MetricLabels.OUTCOME],
        )

        # ====================================================================
        # Outbox Metrics
        # ====================================================================
        self.outbox_writes_total = Counter(
            "ledger_outbox_writes_total",
            "Mirrored gateway writes by outcome",
            [MetricLabels.OPERATION, MetricLabels.OUTCOME],
        )

        self.outbox_pending = Gauge(
            "ledger_outbox_pending",
            "Gateway writes waiting to be applied",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "ledger_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_purchase(self, outcome: str, price: float | None = None) -> None:
        """Record a purchase attempt; price is observed only for completed ones."""
        self.purchases_total.labels(outcome=outcome).inc()
        if price is not None:
            self.purchase_price.observe(price)

    def record_credit_addition(self, transaction_type: str) -> None:
        self.credits_added_total.labels(transaction_type=transaction_type).inc()

    def record_withdrawal(self, outcome: str) -> None:
        self.withdrawals_total.labels(outcome=outcome).inc()

    def record_outbox_write(self, operation: str, outcome: str, pending: int) -> None:
        self.outbox_writes_total.labels(operation=operation, outcome=outcome).inc()
        self.outbox_pending.set(pending)

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = LedgerMetrics()
