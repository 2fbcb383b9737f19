"""
Metrics Collection with Prometheus.

Exposes entitlement and purchase metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from storekit_subscriptions.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    SOURCE = "source"
    ERROR_TYPE = "error_type"


class SubscriptionMetrics:
    """
    Centralized metrics for the subscription service.

    Covers:
    - HTTP requests (rate, duration)
    - Transactions applied from the update stream
    - Entitlement snapshot refreshes
    - Purchases by outcome
    - Catalog loads and listener restarts
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "subscriptions_service",
            "Service information",
        )
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
            "subscriptions_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "subscriptions_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        # ====================================================================
        # Entitlement Metrics
        # ====================================================================
        self.transactions_applied_total = Counter(
            "subscriptions_transactions_applied_total",
            "Transactions applied from the update stream",
            [MetricLabels.OUTCOME],
        )

        self.entitlement_refreshes_total = Counter(
            "subscriptions_entitlement_refreshes_total",
            "Entitlement snapshot refreshes",
            [MetricLabels.OUTCOME],
        )

        self.entitlement_active = Gauge(
            "subscriptions_entitlement_active",
            "1 when the user currently holds the entitlement",
        )

        # ====================================================================
        # Purchase Metrics
        # ====================================================================
        self.purchases_total = Counter(
            "subscriptions_purchases_total",
            "Purchase attempts by outcome",
            [MetricLabels.OUTCOME],
        )

        self.transactions_finished_total = Counter(
            "subscriptions_transactions_finished_total",
            "Transactions finalized with the store",
        )

        # ====================================================================
        # Catalog / Listener Metrics
        # ====================================================================
        self.catalog_loads_total = Counter(
            "subscriptions_catalog_loads_total",
            "Product catalog loads",
            ["success"],
        )

        self.listener_restarts_total = Counter(
            "subscriptions_listener_restarts_total",
            "Transaction listener re-subscriptions after abnormal termination",
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "subscriptions_errors_total",
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

    def record_entitlement(self, source: str, purchased: bool) -> None:
        """Record an entitlement decision from the stream or a snapshot."""
        outcome = "entitled" if purchased else "not_entitled"
        if source == "update":
            self.transactions_applied_total.labels(outcome=outcome).inc()
        else:
            self.entitlement_refreshes_total.labels(outcome=outcome).inc()

    def record_purchase(self, outcome: str) -> None:
        """Record a purchase outcome."""
        self.purchases_total.labels(outcome=outcome).inc()

    def record_catalog_load(self, success: bool) -> None:
        """Record a catalog load."""
        self.catalog_loads_total.labels(success=str(success)).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = SubscriptionMetrics()
