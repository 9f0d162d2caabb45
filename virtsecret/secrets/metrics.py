"""
Secret Registry Metrics

Prometheus metrics for secret registry operations.

Author: VirtSecret Team
Date: 2026-10-18
"""

from typing import Optional

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
)


class SecretMetrics:
    """
    Prometheus metrics collector for one secret registry.

    Each connection gets its own collector registry, so several connections
    in one process never clash on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize metrics collectors.

        Args:
            registry: Prometheus registry (a fresh one if None)
        """
        self.registry = registry if registry is not None else CollectorRegistry()

        self.operations_total = Counter(
            'secret_operations_total',
            'Total secret registry operations',
            ['operation'],
            registry=self.registry
        )

        self.errors_total = Counter(
            'secret_errors_total',
            'Total failed secret registry operations',
            ['operation', 'error_code'],
            registry=self.registry
        )

        self.secrets_defined = Gauge(
            'secret_defined_count',
            'Secrets currently defined',
            ['ephemeral'],
            registry=self.registry
        )

        self.operation_duration_seconds = Histogram(
            'secret_operation_duration_seconds',
            'Secret registry operation duration',
            ['operation'],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self.registry
        )

    def track_operation(self, operation: str, duration: float) -> None:
        """
        Track a completed (successful or failed) operation.

        Args:
            operation: Operation name
            duration: Duration in seconds
        """
        self.operations_total.labels(operation=operation).inc()
        self.operation_duration_seconds.labels(operation=operation).observe(duration)

    def track_error(self, operation: str, error_code: str) -> None:
        """
        Track a failed operation.

        Args:
            operation: Operation name
            error_code: Error code of the raised SecretError
        """
        self.errors_total.labels(operation=operation, error_code=error_code).inc()

    def update_defined(self, ephemeral: int, persistent: int) -> None:
        """Update defined secret gauges."""
        self.secrets_defined.labels(ephemeral='yes').set(ephemeral)
        self.secrets_defined.labels(ephemeral='no').set(persistent)

    def generate_metrics(self) -> bytes:
        """
        Generate Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        return CONTENT_TYPE_LATEST
