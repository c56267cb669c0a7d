"""Metrics collection for remote record operations.

Provides a thin wrapper around ``prometheus_client`` so every repository
records remote calls with the same label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- Each collector owns its registry; pass one in to share or inspect it
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


class MetricsCollector:
    """Centralized metrics collection for record repositories.

    Parameters
    - service_name: Logical name of the process owning the collector
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.remote_operations = Counter(
            'records_remote_operations_total',
            'Total remote record service operations',
            ['table', 'operation', 'status'],
            registry=self.registry
        )

        self.remote_operation_duration = Histogram(
            'records_remote_operation_duration_seconds',
            'Remote record service operation duration',
            ['table', 'operation'],
            registry=self.registry
        )

        self.cascade_deleted = Counter(
            'records_cascade_deleted_total',
            'Child records removed by cascade deletes',
            ['table'],
            registry=self.registry
        )

    def record_remote_operation(
        self,
        table: str,
        operation: str,
        status: str,
        duration: float
    ) -> None:
        """Record one remote call.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.remote_operations.labels(table=table, operation=operation, status=status).inc()
        self.remote_operation_duration.labels(table=table, operation=operation).observe(duration)

    def record_cascade_delete(self, table: str, count: int) -> None:
        """Record child rows removed by a cascade delete."""
        if count:
            self.cascade_deleted.labels(table=table).inc(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')
