"""
Monitoring and metrics collection for the crawler.
"""

import time
import logging
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class MetricsCollector:
    """Holds the Prometheus metrics of one crawler process."""

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port
        self.registry = CollectorRegistry()

        self.fetches_total = Counter(
            'bffgraph_fetches_total',
            'Completed friend-page fetches by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.ranges_submitted_total = Counter(
            'bffgraph_ranges_submitted_total',
            'Ranges submitted to the tracker',
            registry=self.registry
        )
        self.edges_total = Counter(
            'bffgraph_edges_total',
            'Friend edges found in submitted ranges',
            registry=self.registry
        )
        self.outstanding_requests = Gauge(
            'bffgraph_outstanding_requests',
            'Requests dispatched but not completed',
            registry=self.registry
        )
        self.queued_tasks = Gauge(
            'bffgraph_queued_tasks',
            'Fetch tasks waiting in the priority queue',
            registry=self.registry
        )
        self.active_ranges = Gauge(
            'bffgraph_active_ranges',
            'Ranges currently in the pipeline window',
            registry=self.registry
        )

    def start_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_prometheus:
            return

        try:
            start_http_server(self.prometheus_port, registry=self.registry)
            self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")
        except OSError as e:
            self.logger.error(f"Failed to start Prometheus server: {e}")

    def value(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current sample value, 0 if nothing was recorded yet."""
        return self.registry.get_sample_value(name, labels or {}) or 0.0


class CrawlerMonitor:
    """High-level monitoring interface for the crawler."""

    def __init__(self, metrics_collector: MetricsCollector):
        self.metrics = metrics_collector
        self.logger = logging.getLogger(__name__)
        self.start_time = time.time()

    def record_fetch(self, outcome_kind: str):
        """Record one completed fetch (ok, redirected, http_error, transport_error)."""
        self.metrics.fetches_total.labels(outcome=outcome_kind).inc()

    def record_range_submitted(self, edge_count: int):
        self.metrics.ranges_submitted_total.inc()
        self.metrics.edges_total.inc(edge_count)

    def update_engine(self, outstanding: int, queued: int):
        self.metrics.outstanding_requests.set(outstanding)
        self.metrics.queued_tasks.set(queued)

    def update_active_ranges(self, count: int):
        self.metrics.active_ranges.set(count)

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of the main counters."""
        runtime = time.time() - self.start_time
        ranges = self.metrics.value('bffgraph_ranges_submitted_total')

        return {
            'runtime_seconds': runtime,
            'ranges_submitted': ranges,
            'edges_found': self.metrics.value('bffgraph_edges_total'),
            'ranges_per_hour': ranges / (runtime / 3600) if runtime > 0 else 0,
        }


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor and start the exporter if enabled."""
    metrics_collector = MetricsCollector(enable_prometheus, prometheus_port)
    metrics_collector.start_server()
    return CrawlerMonitor(metrics_collector)
