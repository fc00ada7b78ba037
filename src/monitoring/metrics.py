"""
Prometheus Metrics Export

Metrics for monitoring:
- yield_aggregator_events_total
- yield_aggregator_allocations_total (by distribution path)
- yield_aggregator_rebalance_moves_total
- yield_aggregator_oracle_failures_total
- yield_aggregator_pool_allocation / pool_yield_bps
- yield_aggregator_total_allocated
- yield_aggregator_paused
- yield_aggregator_operation_seconds
"""

import logging
from contextlib import contextmanager
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from aggregator.events import Event, EventType

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PREFIX = "yield_aggregator"


class MetricsCollector:
    """
    Collects and exports engine metrics.

    Usage:
        collector = MetricsCollector()
        collector.attach(engine)
        collector.start_server(port=9090)
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self.server_started = False
        self.engine = None
        self._pools = set()

        self.events_total = Counter(
            f'{PREFIX}_events_total',
            'Engine events published',
            ['event_type'],
            registry=self.registry
        )
        self.allocations_total = Counter(
            f'{PREFIX}_allocations_total',
            'Completed allocations by distribution path',
            ['path'],
            registry=self.registry
        )
        self.allocated_amount = Counter(
            f'{PREFIX}_allocated_amount_total',
            'Asset units allocated',
            registry=self.registry
        )
        self.withdrawn_amount = Counter(
            f'{PREFIX}_withdrawn_amount_total',
            'Asset units withdrawn for the vault',
            registry=self.registry
        )
        self.rebalance_moves = Counter(
            f'{PREFIX}_rebalance_moves_total',
            'Laggard moves executed by rebalance',
            ['pool'],
            registry=self.registry
        )
        self.rebalance_runs = Counter(
            f'{PREFIX}_rebalance_runs_total',
            'Rebalance calls by outcome',
            ['outcome'],
            registry=self.registry
        )
        self.oracle_failures = Counter(
            f'{PREFIX}_oracle_failures_total',
            'Failed oracle yield reads',
            ['pool'],
            registry=self.registry
        )
        self.emergency_unwinds = Counter(
            f'{PREFIX}_emergency_unwinds_total',
            'Emergency unwinds executed',
            registry=self.registry
        )

        self.pool_allocation = Gauge(
            f'{PREFIX}_pool_allocation',
            'Capital held per pool',
            ['pool'],
            registry=self.registry
        )
        self.pool_yield = Gauge(
            f'{PREFIX}_pool_yield_bps',
            'Reported yield per pool (bps)',
            ['pool'],
            registry=self.registry
        )
        self.total_allocated = Gauge(
            f'{PREFIX}_total_allocated',
            'Capital placed across all pools',
            registry=self.registry
        )
        self.paused = Gauge(
            f'{PREFIX}_paused',
            'Pause status (1=paused, 0=running)',
            registry=self.registry
        )

        self.operation_seconds = Histogram(
            f'{PREFIX}_operation_seconds',
            'Engine operation duration',
            ['operation'],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
            registry=self.registry
        )

        logger.info("MetricsCollector initialized")

    def start_server(self, port: int = 9090):
        """Start Prometheus metrics server."""
        if not self.server_started:
            start_http_server(port, registry=self.registry)
            self.server_started = True
            logger.info(f"Prometheus metrics server started on port {port}")

    def attach(self, engine):
        """Subscribe to an engine's events and mirror its registry."""
        self.engine = engine
        engine.events.subscribe(self.on_event)
        self.sync()

    def on_event(self, event: Event):
        self.events_total.labels(event_type=event.event_type.value).inc()

        if event.event_type == EventType.FUNDS_ALLOCATED:
            self.allocations_total.labels(path=event.meta.get("path", "unknown")).inc()
            self.allocated_amount.inc(event.amount or 0)
        elif event.event_type == EventType.FUNDS_WITHDRAWN:
            self.withdrawn_amount.inc(event.amount or 0)
        elif event.event_type == EventType.POOL_REBALANCED:
            self.rebalance_moves.labels(pool=event.pool).inc()
        elif event.event_type == EventType.REBALANCE_COMPLETED:
            self.record_rebalance("executed")
        elif event.event_type == EventType.YIELD_READ_FAILED:
            self.oracle_failures.labels(pool=event.pool).inc()
        elif event.event_type == EventType.EMERGENCY_UNWIND:
            self.emergency_unwinds.inc()
        elif event.event_type == EventType.POOL_REMOVED and event.pool in self._pools:
            self.pool_allocation.remove(event.pool)
            self.pool_yield.remove(event.pool)
            self._pools.discard(event.pool)

        self.sync()

    def record_rebalance(self, outcome: str):
        """Record a rebalance outcome (executed, cooldown, no_laggards, ...)."""
        self.rebalance_runs.labels(outcome=outcome).inc()

    def sync(self):
        """Refresh gauges from the attached engine."""
        if self.engine is None:
            return
        for record in self.engine.registry_snapshot():
            self.pool_allocation.labels(pool=record.address).set(record.allocation)
            self.pool_yield.labels(pool=record.address).set(record.reported_yield)
            self._pools.add(record.address)
        self.total_allocated.set(self.engine.total_allocated)
        self.paused.set(1 if self.engine.paused else 0)

    @contextmanager
    def time_operation(self, operation: str):
        """Measure an engine call."""
        with self.operation_seconds.labels(operation=operation).time():
            yield

    def sample(self, name: str, labels: Optional[dict] = None) -> Optional[float]:
        """Current value of a sample in this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})
