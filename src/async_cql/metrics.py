"""
Metrics and observability for async-cql.

Sessions report every execution and clusters report the health of each
connection they open. Collectors aggregate in memory or export to
Prometheus when ``prometheus_client`` is installed.
"""

import asyncio
import hashlib
import logging
import re
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Deque, Dict, List, Optional

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class QueryMetrics:
    """Metrics for individual query execution."""

    query_hash: str
    duration: float
    success: bool
    error_type: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
    parameters_count: int = 0
    result_size: int = 0
    prepared: bool = False


@dataclass
class ConnectionMetrics:
    """Metrics for connection health."""

    host: str
    is_healthy: bool
    last_check: datetime
    response_time: float
    error_count: int = 0
    total_queries: int = 0


class MetricsCollector(ABC):
    """Abstract base class for metrics collection backends."""

    @abstractmethod
    async def record_query(self, metrics: QueryMetrics) -> None:
        pass

    @abstractmethod
    async def record_connection_health(self, metrics: ConnectionMetrics) -> None:
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, Any]:
        pass


class InMemoryMetricsCollector(MetricsCollector):
    """In-memory metrics collector for development and testing."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self.query_metrics: Deque[QueryMetrics] = deque(maxlen=max_entries)
        self.connection_metrics: Dict[str, ConnectionMetrics] = {}
        self.error_counts: Dict[str, int] = defaultdict(int)
        self.query_counts: Dict[str, int] = defaultdict(int)
        self._lock = asyncio.Lock()

    async def record_query(self, metrics: QueryMetrics) -> None:
        async with self._lock:
            self.query_metrics.append(metrics)
            self.query_counts[metrics.query_hash] += 1

            if not metrics.success and metrics.error_type:
                self.error_counts[metrics.error_type] += 1

    async def record_connection_health(self, metrics: ConnectionMetrics) -> None:
        async with self._lock:
            self.connection_metrics[metrics.host] = metrics

    async def get_stats(self) -> Dict[str, Any]:
        """
        Aggregate the recorded metrics.

        Query performance covers the last five minutes; error and query
        counts cover everything still held.
        """
        async with self._lock:
            connection_health = {
                host: {
                    "healthy": metrics.is_healthy,
                    "response_time_ms": metrics.response_time * 1000,
                    "error_count": metrics.error_count,
                    "total_queries": metrics.total_queries,
                }
                for host, metrics in self.connection_metrics.items()
            }

            if not self.query_metrics:
                return {
                    "message": "No metrics available",
                    "connection_health": connection_health,
                }

            cutoff = _utcnow() - timedelta(minutes=5)
            recent_queries = [q for q in self.query_metrics if q.timestamp > cutoff]

            if recent_queries:
                durations = [q.duration for q in recent_queries]
                success_rate = sum(1 for q in recent_queries if q.success) / len(recent_queries)
                query_performance: Dict[str, Any] = {
                    "total_queries": len(self.query_metrics),
                    "recent_queries_5min": len(recent_queries),
                    "prepared_queries": sum(1 for q in recent_queries if q.prepared),
                    "avg_duration_ms": sum(durations) / len(durations) * 1000,
                    "min_duration_ms": min(durations) * 1000,
                    "max_duration_ms": max(durations) * 1000,
                    "success_rate": success_rate,
                    "queries_per_second": len(recent_queries) / 300,
                }
            else:
                query_performance = {"message": "No recent queries"}

            return {
                "query_performance": query_performance,
                "error_summary": dict(self.error_counts),
                "top_queries": dict(
                    sorted(self.query_counts.items(), key=lambda x: x[1], reverse=True)[:10]
                ),
                "connection_health": connection_health,
            }


class PrometheusMetricsCollector(MetricsCollector):
    """
    Prometheus metrics collector for production monitoring.

    Args:
        registry: Registry to register the metrics in; defaults to the
            global registry of ``prometheus_client``.
    """

    query_duration: Optional["Histogram"]
    query_total: Optional["Counter"]
    connection_health: Optional["Gauge"]
    error_total: Optional["Counter"]
    _available: bool

    def __init__(self, registry: Optional["CollectorRegistry"] = None) -> None:
        self.query_duration = None
        self.query_total = None
        self.connection_health = None
        self.error_total = None
        try:
            from prometheus_client import REGISTRY, Counter, Gauge, Histogram
        except ImportError:
            logger.warning("prometheus_client not available, metrics disabled")
            self._available = False
            return

        registry = registry if registry is not None else REGISTRY
        self.query_duration = Histogram(
            "cql_query_duration_seconds",
            "Time spent executing CQL statements",
            ["query_type", "success"],
            registry=registry,
        )
        self.query_total = Counter(
            "cql_queries_total",
            "Total number of CQL statements executed",
            ["query_type", "success"],
            registry=registry,
        )
        self.connection_health = Gauge(
            "cql_connection_healthy",
            "Whether the connection to a Cassandra node is healthy",
            ["host"],
            registry=registry,
        )
        self.error_total = Counter(
            "cql_errors_total", "Total number of CQL errors", ["error_type"], registry=registry
        )
        self._available = True

    async def record_query(self, metrics: QueryMetrics) -> None:
        if not self._available:
            return

        query_type = "prepared" if metrics.prepared else "simple"
        success_label = "success" if metrics.success else "failure"

        if self.query_duration is not None:
            self.query_duration.labels(query_type=query_type, success=success_label).observe(
                metrics.duration
            )

        if self.query_total is not None:
            self.query_total.labels(query_type=query_type, success=success_label).inc()

        if not metrics.success and metrics.error_type and self.error_total is not None:
            self.error_total.labels(error_type=metrics.error_type).inc()

    async def record_connection_health(self, metrics: ConnectionMetrics) -> None:
        if not self._available:
            return

        if self.connection_health is not None:
            self.connection_health.labels(host=metrics.host).set(1 if metrics.is_healthy else 0)

    async def get_stats(self) -> Dict[str, Any]:
        if not self._available:
            return {"error": "Prometheus client not available"}

        return {"message": "Metrics available via Prometheus endpoint"}


class MetricsMiddleware:
    """Fans query and connection metrics out to every collector."""

    def __init__(self, collectors: List[MetricsCollector]):
        self.collectors = collectors
        self._enabled = True

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    async def record_query_metrics(
        self,
        query: str,
        duration: float,
        success: bool,
        error_type: Optional[str] = None,
        parameters_count: int = 0,
        result_size: int = 0,
        prepared: bool = False,
    ) -> None:
        if not self._enabled:
            return

        metrics = QueryMetrics(
            query_hash=self._normalize_query(query),
            duration=duration,
            success=success,
            error_type=error_type,
            parameters_count=parameters_count,
            result_size=result_size,
            prepared=prepared,
        )

        for collector in self.collectors:
            try:
                await collector.record_query(metrics)
            except Exception as e:
                logger.warning(f"Failed to record metrics: {e}")

    async def record_connection_metrics(
        self,
        host: str,
        is_healthy: bool,
        response_time: float,
        error_count: int = 0,
        total_queries: int = 0,
    ) -> None:
        if not self._enabled:
            return

        metrics = ConnectionMetrics(
            host=host,
            is_healthy=is_healthy,
            last_check=_utcnow(),
            response_time=response_time,
            error_count=error_count,
            total_queries=total_queries,
        )

        for collector in self.collectors:
            try:
                await collector.record_connection_health(metrics)
            except Exception as e:
                logger.warning(f"Failed to record connection metrics: {e}")

    def _normalize_query(self, query: str) -> str:
        """Hash the query with literal values masked, for grouping."""
        normalized = re.sub(r"\s+", " ", query.strip().upper())
        normalized = re.sub(r"'[^']*'", "'?'", normalized)
        normalized = re.sub(r"\b\d+\b", "?", normalized)

        return hashlib.md5(normalized.encode()).hexdigest()[:12]


def create_metrics_system(
    backend: str = "memory", prometheus_enabled: bool = False
) -> MetricsMiddleware:
    """Create a metrics system with specified backend."""
    collectors: List[MetricsCollector] = []

    if backend == "memory":
        collectors.append(InMemoryMetricsCollector())

    if prometheus_enabled:
        collectors.append(PrometheusMetricsCollector())

    return MetricsMiddleware(collectors)
