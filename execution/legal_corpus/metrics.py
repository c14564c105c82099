"""
Metrics Collection for Legal Corpus Retrieval

Tracks retrieval latency, which tier answered each query, and crawl-run
outcomes. One process-wide collector, safe to use from request threads and
the scheduler thread.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class RetrievalMetrics:
    """Metrics for a single retrieval call."""
    query_text: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    results_count: int = 0
    tier: Optional[str] = None  # strategy that produced the accepted result
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated system metrics."""
    # Retrieval
    total_queries: int = 0
    answered_queries: int = 0
    empty_queries: int = 0
    failed_queries: int = 0
    total_latency_ms: float = 0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)
    answers_by_tier: dict = field(default_factory=lambda: defaultdict(int))

    # Crawling
    crawl_runs: int = 0
    failed_crawl_runs: int = 0
    pages_crawled: int = 0
    documents_updated: int = 0
    last_crawl_at: Optional[datetime] = None
    last_crawl_status: Optional[str] = None

    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.total_latency_ms / self.total_queries

    @property
    def p95_latency_ms(self) -> float:
        """Calculate 95th percentile latency."""
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def answer_rate(self) -> float:
        if self.total_queries == 0:
            return 0
        return self.answered_queries / self.total_queries

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "retrieval": {
                "total": self.total_queries,
                "answered": self.answered_queries,
                "empty": self.empty_queries,
                "failed": self.failed_queries,
                "answer_rate": f"{self.answer_rate:.2%}",
                "by_tier": dict(self.answers_by_tier),
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(self.min_latency_ms, 2) if self.min_latency_ms != float('inf') else 0,
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
            },
            "crawler": {
                "runs": self.crawl_runs,
                "failed_runs": self.failed_crawl_runs,
                "pages_crawled": self.pages_crawled,
                "documents_updated": self.documents_updated,
                "last_run_at": self.last_crawl_at.isoformat() if self.last_crawl_at else None,
                "last_run_status": self.last_crawl_status,
            },
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_retrieval(query) as tracker:
            snippets = retriever.retrieve(query)
            tracker.set_results(len(snippets), tier="keyword")

        metrics = collector.get_metrics_dict()
    """

    _instance = None
    _instance_lock = threading.Lock()

    def __new__(cls):
        """Singleton pattern for global metrics collection."""
        with cls._instance_lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._lock = threading.Lock()
        self.metrics = SystemMetrics()
        self._history: list[RetrievalMetrics] = []
        self._max_history = 1000
        self._start_time = datetime.now()
        self._initialized = True

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._history = []
            self._start_time = datetime.now()

    class RetrievalTracker:
        """Context manager for tracking one retrieval call."""

        def __init__(self, collector: 'MetricsCollector', query_text: str):
            self.collector = collector
            self.record = RetrievalMetrics(
                query_text=(query_text or "")[:200],
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.record.end_time = time.time()
            self.record.latency_ms = (self.record.end_time - self.record.start_time) * 1000
            if exc_type:
                self.record.error = str(exc_val)
                self.collector._record_error(exc_type.__name__)
            self.collector._record_retrieval(self.record)
            return False  # Don't suppress exceptions

        def set_results(self, count: int, tier: Optional[str] = None):
            self.record.results_count = count
            self.record.tier = tier

    def track_retrieval(self, query_text: str) -> RetrievalTracker:
        return self.RetrievalTracker(self, query_text)

    def _record_retrieval(self, record: RetrievalMetrics):
        with self._lock:
            m = self.metrics
            m.total_queries += 1
            if record.error:
                m.failed_queries += 1
            elif record.results_count:
                m.answered_queries += 1
                if record.tier:
                    m.answers_by_tier[record.tier] += 1
            else:
                m.empty_queries += 1

            m.total_latency_ms += record.latency_ms
            m.min_latency_ms = min(m.min_latency_ms, record.latency_ms)
            m.max_latency_ms = max(m.max_latency_ms, record.latency_ms)
            m.latencies.append(record.latency_ms)
            if len(m.latencies) > self._max_history:
                m.latencies = m.latencies[-self._max_history:]

            self._history.append(record)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history:]

    def _record_error(self, error_type: str):
        with self._lock:
            self.metrics.errors_by_type[error_type] += 1

    def record_crawl_run(
        self,
        status: str,
        pages_crawled: int,
        documents_updated: int,
        duration_s: float = 0,
    ):
        """Record the outcome of one crawler run."""
        with self._lock:
            m = self.metrics
            m.crawl_runs += 1
            if status == "error":
                m.failed_crawl_runs += 1
            m.pages_crawled += pages_crawled
            m.documents_updated += documents_updated
            m.last_crawl_at = datetime.now()
            m.last_crawl_status = status
        logger.debug(f"Crawl run recorded: {status} in {duration_s:.1f}s")

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        with self._lock:
            data = self.metrics.to_dict()
        data["uptime_s"] = int(self.get_uptime().total_seconds())
        return data

    def get_recent_queries(self, limit: int = 10) -> list[RetrievalMetrics]:
        with self._lock:
            return self._history[-limit:]

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return MetricsCollector()
