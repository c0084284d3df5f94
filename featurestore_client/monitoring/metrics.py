"""
Orchestrator metrics collector
"""
from collections import defaultdict
from datetime import datetime
import re
import threading
from typing import Any, Dict, List, Optional

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, REGISTRY, generate_latest

_ID_SEGMENT = re.compile(r"/\d+(?=/|$)")
_XATTR_KEY = re.compile(r"(?<=/xattrs/)[^/?]+")


def _get_or_create_metric(metric_cls, name: str, documentation: str, *args, **kwargs):
    """
    Reuse existing collectors when tests/imports instantiate the module multiple times, to avoid "Collector already registered" errors.
    """
    existing = REGISTRY._names_to_collectors.get(name)  # type: ignore[attr-defined]
    if existing is not None:
        return existing
    try:
        return metric_cls(name, documentation, *args, **kwargs)
    except ValueError:
        return REGISTRY._names_to_collectors[name]


def normalize_path(path: str) -> str:
    """Replace numeric segments and xattr keys so metric labels stay low-cardinality."""
    return _XATTR_KEY.sub("{key}", _ID_SEGMENT.sub("/{id}", path or "unknown"))


class OrchestratorMetrics:
    """
    Metrics collector with two outputs:
    - JSON summary (`get_metrics()`)
    - Prometheus exposition format (`get_prometheus_metrics()`)
    """

    REMOTE_CALLS_TOTAL = _get_or_create_metric(
        Counter,
        "featurestore_client_remote_calls_total",
        "Total remote gateway calls.",
        labelnames=("method", "resource", "status_code"),
    )
    REMOTE_CALL_DURATION_SECONDS = _get_or_create_metric(
        Histogram,
        "featurestore_client_remote_call_duration_seconds",
        "Remote gateway call latency in seconds.",
        labelnames=("method", "resource"),
    )
    OPERATIONS_TOTAL = _get_or_create_metric(
        Counter,
        "featurestore_client_operations_total",
        "Orchestrated operations by outcome.",
        labelnames=("operation", "outcome"),
    )
    CACHE_FETCHES_TOTAL = _get_or_create_metric(
        Counter,
        "featurestore_client_metadata_cache_fetches_total",
        "Metadata cache fetches from the backend.",
        labelnames=("featurestore",),
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._reset_metrics()

    def _reset_metrics(self):
        """Reset in-memory JSON metrics."""
        self.total_remote_calls = 0
        self.remote_calls_by_status = defaultdict(int)
        self.call_durations: List[float] = []
        self.operations = defaultdict(int)
        self.cache_fetches = defaultdict(int)
        self.start_time = datetime.now()

    def record_remote_call(
        self,
        method: str,
        path: str,
        status_code: Optional[int],
        duration: float
    ) -> None:
        """
        Record one remote call. `status_code` is None when the transport failed.
        """
        method_label = (method or "UNKNOWN").upper()
        resource_label = normalize_path(path)
        status_label = str(status_code) if status_code is not None else "transport_error"
        safe_duration = max(duration, 0.0)

        with self._lock:
            self.total_remote_calls += 1
            self.remote_calls_by_status[status_label] += 1
            self.call_durations.append(safe_duration)

            if len(self.call_durations) > 10000:
                self.call_durations = self.call_durations[-10000:]

        self.REMOTE_CALLS_TOTAL.labels(
            method=method_label, resource=resource_label, status_code=status_label
        ).inc()
        self.REMOTE_CALL_DURATION_SECONDS.labels(method=method_label, resource=resource_label).observe(safe_duration)

    def record_operation(self, operation: str, succeeded: bool) -> None:
        """Record the outcome of one orchestrated operation."""
        outcome = "success" if succeeded else "failure"
        with self._lock:
            self.operations[f"{operation}:{outcome}"] += 1
        self.OPERATIONS_TOTAL.labels(operation=operation, outcome=outcome).inc()

    def record_cache_fetch(self, featurestore: str) -> None:
        """Record one metadata fetch from the backend."""
        with self._lock:
            self.cache_fetches[featurestore] += 1
        self.CACHE_FETCHES_TOTAL.labels(featurestore=featurestore).inc()

    def get_metrics(self) -> Dict[str, Any]:
        """Return a JSON-serializable snapshot of the in-memory metrics."""
        with self._lock:
            durations = list(self.call_durations)
            avg_duration = sum(durations) / len(durations) if durations else 0.0
            return {
                "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
                "remote_calls": {
                    "total": self.total_remote_calls,
                    "by_status": dict(self.remote_calls_by_status),
                    "avg_duration_seconds": round(avg_duration, 4),
                },
                "operations": dict(self.operations),
                "cache_fetches": dict(self.cache_fetches),
            }

    def get_prometheus_metrics(self) -> bytes:
        """Return metrics in Prometheus exposition format."""
        return generate_latest(REGISTRY)

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def reset(self) -> None:
        """Reset in-memory JSON metrics (Prometheus counters stay monotonic)."""
        with self._lock:
            self._reset_metrics()
