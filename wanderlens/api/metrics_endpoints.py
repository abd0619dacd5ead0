"""
Metrics endpoint for observability and monitoring.
"""

import statistics
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict

from fastapi import APIRouter

from wanderlens.core.error_handlers import error_handler
from wanderlens.core.metrics import snapshot_metrics

router = APIRouter(prefix="/metrics", tags=["metrics"])


@dataclass
class EndpointMetrics:
    """Metrics tracking for a single endpoint."""
    request_count: int = 0
    error_count: int = 0
    latencies: deque = field(default_factory=lambda: deque(maxlen=1000))

    def add_request(self, latency: float, is_error: bool = False):
        self.request_count += 1
        if is_error:
            self.error_count += 1
        self.latencies.append(latency)

    def get_stats(self) -> Dict[str, Any]:
        """Calculate statistics from recorded latencies (seconds in, ms out)."""
        if not self.latencies:
            return {
                "request_count": self.request_count,
                "error_count": self.error_count,
                "error_rate": 0.0,
                "latency_p50": 0.0,
                "latency_p95": 0.0,
                "latency_mean": 0.0
            }

        latencies_list = list(self.latencies)
        error_rate = self.error_count / self.request_count * 100
        if len(latencies_list) >= 20:
            latency_p95 = statistics.quantiles(latencies_list, n=20)[18] * 1000
        else:
            latency_p95 = max(latencies_list) * 1000
        return {
            "request_count": self.request_count,
            "error_count": self.error_count,
            "error_rate": round(error_rate, 2),
            "latency_p50": round(statistics.median(latencies_list) * 1000, 2),
            "latency_p95": round(latency_p95, 2),
            "latency_mean": round(statistics.mean(latencies_list) * 1000, 2),
        }


class MetricsCollector:
    """Per-endpoint request metrics, fed by the HTTP middleware."""

    def __init__(self):
        self.endpoint_metrics: Dict[str, EndpointMetrics] = defaultdict(EndpointMetrics)
        self.start_time = time.time()

    def record_request(self, endpoint: str, latency: float, is_error: bool = False):
        self.endpoint_metrics[endpoint].add_request(latency, is_error)

    def get_all_metrics(self) -> Dict[str, Any]:
        total_requests = sum(m.request_count for m in self.endpoint_metrics.values())
        total_errors = sum(m.error_count for m in self.endpoint_metrics.values())
        overall_error_rate = total_errors / total_requests * 100 if total_requests > 0 else 0.0

        return {
            "system": {
                "uptime_seconds": int(time.time() - self.start_time),
                "total_requests": total_requests,
                "total_errors": total_errors,
                "error_rate": round(overall_error_rate, 2)
            },
            "endpoints": {
                endpoint: metrics.get_stats()
                for endpoint, metrics in self.endpoint_metrics.items()
            },
        }

    def reset(self):
        """Reset all metrics (for testing)."""
        self.endpoint_metrics.clear()
        self.start_time = time.time()


# Global metrics collector instance
metrics_collector = MetricsCollector()


@router.get("")
async def get_metrics() -> Dict[str, Any]:
    """
    Request metrics per endpoint plus location and search metrics:
    latency percentiles, cache hit/miss counts and resolution sources.
    """
    data = metrics_collector.get_all_metrics()
    data["services"] = snapshot_metrics()
    data["errors"] = error_handler.get_error_statistics()
    return {"status": "ok", "data": data, "error": None}
