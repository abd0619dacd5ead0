"""Location & nearby-place metrics.

Collects latency, cache hit stats and resolution sources for the resolver
and the place searches.
"""
import time
from collections import Counter
from contextlib import contextmanager

_timings_ms: dict[str, list[float]] = {}
_cache_hits: Counter = Counter()
_cache_misses: Counter = Counter()
_resolution_sources: Counter = Counter()


@contextmanager
def record_latency(name: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        _timings_ms.setdefault(name, []).append((time.perf_counter() - start) * 1000.0)


def record_cache_hit(cache_name: str) -> None:
    _cache_hits[cache_name] += 1


def record_cache_miss(cache_name: str) -> None:
    _cache_misses[cache_name] += 1


def record_resolution(source: str) -> None:
    _resolution_sources[source] += 1


def _percentiles(values: list[float]) -> dict:
    if not values:
        return {"count": 0, "p95_ms": None, "p99_ms": None}
    vals = sorted(values)
    count = len(vals)

    def _p(p: float) -> float:
        idx = int(round(p * (count - 1)))
        return vals[idx]
    return {"count": count, "p95_ms": _p(0.95), "p99_ms": _p(0.99)}


def snapshot_metrics() -> dict:
    caches = set(_cache_hits) | set(_cache_misses)
    return {
        "latency": {name: _percentiles(values) for name, values in _timings_ms.items()},
        "cache": {
            name: {"hits": _cache_hits[name], "misses": _cache_misses[name]}
            for name in sorted(caches)
        },
        "resolution_sources": dict(_resolution_sources),
    }


def reset_metrics() -> None:
    _timings_ms.clear()
    _cache_hits.clear()
    _cache_misses.clear()
    _resolution_sources.clear()
