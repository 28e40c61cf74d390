from __future__ import annotations

from typing import Any

COUNTERS = (
    "partial_write_failures_total",
    "stale_index_references_total",
    "cache_hits_total",
    "cache_misses_total",
    "cache_decode_failures_total",
    "store_unavailable_total",
)


class StoreMetrics:
    """In-process counters for operators watching index drift and cache behaviour."""

    def __init__(self) -> None:
        self._counters: dict[str, int] = {name: 0 for name in COUNTERS}

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counters:
            raise KeyError(f"unknown metric: {name}")
        self._counters[name] += int(amount)

    def get(self, name: str) -> int:
        return self._counters[name]

    def snapshot(self) -> dict[str, Any]:
        counters = dict(self._counters)
        lookups = counters["cache_hits_total"] + counters["cache_misses_total"]
        hit_rate = round(counters["cache_hits_total"] / lookups, 4) if lookups else 0.0
        return {"counters": counters, "cache_hit_rate": hit_rate}

    def reset(self) -> None:
        for name in self._counters:
            self._counters[name] = 0
