"""In-process Prometheus metrics for the book backend.

Counts origin decisions, governed provider calls, admission waits and retries,
and serves them in text exposition format at ``/metrics``.
"""

import threading
from collections import defaultdict

from fastapi import APIRouter, Response

LabelKey = tuple[tuple[str, str], ...]

WAIT_BUCKETS = (0.0, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[LabelKey, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._hist_sums: dict[str, dict[LabelKey, float]] = defaultdict(
            lambda: defaultdict(float)
        )
        self._hist_buckets: dict[str, dict[LabelKey, list[int]]] = defaultdict(
            lambda: defaultdict(lambda: [0] * len(WAIT_BUCKETS))
        )
        self._hist_counts: dict[str, dict[LabelKey, int]] = defaultdict(
            lambda: defaultdict(int)
        )

    def inc(self, name: str, labels: dict[str, str], value: float = 1.0) -> None:
        key: LabelKey = tuple(sorted(labels.items()))
        with self._lock:
            self._counters[name][key] += value

    def observe(self, name: str, labels: dict[str, str], value: float) -> None:
        key: LabelKey = tuple(sorted(labels.items()))
        with self._lock:
            self._hist_sums[name][key] += value
            self._hist_counts[name][key] += 1
            buckets = self._hist_buckets[name][key]
            for idx, bound in enumerate(WAIT_BUCKETS):
                if value <= bound:
                    buckets[idx] += 1

    def counter_value(self, name: str, labels: dict[str, str]) -> float:
        key: LabelKey = tuple(sorted(labels.items()))
        with self._lock:
            return self._counters.get(name, {}).get(key, 0.0)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._hist_sums.clear()
            self._hist_buckets.clear()
            self._hist_counts.clear()

    def render(self) -> str:
        lines: list[str] = []
        with self._lock:
            for name, series in sorted(self._counters.items()):
                lines.append(f"# TYPE {name} counter")
                for key, value in sorted(series.items()):
                    lines.append(f"{name}{_labels(key)} {value}")
            for name, sums in sorted(self._hist_sums.items()):
                lines.append(f"# TYPE {name} histogram")
                for key in sorted(sums):
                    # observe() already counts a value into every bucket >= it.
                    for bound, count in zip(
                        WAIT_BUCKETS, self._hist_buckets[name][key], strict=True
                    ):
                        lines.append(f"{name}_bucket{_labels(key, le=str(bound))} {count}")
                    total = self._hist_counts[name][key]
                    lines.append(f"{name}_bucket{_labels(key, le='+Inf')} {total}")
                    lines.append(f"{name}_sum{_labels(key)} {sums[key]}")
                    lines.append(f"{name}_count{_labels(key)} {total}")
        lines.append("")
        return "\n".join(lines)


def _labels(key: LabelKey, le: str | None = None) -> str:
    pairs = list(key)
    if le is not None:
        pairs = sorted([*pairs, ("le", le)])
    if not pairs:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in pairs) + "}"


registry = MetricsRegistry()


def record_origin_decision(allowed: bool, preflight: bool) -> None:
    registry.inc(
        "bookgate_origin_decisions_total",
        {"decision": "allowed" if allowed else "rejected", "preflight": str(preflight).lower()},
    )


def record_provider_call(operation: str, outcome: str) -> None:
    registry.inc("bookgate_provider_calls_total", {"operation": operation, "outcome": outcome})


def record_provider_retry(operation: str, reason: str) -> None:
    registry.inc("bookgate_provider_retries_total", {"operation": operation, "reason": reason})


def record_admission_wait(operation: str, wait_s: float) -> None:
    registry.observe("bookgate_admission_wait_seconds", {"operation": operation}, wait_s)


metrics_router = APIRouter()


@metrics_router.get("/metrics")
def metrics_endpoint() -> Response:
    return Response(
        content=registry.render(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
