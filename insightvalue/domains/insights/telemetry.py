"""Lightweight telemetry counters for valuation adjustment evaluation."""

from __future__ import annotations

from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List


@dataclass
class ValuationTelemetrySnapshot:
    evaluations: int
    not_applicable: int
    applied_channels: int
    skipped_channels: int
    per_method_counts: Dict[str, int]
    per_degradation_counts: Dict[str, int]
    avg_latency_ms: float
    per_method_avg_latency_ms: Dict[str, float]
    recent_evaluations: List[Dict[str, object]]


class ValuationTelemetry:
    """In-memory telemetry recorder, shared by request threads."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._reset_state()

    def _reset_state(self) -> None:
        self.evaluations = 0
        self.not_applicable = 0
        self.applied_channels = 0
        self.skipped_channels = 0
        self.per_method_counts: Counter[str] = Counter()
        self.per_degradation_counts: Counter[str] = Counter()
        self.latencies_ms: List[float] = []
        self.per_method_latency_ms: defaultdict[str, List[float]] = defaultdict(list)
        self.recent_evaluations = deque(maxlen=50)

    def reset(self) -> None:
        """Clear all counters (useful in tests)."""
        with self._lock:
            self._reset_state()

    def record_evaluation(
        self,
        symbol: str,
        method_key: str | None,
        *,
        not_applicable: bool,
        applied: int,
        skipped: int,
        degradations: List[str],
        latency_ms: float,
    ) -> None:
        """Record metrics for one adjustment computation."""
        method = method_key or "none"
        with self._lock:
            self.evaluations += 1
            if not_applicable:
                self.not_applicable += 1
            self.applied_channels += applied
            self.skipped_channels += skipped
            self.per_method_counts[method] += 1
            for kind in degradations:
                self.per_degradation_counts[kind] += 1
            self.latencies_ms.append(latency_ms)
            self.per_method_latency_ms[method].append(latency_ms)
            self.recent_evaluations.append(
                {
                    "symbol": symbol,
                    "method_key": method_key,
                    "not_applicable": not_applicable,
                    "applied": applied,
                    "latency_ms": latency_ms,
                    "at": datetime.now(timezone.utc).isoformat(),
                }
            )

    def snapshot(self) -> ValuationTelemetrySnapshot:
        """Return a read-only snapshot of telemetry counters."""
        with self._lock:
            avg_latency_ms = sum(self.latencies_ms) / len(self.latencies_ms) if self.latencies_ms else 0.0
            per_method_avg_latency_ms = {
                method: (sum(latencies) / len(latencies)) if latencies else 0.0
                for method, latencies in self.per_method_latency_ms.items()
            }
            return ValuationTelemetrySnapshot(
                evaluations=self.evaluations,
                not_applicable=self.not_applicable,
                applied_channels=self.applied_channels,
                skipped_channels=self.skipped_channels,
                per_method_counts=dict(self.per_method_counts),
                per_degradation_counts=dict(self.per_degradation_counts),
                avg_latency_ms=avg_latency_ms,
                per_method_avg_latency_ms=per_method_avg_latency_ms,
                recent_evaluations=list(self.recent_evaluations),
            )


valuation_telemetry = ValuationTelemetry()

__all__ = ["ValuationTelemetry", "ValuationTelemetrySnapshot", "valuation_telemetry"]
