"""
Metrics Collection for the fuel reconciliation service

Collects and exposes metrics for:
- Reconciliation outcomes (deltas applied, pending, journey complete, unknown station)
- Yard fuel linking (linked, manual, rejected)
- Optimistic-concurrency retries and conflicts
- Processing times (average, p95)

Metrics are in-memory per process and exposed at GET /metrics.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class ReconciliationMetrics:
    """Outcomes of reconciliation requests."""
    applied: int = 0
    pending: int = 0
    journey_complete: int = 0
    unknown_station: int = 0
    no_change: int = 0
    liters_applied: float = 0.0

    # By target field
    by_field: Dict[str, Dict[str, float]] = field(default_factory=lambda: defaultdict(lambda: {"count": 0, "liters": 0.0}))


@dataclass
class LinkingMetrics:
    """Yard fuel state machine transitions."""
    created: int = 0
    linked: int = 0
    manual: int = 0
    rejected: int = 0

    # By yard
    by_yard: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"created": 0, "linked": 0, "rejected": 0}))


@dataclass
class ConcurrencyMetrics:
    """Optimistic concurrency retries and give-ups."""
    retries: int = 0
    conflicts: int = 0


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    by_stage: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, stage: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if stage:
            self.by_stage[stage].append(duration_ms)
            if len(self.by_stage[stage]) > self.max_samples:
                self.by_stage[stage] = self.by_stage[stage][-self.max_samples:]

    def get_average(self, stage: str = None) -> float:
        """Get average processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, stage: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_stage.get(stage, []) if stage else self.samples
        if not samples:
            return 0.0
        sorted_samples = sorted(samples)
        idx = int(len(sorted_samples) * 0.95)
        return sorted_samples[min(idx, len(sorted_samples) - 1)]


# =============================================================================
# Metrics Collector (Singleton)
# =============================================================================

class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_delta_applied("zambia_going", 100)
        metrics.record_yard_linked("DAR YARD")
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.reconciliation = ReconciliationMetrics()
        self.linking = LinkingMetrics()
        self.concurrency = ConcurrencyMetrics()
        self.timings = TimingMetrics()
        self._lock = Lock()

    @classmethod
    def instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    # =========================================================================
    # Reconciliation Metrics
    # =========================================================================

    def record_delta_applied(self, field_name: str, liters: float):
        with self._lock:
            self.reconciliation.applied += 1
            self.reconciliation.liters_applied += liters
            self.reconciliation.by_field[field_name]["count"] += 1
            self.reconciliation.by_field[field_name]["liters"] += liters

    def record_outcome(self, status: str):
        """Record a non-applied reconciliation outcome (pending, journey_complete, ...)."""
        with self._lock:
            if status == "pending":
                self.reconciliation.pending += 1
            elif status == "journey_complete":
                self.reconciliation.journey_complete += 1
            elif status == "unknown_station":
                self.reconciliation.unknown_station += 1
            elif status == "no_change":
                self.reconciliation.no_change += 1

    # =========================================================================
    # Yard Linking Metrics
    # =========================================================================

    def record_yard_created(self, yard: str):
        with self._lock:
            self.linking.created += 1
            self.linking.by_yard[yard]["created"] += 1

    def record_yard_linked(self, yard: str, manual: bool = False):
        with self._lock:
            if manual:
                self.linking.manual += 1
            else:
                self.linking.linked += 1
            self.linking.by_yard[yard]["linked"] += 1

    def record_yard_rejected(self, yard: str):
        with self._lock:
            self.linking.rejected += 1
            self.linking.by_yard[yard]["rejected"] += 1

    # =========================================================================
    # Concurrency Metrics
    # =========================================================================

    def record_conflict_retry(self):
        with self._lock:
            self.concurrency.retries += 1

    def record_conflict(self):
        with self._lock:
            self.concurrency.conflicts += 1

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, stage: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, stage)

    def get_timing_stats(self, stage: str = None) -> Dict[str, float]:
        """Get timing statistics for a stage."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(stage),
                "p95_ms": self.timings.get_p95(stage),
                "sample_count": len(self.timings.by_stage.get(stage, []) if stage else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "reconciliation": {
                    "applied": self.reconciliation.applied,
                    "pending": self.reconciliation.pending,
                    "journey_complete": self.reconciliation.journey_complete,
                    "unknown_station": self.reconciliation.unknown_station,
                    "no_change": self.reconciliation.no_change,
                    "liters_applied": self.reconciliation.liters_applied,
                    "by_field": {k: dict(v) for k, v in self.reconciliation.by_field.items()},
                },
                "yard_linking": {
                    "created": self.linking.created,
                    "linked": self.linking.linked,
                    "manual": self.linking.manual,
                    "rejected": self.linking.rejected,
                    "by_yard": {k: dict(v) for k, v in self.linking.by_yard.items()},
                },
                "concurrency": {
                    "retries": self.concurrency.retries,
                    "conflicts": self.concurrency.conflicts,
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_stage": {
                        stage: {
                            "average_ms": self.timings.get_average(stage),
                            "p95_ms": self.timings.get_p95(stage),
                        }
                        for stage in self.timings.by_stage.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_processing_time(stage: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(stage, duration_ms)
