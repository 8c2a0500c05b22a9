"""
Metrics Collection for the ERP Vector Sync Pipeline

Collects and exposes metrics for:
- Sync run lifecycle (started, completed, failed) per sync kind
- Record throughput (encoded, embedded, upserted, deleted)
- Field restrictions discovered while fetching
- Processing times per phase (average, p95)

Metrics are process-local and held in memory.
"""

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Any


# =============================================================================
# Metric Data Classes
# =============================================================================

@dataclass
class SyncRunMetrics:
    """Metrics for sync run execution."""
    started: int = 0
    completed: int = 0
    failed: int = 0
    in_progress: int = 0

    # By sync kind ("schema", "data")
    by_kind: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"started": 0, "completed": 0, "failed": 0}))


@dataclass
class RecordMetrics:
    """Record throughput counters."""
    encoded: int = 0
    embedded: int = 0
    upserted: int = 0
    deleted: int = 0

    # By model name
    by_model: Dict[str, Dict[str, int]] = field(default_factory=lambda: defaultdict(lambda: {"encoded": 0, "embedded": 0}))


@dataclass
class RestrictionMetrics:
    """Field restrictions discovered during fetches."""
    total: int = 0
    by_reason: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    last_seen: Dict[str, datetime] = field(default_factory=dict)


@dataclass
class TimingMetrics:
    """Processing time metrics."""
    # Raw timing samples (keep last N for percentile calculations)
    samples: List[float] = field(default_factory=list)
    max_samples: int = 1000

    # By phase
    by_phase: Dict[str, List[float]] = field(default_factory=lambda: defaultdict(list))

    def add_sample(self, duration_ms: float, phase: str = None):
        """Add a timing sample."""
        self.samples.append(duration_ms)
        if len(self.samples) > self.max_samples:
            self.samples = self.samples[-self.max_samples:]

        if phase:
            self.by_phase[phase].append(duration_ms)
            if len(self.by_phase[phase]) > self.max_samples:
                self.by_phase[phase] = self.by_phase[phase][-self.max_samples:]

    def get_average(self, phase: str = None) -> float:
        """Get average processing time."""
        samples = self.by_phase.get(phase, []) if phase else self.samples
        return statistics.mean(samples) if samples else 0.0

    def get_p95(self, phase: str = None) -> float:
        """Get 95th percentile processing time."""
        samples = self.by_phase.get(phase, []) if phase else self.samples
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
    Thread-safe metrics collector for sync runs.

    Usage:
        metrics = MetricsCollector.instance()
        metrics.record_sync_started("data", "crm.lead")
        metrics.record_records_encoded("crm.lead", 200)
    """

    _instance: Optional["MetricsCollector"] = None
    _lock = Lock()

    def __init__(self):
        self.sync_runs = SyncRunMetrics()
        self.records = RecordMetrics()
        self.restrictions = RestrictionMetrics()
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

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next instance() starts from zero."""
        with cls._lock:
            cls._instance = None

    # =========================================================================
    # Sync Run Metrics
    # =========================================================================

    def record_sync_started(self, sync_kind: str):
        with self._lock:
            self.sync_runs.started += 1
            self.sync_runs.in_progress += 1
            self.sync_runs.by_kind[sync_kind]["started"] += 1

    def record_sync_completed(self, sync_kind: str, duration_ms: float = None):
        with self._lock:
            self.sync_runs.completed += 1
            self.sync_runs.in_progress = max(0, self.sync_runs.in_progress - 1)
            self.sync_runs.by_kind[sync_kind]["completed"] += 1

            if duration_ms:
                self.timings.add_sample(duration_ms, f"sync.{sync_kind}")

    def record_sync_failed(self, sync_kind: str):
        with self._lock:
            self.sync_runs.failed += 1
            self.sync_runs.in_progress = max(0, self.sync_runs.in_progress - 1)
            self.sync_runs.by_kind[sync_kind]["failed"] += 1

    # =========================================================================
    # Record Metrics
    # =========================================================================

    def record_records_encoded(self, model_name: str, count: int):
        with self._lock:
            self.records.encoded += count
            self.records.by_model[model_name]["encoded"] += count

    def record_records_embedded(self, model_name: str, count: int):
        with self._lock:
            self.records.embedded += count
            self.records.by_model[model_name]["embedded"] += count

    def record_points_upserted(self, count: int):
        with self._lock:
            self.records.upserted += count

    def record_points_deleted(self, count: int):
        with self._lock:
            self.records.deleted += count

    # =========================================================================
    # Restriction Metrics
    # =========================================================================

    def record_field_restricted(self, field_name: str, reason: str):
        """Record a field the source system refused to serve."""
        with self._lock:
            self.restrictions.total += 1
            self.restrictions.by_reason[reason] += 1
            self.restrictions.last_seen[field_name] = datetime.utcnow()

    # =========================================================================
    # Timing Metrics
    # =========================================================================

    def record_processing_time(self, phase: str, duration_ms: float):
        """Record a processing time sample."""
        with self._lock:
            self.timings.add_sample(duration_ms, phase)

    def get_timing_stats(self, phase: str = None) -> Dict[str, float]:
        """Get timing statistics for a phase."""
        with self._lock:
            return {
                "average_ms": self.timings.get_average(phase),
                "p95_ms": self.timings.get_p95(phase),
                "sample_count": len(self.timings.by_phase.get(phase, []) if phase else self.timings.samples),
            }

    # =========================================================================
    # Summary
    # =========================================================================

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        with self._lock:
            return {
                "sync_runs": {
                    "started": self.sync_runs.started,
                    "completed": self.sync_runs.completed,
                    "failed": self.sync_runs.failed,
                    "in_progress": self.sync_runs.in_progress,
                    "by_kind": {k: dict(v) for k, v in self.sync_runs.by_kind.items()},
                },
                "records": {
                    "encoded": self.records.encoded,
                    "embedded": self.records.embedded,
                    "upserted": self.records.upserted,
                    "deleted": self.records.deleted,
                    "by_model": {k: dict(v) for k, v in self.records.by_model.items()},
                },
                "restrictions": {
                    "total": self.restrictions.total,
                    "by_reason": dict(self.restrictions.by_reason),
                    "last_seen": {k: v.isoformat() for k, v in self.restrictions.last_seen.items()},
                },
                "timings": {
                    "overall": {
                        "average_ms": self.timings.get_average(),
                        "p95_ms": self.timings.get_p95(),
                    },
                    "by_phase": {
                        phase: {
                            "average_ms": self.timings.get_average(phase),
                            "p95_ms": self.timings.get_p95(phase),
                        }
                        for phase in self.timings.by_phase.keys()
                    },
                },
            }


# =============================================================================
# Module-level convenience functions
# =============================================================================

def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return MetricsCollector.instance()


def record_sync_started(sync_kind: str):
    get_metrics().record_sync_started(sync_kind)


def record_sync_completed(sync_kind: str, duration_ms: float = None):
    get_metrics().record_sync_completed(sync_kind, duration_ms)


def record_sync_failed(sync_kind: str):
    get_metrics().record_sync_failed(sync_kind)


def record_field_restricted(field_name: str, reason: str):
    get_metrics().record_field_restricted(field_name, reason)


def record_processing_time(phase: str, duration_ms: float):
    """Record a processing time sample."""
    get_metrics().record_processing_time(phase, duration_ms)
