"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail and metrics for every analysis cycle
ALLOWED INPUTS: Records emitted by the engine
OUTPUTS: AuditLogEntry lists, metric series, aggregates

WHAT THIS LAYER MUST NOT DO:
============================
- Modify engine behavior
- Filter or interpret events (only record them)
- Make decisions based on logged data

Operational logging goes through the standard logging module; this layer
keeps the structured, queryable record of what each cycle did.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from enum import Enum
import threading

from ..contracts import utc_now


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditEventType(Enum):
    """Kinds of audit entries."""
    BATCH_STARTED = "batch_started"
    BATCH_COMPLETED = "batch_completed"
    MESSAGE_SKIPPED = "message_skipped"
    UNIT_PROCESSED = "unit_processed"
    UNIT_FAILED = "unit_failed"
    ALERT_EMITTED = "alert_emitted"
    PROVIDER_FALLBACK = "provider_fallback"
    BASELINE_RESET = "baseline_reset"


@dataclass(frozen=True)
class AuditLogEntry:
    """Immutable audit record."""
    sequence: int
    event_type: AuditEventType
    timestamp: datetime
    unit_id: str = ""
    details: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def detail(self, key: str) -> Optional[str]:
        for k, v in self.details:
            if k == key:
                return v
        return None


class AuditLog:
    """
    Append-only audit log.

    Entries are never modified; get_entries returns copies of the list.
    """

    def __init__(self, max_entries: int = 10000):
        self._entries: List[AuditLogEntry] = []
        self._sequence = 0
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def record(
        self,
        event_type: AuditEventType,
        unit_id: str = "",
        **details: object
    ) -> AuditLogEntry:
        with self._lock:
            self._sequence += 1
            entry = AuditLogEntry(
                sequence=self._sequence,
                event_type=event_type,
                timestamp=utc_now(),
                unit_id=unit_id,
                details=tuple(sorted((k, str(v)) for k, v in details.items()))
            )
            self._entries.append(entry)
            if len(self._entries) > self._max_entries:
                del self._entries[:len(self._entries) - self._max_entries]
        return entry

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        unit_id: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        with self._lock:
            entries = list(self._entries)

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]
        if unit_id is not None:
            entries = [e for e in entries if e.unit_id == unit_id]

        return entries

    @property
    def entry_count(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    TIMING = "timing"


@dataclass(frozen=True)
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class MetricPoint:
    """Single metric observation."""
    metric_name: str
    value: float
    timestamp: datetime
    labels: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect and aggregate engine metrics.

    Metrics are append-only time series data points. Each series keeps its
    most recent max_points points, so totals and aggregates cover that
    window.
    """

    def __init__(self, max_points: int = 10000):
        self._metrics: Dict[str, List[MetricPoint]] = {}
        self._max_points = max_points
        self._definitions: Dict[str, MetricDefinition] = {}
        self._lock = threading.Lock()
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="messages_processed_total",
                metric_type=MetricType.COUNTER,
                description="Messages that produced a feature vector",
                labels=("unit_id",)
            ),
            MetricDefinition(
                name="messages_skipped_total",
                metric_type=MetricType.COUNTER,
                description="Malformed messages skipped before analysis"
            ),
            MetricDefinition(
                name="alerts_emitted_total",
                metric_type=MetricType.COUNTER,
                description="Drift and mission alerts emitted",
                labels=("type", "severity")
            ),
            MetricDefinition(
                name="provider_fallbacks_total",
                metric_type=MetricType.COUNTER,
                description="Provider failures replaced by neutral values",
                labels=("provider",)
            ),
            MetricDefinition(
                name="persistence_failures_total",
                metric_type=MetricType.COUNTER,
                description="Unit cycles that failed on baseline persistence",
                labels=("unit_id",)
            ),
            MetricDefinition(
                name="unit_duration_ms",
                metric_type=MetricType.TIMING,
                description="Processing time of one unit cycle in milliseconds",
                labels=("unit_id",)
            ),
            MetricDefinition(
                name="mission_resonance_index",
                metric_type=MetricType.GAUGE,
                description="Organization-wide mean mission resonance"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        with self._lock:
            self._definitions[definition.name] = definition
            self._metrics.setdefault(definition.name, [])

    def definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=utc_now(),
            labels=label_tuple
        )
        with self._lock:
            series = self._metrics.setdefault(metric_name, [])
            series.append(point)
            if len(series) > self._max_points:
                del series[:len(series) - self._max_points]

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        with self._lock:
            return list(self._metrics.get(metric_name, []))

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        """Get the latest value for a metric."""
        points = self.get_metric(metric_name)
        return points[-1] if points else None

    def total(self, metric_name: str) -> float:
        """Sum of all points; the current value of a counter."""
        return sum(p.value for p in self.get_metric(metric_name))

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        points = self.get_metric(metric_name)

        if not points:
            return {}

        values = [p.value for p in points]

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# COLLECTOR FACADE
# =============================================================================

class ObservabilityCollector:
    """Audit log and metrics, shared by one engine instance."""

    def __init__(self, max_audit_entries: int = 10000, max_points: int = 10000):
        self.audit = AuditLog(max_audit_entries)
        self.metrics = MetricsCollector(max_points)

    def provider_fallback(self, provider: str, reason: str) -> None:
        """Listener handed to the feature extractor and embedding scorer."""
        self.audit.record(AuditEventType.PROVIDER_FALLBACK, provider=provider, reason=reason)
        self.metrics.record("provider_fallbacks_total", 1.0, {"provider": provider})


__all__ = [
    'ObservabilityCollector', 'AuditLog', 'AuditLogEntry', 'AuditEventType',
    'MetricsCollector', 'MetricDefinition', 'MetricPoint', 'MetricType',
]
