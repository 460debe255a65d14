"""
Engine Records

Immutable value types passed between the drift engine components.

OWNERSHIP:
==========
- Message: created by the ingestion collaborator, consumed once per cycle
- FeatureVector: produced by the feature extractor, never mutated
- Baseline: owned exclusively by the baseline store
- DriftAlert / ResonanceScore / MetricDrift: produced per cycle, handed to
  the caller, never retained by the engine
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple
from enum import Enum

from .base import Error, utc_now
from .errors import MalformedMessage


# =============================================================================
# ENUMS
# =============================================================================

class AlertType(Enum):
    """Kinds of drift the engine reports."""
    SYMBOLIC_DECAY = "symbolic_decay"
    PRONOUN_FRAGMENTATION = "pronoun_fragmentation"
    TONE_COLLAPSE = "tone_collapse"
    MISSION_DRIFT = "mission_drift"


class Severity(Enum):
    """Alert severity, ordered by rank."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class Trend(Enum):
    """Direction of change relative to a reference value."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class ResonanceStatus(Enum):
    """Mission alignment classification."""
    ALIGNED = "aligned"
    DRIFTING = "drifting"
    CRITICAL = "critical"


# =============================================================================
# MESSAGE
# =============================================================================

@dataclass(frozen=True)
class Message:
    """
    Normalized message from any connector.

    unit_id groups messages into an analysis cohort (team, department,
    project). Text and user_id are raw; the engine anonymizes both before
    any feature is computed.
    """
    message_id: str
    unit_id: str
    text: str
    timestamp: datetime
    user_id: str = ""
    platform: str = ""
    channel: str = ""

    def validate(self) -> None:
        """Raise MalformedMessage when the text has nothing to analyse."""
        if not isinstance(self.text, str) or not self.text.strip():
            raise MalformedMessage(self.message_id)


# =============================================================================
# FEATURE VECTOR
# =============================================================================

NEUTRAL_SENTIMENT_LABEL = "NEUTRAL"
NEUTRAL_SENTIMENT_SCORE = 0.5


@dataclass(frozen=True)
class FeatureVector:
    """
    Fixed-shape linguistic features for one message (or a mean of many).

    Ranges:
    - symbol_alignment, metaphor_density, narrative_coherence,
      modal_compression, emotional_stability, emotional_fragmentation: [0, 100]
    - pronoun_individual, pronoun_collective: counts (means when aggregated)
    - pronoun_ratio: >= 0, unbounded
    - sentiment_score: [0, 1]
    """
    symbol_alignment: float
    metaphor_density: float
    narrative_coherence: float
    modal_compression: float
    pronoun_individual: float
    pronoun_collective: float
    pronoun_ratio: float
    emotional_stability: float
    emotional_fragmentation: float
    sentiment_label: str = NEUTRAL_SENTIMENT_LABEL
    sentiment_score: float = NEUTRAL_SENTIMENT_SCORE

    def numeric_items(self) -> Tuple[Tuple[str, float], ...]:
        """(field name, value) for every numeric field, in declaration order."""
        return tuple((name, getattr(self, name)) for name in NUMERIC_FIELDS)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> FeatureVector:
        values = {name: float(data[name]) for name in NUMERIC_FIELDS}
        return FeatureVector(
            sentiment_label=str(data.get("sentiment_label", NEUTRAL_SENTIMENT_LABEL)),
            **values
        )

    @staticmethod
    def mean(vectors: Sequence[FeatureVector]) -> Optional[FeatureVector]:
        """
        Field-wise arithmetic mean.

        Returns None for an empty sequence so callers can tell
        "no history" apart from "history at zero". The sentiment label is
        the most frequent label, ties broken alphabetically.
        """
        if not vectors:
            return None

        count = len(vectors)
        values = {
            name: sum(getattr(v, name) for v in vectors) / count
            for name in NUMERIC_FIELDS
        }

        labels = Counter(v.sentiment_label for v in vectors)
        top = max(labels.values())
        label = sorted(lbl for lbl, n in labels.items() if n == top)[0]

        return FeatureVector(sentiment_label=label, **values)


NUMERIC_FIELDS: Tuple[str, ...] = tuple(
    f.name for f in fields(FeatureVector) if f.name != "sentiment_label"
)


# =============================================================================
# BASELINE
# =============================================================================

@dataclass(frozen=True)
class Baseline:
    """
    Rolling per-unit history of feature vectors.

    INVARIANT: samples are in arrival order. Appending returns a new
    Baseline; the previous value is never modified.
    """
    unit_id: str
    period: str
    samples: Tuple[FeatureVector, ...]
    created_at: datetime
    updated_at: datetime

    @staticmethod
    def create(unit_id: str, now: Optional[datetime] = None) -> Baseline:
        now = now or utc_now()
        return Baseline(
            unit_id=unit_id,
            period=now.date().isoformat(),
            samples=(),
            created_at=now,
            updated_at=now
        )

    def with_sample(
        self,
        vector: FeatureVector,
        now: Optional[datetime] = None,
        max_samples: Optional[int] = None
    ) -> Baseline:
        """Append a sample, keeping only the most recent max_samples if set."""
        samples = self.samples + (vector,)
        if max_samples is not None and max_samples > 0:
            samples = samples[-max_samples:]
        return replace(self, samples=samples, updated_at=now or utc_now())

    def aggregate(self) -> Optional[FeatureVector]:
        return FeatureVector.mean(self.samples)

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "period": self.period,
            "samples": [s.to_dict() for s in self.samples],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> Baseline:
        return Baseline(
            unit_id=data["unit_id"],
            period=data["period"],
            samples=tuple(FeatureVector.from_dict(s) for s in data.get("samples", [])),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"])
        )


# =============================================================================
# ALERTS AND SCORES
# =============================================================================

@dataclass(frozen=True)
class DriftAlert:
    """
    Alert for a tracked dimension outside its tolerance band.

    deviation is |current - baseline| for deviation-based checks and the
    current value itself for level-based checks.
    """
    alert_type: AlertType
    severity: Severity
    deviation: float
    unit_id: str
    timestamp: datetime
    message: str
    metric: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.alert_type.value,
            "severity": self.severity.value,
            "deviation": self.deviation,
            "unit_id": self.unit_id,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "metric": self.metric,
        }


@dataclass(frozen=True)
class ResonanceScore:
    """Mission resonance for one unit in one analysis cycle."""
    unit_id: str
    score: float
    deviation_from_ideal: float
    trend: Trend
    status: ResonanceStatus
    sample_count: int = 0
    computed_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "score": self.score,
            "deviation_from_ideal": self.deviation_from_ideal,
            "trend": self.trend.value,
            "status": self.status.value,
            "sample_count": self.sample_count,
            "computed_at": self.computed_at.isoformat(),
        }


@dataclass(frozen=True)
class MetricDrift:
    """Current vs. baseline comparison for one feature."""
    metric: str
    current: float
    baseline: float
    deviation: float
    direction: Trend


# =============================================================================
# BATCH RESULTS
# =============================================================================

@dataclass(frozen=True)
class UnitReport:
    """Everything the engine computed for one unit in one batch."""
    unit_id: str
    current: Optional[FeatureVector]
    baseline: Optional[FeatureVector]
    drift: Tuple[MetricDrift, ...] = field(default_factory=tuple)
    alerts: Tuple[DriftAlert, ...] = field(default_factory=tuple)
    resonance: Optional[ResonanceScore] = None
    processed: int = 0
    skipped: int = 0
    participants: int = 0  # distinct pseudonymous authors


@dataclass(frozen=True)
class BatchResult:
    """
    Output of one analysis cycle.

    failures holds per-unit errors; a failed unit never prevents the other
    units of the batch from completing.
    """
    scores: Tuple[ResonanceScore, ...]
    alerts: Tuple[DriftAlert, ...]
    units: Tuple[UnitReport, ...] = field(default_factory=tuple)
    failures: Tuple[Error, ...] = field(default_factory=tuple)
    skipped_count: int = 0
    mission_resonance_index: Optional[float] = None

    @property
    def is_success(self) -> bool:
        return not self.failures


def sort_alerts(alerts: Iterable[DriftAlert]) -> Tuple[DriftAlert, ...]:
    """Most severe first, then by unit for a stable order."""
    return tuple(sorted(alerts, key=lambda a: (-a.severity.rank, a.unit_id)))
