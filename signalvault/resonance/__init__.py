"""
Mission Resonance

Aggregates embedding similarity between a unit's messages and the mission
statement into a 0-100 index, classifies alignment, and raises a
mission_drift alert below the alert threshold.

Trend is deterministic: the score is compared with the previous cycle's
score for the same unit, kept in ResonanceHistory.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
import logging

from ..config import ResonanceConfig
from ..contracts import (
    AlertType, DriftAlert, ResonanceScore, ResonanceStatus, Severity, Trend,
    utc_now,
)
from ..embeddings import EmbeddingScorer, NEUTRAL_RESONANCE
from ..storage import KeyValueStore


logger = logging.getLogger(__name__)

RESONANCE_PREFIX = "resonance:"
MISSION_KEY = "mission"

SEVERITY_DESCRIPTIONS = {
    Severity.CRITICAL: "fundamental disconnection from core mission",
    Severity.HIGH: "significant linguistic drift from organizational purpose",
    Severity.MEDIUM: "emerging misalignment with mission principles",
    Severity.LOW: "minor deviation from mission-aligned language",
}


# =============================================================================
# PERSISTED STATE
# =============================================================================

class ResonanceHistory:
    """Last recorded resonance score per unit; the reference point for trend."""

    def __init__(self, kv_store: KeyValueStore):
        self._kv = kv_store

    def previous(self, unit_id: str) -> Optional[float]:
        data = self._kv.get(f"{RESONANCE_PREFIX}{unit_id}")
        if data is None:
            return None
        return float(data["score"])

    def record(self, score: ResonanceScore) -> None:
        self._kv.put(f"{RESONANCE_PREFIX}{score.unit_id}", score.to_dict())


class MissionStore:
    """The organization's mission statement."""

    def __init__(self, kv_store: KeyValueStore):
        self._kv = kv_store

    def get(self) -> Optional[str]:
        data = self._kv.get(MISSION_KEY)
        if data is None:
            return None
        return data.get("text") or None

    def set(self, text: str) -> None:
        if not text or not text.strip():
            raise ValueError("Mission statement must be non-empty")
        self._kv.put(MISSION_KEY, {"text": text.strip(), "updated_at": utc_now().isoformat()})


# =============================================================================
# CLASSIFICATION
# =============================================================================

def classify_status(score: float, config: ResonanceConfig) -> ResonanceStatus:
    if score >= config.aligned_at:
        return ResonanceStatus.ALIGNED
    if score >= config.drifting_at:
        return ResonanceStatus.DRIFTING
    return ResonanceStatus.CRITICAL


def alert_severity(score: float, config: ResonanceConfig) -> Optional[Severity]:
    """None at or above the alert threshold."""
    if score >= config.alert_threshold:
        return None
    if score < config.critical_below:
        return Severity.CRITICAL
    if score < config.high_below:
        return Severity.HIGH
    if score < config.medium_below:
        return Severity.MEDIUM
    return Severity.LOW


def trend_against(score: float, previous: Optional[float], tolerance: float) -> Trend:
    if previous is None:
        return Trend.STABLE
    if score > previous + tolerance:
        return Trend.UP
    if score < previous - tolerance:
        return Trend.DOWN
    return Trend.STABLE


def mission_resonance_index(scores: Sequence[ResonanceScore]) -> Optional[float]:
    """Organization-wide mean of unit scores; None when nothing was scored."""
    if not scores:
        return None
    return sum(s.score for s in scores) / len(scores)


# =============================================================================
# SCORER
# =============================================================================

@dataclass(frozen=True)
class ResonanceOutcome:
    score: ResonanceScore
    alert: Optional[DriftAlert] = None


class ResonanceScorer:
    """Mission resonance for one unit per cycle."""

    def __init__(
        self,
        embedding_scorer: EmbeddingScorer,
        config: Optional[ResonanceConfig] = None,
        history: Optional[ResonanceHistory] = None
    ):
        self._embeddings = embedding_scorer
        self._config = config or ResonanceConfig()
        self._history = history

    def score(
        self,
        unit_texts: Sequence[str],
        mission: str,
        unit_id: str,
        previous: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> ResonanceOutcome:
        """
        Average mission resonance over the unit's most recent texts.

        previous overrides the stored history as the trend reference. When
        a history is attached the new score is recorded after scoring.

        Only texts the provider actually scored are averaged. With none, the
        score is the neutral placeholder: stable trend, no alert, and nothing
        recorded, so the next real score is compared with the last real one.
        """
        now = now or utc_now()
        texts = [t for t in unit_texts if t and t.strip()]
        if self._config.max_texts_per_unit > 0:
            texts = texts[-self._config.max_texts_per_unit:]

        values = [
            value for value in (self._embeddings.score_mission(t, mission) for t in texts)
            if value is not None
        ]

        if not values:
            if texts:
                logger.warning("No mission resonance measured for unit %s; reporting neutral", unit_id)
            return ResonanceOutcome(score=self._neutral(unit_id, now))

        average = sum(values) / len(values)

        if previous is None and self._history is not None:
            previous = self._history.previous(unit_id)

        result = ResonanceScore(
            unit_id=unit_id,
            score=average,
            deviation_from_ideal=abs(average - self._config.ideal_score),
            trend=trend_against(average, previous, self._config.trend_tolerance),
            status=classify_status(average, self._config),
            sample_count=len(values),
            computed_at=now
        )

        if self._history is not None:
            self._history.record(result)

        return ResonanceOutcome(score=result, alert=self._alert(result, now))

    def _neutral(self, unit_id: str, now: datetime) -> ResonanceScore:
        return ResonanceScore(
            unit_id=unit_id,
            score=NEUTRAL_RESONANCE,
            deviation_from_ideal=abs(NEUTRAL_RESONANCE - self._config.ideal_score),
            trend=Trend.STABLE,
            status=classify_status(NEUTRAL_RESONANCE, self._config),
            sample_count=0,
            computed_at=now
        )

    def _alert(self, result: ResonanceScore, now: datetime) -> Optional[DriftAlert]:
        severity = alert_severity(result.score, self._config)
        if severity is None:
            return None

        logger.info(
            "Mission drift for unit %s: %.1f (%s)", result.unit_id, result.score, severity.value
        )
        return DriftAlert(
            alert_type=AlertType.MISSION_DRIFT,
            severity=severity,
            deviation=self._config.alert_threshold - result.score,
            unit_id=result.unit_id,
            timestamp=now,
            message=(
                f"{result.unit_id} showing {SEVERITY_DESCRIPTIONS[severity]} "
                f"({result.score:.1f}% resonance)"
            ),
            metric="mission_resonance"
        )


__all__ = [
    'ResonanceScorer', 'ResonanceOutcome', 'ResonanceHistory', 'MissionStore',
    'classify_status', 'alert_severity', 'trend_against', 'mission_resonance_index',
    'SEVERITY_DESCRIPTIONS', 'RESONANCE_PREFIX', 'MISSION_KEY',
]
