"""
Drift detection against a unit's own baseline.

Read-only: compares a current FeatureVector with a baseline aggregate and
produces alerts and a per-metric report. Thresholds come from
DriftThresholds; nothing here is decided per call.
"""

from __future__ import annotations
from datetime import datetime
from typing import List, Optional, Tuple
import logging

from ..config import DriftThresholds
from ..contracts import (
    AlertType, DriftAlert, FeatureVector, MetricDrift, Severity, Trend,
    utc_now,
)


logger = logging.getLogger(__name__)

STABLE_EPSILON = 1e-9


class DriftDetector:
    """Detect drift of current language features from a unit's baseline."""

    def __init__(self, thresholds: Optional[DriftThresholds] = None):
        self._t = thresholds or DriftThresholds()

    @property
    def thresholds(self) -> DriftThresholds:
        return self._t

    def detect(
        self,
        current: FeatureVector,
        baseline: Optional[FeatureVector],
        unit_id: str,
        now: Optional[datetime] = None
    ) -> Tuple[DriftAlert, ...]:
        """
        One alert per violated dimension, no cross-dimension suppression.

        No baseline means no history, and no history means no alerts.
        """
        if baseline is None:
            return ()

        now = now or utc_now()
        t = self._t
        alerts: List[DriftAlert] = []

        symbolic = abs(current.symbol_alignment - baseline.symbol_alignment)
        severity = self._tier(symbolic, (
            (t.symbol_critical, Severity.CRITICAL),
            (t.symbol_high, Severity.HIGH),
            (t.symbol_medium, Severity.MEDIUM),
        ))
        if severity is not None:
            alerts.append(DriftAlert(
                alert_type=AlertType.SYMBOLIC_DECAY,
                severity=severity,
                deviation=symbolic,
                unit_id=unit_id,
                timestamp=now,
                message=f"Symbolic alignment has drifted {symbolic:.1f}% from baseline",
                metric="symbol_alignment"
            ))

        metaphor = abs(current.metaphor_density - baseline.metaphor_density)
        severity = self._tier(metaphor, (
            (t.metaphor_high, Severity.HIGH),
            (t.metaphor_medium, Severity.MEDIUM),
        ))
        if severity is not None:
            alerts.append(DriftAlert(
                alert_type=AlertType.SYMBOLIC_DECAY,
                severity=severity,
                deviation=metaphor,
                unit_id=unit_id,
                timestamp=now,
                message=f"Metaphor density showing {metaphor:.1f}% deviation",
                metric="metaphor_density"
            ))

        ratio = current.pronoun_ratio
        severity = self._tier(ratio, (
            (t.pronoun_ratio_high, Severity.HIGH),
            (t.pronoun_ratio_medium, Severity.MEDIUM),
        ))
        if severity is not None:
            alerts.append(DriftAlert(
                alert_type=AlertType.PRONOUN_FRAGMENTATION,
                severity=severity,
                deviation=ratio,
                unit_id=unit_id,
                timestamp=now,
                message=(
                    "Individual vs collective pronoun imbalance detected "
                    f"(ratio: {ratio:.2f})"
                ),
                metric="pronoun_ratio"
            ))

        fragmentation = current.emotional_fragmentation
        severity = self._tier(fragmentation, (
            (t.fragmentation_critical, Severity.CRITICAL),
            (t.fragmentation_high, Severity.HIGH),
        ))
        if severity is not None:
            alerts.append(DriftAlert(
                alert_type=AlertType.TONE_COLLAPSE,
                severity=severity,
                deviation=fragmentation,
                unit_id=unit_id,
                timestamp=now,
                message=f"Emotional tone fragmentation at {fragmentation:.1f}%",
                metric="emotional_fragmentation"
            ))

        if alerts:
            logger.debug("Unit %s: %d drift alert(s)", unit_id, len(alerts))
        return tuple(alerts)

    def report(
        self,
        current: FeatureVector,
        baseline: Optional[FeatureVector]
    ) -> Tuple[MetricDrift, ...]:
        """Current vs. baseline for every numeric feature. Empty without a baseline."""
        if baseline is None:
            return ()

        drift = []
        for name, value in current.numeric_items():
            reference = getattr(baseline, name)
            delta = value - reference
            if abs(delta) < STABLE_EPSILON:
                direction = Trend.STABLE
            else:
                direction = Trend.UP if delta > 0 else Trend.DOWN
            drift.append(MetricDrift(
                metric=name,
                current=value,
                baseline=reference,
                deviation=abs(delta),
                direction=direction
            ))
        return tuple(drift)

    @staticmethod
    def _tier(value: float, tiers) -> Optional[Severity]:
        """Severity of the first threshold that value strictly exceeds; tiers run high to low."""
        for threshold, severity in tiers:
            if value > threshold:
                return severity
        return None


__all__ = ['DriftDetector', 'STABLE_EPSILON']
