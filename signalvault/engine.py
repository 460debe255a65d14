"""
Engine Orchestration Module

The single entry point external collaborators call. Coordinates
anonymization, feature extraction, baseline update, drift detection and
mission resonance for one batch of messages.

DESIGN PRINCIPLES:
==================
1. Components communicate ONLY through contracts
2. Providers and persistence are injected, never global
3. Units are independent: one unit's failure never fails another
4. Within a unit, baseline appends follow batch order
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence
import logging
import time

from .anonymization import Anonymizer, strip_html
from .config import EngineConfig
from .contracts import (
    Baseline, BatchResult, DriftAlert, Error, ErrorCode, FeatureVector,
    MalformedMessage, Message, PersistenceFailure, UnitReport,
    sort_alerts, utc_now,
)
from .drift import DriftDetector
from .embeddings import EmbeddingScorer, EmbeddingProvider, build_provider
from .features import FeatureExtractor
from .features.sentiment import SentimentProvider
from .observability import AuditEventType, ObservabilityCollector
from .resonance import (
    MissionStore, ResonanceHistory, ResonanceScorer, mission_resonance_index,
)
from .storage import BaselineStore, KeyValueStore, build_kv_store


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PreparedMessage:
    """Message after HTML stripping and anonymization."""
    message_id: str
    unit_id: str
    text: str
    user_id: str


@dataclass(frozen=True)
class _UnitOutcome:
    report: Optional[UnitReport] = None
    error: Optional[Error] = None


class DriftEngine:
    """
    Temporal linguistic drift engine.

    Construct once with the providers of the deployment and pass the
    instance to whatever schedules analysis cycles.

    FLOW PER BATCH:
    ===============
    1. Strip markup, anonymize text and user ids
    2. Skip malformed messages (counted, not alerted)
    3. Group by unit, keeping batch order
    4. Per unit: extract -> read aggregate -> detect -> append -> resonance

    A supplied extractor owns its sentiment provider, so passing both
    extractor and sentiment_provider raises ValueError.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        extractor: Optional[FeatureExtractor] = None,
        embedding_provider: Optional[EmbeddingProvider] = None,
        sentiment_provider: Optional[SentimentProvider] = None,
        kv_store: Optional[KeyValueStore] = None,
        observability: Optional[ObservabilityCollector] = None
    ):
        if extractor is not None and sentiment_provider is not None:
            raise ValueError(
                "Pass sentiment_provider to the FeatureExtractor when supplying an extractor"
            )

        self._config = config or EngineConfig()
        self._observability = observability or ObservabilityCollector()
        on_fallback = self._observability.provider_fallback

        self._anonymizer = Anonymizer(self._config.anonymizer)
        self._extractor = extractor or FeatureExtractor(
            self._config.features,
            sentiment_provider=sentiment_provider,
            on_fallback=on_fallback
        )

        self._kv = kv_store if kv_store is not None else build_kv_store(self._config.storage)
        self._baselines = BaselineStore(self._kv, max_samples=self._config.storage.max_samples)
        self._missions = MissionStore(self._kv)

        self._detector = DriftDetector(self._config.drift)
        self._embeddings = EmbeddingScorer(
            embedding_provider or build_provider(self._config.embedding),
            on_fallback=on_fallback
        )
        self._resonance = ResonanceScorer(
            self._embeddings,
            self._config.resonance,
            history=ResonanceHistory(self._kv)
        )

    # =========================================================================
    # BATCH INTERFACE
    # =========================================================================

    def process_batch(
        self,
        messages: Sequence[Message],
        mission: Optional[str] = None
    ) -> BatchResult:
        """
        Run one analysis cycle.

        mission overrides the stored mission statement; with neither,
        resonance is not computed and no scores are returned.
        """
        audit = self._observability.audit
        metrics = self._observability.metrics
        audit.record(AuditEventType.BATCH_STARTED, messages=len(messages))

        grouped, skipped_by_unit = self._prepare(messages)
        skipped = sum(skipped_by_unit.values())

        if mission is None:
            mission = self._safe_mission()

        def run(uid: str) -> _UnitOutcome:
            return self._process_unit(uid, grouped[uid], mission, skipped_by_unit.get(uid, 0))

        unit_ids = list(grouped)
        if self._config.max_workers > 1 and len(unit_ids) > 1:
            with ThreadPoolExecutor(max_workers=self._config.max_workers) as pool:
                outcomes = list(pool.map(run, unit_ids))
        else:
            outcomes = [run(uid) for uid in unit_ids]

        reports = [o.report for o in outcomes if o.report is not None]
        failures = tuple(o.error for o in outcomes if o.error is not None)

        alerts: List[DriftAlert] = []
        for report in reports:
            alerts.extend(report.alerts)
        sorted_alerts = sort_alerts(alerts)

        scores = tuple(
            sorted(
                (r.resonance for r in reports if r.resonance is not None),
                key=lambda s: -s.score
            )
        )
        mri = mission_resonance_index(scores)
        if mri is not None:
            metrics.record("mission_resonance_index", mri)

        for alert in sorted_alerts:
            metrics.record(
                "alerts_emitted_total", 1.0,
                {"type": alert.alert_type.value, "severity": alert.severity.value}
            )

        audit.record(
            AuditEventType.BATCH_COMPLETED,
            units=len(reports),
            failures=len(failures),
            skipped=skipped,
            alerts=len(sorted_alerts)
        )
        logger.info(
            "Batch complete: %d unit(s), %d alert(s), %d skipped, %d failure(s)",
            len(reports), len(sorted_alerts), skipped, len(failures)
        )

        return BatchResult(
            scores=scores,
            alerts=sorted_alerts,
            units=tuple(reports),
            failures=failures,
            skipped_count=skipped,
            mission_resonance_index=mri
        )

    def _prepare(self, messages: Sequence[Message]):
        """Normalize and anonymize; returns (unit -> messages in order, unit -> skipped count)."""
        grouped: Dict[str, List[_PreparedMessage]] = {}
        skipped: Dict[str, int] = {}

        for message in messages:
            text = message.text
            if self._config.strip_html and isinstance(text, str):
                text = strip_html(text)
            text = self._anonymizer.anonymize_text(text)

            try:
                replace(message, text=text).validate()
            except MalformedMessage as exc:
                skipped[message.unit_id] = skipped.get(message.unit_id, 0) + 1
                self._observability.audit.record(
                    AuditEventType.MESSAGE_SKIPPED,
                    unit_id=message.unit_id,
                    message_id=message.message_id,
                    reason=exc.reason
                )
                self._observability.metrics.record("messages_skipped_total", 1.0)
                continue

            grouped.setdefault(message.unit_id, []).append(_PreparedMessage(
                message_id=message.message_id,
                unit_id=message.unit_id,
                text=text,
                user_id=self._anonymizer.anonymize_user_id(message.user_id)
            ))

        return grouped, skipped

    def _process_unit(
        self,
        unit_id: str,
        messages: List[_PreparedMessage],
        mission: Optional[str],
        skipped: int = 0
    ) -> _UnitOutcome:
        """One unit's cycle. Never raises: failures come back as Error data."""
        started = time.perf_counter()
        metrics = self._observability.metrics

        try:
            vectors = [self._extractor.extract(m.text) for m in messages]
            current = FeatureVector.mean(vectors)

            with self._baselines.exclusive(unit_id):
                baseline = self._baselines.get_aggregate(unit_id)
                alerts = list(self._detector.detect(current, baseline, unit_id))
                drift = self._detector.report(current, baseline)

                for vector in vectors:
                    self._baselines.append_locked(unit_id, vector)

            resonance = None
            if mission:
                outcome = self._resonance.score([m.text for m in messages], mission, unit_id)
                resonance = outcome.score
                if outcome.alert is not None:
                    alerts.append(outcome.alert)

        except PersistenceFailure as exc:
            logger.warning("Unit %s failed on persistence: %s", unit_id, exc)
            metrics.record("persistence_failures_total", 1.0, {"unit_id": unit_id})
            return self._failed(unit_id, ErrorCode.PERSISTENCE_FAILURE, str(exc), operation=exc.operation)
        except Exception as exc:
            logger.exception("Unit %s cycle failed", unit_id)
            return self._failed(unit_id, ErrorCode.UNIT_CYCLE_FAILED, f"{type(exc).__name__}: {exc}")

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        metrics.record("unit_duration_ms", elapsed_ms, {"unit_id": unit_id})
        metrics.record("messages_processed_total", float(len(vectors)), {"unit_id": unit_id})

        self._observability.audit.record(
            AuditEventType.UNIT_PROCESSED,
            unit_id=unit_id,
            messages=len(vectors),
            alerts=len(alerts),
            had_baseline=baseline is not None
        )
        for alert in alerts:
            self._observability.audit.record(
                AuditEventType.ALERT_EMITTED,
                unit_id=unit_id,
                type=alert.alert_type.value,
                severity=alert.severity.value
            )

        return _UnitOutcome(report=UnitReport(
            unit_id=unit_id,
            current=current,
            baseline=baseline,
            drift=drift,
            alerts=sort_alerts(alerts),
            resonance=resonance,
            processed=len(vectors),
            skipped=skipped,
            participants=len({m.user_id for m in messages})
        ))

    def _failed(self, unit_id: str, code: ErrorCode, message: str, **context: str) -> _UnitOutcome:
        error = Error(
            code=code,
            message=message,
            timestamp=utc_now(),
            unit_id=unit_id,
            context=tuple(sorted(context.items()))
        )
        self._observability.audit.record(
            AuditEventType.UNIT_FAILED, unit_id=unit_id, code=code.name, message=message
        )
        return _UnitOutcome(error=error)

    def _safe_mission(self) -> Optional[str]:
        try:
            return self._missions.get()
        except PersistenceFailure as exc:
            logger.warning("Stored mission unavailable, skipping resonance: %s", exc)
            return None

    # =========================================================================
    # MISSION & BASELINE MANAGEMENT
    # =========================================================================

    def set_mission(self, text: str) -> None:
        self._missions.set(text)

    def get_mission(self) -> Optional[str]:
        return self._missions.get()

    def get_baseline(self, unit_id: str) -> Optional[Baseline]:
        return self._baselines.get(unit_id)

    def reset_baseline(self, unit_id: str) -> None:
        self._baselines.reset(unit_id)
        self._observability.audit.record(AuditEventType.BASELINE_RESET, unit_id=unit_id)

    # =========================================================================
    # DIRECT COMPONENT ACCESS
    # =========================================================================

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def anonymizer(self) -> Anonymizer:
        return self._anonymizer

    @property
    def extractor(self) -> FeatureExtractor:
        return self._extractor

    @property
    def baselines(self) -> BaselineStore:
        return self._baselines

    @property
    def detector(self) -> DriftDetector:
        return self._detector

    @property
    def embeddings(self) -> EmbeddingScorer:
        return self._embeddings

    @property
    def resonance(self) -> ResonanceScorer:
        return self._resonance

    @property
    def observability(self) -> ObservabilityCollector:
        return self._observability
