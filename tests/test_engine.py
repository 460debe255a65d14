"""
End-to-end tests for DriftEngine.process_batch.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from signalvault import DriftEngine, EngineConfig
from signalvault.contracts import (
    AlertType, ErrorCode, Message, PersistenceFailure, Severity, Trend,
)
from signalvault.features import FeatureExtractor, SentimentProvider, SentimentResult
from signalvault.observability import AuditEventType, ObservabilityCollector
from signalvault.storage import InMemoryKeyValueStore


T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

ALIGNED_TEXT = "Our mission matters to the team."
NEUTRAL_TEXT = "The report is ready for review."


def msg(unit_id, text, n=0, user_id="u1"):
    return Message(
        message_id=f"{unit_id}-{n}",
        unit_id=unit_id,
        text=text,
        timestamp=T0 + timedelta(minutes=n),
        user_id=user_id,
    )


class FailingBaselineStore(InMemoryKeyValueStore):
    """Refuses writes for one unit's baseline."""

    def __init__(self, bad_unit):
        super().__init__()
        self._bad_key = f"baseline:{bad_unit}"

    def put(self, key, value):
        if key == self._bad_key:
            raise PersistenceFailure(key, "put", "disk full")
        super().put(key, value)


class TestFirstCycle:

    def test_first_batch_builds_baseline_without_drift_alerts(self, make_engine):
        engine = make_engine()
        result = engine.process_batch([msg("eng", ALIGNED_TEXT, i) for i in range(3)])

        assert result.is_success
        assert result.alerts == ()
        assert engine.get_baseline("eng").sample_count == 3
        report = result.units[0]
        assert report.baseline is None
        assert report.processed == 3

    def test_empty_batch(self, make_engine):
        result = make_engine().process_batch([])
        assert result.scores == ()
        assert result.alerts == ()
        assert result.skipped_count == 0
        assert result.mission_resonance_index is None


class TestDriftAcrossCycles:

    def test_symbolic_decay_after_baseline(self, make_engine):
        engine = make_engine()
        engine.process_batch([msg("eng", ALIGNED_TEXT, i) for i in range(3)])

        result = engine.process_batch([msg("eng", NEUTRAL_TEXT, i) for i in range(3)])

        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.alert_type == AlertType.SYMBOLIC_DECAY
        assert alert.severity == Severity.CRITICAL
        assert alert.deviation == pytest.approx(100.0)

    def test_baseline_read_before_append(self, make_engine):
        engine = make_engine()
        engine.process_batch([msg("eng", ALIGNED_TEXT)])
        result = engine.process_batch([msg("eng", NEUTRAL_TEXT)])

        # Compared against the first batch only
        assert result.units[0].baseline.symbol_alignment == 100.0
        assert engine.get_baseline("eng").sample_count == 2

    def test_baseline_appends_follow_batch_order(self, make_engine):
        engine = make_engine()
        texts = [ALIGNED_TEXT, NEUTRAL_TEXT, "I think so."]
        engine.process_batch([msg("eng", t, i) for i, t in enumerate(texts)])

        extractor = FeatureExtractor()
        assert engine.get_baseline("eng").samples == tuple(extractor.extract(t) for t in texts)

    def test_reset_baseline(self, make_engine):
        engine = make_engine()
        engine.process_batch([msg("eng", ALIGNED_TEXT)])
        engine.reset_baseline("eng")

        result = engine.process_batch([msg("eng", NEUTRAL_TEXT)])
        assert result.alerts == ()
        assert engine.observability.audit.get_entries(AuditEventType.BASELINE_RESET, unit_id="eng")


class TestMessagePreparation:

    @pytest.mark.parametrize("text", ["", "   ", "<p> </p>", None])
    def test_malformed_messages_skipped(self, make_engine, text):
        engine = make_engine()
        result = engine.process_batch([msg("eng", text), msg("eng", NEUTRAL_TEXT, 1)])

        assert result.skipped_count == 1
        assert result.alerts == ()
        assert result.units[0].processed == 1
        assert engine.observability.metrics.total("messages_skipped_total") == 1.0

    def test_text_anonymized_before_extraction(self, make_engine):
        extractor = Mock(wraps=FeatureExtractor())
        engine = make_engine(extractor=extractor)

        engine.process_batch([msg("eng", "Email john@corp.com or call 555-123-4567, Sarah")])

        extractor.extract.assert_called_once_with("Email [EMAIL] or call [PHONE], [NAME]")

    def test_html_stripped(self, make_engine):
        extractor = Mock(wraps=FeatureExtractor())
        engine = make_engine(extractor=extractor)

        engine.process_batch([msg("eng", "<p>Ship <b>it</b></p>")])

        extractor.extract.assert_called_once_with("Ship it")

    def test_html_kept_when_disabled(self, make_engine):
        extractor = Mock(wraps=FeatureExtractor())
        engine = make_engine(extractor=extractor, config=EngineConfig(strip_html=False))

        engine.process_batch([msg("eng", "<b>bold</b>")])

        extractor.extract.assert_called_once_with("<b>bold</b>")

    def test_participants_counted_by_pseudonym(self, make_engine):
        engine = make_engine()
        batch = [
            msg("eng", NEUTRAL_TEXT, 0, user_id="alice"),
            msg("eng", NEUTRAL_TEXT, 1, user_id="bob"),
            msg("eng", NEUTRAL_TEXT, 2, user_id="alice"),
        ]
        assert engine.process_batch(batch).units[0].participants == 2

    def test_skipped_counted_per_unit(self, make_engine):
        engine = make_engine()
        batch = [
            msg("eng", "", 0),
            msg("eng", NEUTRAL_TEXT, 1),
            msg("ops", "   ", 2),
            msg("ops", "<p></p>", 3),
            msg("ops", NEUTRAL_TEXT, 4),
            msg("hr", "", 5),
        ]

        result = engine.process_batch(batch)

        assert {r.unit_id: r.skipped for r in result.units} == {"eng": 1, "ops": 2}
        assert result.skipped_count == 4


class TestMissionResonance:

    def test_no_mission_no_scores(self, make_engine):
        result = make_engine().process_batch([msg("eng", NEUTRAL_TEXT)])
        assert result.scores == ()
        assert result.units[0].resonance is None

    def test_scores_sorted_descending(self, make_engine, static_provider, mission):
        engine = make_engine(embedding_provider=static_provider)
        result = engine.process_batch(
            [msg("sales", "numbers", 0), msg("leadership", mission, 1)],
            mission=mission
        )

        assert [s.unit_id for s in result.scores] == ["leadership", "sales"]
        assert result.scores[0].score == pytest.approx(100.0)
        assert result.scores[1].score == pytest.approx(40.0)
        assert result.mission_resonance_index == pytest.approx(70.0)

    def test_mission_drift_alert(self, make_engine, static_provider, mission):
        engine = make_engine(embedding_provider=static_provider)
        result = engine.process_batch([msg("sales", "numbers")], mission=mission)

        assert [a.alert_type for a in result.alerts] == [AlertType.MISSION_DRIFT]
        assert result.alerts[0].severity == Severity.HIGH

    def test_stored_mission_used(self, make_engine, static_provider, mission):
        engine = make_engine(embedding_provider=static_provider)
        engine.set_mission(mission)

        result = engine.process_batch([msg("leadership", mission)])

        assert engine.get_mission() == mission
        assert result.scores[0].score == pytest.approx(100.0)

    def test_trend_across_cycles(self, make_engine, static_provider, mission):
        engine = make_engine(embedding_provider=static_provider)
        engine.process_batch([msg("eng", "numbers")], mission=mission)
        result = engine.process_batch([msg("eng", mission)], mission=mission)
        assert result.scores[0].trend == Trend.UP

    def test_provider_failure_degrades_to_neutral(self, make_engine, failing_provider):
        engine = make_engine(embedding_provider=failing_provider)
        result = engine.process_batch([msg("eng", NEUTRAL_TEXT)], mission="Serve customers")

        assert result.is_success
        assert result.scores[0].score == 50.0
        assert result.alerts == ()
        metrics = engine.observability.metrics
        assert metrics.total("provider_fallbacks_total") >= 1.0

    def test_provider_outage_raises_no_mission_alerts(self, make_engine, failing_provider, mission):
        kv = InMemoryKeyValueStore()
        engine = make_engine(embedding_provider=failing_provider, kv_store=kv)
        batch = [msg(unit, NEUTRAL_TEXT, i) for i, unit in enumerate(["eng", "ops", "sales"])]

        result = engine.process_batch(batch, mission=mission)

        assert [s.score for s in result.scores] == [50.0, 50.0, 50.0]
        assert all(s.sample_count == 0 for s in result.scores)
        assert AlertType.MISSION_DRIFT not in {a.alert_type for a in result.alerts}
        assert kv.keys("resonance:") == []


class RaisingSentiment(SentimentProvider):

    @property
    def provider_id(self) -> str:
        return "flaky-sentiment"

    def classify(self, text: str) -> SentimentResult:
        raise RuntimeError("model server 503")


class TestFailureIsolation:

    def test_sentiment_error_does_not_fail_unit(self, make_engine):
        engine = make_engine(sentiment_provider=RaisingSentiment())
        result = engine.process_batch([msg("eng", NEUTRAL_TEXT)])

        assert result.is_success
        (report,) = result.units
        assert report.processed == 1
        assert report.current.sentiment_label == "NEUTRAL"
        assert engine.get_baseline("eng").sample_count == 1
        assert engine.observability.metrics.total("provider_fallbacks_total") == 1.0

    def test_persistence_failure_isolated_to_unit(self, make_engine):
        engine = make_engine(kv_store=FailingBaselineStore("bad"))
        result = engine.process_batch([msg("bad", NEUTRAL_TEXT), msg("good", NEUTRAL_TEXT, 1)])

        assert not result.is_success
        assert [r.unit_id for r in result.units] == ["good"]
        (failure,) = result.failures
        assert failure.unit_id == "bad"
        assert failure.code == ErrorCode.PERSISTENCE_FAILURE
        assert ("operation", "put") in failure.context
        assert engine.get_baseline("good").sample_count == 1

    def test_unexpected_error_isolated_to_unit(self, make_engine):
        real = FeatureExtractor()

        def extract(text):
            if text == "explode":
                raise RuntimeError("bad tokenizer")
            return real.extract(text)

        extractor = Mock(wraps=real)
        extractor.extract.side_effect = extract
        engine = make_engine(extractor=extractor)

        result = engine.process_batch([msg("bad", "explode"), msg("good", NEUTRAL_TEXT, 1)])

        assert [r.unit_id for r in result.units] == ["good"]
        assert result.failures[0].code == ErrorCode.UNIT_CYCLE_FAILED
        assert "bad tokenizer" in result.failures[0].message


class TestAlertOrdering:

    def test_alerts_sorted_by_severity(self, make_engine, static_provider, mission):
        engine = make_engine(embedding_provider=static_provider)
        engine.process_batch([msg("a", ALIGNED_TEXT), msg("b", mission, 1)], mission=mission)

        # Both units lose their symbols (CRITICAL); b also shows pronoun imbalance
        result = engine.process_batch(
            [msg("b", "I did my part and I am done.", 2), msg("a", NEUTRAL_TEXT, 3)],
            mission=mission
        )

        ranks = [a.severity.rank for a in result.alerts]
        assert ranks == sorted(ranks, reverse=True)
        assert result.alerts[0].severity == Severity.CRITICAL


class TestParallelUnits:

    def test_parallel_matches_serial(self, make_engine):
        batch = [msg(f"unit{i % 5}", text, i) for i, text in enumerate([ALIGNED_TEXT, NEUTRAL_TEXT] * 10)]

        serial = make_engine().process_batch(batch)
        parallel = make_engine(config=EngineConfig(max_workers=4)).process_batch(batch)

        assert [r.unit_id for r in parallel.units] == [r.unit_id for r in serial.units]
        assert [r.current for r in parallel.units] == [r.current for r in serial.units]


class TestObservability:

    def test_batch_audited(self, make_engine):
        engine = make_engine()
        engine.process_batch([msg("eng", NEUTRAL_TEXT), msg("eng", "")])

        audit = engine.observability.audit
        assert len(audit.get_entries(AuditEventType.BATCH_STARTED)) == 1
        completed = audit.get_entries(AuditEventType.BATCH_COMPLETED)[0]
        assert completed.detail("skipped") == "1"
        assert audit.get_entries(AuditEventType.UNIT_PROCESSED, unit_id="eng")
        assert engine.observability.metrics.total("messages_processed_total") == 1.0

    def test_metric_series_capped_across_cycles(self, make_engine):
        engine = make_engine(observability=ObservabilityCollector(max_points=50))
        for cycle in range(200):
            engine.process_batch([msg("eng", NEUTRAL_TEXT, cycle)])

        metrics = engine.observability.metrics
        assert len(metrics.get_metric("unit_duration_ms")) == 50
        assert len(metrics.get_metric("messages_processed_total")) == 50


class TestConstruction:

    def test_extractor_and_sentiment_provider_rejected(self):
        with pytest.raises(ValueError, match="sentiment_provider"):
            DriftEngine(extractor=FeatureExtractor(), sentiment_provider=RaisingSentiment())

    def test_sentiment_provider_alone_accepted(self, make_engine):
        engine = make_engine(sentiment_provider=RaisingSentiment())
        assert isinstance(engine.extractor, FeatureExtractor)
