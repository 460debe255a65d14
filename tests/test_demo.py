"""
Tests for the sample generator and the demo runner.
"""

import json
from datetime import datetime, timezone

import run_demo
from signalvault.demo import SAMPLE_TEXTS, UNITS, generate_messages


NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)


class TestGenerateMessages:

    def test_deterministic(self):
        assert generate_messages(20, seed=7, now=NOW) == generate_messages(20, seed=7, now=NOW)

    def test_seed_changes_batch(self):
        assert generate_messages(20, seed=1, now=NOW) != generate_messages(20, seed=2, now=NOW)

    def test_newest_first_within_a_day(self):
        messages = generate_messages(30, now=NOW)
        stamps = [m.timestamp for m in messages]
        assert stamps == sorted(stamps, reverse=True)
        assert all((NOW - s).total_seconds() <= 24 * 60 * 60 for s in stamps)

    def test_fields_from_samples(self):
        for message in generate_messages(15, now=NOW):
            assert message.unit_id in UNITS
            assert message.text in SAMPLE_TEXTS


class TestRunDemo:

    def test_prints_json_summary(self, capsys):
        assert run_demo.main(["--cycles", "2", "--messages", "12"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert [c["cycle"] for c in report["cycles"]] == [0, 1]
        first = report["cycles"][0]
        assert first["failures"] == []
        assert first["scores"]
        # No drift alerts before a baseline exists
        assert all(a["type"] == "mission_drift" for a in first["alerts"])
