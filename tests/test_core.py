"""Tests for the ambient core: settings validation, log formatting, Sentry filtering."""

import json
import logging
import warnings
from pathlib import Path

import pytest

from visibility_stats.core.config import settings, validate_settings_for_production
from visibility_stats.core.exceptions import ReconstructionError, RollupUnavailableError, SentimentQueryError
from visibility_stats.core.logging import ContextFormatter, JSONFormatter
from visibility_stats.core.metrics import _normalize_path
from visibility_stats.core.sentry import before_send

PACKAGE_DIR = Path(__file__).resolve().parent.parent / "visibility_stats"


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("visibility_stats.test", logging.WARNING, __file__, 1, "Rollup unavailable", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSettingsValidation:
    def test_defaults_pass(self):
        validate_settings_for_production()

    def test_unknown_timezone(self, monkeypatch):
        monkeypatch.setattr(settings, "stats_timezone", "Mars/Olympus")
        with pytest.raises(SystemExit, match="STATS_TIMEZONE"):
            validate_settings_for_production()

    def test_cutoff_out_of_range(self, monkeypatch):
        monkeypatch.setattr(settings, "rollup_cutoff_hour", 24)
        with pytest.raises(SystemExit, match="ROLLUP_CUTOFF_HOUR"):
            validate_settings_for_production()

    def test_caps_must_be_positive(self, monkeypatch):
        monkeypatch.setattr(settings, "sentiment_record_cap", 0)
        with pytest.raises(SystemExit, match="SENTIMENT_RECORD_CAP"):
            validate_settings_for_production()

    def test_production_rejects_open_cors(self, monkeypatch):
        monkeypatch.setattr(settings, "app_env", "production")
        monkeypatch.setattr(settings, "app_debug", False)
        monkeypatch.setattr(settings, "allowed_origins", "*")
        with pytest.raises(SystemExit, match="ALLOWED_ORIGINS"):
            validate_settings_for_production()


class TestLogFormatters:
    def test_json_includes_context(self):
        payload = json.loads(JSONFormatter().format(_record(project_id="p1", phase="rollup")))
        assert payload["message"] == "Rollup unavailable"
        assert (payload["project_id"], payload["phase"]) == ("p1", "rollup")
        assert "start_date" not in payload

    def test_text_appends_context(self):
        line = ContextFormatter("%(levelname)s %(message)s").format(_record(phase="supplement"))
        assert line == "WARNING Rollup unavailable [phase=supplement]"

    def test_text_without_context(self):
        assert ContextFormatter("%(message)s").format(_record()) == "Rollup unavailable"


class TestSentryFilter:
    def test_recovered_rollup_errors_dropped(self):
        exc = RollupUnavailableError("boom")
        assert before_send({}, {"exc_info": (type(exc), exc, None)}) is None

    @pytest.mark.parametrize("error", [ReconstructionError, SentimentQueryError])
    def test_engine_errors_grouped_by_phase(self, error):
        exc = error("boom")
        event = before_send({}, {"exc_info": (type(exc), exc, None)})
        assert event["tags"]["stats.phase"] == exc.phase
        assert event["fingerprint"] == ["stats-query-error", exc.phase]

    def test_other_events_untouched(self):
        assert before_send({"message": "hi"}, {}) == {"message": "hi"}


class TestMetricsPaths:
    def test_project_id_collapsed(self):
        assert _normalize_path("/api/v1/stats/1b9d6bcd/daily") == "/api/v1/stats/{id}/daily"
        assert _normalize_path("/api/v1/health") == "/api/v1/health"


class TestSources:
    def test_modules_compile_without_warnings(self):
        sources = sorted(PACKAGE_DIR.rglob("*.py"))
        assert sources
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            for path in sources:
                compile(path.read_text(encoding="utf-8"), str(path), "exec")
