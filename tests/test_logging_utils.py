"""
Tests for adherence_index.logging_utils.

Tests cover:
- JSONL file per script run
- Classification counts (missing counted separately)
- Warning events for undefined z-scores and non-numeric estimates
- Run start / run complete events
"""

import sys
import json
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pandas as pd

from adherence_index.logging_utils import (
    generate_run_id,
    get_logger,
    log_non_numeric,
    log_run_banner,
    log_run_complete,
    log_sign_counts,
    log_undefined_zscore,
)


@pytest.fixture
def run_logger(tmp_path):
    """A fresh logger writing to tmp_path; returns (logger, log_file)."""
    run_id = generate_run_id()
    logger = get_logger("logging_test", run_id, log_dir=tmp_path)
    return logger, tmp_path / f"logging_test_{run_id}.jsonl"


def _events(log_file, event_type):
    entries = [json.loads(line) for line in log_file.read_text().splitlines()]
    return [e for e in entries if e.get("event_type") == event_type]


class TestGetLogger:

    def test_writes_init_event(self, run_logger):
        logger, log_file = run_logger
        assert log_file.exists()
        assert len(_events(log_file, "logger_init")) == 1

    def test_same_key_returns_same_logger(self, tmp_path):
        run_id = generate_run_id()
        first = get_logger("logging_cache", run_id, log_dir=tmp_path)
        assert get_logger("logging_cache", run_id, log_dir=tmp_path) is first


class TestLogSignCounts:

    def test_counts_each_sign(self, run_logger):
        logger, log_file = run_logger
        signs = pd.Series([1, 0, -1, pd.NA, 1], dtype="Int64")

        counts = log_sign_counts(logger, "measure", signs, "Classified:")

        assert counts == {"better": 2, "no_diff": 1, "worse": 1, "missing": 1}
        events = _events(log_file, "classification_counts")
        assert events[-1]["context"]["stage"] == "measure"
        assert events[-1]["context"]["counts"] == counts

    def test_empty_series(self, run_logger):
        logger, _ = run_logger
        counts = log_sign_counts(logger, "index", pd.Series([], dtype="Int64"), "Labels:")
        assert sum(counts.values()) == 0


class TestWarnings:

    def test_undefined_zscore(self, run_logger):
        logger, log_file = run_logger
        log_undefined_zscore(logger, "recommendation", [4, 7])

        event = _events(log_file, "undefined_zscore")[-1]
        assert event["level"] == "WARNING"
        assert event["context"] == {"stage": "recommendation", "keys": [4, 7]}

    def test_non_numeric(self, run_logger):
        logger, log_file = run_logger
        log_non_numeric(logger, 3, ["mammography"])

        event = _events(log_file, "non_numeric_estimates")[-1]
        assert event["level"] == "WARNING"
        assert event["context"]["n_values"] == 3
        assert event["context"]["measures"] == ["mammography"]


class TestRunEvents:

    def test_banner_and_complete(self, run_logger):
        logger, log_file = run_logger
        log_run_banner(logger, "01_reshape_measures", "r1")
        log_run_complete(logger, "01_reshape_measures", neighborhoods=8)

        start = _events(log_file, "run_start")[-1]
        assert start["context"]["script_name"] == "01_reshape_measures"
        complete = _events(log_file, "run_complete")[-1]
        assert complete["context"]["neighborhoods"] == 8
        assert complete["level"] == logging.getLevelName(logging.INFO)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
