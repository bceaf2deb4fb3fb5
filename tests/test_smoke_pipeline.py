"""
Smoke tests for the full pipeline on a small sample.

These tests verify that:
- Raw CSVs load, reshape and score end to end
- Intermediate tables survive a Parquet round trip and still validate
- Metadata sidecars and JSONL logs are written
- Final report tables have the expected structure

Run with: pytest tests/ -v -m smoke
"""

import sys
import json
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pandas as pd

from adherence_index.hashing import write_metadata_sidecar
from adherence_index.index_builder import IndexMembership, build_adherence_index
from adherence_index.io_utils import (
    atomic_write_csv, atomic_write_json, atomic_write_parquet, read_json, read_parquet,
)
from adherence_index.loader import read_data_dictionary, read_measure_table
from adherence_index.logging_utils import generate_run_id, get_logger
from adherence_index.qa import run_index_qa_checks
from adherence_index.reporting import (
    attach_outcomes, build_summary_statistics, recommendation_classes_wide, summarize_index_labels,
)
from adherence_index.reshape import reshape_measures_long
from adherence_index.schemas import validate_schema


pytestmark = pytest.mark.smoke

SAMPLE_PARAMS = {
    "inputs": {
        "id_column": "neighborhood_id",
        "name_column": "neighborhood_name",
        "dictionary_columns": {"recommendation_description": "recommendation"},
    },
    "outcome_columns": ["cancer_mortality_rate", "cancer_mortality_rank"],
    "indices": {
        "lifestyle": {"label": "Lifestyle guidelines", "recommendations": [1, 2, 3]},
        "preventive": {"label": "Preventive-service guidelines", "recommendations": [5, 6]},
    },
}


@pytest.fixture
def pipeline_run(tmp_path, write_sample_inputs):
    """Run steps 01-03 against tmp_path and return the output locations."""
    run_id = generate_run_id()
    logger = get_logger("smoke_pipeline", run_id, log_dir=tmp_path / "logs")
    inputs = SAMPLE_PARAMS["inputs"]
    measures_path, dictionary_path = write_sample_inputs()

    # 01: reshape
    measures_wide = read_measure_table(measures_path, logger=logger)
    dictionary = read_data_dictionary(dictionary_path, inputs["dictionary_columns"], logger=logger)
    measures_long = reshape_measures_long(
        measures_wide, dictionary,
        exclude_columns=SAMPLE_PARAMS["outcome_columns"], logger=logger,
    )
    long_path = atomic_write_parquet(tmp_path / "measures" / "measures_long.parquet", measures_long)
    write_metadata_sidecar(long_path, run_id, input_files=[measures_path, dictionary_path],
                           row_count=len(measures_long))

    # 02: build
    measures_long = read_parquet(long_path)
    membership = IndexMembership.from_params(SAMPLE_PARAMS)
    result = build_adherence_index(measures_long, membership, logger=logger)
    run_index_qa_checks(
        measures_long, result.measure_classifications, result.recommendation_scores,
        result.index_scores, result.neighborhood_indices, logger=logger,
    )
    index_dir = tmp_path / "index"
    for name, df in {
        "measure_classifications": result.measure_classifications,
        "recommendation_scores": result.recommendation_scores,
        "index_scores_long": result.index_scores,
        "neighborhood_indices": result.neighborhood_indices,
    }.items():
        atomic_write_parquet(index_dir / f"{name}.parquet", df)

    # 03: report
    neighborhood_indices = read_parquet(index_dir / "neighborhood_indices.parquet")
    recommendation_scores = read_parquet(index_dir / "recommendation_scores.parquet")
    final_dir = tmp_path / "final"
    atomic_write_csv(
        final_dir / "neighborhood_adherence_index.csv",
        attach_outcomes(neighborhood_indices, measures_wide, SAMPLE_PARAMS["outcome_columns"]),
    )
    atomic_write_csv(final_dir / "recommendation_classes.csv",
                     recommendation_classes_wide(recommendation_scores))
    atomic_write_csv(final_dir / "index_label_counts.csv",
                     summarize_index_labels(neighborhood_indices, membership.index_ids))
    summary_path = atomic_write_json(
        final_dir / "summary_statistics.json",
        build_summary_statistics(neighborhood_indices, recommendation_scores,
                                 membership.index_ids, result.undefined_recommendations),
    )
    write_metadata_sidecar(summary_path, run_id, input_files=[index_dir / "neighborhood_indices.parquet"])

    for handler in logger.handlers:
        handler.flush()

    return {"root": tmp_path, "run_id": run_id, "long_path": long_path,
            "index_dir": index_dir, "final_dir": final_dir}


class TestOutputFilesExist:
    """Verify expected output files exist."""

    def test_measures_long_and_sidecar(self, pipeline_run):
        assert pipeline_run["long_path"].exists()
        sidecar = pipeline_run["long_path"].parent / "measures_long_metadata.json"
        metadata = read_json(sidecar)
        assert metadata["run_id"] == pipeline_run["run_id"]
        assert metadata["row_count"] == 63
        assert set(metadata["input_file_hashes"]) == {"neighborhood_measures.csv", "data_dictionary.csv"}
        assert "output_hash" in metadata

    def test_index_tables(self, pipeline_run):
        for name in ["measure_classifications", "recommendation_scores",
                     "index_scores_long", "neighborhood_indices"]:
            assert (pipeline_run["index_dir"] / f"{name}.parquet").exists()

    def test_final_tables(self, pipeline_run):
        for name in ["neighborhood_adherence_index.csv", "recommendation_classes.csv",
                     "index_label_counts.csv", "summary_statistics.json"]:
            assert (pipeline_run["final_dir"] / name).exists()

    def test_no_tmp_files_left(self, pipeline_run):
        assert not list(pipeline_run["root"].rglob("*.tmp"))


class TestRoundTrip:
    """Parquet round trips keep nullable dtypes and schemas."""

    @pytest.mark.parametrize("name", [
        "measure_classifications", "recommendation_scores",
        "index_scores_long", "neighborhood_indices",
    ])
    def test_tables_validate_after_read(self, pipeline_run, name):
        df = read_parquet(pipeline_run["index_dir"] / f"{name}.parquet")
        validate_schema(df, name)

    def test_zscore_dtype_preserved(self, pipeline_run):
        df = read_parquet(pipeline_run["index_dir"] / "recommendation_scores.parquet")
        assert str(df["rec_zscore"].dtype) == "Float64"


class TestFinalTables:
    """Verify the reporter-facing tables."""

    def test_neighborhood_table(self, pipeline_run):
        df = pd.read_csv(pipeline_run["final_dir"] / "neighborhood_adherence_index.csv",
                         dtype={"neighborhood_id": str})
        assert len(df) == 8
        assert "Overall Philadelphia" not in set(df["neighborhood_name"])
        assert "cancer_mortality_rate" in df.columns
        assert set(df["lifestyle_label"].dropna()) <= {"Better", "Worse", "No Diff"}

    def test_label_counts(self, pipeline_run):
        df = pd.read_csv(pipeline_run["final_dir"] / "index_label_counts.csv")
        assert df.groupby("index_id")["n_neighborhoods"].sum().tolist() == [8, 8]

    def test_summary_json(self, pipeline_run):
        with open(pipeline_run["final_dir"] / "summary_statistics.json") as f:
            summary = json.load(f)
        assert set(summary["indices"]) == {"lifestyle", "preventive"}
        assert summary["metadata"]["n_neighborhoods"] == 8

    def test_summary_provenance_in_sidecar(self, pipeline_run):
        sidecar = read_json(pipeline_run["final_dir"] / "summary_statistics_metadata.json")
        assert sidecar["run_id"] == pipeline_run["run_id"]
        with open(pipeline_run["final_dir"] / "summary_statistics.json") as f:
            assert "run_id" not in json.load(f)["metadata"]


class TestLogging:
    """The JSONL log records the run."""

    def test_jsonl_log_written(self, pipeline_run):
        log_file = pipeline_run["root"] / "logs" / f"smoke_pipeline_{pipeline_run['run_id']}.jsonl"
        assert log_file.exists()

        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert all(e["run_id"] == pipeline_run["run_id"] for e in entries)
        event_types = {e.get("event_type") for e in entries}
        assert "logger_init" in event_types
        assert "qa_check" in event_types


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-m", "smoke"])
