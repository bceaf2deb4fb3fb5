#!/usr/bin/env python3
"""
03_build_report_tables.py

Assemble the tables consumed by the maps, manuscript tables and the
mortality comparison.

Pipeline Step: 03

This script:
1. Joins mortality outcome columns onto the neighborhood index table
2. Pivots recommendation classifications to one column per recommendation
3. Counts neighborhoods per index label
4. Writes a JSON run summary

Inputs:
    - data/processed/index/neighborhood_indices.parquet
    - data/processed/index/recommendation_scores.parquet
    - data/raw/<inputs.measures_file> (outcome columns)
    - configs/params.yml

Outputs:
    - data/final/neighborhood_adherence_index.csv
    - data/final/recommendation_classes.csv
    - data/final/index_label_counts.csv
    - data/final/summary_statistics.json
    - <stem>_metadata.json sidecar for each output
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adherence_index.paths import paths
from adherence_index.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, get_run_id,
    log_run_banner, log_run_complete,
)
from adherence_index.io_utils import atomic_write_csv, atomic_write_json, read_parquet, read_yaml
from adherence_index.hashing import write_metadata_sidecar
from adherence_index.index_builder import IndexMembership
from adherence_index.loader import read_measure_table
from adherence_index.reporting import (
    attach_outcomes, build_summary_statistics,
    recommendation_classes_wide, summarize_index_labels,
)
from adherence_index.schemas import validate_schema


SCRIPT_NAME = "03_build_report_tables"


def main():
    """Main entry point."""
    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    log_run_banner(logger, SCRIPT_NAME, run_id)

    try:
        params = read_yaml(paths.params_yml)
        inputs = params["inputs"]
        index_ids = IndexMembership.from_params(params).index_ids

        indices_path = paths.processed_index / "neighborhood_indices.parquet"
        rec_scores_path = paths.processed_index / "recommendation_scores.parquet"
        measures_path = paths.data_raw / inputs["measures_file"]
        neighborhood_indices = read_parquet(indices_path)
        recommendation_scores = read_parquet(rec_scores_path)
        validate_schema(neighborhood_indices, "neighborhood_indices")
        validate_schema(recommendation_scores, "recommendation_scores")

        measures_wide = read_measure_table(
            measures_path, inputs["id_column"], inputs["name_column"]
        )

        log_step_start(logger, "build_report_tables")
        final = attach_outcomes(
            neighborhood_indices, measures_wide,
            params.get("outcome_columns", []), id_column=inputs["id_column"],
        )
        rec_classes = recommendation_classes_wide(recommendation_scores)
        label_counts = summarize_index_labels(neighborhood_indices, index_ids)
        undefined_recs = sorted(
            int(r) for r in recommendation_scores.loc[
                ~recommendation_scores["rec_zscore_defined"], "recommendation_number"
            ].unique()
        )
        summary = build_summary_statistics(
            neighborhood_indices, recommendation_scores, index_ids, undefined_recs
        )
        log_step_end(logger, "build_report_tables")

        tables = {
            "neighborhood_adherence_index.csv": final,
            "recommendation_classes.csv": rec_classes,
            "index_label_counts.csv": label_counts,
        }
        written = []
        for filename, df in tables.items():
            output_path = paths.data_final / filename
            atomic_write_csv(output_path, df)
            log_output_written(logger, output_path, row_count=len(df))
            written.append((output_path, len(df)))

        # Run id and timestamps go to the sidecars only
        summary_path = paths.data_final / "summary_statistics.json"
        atomic_write_json(summary_path, summary)
        log_output_written(logger, summary_path)
        written.append((summary_path, None))

        for output_path, row_count in written:
            write_metadata_sidecar(
                output_path,
                run_id,
                input_files=[indices_path, rec_scores_path, measures_path],
                config_files=[paths.params_yml],
                row_count=row_count,
            )

        log_run_complete(
            logger, SCRIPT_NAME,
            output=str(paths.data_final),
            **{f"{index_id}_labels": stats["label_counts"] for index_id, stats in summary["indices"].items()},
        )

        return 0

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
