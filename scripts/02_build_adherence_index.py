#!/usr/bin/env python3
"""
02_build_adherence_index.py

Compute the lifestyle and preventive-service adherence indices.

Pipeline Step: 02

This script:
1. Classifies each measure against its Tukey hinges (polarity applied)
2. Sums and z-scores classifications per recommendation
3. Sums recommendation z-scores per index, z-scores the sums and labels
   neighborhoods Better / Worse / No Diff
4. Runs QA checks on every stage

Inputs:
    - data/processed/measures/measures_long.parquet
    - data/raw/<inputs.dictionary_file> (recommendations that must be indexed)
    - configs/params.yml (indices, qa)

Outputs:
    - data/processed/index/measure_classifications.parquet
    - data/processed/index/recommendation_scores.parquet
    - data/processed/index/index_scores_long.parquet
    - data/processed/index/neighborhood_indices.parquet
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adherence_index.paths import paths
from adherence_index.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, get_run_id,
    log_run_banner, log_run_complete,
)
from adherence_index.io_utils import atomic_write_parquet, clean_tmp_files, read_parquet, read_yaml
from adherence_index.hashing import write_metadata_sidecar
from adherence_index.schemas import validate_schema
from adherence_index.index_builder import IndexMembership, build_adherence_index
from adherence_index.loader import read_data_dictionary
from adherence_index.reshape import dictionary_recommendations
from adherence_index.qa import run_index_qa_checks, summarize_results


SCRIPT_NAME = "02_build_adherence_index"


def main():
    """Main entry point."""
    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    log_run_banner(logger, SCRIPT_NAME, run_id)

    try:
        params = read_yaml(paths.params_yml)
        qa_params = params.get("qa", {})
        membership = IndexMembership.from_params(params)
        for definition in membership.indices:
            logger.info(f"Index '{definition.index_id}' ({definition.label}): "
                        f"recommendations {list(definition.recommendations)}")

        input_path = paths.processed_measures / "measures_long.parquet"
        measures_long = read_parquet(input_path)
        validate_schema(measures_long, "measures_long")

        inputs = params["inputs"]
        dictionary_path = paths.data_raw / inputs["dictionary_file"]
        dictionary = read_data_dictionary(dictionary_path, inputs.get("dictionary_columns"))
        dictionary_recs = dictionary_recommendations(dictionary)

        removed = clean_tmp_files(paths.processed_index)
        if removed:
            logger.warning(f"Removed {len(removed)} stale .tmp files from a failed run")

        log_step_start(logger, "build_adherence_index")
        result = build_adherence_index(
            measures_long, membership, dictionary_recommendations=dictionary_recs, logger=logger
        )
        log_step_end(logger, "build_adherence_index",
                     undefined_recommendations=result.undefined_recommendations,
                     undefined_indices=result.undefined_indices)

        log_step_start(logger, "qa_checks")
        qa_results = run_index_qa_checks(
            measures_long,
            result.measure_classifications,
            result.recommendation_scores,
            result.index_scores,
            result.neighborhood_indices,
            tolerance=qa_params.get("zscore_tolerance", 1e-6),
            logger=logger,
            fail_on_error=qa_params.get("fail_on_error", True),
        )
        log_step_end(logger, "qa_checks", **summarize_results(qa_results))

        outputs = {
            "measure_classifications": result.measure_classifications,
            "recommendation_scores": result.recommendation_scores,
            "index_scores_long": result.index_scores,
            "neighborhood_indices": result.neighborhood_indices,
        }
        for name, df in outputs.items():
            output_path = paths.processed_index / f"{name}.parquet"
            atomic_write_parquet(output_path, df)
            log_output_written(logger, output_path, row_count=len(df))

            write_metadata_sidecar(
                output_path,
                run_id,
                input_files=[input_path, dictionary_path],
                config_files=[paths.params_yml],
                parameters={
                    "indices": {d.index_id: list(d.recommendations) for d in membership.indices},
                    "undefined_recommendations": result.undefined_recommendations,
                    "undefined_indices": result.undefined_indices,
                    "qa": summarize_results(qa_results),
                },
                row_count=len(df),
            )

        label_counts = {
            f"{index_id}_labels": result.neighborhood_indices[f"{index_id}_label"]
            .fillna("Undefined").value_counts().to_dict()
            for index_id in membership.index_ids
        }
        log_run_complete(
            logger, SCRIPT_NAME,
            neighborhoods=len(result.neighborhood_indices),
            output=str(paths.processed_index),
            **label_counts,
        )

        return 0

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
