#!/usr/bin/env python3
"""
01_reshape_measures.py

Load the raw neighborhood-measure table and data dictionary and build the
long measure table used by the index builder.

Pipeline Step: 01

This script:
1. Reads the wide measure table and the data dictionary
2. Melts measures to one row per (neighborhood, measure)
3. Attaches recommendation numbers and reverse flags
4. Flags the "Overall Philadelphia" reference row

Inputs:
    - data/raw/<inputs.measures_file>
    - data/raw/<inputs.dictionary_file>
    - configs/params.yml

Outputs:
    - data/processed/measures/measures_long.parquet
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from adherence_index.paths import paths
from adherence_index.logging_utils import (
    get_logger, log_step_start, log_step_end, log_output_written, get_run_id,
    log_run_banner, log_run_complete,
)
from adherence_index.io_utils import atomic_write_parquet, read_yaml
from adherence_index.hashing import write_metadata_sidecar
from adherence_index.loader import read_data_dictionary, read_measure_table
from adherence_index.reshape import reshape_measures_long
from adherence_index.qa import check_unique_ids


SCRIPT_NAME = "01_reshape_measures"


def main():
    """Main entry point."""
    run_id = get_run_id()
    logger = get_logger(SCRIPT_NAME, run_id)

    log_run_banner(logger, SCRIPT_NAME, run_id)

    try:
        params = read_yaml(paths.params_yml)
        inputs = params["inputs"]
        measures_path = paths.data_raw / inputs["measures_file"]
        dictionary_path = paths.data_raw / inputs["dictionary_file"]

        log_step_start(logger, "load_inputs")
        measures_wide = read_measure_table(
            measures_path, inputs["id_column"], inputs["name_column"], logger=logger
        )
        dictionary = read_data_dictionary(
            dictionary_path, inputs.get("dictionary_columns"), logger=logger
        )
        log_step_end(logger, "load_inputs", n_rows=len(measures_wide), n_measures=len(dictionary))

        check_unique_ids(measures_wide, inputs["id_column"], logger)

        log_step_start(logger, "reshape_measures_long")
        measures_long = reshape_measures_long(
            measures_wide,
            dictionary,
            id_column=inputs["id_column"],
            name_column=inputs["name_column"],
            exclude_columns=params.get("outcome_columns", []),
            overall_name=params.get("overall_neighborhood_name", "Overall Philadelphia"),
            logger=logger,
        )
        log_step_end(logger, "reshape_measures_long", n_rows=len(measures_long))

        output_path = paths.processed_measures / "measures_long.parquet"
        atomic_write_parquet(output_path, measures_long)
        log_output_written(logger, output_path, row_count=len(measures_long))

        write_metadata_sidecar(
            output_path,
            run_id,
            input_files=[measures_path, dictionary_path],
            config_files=[paths.params_yml],
            parameters={
                "n_neighborhoods": int(measures_long["neighborhood_id"].nunique()),
                "n_measures": int(measures_long["measure_name"].nunique()),
                "n_missing_estimates": int(measures_long["estimate"].isna().sum()),
            },
            row_count=len(measures_long),
        )

        log_run_complete(
            logger, SCRIPT_NAME,
            neighborhoods=int(measures_long["neighborhood_id"].nunique()),
            measures=int(measures_long["measure_name"].nunique()),
            output=str(output_path),
        )

        return 0

    except Exception as e:
        logger.exception(f"Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
