"""
Reshape the wide measure table to one row per (neighborhood, measure) and
attach the data dictionary's recommendation number and reverse flag.
"""

import logging
from typing import Iterable

import pandas as pd

from adherence_index.logging_utils import log_non_numeric
from adherence_index.schemas import SchemaValidationError, validate_schema

DEFAULT_OVERALL_NAME = "Overall Philadelphia"

LONG_COLUMNS = [
    "neighborhood_id",
    "neighborhood_name",
    "measure_name",
    "estimate",
    "recommendation_number",
    "reverse_flag",
    "is_overall",
    "recommendation_description",
]

DICTIONARY_RECOMMENDATIONS_ATTR = "dictionary_recommendations"


def dictionary_recommendations(dictionary: pd.DataFrame) -> list[int]:
    """Sorted distinct recommendation numbers of a data dictionary."""
    return sorted(int(r) for r in dictionary["recommendation_number"].unique())


def get_measure_columns(
    measures_wide: pd.DataFrame,
    id_column: str,
    name_column: str,
    exclude_columns: Iterable[str] = (),
) -> list[str]:
    """Columns of the wide table that hold measures, in table order."""
    skip = {id_column, name_column, *exclude_columns}
    return [c for c in measures_wide.columns if c not in skip]


def flag_overall(names: pd.Series, overall_name: str = DEFAULT_OVERALL_NAME) -> pd.Series:
    """Boolean mask of the city-overall row, matched case-insensitively."""
    target = overall_name.strip().casefold()
    return names.fillna("").astype(str).str.strip().str.casefold() == target


def reshape_measures_long(
    measures_wide: pd.DataFrame,
    dictionary: pd.DataFrame,
    id_column: str = "neighborhood_id",
    name_column: str = "neighborhood_name",
    exclude_columns: Iterable[str] = (),
    overall_name: str = DEFAULT_OVERALL_NAME,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Melt the wide measure table and attach dictionary metadata.

    Args:
        measures_wide: One row per neighborhood, one column per measure.
        dictionary: Output of loader.read_data_dictionary.
        id_column: Neighborhood id column in measures_wide.
        name_column: Neighborhood display-name column in measures_wide.
        exclude_columns: Non-measure columns to drop (mortality outcomes).
        overall_name: Display name of the city-overall reference row.
        logger: Optional logger.

    Returns:
        Long table matching SCHEMA_MEASURES_LONG, sorted by
        (neighborhood_id, measure_name).

    Raises:
        SchemaValidationError: If a measure column has no dictionary entry
            or neighborhood ids are duplicated.
    """
    exclude_columns = list(exclude_columns)
    measure_cols = get_measure_columns(measures_wide, id_column, name_column, exclude_columns)

    unknown = sorted(set(measure_cols) - set(dictionary["measure_name"]))
    if unknown:
        raise SchemaValidationError(
            f"Measures missing from the data dictionary: {unknown}. "
            f"Add them to the dictionary or list them under outcome_columns."
        )

    unused = sorted(set(dictionary["measure_name"]) - set(measure_cols))
    if unused and logger:
        logger.warning(f"Dictionary measures not in the measure table (ignored): {unused}")

    dup_ids = measures_wide[id_column][measures_wide[id_column].duplicated()].unique().tolist()
    if dup_ids:
        raise SchemaValidationError(f"Duplicate neighborhood ids in measure table: {dup_ids}")

    long = measures_wide.melt(
        id_vars=[id_column, name_column],
        value_vars=measure_cols,
        var_name="measure_name",
        value_name="raw_estimate",
    ).rename(columns={id_column: "neighborhood_id", name_column: "neighborhood_name"})

    long["neighborhood_id"] = long["neighborhood_id"].astype(str)
    long["estimate"] = pd.to_numeric(long["raw_estimate"], errors="coerce").astype("float64")

    coerced = long["raw_estimate"].notna() & long["estimate"].isna()
    if logger:
        if coerced.any():
            log_non_numeric(
                logger, int(coerced.sum()), sorted(long.loc[coerced, "measure_name"].unique())
            )
        logger.info(f"{int(long['estimate'].isna().sum())} missing estimates after coercion")

    long = long.merge(dictionary, on="measure_name", how="left", validate="many_to_one")
    long["is_overall"] = flag_overall(long["neighborhood_name"], overall_name)

    if logger:
        n_overall = long.loc[long["is_overall"], "neighborhood_id"].nunique()
        if n_overall == 0:
            logger.warning(f"No '{overall_name}' row found; every row is treated as a neighborhood")
        else:
            logger.info(f"Flagged {n_overall} city-overall row(s) as reference only")

    long = long[LONG_COLUMNS].sort_values(["neighborhood_id", "measure_name"]).reset_index(drop=True)
    # Index membership is checked against the whole dictionary, including
    # recommendations whose measures are absent from the table
    long.attrs[DICTIONARY_RECOMMENDATIONS_ATTR] = dictionary_recommendations(dictionary)

    validate_schema(long, "measures_long")
    return long
