"""
Readers for the two raw inputs: the wide neighborhood-measure table and
the data dictionary.
"""

import logging
from pathlib import Path

import pandas as pd

from adherence_index.io_utils import read_csv
from adherence_index.schemas import SchemaValidationError, validate_schema

_TRUE_TOKENS = {"true", "t", "yes", "y", "1", "1.0"}
_FALSE_TOKENS = {"false", "f", "no", "n", "0", "0.0"}

DEFAULT_DICTIONARY_COLUMNS = {
    "measure_name": "measure_name",
    "recommendation_number": "recommendation_number",
    "reverse_flag": "reverse_flag",
    "recommendation_description": "recommendation_description",
}


def parse_reverse_flag(series: pd.Series) -> pd.Series:
    """
    Parse a reverse-coding column into booleans.

    Accepts booleans, 0/1 and the usual yes/no, y/n, true/false spellings
    in any case.

    Raises:
        ValueError: On missing or unrecognized values.
    """
    tokens = series.map(lambda v: str(v).strip().lower() if pd.notna(v) else None)
    unknown = tokens[~tokens.isin(_TRUE_TOKENS | _FALSE_TOKENS)]
    if len(unknown) > 0:
        raise ValueError(
            f"Unrecognized reverse flag values: {sorted(series[unknown.index].astype(str).unique())}"
        )
    return tokens.isin(_TRUE_TOKENS).astype(bool)


def read_measure_table(
    path: Path | str,
    id_column: str = "neighborhood_id",
    name_column: str = "neighborhood_name",
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Read the wide neighborhood-measure CSV.

    Identifier columns are read as strings so ids such as "007" keep their
    leading zeros. Measure columns are left as read; numeric coercion
    happens in the reshape step where non-numeric cells are counted.
    """
    df = read_csv(path, dtype={id_column: str, name_column: str})

    missing = [c for c in (id_column, name_column) if c not in df.columns]
    if missing:
        raise SchemaValidationError(f"Measure table {path} is missing identifier columns: {missing}")

    if logger:
        logger.info(f"Loaded measure table: {len(df)} rows x {len(df.columns)} columns from {path}")
    return df


def read_data_dictionary(
    path: Path | str,
    column_map: dict[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Read and normalize the data dictionary.

    Args:
        path: CSV path.
        column_map: Canonical column name -> column name in the file.
            Defaults to identical names.
        logger: Optional logger.

    Returns:
        DataFrame with measure_name, recommendation_number (int64),
        reverse_flag (bool) and recommendation_description.

    Raises:
        SchemaValidationError: On missing columns, unparseable
            recommendation numbers or duplicate measures.
    """
    column_map = {**DEFAULT_DICTIONARY_COLUMNS, **(column_map or {})}
    raw = read_csv(path, dtype=str)

    rename = {source: canonical for canonical, source in column_map.items() if source in raw.columns}
    df = raw.rename(columns=rename)

    if "recommendation_description" not in df.columns:
        df["recommendation_description"] = pd.NA

    missing = [c for c in ("measure_name", "recommendation_number", "reverse_flag") if c not in df.columns]
    if missing:
        raise SchemaValidationError(f"Data dictionary {path} is missing columns: {missing}")

    df = df[list(DEFAULT_DICTIONARY_COLUMNS)].copy()
    df["measure_name"] = df["measure_name"].str.strip()

    rec_numbers = pd.to_numeric(df["recommendation_number"], errors="coerce")
    if rec_numbers.isna().any() or (rec_numbers % 1 != 0).any():
        bad = df.loc[rec_numbers.isna() | (rec_numbers % 1 != 0), "measure_name"].tolist()
        raise SchemaValidationError(f"Non-integer recommendation_number for measures: {bad}")
    df["recommendation_number"] = rec_numbers.astype("int64")

    df["reverse_flag"] = parse_reverse_flag(df["reverse_flag"])

    duplicated = df["measure_name"][df["measure_name"].duplicated()].unique().tolist()
    if duplicated:
        raise SchemaValidationError(f"Duplicate measures in data dictionary: {duplicated}")

    validate_schema(df, "data_dictionary")

    if logger:
        logger.info(
            f"Loaded data dictionary: {len(df)} measures in "
            f"{df['recommendation_number'].nunique()} recommendations "
            f"({int(df['reverse_flag'].sum())} reverse-coded)"
        )
    return df.sort_values("measure_name").reset_index(drop=True)
