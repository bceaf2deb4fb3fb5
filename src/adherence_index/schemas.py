"""
Schema definitions and validation for pipeline tables.

Every table written by a pipeline step is validated against its schema
before the write and after the read. Schema drift is a hard failure.
"""

from dataclasses import dataclass

import pandas as pd


class SchemaValidationError(Exception):
    """Raised when data does not conform to expected schema."""
    pass


@dataclass
class ColumnSpec:
    """Specification for a single column."""
    name: str
    dtype: str  # dtype family: "object", "int64", "float64" or "bool"
    required: bool = True
    nullable: bool = False
    description: str = ""


@dataclass
class TableSchema:
    """Schema definition for a table."""
    name: str
    description: str
    columns: list[ColumnSpec]

    def required_columns(self) -> list[str]:
        return [c.name for c in self.columns if c.required]

    def all_columns(self) -> list[str]:
        return [c.name for c in self.columns]


# Actual pandas dtypes accepted for each declared family
_COMPATIBLE_DTYPES = {
    "object": {"object", "string", "str", "category"},
    "int64": {"int64", "int32", "Int64", "Int32", "Int8"},
    "float64": {"float64", "float32", "Float64"},
    "bool": {"bool", "boolean"},
}


# =============================================================================
# Inputs
# =============================================================================

SCHEMA_DATA_DICTIONARY = TableSchema(
    name="data_dictionary",
    description="Measure to recommendation mapping with polarity",
    columns=[
        ColumnSpec("measure_name", "object",
                   description="Column name of the measure in the wide table"),
        ColumnSpec("recommendation_number", "int64",
                   description="Recommendation group key"),
        ColumnSpec("reverse_flag", "bool",
                   description="True when a higher estimate means worse adherence"),
        ColumnSpec("recommendation_description", "object", required=False, nullable=True,
                   description="Human-readable recommendation text"),
    ]
)

SCHEMA_MEASURES_LONG = TableSchema(
    name="measures_long",
    description="One row per neighborhood per measure, with dictionary metadata",
    columns=[
        ColumnSpec("neighborhood_id", "object"),
        ColumnSpec("neighborhood_name", "object"),
        ColumnSpec("measure_name", "object"),
        ColumnSpec("estimate", "float64", nullable=True,
                   description="Measure estimate; missing when absent or non-numeric"),
        ColumnSpec("recommendation_number", "int64"),
        ColumnSpec("reverse_flag", "bool"),
        ColumnSpec("is_overall", "bool",
                   description="True for the city-overall reference row"),
        ColumnSpec("recommendation_description", "object", required=False, nullable=True),
    ]
)

# =============================================================================
# Index builder outputs
# =============================================================================

SCHEMA_MEASURE_CLASSIFICATIONS = TableSchema(
    name="measure_classifications",
    description="Stage 1: per-measure ternary classification",
    columns=[
        ColumnSpec("neighborhood_id", "object"),
        ColumnSpec("neighborhood_name", "object"),
        ColumnSpec("measure_name", "object"),
        ColumnSpec("recommendation_number", "int64"),
        ColumnSpec("reverse_flag", "bool"),
        ColumnSpec("estimate", "float64", nullable=True),
        ColumnSpec("lower_hinge", "float64", nullable=True),
        ColumnSpec("upper_hinge", "float64", nullable=True),
        ColumnSpec("raw_sign", "int64", nullable=True),
        ColumnSpec("classification", "int64", nullable=True,
                   description="raw_sign with polarity applied (-1, 0, +1)"),
    ]
)

SCHEMA_RECOMMENDATION_SCORES = TableSchema(
    name="recommendation_scores",
    description="Stage 2: per-recommendation sums, z-scores and classifications",
    columns=[
        ColumnSpec("neighborhood_id", "object"),
        ColumnSpec("neighborhood_name", "object"),
        ColumnSpec("recommendation_number", "int64"),
        ColumnSpec("rec_sum", "int64"),
        ColumnSpec("rec_zscore", "float64", nullable=True,
                   description="Missing when the recommendation's sums are degenerate"),
        ColumnSpec("rec_zscore_defined", "bool"),
        ColumnSpec("rec_classification", "int64", nullable=True),
    ]
)

SCHEMA_INDEX_SCORES_LONG = TableSchema(
    name="index_scores_long",
    description="Stage 3: per-index sums, z-scores and labels (long format)",
    columns=[
        ColumnSpec("neighborhood_id", "object"),
        ColumnSpec("neighborhood_name", "object"),
        ColumnSpec("index_id", "object"),
        ColumnSpec("index_sum", "float64"),
        ColumnSpec("index_zscore", "float64", nullable=True),
        ColumnSpec("index_zscore_defined", "bool"),
        ColumnSpec("index_label", "object", nullable=True,
                   description="Better, Worse or No Diff"),
    ]
)

SCHEMA_NEIGHBORHOOD_INDICES = TableSchema(
    name="neighborhood_indices",
    description="Final output, one row per neighborhood (wide format)",
    columns=[
        ColumnSpec("neighborhood_id", "object"),
        ColumnSpec("neighborhood_name", "object"),
        # {index_id}_sum, {index_id}_zscore, {index_id}_label per index
    ]
)

SCHEMA_REGISTRY: dict[str, TableSchema] = {
    "data_dictionary": SCHEMA_DATA_DICTIONARY,
    "measures_long": SCHEMA_MEASURES_LONG,
    "measure_classifications": SCHEMA_MEASURE_CLASSIFICATIONS,
    "recommendation_scores": SCHEMA_RECOMMENDATION_SCORES,
    "index_scores_long": SCHEMA_INDEX_SCORES_LONG,
    "neighborhood_indices": SCHEMA_NEIGHBORHOOD_INDICES,
}


# =============================================================================
# Validation
# =============================================================================

def get_schema(name: str) -> TableSchema:
    """
    Get a schema by name from the registry.

    Raises:
        ValueError: If schema not found.
    """
    if name not in SCHEMA_REGISTRY:
        raise ValueError(f"Unknown schema: {name}. Available: {list(SCHEMA_REGISTRY.keys())}")
    return SCHEMA_REGISTRY[name]


def validate_schema(
    df: pd.DataFrame,
    schema: TableSchema | str,
    strict: bool = False,
) -> list[str]:
    """
    Validate a DataFrame against a schema.

    Args:
        df: DataFrame to validate.
        schema: TableSchema object or schema name from registry.
        strict: If True, fail on extra columns not in schema.

    Returns:
        Empty list when the table is valid.

    Raises:
        SchemaValidationError: If validation fails.
    """
    if isinstance(schema, str):
        schema = get_schema(schema)

    errors = []

    for col in schema.columns:
        if col.required and col.name not in df.columns:
            errors.append(f"Missing required column: {col.name}")

    if strict:
        extra_cols = set(df.columns) - set(schema.all_columns())
        if extra_cols:
            errors.append(f"Unexpected columns: {sorted(extra_cols)}")

    for col in schema.columns:
        if col.name not in df.columns:
            continue

        series = df[col.name]

        if not col.nullable and series.isna().any():
            errors.append(
                f"Column '{col.name}' has {series.isna().sum()} null values but is not nullable"
            )

        actual_dtype = str(series.dtype)
        if actual_dtype not in _COMPATIBLE_DTYPES.get(col.dtype, {col.dtype}):
            # All-null object columns carry no type information
            if not (actual_dtype == "object" and col.nullable and series.isna().all()):
                errors.append(
                    f"Column '{col.name}' has dtype '{actual_dtype}', expected '{col.dtype}'"
                )

    if errors:
        error_msg = f"Schema validation failed for '{schema.name}':\n" + "\n".join(f"  - {e}" for e in errors)
        raise SchemaValidationError(error_msg)

    return errors
