"""
Quality assurance checks for the index pipeline.

Each check returns a QAResult and, when a logger is given, records the
outcome as a qa_check event. run_index_qa_checks() bundles the checks
run after the index is built.
"""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd

from adherence_index.logging_utils import log_qa_check

DEFAULT_ZSCORE_TOLERANCE = 1e-6


@dataclass
class QAResult:
    """Result of a QA check."""
    check_name: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    def __bool__(self) -> bool:
        return self.passed


def _report(result: QAResult, logger: logging.Logger | None) -> QAResult:
    if logger:
        log_qa_check(logger, result.check_name, result.passed, result.message,
                     **(result.details or {}))
    return result


# =============================================================================
# Generic table checks
# =============================================================================

def check_unique_ids(
    df: pd.DataFrame,
    id_column: str,
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that an ID column has unique values."""
    check_name = "unique_ids"

    if id_column not in df.columns:
        return _report(QAResult(
            check_name, False, f"ID column '{id_column}' not found",
            {"columns": list(df.columns)}
        ), logger)

    total = len(df)
    unique = df[id_column].nunique()
    if total == unique:
        result = QAResult(check_name, True, f"All {total} IDs are unique",
                          {"total": total, "column": id_column})
    else:
        duplicates = df[id_column].value_counts()
        result = QAResult(
            check_name, False, f"Found {total - unique} duplicate IDs",
            {"total": total, "unique": unique,
             "sample_duplicates": duplicates[duplicates > 1].head(5).to_dict(),
             "column": id_column}
        )
    return _report(result, logger)


def check_no_nulls(
    df: pd.DataFrame,
    columns: list[str],
    logger: logging.Logger | None = None,
) -> QAResult:
    """Check that specified columns have no null values."""
    check_name = "no_nulls"

    missing_cols = [c for c in columns if c not in df.columns]
    if missing_cols:
        return _report(QAResult(check_name, False, f"Columns not found: {missing_cols}",
                                {"missing_columns": missing_cols}), logger)

    null_counts = {c: int(df[c].isna().sum()) for c in columns}
    total_nulls = sum(null_counts.values())
    if total_nulls == 0:
        result = QAResult(check_name, True, f"No null values in {len(columns)} checked columns",
                          {"columns": columns})
    else:
        result = QAResult(check_name, False, f"Found {total_nulls} null values",
                          {"columns_with_nulls": {k: v for k, v in null_counts.items() if v > 0}})
    return _report(result, logger)


# =============================================================================
# Index-specific checks
# =============================================================================

def check_overall_excluded(
    measures_long: pd.DataFrame,
    neighborhood_indices: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> QAResult:
    """The city-overall row must not appear among scored neighborhoods."""
    check_name = "overall_excluded"

    overall_ids = set(measures_long.loc[measures_long["is_overall"], "neighborhood_id"])
    leaked = sorted(overall_ids & set(neighborhood_indices["neighborhood_id"]))
    if leaked:
        result = QAResult(check_name, False, f"Overall row(s) scored as neighborhoods: {leaked}",
                          {"leaked_ids": leaked})
    else:
        result = QAResult(check_name, True,
                          f"{len(overall_ids)} overall row(s) excluded from scoring",
                          {"overall_ids": sorted(overall_ids)})
    return _report(result, logger)


def check_classification_counts(
    measure_classifications: pd.DataFrame,
    n_neighborhoods: int,
    logger: logging.Logger | None = None,
) -> QAResult:
    """
    For every measure, the -1 / 0 / +1 counts plus unclassified (missing)
    rows must equal the number of non-overall neighborhoods.
    """
    check_name = "classification_counts"

    counts = (
        measure_classifications
        .groupby("measure_name")["classification"]
        .agg(
            better=lambda s: int((s == 1).sum()),
            no_diff=lambda s: int((s == 0).sum()),
            worse=lambda s: int((s == -1).sum()),
            missing=lambda s: int(s.isna().sum()),
        )
    )
    totals = counts.sum(axis=1)
    bad = totals[totals != n_neighborhoods]

    if bad.empty:
        result = QAResult(
            check_name, True,
            f"All {len(counts)} measures classify {n_neighborhoods} neighborhoods",
            {"n_measures": len(counts), "n_neighborhoods": n_neighborhoods}
        )
    else:
        result = QAResult(
            check_name, False,
            f"{len(bad)} measures do not classify {n_neighborhoods} neighborhoods",
            {"mismatched": {k: int(v) for k, v in bad.items()}}
        )
    return _report(result, logger)


def check_zscores_standardized(
    df: pd.DataFrame,
    group_column: str,
    zscore_column: str,
    tolerance: float = DEFAULT_ZSCORE_TOLERANCE,
    logger: logging.Logger | None = None,
) -> QAResult:
    """
    Within each group, defined z-scores must have mean ~ 0 and sample
    std ~ 1. Groups whose z-scores are entirely undefined are skipped.
    """
    check_name = f"zscores_standardized_{zscore_column}"

    off = {}
    skipped = []
    for key, group in df.groupby(group_column, sort=True):
        z = group[zscore_column].astype("float64").dropna()
        if z.empty:
            skipped.append(key)
            continue
        mean, std = float(z.mean()), float(z.std(ddof=1))
        if abs(mean) > tolerance or abs(std - 1.0) > tolerance:
            off[str(key)] = {"mean": mean, "std": std}

    if off:
        result = QAResult(check_name, False, f"{len(off)} groups not standardized",
                          {"groups": off, "tolerance": tolerance})
    else:
        result = QAResult(
            check_name, True,
            f"z-scores standardized in {df[group_column].nunique() - len(skipped)} groups",
            {"skipped_undefined": [str(k) for k in skipped], "tolerance": tolerance}
        )
    return _report(result, logger)


def run_index_qa_checks(
    measures_long: pd.DataFrame,
    measure_classifications: pd.DataFrame,
    recommendation_scores: pd.DataFrame,
    index_scores: pd.DataFrame,
    neighborhood_indices: pd.DataFrame,
    tolerance: float = DEFAULT_ZSCORE_TOLERANCE,
    logger: logging.Logger | None = None,
    fail_on_error: bool = True,
) -> list[QAResult]:
    """
    Run the standard post-build checks.

    Raises:
        ValueError: If fail_on_error and any check fails.
    """
    n_neighborhoods = int(
        measures_long.loc[~measures_long["is_overall"], "neighborhood_id"].nunique()
    )

    results = [
        check_unique_ids(neighborhood_indices, "neighborhood_id", logger),
        check_overall_excluded(measures_long, neighborhood_indices, logger),
        check_classification_counts(measure_classifications, n_neighborhoods, logger),
        check_zscores_standardized(recommendation_scores, "recommendation_number",
                                   "rec_zscore", tolerance, logger),
        check_zscores_standardized(index_scores, "index_id", "index_zscore", tolerance, logger),
        check_no_nulls(index_scores, ["index_sum"], logger),
    ]

    if fail_on_error:
        failed = [r for r in results if not r.passed]
        if failed:
            messages = [f"{r.check_name}: {r.message}" for r in failed]
            raise ValueError("QA checks failed:\n" + "\n".join(messages))

    return results


def summarize_results(results: list[QAResult]) -> dict[str, Any]:
    """Compact pass/fail summary for metadata sidecars."""
    return {
        "n_checks": len(results),
        "n_passed": int(np.sum([r.passed for r in results])),
        "checks": {r.check_name: r.passed for r in results},
    }
