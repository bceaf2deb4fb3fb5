"""
Analysis-ready tables for the downstream reporter.

Maps, formatted tables and mortality models live outside this package;
this module only assembles the data they consume.
"""

from typing import Iterable

import numpy as np
import pandas as pd

from adherence_index.index_builder import LABEL_BETTER, LABEL_NO_DIFF, LABEL_WORSE

LABEL_ORDER = [LABEL_BETTER, LABEL_NO_DIFF, LABEL_WORSE]
UNDEFINED_LABEL = "Undefined"


def attach_outcomes(
    neighborhood_indices: pd.DataFrame,
    measures_wide: pd.DataFrame,
    outcome_columns: Iterable[str],
    id_column: str = "neighborhood_id",
) -> pd.DataFrame:
    """
    Left-join outcome (mortality) columns onto the index table.

    The city-overall row never appears in neighborhood_indices, so it is
    dropped by the join.
    """
    outcome_columns = [c for c in outcome_columns if c in measures_wide.columns]
    outcomes = measures_wide[[id_column] + outcome_columns].copy()
    outcomes = outcomes.rename(columns={id_column: "neighborhood_id"})
    outcomes["neighborhood_id"] = outcomes["neighborhood_id"].astype(str)
    for col in outcome_columns:
        outcomes[col] = pd.to_numeric(outcomes[col], errors="coerce")

    return neighborhood_indices.merge(
        outcomes, on="neighborhood_id", how="left", validate="one_to_one"
    )


def recommendation_classes_wide(recommendation_scores: pd.DataFrame) -> pd.DataFrame:
    """One row per neighborhood, one rec_<n>_class column per recommendation."""
    wide = recommendation_scores.pivot(
        index=["neighborhood_id", "neighborhood_name"],
        columns="recommendation_number",
        values="rec_classification",
    )
    wide = wide.reindex(sorted(wide.columns), axis=1)
    wide.columns = [f"rec_{int(c)}_class" for c in wide.columns]
    return wide.reset_index().sort_values("neighborhood_id").reset_index(drop=True)


def summarize_index_labels(neighborhood_indices: pd.DataFrame, index_ids: list[str]) -> pd.DataFrame:
    """
    Count neighborhoods per label for each index.

    Every index lists Better, No Diff, Worse and Undefined, with zero
    counts where no neighborhood falls in a category.
    """
    rows = []
    for index_id in index_ids:
        labels = neighborhood_indices[f"{index_id}_label"].fillna(UNDEFINED_LABEL)
        counts = labels.value_counts()
        total = len(labels)
        for label in LABEL_ORDER + [UNDEFINED_LABEL]:
            n = int(counts.get(label, 0))
            rows.append({
                "index_id": index_id,
                "label": label,
                "n_neighborhoods": n,
                "pct_neighborhoods": round(100 * n / total, 1) if total else np.nan,
            })
    return pd.DataFrame(rows)


def _float_or_none(value) -> float | None:
    return None if pd.isna(value) else float(value)


def build_summary_statistics(
    neighborhood_indices: pd.DataFrame,
    recommendation_scores: pd.DataFrame,
    index_ids: list[str],
    undefined_recommendations: list[int] | None = None,
) -> dict:
    """
    JSON-serialisable run summary for the reporter.

    Depends only on its inputs, so identical tables give an identical
    summary. Run provenance goes to the metadata sidecar instead.
    """
    summary = {
        "metadata": {
            "n_neighborhoods": int(neighborhood_indices["neighborhood_id"].nunique()),
            "n_recommendations": int(recommendation_scores["recommendation_number"].nunique()),
            "undefined_recommendations": list(undefined_recommendations or []),
        },
        "indices": {},
    }

    label_counts = summarize_index_labels(neighborhood_indices, index_ids)
    for index_id in index_ids:
        z = neighborhood_indices[f"{index_id}_zscore"].astype("float64")
        counts = label_counts.loc[label_counts["index_id"] == index_id]
        summary["indices"][index_id] = {
            "zscore_min": _float_or_none(z.min()),
            "zscore_max": _float_or_none(z.max()),
            "zscore_mean": _float_or_none(z.mean()),
            "zscore_std": _float_or_none(z.std(ddof=1)),
            "label_counts": dict(zip(counts["label"], counts["n_neighborhoods"].astype(int).tolist())),
        }

    return summary
