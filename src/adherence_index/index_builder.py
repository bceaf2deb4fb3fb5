"""
Adherence index construction.

Three passes over the long measure table, all excluding the city-overall
reference row:

1. Measure classification: each estimate is compared with the Tukey hinges
   of its measure across neighborhoods (+1 above the upper hinge, -1 below
   the lower hinge, 0 otherwise), then multiplied by -1 for reverse-coded
   measures.
2. Recommendation scores: classifications are summed per (neighborhood,
   recommendation), missing classifications counting as 0. Sums are
   z-scored per recommendation with the sample standard deviation.
3. Index scores: recommendation z-scores are summed over each index's
   configured recommendations, undefined z-scores counting as 0. The sums
   are z-scored again and the final z-scores classified against their own
   Tukey hinges into Better / Worse / No Diff.

Everything here is a pure function of its input DataFrames.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable

import pandas as pd

from adherence_index.logging_utils import log_sign_counts, log_undefined_zscore
from adherence_index.reshape import DICTIONARY_RECOMMENDATIONS_ATTR
from adherence_index.schemas import validate_schema
from adherence_index.stats_utils import classify_ternary, fivenum, sample_zscore

LABEL_BETTER = "Better"
LABEL_WORSE = "Worse"
LABEL_NO_DIFF = "No Diff"
INDEX_LABELS = {1: LABEL_BETTER, -1: LABEL_WORSE, 0: LABEL_NO_DIFF}

NEIGHBORHOOD_KEYS = ["neighborhood_id", "neighborhood_name"]


class IndexMembershipError(ValueError):
    """The recommendation-to-index membership table does not fit the data dictionary."""
    pass


@dataclass(frozen=True)
class IndexDefinition:
    """One composite index and the recommendation numbers it sums."""
    index_id: str
    label: str
    recommendations: tuple[int, ...]


@dataclass(frozen=True)
class IndexMembership:
    """Ordered pair of index definitions (lifestyle first, preventive second)."""
    indices: tuple[IndexDefinition, ...]

    @property
    def index_ids(self) -> list[str]:
        return [d.index_id for d in self.indices]

    def recommendation_to_index(self) -> dict[int, str]:
        return {rec: d.index_id for d in self.indices for rec in d.recommendations}

    @classmethod
    def from_params(cls, params: dict) -> "IndexMembership":
        """
        Build membership from the `indices` section of params.yml:

            indices:
              lifestyle:
                label: Lifestyle guidelines
                recommendations: [1, 2, 3, 4]
              preventive:
                ...
        """
        section = params.get("indices")
        if not section:
            raise IndexMembershipError("params.yml has no 'indices' section")

        definitions = []
        for index_id, entry in section.items():
            recs = entry.get("recommendations") or []
            definitions.append(IndexDefinition(
                index_id=str(index_id),
                label=str(entry.get("label", index_id)),
                recommendations=tuple(int(r) for r in recs),
            ))
        return cls(indices=tuple(definitions))


@dataclass
class AdherenceIndexResult:
    """All tables produced by build_adherence_index."""
    measure_classifications: pd.DataFrame
    recommendation_scores: pd.DataFrame
    index_scores: pd.DataFrame
    neighborhood_indices: pd.DataFrame
    undefined_recommendations: list[int] = field(default_factory=list)
    undefined_indices: list[str] = field(default_factory=list)


# =============================================================================
# Membership validation
# =============================================================================

def validate_index_membership(
    membership: IndexMembership,
    dictionary_recommendations,
    logger: logging.Logger | None = None,
) -> None:
    """
    Check the membership table against the recommendations in use.

    Raises:
        IndexMembershipError: If there are not exactly two indices, an index
            has no recommendations, a recommendation is in both indices,
            or a dictionary recommendation belongs to neither.
    """
    if len(membership.indices) != 2:
        raise IndexMembershipError(
            f"Expected exactly two indices, got {len(membership.indices)}: {membership.index_ids}"
        )

    seen: dict[int, str] = {}
    for definition in membership.indices:
        if not definition.recommendations:
            raise IndexMembershipError(f"Index '{definition.index_id}' has no recommendations")
        for rec in definition.recommendations:
            if rec in seen:
                raise IndexMembershipError(
                    f"Recommendation {rec} assigned to both '{seen[rec]}' and '{definition.index_id}'"
                )
            seen[rec] = definition.index_id

    in_dictionary = {int(r) for r in dictionary_recommendations}
    unassigned = sorted(in_dictionary - set(seen))
    if unassigned:
        raise IndexMembershipError(
            f"Recommendations {unassigned} are in the data dictionary but not assigned to any index"
        )

    unused = sorted(set(seen) - in_dictionary)
    if unused and logger:
        logger.warning(f"Configured recommendations with no measures (contribute nothing): {unused}")


# =============================================================================
# Stage 1: measures
# =============================================================================

def classify_measures(
    measures_long: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Classify each (neighborhood, measure) estimate as -1, 0 or +1.

    Hinges are computed per measure over non-missing estimates of the
    non-overall neighborhoods. classification = raw_sign, negated for
    reverse-coded measures; missing estimates stay unclassified.
    """
    df = measures_long.loc[~measures_long["is_overall"]].copy()

    hinges = []
    for measure_name, group in df.groupby("measure_name", sort=True):
        summary = fivenum(group["estimate"])
        hinges.append({
            "measure_name": measure_name,
            "lower_hinge": summary[1],
            "upper_hinge": summary[3],
            "n_observed": int(group["estimate"].notna().sum()),
        })
    hinges = pd.DataFrame(hinges, columns=["measure_name", "lower_hinge", "upper_hinge", "n_observed"])

    df = df.merge(hinges, on="measure_name", how="left", validate="many_to_one")

    df["raw_sign"] = classify_ternary(df["estimate"], df["lower_hinge"], df["upper_hinge"])
    polarity = df["reverse_flag"].map({True: -1, False: 1}).astype("Int64")
    df["classification"] = df["raw_sign"] * polarity

    if logger:
        sparse = hinges.loc[hinges["n_observed"] == 0, "measure_name"].tolist()
        if sparse:
            logger.warning(f"Measures with no observed estimates (all unclassified): {sparse}")
        log_sign_counts(
            logger, "measure", df["classification"],
            f"Classified {len(df)} measure observations across {len(hinges)} measures:",
        )

    out = df[[
        "neighborhood_id", "neighborhood_name", "measure_name", "recommendation_number",
        "reverse_flag", "estimate", "lower_hinge", "upper_hinge", "raw_sign", "classification",
    ]].sort_values(["neighborhood_id", "measure_name"]).reset_index(drop=True)

    validate_schema(out, "measure_classifications")
    return out


# =============================================================================
# Stage 2: recommendations
# =============================================================================

def aggregate_recommendations(
    measure_classifications: pd.DataFrame,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Sum classifications per (neighborhood, recommendation) and z-score the
    sums within each recommendation.

    Missing classifications contribute 0 to the sum. A recommendation whose
    sums are all equal (or that has fewer than two neighborhoods) gets a
    missing rec_zscore and rec_zscore_defined = False. rec_classification
    compares each sum with the Tukey hinges of that recommendation's sums.
    """
    sums = (
        measure_classifications
        .groupby(NEIGHBORHOOD_KEYS + ["recommendation_number"], sort=True)["classification"]
        .sum(min_count=0)
        .fillna(0)
        .astype("int64")
        .rename("rec_sum")
        .reset_index()
    )

    sums["rec_zscore"] = pd.Series(pd.NA, index=sums.index, dtype="Float64")
    sums["rec_classification"] = pd.Series(pd.NA, index=sums.index, dtype="Int64")

    undefined = []
    for rec, group in sums.groupby("recommendation_number", sort=True):
        z = sample_zscore(group["rec_sum"])
        if z.isna().all():
            undefined.append(int(rec))
        sums.loc[group.index, "rec_zscore"] = z

        summary = fivenum(group["rec_sum"])
        sums.loc[group.index, "rec_classification"] = classify_ternary(
            group["rec_sum"], summary[1], summary[3]
        )

    sums["rec_zscore_defined"] = sums["rec_zscore"].notna().astype(bool)

    if logger:
        if undefined:
            log_undefined_zscore(logger, "recommendation", undefined)
        logger.info(f"Scored {sums['recommendation_number'].nunique()} recommendations "
                    f"for {sums['neighborhood_id'].nunique()} neighborhoods")

    out = sums[[
        "neighborhood_id", "neighborhood_name", "recommendation_number",
        "rec_sum", "rec_zscore", "rec_zscore_defined", "rec_classification",
    ]].sort_values(["neighborhood_id", "recommendation_number"]).reset_index(drop=True)

    validate_schema(out, "recommendation_scores")
    return out


# =============================================================================
# Stage 3: indices
# =============================================================================

def compose_indices(
    recommendation_scores: pd.DataFrame,
    membership: IndexMembership,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Combine recommendation z-scores into the configured indices.

    Undefined recommendation z-scores are replaced by 0 before summing.
    Index sums are z-scored across neighborhoods and the z-scores labelled
    Better / Worse / No Diff against their own Tukey hinges. An undefined
    index z-score leaves the label missing.

    Returns:
        Long table: one row per (neighborhood, index).
    """
    rec_to_index = membership.recommendation_to_index()

    scores = recommendation_scores.copy()
    scores["index_id"] = scores["recommendation_number"].map(rec_to_index)
    scores = scores.loc[scores["index_id"].notna()].copy()
    scores["z_contribution"] = scores["rec_zscore"].fillna(0.0).astype("float64")

    neighborhoods = (
        recommendation_scores[NEIGHBORHOOD_KEYS]
        .drop_duplicates()
        .sort_values("neighborhood_id")
    )

    frames = []
    for definition in membership.indices:
        sub = scores.loc[scores["index_id"] == definition.index_id]
        sums = sub.groupby("neighborhood_id")["z_contribution"].sum()

        frame = neighborhoods.copy()
        frame["index_id"] = definition.index_id
        # A neighborhood without any of the index's recommendations sums to 0
        frame["index_sum"] = frame["neighborhood_id"].map(sums).fillna(0.0).astype("float64")
        frame = frame.reset_index(drop=True)

        frame["index_zscore"] = sample_zscore(frame["index_sum"])
        summary = fivenum(frame["index_zscore"])
        signs = classify_ternary(frame["index_zscore"], summary[1], summary[3])
        frame["index_label"] = pd.Series(
            [INDEX_LABELS[int(s)] if pd.notna(s) else None for s in signs],
            index=frame.index, dtype="object",
        )

        frames.append(frame)

        if logger:
            if frame["index_zscore"].isna().all():
                log_undefined_zscore(logger, "index", [definition.index_id])
            counts = frame["index_label"].value_counts(dropna=False).to_dict()
            logger.info(
                f"Index '{definition.index_id}': {len(definition.recommendations)} recommendations, "
                f"labels {counts}"
            )

    out = pd.concat(frames, ignore_index=True)
    out["index_zscore_defined"] = out["index_zscore"].notna().astype(bool)

    out = out[[
        "neighborhood_id", "neighborhood_name", "index_id",
        "index_sum", "index_zscore", "index_zscore_defined", "index_label",
    ]]
    # Index order follows the membership table, not the alphabet
    order = {index_id: i for i, index_id in enumerate(membership.index_ids)}
    out = (
        out.assign(_order=out["index_id"].map(order))
        .sort_values(["neighborhood_id", "_order"])
        .drop(columns="_order")
        .reset_index(drop=True)
    )

    validate_schema(out, "index_scores_long")
    return out


def pivot_index_scores(index_scores: pd.DataFrame, index_ids: list[str]) -> pd.DataFrame:
    """
    Wide output table: one row per neighborhood with
    {index}_sum, {index}_zscore and {index}_label for each index.
    """
    wide = index_scores[NEIGHBORHOOD_KEYS].drop_duplicates().sort_values("neighborhood_id")
    wide = wide.reset_index(drop=True)

    for index_id in index_ids:
        sub = index_scores.loc[index_scores["index_id"] == index_id].set_index("neighborhood_id")
        wide[f"{index_id}_sum"] = wide["neighborhood_id"].map(sub["index_sum"])
        wide[f"{index_id}_zscore"] = wide["neighborhood_id"].map(sub["index_zscore"]).astype("Float64")
        wide[f"{index_id}_label"] = wide["neighborhood_id"].map(sub["index_label"]).astype("object")

    validate_schema(wide, "neighborhood_indices")
    return wide


def build_adherence_index(
    measures_long: pd.DataFrame,
    membership: IndexMembership,
    dictionary_recommendations: Iterable[int] | None = None,
    logger: logging.Logger | None = None,
) -> AdherenceIndexResult:
    """
    Run all three stages on a long measure table.

    Args:
        measures_long: Table matching SCHEMA_MEASURES_LONG (the overall row
            may be present; it is excluded here).
        membership: Recommendation-to-index assignment.
        dictionary_recommendations: Recommendation numbers of the full data
            dictionary. Defaults to those recorded on measures_long by
            reshape_measures_long.
        logger: Optional logger.

    Returns:
        AdherenceIndexResult with every intermediate table.

    Raises:
        IndexMembershipError: If the membership does not cover every
            dictionary recommendation.
    """
    validate_schema(measures_long, "measures_long")

    if dictionary_recommendations is None:
        dictionary_recommendations = measures_long.attrs.get(DICTIONARY_RECOMMENDATIONS_ATTR, [])
    required = set(int(r) for r in dictionary_recommendations)
    required |= set(int(r) for r in measures_long["recommendation_number"].unique())
    validate_index_membership(membership, sorted(required), logger=logger)

    measure_classifications = classify_measures(measures_long, logger=logger)
    recommendation_scores = aggregate_recommendations(measure_classifications, logger=logger)
    index_scores = compose_indices(recommendation_scores, membership, logger=logger)
    neighborhood_indices = pivot_index_scores(index_scores, membership.index_ids)

    undefined_recs = sorted(
        int(r) for r in recommendation_scores.loc[
            ~recommendation_scores["rec_zscore_defined"], "recommendation_number"
        ].unique()
    )
    undefined_indices = [
        i for i in membership.index_ids
        if not index_scores.loc[index_scores["index_id"] == i, "index_zscore_defined"].any()
    ]

    return AdherenceIndexResult(
        measure_classifications=measure_classifications,
        recommendation_scores=recommendation_scores,
        index_scores=index_scores,
        neighborhood_indices=neighborhood_indices,
        undefined_recommendations=undefined_recs,
        undefined_indices=undefined_indices,
    )
