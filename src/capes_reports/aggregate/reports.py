"""Report catalogue.

Every report takes the relations it needs as explicit arguments and returns a
small pandas DataFrame. Grouped aggregations run on Dask; the grouped results
are materialized before ranking, percentages and window calculations.

Conventions:
- Missing category values are reported under ``NOT INFORMED``.
- Percentages are percentage points rounded to 2 dp (``50.0`` is 50.00%).
  A zero denominator yields NaN.
- Ties in a count ranking are ordered by label so output is reproducible.
"""
from __future__ import annotations

from typing import Any, Callable
import logging

import numpy as np
import pandas as pd
from dask import compute, delayed  # type: ignore[attr-defined]

from capes_reports.aggregate.currency import MissingRatePolicy, normalize_amounts
from capes_reports.aggregate.frames import (
    NOT_INFORMED,
    as_ddf,
    category_label,
    percent_of,
    with_row_id,
)
from capes_reports.aggregate.views import (
    TIER_ORDER,
    grants_with_converted_value,
    unique_beneficiary_grants,
)

log = logging.getLogger(__name__)

HIGHEST_GRANT_COLUMNS = [
    "row_id",
    "start_year",
    "end_year",
    "beneficiary_id",
    "beneficiary_name",
    "program",
    "destination_country",
    "currency_code",
    "broad_knowledge_area",
    "education_level",
    "amount_received_total",
    "conversion_factor",
    "normalized_amount",
]


# =========================================================
# GROUPED COUNT / PERCENTAGE
# =========================================================

def share_table(counts: pd.Series, label_col: str, top_n: int | None = None) -> pd.DataFrame:
    """Turn raw group counts into a ranked count/percentage table.

    Args:
        counts: Series of counts indexed by the raw group key (may hold NaN).
        label_col: Name of the output label column.
        top_n: Optional number of rows to keep after ranking.

    Returns:
        DataFrame with columns `label_col`, `count`, `pct`, ordered by count
        descending then label ascending.
    """
    labels = [category_label(v) for v in counts.index]
    merged = (
        pd.Series(counts.to_numpy(), index=pd.Index(labels, dtype=object))
        .groupby(level=0, sort=False)
        .sum()
    )

    out = pd.DataFrame(
        {
            label_col: list(merged.index),
            "count": merged.to_numpy().astype("int64"),
        }
    )
    out["pct"] = percent_of(out["count"], int(out["count"].sum()))

    # mixed int/str labels only sort as text
    out["_key"] = out[label_col].astype(str)
    out = (
        out.sort_values(["count", "_key"], ascending=[False, True], kind="mergesort")
        .drop(columns="_key")
        .reset_index(drop=True)
    )
    if top_n is not None:
        out = out.head(top_n)
    return out


def _partition_counts(s: pd.Series) -> pd.Series:
    """Count one partition's values after coalescing missing labels."""
    return s.map(category_label).astype(object).value_counts(sort=False)


def count_share(relation: Any, dimension: str, top_n: int | None = None) -> pd.DataFrame:
    """Count rows of `relation` per value of `dimension` with their share.

    The denominator is the number of rows in `relation`, so the full table's
    percentages add up to 100.

    Args:
        relation: Dask or pandas DataFrame.
        dimension: Column to group by; missing values become ``NOT INFORMED``.
        top_n: Optional cap on the number of rows returned.
    """
    ddf = as_ddf(relation)
    parts = compute(*[delayed(_partition_counts)(p) for p in ddf[dimension].to_delayed()])
    counts = (
        pd.concat(parts) if parts else pd.Series(dtype="int64")
    ).groupby(level=0, sort=False).sum()
    return share_table(counts, dimension, top_n=top_n)


def grants_by_program(grants: Any) -> pd.DataFrame:
    """Grants per CAPES program as a share of all grants."""
    return count_share(grants, "program")


def grants_by_duration(grants: Any) -> pd.DataFrame:
    """Grants per duration in whole years (`end_year - start_year`).

    Durations are taken as recorded; negative spans from inconsistent source
    rows show up as their own groups.
    """
    ddf = as_ddf(grants)
    ddf = ddf.assign(duration_years=ddf["end_year"] - ddf["start_year"])
    return count_share(ddf, "duration_years")


def grants_by_destination_country(grants: Any, top_n: int = 10) -> pd.DataFrame:
    """Top destination countries over distinct (beneficiary, country) pairs.

    A beneficiary who went to the same country on several grants counts once
    for that country.
    """
    ddf = as_ddf(grants)
    pairs = ddf[["beneficiary_id", "destination_country"]].drop_duplicates()
    return count_share(pairs, "destination_country", top_n=top_n)


def beneficiaries_by_broad_area(grants: Any) -> pd.DataFrame:
    return count_share(unique_beneficiary_grants(grants), "broad_knowledge_area")


def beneficiaries_by_specific_area(grants: Any) -> pd.DataFrame:
    return count_share(unique_beneficiary_grants(grants), "specific_knowledge_area")


def beneficiaries_by_education_level(grants: Any, top_n: int = 5) -> pd.DataFrame:
    return count_share(unique_beneficiary_grants(grants), "education_level", top_n=top_n)


def beneficiaries_by_origin_state(grants: Any, top_n: int = 5) -> pd.DataFrame:
    return count_share(
        unique_beneficiary_grants(grants), "origin_institution_state", top_n=top_n
    )


def beneficiaries_by_origin_institution(grants: Any, top_n: int = 5) -> pd.DataFrame:
    return count_share(
        unique_beneficiary_grants(grants), "origin_institution", top_n=top_n
    )


def beneficiaries_by_tier(view: pd.DataFrame) -> pd.DataFrame:
    """Beneficiary groups per grant-count tier, in tier order.

    Args:
        view: Output of `grants_with_converted_value`.
    """
    out = share_table(view["grant_count_tier"].value_counts(), "grant_count_tier")
    order = {tier: i for i, tier in enumerate(TIER_ORDER)}
    return (
        out.sort_values("grant_count_tier", key=lambda s: s.map(order))
        .reset_index(drop=True)
    )


# =========================================================
# TIME SERIES
# =========================================================

def cumulative_beneficiaries(grants: Any) -> pd.DataFrame:
    """Distinct beneficiaries per start month with a running total and YoY.

    For each (`start_year`, `start_month`) the number of distinct
    `beneficiary_id` values is counted. `cumulative_total` is the running sum
    of those counts in (year, month) order. `year_total` is the sum of the
    monthly counts in that year and `yoy_pct` compares it with the previous
    year present in the data; the first year, and any year following a zero
    total, have a NaN `yoy_pct`. Rows with no start year or month are not
    counted.

    Returns:
        DataFrame with columns `year`, `month`, `beneficiaries`,
        `cumulative_total`, `year_total`, `yoy_pct`.
    """
    ddf = as_ddf(grants)
    monthly = (
        ddf.groupby(["start_year", "start_month"])["beneficiary_id"]
        .nunique()
        .compute()
    )

    out = (
        monthly.rename("beneficiaries")
        .reset_index()
        .rename(columns={"start_year": "year", "start_month": "month"})
        .sort_values(["year", "month"], kind="mergesort")
        .reset_index(drop=True)
    )
    out["beneficiaries"] = out["beneficiaries"].astype("int64")
    out["cumulative_total"] = out["beneficiaries"].cumsum()

    yearly = out.groupby("year", sort=True)["beneficiaries"].sum().astype("float64")
    previous = yearly.shift(1)
    yoy = ((yearly - previous) / previous.where(previous != 0) * 100.0).round(2)

    out["year_total"] = out["year"].map(yearly).astype("int64")
    out["yoy_pct"] = out["year"].map(yoy).astype("float64")
    return out


# =========================================================
# EXTREMAL VALUES
# =========================================================

def top_beneficiaries_by_value(view: pd.DataFrame, top_n: int = 5) -> pd.DataFrame:
    """Beneficiary groups with the highest total value in BRL.

    Args:
        view: Output of `grants_with_converted_value`.
        top_n: Number of groups to return.
    """
    return (
        view.sort_values(
            ["total_converted_value", "beneficiary"],
            ascending=[False, True],
            na_position="last",
            kind="mergesort",
        )
        .head(top_n)[["beneficiary", "grant_count", "grant_count_tier", "total_converted_value"]]
        .reset_index(drop=True)
    )


def highest_value_grant(
    grants: Any,
    rates: Any,
    policy: MissingRatePolicy = MissingRatePolicy.PROPAGATE,
) -> pd.DataFrame:
    """Return the single grant with the highest amount in BRL.

    Ties go to the grant with the smallest `row_id`. The result is empty when
    no grant could be converted.
    """
    x = normalize_amounts(with_row_id(as_ddf(grants)), rates, policy=policy)
    cols = [c for c in HIGHEST_GRANT_COLUMNS if c in x.columns]

    top = x["normalized_amount"].max().compute()
    if pd.isna(top):
        return x[cols].head(0, npartitions=-1)

    rows = x[x["normalized_amount"] == top].compute()
    return rows.sort_values("row_id").head(1)[cols].reset_index(drop=True)


def area_value_range(grants: Any) -> pd.DataFrame:
    """Largest and smallest grant-only amount per broad knowledge area.

    Zero and missing amounts are ignored. Amounts are taken as recorded, in
    each grant's own currency.

    Returns:
        DataFrame with columns `broad_knowledge_area`, `max_value`,
        `min_value`, ordered by `max_value` then `min_value`, both descending.
    """
    ddf = as_ddf(grants)
    x = ddf[ddf["amount_received_grant_only"] > 0]
    x = x.assign(broad_knowledge_area=x["broad_knowledge_area"].fillna(NOT_INFORMED))

    g = x.groupby("broad_knowledge_area")["amount_received_grant_only"]
    highest, lowest = compute(g.max(), g.min())

    out = pd.DataFrame(
        {
            "max_value": highest.astype("float64").round(2),
            "min_value": lowest.astype("float64").round(2),
        }
    )
    out.index.name = "broad_knowledge_area"
    return (
        out.reset_index()
        .sort_values(
            ["max_value", "min_value", "broad_knowledge_area"],
            ascending=[False, False, True],
            kind="mergesort",
        )
        .reset_index(drop=True)
    )


def distinct_positive_values(
    grants: Any,
    rates: Any,
    policy: MissingRatePolicy = MissingRatePolicy.PROPAGATE,
) -> pd.DataFrame:
    """Distinct amounts in BRL greater than zero, largest first."""
    x = normalize_amounts(grants, rates, policy=policy)
    values = x["normalized_amount"]
    unique = values[values > 0].drop_duplicates().compute()
    ordered = np.sort(unique.to_numpy(dtype="float64"))[::-1]
    return pd.DataFrame({"value": ordered})


def summary_counts(grants: Any) -> pd.DataFrame:
    """Headline totals: grants, distinct names and distinct ids.

    A gap between the two beneficiary counts measures how far grouping by
    name drifts from grouping by id.
    """
    ddf = as_ddf(grants)
    total, names, ids = compute(
        ddf.shape[0],
        ddf["beneficiary_name"].nunique(),
        ddf["beneficiary_id"].nunique(),
    )
    if names != ids:
        log.info(
            "Distinct beneficiary names (%d) differ from distinct ids (%d)",
            names,
            ids,
        )
    return pd.DataFrame(
        [
            {
                "total_grants": int(total),
                "distinct_beneficiary_names": int(names),
                "distinct_beneficiary_ids": int(ids),
            }
        ]
    )


# =========================================================
# CATALOGUE
# =========================================================

def build_reports(
    grants: Any,
    rates: Any,
    policy: MissingRatePolicy = MissingRatePolicy.PROPAGATE,
    top_n: int = 5,
) -> dict[str, pd.DataFrame]:
    """Evaluate every report against the given relations.

    Reports are independent: a report that fails is logged and left out, and
    the rest are still produced.

    Args:
        grants: Cleaned grants relation.
        rates: Cleaned currency conversion relation.
        policy: Treatment of grants whose currency has no rate.
        top_n: Number of beneficiary groups in `top_beneficiaries_by_value`.

    Returns:
        Mapping of report name to its result table, in catalogue order.
    """
    def _view() -> pd.DataFrame:
        return grants_with_converted_value(grants, rates, policy=policy)

    catalogue: dict[str, Callable[[], pd.DataFrame]] = {
        "summary_counts": lambda: summary_counts(grants),
        "cumulative_beneficiaries": lambda: cumulative_beneficiaries(grants),
        "beneficiaries_by_tier": lambda: beneficiaries_by_tier(_view()),
        "top_beneficiaries_by_value": lambda: top_beneficiaries_by_value(_view(), top_n),
        "grants_by_duration": lambda: grants_by_duration(grants),
        "distinct_positive_values": lambda: distinct_positive_values(grants, rates, policy),
        "highest_value_grant": lambda: highest_value_grant(grants, rates, policy),
        "grants_by_program": lambda: grants_by_program(grants),
        "grants_by_destination_country": lambda: grants_by_destination_country(grants),
        "beneficiaries_by_broad_area": lambda: beneficiaries_by_broad_area(grants),
        "beneficiaries_by_specific_area": lambda: beneficiaries_by_specific_area(grants),
        "beneficiaries_by_education_level": lambda: beneficiaries_by_education_level(grants),
        "beneficiaries_by_origin_state": lambda: beneficiaries_by_origin_state(grants),
        "beneficiaries_by_origin_institution": lambda: beneficiaries_by_origin_institution(grants),
        "area_value_range": lambda: area_value_range(grants),
    }

    results: dict[str, pd.DataFrame] = {}
    for name, build in catalogue.items():
        try:
            results[name] = build()
        except (KeyError, ValueError, TypeError) as e:
            log.warning("Report %s could not be computed: %s", name, e)
            continue
        log.info("Report %s: %d rows", name, len(results[name]))

    return results
