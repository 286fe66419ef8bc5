"""Derived beneficiary views.

Two views are built from the grants relation and are recomputed on every call:

- `grants_with_converted_value`: one row per beneficiary group with the
  number of grants, the grant-count tier and the total value in BRL.
- `unique_beneficiary_grants`: one grant row per distinct `beneficiary_id`,
  the population base for every "share of beneficiaries" report.

The two views do not group by the same key. The value view groups by display
name (`GroupingKey.BY_NAME`) while the population base deduplicates by the
stable id. Name collisions therefore merge different people in the value view
but not in the population base. `GroupingKey.BY_ID` is available for callers
that want the value view keyed by id.
"""
from __future__ import annotations

from enum import Enum
from typing import Any
import logging

import pandas as pd
from dask import compute  # type: ignore[attr-defined]

from capes_reports.aggregate.currency import MissingRatePolicy, normalize_amounts
from capes_reports.aggregate.frames import NOT_INFORMED, as_ddf, with_row_id

log = logging.getLogger(__name__)

TIER_ORDER = ("1", "2-4", "5-6")


class GroupingKey(str, Enum):
    """Column a per-beneficiary aggregation groups by."""

    BY_NAME = "beneficiary_name"
    BY_ID = "beneficiary_id"


def grant_count_tier(count: int) -> str:
    """Bucket a beneficiary's grant count.

    ``1`` → ``"1"``, 2-4 → ``"2-4"``, anything from 5 up → ``"5-6"`` (the top
    bucket is open ended).

    Raises:
        ValueError: if `count` is below 1.
    """
    if count < 1:
        raise ValueError(f"grant count must be >= 1, got {count}")
    if count == 1:
        return "1"
    if count <= 4:
        return "2-4"
    return "5-6"


def grants_with_converted_value(
    grants: Any,
    rates: Any,
    key: GroupingKey = GroupingKey.BY_NAME,
    policy: MissingRatePolicy = MissingRatePolicy.PROPAGATE,
) -> pd.DataFrame:
    """Aggregate grants per beneficiary with the total value in BRL.

    Args:
        grants: Grants relation (Dask or pandas).
        rates: Currency conversion relation.
        key: Grouping strategy; defaults to the display name.
        policy: Treatment of grants whose currency has no rate.

    Returns:
        pandas DataFrame with columns `beneficiary`, `grant_count`,
        `grant_count_tier`, `total_converted_value`, sorted by `beneficiary`.
        `total_converted_value` is null only when none of the group's grants
        could be converted.
    """
    x = normalize_amounts(grants, rates, policy=policy)
    col = key.value
    x = x.assign(**{col: x[col].fillna(NOT_INFORMED)})

    g = x.groupby(col)
    counts, totals, valued = compute(
        g.size(),
        g["normalized_amount"].sum(),
        g["normalized_amount"].count(),
    )

    out = pd.DataFrame(
        {
            "grant_count": counts.astype("int64"),
            "total_converted_value": totals.where(valued > 0).round(2),
        }
    )
    out.index.name = "beneficiary"
    out = out.reset_index()
    out["grant_count_tier"] = out["grant_count"].map(grant_count_tier)

    log.info("Beneficiary value view (%s): %d groups", key.name, len(out))
    return (
        out[["beneficiary", "grant_count", "grant_count_tier", "total_converted_value"]]
        .sort_values("beneficiary", kind="mergesort")
        .reset_index(drop=True)
    )


def unique_beneficiary_grants(grants: Any) -> Any:
    """Return one grant row per distinct `beneficiary_id`.

    The retained row is the one with the smallest `row_id`. Rows without a
    `beneficiary_id` cannot be attributed to a person and are left out.

    Args:
        grants: Grants relation with `beneficiary_id` and `row_id` columns.

    Returns:
        Dask DataFrame with the same columns as `grants`.
    """
    ddf = with_row_id(as_ddf(grants))
    keep = ddf.groupby("beneficiary_id")["row_id"].min().reset_index()
    return ddf.merge(keep, on=["beneficiary_id", "row_id"], how="inner")
