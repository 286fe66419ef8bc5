"""Small frame helpers shared by the views and the reports."""

from __future__ import annotations

from typing import Any, cast

import numpy as np
import pandas as pd
import dask.dataframe as dd

NOT_INFORMED = "NOT INFORMED"


def as_ddf(frame: Any) -> Any:
    """Return `frame` as a Dask DataFrame.

    Pandas frames are wrapped in a single partition so every report can be
    called with either flavour.
    """
    if isinstance(frame, pd.DataFrame):
        dd_mod = cast(Any, dd)
        return dd_mod.from_pandas(frame, npartitions=1)
    return frame


def as_pdf(frame: Any) -> pd.DataFrame:
    """Return `frame` materialized as a pandas DataFrame."""
    if isinstance(frame, pd.DataFrame):
        return frame
    return frame.compute()


def category_label(value: Any) -> Any:
    """Coalesce a group key for display.

    Missing values become ``NOT INFORMED``; integral floats (produced by
    arithmetic over nullable year columns) are shown as ints.
    """
    if value is None or value is pd.NA:
        return NOT_INFORMED
    if isinstance(value, (float, np.floating)):
        if np.isnan(value):
            return NOT_INFORMED
        if float(value).is_integer():
            return int(value)
        return float(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


def percent_of(counts: pd.Series, total: int) -> pd.Series:
    """Return `counts` as percentage points of `total`, rounded to 2 dp.

    A zero total yields NaN for every row instead of dividing by zero.
    """
    if total == 0:
        return pd.Series(np.nan, index=counts.index, dtype="float64")
    return (counts.astype("float64") / float(total) * 100.0).round(2)


def format_pct(value: Any) -> str:
    """Render percentage points as ``"50.00%"``; undefined values render empty."""
    if value is None or value is pd.NA or pd.isna(value):
        return ""
    return f"{float(value):.2f}%"


def with_row_id(ddf: Any) -> Any:
    """Return `ddf` with a 0-based `row_id` in partition order, if missing."""
    if "row_id" in ddf.columns:
        return ddf
    x = ddf.assign(row_id=1)
    return x.assign(row_id=x["row_id"].cumsum() - 1)
