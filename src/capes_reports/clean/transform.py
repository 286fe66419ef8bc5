"""Cleaning and normalization utilities.

This module contains transformations that are applied partition-wise using
Dask. The output is a Dask DataFrame whose schema is stable and suitable for
Pydantic validation and for the report layer.
"""
from __future__ import annotations

import re
import logging
from typing import Any

import numpy as np
import pandas as pd

from capes_reports.aggregate.frames import with_row_id

log = logging.getLogger(__name__)

TEXT_COLUMNS = (
    "beneficiary_id",
    "beneficiary_name",
    "currency_code",
    "program",
    "destination_country",
    "broad_knowledge_area",
    "specific_knowledge_area",
    "education_level",
    "origin_institution",
    "origin_institution_state",
)
INT_COLUMNS = ("start_year", "start_month", "end_year")
AMOUNT_COLUMNS = ("amount_received_total", "amount_received_grant_only")

_WS_RE = re.compile(r"\s+")


def normalize_text(s: pd.Series) -> pd.Series:
    """Collapse internal whitespace, trim, and turn empty strings into None."""
    def _one(v: Any) -> Any:
        if v is None or (not isinstance(v, str) and pd.isna(v)):
            return None
        text = _WS_RE.sub(" ", str(v)).strip()
        return text or None

    return s.map(_one).astype(object)


def parse_number(v: Any) -> float:
    """Parse an amount written either as ``1234.56`` or as ``1.234,56``.

    Unparseable values become NaN.
    """
    if v is None or (not isinstance(v, str) and pd.isna(v)):
        return np.nan
    if isinstance(v, (int, float, np.integer, np.floating)):
        return float(v)
    text = str(v).strip().replace(" ", "")
    if "," in text:
        text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return np.nan


def to_amount(s: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(s):
        return s.astype("float64")
    return s.map(parse_number).astype("float64")


def to_int(s: pd.Series) -> pd.Series:
    """Coerce to nullable integers; non-numeric values become <NA>."""
    return to_amount(s).round().astype("Int64")


def clean_grants_ddf(ddf: Any) -> Any:
    """Clean a grants relation read from the CAPES export.

    Normalizes text columns, upper-cases currency codes, types years/months as
    nullable integers and amounts as floats, and ensures a `row_id` exists.
    Rows are never dropped here.

    Returns:
        Transformed Dask DataFrame with a stable schema for downstream steps.
    """
    log.info("Starting clean_grants_ddf transformation")

    def _clean_partition(pdf: pd.DataFrame) -> pd.DataFrame:
        """Partition-level cleaning function applied via map_partitions."""
        pdf = pdf.copy()

        for col in TEXT_COLUMNS:
            if col in pdf.columns:
                pdf[col] = normalize_text(pdf[col])

        if "currency_code" in pdf.columns:
            pdf["currency_code"] = pdf["currency_code"].map(
                lambda v: v.upper() if isinstance(v, str) else v
            ).astype(object)

        for col in INT_COLUMNS:
            if col in pdf.columns:
                pdf[col] = to_int(pdf[col])

        for col in AMOUNT_COLUMNS:
            if col in pdf.columns:
                pdf[col] = to_amount(pdf[col])

        return pdf

    # Schema of the cleaned partitions, derived from the empty meta frame
    meta = _clean_partition(ddf._meta.copy())

    return with_row_id(ddf.map_partitions(_clean_partition, meta=meta))


def clean_rates_ddf(ddf: Any) -> Any:
    """Clean the currency conversion relation.

    Upper-cases and trims codes, parses factors, and drops rows without a
    currency code.
    """
    def _clean_partition(pdf: pd.DataFrame) -> pd.DataFrame:
        pdf = pdf.copy()
        pdf["currency_code"] = normalize_text(pdf["currency_code"]).map(
            lambda v: v.upper() if isinstance(v, str) else v
        ).astype(object)
        pdf["conversion_factor"] = to_amount(pdf["conversion_factor"])
        return pdf

    meta = _clean_partition(ddf._meta.copy())
    out = ddf.map_partitions(_clean_partition, meta=meta)
    return out.dropna(subset=["currency_code"])
