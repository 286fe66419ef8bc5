"""Validation utilities for the cleaned grants and rates.

Partitions are validated against the Pydantic models. Validation is
diagnostic: it counts rows that break the schema (negative amounts, end year
before start year, ...) but the report layer still sees every row.
"""
from __future__ import annotations

import logging
from typing import Any, Type

import numpy as np
import pandas as pd
from dask import delayed, compute  # type: ignore[attr-defined]
from pydantic import BaseModel, ValidationError

from capes_reports.models import Grant

log = logging.getLogger(__name__)


def _native(v: Any) -> Any:
    """Map pandas/numpy missing markers and scalars to plain Python values."""
    if v is None or v is pd.NA:
        return None
    if isinstance(v, np.generic):
        v = v.item()
    if isinstance(v, float) and np.isnan(v):
        return None
    return v


def validate_partition(
    pdf: pd.DataFrame,
    model: Type[BaseModel] = Grant,
) -> tuple[list[dict[str, Any]], int]:
    """Validate a pandas partition of records using Pydantic.

    Args:
        pdf: Pandas DataFrame for the partition.
        model: Pydantic model each record must satisfy.

    Returns:
        A tuple of (list_of_validated_records, bad_count).
    """
    good: list[dict[str, Any]] = []
    bad = 0

    for rec in pdf.to_dict(orient="records"):
        rec = {k: _native(v) for k, v in rec.items()}
        try:
            m = model.model_validate(rec)
            good.append(m.model_dump(mode="python"))
        except ValidationError:
            bad += 1

    return good, bad


def _count_partition(pdf: pd.DataFrame, model: Type[BaseModel]) -> tuple[int, int]:
    good, bad = validate_partition(pdf, model)
    return len(good), bad


def validate_ddf(ddf: Any, model: Type[BaseModel] = Grant) -> tuple[int, int]:
    """Validate every partition of `ddf` and return `(good, bad)` row counts."""
    tasks = [delayed(_count_partition)(part, model) for part in ddf.to_delayed()]
    results = compute(*tasks)

    good_total = sum(g for g, _ in results)
    bad_total = sum(b for _, b in results)

    log.info("%s validation: good=%d bad=%d", model.__name__, good_total, bad_total)
    return int(good_total), int(bad_total)
