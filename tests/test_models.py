from __future__ import annotations

import pytest
from pydantic import ValidationError
import pandas as pd

from capes_reports.clean.validate import validate_ddf, validate_partition
from capes_reports.models import CountShareRow, CurrencyRate, Grant


def test_grant_validates() -> None:
    rec = {
        "row_id": 0,
        "beneficiary_id": "***.123.456-**",
        "beneficiary_name": "ANA SOUZA",
        "start_year": 2014,
        "start_month": 8,
        "end_year": 2015,
        "amount_received_total": 1234.56,
        "currency_code": "USD",
        "some_extra_export_column": "ignored",
    }
    g = Grant.model_validate(rec)
    assert g.program is None


def test_grant_rejects_end_before_start() -> None:
    with pytest.raises(ValidationError):
        Grant.model_validate({"row_id": 0, "start_year": 2015, "end_year": 2014})


def test_grant_rejects_negative_amount() -> None:
    with pytest.raises(ValidationError):
        Grant.model_validate({"row_id": 0, "amount_received_total": -1.0})


def test_currency_rate_requires_positive_factor() -> None:
    CurrencyRate.model_validate({"currency_code": "USD", "conversion_factor": 5.0})
    with pytest.raises(ValidationError):
        CurrencyRate.model_validate({"currency_code": "USD", "conversion_factor": 0})


def test_count_share_row_allows_missing_pct() -> None:
    row = CountShareRow.model_validate({"label": "NOT INFORMED", "count": 0, "pct": None})
    assert row.pct is None


def test_validate_partition_counts_bad_rows_and_maps_missing_values(make_grants) -> None:
    pdf = make_grants(
        {"start_year": 2014, "end_year": 2015},
        {"start_year": 2015, "end_year": 2014},
        {"amount_received_grant_only": None},
    ).compute()
    good, bad = validate_partition(pdf, Grant)
    assert bad == 1
    assert len(good) == 2
    assert good[1]["amount_received_grant_only"] is None


def test_validate_ddf_spans_partitions(make_grants) -> None:
    grants = make_grants(
        {"start_year": 2014, "end_year": 2015},
        {"start_year": 2015, "end_year": 2014},
        {"amount_received_total": -5.0},
        {},
    ).repartition(npartitions=2)
    assert validate_ddf(grants, Grant) == (2, 2)


def test_validate_partition_handles_nullable_ints() -> None:
    pdf = pd.DataFrame({"row_id": [0, 1], "start_year": pd.array([2014, None], dtype="Int64")})
    good, bad = validate_partition(pdf, Grant)
    assert bad == 0
    assert good[1]["start_year"] is None
