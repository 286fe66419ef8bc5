from __future__ import annotations

import math

import pandas as pd
import pytest

from capes_reports.aggregate.currency import MissingRatePolicy
from capes_reports.aggregate.frames import NOT_INFORMED
from capes_reports.aggregate.views import (
    GroupingKey,
    grant_count_tier,
    grants_with_converted_value,
    unique_beneficiary_grants,
)
from capes_reports.models import BeneficiaryValueRow


@pytest.mark.parametrize(
    ("count", "tier"),
    [(1, "1"), (2, "2-4"), (3, "2-4"), (4, "2-4"), (5, "5-6"), (6, "5-6"), (7, "5-6"), (40, "5-6")],
)
def test_grant_count_tier_buckets(count: int, tier: str) -> None:
    assert grant_count_tier(count) == tier


def test_grant_count_tier_rejects_zero() -> None:
    with pytest.raises(ValueError):
        grant_count_tier(0)


def test_converted_value_view_counts_tiers_and_totals(make_grants, rates) -> None:
    grants = make_grants(
        {"beneficiary_name": "ANA", "amount_received_total": 100.0},
        {"beneficiary_name": "ANA", "amount_received_total": 10.0, "currency_code": "USD"},
        {"beneficiary_name": "ANA", "amount_received_total": 0.0},
        {"beneficiary_name": "BIA", "amount_received_total": 20.0},
        *[{"beneficiary_name": "CAU", "amount_received_total": 1.0} for _ in range(5)],
    )
    view = grants_with_converted_value(grants, rates).set_index("beneficiary")

    assert view.loc["ANA", "grant_count"] == 3
    assert view.loc["ANA", "grant_count_tier"] == "2-4"
    assert view.loc["ANA", "total_converted_value"] == 150.0
    assert view.loc["BIA", "grant_count_tier"] == "1"
    assert view.loc["CAU", "grant_count"] == 5
    assert view.loc["CAU", "grant_count_tier"] == "5-6"

    for rec in view.reset_index().to_dict("records"):
        BeneficiaryValueRow.model_validate(rec)


def test_converted_value_is_rounded_to_two_places(make_grants) -> None:
    grants = make_grants({"amount_received_total": 1.0, "currency_code": "USD"})
    rates = pd.DataFrame([{"currency_code": "USD", "conversion_factor": 3.33333}])
    view = grants_with_converted_value(grants, rates)
    assert view.loc[0, "total_converted_value"] == 3.33


def test_by_name_merges_people_sharing_a_name(make_grants, rates) -> None:
    grants = make_grants(
        {"beneficiary_id": "1", "beneficiary_name": "JOSE SILVA"},
        {"beneficiary_id": "2", "beneficiary_name": "JOSE SILVA"},
    )
    by_name = grants_with_converted_value(grants, rates, key=GroupingKey.BY_NAME)
    by_id = grants_with_converted_value(grants, rates, key=GroupingKey.BY_ID)

    assert by_name["grant_count"].tolist() == [2]
    assert sorted(by_id["beneficiary"]) == ["1", "2"]
    assert by_id["grant_count"].tolist() == [1, 1]


def test_missing_name_is_grouped_as_not_informed(make_grants, rates) -> None:
    grants = make_grants({"beneficiary_name": None}, {"beneficiary_name": None})
    view = grants_with_converted_value(grants, rates)
    assert view["beneficiary"].tolist() == [NOT_INFORMED]
    assert view.loc[0, "grant_count"] == 2


def test_group_without_convertible_amounts_has_null_total(make_grants, rates) -> None:
    grants = make_grants(
        {"beneficiary_name": "ANA", "currency_code": "GBP"},
        {"beneficiary_name": "BIA", "currency_code": "GBP", "amount_received_total": 10.0},
        {"beneficiary_name": "BIA", "currency_code": "BRL", "amount_received_total": 5.0},
    )
    view = grants_with_converted_value(grants, rates).set_index("beneficiary")
    assert math.isnan(view.loc["ANA", "total_converted_value"])
    assert view.loc["BIA", "total_converted_value"] == 5.0
    assert view.loc["BIA", "grant_count"] == 2

    identity = grants_with_converted_value(
        grants, rates, policy=MissingRatePolicy.IDENTITY
    ).set_index("beneficiary")
    assert identity.loc["BIA", "total_converted_value"] == 15.0


def test_unique_view_has_one_row_per_id(make_grants) -> None:
    grants = make_grants(
        {"beneficiary_id": "A", "start_year": 2010},
        {"beneficiary_id": "A", "start_year": 2010},
        {"beneficiary_id": "B", "start_year": 2011},
    )
    unique = unique_beneficiary_grants(grants).compute()
    assert len(unique) == 2
    assert sorted(unique["beneficiary_id"]) == ["A", "B"]
    assert len(unique) <= len(grants.compute())


def test_unique_view_keeps_smallest_row_id(make_grants) -> None:
    grants = make_grants(
        {"beneficiary_id": "A", "program": "FIRST"},
        {"beneficiary_id": "A", "program": "SECOND"},
    ).compute()
    grants["row_id"] = [9, 4]

    unique = unique_beneficiary_grants(grants).compute()
    assert unique["row_id"].tolist() == [4]
    assert unique["program"].tolist() == ["SECOND"]


def test_unique_view_is_reproducible_across_partitions(make_grants) -> None:
    grants = make_grants(
        *[{"beneficiary_id": f"P{i % 3}", "program": f"PROG{i}"} for i in range(9)]
    )
    one = unique_beneficiary_grants(grants).compute().sort_values("row_id")
    many = unique_beneficiary_grants(grants.repartition(npartitions=3)).compute().sort_values("row_id")
    assert one["program"].tolist() == many["program"].tolist() == ["PROG0", "PROG1", "PROG2"]


def test_unique_view_excludes_rows_without_id(make_grants) -> None:
    grants = make_grants({"beneficiary_id": None}, {"beneficiary_id": "A"})
    unique = unique_beneficiary_grants(grants).compute()
    assert unique["beneficiary_id"].tolist() == ["A"]
