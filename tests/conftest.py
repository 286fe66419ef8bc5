from __future__ import annotations

from typing import Any, Callable

import pandas as pd
import dask.dataframe as dd
import pytest

BASE_GRANT: dict[str, Any] = {
    "beneficiary_id": "11111111111",
    "beneficiary_name": "ANA SOUZA",
    "start_year": 2010,
    "start_month": 1,
    "end_year": 2011,
    "amount_received_total": 100.0,
    "amount_received_grant_only": 80.0,
    "currency_code": "BRL",
    "program": "CIENCIA SEM FRONTEIRAS",
    "destination_country": "ESTADOS UNIDOS",
    "broad_knowledge_area": "ENGENHARIAS",
    "specific_knowledge_area": "ENGENHARIA CIVIL",
    "education_level": "GRADUACAO",
    "origin_institution": "UNIVERSIDADE DE SAO PAULO",
    "origin_institution_state": "SP",
}


@pytest.fixture
def make_grants() -> Callable[..., Any]:
    """Build a single-partition grants relation; each dict overrides BASE_GRANT."""
    def _make(*overrides: dict[str, Any]) -> Any:
        rows = [{**BASE_GRANT, "row_id": i, **o} for i, o in enumerate(overrides)]
        pdf = pd.DataFrame(rows, columns=[*BASE_GRANT, "row_id"])
        return dd.from_pandas(pdf, npartitions=1)

    return _make


@pytest.fixture
def rates() -> Any:
    pdf = pd.DataFrame(
        [
            {"currency_code": "USD", "conversion_factor": 5.0},
            {"currency_code": "EUR", "conversion_factor": 6.0},
        ]
    )
    return dd.from_pandas(pdf, npartitions=1)
