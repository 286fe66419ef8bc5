"""Currency normalization of grant amounts.

Amounts are stored in each grant's native currency. Before they can be
compared or summed across rows they are expressed in the reference currency
(BRL) with the conversion factor listed for each `currency_code`.
"""
from __future__ import annotations

from enum import Enum
from typing import Any
import logging

import pandas as pd

from capes_reports.aggregate.frames import as_ddf, as_pdf

log = logging.getLogger(__name__)

REFERENCE_CURRENCY = "BRL"


class MissingRatePolicy(str, Enum):
    """What to do with a non-BRL grant whose currency has no conversion row."""

    PROPAGATE = "propagate"  # normalized amount is null
    DROP = "drop"            # row leaves the normalized relation
    IDENTITY = "identity"    # factor treated as 1

    @classmethod
    def parse(cls, value: "str | MissingRatePolicy") -> "MissingRatePolicy":
        """Return the policy named by `value` (case-insensitive).

        Raises:
            ValueError: if `value` is not a known policy name.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"unknown missing-rate policy {value!r}") from None


def _rate_table(rates: Any) -> pd.DataFrame:
    """Return a small pandas lookup with one factor per currency code."""
    pdf = as_pdf(rates)
    return (
        pdf[["currency_code", "conversion_factor"]]
        .dropna(subset=["currency_code"])
        .drop_duplicates(subset=["currency_code"], keep="first")
    )


def normalize_amounts(
    grants: Any,
    rates: Any,
    policy: MissingRatePolicy = MissingRatePolicy.PROPAGATE,
    amount_col: str = "amount_received_total",
) -> Any:
    """Attach the effective conversion factor and the normalized amount.

    BRL rows always use a factor of 1, whether or not the conversion table
    lists BRL. Other currencies are multiplied by their `conversion_factor`;
    rows whose currency is absent from the table are handled by `policy`.

    Args:
        grants: Dask or pandas DataFrame with `currency_code` and `amount_col`.
        rates: Dask or pandas DataFrame with `currency_code` and
            `conversion_factor`.
        policy: Treatment of rows without a matching rate.
        amount_col: Amount column to normalize.

    Returns:
        Dask DataFrame with every grant column plus `conversion_factor`
        (the factor actually applied) and `normalized_amount`.
    """
    ddf = as_ddf(grants)
    if "conversion_factor" in ddf.columns:
        ddf = ddf.drop(columns=["conversion_factor"])

    table = _rate_table(rates)
    lookup = dict(zip(table["currency_code"], table["conversion_factor"]))

    # codes without a listed rate map to NaN
    codes = ddf["currency_code"]
    factor = codes.map(lookup, meta=("conversion_factor", "float64")).astype("float64")
    is_reference = (codes == REFERENCE_CURRENCY).fillna(False).astype(bool)
    x = ddf.assign(conversion_factor=factor.where(~is_reference, 1.0))

    missing = int(x["conversion_factor"].isna().sum().compute())
    if missing:
        log.warning(
            "%d grant rows have no conversion rate for their currency (policy=%s)",
            missing,
            policy.value,
        )
        if policy is MissingRatePolicy.DROP:
            x = x[x["conversion_factor"].notnull()]
        elif policy is MissingRatePolicy.IDENTITY:
            x = x.assign(conversion_factor=x["conversion_factor"].fillna(1.0))

    return x.assign(normalized_amount=x[amount_col] * x["conversion_factor"])
