"""Pydantic models used for grant validation and report row shapes.

These models define the expected schema for cleaned grant and currency rows
and for the rows of the published report tables; `publish_reports` checks
report rows against them before writing.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Grant(BaseModel):
    """Schema for a cleaned grant row.

    Attributes:
        row_id: Position of the row in the source export.
        beneficiary_id: Stable personal identifier (CPF, possibly masked).
        beneficiary_name: Display name; not unique per person.
        start_year: Year the grant started.
        start_month: Month the grant started (1-12).
        end_year: Year the grant ended; not earlier than `start_year`.
        amount_received_total: Total received, in `currency_code`.
        amount_received_grant_only: Scholarship share of the total.
        currency_code: Currency of the amounts (e.g. 'BRL', 'USD').
    """
    model_config = ConfigDict(extra="ignore")
    row_id: int = Field(..., ge=0)
    beneficiary_id: str | None = None
    beneficiary_name: str | None = None
    start_year: int | None = Field(None, ge=1950, le=2100)
    start_month: int | None = Field(None, ge=1, le=12)
    end_year: int | None = Field(None, ge=1950, le=2100)
    amount_received_total: float | None = Field(None, ge=0)
    amount_received_grant_only: float | None = Field(None, ge=0)
    currency_code: str | None = None
    program: str | None = None
    destination_country: str | None = None
    broad_knowledge_area: str | None = None
    specific_knowledge_area: str | None = None
    education_level: str | None = None
    origin_institution: str | None = None
    origin_institution_state: str | None = None

    @model_validator(mode="after")
    def _end_not_before_start(self) -> "Grant":
        if (
            self.start_year is not None
            and self.end_year is not None
            and self.end_year < self.start_year
        ):
            raise ValueError("end_year is earlier than start_year")
        return self


class CurrencyRate(BaseModel):
    """Schema for a currency conversion row."""
    model_config = ConfigDict(extra="forbid")
    currency_code: str = Field(..., min_length=1)
    conversion_factor: float = Field(..., gt=0)


class CountShareRow(BaseModel):
    """Row of a grouped count/percentage report.

    `pct` is in percentage points and is None when the denominator is zero.
    """
    model_config = ConfigDict(extra="forbid")
    label: str | int
    count: int = Field(..., ge=0)
    pct: float | None = Field(None, ge=0, le=100)


class BeneficiaryValueRow(BaseModel):
    """Row of the per-beneficiary value view."""
    model_config = ConfigDict(extra="forbid")
    beneficiary: str
    grant_count: int = Field(..., ge=1)
    grant_count_tier: str = Field(..., pattern=r"^(1|2-4|5-6)$")
    total_converted_value: float | None = None


class CumulativeBeneficiariesRow(BaseModel):
    """Row of the cumulative beneficiaries time series."""
    model_config = ConfigDict(extra="forbid")
    year: int
    month: int
    beneficiaries: int = Field(..., ge=0)
    cumulative_total: int = Field(..., ge=0)
    year_total: int = Field(..., ge=0)
    yoy_pct: float | None = None


class AreaValueRangeRow(BaseModel):
    """Largest and smallest grant-only amount of a knowledge area."""
    model_config = ConfigDict(extra="forbid")
    broad_knowledge_area: str
    max_value: float = Field(..., gt=0)
    min_value: float = Field(..., gt=0)


class SummaryCounts(BaseModel):
    """Headline totals of the grants relation."""
    model_config = ConfigDict(extra="forbid")
    total_grants: int = Field(..., ge=0)
    distinct_beneficiary_names: int = Field(..., ge=0)
    distinct_beneficiary_ids: int = Field(..., ge=0)
