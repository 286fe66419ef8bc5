"""Publishing of report tables.

Report tables are small and already materialized to pandas. They are written
as one CSV per report and can also be published into dedicated MongoDB
collections read by a dashboard. Every report is a full recomputation, so
publishing replaces the previous contents of its collection.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pandas as pd
from pydantic import BaseModel, ValidationError

from capes_reports.aggregate.frames import format_pct
from capes_reports.config import Settings, require_mongo_uri
from capes_reports.db import bulk_upsert, get_client, get_db, replace_all
from capes_reports.models import (
    AreaValueRangeRow,
    BeneficiaryValueRow,
    CountShareRow,
    CumulativeBeneficiariesRow,
    SummaryCounts,
)

log = logging.getLogger(__name__)

COLLECTION_PREFIX = "report_"

# upsert selector per report; reports not listed are keyed by their first column
REPORT_KEYS: dict[str, list[str]] = {
    "summary_counts": [],
    "cumulative_beneficiaries": ["year", "month"],
    "highest_value_grant": [],
    "distinct_positive_values": ["value"],
}

PCT_COLUMNS = ("pct", "yoy_pct")

ROW_MODELS: dict[str, type[BaseModel]] = {
    "summary_counts": SummaryCounts,
    "cumulative_beneficiaries": CumulativeBeneficiariesRow,
    "top_beneficiaries_by_value": BeneficiaryValueRow,
    "area_value_range": AreaValueRangeRow,
}


def key_fields_for(name: str, pdf: pd.DataFrame) -> list[str]:
    """Return the upsert selector columns for report `name`."""
    if name in REPORT_KEYS:
        return REPORT_KEYS[name]
    return [str(pdf.columns[0])]


def with_pct_labels(pdf: pd.DataFrame) -> pd.DataFrame:
    """Add a rendered ``"12.34%"`` column next to each percentage column."""
    out = pdf.copy()
    for col in PCT_COLUMNS:
        if col in out.columns:
            out[f"{col}_label"] = out[col].map(format_pct)
    return out


def to_records(pdf: pd.DataFrame) -> list[dict[str, Any]]:
    """Convert a report table to BSON-safe documents (missing → None)."""
    clean = pdf.astype(object).where(pdf.notna(), None)
    return clean.to_dict("records")


def export_csv(reports: dict[str, pd.DataFrame], out_dir: Path) -> list[Path]:
    """Write each report to ``<out_dir>/<name>.csv``.

    Returns:
        Paths of the written files, in report order.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name, pdf in reports.items():
        path = out_dir / f"{name}.csv"
        with_pct_labels(pdf).to_csv(path, index=False)
        written.append(path)
    log.info("Wrote %d report files to %s", len(written), out_dir)
    return written


def row_model_for(name: str, pdf: pd.DataFrame) -> tuple[type[BaseModel] | None, str | None]:
    """Return the row model of report `name` and the column holding its label.

    Grouped count tables (`<label>, count, pct`) share `CountShareRow`, with
    their first column read as `label`. Reports without a model give None.
    """
    if name in ROW_MODELS:
        return ROW_MODELS[name], None
    if len(pdf.columns) == 3 and list(pdf.columns[1:]) == ["count", "pct"]:
        return CountShareRow, str(pdf.columns[0])
    return None, None


def count_invalid_rows(name: str, docs: list[dict[str, Any]], pdf: pd.DataFrame) -> int:
    """Validate report documents against their row model; return the bad count."""
    model, label_col = row_model_for(name, pdf)
    if model is None:
        return 0

    bad = 0
    for doc in docs:
        rec = dict(doc)
        if label_col is not None:
            rec["label"] = rec.pop(label_col)
        try:
            model.model_validate(rec)
        except ValidationError as e:
            bad += 1
            log.debug("Invalid %s row %s: %s", name, doc, e)

    if bad:
        log.warning("%s: %d of %d rows do not match %s", name, bad, len(docs), model.__name__)
    return bad


def publish_reports(reports: dict[str, pd.DataFrame], settings: Settings) -> int:
    """Replace every ``report_<name>`` MongoDB collection with its report.

    Each collection is cleared before the new rows are upserted, so rows
    that dropped out of a report (a state leaving the top 5, a value no
    longer present) do not linger. Rows are checked against the report's
    row model first; mismatches are logged and still published.

    Args:
        reports: Mapping of report name to table.
        settings: Settings carrying the MongoDB target.

    Returns:
        Total number of documents attempted.
    """
    client = get_client(require_mongo_uri(settings), tls=settings.mongo_tls)
    db = get_db(client, settings.mongo_db)

    total = 0
    try:
        for name, pdf in reports.items():
            collection_name = f"{COLLECTION_PREFIX}{name}"
            if pdf.empty:
                log.warning("No rows to publish for %s", collection_name)

            count_invalid_rows(name, to_records(pdf), pdf)

            log.info("Publishing report collection: %s", collection_name)
            attempted = replace_all(
                db[collection_name],
                to_records(with_pct_labels(pdf)),
                key_fields_for(name, pdf),
            )
            log.info("Publish complete for %s: %d rows", collection_name, attempted)
            total += attempted
    finally:
        client.close()

    return total
