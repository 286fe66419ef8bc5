"""Readers for the two CAPES CSV exports.

The grants export (one row per scholarship payment record) and the currency
conversion table are read in chunks with pandas, their columns are renamed to
the canonical names used across the package, and the result is wrapped in a
Dask DataFrame with a stable partitioning strategy.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, cast
import logging

import pandas as pd
import dask.dataframe as dd

log = logging.getLogger(__name__)

CHUNK_SIZE = 50_000
ROWS_PER_PARTITION = 200_000

# export column -> canonical column
GRANT_COLUMNS = {
    "cpf": "beneficiary_id",
    "beneficiario": "beneficiary_name",
    "ano_inicial": "start_year",
    "mes_inicial": "start_month",
    "ano_final": "end_year",
    "valor_recebido_total": "amount_received_total",
    "valor_recebido_bolsa": "amount_received_grant_only",
    "sigla_moeda": "currency_code",
    "programa_capes": "program",
    "pais_destino": "destination_country",
    "grande_area_conhecimento": "broad_knowledge_area",
    "area_conhecimento": "specific_knowledge_area",
    "nivel_ensino": "education_level",
    "instituicao_ensino_origem": "origin_institution",
    "uf_instituicao_origem": "origin_institution_state",
}

RATE_COLUMNS = {
    "moeda": "currency_code",
    "fator conversao": "conversion_factor",
    "fator_conversao": "conversion_factor",
}

REQUIRED_GRANT_COLUMNS = [
    "beneficiary_id",
    "beneficiary_name",
    "start_year",
    "start_month",
    "end_year",
    "amount_received_total",
    "currency_code",
]

# categorical columns absent from an export are added as empty
OPTIONAL_GRANT_COLUMNS = [
    "amount_received_grant_only",
    "program",
    "destination_country",
    "broad_knowledge_area",
    "specific_knowledge_area",
    "education_level",
    "origin_institution",
    "origin_institution_state",
]

REQUIRED_RATE_COLUMNS = ["currency_code", "conversion_factor"]


def sniff_separator(path: Path) -> str:
    """Return ``;`` or ``,`` depending on which dominates the header line."""
    with path.open("r", encoding="utf-8", errors="replace") as fh:
        header = fh.readline()
    return ";" if header.count(";") > header.count(",") else ","


def _read_chunks(path: Path, chunksize: int) -> pd.DataFrame:
    """Read a CSV as text columns, in chunks, trying UTF-8 then latin-1."""
    sep = sniff_separator(path)

    for encoding in ("utf-8", "latin-1"):
        batches: List[pd.DataFrame] = []
        try:
            with pd.read_csv(
                path,
                sep=sep,
                dtype=str,
                encoding=encoding,
                chunksize=chunksize,
            ) as reader:
                for chunk in reader:
                    batches.append(chunk)
        except UnicodeDecodeError:
            log.info("%s is not valid %s, retrying", path.name, encoding)
            continue

        if not batches:
            return pd.DataFrame()
        return pd.concat(batches, ignore_index=True)

    raise ValueError(f"Could not decode {path} as UTF-8 or latin-1")


def rename_columns(pdf: pd.DataFrame, mapping: dict[str, str]) -> pd.DataFrame:
    """Rename export headers (matched case-insensitively) to canonical names.

    Headers that are already canonical, or unknown, are kept as they are.
    """
    renames: dict[str, str] = {}
    for col in pdf.columns:
        key = str(col).strip().lower()
        renames[col] = mapping.get(key, key)
    return pdf.rename(columns=renames)


def _require(pdf: pd.DataFrame, required: list[str], what: str) -> None:
    missing = [c for c in required if c not in pdf.columns]
    if missing:
        raise ValueError(f"{what} is missing required columns: {', '.join(missing)}")


def _to_ddf(pdf: pd.DataFrame) -> Any:
    nparts = max(1, len(pdf) // ROWS_PER_PARTITION)
    dd_mod = cast(Any, dd)
    return dd_mod.from_pandas(pdf, npartitions=nparts)


def read_grants_csv(path: Path, chunksize: int = CHUNK_SIZE) -> Any:
    """Read the CAPES grants export into a Dask DataFrame.

    Every column is read as text; typing happens in the clean step. Each row
    gets a `row_id` equal to its 0-based position in the file.

    Args:
        path: Path to the export.
        chunksize: Number of rows per read batch.

    Returns:
        Dask DataFrame with canonical column names.

    Raises:
        ValueError: if a required column is missing.
    """
    pdf = rename_columns(_read_chunks(path, chunksize), GRANT_COLUMNS)
    _require(pdf, REQUIRED_GRANT_COLUMNS, f"Grants file {path}")

    for col in OPTIONAL_GRANT_COLUMNS:
        if col not in pdf.columns:
            log.warning("Grants file has no %s column; it will be reported as missing", col)
            pdf[col] = None

    pdf["row_id"] = range(len(pdf))
    log.info("Read %d grant rows from %s", len(pdf), path)
    return _to_ddf(pdf)


def read_rates_csv(path: Path) -> Any:
    """Read the currency conversion table into a Dask DataFrame.

    Raises:
        ValueError: if the currency or factor column is missing.
    """
    pdf = rename_columns(_read_chunks(path, CHUNK_SIZE), RATE_COLUMNS)
    _require(pdf, REQUIRED_RATE_COLUMNS, f"Rates file {path}")

    log.info("Read %d currency rates from %s", len(pdf), path)
    return _to_ddf(pdf[REQUIRED_RATE_COLUMNS])
