"""Configuration helpers and Settings container.

This module provides a small `Settings` dataclass and `get_settings` which
reads the input paths, the missing-rate policy and the optional MongoDB
publish target from environment variables.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

from dotenv import load_dotenv

from capes_reports.aggregate.currency import MissingRatePolicy

# Explicitly load .env from project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(PROJECT_ROOT / ".env")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Container for pipeline configuration read from the environment.

    Attributes:
        grants_csv: Path to the CAPES grants export.
        rates_csv: Path to the currency conversion table.
        reports_dir: Directory where report CSVs are written.
        missing_rate_policy: What to do with grants whose currency has no rate.
        mongo_uri: Optional MongoDB URI used by `--publish`.
        mongo_db: Target MongoDB database name.
        mongo_tls: Whether to connect to MongoDB over TLS.
    """
    grants_csv: Path
    rates_csv: Path
    reports_dir: Path
    missing_rate_policy: MissingRatePolicy
    mongo_uri: str | None
    mongo_db: str
    mongo_tls: bool


def get_settings() -> Settings:
    """Read environment variables and return a frozen `Settings` object.

    Raises:
        RuntimeError: if `CAPES_MISSING_RATE_POLICY` is not a known policy.
    """
    grants_csv = Path(os.getenv("CAPES_GRANTS_CSV", "data/bolsas_capes.csv"))
    rates_csv = Path(os.getenv("CAPES_RATES_CSV", "data/conversao_moeda.csv"))
    reports_dir = Path(os.getenv("CAPES_REPORTS_DIR", "data/reports"))
    policy_name = os.getenv("CAPES_MISSING_RATE_POLICY", "propagate")
    mongo_uri = os.getenv("MONGO_URI", "").strip() or None
    mongo_db = os.getenv("MONGO_DB", "capes")
    mongo_tls = os.getenv("MONGO_TLS", "true").strip().lower() in _TRUTHY

    try:
        policy = MissingRatePolicy.parse(policy_name)
    except ValueError as e:
        raise RuntimeError(
            f"CAPES_MISSING_RATE_POLICY is invalid: {e}. "
            "Use one of: propagate, drop, identity."
        ) from e

    return Settings(
        grants_csv=grants_csv,
        rates_csv=rates_csv,
        reports_dir=reports_dir,
        missing_rate_policy=policy,
        mongo_uri=mongo_uri,
        mongo_db=mongo_db,
        mongo_tls=mongo_tls,
    )


def require_mongo_uri(settings: Settings) -> str:
    """Return the configured MongoDB URI or fail with a readable message.

    Raises:
        RuntimeError: if `MONGO_URI` is not set.
    """
    if not settings.mongo_uri:
        raise RuntimeError(
            "MONGO_URI is required to publish reports. Set it in .env "
            "(example: 'mongodb://localhost:27017')."
        )
    return settings.mongo_uri
