"""Command-line interface for the reporting pipeline.

Provides subcommands: `validate` and `reports`. Each command is implemented
as a `cmd_*` function that accepts an argparse namespace.
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from capes_reports.config import Settings, get_settings
from capes_reports.logging_config import configure_logging

# INGEST
from capes_reports.ingest.load_csv import read_grants_csv, read_rates_csv

# CLEAN
from capes_reports.clean.transform import clean_grants_ddf, clean_rates_ddf
from capes_reports.clean.validate import validate_ddf
from capes_reports.models import CurrencyRate, Grant

# REPORTS
from capes_reports.aggregate.currency import MissingRatePolicy
from capes_reports.aggregate.reports import build_reports
from capes_reports.aggregate.load_reports import export_csv, publish_reports

log = logging.getLogger(__name__)


# --------------------------------------------------
# Helpers
# --------------------------------------------------
def _load_inputs(args: argparse.Namespace, s: Settings) -> tuple[Any, Any]:
    """Read and clean the grants and rates relations.

    Command-line paths take precedence over the environment settings.
    """
    grants_path = Path(args.grants) if args.grants else s.grants_csv
    rates_path = Path(args.rates) if args.rates else s.rates_csv

    grants = clean_grants_ddf(read_grants_csv(grants_path))
    rates = clean_rates_ddf(read_rates_csv(rates_path))

    if grants.shape[0].compute() == 0:
        raise RuntimeError(f"{grants_path} has no grant rows.")

    return grants, rates


# --------------------------------------------------
# VALIDATE
# --------------------------------------------------
def cmd_validate(args: argparse.Namespace) -> None:
    """Validate cleaned grant and rate rows and log good/bad counts.

    Invalid rows are only counted; reports still use every row.
    """
    s = get_settings()
    grants, rates = _load_inputs(args, s)

    good, bad = validate_ddf(grants, Grant)
    if bad:
        log.warning("%d of %d grant rows fail validation", bad, good + bad)

    good, bad = validate_ddf(rates, CurrencyRate)
    if bad:
        log.warning("%d of %d currency rows fail validation", bad, good + bad)


# --------------------------------------------------
# REPORTS
# --------------------------------------------------
def cmd_reports(args: argparse.Namespace) -> None:
    """Compute the report catalogue, write CSVs and optionally publish.

    Args:
        args: argparse namespace with `top_n`, `out_dir`, `policy`, `publish`.
    """
    s = get_settings()
    grants, rates = _load_inputs(args, s)

    policy = MissingRatePolicy.parse(args.policy) if args.policy else s.missing_rate_policy
    log.info("Missing-rate policy: %s", policy.value)

    reports = build_reports(grants, rates, policy=policy, top_n=args.top_n)

    out_dir = Path(args.out_dir) if args.out_dir else s.reports_dir
    export_csv(reports, out_dir)

    if args.publish:
        publish_reports(reports, s)

    log.info("Reports successfully generated.")


# --------------------------------------------------
# CLI
# --------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    """Build and return the top-level argument parser for the CLI.

    Returns:
        Configured argparse.ArgumentParser instance.
    """
    p = argparse.ArgumentParser(prog="capes-reports")
    sub = p.add_subparsers(dest="cmd", required=True)

    def _inputs(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--grants", default=None, help="grants CSV (overrides CAPES_GRANTS_CSV)")
        sp.add_argument("--rates", default=None, help="rates CSV (overrides CAPES_RATES_CSV)")

    p_validate = sub.add_parser("validate")
    _inputs(p_validate)

    p_reports = sub.add_parser("reports")
    _inputs(p_reports)
    p_reports.add_argument("--top-n", type=int, default=5)
    p_reports.add_argument("--out-dir", default=None)
    p_reports.add_argument(
        "--policy",
        choices=[m.value for m in MissingRatePolicy],
        default=None,
    )
    p_reports.add_argument("--publish", action="store_true")

    return p


def main() -> None:
    """CLI entry point: parse args, configure logging and dispatch commands."""
    load_dotenv()
    configure_logging(Path("logs/capes_reports.log"))

    args = build_parser().parse_args()

    if args.cmd == "validate":
        cmd_validate(args)
    elif args.cmd == "reports":
        cmd_reports(args)
    else:
        raise SystemExit(2)


if __name__ == "__main__":
    main()
