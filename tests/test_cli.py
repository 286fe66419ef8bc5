from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from capes_reports import cli

GRANTS_CSV = (
    "cpf;beneficiario;ano_inicial;mes_inicial;ano_final;valor_recebido_total;"
    "valor_recebido_bolsa;sigla_moeda;programa_capes;pais_destino;grande_area_conhecimento\n"
    "1;ANA;2013;8;2014;100;80;BRL;CSF;EUA;ENGENHARIAS\n"
    "1;ANA;2014;2;2015;50;40;USD;CSF;EUA;ENGENHARIAS\n"
    "2;BIA;2014;2;2014;10;10;GBP;PDSE;;\n"
)
RATES_CSV = "Moeda;Fator conversao\nUSD;5,0\n"


def test_parser_subcommands() -> None:
    args = cli.build_parser().parse_args(["reports", "--top-n", "3", "--policy", "drop"])
    assert args.cmd == "reports"
    assert args.top_n == 3
    assert args.policy == "drop"
    assert args.publish is False

    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["reports", "--policy", "guess"])


def test_cmd_reports_writes_csvs(tmp_path: Path, monkeypatch) -> None:
    grants = tmp_path / "bolsas.csv"
    rates = tmp_path / "conversao.csv"
    grants.write_text(GRANTS_CSV, encoding="utf-8")
    rates.write_text(RATES_CSV, encoding="utf-8")
    monkeypatch.delenv("CAPES_MISSING_RATE_POLICY", raising=False)

    out_dir = tmp_path / "reports"
    args = cli.build_parser().parse_args(
        ["reports", "--grants", str(grants), "--rates", str(rates), "--out-dir", str(out_dir)]
    )
    cli.cmd_reports(args)

    highest = pd.read_csv(out_dir / "highest_value_grant.csv")
    assert highest.loc[0, "normalized_amount"] == 250.0

    program = pd.read_csv(out_dir / "grants_by_program.csv")
    assert program["program"].tolist() == ["CSF", "PDSE"]
    assert program["pct_label"].tolist() == ["66.67%", "33.33%"]


def test_cmd_validate_runs(tmp_path: Path, monkeypatch, caplog) -> None:
    grants = tmp_path / "bolsas.csv"
    rates = tmp_path / "conversao.csv"
    grants.write_text(GRANTS_CSV, encoding="utf-8")
    rates.write_text(RATES_CSV, encoding="utf-8")
    monkeypatch.delenv("CAPES_MISSING_RATE_POLICY", raising=False)

    args = cli.build_parser().parse_args(["validate", "--grants", str(grants), "--rates", str(rates)])
    with caplog.at_level("INFO"):
        cli.cmd_validate(args)
    assert "Grant validation: good=3 bad=0" in caplog.text
