from __future__ import annotations

import json
import re
from pathlib import Path

from batch_formatter.cli import EXIT_SUCCESS_ALL, main as cli_main

"""End-to-end run: one spreadsheet with a saved process -> one batch CSV."""


def test_run_success(write_config: Path, seeded_store: Path, acme_xlsx: Path, temp_workdir: Path, capsys):
    code = cli_main(["run", str(acme_xlsx)])
    out = capsys.readouterr().out

    assert code == EXIT_SUCCESS_ALL
    assert "INFO store=local total_rows=2" in out
    assert re.search(
        r"^SUMMARY files=1/1 success=1 failed=0 rows=2 filtered=0 invalid_rows=0 loc_sum=1750\.50 elapsed_sec=\S+$",
        out,
        re.M,
    )

    (csv_path,) = (temp_workdir / "output").glob("Acme *.csv")
    assert re.fullmatch(r"Acme \d{2}\.\d{2}\.\d{2}\.csv", csv_path.name)
    raw = csv_path.read_bytes().decode("utf-8")
    lines = raw.split("\r\n")
    assert lines[0] == (
        "Firstname,Surname,Street1,Street2,City,County,Postcode,Country,"
        "LOC Amount,Email,Pay Frequency,Additional Details,Date of Approval"
    )
    assert lines[1] == "Alice,Smith,1 High Street,,,,AB1 2CD,UK,1000.50,alice@example.com,Monthly,ACM/acme/R1,"
    assert lines[2] == "Bob,Jones,2 Low Road,,,,EF3 4GH,UK,750.00,bob@example.com,Monthly,ACM/acme/R2,"
    assert lines[-1] == ""
    assert not list((temp_workdir / "logs").glob("errors-*.log"))


def test_run_with_saved_row_settings_and_loc_range(
    write_config: Path, temp_workdir: Path, acme_process_dict: dict, acme_xlsx: Path, capsys
):
    doc = dict(
        acme_process_dict,
        id="local_1",
        outputOptions={"roundLOCAmount": True, "locMinimum": 800},
        dataConfig={"startRow": 3, "endRow": 4},
    )
    (temp_workdir / "data" / "processes.json").write_text(json.dumps([doc]), encoding="utf-8")

    code = cli_main(["run", str(acme_xlsx)])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    # Bob (750) は範囲外, Alice は切り上げ
    assert "rows=1 filtered=1 invalid_rows=0 loc_sum=1001.00" in out
