from __future__ import annotations

import json
from pathlib import Path

from batch_formatter.cli import EXIT_FATAL, EXIT_PARTIAL_FAILURE, main as cli_main

"""Partial failure: one file formats, the other fails; the run continues.

- exit code 2
- SUMMARY counts both files
- the error log holds one JSON line per failure with the fixed key set
"""


def _error_log(temp_workdir: Path) -> list[dict]:
    (log,) = (temp_workdir / "logs").glob("errors-*.log")
    return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]


def test_unmatched_and_corrupt_files(
    write_config: Path, seeded_store: Path, acme_xlsx: Path, temp_workdir: Path, make_csv, capsys
):
    unmatched = make_csv(temp_workdir / "data" / "Globex (GLX).csv", [["First Name"], ["Carol"]])
    corrupt = temp_workdir / "data" / "Acme March.xlsx"
    corrupt.write_bytes(b"PK\x03\x04 truncated")

    code = cli_main(["run", str(acme_xlsx), str(unmatched), str(corrupt)])
    out = capsys.readouterr().out

    assert code == EXIT_PARTIAL_FAILURE
    assert "SUMMARY files=3/3 success=1 failed=2 rows=2 " in out
    assert "ERROR Globex (GLX).csv: no saved process matches company 'Globex'" in out

    records = _error_log(temp_workdir)
    assert {(r["file"], r["error_type"]) for r in records} == {
        ("Globex (GLX).csv", "NO_MATCHING_PROCESS"),
        ("Acme March.xlsx", "FILE_DECODE_ERROR"),
    }
    for r in records:
        assert set(r) == {"timestamp", "file", "row", "column", "error_type", "message"}
        assert r["row"] == -1
    assert len(list((temp_workdir / "output").glob("Acme *.csv"))) == 1


def test_all_files_failed_is_still_partial(write_config: Path, seeded_store: Path, temp_workdir: Path, capsys):
    missing = temp_workdir / "data" / "Acme.csv"
    code = cli_main(["run", str(missing)])
    assert code == EXIT_PARTIAL_FAILURE
    assert "SUMMARY files=1/1 success=0 failed=1 rows=0 " in capsys.readouterr().out


def test_local_store_corruption_is_fatal(write_config: Path, acme_xlsx: Path, temp_workdir: Path, capsys):
    (temp_workdir / "data" / "processes.json").write_text("{broken", encoding="utf-8")
    code = cli_main(["run", str(acme_xlsx)])
    assert code == EXIT_FATAL
    assert "ERROR processing:" in capsys.readouterr().out
