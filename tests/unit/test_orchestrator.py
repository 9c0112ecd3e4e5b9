from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from batch_formatter.config.loader import load_config
from batch_formatter.db.local_store import LocalProcessStore
from batch_formatter.db.process_store import ProcessStore
from batch_formatter.models.process import Process
from batch_formatter.models.source_file import FileStatus
from batch_formatter.services.orchestrator import ProcessingError, RunOptions, process_files

TODAY = date(2024, 3, 5)


@pytest.fixture()
def config(write_config: Path):
    return load_config(write_config)


@pytest.fixture()
def store(seeded_store: Path) -> ProcessStore:
    return ProcessStore(LocalProcessStore(seeded_store))


def _error_records(result) -> list[dict]:
    assert result.error_log_path is not None
    return [json.loads(line) for line in result.error_log_path.read_text(encoding="utf-8").splitlines()]


def test_process_files_success(temp_workdir: Path, config, store, acme_xlsx: Path) -> None:
    result = process_files([acme_xlsx], config, store, RunOptions(today=TODAY))

    assert (result.success_files, result.failed_files) == (1, 0)
    assert result.total_output_rows == 2
    assert result.loc_sum == 1750.5
    assert result.error_log_path is None

    (stat,) = result.file_stats
    assert stat.company == "Acme" and stat.process_id == "local_1"
    assert [p.name for p in stat.outputs] == ["Acme 05.03.24.csv"]
    out = temp_workdir / "output" / "Acme 05.03.24.csv"
    lines = out.read_bytes().decode("utf-8").split("\r\n")
    assert lines[0].startswith("Firstname,Surname,")
    assert "ACM/acme/R1" in lines[1] and "1000.50" in lines[1]
    assert "ACM/acme/R2" in lines[2] and "750.00" in lines[2]


def test_process_files_empty_list_is_fatal(config, store) -> None:
    with pytest.raises(ProcessingError, match="no input files"):
        process_files([], config, store)


def test_unmatched_company_fails_file_and_logs(temp_workdir: Path, config, store, make_csv, acme_xlsx: Path) -> None:
    other = make_csv(temp_workdir / "data" / "Globex (GLX).csv", [["First Name", "Email"], ["Carol", "c@example.com"]])
    result = process_files([acme_xlsx, other], config, store, RunOptions(today=TODAY))

    assert (result.success_files, result.failed_files) == (1, 1)
    failed = [s for s in result.file_stats if s.status == "failed"]
    assert {s.status for s in result.file_stats} == {s.value for s in FileStatus}
    assert failed[0].file_name == "Globex (GLX).csv"
    (rec,) = _error_records(result)
    assert rec["error_type"] == "NO_MATCHING_PROCESS"
    assert rec["row"] == -1 and rec["file"] == "Globex (GLX).csv"


def test_corrupt_file_is_decode_error(temp_workdir: Path, config, store) -> None:
    bad = temp_workdir / "data" / "Acme broken.xlsx"
    bad.write_bytes(b"not a workbook")
    result = process_files([bad], config, store, RunOptions(today=TODAY))
    assert result.failed_files == 1
    assert _error_records(result)[0]["error_type"] == "FILE_DECODE_ERROR"


def test_explicit_process_id_not_found(config, store, acme_xlsx: Path) -> None:
    result = process_files([acme_xlsx], config, store, RunOptions(process_id="nope", today=TODAY))
    assert result.failed_files == 1
    assert "process not found: nope" in result.file_stats[0].error


def test_end_row_override(config, store, acme_xlsx: Path) -> None:
    result = process_files([acme_xlsx], config, store, RunOptions(end_row=3, today=TODAY))
    assert result.total_output_rows == 1
    assert result.loc_sum == 1000.5


def test_end_row_before_start_row_fails_file(config, store, acme_xlsx: Path) -> None:
    result = process_files([acme_xlsx], config, store, RunOptions(start_row=3, end_row=2, today=TODAY))
    assert result.failed_files == 1
    assert _error_records(result)[0]["error_type"] == "PROCESSING_ERROR"


def test_missing_fields_are_logged_but_written(temp_workdir: Path, config, store, make_excel, acme_rows) -> None:
    acme_rows[3][5] = ""  # Bob の Email を空に
    path = make_excel(temp_workdir / "data" / "Acme (ACM).xlsx", acme_rows)
    result = process_files([path], config, store, RunOptions(today=TODAY))

    assert result.success_files == 1
    assert result.total_output_rows == 2
    assert result.invalid_rows == 1
    (rec,) = _error_records(result)
    assert (rec["row"], rec["column"], rec["error_type"]) == (2, "Email", "MISSING_FIELD")


def test_scheme_report_rows_removed(temp_workdir: Path, config, store, make_csv, acme_xlsx: Path) -> None:
    scheme = make_csv(
        temp_workdir / "data" / "scheme.csv",
        [["app_contact_email", "loc_value"], ["ALICE@example.com", "1000.5"]],
    )
    result = process_files([acme_xlsx], config, store, RunOptions(scheme_report=scheme, today=TODAY))
    assert result.total_output_rows == 1
    assert result.file_stats[0].scheme_duplicates == 1
    assert result.loc_sum == 750.0


def test_unreadable_scheme_report_is_fatal(temp_workdir: Path, config, store, acme_xlsx: Path) -> None:
    with pytest.raises(ProcessingError, match="scheme report"):
        process_files([acme_xlsx], config, store, RunOptions(scheme_report=temp_workdir / "missing.csv"))


def test_optional_outputs_and_chunking(temp_workdir: Path, write_config: Path, store, acme_xlsx: Path) -> None:
    write_config.write_text(
        write_config.read_text(encoding="utf-8").replace("max_rows_per_file: 50", "max_rows_per_file: 1"),
        encoding="utf-8",
    )
    config = load_config(write_config)
    result = process_files(
        [acme_xlsx], config, store, RunOptions(sftp=True, personal_group=True, today=TODAY)
    )
    names = sorted(p.name for p in result.file_stats[0].outputs)
    assert names == sorted(
        [
            "Acme 05.03.24 1.csv",
            "Acme 05.03.24 2.csv",
            "Acme SFTP 05.03.24 1.csv",
            "Acme SFTP 05.03.24 2.csv",
            "Uploaded Acme 05.03.24 1.csv",
            "Uploaded Acme 05.03.24 2.csv",
        ]
    )
    sftp = (temp_workdir / "output" / "Acme SFTP 05.03.24 1.csv").read_text(encoding="utf-8")
    assert sftp.splitlines()[0].endswith(",AccountName,APT")
    uploaded = (temp_workdir / "output" / "Uploaded Acme 05.03.24 1.csv").read_text(encoding="utf-8").splitlines()
    assert uploaded[0].endswith(",LOC Upload Date")
    assert uploaded[1].endswith(",05.03.24")  # Alice はこのチャンクに含まれる
    assert uploaded[2].endswith(",")


def test_combine_mode(temp_workdir: Path, config, store, make_csv) -> None:
    store.create(
        Process(
            company_name="Combined Batch",
            fields={"Firstname": "First Name", "Surname": "Last Name", "Email": "Email", "LOC Amount": "Amount"},
        )
    )
    header = ["First Name", "Last Name", "Email", "Amount"]
    a = make_csv(temp_workdir / "data" / "a.csv", [header, ["Alice", "Smith", "alice@example.com", "100"]])
    b = make_csv(temp_workdir / "data" / "b.csv", [header, ["Bob", "Jones", "bob@example.com", "200"]])
    missing = temp_workdir / "data" / "gone.csv"

    result = process_files([a, b, missing], config, store, RunOptions(combine=True, today=TODAY))

    assert (result.success_files, result.failed_files) == (1, 1)
    assert result.total_output_rows == 2
    assert result.loc_sum == 300.0
    assert (temp_workdir / "output" / "Combined Batch 05.03.24.csv").exists()
    rec = _error_records(result)[0]
    assert rec["file"] == "gone.csv" and rec["error_type"] == "FILE_DECODE_ERROR"


def test_overflowing_loc_does_not_abort_run(temp_workdir: Path, config, store, make_excel, acme_rows) -> None:
    acme_rows[2][4] = "9" * 400
    path = make_excel(temp_workdir / "data" / "Acme (ACM).xlsx", acme_rows)
    result = process_files([path], config, store, RunOptions(today=TODAY))

    assert (result.success_files, result.failed_files) == (1, 0)
    assert result.total_output_rows == 2
    assert result.loc_sum == 750.0
    (rec,) = _error_records(result)
    assert rec["error_type"] == "MISSING_FIELD"
