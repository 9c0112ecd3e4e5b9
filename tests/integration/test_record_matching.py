from __future__ import annotations

from pathlib import Path

from batch_formatter.cli import EXIT_SUCCESS_ALL, main as cli_main

"""Duplicate check and entity lookup through the CLI (no config needed)."""

HEADER_A = ["First Name", "Surname", "Email", "Voucher Amount"]
HEADER_B = ["Forename", "Last Name", "Work Email", "LOC Value"]


def test_duplicates_between_two_batches(temp_workdir: Path, make_csv, capsys):
    a = make_csv(
        temp_workdir / "data" / "march.csv",
        [
            HEADER_A,
            ["Alice", "Smith", "alice@example.com", "1000"],
            ["Bob", "Jones", "b123@corp.com", "750"],
            ["Carol", "White", "carol@example.com", "300"],
        ],
    )
    b = make_csv(
        temp_workdir / "data" / "april.csv",
        [
            HEADER_B,
            ["alice", "smith", "alice@example.com", "900"],
            ["Bob", "Jones", "r456@example.com", "800"],
        ],
    )
    out_csv = temp_workdir / "output" / "dupes.csv"

    code = cli_main(["duplicates", str(a), str(b), "--exclude", "1-1", "--out", str(out_csv)])
    out = capsys.readouterr().out

    assert code == EXIT_SUCCESS_ALL
    assert "INFO duplicates: confirmed=1 potential=1" in out
    assert "confirmed\t0-0\t" in out
    assert "potential\t1-1\t" in out
    lines = out_csv.read_bytes().decode("utf-8").split("\r\n")
    assert lines[0] == "First Name,Surname,Email,Voucher Amount"
    assert lines[1:] == ["Alice,Smith,alice@example.com,1000", ""]


def test_find_entities_from_invoice(temp_workdir: Path, make_csv, capsys):
    invoice = make_csv(
        temp_workdir / "data" / "invoice.csv",
        [
            ["Invoice 123", "", ""],
            ["Description", "Qty", "Net Price"],
            ["Alice Smith - Bike", "1", "£1000.50"],
            ["Bob Jones - Bike", "1", "750.00"],
            ["Total", "", "1750.50"],
        ],
    )
    batch = make_csv(
        temp_workdir / "data" / "batch.csv",
        [
            ["Firstname", "Surname", "LOC Amount", "Additional Details"],
            ["Alice", "Smith", "1000.50", "ACM/acme/R1"],
            ["Bob", "Jones", "700.00", "ACM/acme/R2"],
        ],
    )
    code = cli_main(["find-entities", "--invoice", str(invoice), "--batch", str(batch)])
    out = capsys.readouterr().out
    assert code == EXIT_SUCCESS_ALL
    assert "found\tAlice Smith\tACM/acme/R1\tbatch.csv" in out
    assert "missing\tBob Jones\t750.00" in out
    assert "INFO entity search found=1 missing=1" in out
