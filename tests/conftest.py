# Shared pytest fixtures
from __future__ import annotations
import json
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from batch_formatter.ingest.pdf import PdfEngine
from batch_formatter.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _clean_global_state(monkeypatch):
    # ロガーは sys.stdout をハンドラ生成時に掴むため毎テストで作り直す
    reset_logging()
    monkeypatch.setenv("DISABLE_DB_CONNECT", "1")
    for key in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(key, raising=False)
    yield
    reset_logging()
    PdfEngine.reset()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        for sub in ("config", "data", "logs", "output"):
            (p / sub).mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """output_directory: ./output
max_rows_per_file: 50
error_log_directory: ./logs
store:
  local_path: ./data/processes.json
  table: processes
matching:
  extra_common_words: [acme]
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "formatter.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def acme_process_dict() -> dict:
    """Saved process document (camelCase, as exported)."""
    return {
        "companyName": "Acme",
        "displayName": "Acme Monthly",
        "entity": "",
        "fields": {
            "Firstname": "First Name",
            "Surname": "Last Name",
            "Street1": "Address",
            "Postcode": "Postcode",
            "LOC Amount": "Amount",
            "Email": "Email",
        },
        "additionalDetails": {"includeCompany": True, "includeEntity": True, "referenceColumn": "Ref"},
        "outputOptions": {"roundLOCAmount": False, "fallbackEmail": "", "locMinimum": "", "locMaximum": ""},
        "benefitProvider": "Halfords",
        "linkedCompanies": [],
        "dataConfig": None,
    }


@pytest.fixture()
def seeded_store(temp_workdir: Path, acme_process_dict: dict) -> Path:
    """Local process store file holding the Acme process."""
    path = temp_workdir / "data" / "processes.json"
    doc = dict(acme_process_dict, id="local_1")
    path.write_text(json.dumps([doc]), encoding="utf-8")
    return path


def _make_excel_file(path: Path, rows: list[list[object]], sheet_name: str = "Sheet1") -> Path:
    """Create a real single-sheet workbook without header inference."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


def _make_csv_file(path: Path, rows: list[list[str]], encoding: str = "utf-8") -> Path:
    lines = [",".join(r) for r in rows]
    path.write_bytes(("\n".join(lines) + "\n").encode(encoding))
    return path


ACME_ROWS: list[list[object]] = [
    ["Acme Ltd employee report", "", "", "", "", "", ""],
    ["First Name", "Last Name", "Address", "Postcode", "Amount", "Email", "Ref"],
    ["Alice", "Smith", "1 High Street", "AB1 2CD", "£1,000.50", "alice@example.com", "R1"],
    ["Bob", "Jones", "2 Low Road", "EF3 4GH", "750", "bob@example.com", "R2"],
]


@pytest.fixture()
def acme_xlsx(temp_workdir: Path) -> Path:
    return _make_excel_file(temp_workdir / "data" / "Acme Ltd (ACM) Cycle to Work.xlsx", ACME_ROWS)


@pytest.fixture()
def make_excel():
    return _make_excel_file


@pytest.fixture()
def make_csv():
    return _make_csv_file


@pytest.fixture()
def acme_rows() -> list[list[object]]:
    return [list(r) for r in ACME_ROWS]
