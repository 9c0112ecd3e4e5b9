from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.dataset import RawRow, RawTable
from .errors import FileDecodeError
from .pdf import read_pdf

"""Raw tabularizer.

Decodes a source file into ``RawTable.rows``: every cell a ``str``, no header
assumption, trailing empty cells trimmed (rows may be ragged). Spreadsheets are
read from the first sheet only.

pandas NA conversion is disabled (``keep_default_na=False``) so literal values
such as "NA" or "None" survive as text.
"""

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "COMBINED_COMPANY",
    "is_supported_file",
    "read_raw_rows",
    "combine_files",
    "cell_to_str",
]

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = ("csv", "xls", "xlsx", "pdf")
COMBINED_COMPANY = "Combined Batch"
CSV_ENCODINGS = ("utf-8-sig", "latin-1")


def _extension(name: str | Path) -> str:
    return Path(str(name)).suffix.lower().lstrip(".")


def is_supported_file(name: str | Path) -> bool:
    return _extension(name) in SUPPORTED_EXTENSIONS


def cell_to_str(value: Any) -> str:
    """Render one spreadsheet cell the way an operator sees it."""
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        # Excel stores whole numbers as float (1000.0 -> "1000")
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, (pd.Timestamp, datetime)):
        if pd.isna(value):
            return ""
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return str(value).strip()


def _trim_row(cells: Iterable[Any]) -> RawRow:
    row = [cell_to_str(c) for c in cells]
    while row and not row[-1]:
        row.pop()
    return row


def _frame_to_rows(df: pd.DataFrame) -> list[RawRow]:
    rows = [_trim_row(r) for r in df.itertuples(index=False, name=None)]
    # 空行はスキップ (CSV の skip_blank_lines と揃える)
    return [r for r in rows if any(c.strip() for c in r)]


def _decode_text(path: Path) -> str:
    data = path.read_bytes()
    for enc in CSV_ENCODINGS:
        try:
            return data.decode(enc)
        except UnicodeDecodeError:
            logger.debug("csv decode failed with %s: %s", enc, path.name)
    raise FileDecodeError(f"CSV parsing failed: cannot decode {path.name}")


def _read_csv(path: Path) -> RawTable:
    text = _decode_text(path)
    # pandas は先頭行より列数の多い行でエラーになるため最大列数を先に求める
    width = max((len(r) for r in csv.reader(io.StringIO(text))), default=0)
    if width == 0:
        return RawTable(rows=[], source_format="csv")
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, ValueError) as e:
        raise FileDecodeError(f"CSV parsing failed: {e}") from e
    return RawTable(rows=_frame_to_rows(df), source_format="csv")


def _read_excel(path: Path, ext: str) -> RawTable:
    try:
        xls = pd.ExcelFile(path)
        if not xls.sheet_names:
            return RawTable(rows=[], source_format=ext)
        first = xls.sheet_names[0]
        df = xls.parse(first, header=None, keep_default_na=False)
    except Exception as e:
        raise FileDecodeError(f"Excel parsing failed: {e}") from e
    return RawTable(rows=_frame_to_rows(df), source_format=ext, sheet_name=str(first))


def read_raw_rows(path: Path) -> RawTable:
    """Decode ``path`` into raw rows.

    Raises:
        FileDecodeError: unsupported extension, unreadable or corrupt file,
            or PDF engine unavailable
    """
    ext = _extension(path)
    if ext not in SUPPORTED_EXTENSIONS:
        raise FileDecodeError(f"Unsupported file type: .{ext}")
    if not path.exists():
        raise FileDecodeError(f"file not found: {path}")
    if ext == "csv":
        table = _read_csv(path)
    elif ext in ("xls", "xlsx"):
        table = _read_excel(path, ext)
    else:
        table = read_pdf(path)
    logger.debug("decoded %s rows=%d format=%s", path.name, table.row_count, table.source_format)
    return table


def combine_files(paths: list[Path]) -> tuple[RawTable, list[dict[str, str]]]:
    """Concatenate the raw rows of several files (typically template PDFs).

    The first file's header row is kept; a later file's first row is dropped
    when it equals that header. Failing files are reported in the returned
    error list as ``{"file", "error"}`` and skipped.
    """
    rows: list[RawRow] = []
    errors: list[dict[str, str]] = []
    header: RawRow | None = None
    for path in paths:
        try:
            table = read_raw_rows(path)
        except FileDecodeError as e:
            logger.warning("combine: skipped %s: %s", path.name, e)
            errors.append({"file": path.name, "error": str(e)})
            continue
        file_rows = table.rows
        if not file_rows:
            continue
        if header is None:
            header = file_rows[0]
            rows.extend(file_rows)
            continue
        if file_rows[0] == header:
            file_rows = file_rows[1:]
        rows.extend(file_rows)
    note = f"Combined {len(paths) - len(errors)} of {len(paths)} files"
    return RawTable(rows=rows, source_format="combined", note=note), errors
