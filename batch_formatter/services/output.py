from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path

from ..ingest.filename import format_file_date, output_filename, personal_group_filename, sftp_filename
from ..models.columns import ADDITIONAL_DETAILS, EMAIL, LOC_AMOUNT, OUTPUT_KEYS, OutputRow
from ..models.dataset import SourceRow
from .mapping import parse_loc

"""CSV output renderer.

All variants use CRLF line endings. A field containing a comma, a double quote
or a newline is wrapped in double quotes with inner quotes doubled.

- standard: the 13 output columns
- SFTP: 13 columns + AccountName, APT; Additional Details is blanked
- personal group: source columns + "LOC Upload Date" (DD.MM.YY) set on rows
  whose email was part of the processed output
"""

__all__ = [
    "SFTP_EXTRA_COLUMNS",
    "UPLOAD_DATE_COLUMN",
    "escape_csv",
    "to_csv",
    "to_sftp_csv",
    "to_personal_group_csv",
    "to_table_csv",
    "chunk_rows",
    "loc_sum",
    "detect_output_variants",
    "write_outputs",
]

logger = logging.getLogger(__name__)

SFTP_EXTRA_COLUMNS = ("AccountName", "APT")
UPLOAD_DATE_COLUMN = "LOC Upload Date"
LINE_END = "\r\n"


def escape_csv(value: object) -> str:
    text = "" if value is None else str(value)
    if "," in text or '"' in text or "\n" in text:
        return '"' + text.replace('"', '""') + '"'
    return text


def to_table_csv(headers: Sequence[str], rows: Iterable[dict[str, str]]) -> str:
    """Generic header + rows CSV; missing keys render as empty fields."""
    lines = [",".join(escape_csv(h) for h in headers)]
    for row in rows:
        lines.append(",".join(escape_csv(row.get(h) or "") for h in headers))
    return LINE_END.join(lines) + LINE_END


def to_csv(rows: list[OutputRow]) -> str:
    if not rows:
        return ""
    return to_table_csv(OUTPUT_KEYS, rows)


def to_sftp_csv(rows: list[OutputRow]) -> str:
    if not rows:
        return ""
    headers = list(OUTPUT_KEYS) + list(SFTP_EXTRA_COLUMNS)
    sftp_rows = []
    for row in rows:
        out = dict(row)
        out[ADDITIONAL_DETAILS] = ""
        for extra in SFTP_EXTRA_COLUMNS:
            out[extra] = ""
        sftp_rows.append(out)
    return to_table_csv(headers, sftp_rows)


def to_personal_group_csv(
    source_rows: list[SourceRow],
    columns: Sequence[str],
    processed_emails: Iterable[str],
    today: date,
) -> str:
    if not source_rows:
        return ""
    emails = {e.strip().lower() for e in processed_emails if e and e.strip()}
    stamp = format_file_date(today)
    headers = list(columns) + [UPLOAD_DATE_COLUMN]
    out_rows = []
    for row in source_rows:
        uploaded = any(str(v).strip().lower() in emails for v in row.values() if v)
        out = dict(row)
        out[UPLOAD_DATE_COLUMN] = stamp if uploaded else ""
        out_rows.append(out)
    return to_table_csv(headers, out_rows)


def chunk_rows(rows: list[OutputRow], size: int) -> list[list[OutputRow]]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1 (got {size})")
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def loc_sum(rows: Iterable[OutputRow]) -> float:
    total = 0.0
    for row in rows:
        amount = parse_loc(row.get(LOC_AMOUNT))
        if amount is not None:
            total += amount
    return round(total, 2)


def detect_output_variants(source_name: str) -> tuple[bool, bool]:
    """(sftp, personal_group) suggested by the source filename."""
    lowered = source_name.lower()
    return "car maintenance" in lowered, "personal group" in lowered


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    # CRLF を保持するため newline="" で書き込む
    with path.open("w", encoding="utf-8", newline="") as f:
        f.write(content)
    return path


def write_outputs(
    rows: list[OutputRow],
    company: str,
    output_dir: Path,
    today: date,
    max_rows_per_file: int = 50,
    sftp: bool = False,
    personal_group: tuple[list[SourceRow], Sequence[str]] | None = None,
) -> list[Path]:
    """Write the standard CSV (plus optional SFTP / personal-group files) per chunk.

    A chunk suffix " N" is added to filenames only when the rows are split.
    Returns the written paths in write order.
    """
    written: list[Path] = []
    if not rows:
        logger.warning("no output rows for %s; nothing written", company)
        return written
    chunks = chunk_rows(rows, max_rows_per_file)
    split = len(chunks) > 1
    for i, chunk in enumerate(chunks, start=1):
        part = i if split else None
        written.append(_write(output_dir / output_filename(company, today, part), to_csv(chunk)))
        if sftp:
            written.append(_write(output_dir / sftp_filename(company, today, part), to_sftp_csv(chunk)))
        if personal_group is not None:
            source_rows, columns = personal_group
            emails = [r.get(EMAIL, "") for r in chunk]
            written.append(
                _write(
                    output_dir / personal_group_filename(company, today, part),
                    to_personal_group_csv(source_rows, columns, emails, today),
                )
            )
    for p in written:
        logger.info("wrote %s", p)
    return written
