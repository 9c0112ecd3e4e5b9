from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Iterable
from datetime import date, datetime

import pandas as pd

from ..models.dataset import ConfiguredDataset, RawRow, SourceRow
from .errors import RowConfigError
from .filename import clean_company_name

"""Row configurator.

Turns raw rows into a ConfiguredDataset given 1-based start / end / header
rows, and provides the helpers used while choosing those settings:
first-data-row auto detection, header info rows, date column detection and
the inclusive date-range filter.

Conventions:
- the header row is ``start_row - 1`` unless given explicitly (0 = no header)
- column count = max(header length, longest row in range) so no cell is lost
- blank header cells become "Column N"; duplicate names get " (N)" appended
"""

__all__ = [
    "DEFAULT_START_ROW",
    "DETECT_SCAN_ROWS",
    "HEADER_TERMS",
    "configure_rows",
    "header_info_rows",
    "detect_first_data_row",
    "parse_date",
    "detect_date_columns",
    "filter_by_date_range",
    "company_from_cell",
]

logger = logging.getLogger(__name__)

DEFAULT_START_ROW = 2
DETECT_SCAN_ROWS = 20
DATE_SAMPLE_SIZE = 5
DATE_COLUMN_THRESHOLD = 0.5

HEADER_TERMS: tuple[str, ...] = (
    "firstname", "first name", "forename", "surname", "last name", "lastname",
    "name", "title", "email", "e-mail", "address", "street", "town", "city",
    "county", "postcode", "post code", "country", "amount", "loc", "value",
    "salary", "pay", "frequency", "payroll", "employee", "reference", "ref",
    "date", "approval", "phone", "mobile", "department", "entity", "company",
)

_HEADER_TERM_RES = [re.compile(r"(?<![a-z])" + re.escape(t) + r"(?![a-z])") for t in HEADER_TERMS]
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_POSTCODE_RE = re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2}$", re.I)
_NAME_TOKEN_RE = re.compile(r"^[A-Z][a-zA-Z'\-]+$")
_DMY_RE = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})$")
_YMD_RE = re.compile(r"^(\d{4})[/\-](\d{1,2})[/\-](\d{1,2})$")
_NUMERIC_RE = re.compile(r"^[\d.,\s]+$")


def _is_blank_row(row: Iterable[str]) -> bool:
    return not any(str(c).strip() for c in row)


def _unique_columns(names: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    out: list[str] = []
    for name in names:
        if name in seen:
            seen[name] += 1
            candidate = f"{name} ({seen[name]})"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name} ({seen[name]})"
            seen[candidate] = 1
            out.append(candidate)
        else:
            seen[name] = 1
            out.append(name)
    return out


def configure_rows(
    raw_rows: list[RawRow],
    start_row: int = DEFAULT_START_ROW,
    end_row: int | None = None,
    header_row: int | None = None,
) -> ConfiguredDataset:
    """Slice raw rows into columns + data rows.

    Raises:
        RowConfigError: start_row < 1, end_row < start_row, or header_row not
            before start_row
    """
    if start_row < 1:
        raise RowConfigError(f"start row must be >= 1 (got {start_row})")
    if end_row is not None and end_row < start_row:
        raise RowConfigError(f"end row {end_row} is before start row {start_row}")
    if header_row is None:
        header_row = start_row - 1
    if header_row < 0 or header_row >= start_row:
        raise RowConfigError(f"header row {header_row} must be before start row {start_row}")

    if not raw_rows:
        return ConfiguredDataset(columns=[], data=[], header_row=header_row or None,
                                 start_row=start_row, end_row=end_row)

    header = raw_rows[header_row - 1] if 0 < header_row <= len(raw_rows) else []
    last = min(end_row, len(raw_rows)) if end_row is not None else len(raw_rows)
    in_range = raw_rows[start_row - 1:last]

    width = max([len(header)] + [len(r) for r in in_range])
    names = []
    for i in range(width):
        cell = str(header[i]).strip() if i < len(header) else ""
        names.append(cell or f"Column {i + 1}")
    columns = _unique_columns(names)

    data: list[SourceRow] = []
    for row in in_range:
        if _is_blank_row(row):
            continue
        data.append({col: (str(row[i]).strip() if i < len(row) else "") for i, col in enumerate(columns)})

    logger.debug("configured rows start=%d end=%s columns=%d rows=%d", start_row, end_row, len(columns), len(data))
    return ConfiguredDataset(
        columns=columns,
        data=data,
        header_row=header_row or None,
        start_row=start_row,
        end_row=end_row,
    )


def header_info_rows(raw_rows: list[RawRow], start_row: int) -> list[tuple[int, list[tuple[int, str]]]]:
    """Every row before the data rows as ``(row_number, [(col_number, value)])``."""
    out: list[tuple[int, list[tuple[int, str]]]] = []
    for i, row in enumerate(raw_rows[: max(start_row - 1, 0)]):
        out.append((i + 1, [(j + 1, str(c).strip()) for j, c in enumerate(row)]))
    return out


def _header_term_count(row: RawRow) -> int:
    count = 0
    for cell in row:
        text = str(cell).strip().lower()
        if not text or "@" in text:
            continue
        if any(p.search(text) for p in _HEADER_TERM_RES):
            count += 1
    return count


def _looks_like_data(row: RawRow) -> bool:
    if _header_term_count(row) > 1:
        return False
    cells = [str(c).strip() for c in row if str(c).strip()]
    if any(_EMAIL_RE.match(c) for c in cells):
        return True
    if any(_POSTCODE_RE.match(c) for c in cells):
        return True
    name_tokens = sum(1 for c in cells if _NAME_TOKEN_RE.match(c))
    return name_tokens >= 2


def detect_first_data_row(raw_rows: list[RawRow]) -> int:
    """Guess the 1-based first applicant row (never below 2)."""
    for i, row in enumerate(raw_rows[:DETECT_SCAN_ROWS]):
        if _header_term_count(row) > 2:
            continue
        if _looks_like_data(row):
            return max(i + 1, DEFAULT_START_ROW)
    return DEFAULT_START_ROW


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(value: str | date | None) -> date | None:
    """Parse DD/MM/YYYY, YYYY-MM-DD or a free-form date; None if unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    m = _DMY_RE.match(text)
    if m:
        day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
        if year < 100:
            year += 2000
        return _safe_date(year, month, day)

    m = _YMD_RE.match(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    # 数値のみの値 (金額や ID) は日付として扱わない
    if _NUMERIC_RE.match(text):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed is None or pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_localize(None)
    return parsed.date()


def detect_date_columns(dataset: ConfiguredDataset) -> list[str]:
    """Columns whose first non-empty samples mostly parse as dates."""
    found: list[str] = []
    for col in dataset.columns:
        checked = 0
        hits = 0
        for row in dataset.data:
            if checked >= DATE_SAMPLE_SIZE:
                break
            value = row.get(col, "")
            if not value:
                continue
            checked += 1
            if parse_date(value) is not None:
                hits += 1
        if checked and hits / checked >= DATE_COLUMN_THRESHOLD:
            found.append(col)
    return found


def filter_by_date_range(
    rows: list[SourceRow],
    column: str | None,
    date_from: str | date | None = None,
    date_to: str | date | None = None,
) -> list[SourceRow]:
    """Drop rows whose date falls outside [date_from, date_to].

    Rows with an empty or unparsable date are kept.
    """
    if not column or (not date_from and not date_to):
        return list(rows)
    lower = parse_date(date_from) if date_from else None
    upper = parse_date(date_to) if date_to else None

    kept: list[SourceRow] = []
    for row in rows:
        row_date = parse_date(row.get(column))
        if row_date is None:
            kept.append(row)
            continue
        if lower is not None and row_date < lower:
            continue
        if upper is not None and row_date > upper:
            continue
        kept.append(row)
    logger.debug("date filter column=%s kept=%d/%d", column, len(kept), len(rows))
    return kept


def company_from_cell(raw_rows: list[RawRow], row: int, col: int) -> str:
    """Company name from a 1-based cell, "" when the cell is missing or blank."""
    if row < 1 or col < 1 or row > len(raw_rows):
        return ""
    cells = raw_rows[row - 1]
    if col > len(cells) or not str(cells[col - 1]).strip():
        return ""
    return clean_company_name(str(cells[col - 1]))
