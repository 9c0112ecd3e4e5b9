from __future__ import annotations

import logging
import math
import re
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from ..models.columns import (
    ADDITIONAL_DETAILS,
    EMAIL,
    LOC_AMOUNT,
    OUTPUT_COLUMNS,
    REQUIRED_FIELDS,
    OutputRow,
)
from ..models.dataset import SourceRow
from ..models.process import AdditionalDetailsConfig, OutputOptions, Process
from ..models.validation import MappingResult, RowValidation, ValidationError

"""Mapping engine: source rows + Process -> normalized output rows.

Per source row, in order:
1. LOC Amount is resolved and cleaned first; rows outside
   [loc_minimum, loc_maximum] are dropped and counted in ``filtered``.
   A row with an empty LOC is never range-filtered (it fails validation).
2. Every other column takes its mapped source value, or the column default
   when the column is unmapped or absent from the row, and is sanitized.
3. Email: primary -> secondary column -> fallback email. An unresolved email
   is "" so it shows up as a missing field.
4. Additional Details is composed from the AdditionalDetailsConfig parts.
5. Required fields are checked; validation never removes a row.

Validation row numbers count retained rows only (1-based).
The function is pure: the same input always gives identical output.
"""

__all__ = [
    "sanitize_string",
    "clean_loc_amount",
    "parse_loc",
    "is_valid_email",
    "is_keyword_flagged",
    "resolve_email",
    "format_additional_details",
    "validate_row",
    "validate_rows",
    "apply_mapping",
    "summarize_validation",
    "error_row_numbers",
    "SUGGESTION_PATTERNS",
    "suggest_mappings",
]

logger = logging.getLogger(__name__)

_SANITIZE_RE = re.compile(r"[,'\"`‘’]")
_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_RE = re.compile(r"[£$€]")
_LETTERS_RE = re.compile(r"[A-Za-z]")
_NON_NUMERIC_RE = re.compile(r"[^\d.]")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_string(value: Any) -> str:
    """Remove commas, quotes and backticks and collapse whitespace."""
    if value is None:
        return ""
    text = _SANITIZE_RE.sub("", str(value))
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_loc(value: Any) -> float | None:
    """Numeric part of a LOC amount (currency, letters and separators ignored)."""
    if value is None:
        return None
    cleaned = _CURRENCY_RE.sub("", str(value))
    cleaned = _LETTERS_RE.sub("", cleaned)
    cleaned = cleaned.replace(",", "")
    cleaned = _NON_NUMERIC_RE.sub("", cleaned)
    # 先頭の数値部分のみ ("12.5.1" -> 12.5)
    m = _LEADING_NUMBER_RE.match(cleaned)
    if not m:
        return None
    amount = float(m.group(0))
    # 桁数が多すぎて inf になる値は数値として扱わない
    return amount if math.isfinite(amount) else None


def clean_loc_amount(value: Any, round_up: bool = False) -> str:
    """Normalize a LOC amount to "1234.57" (or "1235" when rounding up).

    >>> clean_loc_amount("£1,234.567")
    '1234.57'
    >>> clean_loc_amount("149.01", round_up=True)
    '150'
    >>> clean_loc_amount("abc")
    ''
    """
    num = parse_loc(value)
    if num is None:
        return ""
    if round_up:
        return str(math.ceil(num))
    return f"{num:.2f}"


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(_EMAIL_RE.match(str(value)))


def is_keyword_flagged(value: str | None, keywords: Iterable[str]) -> bool:
    """True when ``value`` contains any keyword (case-insensitive substring)."""
    if not value:
        return False
    lowered = str(value).lower()
    return any(k and k.lower() in lowered for k in keywords)


def _source_value(row: SourceRow, column: str | None) -> str | None:
    """Trimmed value of ``column`` or None when unmapped / absent from the row."""
    if not column or column not in row:
        return None
    value = row[column]
    return "" if value is None else str(value).strip()


def resolve_email(row: SourceRow, fields: Mapping[str, str], options: OutputOptions) -> str:
    """Email precedence: primary (sanitized) -> secondary column -> fallback."""
    keywords = options.email_keywords_to_replace
    primary = sanitize_string(_source_value(row, fields.get(EMAIL)) or "")
    if primary and is_valid_email(primary) and not is_keyword_flagged(primary, keywords):
        return primary

    secondary = sanitize_string(_source_value(row, options.secondary_email_column) or "")
    if secondary and is_valid_email(secondary) and not is_keyword_flagged(secondary, keywords):
        return secondary

    if options.fallback_email:
        return options.fallback_email
    return ""


def format_additional_details(
    row: SourceRow,
    config: AdditionalDetailsConfig,
    company_name: str = "",
    entity: str = "",
) -> str:
    parts: list[str] = []
    if config.fixed_prefix:
        parts.append(config.fixed_prefix)
    if config.include_entity and entity:
        parts.append(entity)
    if config.include_company and company_name:
        parts.append(company_name.lower())
    entity_value = _source_value(row, config.entity_column)
    if entity_value:
        parts.append(entity_value)
    reference = _source_value(row, config.reference_column)
    if reference:
        parts.append(reference)
    if config.fixed_suffix:
        parts.append(config.fixed_suffix)
    return sanitize_string((config.separator or "/").join(parts))


def validate_row(row: OutputRow, row_number: int) -> RowValidation | None:
    errors = tuple(
        ValidationError(row=row_number, column=key, message=f"Missing {key}")
        for key in REQUIRED_FIELDS
        if not str(row.get(key) or "").strip()
    )
    if not errors:
        return None
    return RowValidation(row=row_number, errors=errors)


def validate_rows(rows: list[OutputRow]) -> list[RowValidation]:
    """Required-field check over already formatted rows (1-based numbering)."""
    out: list[RowValidation] = []
    for i, row in enumerate(rows, start=1):
        v = validate_row(row, i)
        if v is not None:
            out.append(v)
    return out


def _out_of_range(loc: str, options: OutputOptions) -> bool:
    if not loc:
        return False
    value = float(loc)
    if options.loc_minimum is not None and value < options.loc_minimum:
        return True
    if options.loc_maximum is not None and value > options.loc_maximum:
        return True
    return False


def apply_mapping(
    source_rows: list[SourceRow],
    process: Process,
    company_name: str | None = None,
    entity: str | None = None,
) -> MappingResult:
    """Apply ``process`` to configured source rows.

    Args:
        source_rows: rows from the row configurator
        process: saved or in-progress mapping
        company_name: company used in Additional Details (default: process.company_name)
        entity: entity code used in Additional Details (default: process.entity)
    """
    company = process.company_name if company_name is None else company_name
    entity_code = process.entity if entity is None else entity
    options = process.output_options
    fields = process.fields

    data: list[OutputRow] = []
    validation: list[RowValidation] = []
    filtered = 0

    for row in source_rows:
        loc = clean_loc_amount(_source_value(row, fields.get(LOC_AMOUNT)), options.round_loc_amount)
        if _out_of_range(loc, options):
            filtered += 1
            continue

        out: OutputRow = {}
        for col in OUTPUT_COLUMNS:
            if col.key == LOC_AMOUNT:
                out[col.key] = loc
            elif col.key == EMAIL:
                out[col.key] = resolve_email(row, fields, options)
            elif col.key == ADDITIONAL_DETAILS:
                out[col.key] = format_additional_details(
                    row, process.additional_details, company, entity_code
                )
            else:
                value = _source_value(row, fields.get(col.key))
                if value is None:
                    value = col.default or ""
                out[col.key] = sanitize_string(value)

        data.append(out)
        row_validation = validate_row(out, len(data))
        if row_validation is not None:
            validation.append(row_validation)

    logger.debug(
        "mapping applied process=%s rows=%d filtered=%d invalid=%d",
        process.label, len(data), filtered, len(validation),
    )
    return MappingResult(data=data, validation=validation, filtered=filtered)


def summarize_validation(validation: list[RowValidation]) -> dict[str, Any]:
    by_column: Counter[str] = Counter()
    by_type: Counter[str] = Counter()
    for row in validation:
        for err in row.errors:
            by_column[err.column] += 1
            by_type[err.type] += 1
    return {
        "total_rows_with_errors": len(validation),
        "by_column": dict(by_column),
        "by_type": dict(by_type),
    }


def error_row_numbers(validation: list[RowValidation]) -> list[int]:
    return [v.row for v in validation]


# 出力列ごとの見出しの候補 (優先順)
SUGGESTION_PATTERNS: dict[str, tuple[str, ...]] = {
    "Firstname": ("firstname", "first name", "first_name", "forename", "given name", "employee first", "1st name"),
    "Surname": ("surname", "last name", "lastname", "last_name", "family name", "employee last", "2nd name"),
    "Street1": ("street1", "street 1", "address1", "address 1", "address line 1", "street address", "address"),
    "Street2": ("street2", "street 2", "address2", "address 2", "address line 2"),
    "City": ("city", "town", "locality"),
    "County": ("county", "state", "region", "province"),
    "Postcode": ("postcode", "post code", "postal code", "zip", "zip code", "zipcode"),
    LOC_AMOUNT: (
        "loc amount", "loc value", "amount", "value", "voucher value", "voucher amount",
        "total", "salary sacrifice", "loc",
    ),
    EMAIL: ("email", "e-mail", "email address", "e-mail address", "employee email"),
}


def suggest_mappings(columns: Iterable[str]) -> dict[str, str]:
    """Suggest a source column for each output column from header names.

    For each output column the variations are tried in order; the first
    source column that equals, contains, or is contained in the variation
    (case-insensitive) is suggested. Output columns without a match are left
    out. A source column may be suggested for more than one output column.

    >>> suggest_mappings(["Forename", "Family Name", "Voucher Amount", "Work Email"])
    {'Firstname': 'Forename', 'Surname': 'Family Name', 'LOC Amount': 'Voucher Amount', 'Email': 'Work Email'}
    """
    source = [(c, c.strip().lower()) for c in columns if c and c.strip()]
    suggestions: dict[str, str] = {}
    for target, variations in SUGGESTION_PATTERNS.items():
        for variation in variations:
            match = next(
                (orig for orig, low in source if low == variation or variation in low or low in variation),
                None,
            )
            if match is not None:
                suggestions[target] = match
                break
    logger.debug("suggested mappings: %s", suggestions)
    return suggestions
