from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass

from ..models.columns import EMAIL, LOC_AMOUNT, OutputRow
from ..models.dataset import SourceRow
from ..models.matching import DuplicatePair, DuplicateReport, SchemeDuplicate, ValueMatch

"""Cross-file duplicate detection and scheme report checks.

find_duplicates compares every row of dataset A against every row of dataset B
(arbitrary columns, not yet mapped):

1. meaningful values per row: columns not matching SKIP_COLUMN_RE, normalized
   (lowercase, commas and whitespace removed), common words dropped
2. two values match on equal normalized text, or on token overlap
   (>= 2 shared tokens, or >= 1 when either column looks like a name field)
3. roles of matched columns decide the class:
   confirmed = first name + surname matched and (email matched or equal LOC)
   potential = first name + surname matched and both LOC values parse but differ

LOC is picked per row: the first column (in row order) that parses as a
number among LOC-specific headers (LOC_KEY_RE: "LOC ...", "... LOC Amount/Value",
"Voucher Amount/Value", "Bike Price/Value"); only when none parses, the first
generic amount/price/value column. Headers matching NOT_LOC_KEY_RE (Location,
Allocation, Cost Centre) are never read as LOC. LOC equality compares 2dp.

The comparison is O(|A| x |B| x columns^2); batch files are operator scale.
"""

__all__ = [
    "COMMON_WORDS",
    "SKIP_COLUMN_RE",
    "normalize_value",
    "find_duplicates",
    "select_duplicate_rows",
    "row_identity",
    "find_scheme_duplicates",
    "remove_scheme_duplicates",
]

logger = logging.getLogger(__name__)

COMMON_WORDS: frozenset[str] = frozenset({
    # frequencies
    "monthly", "weekly", "daily", "quarterly", "annually", "fortnightly",
    # countries
    "uk", "gb", "usa", "us", "ireland", "roi", "england", "scotland", "wales",
    # status
    "approved", "pending", "active", "inactive", "yes", "no", "true", "false",
    # scheme terms
    "c2w", "ctw", "cycletowork", "cycle", "work", "bike", "bikes",
    "halfords", "evans", "cyclescheme",
    # generic
    "employee", "staff", "member", "person",
    # placeholders
    "n/a", "na", "none", "null", "undefined", "-", "tbc", "tbd",
    # pay terms
    "salary", "gross", "net", "deduction", "payment",
})

SKIP_COLUMN_RE = re.compile(r"^(id|index|row|date|timestamp|created|updated|status|approval)", re.I)
NAME_KEY_RE = re.compile(r"name|first|last|surname|forename", re.I)
FIRST_NAME_KEY_RE = re.compile(r"^first|firstname|first.*name|forename", re.I)
SURNAME_KEY_RE = re.compile(r"^surname|^last|lastname|last.*name", re.I)
EMAIL_KEY_RE = re.compile(r"email|e-mail", re.I)
# LOC 列の優先順位: LOC 専用の見出し -> 一般的な金額の見出し
LOC_KEY_RE = re.compile(
    r"^loc\b|loc.*(amount|value)|voucher.*(amount|value)|(bike|bicycle).*(price|value)",
    re.I,
)
AMOUNT_KEY_RE = re.compile(r"amount|price|value", re.I)
NOT_LOC_KEY_RE = re.compile(r"location|allocation|cost\s*cent(re|er)", re.I)

_NORMALIZE_RE = re.compile(r"[,\s]+")
_AMOUNT_STRIP_RE = re.compile(r"[£$€,\s]")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


@dataclass(frozen=True)
class _Value:
    key: str
    original: str
    normalized: str


def normalize_value(value: object) -> str:
    if value is None:
        return ""
    return _NORMALIZE_RE.sub("", str(value).lower().strip())


def _parse_amount(value: object) -> float | None:
    if value is None:
        return None
    m = _LEADING_NUMBER_RE.match(_AMOUNT_STRIP_RE.sub("", str(value)))
    return float(m.group(0)) if m else None


def _row_values(row: SourceRow, common: frozenset[str]) -> list[_Value]:
    out: list[_Value] = []
    for key, value in row.items():
        if SKIP_COLUMN_RE.match(key):
            continue
        normalized = normalize_value(value)
        if not normalized or normalized in common:
            continue
        out.append(_Value(key=key, original=str(value), normalized=normalized))
    return out


def _row_loc(row: SourceRow) -> float | None:
    """LOC of a row: first parsable LOC-specific column, else first generic amount column."""
    candidates = [k for k in row if not NOT_LOC_KEY_RE.search(k)]
    for pattern in (LOC_KEY_RE, AMOUNT_KEY_RE):
        for key in candidates:
            if not pattern.search(key):
                continue
            amount = _parse_amount(row[key])
            if amount is not None:
                return amount
    return None


def _common_tokens(a: _Value, b: _Value, common: frozenset[str]) -> list[str]:
    words_a = [w for w in a.original.lower().split() if len(w) > 1 and w not in common]
    words_b = [w for w in b.original.lower().split() if len(w) > 1 and w not in common]
    return [wa for wa in words_a if any(wa == wb or wa in wb or wb in wa for wb in words_b)]


def _match(a: _Value, b: _Value, common: frozenset[str]) -> ValueMatch | None:
    if a.normalized == b.normalized:
        return ValueMatch(key_a=a.key, key_b=b.key, value=a.original)
    shared = _common_tokens(a, b, common)
    if len(shared) >= 2 or (shared and (NAME_KEY_RE.search(a.key) or NAME_KEY_RE.search(b.key))):
        return ValueMatch(key_a=a.key, key_b=b.key, value=" ".join(shared), exact=False)
    return None


def _either(pattern: re.Pattern[str], m: ValueMatch) -> bool:
    return bool(pattern.search(m.key_a) or pattern.search(m.key_b))


def _compare(
    index_a: int,
    row_a: SourceRow,
    values_a: list[_Value],
    loc_a: float | None,
    index_b: int,
    row_b: SourceRow,
    values_b: list[_Value],
    loc_b: float | None,
    common: frozenset[str],
) -> tuple[str | None, DuplicatePair | None]:
    if not values_a or not values_b:
        return None, None
    matches: list[ValueMatch] = []
    for va in values_a:
        for vb in values_b:
            m = _match(va, vb, common)
            if m is not None:
                matches.append(m)
    if not matches:
        return None, None

    first = any(_either(FIRST_NAME_KEY_RE, m) for m in matches)
    surname = any(_either(SURNAME_KEY_RE, m) for m in matches)
    if not (first and surname):
        return None, None

    email = any(_either(EMAIL_KEY_RE, m) for m in matches)
    both_loc = loc_a is not None and loc_b is not None
    loc_equal = loc_a is not None and loc_b is not None and round(loc_a, 2) == round(loc_b, 2)

    pair = DuplicatePair(
        index_a=index_a,
        index_b=index_b,
        row_a=row_a,
        row_b=row_b,
        matches=tuple(matches),
        loc_a=loc_a,
        loc_b=loc_b,
    )
    if email or loc_equal:
        return "confirmed", pair
    if both_loc:
        return "potential", pair
    return None, None


def find_duplicates(
    rows_a: list[SourceRow],
    rows_b: list[SourceRow],
    extra_common_words: Iterable[str] = (),
) -> DuplicateReport:
    """Classify every (row A, row B) pair as confirmed / potential / no duplicate."""
    common = COMMON_WORDS | frozenset(w.strip().lower() for w in extra_common_words if w.strip())
    prepared_b = [(i, r, _row_values(r, common), _row_loc(r)) for i, r in enumerate(rows_b)]

    confirmed: list[DuplicatePair] = []
    potential: list[DuplicatePair] = []
    for ia, row_a in enumerate(rows_a):
        values_a = _row_values(row_a, common)
        loc_a = _row_loc(row_a)
        for ib, row_b, values_b, loc_b in prepared_b:
            kind, pair = _compare(ia, row_a, values_a, loc_a, ib, row_b, values_b, loc_b, common)
            if pair is None:
                continue
            if kind == "confirmed":
                confirmed.append(pair)
            elif kind == "potential":
                potential.append(pair)

    logger.debug(
        "duplicates a=%d b=%d confirmed=%d potential=%d",
        len(rows_a), len(rows_b), len(confirmed), len(potential),
    )
    return DuplicateReport(confirmed=confirmed, potential=potential)


def row_identity(row: SourceRow) -> str:
    return "|".join(f"{k}:{row[k]}" for k in sorted(row))


def select_duplicate_rows(
    report: DuplicateReport,
    source: str = "A",
    excluded_pairs: Iterable[str] = (),
) -> list[SourceRow]:
    """Source-side rows of confirmed + non-excluded potential pairs, de-duplicated."""
    if source not in ("A", "B"):
        raise ValueError(f"source must be 'A' or 'B' (got {source!r})")
    excluded = set(excluded_pairs)
    pairs = list(report.confirmed) + [p for p in report.potential if p.pair_key not in excluded]

    seen: set[str] = set()
    out: list[SourceRow] = []
    for pair in pairs:
        row = pair.row_a if source == "A" else pair.row_b
        ident = row_identity(row)
        if ident in seen:
            continue
        seen.add(ident)
        out.append(row)
    return out


def _scheme_loc_key(row: SourceRow) -> str | None:
    lowered = {k: k.lower() for k in row}
    for key, low in lowered.items():
        if "loc" in low and "value" in low:
            return key
    return None


def _scheme_email_key(row: SourceRow) -> str | None:
    for key in row:
        low = key.lower()
        if "app_contact_email" in low or "contact_email" in low or low == "email":
            return key
    return None


def _amount_2dp(value: object) -> str:
    amount = _parse_amount(value)
    return "" if amount is None else f"{amount:.2f}"


def find_scheme_duplicates(output_rows: list[OutputRow], scheme_rows: list[SourceRow]) -> list[SchemeDuplicate]:
    """Output rows whose (email, LOC) pair already appears in a scheme report."""
    keys: set[str] = set()
    for row in scheme_rows:
        loc_key = _scheme_loc_key(row)
        email_key = _scheme_email_key(row)
        if not loc_key or not email_key:
            continue
        loc = _amount_2dp(row.get(loc_key))
        email = str(row.get(email_key) or "").strip().lower()
        if loc and email:
            keys.add(f"{email}|{loc}")

    found: list[SchemeDuplicate] = []
    for i, row in enumerate(output_rows):
        email = str(row.get(EMAIL) or "").strip().lower()
        loc = _amount_2dp(row.get(LOC_AMOUNT))
        if email and loc and f"{email}|{loc}" in keys:
            found.append(SchemeDuplicate(index=i, email=row.get(EMAIL, ""), loc=loc))
    return found


def remove_scheme_duplicates(output_rows: list[OutputRow], duplicates: Iterable[SchemeDuplicate]) -> list[OutputRow]:
    drop = {d.index for d in duplicates}
    return [r for i, r in enumerate(output_rows) if i not in drop]
