from __future__ import annotations

import re
from datetime import date

"""Company / entity extraction from filenames and cells, and output filenames.

Example::

    >>> extract_company_and_entity("Technip Energies 6.1.1.3 Bikes Halfords (TECL).xlsx")
    ('Technip Energies', 'TECL')
    >>> extract_company_and_entity("Email_278202512036_Colgate_UK_Cycle_to_Work_Halfords_Daily.csv")
    ('Colgate', '')
"""

__all__ = [
    "UNKNOWN_COMPANY",
    "WORDS_TO_REMOVE",
    "clean_company_name",
    "extract_company_and_entity",
    "extract_bracket_content",
    "format_file_date",
    "output_filename",
    "sftp_filename",
    "personal_group_filename",
]

UNKNOWN_COMPANY = "Unknown Company"

# Multi-word phrases come before their single-word parts
WORDS_TO_REMOVE: tuple[str, ...] = (
    # scheme / business jargon
    "cycle to work", "cycletowork", "c2w", "ctw", "cycle", "work",
    "halfords", "halford",
    "daily", "weekly", "monthly", "lunar", "fortnightly", "quarterly", "annually",
    "email", "emails", "letter", "letters",
    "report", "reports", "batch", "file", "export", "data", "collection",
    "new joiners", "new joiner", "joiners", "joiner", "starters", "starter",
    "leavers", "leaver", "is leaver",
    "effective", "approved", "pending", "active",
    "bikes", "bike",
    "changes", "change",
    # geographic
    "uk", "roi", "ireland", "england", "scotland", "wales",
    # company suffixes
    "ltd", "limited", "plc", "inc", "corp", "corporation", "llc", "llp",
    # other
    "true", "false", "yes", "no",
    "reference", "ref", "number", "num", "id",
)

_EXTENSION_RE = re.compile(r"\.(xlsx?|csv|pdf)$", re.I)
_ROUND_BRACKETS_RE = re.compile(r"\(([^)]+)\)")
_SQUARE_BRACKETS_RE = re.compile(r"\[([^\]]+)\]")
_VERSION_RE = re.compile(r"\d+\.\d+(?:\.\d+)*")
_DATE_DMY_RE = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")
_DATE_YMD_RE = re.compile(r"\d{4}[-/]\d{1,2}[-/]\d{1,2}")
_LONG_NUMBER_RE = re.compile(r"\d{8,}")
_MONTH_RE = re.compile(
    r"\b(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b",
    re.I,
)
_ORDINAL_RE = re.compile(r"\d{1,2}(?:st|nd|rd|th)\b", re.I)
_NUMBER_RE = re.compile(r"\b\d+\b")
_STOPWORD_RES = [
    re.compile(r"\b" + r"\s*".join(re.escape(p) for p in w.split()) + r"\b", re.I)
    for w in WORDS_TO_REMOVE
]
_ENTITY_RE = re.compile(r"^[A-Za-z0-9]+$")
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9\s\-]")


def clean_company_name(raw: str | None) -> str:
    """Reduce a filename or cell value to a title-cased company name.

    Returns "" for empty input and ``UNKNOWN_COMPANY`` when nothing survives
    the cleaning.
    """
    if not raw:
        return ""
    name = _EXTENSION_RE.sub("", str(raw))
    name = _ROUND_BRACKETS_RE.sub("", name)
    name = _SQUARE_BRACKETS_RE.sub("", name)
    name = re.sub(r"[-_]+", " ", name)
    name = _VERSION_RE.sub(" ", name)
    name = _DATE_DMY_RE.sub(" ", name)
    name = _DATE_YMD_RE.sub(" ", name)
    name = _LONG_NUMBER_RE.sub(" ", name)
    name = _MONTH_RE.sub(" ", name)
    name = _ORDINAL_RE.sub(" ", name)
    name = _NUMBER_RE.sub(" ", name)

    lowered = name.lower()
    for pattern in _STOPWORD_RES:
        lowered = pattern.sub(" ", lowered)
    words = lowered.split()
    if not words:
        return UNKNOWN_COMPANY
    return " ".join(w[:1].upper() + w[1:] for w in words)


def extract_bracket_content(filename: str) -> list[str]:
    """Return round-bracket contents then square-bracket contents, trimmed."""
    found = [m.strip() for m in _ROUND_BRACKETS_RE.findall(filename)]
    found.extend(m.strip() for m in _SQUARE_BRACKETS_RE.findall(filename))
    return found


def extract_company_and_entity(filename: str) -> tuple[str, str]:
    """Split a source filename into (company, entity).

    The entity is the first round-bracket content when it is a short
    alphanumeric code (<= 10 chars), uppercased; otherwise "".
    """
    name = _EXTENSION_RE.sub("", filename)
    entity = ""
    m = _ROUND_BRACKETS_RE.search(name)
    if m:
        content = m.group(1).strip()
        if len(content) <= 10 and _ENTITY_RE.match(content):
            entity = content.upper()
    return clean_company_name(name), entity


def format_file_date(day: date) -> str:
    return day.strftime("%d.%m.%y")


def _safe_company(company: str) -> str:
    cleaned = _UNSAFE_FILENAME_RE.sub("", company)
    return re.sub(r"\s+", " ", cleaned).strip() or UNKNOWN_COMPANY


def _suffix(part: int | None) -> str:
    return f" {part}" if part is not None else ""


def output_filename(company: str, day: date, part: int | None = None) -> str:
    return f"{_safe_company(company)} {format_file_date(day)}{_suffix(part)}.csv"


def sftp_filename(company: str, day: date, part: int | None = None) -> str:
    return f"{_safe_company(company)} SFTP {format_file_date(day)}{_suffix(part)}.csv"


def personal_group_filename(company: str, day: date, part: int | None = None) -> str:
    return f"Uploaded {_safe_company(company)} {format_file_date(day)}{_suffix(part)}.csv"
