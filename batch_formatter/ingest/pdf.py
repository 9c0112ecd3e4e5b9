from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Any

from ..models.dataset import RawRow, RawTable
from .errors import FileDecodeError

"""PDF text extraction (best effort).

The pdfplumber module is acquired through a process-wide lazy singleton.
``PdfEngine.ensure_loaded()`` is idempotent and a lock guards the single
in-flight import so concurrent callers never trigger a second load.

Two extraction paths:
- template recognizer: application/certificate PDFs (>= 2 of TEMPLATE_PHRASES)
  are regex-parsed into a synthetic header + one data row
- generic: every text line is split on commas / tabs
"""

__all__ = [
    "PdfEngine",
    "TEMPLATE_PHRASES",
    "TEMPLATE_HEADERS",
    "PDF_NOTE",
    "extract_lines",
    "is_template",
    "parse_template",
    "lines_to_rows",
    "read_pdf",
]

PDF_NOTE = "PDF data extracted - please verify structure"
TEMPLATE_NOTE = "PDF application template recognised - fields extracted"

TEMPLATE_PHRASES: tuple[str, ...] = (
    "certificate",
    "application form",
    "employee name",
    "home address",
    "email address",
    "voucher amount",
    "loc amount",
    "reference number",
)

TEMPLATE_HEADERS: tuple[str, ...] = (
    "First Name",
    "Surname",
    "Address",
    "Postcode",
    "Email",
    "Amount",
    "Reference",
)

_NAME_RE = re.compile(r"(?:employee\s+name|full\s+name|name)\s*[:\-]?\s*([A-Za-z][A-Za-z'\- ]+)", re.I)
_ADDRESS_RE = re.compile(r"(?:home\s+)?address\s*[:\-]?\s*(.+)", re.I)
_POSTCODE_RE = re.compile(r"\b([A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2})\b", re.I)
_EMAIL_RE = re.compile(r"\b([^\s@:]+@[^\s@]+\.[A-Za-z]{2,})\b")
_AMOUNT_RE = re.compile(
    r"(?:amount|value|total)\s*[:\-]?\s*[£$€]?\s*([\d,]+(?:\.\d{1,2})?)", re.I
)
_REFERENCE_RE = re.compile(r"(?:reference|ref)(?:\s+(?:number|no\.?))?\s*[:\-#]?\s*([A-Za-z0-9\-/]+)", re.I)


class PdfEngine:
    """Lazily imported pdfplumber, shared by every caller in the process."""

    _module: Any = None
    _lock = threading.Lock()

    @classmethod
    def ensure_loaded(cls) -> Any:
        """Import pdfplumber once and return the module.

        Raises:
            FileDecodeError: If pdfplumber cannot be imported
        """
        if cls._module is not None:
            return cls._module
        with cls._lock:
            # 他スレッドがロード済みならそれを使う
            if cls._module is None:
                try:
                    import pdfplumber
                except ImportError as e:
                    raise FileDecodeError(f"PDF engine unavailable: {e}") from e
                cls._module = pdfplumber
        return cls._module

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._module is not None

    @classmethod
    def reset(cls) -> None:
        """Forget the loaded module. Mainly for testing purposes."""
        with cls._lock:
            cls._module = None


def extract_lines(path: Path) -> list[str]:
    """Return the non-empty text lines of every page, in page order."""
    pdfplumber = PdfEngine.ensure_loaded()
    lines: list[str] = []
    try:
        with pdfplumber.open(str(path)) as pdf:
            for page in pdf.pages:
                text = page.extract_text() or ""
                lines.extend(ln.strip() for ln in text.splitlines() if ln.strip())
    except FileDecodeError:
        raise
    except Exception as e:
        raise FileDecodeError(f"PDF parsing failed: {e}") from e
    return lines


def is_template(lines: list[str]) -> bool:
    text = " ".join(lines).lower()
    hits = sum(1 for phrase in TEMPLATE_PHRASES if phrase in text)
    return hits >= 2


def _first(pattern: re.Pattern[str], lines: list[str]) -> str:
    for line in lines:
        m = pattern.search(line)
        if m:
            return m.group(1).strip()
    return ""


def parse_template(lines: list[str]) -> list[RawRow]:
    """Extract applicant fields from a template PDF into header + one data row."""
    full_name = _first(_NAME_RE, lines)
    parts = full_name.split()
    first = parts[0] if parts else ""
    surname = " ".join(parts[1:]) if len(parts) > 1 else ""

    address = _first(_ADDRESS_RE, lines)
    postcode = _first(_POSTCODE_RE, lines).upper()
    if postcode and address:
        # 住所に郵便番号が含まれる場合は除去
        address = re.sub(re.escape(postcode), "", address, flags=re.I).strip(" ,")

    row = [
        first,
        surname,
        address,
        postcode,
        _first(_EMAIL_RE, lines),
        _first(_AMOUNT_RE, lines).replace(",", ""),
        _first(_REFERENCE_RE, lines),
    ]
    return [list(TEMPLATE_HEADERS), row]


def lines_to_rows(lines: list[str]) -> list[RawRow]:
    rows: list[RawRow] = []
    for line in lines:
        parts = [p.strip() for p in re.split(r"[,\t]", line)]
        rows.append(parts if len(parts) > 1 else [line])
    return rows


def read_pdf(path: Path) -> RawTable:
    lines = extract_lines(path)
    if not lines:
        return RawTable(rows=[], source_format="pdf", note=PDF_NOTE)
    if is_template(lines):
        return RawTable(rows=parse_template(lines), source_format="pdf", note=TEMPLATE_NOTE)
    return RawTable(rows=lines_to_rows(lines), source_format="pdf", note=PDF_NOTE)
