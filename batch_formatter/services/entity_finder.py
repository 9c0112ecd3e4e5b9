from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from ..ingest.configurator import configure_rows
from ..models.dataset import RawRow, SourceRow
from ..models.matching import BatchColumns, BatchFile, EmployeeToFind, FoundEmployee

"""Targeted entity lookup.

Employees (first / last name + LOC amount, entered manually or parsed from an
invoice) are searched for in batch files. A batch row matches when the names
match case-insensitively and ``abs(row_loc - employee_loc) < 0.01``. A match
yields up to three entity column values joined with "/".

EntitySearchSession is cumulative: a batch file is searched once, and an
employee found in an earlier pass is never searched again.
"""

__all__ = [
    "LOC_TOLERANCE",
    "auto_detect_columns",
    "parse_loc_amount",
    "parse_name_from_description",
    "extract_employees_from_invoice",
    "row_matches",
    "EntitySearchSession",
    "entities_csv",
]

logger = logging.getLogger(__name__)

LOC_TOLERANCE = 0.01

_FIRST_NAME_HINTS = ("firstname", "first name", "first_name", "forename")
_LAST_NAME_HINTS = ("lastname", "last name", "last_name", "surname", "family name")
_LOC_HINTS = ("loc amount", "loc value", "amount", "value", "net price", "loc")
_ENTITY_HINTS = ("additional details", "additional_details", "entity", "company", "employer")

_AMOUNT_STRIP_RE = re.compile(r"[£$€,\s]")
_LEADING_NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_NAME_SPLIT_RE = re.compile(r"[\s,\-/]+")
_ALPHA_RE = re.compile(r"^[A-Za-z]+$")


def _find_column(columns: list[str], hints: tuple[str, ...]) -> str | None:
    for col in columns:
        low = col.lower().strip()
        if any(low == h or h in low for h in hints):
            return col
    return None


def auto_detect_columns(columns: list[str]) -> BatchColumns:
    return BatchColumns(
        first_name=_find_column(columns, _FIRST_NAME_HINTS),
        last_name=_find_column(columns, _LAST_NAME_HINTS),
        loc=_find_column(columns, _LOC_HINTS),
        entities=(_find_column(columns, _ENTITY_HINTS), None, None),
    )


def parse_loc_amount(value: object) -> float:
    """Amount as float; 0.0 when empty or unparsable."""
    if value is None:
        return 0.0
    m = _LEADING_NUMBER_RE.match(_AMOUNT_STRIP_RE.sub("", str(value)))
    return float(m.group(0)) if m else 0.0


def parse_name_from_description(description: str) -> tuple[str, str]:
    """First two alphabetic words of an invoice description as (first, last)."""
    words = [w for w in _NAME_SPLIT_RE.split(description) if len(w) > 1]
    names = [w for w in words if _ALPHA_RE.match(w)]
    if len(names) >= 2:
        return names[0], names[1]
    if names:
        return names[0], ""
    return "", ""


def extract_employees_from_invoice(raw_rows: list[RawRow]) -> list[EmployeeToFind]:
    """Employees listed under the "Description" / "Net Price" columns of an invoice.

    Total / subtotal lines and rows with a non-positive amount are ignored.
    Returns [] when either header cell cannot be found.
    """
    desc_idx = net_idx = header_idx = -1
    for i, row in enumerate(raw_rows):
        for j, cell in enumerate(row):
            text = str(cell or "").lower().strip()
            if "description" in text:
                desc_idx, header_idx = j, i
            if text in ("net", "netprice") or "net price" in text:
                net_idx = j
        if desc_idx != -1 and net_idx != -1:
            break
    if desc_idx == -1 or net_idx == -1:
        return []

    employees: list[EmployeeToFind] = []
    for row in raw_rows[header_idx + 1:]:
        description = str(row[desc_idx]).strip() if desc_idx < len(row) else ""
        net_price = str(row[net_idx]).strip() if net_idx < len(row) else ""
        if not description or not net_price:
            continue
        if "total" in description.lower():
            continue
        amount = parse_loc_amount(net_price)
        if amount <= 0:
            continue
        first, last = parse_name_from_description(description)
        employees.append(
            EmployeeToFind(first_name=first, last_name=last, loc=amount, id=len(employees), description=description)
        )
    return employees


def row_matches(employee: EmployeeToFind, row_first: str, row_last: str, row_loc: float) -> bool:
    if abs(row_loc - employee.loc) >= LOC_TOLERANCE:
        return False
    first = employee.first_name.lower().strip()
    last = employee.last_name.lower().strip()
    row_first = row_first.lower().strip()
    row_last = row_last.lower().strip()
    if first and last:
        return row_first == first and row_last == last
    known = first or last
    if not known:
        return False
    # 片方の名前しか分からない場合は姓名どちらの列でも一致とみなす
    return known in (row_first, row_last)


class EntitySearchSession:
    """Cumulative multi-file search for employee entities."""

    def __init__(self) -> None:
        self.employees: list[EmployeeToFind] = []
        self.batch_files: list[BatchFile] = []
        self._found: dict[int, FoundEmployee] = {}
        self._missing: list[EmployeeToFind] = []

    @property
    def found(self) -> list[FoundEmployee]:
        return list(self._found.values())

    @property
    def missing(self) -> list[EmployeeToFind]:
        return list(self._missing)

    def add_employee(self, first_name: str, last_name: str, loc: float | str, description: str = "") -> EmployeeToFind:
        first_name, last_name = first_name.strip(), last_name.strip()
        if not first_name and not last_name:
            raise ValueError("employee needs a first or last name")
        amount = loc if isinstance(loc, float) else parse_loc_amount(loc)
        employee = EmployeeToFind(
            first_name=first_name,
            last_name=last_name,
            loc=float(amount),
            id=len(self.employees),
            description=description or f"{first_name} {last_name}".strip(),
        )
        self.employees.append(employee)
        return employee

    def add_employees(self, employees: Iterable[EmployeeToFind]) -> None:
        for emp in employees:
            self.add_employee(emp.first_name, emp.last_name, float(emp.loc), emp.description)

    def add_batch_file(self, name: str, raw_rows: list[RawRow], roles: BatchColumns | None = None) -> BatchFile:
        dataset = configure_rows(raw_rows, start_row=2) if raw_rows else None
        columns = dataset.columns if dataset else []
        rows: list[SourceRow] = dataset.data if dataset else []
        batch = BatchFile(name=name, columns=columns, rows=rows, roles=roles or auto_detect_columns(columns))
        if not batch.roles.is_complete:
            logger.warning("batch file %s: name/LOC columns not detected", name)
        self.batch_files.append(batch)
        return batch

    def reset_batch_files(self) -> None:
        """Allow every batch file to be searched again."""
        for batch in self.batch_files:
            batch.searched = False

    def search(self, selected: Iterable[int] | None = None) -> list[FoundEmployee]:
        """Search unsearched batch files for selected, not yet found employees.

        Returns the employees found in this pass.
        """
        wanted = set(selected) if selected is not None else {e.id for e in self.employees}
        pending = [e for e in self.employees if e.id in wanted and e.id not in self._found]
        newly: list[FoundEmployee] = []

        for batch in self.batch_files:
            if batch.searched:
                continue
            roles = batch.roles
            for row in batch.rows:
                row_first = row.get(roles.first_name, "") if roles.first_name else ""
                row_last = row.get(roles.last_name, "") if roles.last_name else ""
                row_loc = parse_loc_amount(row.get(roles.loc)) if roles.loc else 0.0
                for emp in pending:
                    if emp.id in self._found:
                        continue
                    if not row_matches(emp, row_first, row_last, row_loc):
                        continue
                    values = tuple(
                        row.get(col, "").strip() for col in roles.entity_columns if row.get(col, "").strip()
                    )
                    hit = FoundEmployee(employee=emp, entity_values=values, batch_file=batch.name)
                    self._found[emp.id] = hit
                    newly.append(hit)
            batch.searched = True

        self._missing = [e for e in pending if e.id not in self._found]
        logger.info("entity search found=%d missing=%d", len(newly), len(self._missing))
        return newly


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def entities_csv(found: Iterable[FoundEmployee]) -> str:
    lines = ["First Name,Last Name,Entity"]
    for f in found:
        lines.append(",".join(_quote(v) for v in (f.employee.first_name, f.employee.last_name, f.entity)))
    return "\n".join(lines)
