from __future__ import annotations

from dataclasses import dataclass, field

"""Tabular models produced by the ingest layer.

RawTable is what a decoder returns: an ordered list of rows, each an ordered
list of cell strings with no header assumption. ConfiguredDataset is the
result of choosing the header/start/end rows over a RawTable.

SourceRow is an ordered column -> value mapping. Within one dataset column
names are unique (blank headers become "Column N") and stay stable for the
whole processing session, so callers may rely on ``row[column]`` for every
column listed in ``ConfiguredDataset.columns``.
"""

__all__ = [
    "RawRow",
    "SourceRow",
    "RawTable",
    "ConfiguredDataset",
]

RawRow = list[str]
SourceRow = dict[str, str]


@dataclass(frozen=True)
class RawTable:
    """Decoded cell grid of a single source file (first sheet only)."""
    rows: list[RawRow]
    source_format: str  # csv / xlsx / xls / pdf / combined
    sheet_name: str | None = None
    note: str | None = None  # decoder hint for the operator (PDF heuristics)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def max_width(self) -> int:
        return max((len(r) for r in self.rows), default=0)


@dataclass(frozen=True)
class ConfiguredDataset:
    """Rows sliced out of a RawTable using header/start/end row settings.

    Invariant: ``len(columns) == max(header length, longest data row)`` so no
    data cell is ever dropped for lacking a header.
    """
    columns: list[str]
    data: list[SourceRow] = field(default_factory=list)
    header_row: int | None = None  # 1-indexed; None if no header row was used
    start_row: int = 1
    end_row: int | None = None

    @property
    def row_count(self) -> int:
        return len(self.data)
