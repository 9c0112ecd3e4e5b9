from __future__ import annotations

from dataclasses import dataclass, field

"""Record matcher models: cross-file duplicates and targeted entity lookup."""

__all__ = [
    "ValueMatch",
    "DuplicatePair",
    "DuplicateReport",
    "SchemeDuplicate",
    "EmployeeToFind",
    "BatchColumns",
    "BatchFile",
    "FoundEmployee",
]


@dataclass(frozen=True)
class ValueMatch:
    """One matched value between a row of file A and a row of file B."""
    key_a: str
    key_b: str
    value: str  # 表示用 (元の値)
    exact: bool = True


@dataclass(frozen=True)
class DuplicatePair:
    index_a: int  # 0-based index into dataset A
    index_b: int
    row_a: dict[str, str]
    row_b: dict[str, str]
    matches: tuple[ValueMatch, ...]
    loc_a: float | None = None
    loc_b: float | None = None

    @property
    def pair_key(self) -> str:
        return f"{self.index_a}-{self.index_b}"

    @property
    def match_summary(self) -> str:
        return ", ".join(m.value for m in self.matches[:3])


@dataclass(frozen=True)
class DuplicateReport:
    confirmed: list[DuplicatePair] = field(default_factory=list)
    potential: list[DuplicatePair] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.confirmed) + len(self.potential)


@dataclass(frozen=True)
class SchemeDuplicate:
    """Output row already present in a scheme report (same email and LOC)."""
    index: int  # 0-based index into the output rows
    email: str
    loc: str  # 2dp


@dataclass(frozen=True)
class EmployeeToFind:
    first_name: str
    last_name: str
    loc: float
    id: int = 0
    description: str = ""  # invoice description the names were parsed from

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class BatchColumns:
    """Column roles of a batch file used for entity lookup (up to 3 entity columns)."""
    first_name: str | None = None
    last_name: str | None = None
    loc: str | None = None
    entities: tuple[str | None, str | None, str | None] = (None, None, None)

    @property
    def entity_columns(self) -> list[str]:
        return [c for c in self.entities if c]

    @property
    def is_complete(self) -> bool:
        return bool((self.first_name or self.last_name) and self.loc)


@dataclass
class BatchFile:
    name: str
    columns: list[str]
    rows: list[dict[str, str]]
    roles: BatchColumns = field(default_factory=BatchColumns)
    searched: bool = False


@dataclass(frozen=True)
class FoundEmployee:
    employee: EmployeeToFind
    entity_values: tuple[str, ...]
    batch_file: str

    @property
    def entity(self) -> str:
        return "/".join(v for v in self.entity_values if v)
