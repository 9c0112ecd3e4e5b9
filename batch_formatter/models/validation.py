from __future__ import annotations

from dataclasses import dataclass, field

"""Validation and mapping result models.

Row numbers are 1-based positions in the *post-filter* output sequence, not in
the source file. Validation never blocks output: every row still appears in
``MappingResult.data``.
"""

__all__ = [
    "ValidationError",
    "RowValidation",
    "MappingResult",
]


@dataclass(frozen=True)
class ValidationError:
    row: int  # 出力行番号 (フィルタ後, 1始まり)
    column: str
    message: str
    type: str = "missing"


@dataclass(frozen=True)
class RowValidation:
    row: int
    errors: tuple[ValidationError, ...]

    @property
    def columns(self) -> list[str]:
        return [e.column for e in self.errors]


@dataclass(frozen=True)
class MappingResult:
    """Output of applying a Process to configured source rows.

    Invariant: ``len(data) + filtered == number of source rows``.
    """
    data: list[dict[str, str]] = field(default_factory=list)
    validation: list[RowValidation] = field(default_factory=list)
    filtered: int = 0

    @property
    def error_count(self) -> int:
        return sum(len(v.errors) for v in self.validation)

    @property
    def is_valid(self) -> bool:
        return not self.validation
