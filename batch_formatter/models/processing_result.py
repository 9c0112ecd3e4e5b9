from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

"""Processing result models for a formatter run.

FileStat tracks one source file; ProcessingResult aggregates every file of a
run and carries the numbers rendered into the SUMMARY line.
"""

__all__ = [
    "FileStat",
    "ProcessingResult",
]


@dataclass(frozen=True)
class FileStat:
    """Per-file processing statistics."""
    file_name: str  # ファイル名
    status: str  # success/failed
    company: str = ""
    process_id: str | None = None
    output_rows: int = 0  # 出力行数
    filtered_rows: int = 0  # LOC 範囲外で除外
    invalid_rows: int = 0  # 検証エラーのある行
    scheme_duplicates: int = 0
    loc_sum: float = 0.0
    elapsed_seconds: float = 0.0
    outputs: tuple[Path, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results and summary output for a formatter run."""
    success_files: int
    failed_files: int
    total_output_rows: int
    filtered_rows: int
    invalid_rows: int
    loc_sum: float
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    file_stats: list[FileStat] = field(default_factory=list)
    error_log_path: Path | None = None

    @property
    def total_files(self) -> int:
        return self.success_files + self.failed_files
