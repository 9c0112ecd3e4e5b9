from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

Structured record written as one JSON line per error. ``row=-1`` is the
sentinel for file-level errors (decode failure, no matching process) where no
single row is responsible. The key set is fixed; no extra keys are emitted.
"""

__all__ = [
    "ErrorRecord",
    "FILE_DECODE_ERROR",
    "NO_MATCHING_PROCESS",
    "PROCESSING_ERROR",
    "MISSING_FIELD",
]

FILE_DECODE_ERROR = "FILE_DECODE_ERROR"
NO_MATCHING_PROCESS = "NO_MATCHING_PROCESS"
PROCESSING_ERROR = "PROCESSING_ERROR"
MISSING_FIELD = "MISSING_FIELD"


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: Source filename being processed
        row: Output row number (1-based). Use -1 for file-level errors
        column: Output column the error refers to ("" for file-level errors)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Human readable description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    row: int  # 行番号。不明な場合 -1 許容
    column: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str, column: str = "") -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            column=column,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
