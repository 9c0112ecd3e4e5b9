from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..models.error_record import MISSING_FIELD, ErrorRecord
from ..models.validation import RowValidation

"""Error log buffering.

- JSON Lines with a fixed schema (no extra keys)
- One file per run: ``{directory}/errors-YYYYMMDD-HHMMSS.log`` (UTC), decided on
  first access so every flush of a run appends to the same file
- Records are buffered and written in one go by ``flush()``
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - flush() appends every buffered record to the run's log file
    - the file path is fixed on first access
    - not thread safe (serial execution)
    """
    def __init__(self, directory: Path | str | None = None) -> None:
        self._directory = Path(directory) if directory is not None else LOGS_DIR
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._directory.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._directory / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def add_file_error(self, file: str, error_type: str, message: str) -> None:
        self.append(ErrorRecord.create(file=file, row=-1, error_type=error_type, message=message))

    def add_validation(self, file: str, validation: list[RowValidation]) -> None:
        for row in validation:
            for err in row.errors:
                self.append(
                    ErrorRecord.create(
                        file=file,
                        row=err.row,
                        column=err.column,
                        error_type=MISSING_FIELD,
                        message=err.message,
                    )
                )

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Append buffered records to the log file.

        Returns:
            The log file path, or None when nothing was buffered (no file is created)
        """
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
