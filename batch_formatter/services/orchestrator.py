from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from pathlib import Path

from ..config.loader import FormatterConfig
from ..db.process_store import ProcessStore
from ..ingest.configurator import (
    company_from_cell,
    configure_rows,
    detect_first_data_row,
    filter_by_date_range,
)
from ..ingest.errors import FileDecodeError, RowConfigError
from ..ingest.filename import extract_company_and_entity
from ..ingest.reader import COMBINED_COMPANY, combine_files, read_raw_rows
from ..logging.error_log import ErrorLogBuffer
from ..models.dataset import RawTable, SourceRow
from ..models.error_record import FILE_DECODE_ERROR, NO_MATCHING_PROCESS, PROCESSING_ERROR
from ..models.process import DataConfig, Process
from ..models.processing_result import FileStat, ProcessingResult
from ..models.validation import RowValidation
from ..models.source_file import FileStatus
from .duplicates import find_scheme_duplicates, remove_scheme_duplicates
from .mapping import apply_mapping
from .output import detect_output_variants, loc_sum, write_outputs
from .progress import ProgressTracker

"""Multi-file formatting run.

Each input file goes through: company/entity extraction -> decode -> process
lookup -> row settings -> (cell company) -> configure + date filter -> mapping
-> (scheme report check) -> output files. A failure in any step marks that
file failed, is recorded in the error log, and the run moves on to the next
file. The error log is flushed once at the end of the run.
"""

__all__ = [
    "ProcessingError",
    "RunOptions",
    "process_files",
    "load_scheme_rows",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal run error (no input, unreadable scheme report)."""
    pass


@dataclass(frozen=True)
class RunOptions:
    """Per-run overrides (CLI arguments).

    ``sftp`` / ``personal_group`` force the extra outputs on; when False the
    source filename may still switch them on (see detect_output_variants).
    """
    process_id: str | None = None
    start_row: int | None = None
    end_row: int | None = None
    date_column: str | None = None
    date_from: str | None = None
    date_to: str | None = None
    sftp: bool = False
    personal_group: bool = False
    scheme_report: Path | None = None
    combine: bool = False
    today: date | None = None


class _FileFailure(Exception):
    def __init__(self, error_type: str, message: str) -> None:
        super().__init__(message)
        self.error_type = error_type
        self.message = message


def load_scheme_rows(path: Path) -> list[SourceRow]:
    """Configured rows of a scheme report (first data row auto-detected)."""
    try:
        table = read_raw_rows(path)
        start = detect_first_data_row(table.rows)
        return configure_rows(table.rows, start_row=start).data
    except (FileDecodeError, RowConfigError) as e:
        raise ProcessingError(f"scheme report {path.name}: {e}") from e


def _resolve_process(store: ProcessStore, company: str, options: RunOptions) -> Process:
    if options.process_id:
        process = store.get(options.process_id)
        if process is None:
            raise _FileFailure(NO_MATCHING_PROCESS, f"process not found: {options.process_id}")
        return process
    process = store.find_by_company(company)
    if process is None:
        raise _FileFailure(NO_MATCHING_PROCESS, f"no saved process matches company '{company}'")
    return process


def _row_settings(table: RawTable, saved: DataConfig | None, options: RunOptions) -> tuple[int, int | None]:
    # CLI > 保存済み dataConfig > 自動検出
    if options.start_row is not None:
        return options.start_row, options.end_row
    if saved is not None:
        end = options.end_row if options.end_row is not None else saved.end_row
        return saved.start_row, end
    return detect_first_data_row(table.rows), options.end_row


def _process_single_file(
    file_path: Path,
    config: FormatterConfig,
    store: ProcessStore,
    options: RunOptions,
    scheme_rows: list[SourceRow] | None,
    today: date,
    table: RawTable | None = None,
) -> tuple[FileStat, list[RowValidation]]:
    started = datetime.now(UTC)
    if table is not None:
        company, entity = COMBINED_COMPANY, ""
    else:
        company, entity = extract_company_and_entity(file_path.name)
        try:
            table = read_raw_rows(file_path)
        except FileDecodeError as e:
            raise _FileFailure(FILE_DECODE_ERROR, str(e)) from e
    if table.note:
        logger.info("%s: %s", file_path.name, table.note)

    process = _resolve_process(store, company, options)
    saved = process.data_config

    if saved is not None and saved.company_source == "cell" and not options.process_id:
        cell_company = company_from_cell(table.rows, saved.company_row, saved.company_col)
        if cell_company and cell_company != company:
            logger.debug("%s: company from cell R%dC%d: %s", file_path.name, saved.company_row, saved.company_col, cell_company)
            company = cell_company
            process = store.find_by_company(company) or process
            saved = process.data_config or saved

    start_row, end_row = _row_settings(table, saved, options)
    try:
        dataset = configure_rows(table.rows, start_row=start_row, end_row=end_row)
    except RowConfigError as e:
        raise _FileFailure(PROCESSING_ERROR, str(e)) from e

    date_column = options.date_column or (saved.date_column if saved else None)
    date_from = options.date_from or (saved.date_from if saved else None)
    date_to = options.date_to or (saved.date_to if saved else None)
    rows = filter_by_date_range(dataset.data, date_column, date_from, date_to)

    result = apply_mapping(rows, process, company_name=process.company_name, entity=process.entity or entity)
    output_rows = result.data

    removed = 0
    if scheme_rows is not None:
        duplicates = find_scheme_duplicates(output_rows, scheme_rows)
        output_rows = remove_scheme_duplicates(output_rows, duplicates)
        removed = len(duplicates)
        if removed:
            logger.info("%s: %d rows already in scheme report removed", file_path.name, removed)

    auto_sftp, auto_pg = detect_output_variants(file_path.name)
    try:
        outputs = write_outputs(
            output_rows,
            company=process.company_name,
            output_dir=Path(config.output_directory),
            today=today,
            max_rows_per_file=config.max_rows_per_file,
            sftp=options.sftp or auto_sftp,
            personal_group=(rows, dataset.columns) if (options.personal_group or auto_pg) else None,
        )
    except OSError as e:
        raise _FileFailure(PROCESSING_ERROR, f"cannot write output: {e}") from e

    if result.validation:
        logger.warning("%s: %d rows with missing required fields", file_path.name, len(result.validation))

    stat = FileStat(
        file_name=file_path.name,
        status=FileStatus.SUCCESS.value,
        company=process.company_name,
        process_id=process.id,
        output_rows=len(output_rows),
        filtered_rows=result.filtered,
        invalid_rows=len(result.validation),
        scheme_duplicates=removed,
        loc_sum=loc_sum(output_rows),
        elapsed_seconds=(datetime.now(UTC) - started).total_seconds(),
        outputs=tuple(outputs),
    )
    return stat, result.validation


def process_files(
    paths: list[Path],
    config: FormatterConfig,
    store: ProcessStore,
    options: RunOptions | None = None,
) -> ProcessingResult:
    """Format every file in ``paths`` and aggregate the run metrics.

    Raises:
        ProcessingError: no input files, or the scheme report cannot be read
    """
    options = options or RunOptions()
    if not paths:
        raise ProcessingError("no input files")

    start_time = datetime.now(UTC)
    today = options.today or date.today()
    error_log = ErrorLogBuffer(config.error_log_directory)
    scheme_rows = load_scheme_rows(options.scheme_report) if options.scheme_report else None

    # (path, 結合済みテーブル or None)
    units: list[tuple[Path, RawTable | None]] = []
    file_stats: list[FileStat] = []
    if options.combine:
        table, errors = combine_files(paths)
        for err in errors:
            error_log.add_file_error(err["file"], FILE_DECODE_ERROR, err["error"])
            file_stats.append(FileStat(file_name=err["file"], status=FileStatus.FAILED.value, error=err["error"]))
        if table.rows:
            units.append((Path(f"{COMBINED_COMPANY}.csv"), table))
    else:
        units = [(p, None) for p in paths]

    with ProgressTracker(len(units)) as progress:
        for path, table in units:
            progress.start_file(path)
            started = datetime.now(UTC)
            try:
                stat, validation = _process_single_file(
                    path, config, store, options, scheme_rows, today, table
                )
                error_log.add_validation(path.name, validation)
                logger.info(
                    "%s -> %s rows=%d filtered=%d invalid=%d",
                    path.name, stat.company, stat.output_rows, stat.filtered_rows, stat.invalid_rows,
                )
            except _FileFailure as e:
                logger.error("%s: %s", path.name, e.message)
                error_log.add_file_error(path.name, e.error_type, e.message)
                stat = FileStat(
                    file_name=path.name,
                    status=FileStatus.FAILED.value,
                    elapsed_seconds=(datetime.now(UTC) - started).total_seconds(),
                    error=e.message,
                )
            file_stats.append(stat)
            ok = stat.status == FileStatus.SUCCESS.value
            progress.finish_file(success=ok)
            progress.set_postfix(
                success=sum(1 for s in file_stats if s.status == FileStatus.SUCCESS.value),
                failed=sum(1 for s in file_stats if s.status == FileStatus.FAILED.value),
            )

    # エラーログは実行ごとに一度だけ書き出す
    error_log_path = error_log.flush()
    if error_log_path is not None:
        logger.info("error log written: %s", error_log_path)

    succeeded = [s for s in file_stats if s.status == FileStatus.SUCCESS.value]
    end_time = datetime.now(UTC)
    return ProcessingResult(
        success_files=len(succeeded),
        failed_files=len(file_stats) - len(succeeded),
        total_output_rows=sum(s.output_rows for s in succeeded),
        filtered_rows=sum(s.filtered_rows for s in succeeded),
        invalid_rows=sum(s.invalid_rows for s in succeeded),
        loc_sum=round(sum(s.loc_sum for s in succeeded), 2),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        file_stats=file_stats,
        error_log_path=error_log_path,
    )
