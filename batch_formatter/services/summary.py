from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering for formatter runs.

Format::

    SUMMARY files={total}/{total} success={s} failed={f} rows={rows}
    filtered={filtered} invalid_rows={invalid} loc_sum={sum:.2f} elapsed_sec={e}

(one line, single spaces between fields)
"""

__all__ = [
    "format_elapsed",
    "render_summary_line",
]


def format_elapsed(seconds: float) -> str:
    """Elapsed seconds without scientific notation or a trailing ``.0``.

    >>> format_elapsed(2.0)
    '2'
    >>> format_elapsed(0.0000123)
    '0.000012'
    """
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return str(round(seconds, 3))


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render the SUMMARY line for a finished run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> result = ProcessingResult(
        ...     success_files=1, failed_files=0, total_output_rows=12, filtered_rows=1,
        ...     invalid_rows=0, loc_sum=1500.5, start_time=start, end_time=end,
        ...     elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(1, result)
        'SUMMARY files=1/1 success=1 failed=0 rows=12 filtered=1 invalid_rows=0 loc_sum=1500.50 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={total_files}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_output_rows} "
        f"filtered={result.filtered_rows} "
        f"invalid_rows={result.invalid_rows} "
        f"loc_sum={result.loc_sum:.2f} "
        f"elapsed_sec={format_elapsed(result.elapsed_seconds)}"
    )
