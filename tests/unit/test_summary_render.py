from __future__ import annotations

from datetime import datetime, timezone

import pytest

from batch_formatter.models.processing_result import FileStat, ProcessingResult
from batch_formatter.services.summary import format_elapsed, render_summary_line


def _result(**kw) -> ProcessingResult:
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    base = dict(
        success_files=2,
        failed_files=1,
        total_output_rows=30,
        filtered_rows=2,
        invalid_rows=1,
        loc_sum=1750.5,
        start_time=start,
        end_time=start,
        elapsed_seconds=1.234,
    )
    base.update(kw)
    return ProcessingResult(**base)


def test_render_summary_line_format():
    line = render_summary_line(3, _result())
    assert line == (
        "SUMMARY files=3/3 success=2 failed=1 rows=30 filtered=2 "
        "invalid_rows=1 loc_sum=1750.50 elapsed_sec=1.234"
    )


@pytest.mark.parametrize(
    "seconds,expected",
    [(0, "0"), (2.0, "2"), (0.0000123, "0.000012"), (0.5, "0.5"), (1.23456, "1.235")],
)
def test_format_elapsed(seconds, expected):
    assert format_elapsed(seconds) == expected


def test_total_files_counts_success_and_failed():
    res = _result(file_stats=[FileStat(file_name="a", status="success"), FileStat(file_name="b", status="failed")])
    assert res.total_files == 3
    assert render_summary_line(res.total_files, res).startswith("SUMMARY files=3/3 ")
