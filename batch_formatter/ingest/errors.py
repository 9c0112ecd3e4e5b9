from __future__ import annotations

"""Ingest layer exceptions."""

__all__ = [
    "FileDecodeError",
    "RowConfigError",
]


class FileDecodeError(Exception):
    """Raised when a source file cannot be decoded into raw rows."""


class RowConfigError(Exception):
    """Raised when start / end / header row settings are invalid."""
