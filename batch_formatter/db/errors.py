from __future__ import annotations

"""Process store exceptions."""

__all__ = [
    "StoreError",
    "ProcessNotFoundError",
    "ImportFormatError",
]


class StoreError(Exception):
    """Raised when a process store backend cannot complete an operation."""


class ProcessNotFoundError(StoreError):
    pass


class ImportFormatError(Exception):
    """Raised when an export document is not a JSON array of processes."""
