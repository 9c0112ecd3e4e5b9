"""Source decoding: raw rows, row configuration and filename parsing."""

from .errors import FileDecodeError, RowConfigError

__all__ = [
    "FileDecodeError",
    "RowConfigError",
]
