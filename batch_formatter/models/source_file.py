from __future__ import annotations

from enum import Enum

"""FileStatus enum for source files of a run.

Every source file of a run ends as success or failed.
"""

__all__ = [
    "FileStatus",
]


class FileStatus(Enum):
    """Final status of one source file.

    - SUCCESS: Output written (validation errors do not fail a file)
    - FAILED: Decode failure, missing process or other file-level error
    """
    SUCCESS = "success"
    FAILED = "failed"
