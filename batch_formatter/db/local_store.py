from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

from ..models.process import Process
from .errors import ProcessNotFoundError, StoreError

"""Local process store: a JSON file holding a list of process records.

Ids are ``local_{epoch_ms}`` (bumped by one millisecond on collision).
Writes go through a temporary file and ``os.replace`` so a failed write never
leaves a truncated store behind.
"""

__all__ = [
    "LOCAL_ID_PREFIX",
    "LocalProcessStore",
]

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local_"


class LocalProcessStore:
    name = "local"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _read(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "[]")
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"cannot read local store {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StoreError(f"local store {self.path} is not a list")
        return [d for d in data if isinstance(d, dict)]

    def _write(self, records: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"cannot write local store {self.path}: {e}") from e

    def _new_id(self, records: list[dict[str, Any]]) -> str:
        taken = {r.get("id") for r in records}
        stamp = int(time.time() * 1000)
        while f"{LOCAL_ID_PREFIX}{stamp}" in taken:
            stamp += 1
        return f"{LOCAL_ID_PREFIX}{stamp}"

    def list(self) -> list[Process]:
        return [Process.from_dict(r) for r in self._read()]

    def get(self, process_id: str) -> Process | None:
        for r in self._read():
            if r.get("id") == process_id:
                return Process.from_dict(r)
        return None

    def create(self, process: Process) -> Process:
        records = self._read()
        created = process.with_id(self._new_id(records))
        records.append(created.to_dict())
        self._write(records)
        logger.debug("local store: created %s (%s)", created.id, created.label)
        return created

    def update(self, process_id: str, process: Process) -> Process:
        records = self._read()
        for i, r in enumerate(records):
            if r.get("id") == process_id:
                updated = process.with_id(process_id)
                records[i] = updated.to_dict()
                self._write(records)
                return updated
        raise ProcessNotFoundError(f"process not found: {process_id}")

    def delete(self, process_id: str) -> bool:
        records = self._read()
        kept = [r for r in records if r.get("id") != process_id]
        if len(kept) == len(records):
            return False
        self._write(kept)
        return True
