from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Protocol

from ..models.process import (
    ImportAction,
    ImportCollision,
    ImportDecision,
    ImportResult,
    Process,
)
from .errors import ImportFormatError, StoreError
from .local_store import LocalProcessStore

"""Process store facade (remote first, local fallback).

Every operation is attempted on the remote backend when one is configured.
Any StoreError from the remote is logged at WARN and the same operation is
served from the local JSON store instead. The two backends are never
reconciled: a process saved while the database was unreachable only exists
locally.

Import/export works on a JSON array of camelCase process documents. Imports
never carry ids over; collisions with saved processes are settled by a
resolver callback (see ``import_all``).
"""

__all__ = [
    "ProcessBackend",
    "ImportResolver",
    "ProcessStore",
    "find_collision",
    "next_copy_name",
]

logger = logging.getLogger(__name__)


class ProcessBackend(Protocol):
    name: str

    def list(self) -> list[Process]: ...

    def get(self, process_id: str) -> Process | None: ...

    def create(self, process: Process) -> Process: ...

    def update(self, process_id: str, process: Process) -> Process: ...

    def delete(self, process_id: str) -> bool: ...


# 衝突ごとに呼ばれ、None は「スキップ」扱い
ImportResolver = Callable[[ImportCollision], ImportDecision | None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _same(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


def find_collision(incoming: Process, existing: list[Process]) -> Process | None:
    """First saved process with the same company name or display name (case-insensitive)."""
    for proc in existing:
        if _same(incoming.company_name, proc.company_name):
            return proc
        if incoming.display_name and proc.display_name and _same(incoming.display_name, proc.display_name):
            return proc
    return None


def next_copy_name(base: str, existing: list[Process]) -> str:
    """``"{base} (n)"`` with the smallest n >= 1 not used as any saved label.

    >>> next_copy_name("Acme", [Process(company_name="Acme"), Process(company_name="x", display_name="Acme (1)")])
    'Acme (2)'
    """
    taken = set()
    for proc in existing:
        if proc.display_name:
            taken.add(proc.display_name.lower())
        if proc.company_name:
            taken.add(proc.company_name.lower())
    n = 1
    while f"{base} ({n})".lower() in taken:
        n += 1
    return f"{base} ({n})"


class ProcessStore:
    """Remote-first facade over the process backends."""

    def __init__(self, local: LocalProcessStore, remote: ProcessBackend | None = None) -> None:
        self.local = local
        self.remote = remote

    @property
    def backend_name(self) -> str:
        return self.remote.name if self.remote is not None else self.local.name

    def _call(self, op: str, *args: Any) -> Any:
        if self.remote is not None:
            try:
                return getattr(self.remote, op)(*args)
            except StoreError as e:
                logger.warning("remote process store failed (%s): %s; using local store", op, e)
        return getattr(self.local, op)(*args)

    # ---- CRUD ---------------------------------------------------------
    def list(self) -> list[Process]:
        procs = self._call("list")
        return sorted(procs, key=lambda p: p.company_name.lower())

    def get(self, process_id: str) -> Process | None:
        return self._call("get", process_id)

    def create(self, process: Process, touch: bool = True) -> Process:
        if touch:
            now = _now_iso()
            process = replace(process, created_at=now, updated_at=now)
        return self._call("create", process.with_id(None))

    def update(self, process_id: str, process: Process) -> Process:
        process = replace(process, updated_at=_now_iso())
        return self._call("update", process_id, process)

    def delete(self, process_id: str) -> bool:
        return self._call("delete", process_id)

    def save(
        self,
        process: Process,
        save_as_new: bool = False,
        detected_company: str | None = None,
    ) -> Process:
        """Create or update a process, linking the detected company when it differs.

        A process with an id is updated in place unless ``save_as_new`` is set,
        in which case a fresh record is created (the id is dropped).
        """
        if process.id and not save_as_new:
            saved = self.update(process.id, process)
        else:
            saved = self.create(process.with_id(None))
        if detected_company and detected_company.strip() and not _same(detected_company, saved.company_name):
            saved = self.link_company(saved.id or "", detected_company) or saved
        logger.info("saved process %s (%s)", saved.label, saved.id)
        return saved

    # ---- lookup -------------------------------------------------------
    def find_by_company(self, company_name: str) -> Process | None:
        """Process for a detected company name.

        Tried in order: exact (case-insensitive) company name, substring in
        either direction, then the linked company names of each process.
        """
        name = (company_name or "").strip().lower()
        if not name:
            return None
        procs = self.list()
        for proc in procs:
            if proc.company_name.lower() == name:
                return proc
        for proc in procs:
            saved = proc.company_name.lower()
            if saved and (name in saved or saved in name):
                return proc
        for proc in procs:
            for linked in proc.linked_companies:
                ln = linked.strip().lower()
                if ln and (ln == name or name in ln or ln in name):
                    return proc
        return None

    def find_by_provider(self, provider: str) -> list[Process]:
        name = (provider or "").strip().lower()
        if not name:
            return []
        return [p for p in self.list() if p.benefit_provider and p.benefit_provider.lower() == name]

    def link_company(self, process_id: str, company_name: str) -> Process | None:
        """Append company_name to the process's linked companies (no duplicates)."""
        proc = self.get(process_id)
        if proc is None:
            return None
        name = company_name.strip()
        if not name or any(_same(name, c) for c in proc.linked_companies):
            return proc
        linked = (*proc.linked_companies, name)
        logger.debug("linking company %r to process %s", name, process_id)
        return self.update(process_id, replace(proc, linked_companies=linked))

    # ---- import / export ----------------------------------------------
    def export_all(self) -> str:
        return json.dumps([p.to_dict() for p in self.list()], ensure_ascii=False, indent=2)

    def import_all(self, json_text: str, resolver: ImportResolver | None = None) -> ImportResult:
        """Import processes from an export document.

        Records that do not collide are created first. Each colliding record
        is then passed to ``resolver``; the first decision flagged
        ``apply_to_all`` is reused for the rest without asking again. Records
        without a decision are skipped. Imported records keep their timestamps.
        """
        try:
            data = json.loads(json_text)
        except json.JSONDecodeError as e:
            raise ImportFormatError(f"invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise ImportFormatError("export document must be a JSON array of processes")

        incoming: list[Process] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                raise ImportFormatError(f"item {i} is not an object")
            proc = Process.from_dict(item).with_id(None)
            if not proc.company_name:
                raise ImportFormatError(f"item {i} has no companyName")
            incoming.append(proc)

        existing = self.list()
        clean: list[Process] = []
        collisions: list[ImportCollision] = []
        for proc in incoming:
            hit = find_collision(proc, existing)
            if hit is None:
                clean.append(proc)
            else:
                collisions.append(ImportCollision(incoming=proc, existing=hit))

        imported = overwritten = skipped = 0
        for proc in clean:
            self.create(proc, touch=False)
            imported += 1

        sticky: ImportAction | None = None
        labels = list(existing)
        for collision in collisions:
            action = sticky
            if action is None:
                decision = resolver(collision) if resolver is not None else None
                if decision is None:
                    action = ImportAction.SKIP
                else:
                    action = decision.action
                    if decision.apply_to_all:
                        sticky = action

            if action is ImportAction.OVERWRITE and collision.existing.id:
                self._call("update", collision.existing.id, collision.incoming)
                overwritten += 1
            elif action is ImportAction.RENAME:
                base = collision.incoming.display_name or collision.incoming.company_name
                renamed = replace(collision.incoming, display_name=next_copy_name(base, labels))
                labels.append(renamed)
                self.create(renamed, touch=False)
                imported += 1
            else:
                skipped += 1

        result = ImportResult(imported=imported, overwritten=overwritten, skipped=skipped)
        logger.info(
            "import finished: imported=%d overwritten=%d skipped=%d",
            result.imported, result.overwritten, result.skipped,
        )
        return result
