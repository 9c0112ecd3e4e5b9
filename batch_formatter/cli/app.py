from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, FormatterConfig, load_config
from ..db import (
    ImportFormatError,
    LocalProcessStore,
    PostgresProcessStore,
    ProcessStore,
    StoreError,
    connection_factory,
    resolve_dsn,
)
from ..ingest.configurator import (
    configure_rows,
    detect_date_columns,
    detect_first_data_row,
    header_info_rows,
)
from ..ingest.errors import FileDecodeError, RowConfigError
from ..ingest.filename import extract_company_and_entity
from ..ingest.reader import read_raw_rows
from ..logging.init import log_summary, set_debug, setup_logging
from ..models.dataset import ConfiguredDataset
from ..models.matching import BatchColumns
from ..models.process import ImportAction, ImportCollision, ImportDecision, Process
from ..services.duplicates import find_duplicates, select_duplicate_rows
from ..services.entity_finder import (
    EntitySearchSession,
    auto_detect_columns,
    entities_csv,
    extract_employees_from_invoice,
)
from ..services.mapping import suggest_mappings
from ..services.orchestrator import ProcessingError, RunOptions, process_files
from ..services.output import to_table_csv
from ..services.summary import render_summary_line

"""Command line interface.

Subcommands:
- run:           format source files into applicant batch CSVs
- inspect:       show detected rows / columns of one file
- processes:     list / export / import / delete / save saved processes,
                 suggest a column mapping for a file
- duplicates:    compare two files for duplicate people
- find-entities: look up employee entities in batch files

Exit codes: 0 = success, 2 = at least one file failed, 1 = fatal error.
"""

__all__ = [
    "EXIT_SUCCESS_ALL",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_FATAL",
    "build_store",
    "main",
]

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv.

    override=True で .env の値を既存の環境変数より優先させる (DB 接続情報)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def build_store(cfg: FormatterConfig) -> ProcessStore:
    """Process store for this run: PostgreSQL when configured, local JSON always."""
    logger = setup_logging()
    local = LocalProcessStore(cfg.store.local_path)
    # テスト等で DB 接続を完全に無効化: DISABLE_DB_CONNECT=1
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> local store only")
        return ProcessStore(local)
    dsn = resolve_dsn(cfg.store.database)
    if dsn is None:
        logger.debug("no database configured -> local store only")
        return ProcessStore(local)
    remote = PostgresProcessStore(connection_factory(dsn), table=cfg.store.table)
    return ProcessStore(local, remote)


def _add_run_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("run", help="Format source files into batch CSVs")
    p.add_argument("files", nargs="+", type=Path)
    p.add_argument("--process-id", help="Use this saved process instead of company lookup")
    p.add_argument("--start-row", type=int)
    p.add_argument("--end-row", type=int)
    p.add_argument("--date-column")
    p.add_argument("--date-from")
    p.add_argument("--date-to")
    p.add_argument("--sftp", action="store_true", help="Also write the SFTP upload file")
    p.add_argument("--personal-group", action="store_true", help="Also write the personal group file")
    p.add_argument("--scheme-report", type=Path, help="Drop rows already present in this scheme report")
    p.add_argument("--combine", action="store_true", help="Combine all files into one batch")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="batch-formatter", description="Employee benefit batch formatter")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config file (YAML)")
    sub = p.add_subparsers(dest="command", required=True)

    _add_run_parser(sub)

    p_inspect = sub.add_parser("inspect", help="Show detected rows and columns of a file")
    p_inspect.add_argument("file", type=Path)

    p_proc = sub.add_parser("processes", help="Manage saved processes")
    proc_sub = p_proc.add_subparsers(dest="action", required=True)
    proc_sub.add_parser("list")
    p_export = proc_sub.add_parser("export")
    p_export.add_argument("--out", type=Path)
    p_import = proc_sub.add_parser("import")
    p_import.add_argument("file", type=Path)
    p_import.add_argument("--on-conflict", choices=[a.value for a in ImportAction], default=ImportAction.SKIP.value)
    p_delete = proc_sub.add_parser("delete")
    p_delete.add_argument("id")
    p_save = proc_sub.add_parser("save")
    p_save.add_argument("file", type=Path, help="JSON file with one process document")
    p_save.add_argument("--save-as-new", action="store_true")
    p_save.add_argument("--detected-company")
    p_suggest = proc_sub.add_parser("suggest", help="Suggest a column mapping from a file's headers")
    p_suggest.add_argument("file", type=Path)
    p_suggest.add_argument("--json", action="store_true", help="Print the mapping as a JSON object")

    p_dup = sub.add_parser("duplicates", help="Find people present in both files")
    p_dup.add_argument("file_a", type=Path)
    p_dup.add_argument("file_b", type=Path)
    p_dup.add_argument("--source", choices=["A", "B"], default="A")
    p_dup.add_argument("--exclude", nargs="*", default=[], metavar="PAIR_KEY")
    p_dup.add_argument("--out", type=Path)

    p_ent = sub.add_parser("find-entities", help="Look up employee entities in batch files")
    p_ent.add_argument("--batch", nargs="+", type=Path, required=True)
    who = p_ent.add_mutually_exclusive_group(required=True)
    who.add_argument("--invoice", type=Path)
    who.add_argument("--employee", action="append", metavar="FIRST,LAST,AMOUNT")
    p_ent.add_argument("--out", type=Path)
    # 自動検出できない見出し用の列指定
    p_ent.add_argument("--first-col", help="Batch column holding first names")
    p_ent.add_argument("--last-col", help="Batch column holding surnames")
    p_ent.add_argument("--loc-col", help="Batch column holding LOC amounts")
    p_ent.add_argument("--entity-col", action="append", default=[], help="Batch entity column (repeat up to 3 times)")
    return p.parse_args(argv)


def _read_dataset(path: Path) -> ConfiguredDataset:
    table = read_raw_rows(path)
    return configure_rows(table.rows, start_row=detect_first_data_row(table.rows))


def _cmd_run(args: argparse.Namespace, cfg: FormatterConfig) -> int:
    logger = setup_logging()
    store = build_store(cfg)
    options = RunOptions(
        process_id=args.process_id,
        start_row=args.start_row,
        end_row=args.end_row,
        date_column=args.date_column,
        date_from=args.date_from,
        date_to=args.date_to,
        sftp=args.sftp,
        personal_group=args.personal_group,
        scheme_report=args.scheme_report,
        combine=args.combine,
    )
    logger.info(f"Formatting {len(args.files)} file(s) -> {cfg.output_directory}")
    try:
        result = process_files(list(args.files), cfg, store, options)
    except (ProcessingError, StoreError) as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    logger.info(f"store={store.backend_name} total_rows={result.total_output_rows}")
    summary_line = render_summary_line(result.total_files, result)
    # log_summary が "SUMMARY " を付与するため先頭を除く
    log_summary(summary_line[8:])

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def _cmd_inspect(args: argparse.Namespace) -> int:
    try:
        table = read_raw_rows(args.file)
        start = detect_first_data_row(table.rows)
        dataset = configure_rows(table.rows, start_row=start)
    except (FileDecodeError, RowConfigError) as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    company, entity = extract_company_and_entity(args.file.name)
    print(f"FILE: {args.file.name} format={table.source_format} rows={table.row_count}")
    if table.note:
        print(f"  note: {table.note}")
    print(f"  company={company!r} entity={entity!r}")
    print(f"  first_data_row={start} header_row={start - 1}")
    for row_no, cells in header_info_rows(table.rows, start)[:-1]:
        print(f"  info row {row_no}: {[v for _, v in cells]}")
    print(f"  columns={dataset.columns}")
    print(f"  date_columns={detect_date_columns(dataset)}")
    print("  sample_rows=", dataset.data[:3])
    return EXIT_SUCCESS_ALL


def _cmd_suggest(args: argparse.Namespace) -> int:
    logger = setup_logging()
    try:
        dataset = _read_dataset(args.file)
    except (FileDecodeError, RowConfigError) as e:
        logger.error(f"processes suggest: {e}")
        return EXIT_FATAL
    suggestions = suggest_mappings(dataset.columns)
    logger.info(f"suggested {len(suggestions)} of {len(dataset.columns)} column(s) for {args.file.name}")
    if args.json:
        print(json.dumps(suggestions, ensure_ascii=False, indent=2))
    else:
        for target, source in suggestions.items():
            print(f"{target}\t{source}")
    return EXIT_SUCCESS_ALL


def _conflict_resolver(action: ImportAction):
    def _resolve(collision: ImportCollision) -> ImportDecision:
        return ImportDecision(action=action, apply_to_all=True)
    return _resolve


def _cmd_processes(args: argparse.Namespace, cfg: FormatterConfig) -> int:
    logger = setup_logging()
    store = build_store(cfg)
    try:
        if args.action == "list":
            for proc in store.list():
                provider = proc.benefit_provider or "-"
                print(f"{proc.id}\t{proc.label}\t{proc.company_name}\t{provider}")
        elif args.action == "export":
            text = store.export_all()
            if args.out:
                args.out.write_text(text, encoding="utf-8")
                logger.info(f"exported processes to {args.out}")
            else:
                print(text)
        elif args.action == "import":
            text = args.file.read_text(encoding="utf-8")
            result = store.import_all(text, _conflict_resolver(ImportAction(args.on_conflict)))
            print(f"imported={result.imported} overwritten={result.overwritten} skipped={result.skipped}")
        elif args.action == "delete":
            if not store.delete(args.id):
                logger.error(f"process not found: {args.id}")
                return EXIT_FATAL
            logger.info(f"deleted process {args.id}")
        elif args.action == "save":
            data = json.loads(args.file.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or not data.get("companyName"):
                logger.error("process document must be an object with companyName")
                return EXIT_FATAL
            saved = store.save(
                Process.from_dict(data),
                save_as_new=args.save_as_new,
                detected_company=args.detected_company,
            )
            print(saved.id)
    except (StoreError, ImportFormatError) as e:
        logger.error(f"processes: {e}")
        return EXIT_FATAL
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"processes: cannot read {getattr(args, 'file', '')}: {e}")
        return EXIT_FATAL
    return EXIT_SUCCESS_ALL


def _cmd_duplicates(args: argparse.Namespace, cfg: FormatterConfig | None) -> int:
    logger = setup_logging()
    try:
        a = _read_dataset(args.file_a)
        b = _read_dataset(args.file_b)
    except (FileDecodeError, RowConfigError) as e:
        logger.error(f"duplicates: {e}")
        return EXIT_FATAL
    extra = cfg.extra_common_words if cfg else ()
    report = find_duplicates(a.data, b.data, extra_common_words=extra)
    logger.info(f"duplicates: confirmed={len(report.confirmed)} potential={len(report.potential)}")
    for kind, pairs in (("confirmed", report.confirmed), ("potential", report.potential)):
        for pair in pairs:
            print(f"{kind}\t{pair.pair_key}\t{pair.match_summary}")
    if args.out:
        rows = select_duplicate_rows(report, source=args.source, excluded_pairs=args.exclude)
        columns = a.columns if args.source == "A" else b.columns
        args.out.write_text(to_table_csv(columns, rows), encoding="utf-8", newline="")
        logger.info(f"wrote {len(rows)} duplicate rows to {args.out}")
    return EXIT_SUCCESS_ALL


def _has_column_overrides(args: argparse.Namespace) -> bool:
    return bool(args.first_col or args.last_col or args.loc_col or args.entity_col)


def _batch_roles(args: argparse.Namespace, columns: list[str]) -> BatchColumns:
    """Auto-detected roles with the --*-col options taking precedence."""
    detected = auto_detect_columns(columns)
    for name in (args.first_col, args.last_col, args.loc_col, *args.entity_col):
        if name not in (None, "") and name not in columns:
            raise ValueError(f"column {name!r} not found (columns: {columns})")
    entities = tuple(args.entity_col) if args.entity_col else detected.entities
    return BatchColumns(
        first_name=args.first_col or detected.first_name,
        last_name=args.last_col or detected.last_name,
        loc=args.loc_col or detected.loc,
        entities=(tuple(entities) + (None, None, None))[:3],
    )


def _cmd_find_entities(args: argparse.Namespace) -> int:
    logger = setup_logging()
    if len(args.entity_col) > 3:
        logger.error(f"--entity-col accepts at most 3 columns (got {len(args.entity_col)})")
        return EXIT_FATAL
    session = EntitySearchSession()
    try:
        if args.invoice:
            session.add_employees(extract_employees_from_invoice(read_raw_rows(args.invoice).rows))
        else:
            for entry in args.employee:
                parts = [p.strip() for p in entry.split(",")]
                if len(parts) != 3:
                    logger.error(f"--employee expects FIRST,LAST,AMOUNT (got {entry!r})")
                    return EXIT_FATAL
                session.add_employee(parts[0], parts[1], parts[2])
        for path in args.batch:
            rows = read_raw_rows(path).rows
            roles = None
            if _has_column_overrides(args):
                columns = configure_rows(rows, start_row=2).columns if rows else []
                roles = _batch_roles(args, columns)
            session.add_batch_file(path.name, rows, roles=roles)
    except (FileDecodeError, RowConfigError, ValueError) as e:
        logger.error(f"find-entities: {e}")
        return EXIT_FATAL

    session.search()
    for hit in session.found:
        print(f"found\t{hit.employee.full_name}\t{hit.entity}\t{hit.batch_file}")
    for emp in session.missing:
        print(f"missing\t{emp.full_name}\t{emp.loc:.2f}")
    if args.out:
        args.out.write_text(entities_csv(session.found), encoding="utf-8")
        logger.info(f"wrote {len(session.found)} entities to {args.out}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # NOTE: 空リスト [] を渡された場合に sys.argv[1:] が混入しないよう None のときのみ読む
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    if args.command == "inspect":
        return _cmd_inspect(args)
    if args.command == "find-entities":
        return _cmd_find_entities(args)
    if args.command == "processes" and args.action == "suggest":
        # ファイルの見出しのみ使うため設定ファイル不要
        return _cmd_suggest(args)
    if args.command == "duplicates":
        # 設定ファイルは任意 (追加のストップワードのみ使用)
        cfg = None
        if args.config.exists():
            try:
                cfg = load_config(args.config)
            except ConfigError as e:
                logger.error(f"config: {e}")
                return EXIT_FATAL
        return _cmd_duplicates(args, cfg)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.command == "processes":
        return _cmd_processes(args, cfg)
    return _cmd_run(args, cfg)
