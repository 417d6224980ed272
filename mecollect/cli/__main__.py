from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from mecollect.config.catalog import Catalog, CatalogError, load_catalog
from mecollect.config.loader import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from mecollect.excel.reader import WorkbookImportError, import_workbook
from mecollect.excel.writer import export_template, export_workbook
from mecollect.grid.entry_grid import EntryGrid
from mecollect.logging.error_log import ErrorLogBuffer
from mecollect.logging.init import log_summary, setup_logging
from mecollect.models.draft import DraftInputValue, DraftRecord, Respondent
from mecollect.models.submission import SubmissionContext
from mecollect.services.allocator import AllocationError, allocate_rows
from mecollect.services.draft_queue import DraftFlushError, DraftQueue, DraftQueueError
from mecollect.services.progress import FlushProgress
from mecollect.services.summary import render_flush_summary, render_import_summary
from mecollect.services.validation import validate_draft_record
from mecollect.store.backend import BackendStoreError, PostgresBackendStore
from mecollect.store.cache import FileClientCache

"""CLI entrypoint.

Subcommands:
- export / template: write a data-entry workbook for an indicator period
- import: read a filled workbook back (optionally submit the values)
- drafts list|add|remove|flush: manage the offline queue of public form responses

Exit codes: 0 success, 1 fatal, 2 partial (skipped rows, stalled flush).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _connect(cfg: AppConfig) -> Any:  # pragma: no cover (thin wrapper)
    """Open a psycopg2 connection.

    接続情報の優先順位:
        1. `.env` / 環境変数の DATABASE_URL / PGDSN (DSN 全体)
        2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. 設定ファイルの database セクション (不足分のフォールバック)
    """
    db_cfg = cfg.database
    dsn_env = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn_env:
        dsn = dsn_env
    else:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False  # BackendStore が記録ごとに COMMIT
    return conn


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; values override the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _with_store(cfg: AppConfig, logger: Any, action: Callable[[PostgresBackendStore], int]) -> int:
    """Run ``action`` against a live store (mock only with DISABLE_DB_CONNECT=1).

    A failed connect raises BackendStoreError; nothing is sent.
    """
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        return action(PostgresBackendStore(None))
    try:
        conn = _connect(cfg)
    except psycopg2.OperationalError as db_e:
        # 接続失敗 = 送信失敗 (mock には切り替えない)
        raise BackendStoreError(f"database unreachable: {db_e}".strip()) from db_e
    # 接続後の失敗は mock に切り替えない (二重送信防止)
    try:
        with conn.cursor() as cur:
            logger.info("mode=live")
            return action(PostgresBackendStore(cur))
    finally:
        conn.close()


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="mecollect", description="Disaggregated indicator data collection")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="Config file path")
    sub = p.add_subparsers(dest="command", required=True)

    exp = sub.add_parser("export", help="Export an entry grid to a workbook")
    exp.add_argument("--indicator", required=True)
    exp.add_argument("--period", required=True)
    exp.add_argument("--grid", type=Path, help="Entry grid JSON to prefill (default: empty grid)")
    exp.add_argument("--output", type=Path, help="Output directory")

    tpl = sub.add_parser("template", help="Export an empty data-entry template")
    tpl.add_argument("--indicator", required=True)
    tpl.add_argument("--period", required=True)
    tpl.add_argument("--rows", type=int, help="Number of blank rows")
    tpl.add_argument("--output", type=Path, help="Output directory")

    imp = sub.add_parser("import", help="Import a filled workbook")
    imp.add_argument("file", type=Path)
    imp.add_argument("--indicator", required=True)
    imp.add_argument("--period", required=True)
    imp.add_argument("--save-grid", type=Path, help="Write the imported entry grid as JSON")
    imp.add_argument("--submit", action="store_true", help="Submit imported values to the database")
    imp.add_argument("--project", help="Project ID (required with --submit)")
    imp.add_argument("--user", help="Submitting user ID (required with --submit)")

    drafts = sub.add_parser("drafts", help="Manage queued public form responses")
    dsub = drafts.add_subparsers(dest="drafts_command", required=True)
    for name, text in (("list", "List queued responses"), ("flush", "Submit queued responses")):
        d = dsub.add_parser(name, help=text)
        d.add_argument("token", help="Form share token")
    add = dsub.add_parser("add", help="Review and queue a response")
    add.add_argument("token", help="Form share token")
    add.add_argument("--name", default="")
    add.add_argument("--email", default="")
    add.add_argument("--phone", default="")
    add.add_argument("--value", help="Numeric value")
    add.add_argument("--text", help="Text response (qualitative indicators)")
    add.add_argument("--select", action="append", default=[], metavar="VALUE_ID",
                     help="Selected disaggregation value ID (repeatable)")
    add.add_argument("--input", action="append", default=[], metavar="INPUT_ID=VALUE[:VID,...]",
                     help="Formula input value with optional value IDs (repeatable)")
    add.add_argument("--estimated", action="store_true")
    add.add_argument("--notes", default="")
    add.add_argument("--yes", action="store_true", help="Queue without asking for confirmation")
    rm = dsub.add_parser("remove", help="Remove a queued response")
    rm.add_argument("token", help="Form share token")
    rm.add_argument("position", type=int, help="1-based position as shown by 'drafts list'")
    return p.parse_args(argv)


def _parse_input_arg(raw: str) -> DraftInputValue:
    input_id, sep, rest = raw.partition("=")
    if not sep or not input_id.strip():
        raise ValueError(f"invalid --input '{raw}' (expected INPUT_ID=VALUE[:VID,...])")
    value, _, ids = rest.partition(":")
    value_ids = tuple(v.strip() for v in ids.split(",") if v.strip())
    return DraftInputValue(input_id=input_id.strip(), value=value.strip(), disaggregation_value_ids=value_ids)


def _cmd_export(args: argparse.Namespace, cfg: AppConfig, catalog: Catalog, logger: Any) -> int:
    indicator, period = catalog.context(args.indicator, args.period)
    out_dir = args.output or Path(cfg.export.output_directory)
    if args.command == "template":
        path = export_template(indicator, period, out_dir, cfg.export, row_count=args.rows)
    else:
        grid = EntryGrid.from_json(args.grid.read_text(encoding="utf-8")) if args.grid else EntryGrid()
        path = export_workbook(indicator, period, grid, out_dir, cfg.export)
    print(path)
    return EXIT_SUCCESS_ALL


def _cmd_import(args: argparse.Namespace, cfg: AppConfig, catalog: Catalog, logger: Any) -> int:
    indicator, _period = catalog.context(args.indicator, args.period)
    if args.submit and not (args.project and args.user):
        logger.error("--submit requires --project and --user")
        return EXIT_FATAL
    error_log = ErrorLogBuffer(Path(cfg.logs_directory))
    try:
        result = import_workbook(
            args.file,
            indicator_id=indicator.id,
            period_id=args.period,
            indicator=indicator,
            error_log=error_log,
        )
    except WorkbookImportError as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL
    finally:
        by_type = ", ".join(f"{k}={v}" for k, v in error_log.counts().items())
        log_path = error_log.flush()
        if log_path is not None:
            logger.info(f"skipped rows written to {log_path} ({by_type})")

    if args.save_grid:
        args.save_grid.parent.mkdir(parents=True, exist_ok=True)
        args.save_grid.write_text(result.grid.to_json(), encoding="utf-8")

    if args.submit:
        try:
            values = allocate_rows(result.rows, indicator)
        except AllocationError as e:
            logger.error(f"allocate: {e}")
            return EXIT_FATAL
        context = SubmissionContext(project_id=args.project, period_id=args.period, submitted_by=args.user)

        def submit(store: PostgresBackendStore) -> int:
            submission_id = store.submit_values(context, values)
            logger.info(f"submission {submission_id}: {len(values)} value(s)")
            return EXIT_SUCCESS_ALL

        try:
            _with_store(cfg, logger, submit)
        except BackendStoreError as e:
            logger.error(f"submit: {e}")
            return EXIT_FATAL

    log_summary(render_import_summary(result))
    return EXIT_PARTIAL_FAILURE if result.unresolved_count > 0 else EXIT_SUCCESS_ALL


def _cmd_drafts(args: argparse.Namespace, cfg: AppConfig, catalog: Catalog, logger: Any) -> int:
    form = catalog.form(args.token)
    queue = DraftQueue(FileClientCache(Path(cfg.cache_directory)), form.share_token)

    if args.drafts_command == "list":
        print(f"{form.title} ({form.period.period_key}): {len(queue)} queued, state={queue.state.value}")
        for pos, record in enumerate(queue, start=1):
            who = record.respondent.name or record.respondent.email or "(anonymous)"
            print(f"  {pos}. {record.created_at} {who} [{record.idempotency_key}]")
        return EXIT_SUCCESS_ALL

    if args.drafts_command == "add":
        try:
            inputs = tuple(_parse_input_arg(raw) for raw in args.input)
        except ValueError as e:
            logger.error(str(e))
            return EXIT_FATAL
        record = DraftRecord.create(
            Respondent(name=args.name, email=args.email, phone=args.phone),
            value_number=args.value,
            value_text=args.text,
            disaggregation_value_ids=tuple(args.select),
            input_values=inputs,
            is_estimated=args.estimated,
            notes=args.notes,
        )
        problem = validate_draft_record(form, record)
        if problem is not None:
            logger.error(problem)
            return EXIT_FATAL
        review = queue.review(record, form)
        print(review.render())
        confirmed = args.yes or input("Add this response to the queue? [y/N] ").strip().lower() in ("y", "yes")
        if not confirmed:
            logger.info("not queued")
            return EXIT_SUCCESS_ALL
        queue.append(review, confirmed=True)
        logger.info(f"queued ({len(queue)} pending)")
        return EXIT_SUCCESS_ALL

    if args.drafts_command == "remove":
        try:
            queue.remove(args.position - 1)
        except DraftQueueError as e:
            logger.error(str(e))
            return EXIT_FATAL
        logger.info(f"removed ({len(queue)} pending)")
        return EXIT_SUCCESS_ALL

    # flush
    if len(queue) == 0:
        log_summary(render_flush_summary(form.share_token, 0, 0))
        return EXIT_SUCCESS_ALL

    def flush(store: PostgresBackendStore) -> int:
        with FlushProgress(len(queue)) as progress:
            try:
                result = queue.flush(store, progress=progress)
            except DraftFlushError as e:
                logger.error(str(e))
                log_summary(render_flush_summary(form.share_token, e.submitted, e.remaining))
                return EXIT_PARTIAL_FAILURE
        log_summary(render_flush_summary(form.share_token, result.submitted, len(queue)))
        print(form.thank_you_message)
        return EXIT_SUCCESS_ALL

    try:
        return _with_store(cfg, logger, flush)
    except BackendStoreError as e:
        logger.error(f"submit: {e}")
        log_summary(render_flush_summary(form.share_token, 0, len(queue)))
        return EXIT_PARTIAL_FAILURE


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] の場合に sys.argv[1:] を読まない (テストからの呼び出し)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    try:
        catalog = load_catalog(Path(cfg.catalog))
    except CatalogError as e:
        logger.error(f"catalog: {e}")
        return EXIT_FATAL

    handlers = {
        "export": _cmd_export,
        "template": _cmd_export,
        "import": _cmd_import,
        "drafts": _cmd_drafts,
    }
    try:
        return handlers[args.command](args, cfg, catalog, logger)
    except CatalogError as e:
        logger.error(f"catalog: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
