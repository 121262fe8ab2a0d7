from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path

from dotenv import load_dotenv

from fleet_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from fleet_import.db.store import MemoryStore, PostgresStore, Store
from fleet_import.excel.reader import SheetReadError, read_raw_grid
from fleet_import.logging.init import log_summary, setup_logging
from fleet_import.logging.skipped_log import SkippedRowLog
from fleet_import.models.config_models import ImportConfig
from fleet_import.models.import_state import Conflict, ConflictKind, ImportStatus
from fleet_import.services.orchestrator import ImportAbort, ImportSession, prepare_grid
from fleet_import.services.progress import RowProgress
from fleet_import.services.resolver import ALLOWED_ACTIONS, Action, Decision, ResolutionError
from fleet_import.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env and config/import.yml
- Connect to PostgreSQL (mock in-memory store when DISABLE_DB_CONNECT=1 or
  the connection fails)
- Load the spreadsheet, run the validation pipeline and ask the operator on
  stdin whenever it suspends (or apply --on-conflict non-interactively)
- Finalize, flush the skipped-row log, print the SUMMARY line
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PARTIAL = 2  # committed, but some rows were skipped
EXIT_TERMINATED = 3

Prompt = Callable[[str], str]

_ACTION_KEYS = {
    Action.REGISTER: "r",
    Action.OVERRIDE: "o",
    Action.SKIP: "s",
    Action.TERMINATE: "t",
}


@contextmanager
def _db_connection(cfg: ImportConfig):  # pragma: no cover (thin wrapper; tested via integration)
    """Context manager providing a psycopg2 connection.

    接続情報の解決優先順位:
        1. `.env` / 環境変数の DATABASE_URL / PGDSN (DSN 全体)
        2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. config/import.yml の database セクション (不足分のフォールバック)
    """
    import psycopg2

    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if not dsn:
        host = os.getenv("PGHOST", db_cfg.host or "localhost")
        port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
        user = os.getenv("PGUSER", db_cfg.user or "postgres")
        password = os.getenv("PGPASSWORD", db_cfg.password or "")
        database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
        dsn = f"host={host} port={port} user={user} dbname={database}"
        if password:
            dsn += f" password={password}"

    conn = psycopg2.connect(dsn)
    conn.autocommit = False  # 書き込みごとに PostgresStore が COMMIT
    try:
        yield conn
    finally:
        if not conn.closed:
            conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv (its values win over the environment)."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except Exception as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Daily-entry spreadsheet importer")
    p.add_argument("file", help="Spreadsheet to import (.xlsx, .xls or .csv)")
    p.add_argument("--config", default=str(DEFAULT_CONFIG_PATH), help="Config YAML path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print detected header & first rows then exit")
    p.add_argument(
        "--on-conflict",
        choices=["ask", "skip", "terminate"],
        default="ask",
        help="How to settle conflicts (ask = prompt the operator on stdin)",
    )
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig, path: Path) -> int:
    try:
        report = prepare_grid(read_raw_grid(path), cfg)
    except (SheetReadError, ImportAbort) as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    header = report.header
    print(f"FILE: {path.name}")
    print(f"  HEADER: line={header.row_index + 1} score={header.score}")
    for field_name, idx in header.columns.items():
        spec = cfg.column(field_name)
        label = spec.label if spec is not None else field_name
        print(f"    {label:<12}-> {'(not found)' if idx is None else f'column {idx + 1}'}")
    extraction = report.extraction
    print(
        f"  queued={len(extraction.queue)} skipped={len(extraction.skipped)} garbage_rows={extraction.garbage_rows}"
    )
    for row in report.extraction.queue[:3]:
        print("    sample_row=", asdict(row))
    for skipped in report.extraction.skipped[:3]:
        print(f"    skipped line={skipped.line} reason={skipped.reason}")
    return EXIT_SUCCESS


def describe_conflict(conflict: Conflict) -> list[str]:
    """Operator-facing description of a conflict (plain text lines)."""
    row = conflict.row
    if conflict.kind is ConflictKind.INCOMPLETE_ROW:
        lines = [f"Line {row.line}: missing mandatory fields: {', '.join(conflict.missing_fields)}"]
    elif conflict.kind is ConflictKind.MISSING_DRIVER:
        lines = [f'Line {row.line}: driver "{conflict.driver_name}" is not registered (or terminated)']
    else:
        origin = "an earlier row of this file" if conflict.is_batch_duplicate else "an entry already saved"
        lines = [f"Line {row.line}: {row.driver} already has an entry on {row.date} ({origin})"]
        if conflict.existing is not None and conflict.new_entry is not None:
            old, new = asdict(conflict.existing), asdict(conflict.new_entry)
            lines.append(f"  {'field':<12}{'existing':<20}new import")
            for key in ("date", "day", "vehicle", "driver", "shift", "qr_code", "rent", "collection", "fuel", "due", "payout"):
                mark = "*" if old[key] != new[key] else " "
                lines.append(f"{mark} {key:<12}{str(old[key] or '-'):<20}{new[key] or '-'}")
    return lines


def _prompt_decision(conflict: Conflict, prompt: Prompt) -> Decision:
    for line in describe_conflict(conflict):
        print(line)
    allowed = ALLOWED_ACTIONS[conflict.kind]
    menu = " / ".join(f"[{_ACTION_KEYS[a]}] {a.value}" for a in allowed)
    by_key = {_ACTION_KEYS[a]: a for a in allowed}
    while True:
        answer = prompt(f"{menu} > ").strip().lower()
        action = by_key.get(answer[:1]) if answer else None
        if action is not None:
            break
        print(f"please choose one of: {', '.join(by_key)}")
    if action is Action.REGISTER:
        name = prompt(f"driver name [{conflict.driver_name}] > ").strip()
        mobile = prompt("mobile (optional) > ").strip()
        return Decision(action, name=name, mobile=mobile)
    return Decision(action)


def _settle_conflict(session: ImportSession, policy: str, prompt: Prompt, logger) -> None:
    conflict = session.conflict
    if conflict is None:
        return
    while session.status is ImportStatus.SUSPENDED and session.conflict is conflict:
        if policy == "skip":
            decision = Decision(Action.SKIP)
        elif policy == "terminate":
            decision = Decision(Action.TERMINATE)
        else:
            decision = _prompt_decision(conflict, prompt)
        try:
            session.resolve(decision)
        except ResolutionError as e:
            # 競合はオープンのまま: 再度判断を求める
            logger.warning(str(e))
            if policy != "ask":  # pragma: no cover - skip/terminate never fail
                raise


def _run_import(store: Store, cfg: ImportConfig, path: Path, policy: str, prompt: Prompt, logger) -> int:
    session = ImportSession(store, cfg)
    try:
        session.load(path)
    except ImportAbort as e:
        logger.error(f"import: {e}")
        return EXIT_FATAL

    with RowProgress(len(session.state.queue)) as progress:
        while True:
            state = session.run(on_tick=progress.update)
            if state.status is not ImportStatus.SUSPENDED:
                break
            progress.clear()
            _settle_conflict(session, policy, prompt, logger)
            if session.terminated:
                break

    if session.terminated:
        logger.warning("import terminated; nothing was saved")
        log_summary(render_summary_line(session.result())[len("SUMMARY "):])
        return EXIT_TERMINATED

    session.finalize()
    result = session.result()

    skipped_log = SkippedRowLog(cfg.skipped_log_directory)
    skipped_log.extend(session.state.skipped)
    try:
        written = skipped_log.flush()
        if written is not None:
            logger.info(f"skipped rows written to {written}")
    except OSError as e:
        logger.warning(f"could not write skipped-row log: {e}")

    log_summary(render_summary_line(result)[len("SUMMARY "):])
    if result.error is not None:
        return EXIT_FATAL
    if result.skipped_rows > 0:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


def main(argv: list[str] | None = None, prompt: Prompt = input) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む (テストから [] を渡せるように)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(Path(args.config))
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        setup_logging(debug=True)
        logger.debug("debug mode enabled")

    path = Path(args.file)
    if not path.exists():
        logger.error(f"file not found: {path}")
        return EXIT_FATAL

    if args.inspect_data:
        return _inspect_data(cfg, path)

    logger.info(f"Importing: {path}")

    # DB 接続制御: テスト等で完全に無効化したい場合 DISABLE_DB_CONNECT=1
    db_mode = "mock"
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
    else:
        try:
            with _db_connection(cfg) as conn:
                db_mode = "live"
                logger.info("mode=live")
                return _run_import(PostgresStore(conn), cfg, path, args.on_conflict, prompt, logger)
        except Exception as db_e:
            if db_mode == "live":
                raise
            logger.info(f"DB connection failed -> fallback to mock mode: {db_e}")

    logger.info("mode=mock (nothing is persisted)")
    return _run_import(MemoryStore(), cfg, path, args.on_conflict, prompt, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
