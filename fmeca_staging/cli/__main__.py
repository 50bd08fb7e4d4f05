from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from fmeca_staging.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from fmeca_staging.db.repository import FmecaRepository, RepositoryError
from fmeca_staging.excel.reader import WorkbookError, read_fmeca_workbook
from fmeca_staging.excel.writer import default_export_name, write_fmeca_workbook
from fmeca_staging.logging.init import log_summary, set_debug, setup_logging
from fmeca_staging.models.config_models import DatabaseConfig, StagingConfig
from fmeca_staging.services.errors import PersistenceError, StagingError
from fmeca_staging.services.session import StagingSession
from fmeca_staging.services.summary import render_change_summary

"""CLI entrypoint.

Commands:
- diff ORIGINAL CANDIDATE   compare two workbooks and print the change summary
- inspect WORKBOOK          print columns and the first rows
- import PROJECT WORKBOOK   store a workbook as the project's dataset
- apply PROJECT CANDIDATE   stage a candidate workbook against the stored dataset and accept it
- export PROJECT [OUT]      write the stored dataset to a workbook
"""

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_PERSISTENCE_FAILURE = 2


def _resolve_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string resolution order: DATABASE_URL / PGDSN, PG* variables, then config."""
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_connection(cfg: StagingConfig) -> Iterator[tuple[Any, Any]]:  # pragma: no cover (thin wrapper)
    """Yield (connection, cursor). The repository commits; anything left open is rolled back."""
    conn = psycopg2.connect(_resolve_dsn(cfg.database))
    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield conn, cur
    finally:
        try:
            if not conn.closed:
                conn.rollback()
        finally:
            cur.close()
            conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env; its values take precedence over the existing environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="fmeca-stage", description="FMECA dataset staging tool")
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("diff", help="Compare two workbooks")
    d.add_argument("original", type=Path)
    d.add_argument("candidate", type=Path)
    d.add_argument("--json", action="store_true", help="Print the changeset as JSON")

    i = sub.add_parser("inspect", help="Print columns and first rows of a workbook")
    i.add_argument("workbook", type=Path)
    i.add_argument("--rows", type=int, default=3)

    im = sub.add_parser("import", help="Store a workbook as the project's dataset")
    im.add_argument("project")
    im.add_argument("workbook", type=Path)

    a = sub.add_parser("apply", help="Stage a candidate workbook and accept it")
    a.add_argument("project")
    a.add_argument("candidate", type=Path)
    a.add_argument("--dry-run", action="store_true", help="Stage and summarize only")

    e = sub.add_parser("export", help="Export the project's dataset to a workbook")
    e.add_argument("project")
    e.add_argument("out", type=Path, nargs="?")
    return p.parse_args(argv)


def _cmd_diff(cfg: StagingConfig, args: argparse.Namespace) -> int:
    original = read_fmeca_workbook(args.original, cfg.max_upload_bytes)
    candidate = read_fmeca_workbook(args.candidate, cfg.max_upload_bytes)
    session = StagingSession.from_config(original, cfg)
    changeset = session.store.stage(candidate)
    if args.json:
        print(json.dumps(changeset.to_dict(), ensure_ascii=False, indent=2))
    log_summary(render_change_summary(changeset)[len("SUMMARY "):])
    return EXIT_SUCCESS


def _cmd_inspect(cfg: StagingConfig, args: argparse.Namespace) -> int:
    ds = read_fmeca_workbook(args.workbook, cfg.max_upload_bytes)
    print(f"FILE: {args.workbook.name} rows={len(ds.rows)}")
    print(f"  columns={ds.columns}")
    print("  sample_rows=", json.dumps(ds.rows[: args.rows], ensure_ascii=False))
    return EXIT_SUCCESS


def _cmd_import(cfg: StagingConfig, args: argparse.Namespace) -> int:
    ds = read_fmeca_workbook(args.workbook, cfg.max_upload_bytes)
    with _db_connection(cfg) as (conn, cur):
        repo = FmecaRepository(cur, args.project, connection=conn)
        repo.ensure_schema()
        repo.save(ds)
    log_summary(f"project={args.project} rows={len(ds.rows)} columns={len(ds.columns)}")
    return EXIT_SUCCESS


def _cmd_apply(cfg: StagingConfig, args: argparse.Namespace) -> int:
    candidate = read_fmeca_workbook(args.candidate, cfg.max_upload_bytes)
    with _db_connection(cfg) as (conn, cur):
        repo = FmecaRepository(cur, args.project, connection=conn)
        session = StagingSession.from_config(repo.load(), cfg)
        changeset = session.store.stage(candidate)
        if args.dry_run or changeset.is_empty():
            log_summary(render_change_summary(changeset)[len("SUMMARY "):])
            session.revert()
            return EXIT_SUCCESS
        try:
            asyncio.run(session.accept(repo.save))
        except PersistenceError:
            session.error_log.flush()
            raise
    return EXIT_SUCCESS


def _cmd_export(cfg: StagingConfig, args: argparse.Namespace) -> int:
    with _db_connection(cfg) as (_conn, cur):
        ds = FmecaRepository(cur, args.project).load()
    out = args.out or Path(default_export_name())
    write_fmeca_workbook(ds, out)
    log_summary(f"exported rows={len(ds.rows)} file={out}")
    return EXIT_SUCCESS


COMMANDS = {
    "diff": _cmd_diff,
    "inspect": _cmd_inspect,
    "import": _cmd_import,
    "apply": _cmd_apply,
    "export": _cmd_export,
}


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None のときのみシステム引数を読む ([] はテストからの明示的な空引数)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    try:
        return COMMANDS[args.command](cfg, args)
    except WorkbookError as e:
        logger.error(f"workbook: {e}")
        return EXIT_FATAL
    except PersistenceError as e:
        logger.error(f"accept: {e}")
        return EXIT_PERSISTENCE_FAILURE
    except (RepositoryError, psycopg2.Error) as e:
        logger.error(f"database: {e}")
        return EXIT_FATAL
    except StagingError as e:
        logger.error(f"staging: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
