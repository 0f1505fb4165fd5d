"""SQLite 增量迁移：依次执行 ``migrations/sql`` 下尚未应用的脚本。

新库由 ``create_all`` 直接建出完整结构，这里的脚本只负责升级旧库，
重复加列等可忽略的错误会被跳过。
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "sql"


def run_migrations(engine: Engine, migrations_dir: Optional[Path] = None) -> list[str]:
    """返回本次新应用的版本号列表；非 SQLite 数据库直接跳过。"""

    if engine.url.get_backend_name() != "sqlite":
        return []

    directory = migrations_dir or MIGRATIONS_DIR
    _backup_sqlite_db(engine)

    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version TEXT PRIMARY KEY, "
                "applied_at DATETIME DEFAULT CURRENT_TIMESTAMP"
                ")"
            )
        )
        applied = {
            row[0]
            for row in conn.execute(text("SELECT version FROM schema_migrations")).fetchall()
        }

    newly_applied: list[str] = []
    for path in _iter_migration_files(directory):
        version = path.stem.split("_", 1)[0]
        if version in applied:
            continue
        statements = _split_sql(path.read_text(encoding="utf-8"))
        with engine.begin() as conn:
            for stmt in statements:
                try:
                    conn.execute(text(stmt))
                except OperationalError as exc:
                    if _is_ignorable_sqlite_error(exc):
                        logger.debug("Skipping statement in %s: %s", path.name, exc)
                        continue
                    raise
            conn.execute(
                text("INSERT INTO schema_migrations (version) VALUES (:version)"),
                {"version": version},
            )
        logger.info("Applied migration %s", path.name)
        newly_applied.append(version)
    return newly_applied


def _iter_migration_files(directory: Path) -> Iterable[Path]:
    if not directory.exists():
        return []
    return sorted(directory.glob("*.sql"))


def _split_sql(sql: str) -> list[str]:
    statements = []
    for chunk in sql.split(";"):
        lines = [line for line in chunk.splitlines() if not line.strip().startswith("--")]
        stmt = "\n".join(lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


def _is_ignorable_sqlite_error(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return "duplicate column name" in message or "already exists" in message


def _backup_sqlite_db(engine: Engine) -> None:
    db_path = engine.url.database
    if not db_path or db_path == ":memory:":
        return
    source = Path(db_path)
    if source.exists():
        backup = source.with_suffix(source.suffix + ".bak")
        shutil.copy2(source, backup)
