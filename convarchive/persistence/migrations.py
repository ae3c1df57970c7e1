"""Checksummed schema migrations for the SQLite archive stores."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


class MigrationError(RuntimeError):
    """An applied migration no longer matches the file on disk."""


def _checksum(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _apply_pending(db_path: str, migrations_dir: Path) -> list[str]:
    applied_now: list[str] = []
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS _migrations ("
            "  name TEXT PRIMARY KEY,"
            "  checksum TEXT NOT NULL,"
            "  applied_at TEXT NOT NULL"
            ")"
        )
        conn.commit()
        applied = dict(conn.execute("SELECT name, checksum FROM _migrations").fetchall())

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            checksum = _checksum(sql_file)
            recorded = applied.get(sql_file.name)
            if recorded is not None:
                if recorded != checksum:
                    raise MigrationError(
                        f"migration {sql_file.name} changed after being applied "
                        f"(applied={recorded}, current={checksum})"
                    )
                continue

            conn.executescript(sql_file.read_text(encoding="utf-8"))
            conn.execute(
                "INSERT INTO _migrations (name, checksum, applied_at) VALUES (?, ?, ?)",
                (sql_file.name, checksum, datetime.now(UTC).isoformat()),
            )
            conn.commit()
            applied_now.append(sql_file.name)
    finally:
        conn.close()
    return applied_now


async def run_migrations(db_path: str, migrations_dir: Path | None = None) -> list[str]:
    """Apply pending migrations in file-name order and return their names.

    Runs on a worker thread with plain ``sqlite3``: ``executescript`` is not
    exposed by every async driver in a transaction-safe way.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    applied = await asyncio.to_thread(_apply_pending, db_path, migrations_dir or MIGRATIONS_DIR)
    if applied:
        logger.info("Applied %d migration(s) to %s: %s", len(applied), db_path, ", ".join(applied))
    return applied


__all__ = ["MIGRATIONS_DIR", "MigrationError", "run_migrations"]
