"""Versioned SQL migrations for the workspace database."""
from __future__ import annotations

import asyncio
from pathlib import Path

import aiosqlite

from agentspace.config import load_settings
from agentspace.db.connection import open_connection

MIGRATIONS_DIR = Path(__file__).resolve().parent / "sql"

_SCHEMA_MIGRATIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version TEXT PRIMARY KEY,
  applied_at TEXT NOT NULL
)
"""


async def _applied_versions(conn: aiosqlite.Connection) -> set[str]:
    cursor = await conn.execute("SELECT version FROM schema_migrations")
    return {str(row["version"]) for row in await cursor.fetchall()}


async def apply_migrations(db_path: Path | None = None) -> list[str]:
    """Apply pending ``sql/*.sql`` files in name order; returns the file names applied."""
    if db_path is None:
        db_path = load_settings().db_path
    pending_paths = sorted(MIGRATIONS_DIR.glob("*.sql"))

    conn = await open_connection(db_path)
    try:
        await conn.execute(_SCHEMA_MIGRATIONS_DDL)
        await conn.commit()
        done = await _applied_versions(conn)

        applied: list[str] = []
        for path in pending_paths:
            if path.name in done:
                continue
            await conn.executescript(path.read_text(encoding="utf-8"))
            await conn.execute(
                "INSERT INTO schema_migrations(version, applied_at) VALUES(?, strftime('%Y-%m-%dT%H:%M:%fZ','now'))",
                (path.name,),
            )
            await conn.commit()
            applied.append(path.name)
        return applied
    finally:
        await conn.close()


if __name__ == "__main__":
    print(asyncio.run(apply_migrations()))
