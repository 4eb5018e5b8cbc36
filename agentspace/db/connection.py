from __future__ import annotations

from pathlib import Path

import aiosqlite

BUSY_TIMEOUT_MS = 5000


async def open_connection(db_path: Path) -> aiosqlite.Connection:
    """Open the workspace database with WAL, enforced foreign keys and name-addressable rows."""
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(db_path))
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA journal_mode=WAL;")
    await conn.execute("PRAGMA foreign_keys=ON;")
    await conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS};")
    await conn.commit()
    return conn
