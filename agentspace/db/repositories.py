from __future__ import annotations

from typing import Any

import aiosqlite

from agentspace.services.workspace import Agent, Space, SubTask, Task

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"


class SqliteWorkspaceStore:
    """aiosqlite-backed workspace store for tasks, spaces, notes, agents and settings."""

    def __init__(self, conn: aiosqlite.Connection):
        self.conn = conn

    async def read_task_notes(self, task_id: int) -> str:
        cursor = await self.conn.execute("SELECT content FROM task_notes WHERE task_id=?", (task_id,))
        row = await cursor.fetchone()
        if row is None:
            return ""
        return str(row["content"] or "")

    async def write_task_notes(self, task_id: int, content: str) -> None:
        await self.conn.execute(
            f"""
            INSERT INTO task_notes(task_id, content, created_at, updated_at)
            VALUES(?, ?, {_NOW}, {_NOW})
            ON CONFLICT(task_id) DO UPDATE SET
              content=excluded.content,
              updated_at={_NOW}
            """,
            (task_id, content),
        )
        await self.conn.commit()

    async def task_notes_exist(self, task_id: int) -> bool:
        return bool(await self.read_task_notes(task_id))

    async def read_space_context(self, space_id: int) -> str:
        cursor = await self.conn.execute("SELECT context_markdown FROM spaces WHERE id=?", (space_id,))
        row = await cursor.fetchone()
        if row is None:
            raise LookupError(f"Space {space_id} not found")
        return str(row["context_markdown"] or "")

    async def write_space_context(self, space_id: int, content: str) -> None:
        cursor = await self.conn.execute(
            f"UPDATE spaces SET context_markdown=?, updated_at={_NOW} WHERE id=?",
            (content, space_id),
        )
        await self.conn.commit()
        if cursor.rowcount == 0:
            raise LookupError(f"Space {space_id} not found")

    async def list_spaces(self) -> list[Space]:
        cursor = await self.conn.execute("SELECT id, title, description FROM spaces ORDER BY id ASC")
        rows = await cursor.fetchall()
        return [Space(id=int(r["id"]), title=str(r["title"]), description=r["description"]) for r in rows]

    async def list_tasks_by_space(self, space_id: int) -> list[Task]:
        cursor = await self.conn.execute(
            "SELECT * FROM tasks WHERE space_id=? ORDER BY id ASC",
            (space_id,),
        )
        task_rows = await cursor.fetchall()
        if not task_rows:
            return []

        task_ids = [int(r["id"]) for r in task_rows]
        placeholders = ",".join("?" for _ in task_ids)
        cursor = await self.conn.execute(
            f"SELECT * FROM subtasks WHERE task_id IN ({placeholders}) ORDER BY id ASC",
            task_ids,
        )
        subtasks: dict[int, list[SubTask]] = {task_id: [] for task_id in task_ids}
        for row in await cursor.fetchall():
            subtasks[int(row["task_id"])].append(_subtask_from_row(row))

        return [_task_from_row(row, subtasks[int(row["id"])]) for row in task_rows]

    async def list_agents(self) -> list[Agent]:
        cursor = await self.conn.execute("SELECT * FROM agents ORDER BY name ASC")
        rows = await cursor.fetchall()
        return [
            Agent(
                id=int(r["id"]),
                name=str(r["name"]),
                model_name=str(r["model_name"]),
                agent_prompt=str(r["agent_prompt"] or ""),
                system_role=r["system_role"],
                web_search_enabled=bool(r["web_search_enabled"]),
            )
            for r in rows
        ]

    async def get_setting(self, key: str) -> str | None:
        cursor = await self.conn.execute("SELECT value FROM settings WHERE key=?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return str(row["value"])

    async def set_setting(self, key: str, value: str) -> None:
        await self.conn.execute(
            f"""
            INSERT INTO settings(key, value, updated_at) VALUES(?, ?, {_NOW})
            ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at={_NOW}
            """,
            (key, value),
        )
        await self.conn.commit()

    async def create_space(self, title: str, description: str | None = None) -> int:
        cursor = await self.conn.execute(
            "INSERT INTO spaces(title, description) VALUES(?, ?)",
            (title, description),
        )
        await self.conn.commit()
        return int(cursor.lastrowid)

    async def create_task(self, space_id: int, title: str, **fields: Any) -> int:
        cursor = await self.conn.execute(
            """
            INSERT INTO tasks(space_id, title, description, status, priority, due_date, scheduled_date)
            VALUES(?, ?, ?, ?, ?, ?, ?)
            """,
            (
                space_id,
                title,
                fields.get("description"),
                fields.get("status", "todo"),
                fields.get("priority", "medium"),
                fields.get("due_date"),
                fields.get("scheduled_date"),
            ),
        )
        await self.conn.commit()
        return int(cursor.lastrowid)

    async def create_subtask(
        self,
        task_id: int,
        title: str,
        *,
        description: str | None = None,
        completed: bool = False,
        agent_id: int | None = None,
    ) -> int:
        cursor = await self.conn.execute(
            "INSERT INTO subtasks(task_id, title, description, completed, agent_id) VALUES(?, ?, ?, ?, ?)",
            (task_id, title, description, int(completed), agent_id),
        )
        await self.conn.commit()
        return int(cursor.lastrowid)

    async def create_agent(
        self,
        name: str,
        model_name: str,
        agent_prompt: str = "",
        *,
        system_role: str | None = None,
        web_search_enabled: bool = False,
    ) -> int:
        cursor = await self.conn.execute(
            """
            INSERT INTO agents(name, model_name, agent_prompt, system_role, web_search_enabled)
            VALUES(?, ?, ?, ?, ?)
            """,
            (name, model_name, agent_prompt, system_role, int(web_search_enabled)),
        )
        await self.conn.commit()
        return int(cursor.lastrowid)


def _task_from_row(row: aiosqlite.Row, subtasks: list[SubTask]) -> Task:
    return Task(
        id=int(row["id"]),
        space_id=int(row["space_id"]),
        title=str(row["title"]),
        description=row["description"],
        status=str(row["status"]),
        priority=str(row["priority"]),
        due_date=row["due_date"],
        scheduled_date=row["scheduled_date"],
        created_at=str(row["created_at"]),
        updated_at=str(row["updated_at"]),
        subtasks=subtasks,
    )


def _subtask_from_row(row: aiosqlite.Row) -> SubTask:
    return SubTask(
        id=int(row["id"]),
        task_id=int(row["task_id"]),
        title=str(row["title"]),
        description=row["description"],
        completed=bool(row["completed"]),
        agent_id=row["agent_id"],
    )
