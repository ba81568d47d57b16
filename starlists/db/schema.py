import logging

from .helpers import _retry_on_lock
from .pool import get_connection

logger = logging.getLogger("starlists.db")


@_retry_on_lock()
async def init_db() -> None:
    async with get_connection() as conn:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                task_id TEXT PRIMARY KEY,
                task_type TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT,
                message TEXT,
                result TEXT,
                payload TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS task_failures (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                task_id TEXT NOT NULL REFERENCES tasks(task_id) ON DELETE CASCADE,
                item_id TEXT NOT NULL,
                error TEXT,
                categories TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_status_updated_at ON tasks(status, updated_at)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_task_failures_task_id ON task_failures(task_id)"
        )
        await conn.commit()
