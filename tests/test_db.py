"""Tests for run tracking in SQLite."""

import pytest

from starlists.db import (
    close_db_pool,
    create_task,
    get_connection,
    get_task,
    init_db,
    init_db_pool,
    list_task_failures,
    record_task_failures,
    reset_stale_tasks,
    update_task,
)
from starlists.db.helpers import _sqlite_path
from starlists.db.pool import BUSY_TIMEOUT_MS
from starlists.models import AssignmentResult


class TestTasks:
    @pytest.mark.asyncio
    async def test_lifecycle(self) -> None:
        await init_db()
        await create_task("t-1", "classify", message="queued", payload={"only_new": True})
        await update_task("t-1", "running", started_at="2026-01-01T00:00:00+00:00")
        await update_task("t-1", "finished", result={"total": 3, "failed": 1})

        task = await get_task("t-1")

        assert task["status"] == "finished"
        assert task["payload"] == {"only_new": True}
        assert task["result"] == {"total": 3, "failed": 1}
        assert task["started_at"] == "2026-01-01T00:00:00+00:00"
        assert await get_task("missing") is None

    @pytest.mark.asyncio
    async def test_failures_recorded_in_order(self) -> None:
        await init_db()
        await create_task("t-2", "classify")
        failures = [
            AssignmentResult(id="a/one", success=False, error="classification failed"),
            AssignmentResult(id="a/two", success=False, error="No matching category"),
        ]

        assert await record_task_failures("t-2", failures) == 2
        assert await record_task_failures("t-2", []) == 0

        rows = await list_task_failures("t-2")
        assert [row["item_id"] for row in rows] == ["a/one", "a/two"]
        assert rows[1]["error"] == "No matching category"
        assert rows[0]["categories"] == []

    @pytest.mark.asyncio
    async def test_stale_tasks_reset(self) -> None:
        await init_db()
        await create_task("t-3", "classify", status="running")

        assert await reset_stale_tasks(max_age_minutes=10) == 0
        assert await reset_stale_tasks(max_age_minutes=-1) == 1
        task = await get_task("t-3")
        assert task["status"] == "failed"
        assert task["message"] == "stale task reset at startup"


class TestSqlitePath:
    def test_absolute_and_relative(self) -> None:
        assert _sqlite_path("sqlite:////data/app.db") == "/data/app.db"
        assert _sqlite_path("sqlite:///data/app.db") == "data/app.db"

    def test_other_scheme(self) -> None:
        with pytest.raises(ValueError):
            _sqlite_path("postgresql://localhost/db")


class TestPool:
    @pytest.mark.asyncio
    async def test_pooled_connections_are_configured(self) -> None:
        await init_db_pool(pool_size=2)
        try:
            async with get_connection() as conn:
                cursor = await conn.execute("PRAGMA journal_mode")
                journal = await cursor.fetchone()
                cursor = await conn.execute("PRAGMA foreign_keys")
                foreign_keys = await cursor.fetchone()
                cursor = await conn.execute("PRAGMA busy_timeout")
                busy_timeout = await cursor.fetchone()
        finally:
            await close_db_pool()

        assert str(journal[0]).lower() == "wal"
        assert foreign_keys[0] == 1
        assert busy_timeout[0] == BUSY_TIMEOUT_MS
