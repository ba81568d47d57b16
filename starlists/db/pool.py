import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import aiosqlite

from ..config import get_settings
from .helpers import _ensure_parent_dir, _sqlite_path

logger = logging.getLogger("starlists.db")

_pool: "SQLitePool | None" = None

DEFAULT_POOL_SIZE = 3
BUSY_TIMEOUT_MS = 5000


async def _configure_connection(conn: aiosqlite.Connection) -> None:
    try:
        cursor = await conn.execute("PRAGMA journal_mode=WAL")
        row = await cursor.fetchone()
        effective_mode = row[0] if row else "unknown"
        if str(effective_mode).upper() != "WAL":
            logger.warning("SQLite journal_mode: requested WAL, got %s", effective_mode)
        await conn.execute("PRAGMA foreign_keys=ON")
        await conn.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
    except aiosqlite.Error as exc:
        logger.warning("Failed to apply SQLite pragmas: %s", exc)


async def _open(db_path: str) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(db_path, timeout=30)
    conn.row_factory = aiosqlite.Row
    await _configure_connection(conn)
    return conn


class SQLitePool:
    def __init__(self, db_path: str, size: int) -> None:
        self._db_path = db_path
        self._size = max(1, size)
        self._pool: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=self._size)

    async def init(self) -> None:
        for _ in range(self._size):
            await self._pool.put(await _open(self._db_path))

    async def close(self) -> None:
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await self._pool.get()
        try:
            yield conn
        finally:
            await self._pool.put(conn)


def _resolve_db_path() -> str:
    db_path = _sqlite_path(get_settings().database_url)
    _ensure_parent_dir(db_path)
    return db_path


async def init_db_pool(pool_size: int = DEFAULT_POOL_SIZE) -> None:
    global _pool
    pool = SQLitePool(_resolve_db_path(), pool_size)
    await pool.init()
    _pool = pool


async def close_db_pool() -> None:
    global _pool
    if _pool:
        await _pool.close()
    _pool = None


@asynccontextmanager
async def get_connection() -> AsyncIterator[aiosqlite.Connection]:
    if _pool is None:
        conn = await _open(_resolve_db_path())
        try:
            yield conn
        finally:
            await conn.close()
        return
    async with _pool.connection() as conn:
        yield conn
