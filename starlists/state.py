import asyncio
import logging
import os

logger = logging.getLogger("starlists.api")


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r, fallback to %s", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        logger.warning("Out-of-range %s=%r, fallback to %s", name, raw, default)
        return default
    return value


API_SEMAPHORE_LIMIT = _env_int("API_SEMAPHORE_LIMIT", 5, minimum=1)
TASK_STALE_MINUTES = _env_int("TASK_STALE_MINUTES", 10, minimum=1)


# ---------------------------------------------------------------------------
# Classification run state
# ---------------------------------------------------------------------------

classification_lock = asyncio.Lock()
classification_stop = asyncio.Event()
classification_task: asyncio.Task | None = None
classification_state = {
    "running": False,
    "phase": "idle",
    "started_at": None,
    "finished_at": None,
    "total": 0,
    "processed": 0,
    "succeeded": 0,
    "failed": 0,
    "batches": 0,
    "last_error": None,
    "task_id": None,
}


async def _update_classification_state(**updates: object) -> None:
    async with classification_lock:
        classification_state.update(updates)


async def _get_classification_state() -> dict:
    async with classification_lock:
        return dict(classification_state)
