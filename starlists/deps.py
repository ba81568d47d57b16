import asyncio
import logging
import os
import secrets
from datetime import datetime, timezone

from fastapi import Header, HTTPException, Request

from .ai_client import AIClient
from .db import create_task, update_task
from .errors import ConfigurationError
from .github import GitHubClient, GitHubListsClient

logger = logging.getLogger("starlists.api")

_admin_token_warned = False


def require_admin(x_admin_token: str | None = Header(default=None, alias="X-Admin-Token")) -> None:
    global _admin_token_warned
    admin_token = os.getenv("ADMIN_TOKEN", "").strip()
    if not admin_token:
        if not _admin_token_warned:
            logger.warning(
                "ADMIN_TOKEN is not set. Admin endpoints are unprotected. "
                "Set ADMIN_TOKEN environment variable for production use."
            )
            _admin_token_warned = True
        return
    if not secrets.compare_digest(x_admin_token or "", admin_token):
        raise HTTPException(status_code=401, detail="Admin token required")


def get_github_client(request: Request) -> GitHubClient:
    return request.app.state.github_client


def get_lists_client(request: Request) -> GitHubListsClient:
    return request.app.state.lists_client


def get_ai_client(request: Request) -> AIClient:
    return request.app.state.ai_client


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _handle_task_exception(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task failed: %s", exc, exc_info=exc)


async def _register_task(
    task_id: str,
    task_type: str,
    message: str | None = None,
    payload: dict | None = None,
) -> None:
    await create_task(task_id, task_type, status="queued", message=message, payload=payload)


async def _set_task_status(task_id: str, status: str, **updates: object) -> None:
    await update_task(
        task_id,
        status,
        started_at=updates.get("started_at"),
        finished_at=updates.get("finished_at"),
        message=updates.get("message"),
        result=updates.get("result"),
    )


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.warning("Upstream request failed: %s", exc)
    return HTTPException(status_code=502, detail=f"Upstream request failed: {exc}")
