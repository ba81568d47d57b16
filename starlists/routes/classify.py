import asyncio
import logging
import uuid
from typing import Awaitable, Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .. import state as _state
from ..ai_client import resolve_provider
from ..categories import categories_from_lists, list_ids_by_name, require_categories
from ..classification import BatchOrchestrator, PipelineConfig, RunPhase, RunReport
from ..config import get_settings
from ..db import record_task_failures
from ..deps import (
    _handle_task_exception,
    _now_iso,
    _register_task,
    _set_task_status,
    require_admin,
)
from ..errors import ConfigurationError
from ..lists import filter_new_repos, reset_memberships
from ..models import BackendList, Category, ClassificationTarget
from ..plan_store import load_plan
from ..rate_limit import limiter, RATE_LIMIT_HEAVY
from ..schemas import ClassifyRequest, ClassifyStatusResponse, TaskQueuedResponse
from ..state import (
    _get_classification_state,
    _update_classification_state,
    classification_lock,
    classification_state,
    classification_stop,
)

logger = logging.getLogger("starlists.api")

router = APIRouter()


# ---------------------------------------------------------------------------
# Background run helpers
# ---------------------------------------------------------------------------

def _resolve_categories(payload: ClassifyRequest, lists: List[BackendList]) -> List[Category]:
    if payload.use_existing:
        return require_categories(categories_from_lists(lists))
    plan = load_plan()
    if plan is None:
        raise ConfigurationError("No saved plan; create one with POST /plan or set use_existing")
    return require_categories(plan.categories)


async def _start_background(task_id: str, runner: Callable[[], Awaitable[None]]) -> bool:
    async with classification_lock:
        if classification_state["running"]:
            return False
        classification_stop.clear()
        classification_state.update(
            running=True,
            phase=RunPhase.IDLE.value,
            started_at=_now_iso(),
            finished_at=None,
            total=0,
            processed=0,
            succeeded=0,
            failed=0,
            batches=0,
            last_error=None,
            task_id=task_id,
        )
        task = asyncio.create_task(runner())
        task.add_done_callback(_handle_task_exception)
        _state.classification_task = task
    return True


async def _publish_report(phase: RunPhase, report: RunReport) -> None:
    await _update_classification_state(
        phase=phase.value,
        processed=report.total,
        succeeded=report.succeeded,
        failed=report.failed,
        batches=report.batches,
    )


async def _finish_run(task_id: str, result: dict, message: Optional[str] = None) -> None:
    await _update_classification_state(
        running=False,
        phase=RunPhase.DONE.value,
        finished_at=_now_iso(),
        task_id=None,
    )
    await _set_task_status(task_id, "finished", finished_at=_now_iso(), result=result, message=message)


async def _fail_run(task_id: str, exc: Exception, result: Optional[dict] = None) -> None:
    logger.error("Task %s failed: %s", task_id, exc)
    await _update_classification_state(
        running=False,
        finished_at=_now_iso(),
        last_error=str(exc),
        task_id=None,
    )
    await _set_task_status(task_id, "failed", finished_at=_now_iso(), message=str(exc), result=result)


def _summary(report: RunReport) -> dict:
    summary = report.as_dict()
    summary.pop("failures", None)
    return summary


async def _background_classify(app: FastAPI, payload: ClassifyRequest, task_id: str) -> None:
    orchestrator: Optional[BatchOrchestrator] = None
    try:
        await _set_task_status(task_id, "running", started_at=_now_iso())
        settings = get_settings()
        github_client = app.state.github_client
        lists_client = app.state.lists_client

        await _update_classification_state(phase=RunPhase.FETCHING_ENRICHMENT.value)
        repos = await github_client.fetch_starred_repos()
        lists = await lists_client.list_all()
        categories = _resolve_categories(payload, lists)
        if payload.only_new:
            repos = filter_new_repos(repos, lists)
        if payload.limit:
            repos = repos[: payload.limit]
        targets = [ClassificationTarget.from_repo(repo) for repo in repos]
        await _update_classification_state(total=len(targets))
        logger.info("Classifying %s repositories into %s categories", len(targets), len(categories))

        orchestrator = BatchOrchestrator(
            app.state.ai_client,
            github_client,
            lists_client,
            PipelineConfig.from_settings(settings),
            progress=_publish_report,
            stop_event=classification_stop,
        )
        try:
            report = await orchestrator.run(targets, categories, list_ids_by_name(lists))
        finally:
            await record_task_failures(task_id, orchestrator.report.failures)

        message = "Stopped by user" if classification_stop.is_set() else None
        await _finish_run(task_id, _summary(report), message)
    except Exception as exc:
        result = _summary(orchestrator.report) if orchestrator is not None else None
        await _fail_run(task_id, exc, result)


async def _background_reset(app: FastAPI, task_id: str) -> None:
    try:
        await _set_task_status(task_id, "running", started_at=_now_iso())
        await _update_classification_state(phase=RunPhase.APPLYING.value)
        settings = get_settings()
        result = await reset_memberships(
            app.state.lists_client,
            delay=settings.github_request_delay_ms / 1000,
        )
        await _update_classification_state(
            total=result["total"],
            processed=result["removed"] + result["failed"],
            succeeded=result["removed"],
            failed=result["failed"],
        )
        await _finish_run(task_id, result)
    except Exception as exc:
        await _fail_run(task_id, exc)


def _queued(task_id: str, message: str) -> JSONResponse:
    response = TaskQueuedResponse(task_id=task_id, status="queued", message=message)
    return JSONResponse(status_code=202, content=response.model_dump())


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------

@router.post(
    "/classify",
    response_model=TaskQueuedResponse,
    status_code=202,
    dependencies=[Depends(require_admin)],
)
@limiter.limit(RATE_LIMIT_HEAVY)
async def classify(request: Request, payload: ClassifyRequest) -> JSONResponse:
    try:
        PipelineConfig.from_settings(get_settings()).validate()
        resolve_provider()
        if not payload.use_existing and load_plan() is None:
            raise ConfigurationError("No saved plan; create one with POST /plan or set use_existing")
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    task_id = str(uuid.uuid4())
    await _register_task(task_id, "classify", "Classification queued", payload=payload.model_dump())
    app = request.app
    started = await _start_background(task_id, lambda: _background_classify(app, payload, task_id))
    if not started:
        await _set_task_status(
            task_id, "failed", finished_at=_now_iso(), message="Classification already running"
        )
        raise HTTPException(status_code=409, detail="Classification already running")
    return _queued(task_id, "Classification queued")


@router.get("/classify/status", response_model=ClassifyStatusResponse)
async def classify_status() -> ClassifyStatusResponse:
    state = await _get_classification_state()
    if not state.get("running"):
        state["task_id"] = None
    return ClassifyStatusResponse(**state)


@router.post("/classify/stop", dependencies=[Depends(require_admin)])
async def classify_stop() -> dict:
    state = await _get_classification_state()
    if not state.get("running"):
        return {"stopped": False}
    classification_stop.set()
    await _update_classification_state(last_error="Stopped by user")
    return {"stopped": True}


@router.post(
    "/classify/reset",
    response_model=TaskQueuedResponse,
    status_code=202,
    dependencies=[Depends(require_admin)],
)
@limiter.limit(RATE_LIMIT_HEAVY)
async def classify_reset(request: Request) -> JSONResponse:
    task_id = str(uuid.uuid4())
    await _register_task(task_id, "reset", "Reset queued")
    app = request.app
    started = await _start_background(task_id, lambda: _background_reset(app, task_id))
    if not started:
        await _set_task_status(
            task_id, "failed", finished_at=_now_iso(), message="Classification already running"
        )
        raise HTTPException(status_code=409, detail="Classification already running")
    return _queued(task_id, "Reset queued")
