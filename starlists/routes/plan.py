import logging

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from ..config import get_settings
from ..deps import _http_error, get_ai_client, get_github_client, get_lists_client, require_admin
from ..errors import ConfigurationError, GitHubAPIError
from ..lists import filter_new_repos
from ..plan_store import delete_plan, load_plan, save_plan
from ..rate_limit import limiter, RATE_LIMIT_HEAVY
from ..schemas import PlanRequest, PlanResponse

logger = logging.getLogger("starlists.api")

router = APIRouter()


@router.post("/plan", response_model=PlanResponse, dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_HEAVY)
async def create_plan(request: Request, payload: PlanRequest) -> PlanResponse:
    settings = get_settings()
    try:
        repos = await get_github_client(request).fetch_starred_repos()
        if payload.only_new:
            repos = filter_new_repos(repos, await get_lists_client(request).list_all())
        if not repos:
            raise HTTPException(status_code=400, detail="No starred repositories to plan for")
        categories = await get_ai_client(request).plan_categories(
            repos, payload.max_categories or settings.max_categories
        )
    except (ConfigurationError, GitHubAPIError, httpx.HTTPError, ValueError) as exc:
        raise _http_error(exc) from exc
    if not categories:
        raise HTTPException(status_code=502, detail="AI returned no categories")
    plan = save_plan(categories, len(repos))
    return PlanResponse(**plan.model_dump())


@router.get("/plan", response_model=PlanResponse)
async def get_plan() -> PlanResponse:
    plan = load_plan()
    if plan is None:
        raise HTTPException(status_code=404, detail="No saved plan")
    return PlanResponse(**plan.model_dump())


@router.delete("/plan", dependencies=[Depends(require_admin)])
async def remove_plan() -> dict:
    return {"deleted": delete_plan()}
