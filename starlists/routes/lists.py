import httpx
from fastapi import APIRouter, Depends, HTTPException, Request

from ..config import get_settings
from ..deps import _http_error, get_lists_client, require_admin
from ..errors import ConfigurationError, GitHubAPIError
from ..lists import create_lists_from_plan
from ..plan_store import load_plan
from ..rate_limit import limiter, RATE_LIMIT_ADMIN, RATE_LIMIT_HEAVY
from ..schemas import CreateListsResponse, DeleteListsResponse, ListOut, ListsResponse
from ..state import _get_classification_state

router = APIRouter()


async def _ensure_idle() -> None:
    state = await _get_classification_state()
    if state.get("running"):
        raise HTTPException(status_code=409, detail="Classification already running")


@router.get("/lists", response_model=ListsResponse, dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_ADMIN)
async def get_lists(request: Request) -> ListsResponse:
    try:
        lists = await get_lists_client(request).list_all()
    except (ConfigurationError, GitHubAPIError, httpx.HTTPError) as exc:
        raise _http_error(exc) from exc
    items = [
        ListOut(
            id=item.id,
            name=item.name,
            description=item.description,
            is_private=item.is_private,
            item_count=len(item.member_ids),
        )
        for item in lists
    ]
    return ListsResponse(total=len(items), items=items)


@router.post("/lists/from-plan", response_model=CreateListsResponse, dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_HEAVY)
async def lists_from_plan(request: Request) -> CreateListsResponse:
    plan = load_plan()
    if plan is None:
        raise HTTPException(status_code=404, detail="No saved plan")
    await _ensure_idle()
    settings = get_settings()
    try:
        outcome = await create_lists_from_plan(
            get_lists_client(request),
            plan.categories,
            is_private=settings.list_is_private,
            delay=settings.list_create_delay_ms / 1000,
        )
    except (ConfigurationError, GitHubAPIError, httpx.HTTPError) as exc:
        raise _http_error(exc) from exc
    return CreateListsResponse(**outcome)


@router.delete("/lists", response_model=DeleteListsResponse, dependencies=[Depends(require_admin)])
@limiter.limit(RATE_LIMIT_HEAVY)
async def delete_lists(request: Request) -> DeleteListsResponse:
    await _ensure_idle()
    try:
        deleted, failed = await get_lists_client(request).delete_all_lists()
    except (ConfigurationError, GitHubAPIError, httpx.HTTPError) as exc:
        raise _http_error(exc) from exc
    return DeleteListsResponse(deleted=deleted, failed=failed)
