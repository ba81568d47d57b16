import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from .errors import AuthenticationError, GitHubAPIError
from .github import GitHubListsClient
from .models import BackendList, Category, RepoBase

logger = logging.getLogger("starlists.github")

Sleep = Callable[[float], Awaitable[None]]


def listed_item_ids(lists: Sequence[BackendList]) -> List[str]:
    seen: Dict[str, None] = {}
    for backend_list in lists:
        for member_id in backend_list.member_ids:
            seen.setdefault(member_id, None)
    return list(seen)


def filter_new_repos(repos: Sequence[RepoBase], lists: Sequence[BackendList]) -> List[RepoBase]:
    listed = set(listed_item_ids(lists))
    fresh = [repo for repo in repos if repo.full_name not in listed]
    logger.info("%s already listed, %s new repositories", len(repos) - len(fresh), len(fresh))
    return fresh


async def create_lists_from_plan(
    lists_client: GitHubListsClient,
    categories: Sequence[Category],
    is_private: bool,
    delay: float = 0.0,
    sleep: Optional[Sleep] = None,
) -> Dict[str, object]:
    sleep = sleep or asyncio.sleep
    existing = {item.name for item in await lists_client.list_all()}
    created: List[BackendList] = []
    skipped: List[str] = []
    failed: List[str] = []

    pending = [category for category in categories if category.name not in existing]
    skipped.extend(category.name for category in categories if category.name in existing)
    for index, category in enumerate(pending):
        try:
            created.append(
                await lists_client.create_list(category.name, category.description, is_private)
            )
            logger.info("Created list %r", category.name)
        except AuthenticationError:
            raise
        except (GitHubAPIError, httpx.HTTPError) as exc:
            logger.warning("Failed to create list %r: %s", category.name, exc)
            failed.append(category.name)
        if delay > 0 and index < len(pending) - 1:
            await sleep(delay)

    return {
        "created": [item.name for item in created],
        "skipped": skipped,
        "failed": failed,
    }


async def reset_memberships(
    lists_client: GitHubListsClient,
    delay: float = 0.0,
    sleep: Optional[Sleep] = None,
) -> Dict[str, int]:
    """Remove every listed repository from all lists.

    The lists themselves are kept. Items are processed one at a time with
    ``delay`` seconds between successful removals.
    """
    sleep = sleep or asyncio.sleep
    item_ids = listed_item_ids(await lists_client.list_all())
    removed = 0
    failed = 0
    for item_id in item_ids:
        try:
            backend_id = await lists_client.resolve_backend_id(item_id)
            await lists_client.set_membership(backend_id, [])
            removed += 1
        except AuthenticationError:
            raise
        except (GitHubAPIError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to remove %s from lists: %s", item_id, exc)
            failed += 1
            continue
        if delay > 0:
            await sleep(delay)
    return {"total": len(item_ids), "removed": removed, "failed": failed}
