from datetime import datetime, timezone
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from .config import get_settings
from .errors import AuthenticationError, ConfigurationError, GitHubAPIError
from .models import BackendList, RepoBase

logger = logging.getLogger("starlists.github")

USER_AGENT = "StarLists"

_LISTS_QUERY = """
query($cursor: String) {
  viewer {
    lists(first: 100, after: $cursor) {
      totalCount
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        name
        description
        isPrivate
        items(first: 100) {
          totalCount
          nodes {
            __typename
            ... on Repository { name owner { login } }
          }
        }
      }
    }
  }
}
"""

_CREATE_LIST_MUTATION = """
mutation($name: String!, $description: String, $isPrivate: Boolean!) {
  createUserList(input: {name: $name, description: $description, isPrivate: $isPrivate}) {
    list { id name description isPrivate }
  }
}
"""

_DELETE_LIST_MUTATION = """
mutation($listId: ID!) {
  deleteUserList(input: {listId: $listId}) { user { login } }
}
"""

_SET_MEMBERSHIP_MUTATION = """
mutation($itemId: ID!, $listIds: [ID!]!) {
  updateUserListsForItem(input: {itemId: $itemId, listIds: $listIds}) {
    lists { id name }
  }
}
"""

_REPOSITORY_ID_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id }
}
"""


def _next_link(link_header: Optional[str]) -> Optional[str]:
    if not link_header:
        return None
    parts = link_header.split(",")
    for part in parts:
        section = part.strip()
        if 'rel="next"' in section:
            url = section.split(";")[0].strip()
            return url.strip("<>")
    return None


def _normalize_timestamp(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return dt.astimezone(timezone.utc).isoformat()


def _normalize_repo(repo: Dict[str, Any], starred_at: Optional[str]) -> RepoBase:
    owner = repo.get("owner") or {}
    topics = repo.get("topics") or []
    if not isinstance(topics, list):
        topics = []
    return RepoBase(
        full_name=repo.get("full_name") or "",
        name=repo.get("name") or "",
        owner=owner.get("login") or "",
        html_url=repo.get("html_url") or "",
        description=repo.get("description"),
        language=repo.get("language"),
        stargazers_count=int(repo.get("stargazers_count") or 0),
        topics=topics,
        starred_at=_normalize_timestamp(starred_at),
    )


def split_full_name(full_name: str) -> tuple[str, str]:
    owner, _, name = str(full_name or "").partition("/")
    if not owner or not name:
        raise ValueError(f"Invalid repository name: {full_name!r}")
    return owner, name


def _default_headers(accept: str = "application/vnd.github.star+json") -> Dict[str, str]:
    settings = get_settings()
    if not settings.github_token:
        raise ConfigurationError("GITHUB_TOKEN is required")
    return {
        "Accept": accept,
        "User-Agent": USER_AGENT,
        "Authorization": f"Bearer {settings.github_token}",
    }


class _RateLimitWindow:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._reset_at: Optional[float] = None

    async def sleep_if_limited(self) -> None:
        async with self._lock:
            reset_at = self._reset_at
        if reset_at:
            now = time.time()
            if now < reset_at:
                wait = reset_at - now
                logger.warning("GitHub rate limit active, sleeping for %.1fs", wait)
                await asyncio.sleep(wait)

    async def set_reset(self, reset_header: Optional[str]) -> None:
        if not reset_header:
            return
        try:
            reset_at = float(int(reset_header))
        except (TypeError, ValueError):
            return
        async with self._lock:
            if not self._reset_at or reset_at > self._reset_at:
                self._reset_at = reset_at


async def _request_with_retry(
    client: httpx.AsyncClient,
    window: _RateLimitWindow,
    method: str,
    url: str,
    headers: Dict[str, str],
    params: Optional[Dict[str, Any]] = None,
    json_body: Optional[Dict[str, Any]] = None,
    timeout: int = 30,
    retries: int = 2,
) -> httpx.Response:
    for attempt in range(retries + 1):
        await window.sleep_if_limited()
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                timeout=timeout,
            )
        except httpx.RequestError as exc:
            if attempt >= retries:
                raise exc
            wait = 2 ** attempt
            logger.warning(
                "GitHub request error on attempt %s/%s: %s. Retrying in %ss",
                attempt + 1,
                retries + 1,
                exc,
                wait,
            )
            await asyncio.sleep(wait)
            continue

        rate_limited = (
            response.status_code == 403
            and response.headers.get("X-RateLimit-Remaining") == "0"
        )
        retryable = response.status_code in (429, 500, 502, 503, 504) or rate_limited

        if rate_limited:
            reset_header = response.headers.get("X-RateLimit-Reset")
            await window.set_reset(reset_header)
            if reset_header:
                wait = max(1.0, float(int(reset_header)) - time.time())
            else:
                wait = max(1.0, 2 ** attempt)
            if attempt < retries:
                logger.warning(
                    "GitHub rate limit hit (status %s). Sleeping for %.1fs before retry.",
                    response.status_code,
                    wait,
                )
                await asyncio.sleep(wait)
                continue
            return response

        if retryable and attempt < retries:
            wait = 2 ** attempt
            logger.warning(
                "GitHub request status %s on attempt %s/%s. Retrying in %ss",
                response.status_code,
                attempt + 1,
                retries + 1,
                wait,
            )
            await asyncio.sleep(wait)
            continue

        return response

    return response  # pragma: no cover


class GitHubClient:
    """REST side of GitHub: starred repositories and README enrichment."""

    def __init__(self, client: httpx.AsyncClient, semaphore: asyncio.Semaphore) -> None:
        self._client = client
        self._semaphore = semaphore
        self._window = _RateLimitWindow()

    async def fetch_starred_repos(self) -> List[RepoBase]:
        settings = get_settings()
        next_url: Optional[str] = f"{settings.github_api_base_url}/user/starred"
        params = {"per_page": 100}
        is_first = True
        results: List[RepoBase] = []

        while next_url:
            async with self._semaphore:
                response = await _request_with_retry(
                    self._client,
                    self._window,
                    "GET",
                    next_url,
                    headers=_default_headers(),
                    params=params if is_first else None,
                )
            if response.status_code == 401:
                raise AuthenticationError("GitHub authentication failed. Check GITHUB_TOKEN.")
            response.raise_for_status()

            for item in response.json():
                if isinstance(item, dict) and "repo" in item:
                    repo = item.get("repo") or {}
                    starred_at = item.get("starred_at")
                else:
                    repo = item
                    starred_at = None
                normalized = _normalize_repo(repo, starred_at)
                if normalized.full_name:
                    results.append(normalized)

            next_url = _next_link(response.headers.get("Link"))
            is_first = False

        return results

    async def fetch_readme(self, full_name: str, max_chars: Optional[int] = None) -> Optional[str]:
        settings = get_settings()
        limit = max_chars if max_chars is not None else settings.readme_max_length
        url = f"{settings.github_api_base_url}/repos/{full_name}/readme"
        try:
            async with self._semaphore:
                response = await _request_with_retry(
                    self._client,
                    self._window,
                    "GET",
                    url,
                    headers=_default_headers("application/vnd.github.raw"),
                )
            if response.status_code == 404:
                return None
            response.raise_for_status()
        except (httpx.HTTPError, ConfigurationError) as exc:
            logger.debug("README fetch failed for %s: %s", full_name, exc)
            return None
        text = response.text.strip()
        if not text:
            return None
        return text[:limit] if limit > 0 else text

    async def fetch_text(self, item_id: str) -> Optional[str]:
        return await self.fetch_readme(item_id)


class GitHubListsClient:
    """GraphQL side of GitHub: user lists and their membership."""

    def __init__(self, client: httpx.AsyncClient, semaphore: asyncio.Semaphore) -> None:
        self._client = client
        self._semaphore = semaphore
        self._window = _RateLimitWindow()

    async def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        settings = get_settings()
        url = f"{settings.github_api_base_url}/graphql"
        headers = _default_headers("application/json")
        async with self._semaphore:
            response = await _request_with_retry(
                self._client,
                self._window,
                "POST",
                url,
                headers=headers,
                json_body={"query": query, "variables": variables or {}},
            )
        if response.status_code == 401:
            raise AuthenticationError("GitHub authentication failed. Check GITHUB_TOKEN.")
        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GitHub API request failed ({response.status_code}): {response.text[:500]}"
            )
        payload = response.json()
        if payload.get("errors"):
            messages = [str(error.get("message") or error) for error in payload["errors"] if error]
            raise GitHubAPIError("; ".join(messages) or "GitHub GraphQL error")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise GitHubAPIError("GitHub API returned unexpected data structure")
        return data

    async def list_all(self) -> List[BackendList]:
        lists: List[BackendList] = []
        cursor: Optional[str] = None
        while True:
            data = await self.graphql(_LISTS_QUERY, {"cursor": cursor})
            container = ((data.get("viewer") or {}).get("lists")) or {}
            for node in container.get("nodes") or []:
                if not isinstance(node, dict) or not node.get("id"):
                    continue
                items = (node.get("items") or {}).get("nodes") or []
                member_ids = [
                    f"{(item.get('owner') or {}).get('login')}/{item.get('name')}"
                    for item in items
                    if isinstance(item, dict) and item.get("__typename") == "Repository"
                ]
                lists.append(
                    BackendList(
                        id=node["id"],
                        name=node.get("name") or "",
                        description=node.get("description"),
                        is_private=bool(node.get("isPrivate")),
                        member_ids=member_ids,
                    )
                )
            page_info = container.get("pageInfo") or {}
            if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
                break
            cursor = page_info["endCursor"]
        return lists

    async def create_list(self, name: str, description: Optional[str], is_private: bool) -> BackendList:
        data = await self.graphql(
            _CREATE_LIST_MUTATION,
            {"name": name, "description": description or None, "isPrivate": is_private},
        )
        node = ((data.get("createUserList") or {}).get("list")) or {}
        if not node.get("id"):
            raise GitHubAPIError(f"List creation returned no id for {name!r}")
        return BackendList(
            id=node["id"],
            name=node.get("name") or name,
            description=node.get("description"),
            is_private=bool(node.get("isPrivate")),
        )

    async def delete_list(self, list_id: str) -> None:
        if not list_id:
            raise ValueError("Missing list ID parameter")
        await self.graphql(_DELETE_LIST_MUTATION, {"listId": list_id})

    async def delete_all_lists(self) -> tuple[int, int]:
        deleted = 0
        failed = 0
        for backend_list in await self.list_all():
            try:
                await self.delete_list(backend_list.id)
                deleted += 1
            except AuthenticationError:
                raise
            except (GitHubAPIError, httpx.HTTPError) as exc:
                logger.warning("Failed to delete list %r: %s", backend_list.name, exc)
                failed += 1
        return deleted, failed

    async def set_membership(self, item_backend_id: str, list_ids: List[str]) -> List[str]:
        if not item_backend_id:
            raise ValueError("Missing repository ID parameter")
        data = await self.graphql(
            _SET_MEMBERSHIP_MUTATION,
            {"itemId": item_backend_id, "listIds": list(list_ids)},
        )
        lists = ((data.get("updateUserListsForItem") or {}).get("lists")) or []
        return [str(item.get("id")) for item in lists if isinstance(item, dict)]

    async def resolve_backend_id(self, item_id: str) -> str:
        owner, name = split_full_name(item_id)
        data = await self.graphql(_REPOSITORY_ID_QUERY, {"owner": owner, "name": name})
        node_id = (data.get("repository") or {}).get("id")
        if not node_id:
            raise GitHubAPIError(f"Repository not found or ID not available: {item_id}")
        return str(node_id)
