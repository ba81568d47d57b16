"""Tests for the GitHub REST and GraphQL clients using httpx.MockTransport."""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from starlists.errors import AuthenticationError, ConfigurationError, GitHubAPIError
from starlists.github import GitHubClient, GitHubListsClient, split_full_name

API = "https://api.github.test"


@pytest.fixture(autouse=True)
def github_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setenv("GITHUB_API_BASE_URL", API)


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _starred(full_name: str) -> dict:
    owner, name = full_name.split("/")
    return {
        "starred_at": "2026-01-02T03:04:05Z",
        "repo": {
            "full_name": full_name,
            "name": name,
            "owner": {"login": owner},
            "html_url": f"https://github.com/{full_name}",
            "description": f"{name} description",
            "language": "Python",
            "stargazers_count": 42,
            "topics": ["cli"],
        },
    }


def _graphql_body(request: httpx.Request) -> dict:
    return json.loads(request.content)


# ---------------------------------------------------------------------------
# Test: REST client
# ---------------------------------------------------------------------------


class TestGitHubClient:
    @pytest.mark.asyncio
    async def test_fetch_starred_follows_link_header(self) -> None:
        seen: List[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            assert request.headers["Authorization"] == "Bearer ghp_test"
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[_starred("b/two")])
            return httpx.Response(
                200,
                json=[_starred("a/one")],
                headers={"Link": f'<{API}/user/starred?per_page=100&page=2>; rel="next"'},
            )

        async with _client(handler) as http:
            repos = await GitHubClient(http, asyncio.Semaphore(2)).fetch_starred_repos()

        assert [repo.full_name for repo in repos] == ["a/one", "b/two"]
        assert repos[0].owner == "a"
        assert repos[0].stargazers_count == 42
        assert repos[0].starred_at == "2026-01-02T03:04:05+00:00"
        assert len(seen) == 2

    @pytest.mark.asyncio
    async def test_unauthorized_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Bad credentials"})

        async with _client(handler) as http:
            with pytest.raises(AuthenticationError):
                await GitHubClient(http, asyncio.Semaphore(1)).fetch_starred_repos()

    @pytest.mark.asyncio
    async def test_missing_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN")

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with _client(handler) as http:
            with pytest.raises(ConfigurationError):
                await GitHubClient(http, asyncio.Semaphore(1)).fetch_starred_repos()

    @pytest.mark.asyncio
    async def test_readme_truncated(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/a/one/readme"
            assert request.headers["Accept"] == "application/vnd.github.raw"
            return httpx.Response(200, text="# Title\n" + "x" * 100)

        async with _client(handler) as http:
            text = await GitHubClient(http, asyncio.Semaphore(1)).fetch_readme("a/one", max_chars=10)

        assert text == "# Title\nxx"

    @pytest.mark.asyncio
    async def test_readme_missing_or_empty_is_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if "missing" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(200, text="   ")

        async with _client(handler) as http:
            client = GitHubClient(http, asyncio.Semaphore(1))
            assert await client.fetch_text("a/missing") is None
            assert await client.fetch_text("a/blank") is None

    @pytest.mark.asyncio
    async def test_readme_never_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GITHUB_TOKEN")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="unused")

        async with _client(handler) as http:
            assert await GitHubClient(http, asyncio.Semaphore(1)).fetch_readme("a/one") is None


# ---------------------------------------------------------------------------
# Test: GraphQL lists client
# ---------------------------------------------------------------------------


class TestGitHubListsClient:
    @pytest.mark.asyncio
    async def test_list_all_paginates_and_collects_members(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _graphql_body(request)
            cursor = body["variables"].get("cursor")
            if cursor is None:
                nodes = [
                    {
                        "id": "UL_1",
                        "name": "Web: Frameworks",
                        "description": "web",
                        "isPrivate": False,
                        "items": {
                            "nodes": [
                                {"__typename": "Repository", "name": "one", "owner": {"login": "a"}},
                                {"__typename": "Gist"},
                            ]
                        },
                    }
                ]
                page_info = {"hasNextPage": True, "endCursor": "c1"}
            else:
                nodes = [{"id": "UL_2", "name": "Dev: Tooling", "isPrivate": True, "items": {"nodes": []}}]
                page_info = {"hasNextPage": False, "endCursor": None}
            return httpx.Response(
                200,
                json={"data": {"viewer": {"lists": {"nodes": nodes, "pageInfo": page_info}}}},
            )

        async with _client(handler) as http:
            lists = await GitHubListsClient(http, asyncio.Semaphore(1)).list_all()

        assert [item.id for item in lists] == ["UL_1", "UL_2"]
        assert lists[0].member_ids == ["a/one"]
        assert lists[1].is_private is True

    @pytest.mark.asyncio
    async def test_create_list_sends_variables(self) -> None:
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured.update(_graphql_body(request))
            return httpx.Response(
                200,
                json={"data": {"createUserList": {"list": {"id": "UL_9", "name": 'Say "hi"', "isPrivate": True}}}},
            )

        async with _client(handler) as http:
            created = await GitHubListsClient(http, asyncio.Semaphore(1)).create_list(
                'Say "hi"', "quotes\nand newlines", True
            )

        assert created.id == "UL_9"
        assert captured["variables"] == {
            "name": 'Say "hi"',
            "description": "quotes\nand newlines",
            "isPrivate": True,
        }
        assert 'Say "hi"' not in captured["query"]

    @pytest.mark.asyncio
    async def test_graphql_errors_raise(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"errors": [{"message": "Could not resolve to a node"}]})

        async with _client(handler) as http:
            with pytest.raises(GitHubAPIError, match="Could not resolve"):
                await GitHubListsClient(http, asyncio.Semaphore(1)).delete_list("UL_1")

    @pytest.mark.asyncio
    async def test_graphql_unauthorized(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"message": "Bad credentials"})

        async with _client(handler) as http:
            with pytest.raises(AuthenticationError):
                await GitHubListsClient(http, asyncio.Semaphore(1)).resolve_backend_id("a/one")

    @pytest.mark.asyncio
    async def test_resolve_and_set_membership(self) -> None:
        bodies: List[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            body = _graphql_body(request)
            bodies.append(body)
            if "repository" in body["query"]:
                return httpx.Response(200, json={"data": {"repository": {"id": "R_abc"}}})
            return httpx.Response(
                200,
                json={"data": {"updateUserListsForItem": {"lists": [{"id": "UL_1", "name": "x"}]}}},
            )

        async with _client(handler) as http:
            client = GitHubListsClient(http, asyncio.Semaphore(1))
            node_id = await client.resolve_backend_id("a/one")
            applied = await client.set_membership(node_id, ["UL_1"])

        assert node_id == "R_abc"
        assert applied == ["UL_1"]
        assert bodies[0]["variables"] == {"owner": "a", "name": "one"}
        assert bodies[1]["variables"] == {"itemId": "R_abc", "listIds": ["UL_1"]}

    @pytest.mark.asyncio
    async def test_missing_repository(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": {"repository": None}})

        async with _client(handler) as http:
            with pytest.raises(GitHubAPIError):
                await GitHubListsClient(http, asyncio.Semaphore(1)).resolve_backend_id("a/gone")

    @pytest.mark.asyncio
    async def test_delete_all_lists_counts_failures(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _graphql_body(request)
            if "viewer" in body["query"]:
                nodes = [
                    {"id": "UL_1", "name": "one", "items": {"nodes": []}},
                    {"id": "UL_2", "name": "two", "items": {"nodes": []}},
                ]
                return httpx.Response(
                    200,
                    json={"data": {"viewer": {"lists": {"nodes": nodes, "pageInfo": {"hasNextPage": False}}}}},
                )
            if body["variables"]["listId"] == "UL_2":
                return httpx.Response(200, json={"errors": [{"message": "nope"}]})
            return httpx.Response(200, json={"data": {"deleteUserList": {"user": {"login": "a"}}}})

        async with _client(handler) as http:
            deleted, failed = await GitHubListsClient(http, asyncio.Semaphore(1)).delete_all_lists()

        assert (deleted, failed) == (1, 1)


class TestSplitFullName:
    def test_valid(self) -> None:
        assert split_full_name("owner/name") == ("owner", "name")

    @pytest.mark.parametrize("value", ["", "owner", "/name", "owner/"])
    def test_invalid(self, value: str) -> None:
        with pytest.raises(ValueError):
            split_full_name(value)
