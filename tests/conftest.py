"""Pytest configuration and fixtures.

Provides fixtures for:
- Environment isolation for ``get_settings()``
- A sleep recorder that replaces ``asyncio.sleep`` in delay-sensitive code
- A small closed category set with matching backend list ids
"""

from typing import Dict, List

import pytest

from starlists.models import Category

from .fakes import SleepRecorder

_ENV_KEYS = (
    "GITHUB_TOKEN",
    "GITHUB_API_BASE_URL",
    "AI_PROVIDER",
    "AI_API_KEY",
    "AI_MODEL",
    "AI_BASE_URL",
    "AI_HEADERS_JSON",
    "DEFAULT_CATEGORY",
    "PLAN_PATH",
    "DATABASE_URL",
    "ADMIN_TOKEN",
    "LIST_NAME_MAX_LENGTH",
    "CLASSIFY_BATCH_SIZE",
    "MAX_RETRIES",
)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Strip settings that a developer .env could leak into tests."""
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("PLAN_PATH", str(tmp_path / "plan.yaml"))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'app.db'}")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def categories() -> List[Category]:
    return [
        Category(name="Web: Frameworks", description="HTTP servers and web frameworks"),
        Category(name="Data: Pipelines", description="ETL and stream processing"),
        Category(name="Dev: Tooling", description="Linters, formatters and CLIs"),
    ]


@pytest.fixture
def list_ids(categories: List[Category]) -> Dict[str, str]:
    return {category.name: f"UL_{index}" for index, category in enumerate(categories)}
