import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import yaml
from pydantic import ValidationError

from .config import get_settings
from .models import Category, StoredPlan

logger = logging.getLogger("starlists.api")


def _plan_path(path: Optional[str] = None) -> Path:
    return Path(path or get_settings().plan_path)


def plan_exists(path: Optional[str] = None) -> bool:
    return _plan_path(path).is_file()


def save_plan(categories: Sequence[Category], repo_count: int, path: Optional[str] = None) -> StoredPlan:
    plan = StoredPlan(
        created_at=datetime.now(timezone.utc).isoformat(),
        repo_count=repo_count,
        categories=list(categories),
    )
    target = _plan_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(plan.model_dump(), handle, allow_unicode=True, sort_keys=False)
    logger.info("Saved plan with %s categories to %s", len(plan.categories), target)
    return plan


def load_plan(path: Optional[str] = None) -> Optional[StoredPlan]:
    target = _plan_path(path)
    if not target.is_file():
        return None
    try:
        with target.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to read plan %s: %s", target, exc)
        return None
    if not isinstance(data, dict):
        logger.warning("Plan %s is not a mapping", target)
        return None
    try:
        return StoredPlan.model_validate(data)
    except ValidationError as exc:
        logger.warning("Plan %s is invalid: %s", target, exc)
        return None


def delete_plan(path: Optional[str] = None) -> bool:
    target = _plan_path(path)
    if not target.is_file():
        return False
    target.unlink()
    return True
