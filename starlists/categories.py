import logging
from typing import Any, Iterable, List, Sequence

from .errors import ConfigurationError
from .models import BackendList, Category

logger = logging.getLogger("starlists.api")


def normalize_categories(raw: Iterable[Any], name_max_length: int) -> List[Category]:
    categories: List[Category] = []
    seen: set[str] = set()
    for item in raw:
        if isinstance(item, Category):
            name, description = item.name, item.description
        elif isinstance(item, dict):
            name = str(item.get("name") or "").strip()
            description = str(item.get("description") or "").strip()
        else:
            continue
        name = name.strip()
        if name_max_length > 0 and len(name) > name_max_length:
            logger.warning("Category name %r exceeds %s chars, truncating", name, name_max_length)
            name = name[:name_max_length].rstrip()
        if not name or name in seen:
            continue
        seen.add(name)
        categories.append(Category(name=name, description=description))
    return categories


def categories_from_lists(lists: Sequence[BackendList]) -> List[Category]:
    return [Category(name=item.name, description=item.description or "") for item in lists if item.name]


def list_ids_by_name(lists: Sequence[BackendList]) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for item in lists:
        if item.name and item.name not in mapping:
            mapping[item.name] = item.id
    return mapping


def require_categories(categories: Sequence[Category]) -> List[Category]:
    if not categories:
        raise ConfigurationError("No categories available; create a plan or use existing lists")
    return list(categories)
