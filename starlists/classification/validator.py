import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import ConfigurationError
from ..models import Category, ClassificationOutcome

logger = logging.getLogger("starlists.pipeline")


def resolve_default_category(categories: Sequence[Category], preferred: Optional[str] = None) -> str:
    if not categories:
        raise ConfigurationError("Category set is empty; at least one category is required")
    names = [category.name for category in categories]
    if preferred:
        if preferred not in names:
            raise ConfigurationError(f"DEFAULT_CATEGORY {preferred!r} is not in the category set")
        return preferred
    return names[0]


def validate_categories(
    raw: Iterable[str],
    allowed: set,
    max_per_item: int,
) -> tuple[List[str], List[str]]:
    """Return (kept, dropped) for one item, keeping the first ``max_per_item`` known names."""
    kept: List[str] = []
    dropped: List[str] = []
    for name in raw:
        if name not in allowed:
            dropped.append(name)
            continue
        if name in kept:
            continue
        kept.append(name)
    return kept[:max_per_item], dropped


def validate_outcomes(
    raw_map: Dict[str, List[str]],
    categories: Sequence[Category],
    max_per_item: int,
    default_category: Optional[str] = None,
    fallback_ids: Iterable[str] = (),
) -> Dict[str, ClassificationOutcome]:
    if max_per_item < 1:
        raise ConfigurationError("max categories per item must be at least 1")
    default = default_category or resolve_default_category(categories)
    allowed = {category.name for category in categories}
    if default not in allowed:
        raise ConfigurationError(f"Default category {default!r} is not in the category set")
    recovered = set(fallback_ids)

    outcomes: Dict[str, ClassificationOutcome] = {}
    for item_id, raw in raw_map.items():
        kept, dropped = validate_categories(raw, allowed, max_per_item)
        if dropped:
            logger.info("Dropped unknown categories for %s: %s", item_id, dropped)
        if kept:
            source = "recovered" if item_id in recovered else "ai"
            outcomes[item_id] = ClassificationOutcome(id=item_id, categories=kept, source=source)
        else:
            outcomes[item_id] = ClassificationOutcome(
                id=item_id,
                categories=[default],
                source="default",
                error="No valid category returned; using default",
            )
    return outcomes
