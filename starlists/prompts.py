from typing import List, Sequence

from .models import Category, ClassificationTarget, RepoBase


def format_categories_for_prompt(categories: Sequence[Category]) -> str:
    return "\n".join(f"- {category.name}: {category.description}" for category in categories)


def _snippet(text: str | None, max_chars: int) -> str:
    if not text:
        return ""
    return text[:max_chars].replace("\n", " ").strip()


def build_batch_classifier_prompt(
    targets: Sequence[ClassificationTarget],
    categories: Sequence[Category],
    min_per_item: int,
    max_per_item: int,
    readme_max_length: int,
) -> str:
    blocks: List[str] = []
    for index, target in enumerate(targets):
        readme = _snippet(target.enrichment_text, readme_max_length)
        blocks.append(
            f"{index + 1}. {target.id}\n"
            f"   Description: {target.description or 'none'}\n"
            f"   Language: {target.language or 'none'} | Stars: {target.popularity}\n"
            f"   README: {readme or 'none'}"
        )
    repo_list = "\n\n".join(blocks)
    return (
        f"Analyze the {len(targets)} GitHub repositories below and pick the best categories for each.\n\n"
        f"## Available categories ({len(categories)}):\n"
        f"{format_categories_for_prompt(categories)}\n\n"
        "## Repositories:\n"
        f"{repo_list}\n\n"
        "## Rules:\n"
        f"- Choose at least {min_per_item} and at most {max_per_item} categories per repository.\n"
        f"- Prefer {max_per_item} categories when several perspectives apply.\n"
        "- Use category names exactly as listed above.\n"
        "- Return ONLY valid JSON with this schema:\n"
        '{"results":[{"id":"owner/name","categories":["..."]}]}\n\n'
        f"Classify all {len(targets)} repositories without skipping any."
    )


def build_category_planner_prompt(
    repos: Sequence[RepoBase],
    max_categories: int,
    name_max_length: int,
) -> str:
    lines = [
        f"- {repo.full_name} [{repo.language or 'n/a'}] {(repo.description or '').strip()[:160]}"
        for repo in repos
    ]
    return (
        f"Design exactly {max_categories} categories for organizing the {len(repos)} starred "
        "GitHub repositories below into lists.\n\n"
        "## Rules:\n"
        f"- Each name must be at most {name_max_length} characters, formatted as 'Area: Topic'.\n"
        "- Categories must not overlap; cover the collection as evenly as possible.\n"
        "- Classify by purpose or domain, not by programming language alone.\n"
        "- Return ONLY valid JSON with this schema:\n"
        '{"categories":[{"name":"...","description":"..."}]}\n\n'
        "## Repositories:\n" + "\n".join(lines)
    )
