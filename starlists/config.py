import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(REPO_ROOT / ".env")


@dataclass(frozen=True)
class Settings:
    github_token: str
    github_username: str
    github_api_base_url: str
    ai_provider: str
    ai_api_key: str
    ai_model: str
    ai_base_url: str
    ai_headers_json: str
    ai_temperature_classify: float
    ai_temperature_planning: float
    ai_max_tokens_classify: int
    ai_max_tokens_planning: int
    ai_timeout: int
    ai_rpm: int
    log_api_responses: bool
    max_categories: int
    max_categories_per_repo: int
    min_categories_per_repo: int
    default_category: str
    classify_batch_size: int
    readme_concurrency: int
    apply_concurrency: int
    batch_delay_ms: int
    github_request_delay_ms: int
    list_create_delay_ms: int
    readme_max_length: int
    max_retries: int
    retry_delay_ms: int
    retry_max_delay_ms: int
    list_is_private: bool
    list_name_max_length: int
    plan_path: str
    database_url: str
    cors_origins: str
    log_level: str


def get_settings() -> Settings:
    def pick(key: str, default: str) -> str:
        return os.getenv(key, default)

    def pick_nonempty(key: str, default: str) -> str:
        value = pick(key, default)
        return value if str(value).strip() else default

    def pick_int(key: str, default: int) -> int:
        try:
            return int(os.getenv(key, str(default)))
        except (TypeError, ValueError):
            return default

    def pick_float(key: str, default: float) -> float:
        try:
            return float(os.getenv(key, str(default)))
        except (TypeError, ValueError):
            return default

    def pick_bool(key: str, default: bool) -> bool:
        return os.getenv(key, str(default)).lower() in ("1", "true", "yes", "on")

    return Settings(
        github_token=os.getenv("GITHUB_TOKEN", ""),
        github_username=pick("GITHUB_USERNAME", ""),
        github_api_base_url=pick_nonempty("GITHUB_API_BASE_URL", "https://api.github.com").rstrip("/"),
        ai_provider=pick("AI_PROVIDER", "gemini"),
        ai_api_key=os.getenv("AI_API_KEY", ""),
        ai_model=pick_nonempty("AI_MODEL", "gemini-2.5-flash"),
        ai_base_url=pick("AI_BASE_URL", ""),
        ai_headers_json=pick("AI_HEADERS_JSON", ""),
        ai_temperature_classify=pick_float("AI_TEMPERATURE_CLASSIFY", 0.3),
        ai_temperature_planning=pick_float("AI_TEMPERATURE_PLANNING", 0.7),
        ai_max_tokens_classify=pick_int("AI_MAX_TOKENS_CLASSIFY", 65536),
        ai_max_tokens_planning=pick_int("AI_MAX_TOKENS_PLANNING", 65536),
        ai_timeout=pick_int("AI_TIMEOUT", 120),
        ai_rpm=pick_int("AI_RPM", 15),
        log_api_responses=pick_bool("LOG_API_RESPONSES", False),
        max_categories=pick_int("MAX_CATEGORIES", 32),
        max_categories_per_repo=pick_int("MAX_CATEGORIES_PER_REPO", 3),
        min_categories_per_repo=pick_int("MIN_CATEGORIES_PER_REPO", 1),
        default_category=pick("DEFAULT_CATEGORY", "").strip(),
        classify_batch_size=pick_int("CLASSIFY_BATCH_SIZE", 20),
        readme_concurrency=pick_int("README_CONCURRENCY", 20),
        apply_concurrency=pick_int("APPLY_CONCURRENCY", 5),
        batch_delay_ms=pick_int("BATCH_DELAY_MS", 2000),
        github_request_delay_ms=pick_int("GITHUB_REQUEST_DELAY_MS", 100),
        list_create_delay_ms=pick_int("LIST_CREATE_DELAY_MS", 500),
        readme_max_length=pick_int("README_MAX_LENGTH", 10000),
        max_retries=pick_int("MAX_RETRIES", 3),
        retry_delay_ms=pick_int("RETRY_DELAY_MS", 500),
        retry_max_delay_ms=pick_int("RETRY_MAX_DELAY_MS", 5000),
        list_is_private=pick_bool("LIST_IS_PRIVATE", False),
        list_name_max_length=pick_int("LIST_NAME_MAX_LENGTH", 20),
        plan_path=pick_nonempty("PLAN_PATH", str(REPO_ROOT / ".github-stars-plan.yaml")),
        database_url=os.getenv("DATABASE_URL", "sqlite:////data/app.db"),
        cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
