import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .categories import normalize_categories
from .config import get_settings
from .errors import ClassificationCallError, ConfigurationError
from .models import Category, ClassificationTarget, RepoBase
from .prompts import build_batch_classifier_prompt, build_category_planner_prompt

logger = logging.getLogger("starlists.ai")

_CLASSIFY_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "results": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "STRING", "description": "Repository id (owner/name)"},
                    "categories": {"type": "ARRAY", "items": {"type": "STRING"}},
                },
                "required": ["id", "categories"],
                "propertyOrdering": ["id", "categories"],
            },
        }
    },
    "required": ["results"],
}

_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "categories": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "description": {"type": "STRING"},
                },
                "required": ["name", "description"],
                "propertyOrdering": ["name", "description"],
            },
        }
    },
    "required": ["categories"],
}

_SYSTEM_PROMPT = "You organize GitHub repositories into curated lists. Answer with JSON only."


def _default_base_url(provider: str) -> str:
    if provider == "gemini":
        return "https://generativelanguage.googleapis.com/v1beta"
    if provider == "openai":
        return "https://api.openai.com/v1"
    if provider == "anthropic":
        return "https://api.anthropic.com/v1"
    return ""


def _headers(provider: str) -> Dict[str, str]:
    settings = get_settings()
    headers = {"Content-Type": "application/json"}
    if provider == "anthropic":
        if settings.ai_api_key:
            headers["x-api-key"] = settings.ai_api_key
        headers["anthropic-version"] = "2023-06-01"
    elif provider == "gemini":
        if settings.ai_api_key:
            headers["x-goog-api-key"] = settings.ai_api_key
    else:
        if settings.ai_api_key:
            headers["Authorization"] = f"Bearer {settings.ai_api_key}"
    if settings.ai_headers_json:
        try:
            extra = json.loads(settings.ai_headers_json)
            if isinstance(extra, dict):
                headers.update({str(k): str(v) for k, v in extra.items()})
        except json.JSONDecodeError:
            logger.warning("AI_HEADERS_JSON is not valid JSON; ignoring")
    return headers


_SENSITIVE_KEYS = {
    "api_key",
    "apikey",
    "authorization",
    "access_token",
    "token",
    "secret",
    "password",
    "x-api-key",
    "x-goog-api-key",
}


def _mask_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        if len(value) <= 4:
            return "****"
        return f"{value[:2]}***{value[-2:]}"
    return "***"


def _mask_sensitive_payload(payload: Any) -> Any:
    if isinstance(payload, dict):
        masked: Dict[str, Any] = {}
        for key, value in payload.items():
            if str(key).lower() in _SENSITIVE_KEYS:
                masked[key] = _mask_value(value)
            else:
                masked[key] = _mask_sensitive_payload(value)
        return masked
    if isinstance(payload, list):
        return [_mask_sensitive_payload(item) for item in payload]
    return payload


def _mask_secrets_in_text(text: str) -> str:
    masked = text
    masked = re.sub(r"(?i)(authorization\s*[:=]\s*bearer\s+)[^\s\"']+", r"\1***", masked)
    masked = re.sub(r"(?i)(x-(?:goog-)?api-key\s*[:=]\s*)[^\s\"']+", r"\1***", masked)
    masked = re.sub(r"(?i)(api_key\s*[:=]\s*)[^\s\"']+", r"\1***", masked)
    masked = re.sub(r"\bsk-[A-Za-z0-9\-]{8,}\b", "sk-***", masked)
    return masked


def _sanitize_response_body(text: str) -> str:
    if not text:
        return ""
    trimmed = text.strip()
    if not trimmed:
        return ""
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        return _mask_secrets_in_text(trimmed)
    masked = _mask_sensitive_payload(parsed)
    try:
        return json.dumps(masked, ensure_ascii=True)
    except (TypeError, ValueError):
        return _mask_secrets_in_text(trimmed)


def _raise_for_status_with_detail(response: httpx.Response, url: str) -> None:
    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        detail = _sanitize_response_body(response.text)
        if detail:
            if len(detail) > 800:
                detail = detail[:800] + "..."
            message = f"{exc} | url={url} | body={detail}"
        else:
            message = f"{exc} | url={url}"
        raise httpx.HTTPStatusError(message, request=exc.request, response=exc.response) from exc


def _extract_json(text: str) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    candidate = text.strip()
    if candidate.startswith("```"):
        parts = candidate.split("```")
        if len(parts) >= 3:
            candidate = parts[1].strip()
            if candidate.lower().startswith("json"):
                candidate = candidate[4:].strip()
    try:
        parsed = json.loads(candidate)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start != -1 and end != -1 and end > start:
        try:
            parsed = json.loads(candidate[start : end + 1])
            return parsed if isinstance(parsed, dict) else None
        except json.JSONDecodeError:
            return None
    return None


def _response_text(provider: str, data: Dict[str, Any]) -> str:
    if provider == "gemini":
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = ((candidates[0].get("content") or {}).get("parts")) or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))
    if provider == "anthropic":
        text = ""
        for block in data.get("content") or []:
            if isinstance(block, dict) and block.get("type") == "text":
                text += block.get("text", "")
        return text
    choices = data.get("choices") or []
    message = (choices[0].get("message") or {}) if choices else {}
    return str(message.get("content") or "")


def resolve_provider() -> tuple[str, str]:
    settings = get_settings()
    raw_provider = settings.ai_provider.strip().lower()
    if raw_provider in ("", "none"):
        raise ConfigurationError("AI_PROVIDER is not configured")
    if not settings.ai_model:
        raise ConfigurationError("AI_MODEL is required for classification")
    if raw_provider in ("gemini", "openai", "anthropic") and not settings.ai_api_key:
        raise ConfigurationError(f"AI_API_KEY is required for provider {raw_provider}")
    provider = raw_provider if raw_provider in ("gemini", "anthropic") else "openai"
    base_url = settings.ai_base_url or _default_base_url(raw_provider)
    if not base_url:
        raise ConfigurationError(f"AI_BASE_URL is required for provider {raw_provider}")
    return provider, base_url.rstrip("/")


class AIClient:
    def __init__(self, client: httpx.AsyncClient, semaphore: asyncio.Semaphore) -> None:
        self._client = client
        self._semaphore = semaphore

    def _build_request(
        self,
        provider: str,
        base_url: str,
        prompt: str,
        temperature: float,
        max_tokens: int,
        schema: Dict[str, Any],
    ) -> tuple[str, Dict[str, Any]]:
        model = get_settings().ai_model
        if provider == "gemini":
            url = f"{base_url}/models/{model}:generateContent"
            payload = {
                "systemInstruction": {"parts": [{"text": _SYSTEM_PROMPT}]},
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "maxOutputTokens": max_tokens,
                    "responseMimeType": "application/json",
                    "responseSchema": schema,
                },
            }
        elif provider == "anthropic":
            url = f"{base_url}/messages"
            payload = {
                "model": model,
                "system": _SYSTEM_PROMPT,
                "messages": [{"role": "user", "content": prompt}],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        else:
            url = f"{base_url}/chat/completions"
            payload = {
                "model": model,
                "messages": [
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        return url, payload

    async def _complete(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        schema: Dict[str, Any],
    ) -> str:
        settings = get_settings()
        provider, base_url = resolve_provider()
        url, payload = self._build_request(provider, base_url, prompt, temperature, max_tokens, schema)

        async with self._semaphore:
            response = await self._client.post(
                url,
                headers=_headers(provider),
                json=payload,
                timeout=settings.ai_timeout,
            )
        _raise_for_status_with_detail(response, url)

        try:
            data = response.json()
        except ValueError as exc:
            detail = _sanitize_response_body(response.text)
            if len(detail) > 800:
                detail = detail[:800] + "..."
            raise ValueError(
                f"AI response JSON decode failed (status {response.status_code}) | url={url} | body={detail}"
            ) from exc
        text = _response_text(provider, data)
        if settings.log_api_responses:
            logger.debug("AI response (%s chars): %s", len(text), text)
        return text

    async def classify_batch(
        self,
        targets: Sequence[ClassificationTarget],
        categories: Sequence[Category],
    ) -> str:
        settings = get_settings()
        prompt = build_batch_classifier_prompt(
            targets,
            categories,
            min_per_item=settings.min_categories_per_repo,
            max_per_item=settings.max_categories_per_repo,
            readme_max_length=settings.readme_max_length,
        )
        try:
            text = await self._complete(
                prompt,
                settings.ai_temperature_classify,
                settings.ai_max_tokens_classify,
                _CLASSIFY_SCHEMA,
            )
        except ConfigurationError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            raise ClassificationCallError(f"AI batch classify failed: {exc}") from exc
        if not text.strip():
            raise ClassificationCallError("AI batch classify returned an empty response")
        return text

    async def plan_categories(
        self,
        repos: Sequence[RepoBase],
        max_categories: Optional[int] = None,
    ) -> List[Category]:
        settings = get_settings()
        count = max_categories or settings.max_categories
        prompt = build_category_planner_prompt(repos, count, settings.list_name_max_length)
        text = await self._complete(
            prompt,
            settings.ai_temperature_planning,
            settings.ai_max_tokens_planning,
            _PLAN_SCHEMA,
        )
        extracted = _extract_json(text)
        if not extracted or not isinstance(extracted.get("categories"), list):
            raise ValueError("Failed to parse AI category response")
        categories = normalize_categories(extracted["categories"], settings.list_name_max_length)
        if len(categories) != count:
            logger.warning("Expected %s categories, got %s", count, len(categories))
        return categories[:count]
