"""Recovery of batch classification results from raw oracle output.

The oracle is asked for ``{"results": [{"id": ..., "categories": [...]}]}``
but may return fenced, truncated or otherwise broken text. Recovery runs
in stages and stops at the first one that succeeds:

1. direct JSON parse
2. truncation repair, then JSON parse
3. regex extraction of ``id``/``categories`` fragments

Ids that none of the stages produced are gap-filled with an empty list so
the validator can default them.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional

logger = logging.getLogger("starlists.pipeline")

ParseKind = Literal["well_formed", "repaired", "fallback_extracted", "empty"]

_FALLBACK_PATTERN = re.compile(
    r'"id"\s*:\s*"([^"]+)"[^}]*?"categories"\s*:\s*\[([^\]]*)\]',
    re.DOTALL,
)
_OPENERS = {"{": "}", "[": "]"}


@dataclass(frozen=True)
class ParseResult:
    kind: ParseKind
    entries: Dict[str, List[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class RecoveredResponse:
    kind: ParseKind
    raw_map: Dict[str, List[str]]
    fallback_ids: List[str]

    @property
    def fallback_count(self) -> int:
        return len(self.fallback_ids)


def _strip_fences(text: str) -> str:
    candidate = text.strip()
    if candidate.startswith("```"):
        parts = candidate.split("```")
        if len(parts) >= 3:
            candidate = parts[1].strip()
        else:
            candidate = candidate[3:].strip()
        if candidate.lower().startswith("json"):
            candidate = candidate[4:].strip()
    return candidate


def _extract_results(parsed: Any) -> Optional[Dict[str, List[str]]]:
    if isinstance(parsed, dict):
        results = parsed.get("results")
    elif isinstance(parsed, list):
        results = parsed
    else:
        return None
    if not isinstance(results, list):
        return None

    entries: Dict[str, List[str]] = {}
    for item in results:
        if not isinstance(item, dict):
            continue
        item_id = item.get("id")
        categories = item.get("categories")
        if not isinstance(item_id, str) or not item_id or not isinstance(categories, list):
            continue
        if item_id in entries:
            continue
        entries[item_id] = [value for value in categories if isinstance(value, str)]
    return entries


def _try_parse(text: str) -> Optional[Dict[str, List[str]]]:
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None
    return _extract_results(parsed)


def _unclosed_delimiters(text: str) -> List[str]:
    stack: List[str] = []
    in_string = False
    escaped = False
    for char in text:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _OPENERS:
            stack.append(char)
        elif char in ("}", "]"):
            if stack and _OPENERS[stack[-1]] == char:
                stack.pop()
    return stack


def repair_truncated_json(text: str) -> str:
    """Re-balance a JSON document that was cut off mid-way.

    Everything after the last closed object is dropped when it opens a new
    object that never closes, then the still-open arrays and objects are
    closed in nesting order. Balanced input comes back unchanged.
    """
    candidate = text.strip()
    last_close = candidate.rfind("}")
    if last_close > 0:
        tail = candidate[last_close + 1 :]
        if "{" in tail and "}" not in tail:
            candidate = candidate[: last_close + 1]

    unclosed = _unclosed_delimiters(candidate)
    if not unclosed:
        return candidate
    candidate = candidate.rstrip().rstrip(",").rstrip()
    closers = "".join(_OPENERS[opener] for opener in reversed(unclosed))
    return candidate + closers


def _extract_fragments(text: str) -> Dict[str, List[str]]:
    entries: Dict[str, List[str]] = {}
    for match in _FALLBACK_PATTERN.finditer(text):
        item_id = match.group(1).strip()
        raw_values = match.group(2)
        values = [part.strip().strip('"').strip() for part in raw_values.split(",")]
        values = [value for value in values if value]
        if not item_id or not values:
            continue
        if item_id not in entries:
            entries[item_id] = values
    return entries


def parse_response(text: str) -> ParseResult:
    if not text or not text.strip():
        return ParseResult("empty")
    candidate = _strip_fences(text)

    entries = _try_parse(candidate)
    if entries is not None:
        return ParseResult("well_formed", entries)

    if not candidate.endswith("}"):
        repaired = repair_truncated_json(candidate)
        entries = _try_parse(repaired)
        if entries is not None:
            logger.info("Recovered truncated oracle response (%s entries)", len(entries))
            return ParseResult("repaired", entries)

    entries = _extract_fragments(text)
    if entries:
        logger.warning("Oracle response unparseable, extracted %s entries by pattern", len(entries))
        return ParseResult("fallback_extracted", entries)
    return ParseResult("empty")


def recover_response(text: str, target_ids: Iterable[str]) -> RecoveredResponse:
    ids = list(target_ids)
    result = parse_response(text)
    wanted = set(ids)
    unexpected = [item_id for item_id in result.entries if item_id not in wanted]
    if unexpected:
        logger.debug("Ignoring %s ids not in batch: %s", len(unexpected), unexpected[:5])

    raw_map: Dict[str, List[str]] = {}
    fallback_ids: List[str] = []
    structured = result.kind in ("well_formed", "repaired")
    for item_id in ids:
        if item_id in raw_map:
            continue
        values = result.entries.get(item_id)
        if values is None:
            raw_map[item_id] = []
            fallback_ids.append(item_id)
            continue
        raw_map[item_id] = list(values)
        if not structured:
            fallback_ids.append(item_id)
    if fallback_ids:
        logger.warning(
            "%s/%s ids required fallback (parse=%s)",
            len(fallback_ids),
            len(raw_map),
            result.kind,
        )
    return RecoveredResponse(kind=result.kind, raw_map=raw_map, fallback_ids=fallback_ids)
