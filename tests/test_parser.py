"""Tests for oracle response recovery.

Covers the direct parse, truncation repair and pattern extraction stages
and the gap-filling done by ``recover_response``.
"""

import json

import pytest

from starlists.classification.parser import (
    parse_response,
    recover_response,
    repair_truncated_json,
)

WELL_FORMED = json.dumps(
    {
        "results": [
            {"id": "a/one", "categories": ["Web: Frameworks", "Dev: Tooling"]},
            {"id": "a/two", "categories": ["Data: Pipelines"]},
        ]
    }
)

TRUNCATED = (
    '{"results":[{"id":"a/one","categories":["Web: Frameworks","Dev: Tooling"]},'
    '{"id":"a/two","categories":["Data: Pipelines"]},'
    '{"id":"a/three","categories":["Web: Fra'
)


class TestParseResponse:
    """Stage selection in parse_response."""

    def test_well_formed(self) -> None:
        result = parse_response(WELL_FORMED)
        assert result.kind == "well_formed"
        assert result.entries == {
            "a/one": ["Web: Frameworks", "Dev: Tooling"],
            "a/two": ["Data: Pipelines"],
        }

    def test_fenced_block(self) -> None:
        result = parse_response(f"```json\n{WELL_FORMED}\n```")
        assert result.kind == "well_formed"
        assert set(result.entries) == {"a/one", "a/two"}

    def test_truncated_mid_array_is_repaired(self) -> None:
        result = parse_response(TRUNCATED)
        assert result.kind == "repaired"
        assert result.entries == {
            "a/one": ["Web: Frameworks", "Dev: Tooling"],
            "a/two": ["Data: Pipelines"],
        }

    def test_truncated_after_complete_item(self) -> None:
        text = '{"results":[{"id":"a/one","categories":["Dev: Tooling"]},'
        result = parse_response(text)
        assert result.kind == "repaired"
        assert result.entries == {"a/one": ["Dev: Tooling"]}

    def test_pattern_extraction_when_json_is_broken(self) -> None:
        text = (
            'Sure! {"id": "a/one", "categories": ["Web: Frameworks"]} and '
            '{"id": "a/two", "categories": ["Data: Pipelines", "Dev: Tooling"]} }'
        )
        result = parse_response(text)
        assert result.kind == "fallback_extracted"
        assert result.entries == {
            "a/one": ["Web: Frameworks"],
            "a/two": ["Data: Pipelines", "Dev: Tooling"],
        }

    @pytest.mark.parametrize("text", ["", "   ", "no json here"])
    def test_empty(self, text: str) -> None:
        result = parse_response(text)
        assert result.kind == "empty"
        assert result.entries == {}

    def test_top_level_list_accepted(self) -> None:
        text = json.dumps([{"id": "a/one", "categories": ["Dev: Tooling"]}])
        assert parse_response(text).entries == {"a/one": ["Dev: Tooling"]}

    def test_first_duplicate_id_wins(self) -> None:
        text = json.dumps(
            {
                "results": [
                    {"id": "a/one", "categories": ["Dev: Tooling"]},
                    {"id": "a/one", "categories": ["Web: Frameworks"]},
                ]
            }
        )
        assert parse_response(text).entries == {"a/one": ["Dev: Tooling"]}


class TestRepairTruncatedJson:
    """Re-balancing of cut-off documents."""

    def test_balanced_input_unchanged(self) -> None:
        assert repair_truncated_json(WELL_FORMED) == WELL_FORMED

    def test_forced_repair_matches_direct_parse(self) -> None:
        direct = parse_response(WELL_FORMED)
        repaired = json.loads(repair_truncated_json(WELL_FORMED))
        assert {item["id"]: item["categories"] for item in repaired["results"]} == direct.entries

    def test_brackets_inside_strings_are_ignored(self) -> None:
        text = '{"results":[{"id":"a/one","categories":["Odd ] name {"]}'
        repaired = repair_truncated_json(text)
        assert json.loads(repaired) == {"results": [{"id": "a/one", "categories": ["Odd ] name {"]}]}

    def test_trailing_comma_stripped(self) -> None:
        repaired = repair_truncated_json('{"results":[{"id":"a/one","categories":[]},')
        assert json.loads(repaired) == {"results": [{"id": "a/one", "categories": []}]}


class TestRecoverResponse:
    """Gap filling and fallback accounting."""

    def test_every_target_id_present_exactly_once(self) -> None:
        ids = ["a/one", "a/two", "a/three"]
        recovered = recover_response(TRUNCATED, ids)
        assert list(recovered.raw_map) == ids
        assert recovered.raw_map["a/three"] == []
        assert recovered.fallback_ids == ["a/three"]
        assert recovered.fallback_count == 1

    def test_unexpected_ids_are_ignored(self) -> None:
        recovered = recover_response(WELL_FORMED, ["a/one"])
        assert recovered.raw_map == {"a/one": ["Web: Frameworks", "Dev: Tooling"]}
        assert recovered.fallback_ids == []

    def test_pattern_extracted_ids_count_as_fallback(self) -> None:
        text = '{"id": "a/one", "categories": ["Dev: Tooling"]} garbage'
        recovered = recover_response(text, ["a/one", "a/two"])
        assert recovered.kind == "fallback_extracted"
        assert recovered.raw_map == {"a/one": ["Dev: Tooling"], "a/two": []}
        assert recovered.fallback_ids == ["a/one", "a/two"]

    def test_empty_response_fills_all(self) -> None:
        recovered = recover_response("", ["a/one", "a/two"])
        assert recovered.kind == "empty"
        assert recovered.raw_map == {"a/one": [], "a/two": []}
        assert recovered.fallback_count == 2

    def test_deeply_nested_output_degrades_to_empty(self) -> None:
        text = '{"results":[' + "[" * 100000
        recovered = recover_response(text, ["a/one"])
        assert recovered.kind == "empty"
        assert recovered.raw_map == {"a/one": []}
        assert recovered.fallback_ids == ["a/one"]
