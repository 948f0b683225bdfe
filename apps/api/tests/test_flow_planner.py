"""
Flow Planner Tests

DETERMINISTIC tests: no LLM calls, every response is a mock. These verify:
1. Prompt carries the exact section structure and the valid names
2. Fenced and bare JSON both parse; anything else is an unsuccessful result
3. Invented canonical names are dropped, never trusted
4. Section names are normalised (warm-up -> warm_up, unknown -> main)
5. Client failures never raise out of the planner
"""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from services.flow_planner import (
    SYSTEM_PROMPT,
    FlowPlanner,
    build_user_prompt,
    describe_time_of_day,
    normalize_section_name,
    parse_plan_json,
    section_sizes,
    validate_plan,
)
from services.segments import Section

AVAILABLE = ["vagus_reset", "humming", "shaking", "self_hug", "body_tapping"]


def _response(text, input_tokens=120, output_tokens=80):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
    )


def _plan_text(sections, reasoning="We put this together for you because you feel wired."):
    return json.dumps({"reasoning": reasoning, "sections": sections})


@pytest.fixture
def mock_client():
    return MagicMock()


@pytest.fixture
def planner(mock_client):
    return FlowPlanner(client=mock_client)


def _plan(planner, block_count=3):
    return planner.plan(
        polyvagal_state="wired",
        duration_minutes=5,
        block_count=block_count,
        available_blocks=AVAILABLE,
    )


# ===========================================================================
# Prompt
# ===========================================================================

class TestPrompt:
    def test_sizes_follow_block_count(self):
        assert section_sizes(1) == {Section.MAIN: 1}
        assert section_sizes(2) == {Section.WARM_UP: 1, Section.MAIN: 1}
        assert section_sizes(6) == {Section.WARM_UP: 1, Section.MAIN: 4, Section.INTEGRATION: 1}

    def test_prompt_lists_names_and_structure(self):
        prompt = build_user_prompt("wired", 10, 6, AVAILABLE)
        assert "vagus_reset, humming, shaking, self_hug, body_tapping" in prompt
        assert "- warm-up: EXACTLY 1 block" in prompt
        assert "- main: EXACTLY 4 blocks" in prompt
        assert "- integration: EXACTLY 1 block" in prompt
        assert "Total: EXACTLY 6 blocks." in prompt
        assert "intensity 50/100" in prompt

    def test_time_of_day_included_when_known(self):
        assert "late night (23:00)" in build_user_prompt("steady", 5, 3, AVAILABLE, local_hour=23)
        assert "It is currently" not in build_user_prompt("steady", 5, 3, AVAILABLE)

    @pytest.mark.parametrize("hour,label", [(5, "morning"), (12, "afternoon"), (17, "evening"), (3, "late night")])
    def test_time_of_day_buckets(self, hour, label):
        assert describe_time_of_day(hour).startswith(label)

    def test_system_prompt_demands_json_only(self):
        assert "Return ONLY one JSON object" in SYSTEM_PROMPT
        assert "Never invent names" in SYSTEM_PROMPT


# ===========================================================================
# Parsing + validation
# ===========================================================================

class TestParse:
    def test_strips_markdown_fences(self):
        raw = "```json\n" + _plan_text([{"name": "main", "blocks": []}]) + "\n```"
        assert parse_plan_json(raw)["sections"] == [{"name": "main", "blocks": []}]

    @pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", '{"reasoning": "no sections"}', '{"sections": "nope"}'])
    def test_contract_failures_return_none(self, raw):
        assert parse_plan_json(raw) is None


class TestValidate:
    def test_unknown_names_dropped(self):
        sections = [
            {"name": "warm-up", "blocks": [{"canonical_name": "vagus_reset"}, {"canonical_name": "moon_breathing"}]},
            {"name": "main", "blocks": [{"canonical_name": "shaking"}]},
            {"name": "integration", "blocks": [{"canonical_name": "self_hug"}]},
        ]
        planned, dropped = validate_plan(sections, AVAILABLE)
        assert [p.canonical_name for p in planned] == ["vagus_reset", "shaking", "self_hug"]
        assert [p.section for p in planned] == [Section.WARM_UP, Section.MAIN, Section.INTEGRATION]
        assert dropped == ["moon_breathing"]

    @pytest.mark.parametrize("name,expected", [
        ("warm-up", Section.WARM_UP),
        ("Warm Up", Section.WARM_UP),
        ("warm_up", Section.WARM_UP),
        ("cool-down", Section.INTEGRATION),
        ("crescendo", Section.MAIN),
        (None, Section.MAIN),
    ])
    def test_section_normalisation(self, name, expected):
        assert normalize_section_name(name) == expected

    def test_malformed_items_ignored(self):
        sections = ["junk", {"name": "main", "blocks": [{"canonical_name": 5}, "humming", None]}]
        planned, dropped = validate_plan(sections, AVAILABLE)
        assert [p.canonical_name for p in planned] == ["humming"]
        assert len(dropped) == 2


# ===========================================================================
# Planner
# ===========================================================================

class TestFlowPlanner:
    def test_successful_plan(self, planner, mock_client):
        mock_client.messages.create.return_value = _response(_plan_text([
            {"name": "warm-up", "blocks": [{"canonical_name": "vagus_reset"}]},
            {"name": "main", "blocks": [{"canonical_name": "body_tapping"}]},
            {"name": "integration", "blocks": [{"canonical_name": "self_hug"}]},
        ]))

        result = _plan(planner)

        assert result.success
        assert [b.canonical_name for b in result.blocks] == ["vagus_reset", "body_tapping", "self_hug"]
        assert result.reasoning.startswith("We put this together")
        assert result.input_tokens == 120
        assert result.output_tokens == 80

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["system"] == SYSTEM_PROMPT
        assert "EXACTLY 3 blocks" in kwargs["messages"][0]["content"]

    def test_invented_names_only_is_unsuccessful(self, planner, mock_client):
        mock_client.messages.create.return_value = _response(_plan_text([
            {"name": "main", "blocks": [{"canonical_name": "levitation"}]},
        ]))
        result = _plan(planner)
        assert not result.success
        assert result.error == "no_valid_blocks"
        assert result.dropped_names == ["levitation"]

    def test_malformed_json_is_unsuccessful(self, planner, mock_client):
        mock_client.messages.create.return_value = _response("Here is your routine: vagus_reset, humming")
        result = _plan(planner)
        assert not result.success
        assert result.error == "parse_failed"

    def test_client_exception_is_contained(self, planner, mock_client):
        mock_client.messages.create.side_effect = ConnectionError("network down")
        result = _plan(planner)
        assert not result.success
        assert "network down" in result.error

    def test_no_client(self):
        result = _plan(FlowPlanner(client=None))
        assert not result.success
        assert result.error == "no_planner_client"

    def test_blank_reasoning_becomes_none(self, planner, mock_client):
        mock_client.messages.create.return_value = _response(
            _plan_text([{"name": "main", "blocks": [{"canonical_name": "humming"}]}], reasoning="  ")
        )
        assert _plan(planner, block_count=1).reasoning is None
