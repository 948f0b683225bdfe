"""Flow Planner: LLM-designed block sequences for a polyvagal state.

Asks Claude for a section-grouped plan (warm-up / main / integration) drawn
from the live block catalog, plus a short rationale written to the user.

Architecture:
- One Anthropic Messages call per flow request
- Fixed system prompt carrying the sequencing heuristics
- Mandatory validation against the caller's canonical names
- No retry; the caller owns the deadline and the algorithmic fallback

Non-negotiable rules:
- If the LLM call fails → unsuccessful result, caller falls back
- If the output isn't one JSON object with a sections list → unsuccessful result
- Unknown canonical names are dropped, never trusted, never fatal
- A plan with no valid blocks left is an unsuccessful result
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from anthropic import Anthropic

from core.config import settings
from services.segments import Section

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

# Intensity slider was retired; the prompt still expects a value
DEFAULT_INTENSITY = 50

SECTION_ALIASES = {
    "warm_up": Section.WARM_UP,
    "warmup": Section.WARM_UP,
    "main": Section.MAIN,
    "integration": Section.INTEGRATION,
    "cool_down": Section.INTEGRATION,
    "cooldown": Section.INTEGRATION,
}


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You design short somatic practice routines using polyvagal-informed, trauma-informed principles.
Select and order exercises into three sections (warm-up, main, integration) for the user's current nervous system state.

GROUNDING:
- Polyvagal theory: meet the state, build safety, widen the window of tolerance.
- Favour gentle cranial, ocular and neck vagal work early (eye covering, humming, soft self-touch), especially for shutdown and wired states.
- Titrate: small doses, pendulate between sensation and resource, and only offer discharge once the system is resourced.
- Never imply guaranteed outcomes. Keep every option non-demanding.

SECTIONS:
- warm-up: gentle, non-demanding vagal toning (e.g. vagus_reset, eye_covering, humming). Never open with intense proprioceptive input.
- main: progressive proprioceptive and movement blocks (e.g. body_tapping, shaking, heart_opener, self_havening, ear_stretch, upward_gaze, freeze_roll, arm_shoulder_hand_circles, squeeze_hands_release). Repeat blocks if needed to hit the exact count.
- integration: slow, settling, grounding blocks (e.g. self_hug, self_hug_swaying, brain_hold). Always end with something settling.

STATES (from a 2D energy x safety self-report):
- shutdown (low energy, low safety): start with the gentlest vagal tone, avoid anything demanding early, build arousal slowly in main, close with warmth and containment.
- restful (low energy, safe): soft movement and humming first, moderate activation in main, grounding close.
- steady (centred): balanced routine, mix activation and settling freely.
- glowing (high energy, safe): keep the warm-up brief, lean into expansive, joyful movement and heart openers.
- wired (high energy, low safety): calming parasympathetic blocks first; discharge (shaking, freeze_roll) only after partial settling; strong integration.

INTENSITY (0-100) changes which blocks you pick inside each section, never the section sizes.
Low prefers gentler blocks; high leans toward more activating main blocks.

TIME OF DAY is a soft signal; state always wins.
- Morning (5-11): gentle arousal and orientation.
- Afternoon (12-16): balanced.
- Evening (17-22): lean toward settling, avoid highly activating main blocks.
- Late night (23-4): everything gentle and integrative (self_hug, brain_hold, eye_covering).

OUTPUT FORMAT:
Return ONLY one JSON object, no markdown, no extra text:
{
  "reasoning": "4-5 short sentences addressed to the user, e.g. 'We put this together for you because...'. Describe exercises in plain language, never by code name.",
  "sections": [
    {"name": "warm-up", "blocks": [{"canonical_name": "string"}]},
    {"name": "main", "blocks": [{"canonical_name": "string"}]},
    {"name": "integration", "blocks": [{"canonical_name": "string"}]}
  ]
}

Only use canonical_name values from the provided list. Never invent names."""


# ---------------------------------------------------------------------------
# Prompt builder
# ---------------------------------------------------------------------------

def section_sizes(block_count: int) -> Dict[Section, int]:
    """Exact per-section counts; mirrors the algorithmic labelling by position."""
    if block_count <= 1:
        return {Section.MAIN: 1}
    if block_count == 2:
        return {Section.WARM_UP: 1, Section.MAIN: 1}
    return {Section.WARM_UP: 1, Section.MAIN: block_count - 2, Section.INTEGRATION: 1}


def describe_time_of_day(local_hour: Optional[int]) -> Optional[str]:
    if local_hour is None:
        return None
    if 5 <= local_hour < 12:
        label = "morning"
    elif 12 <= local_hour < 17:
        label = "afternoon"
    elif 17 <= local_hour < 23:
        label = "evening"
    else:
        label = "late night"
    return f"{label} ({local_hour}:00)"


def build_user_prompt(
    polyvagal_state: str,
    duration_minutes: int,
    block_count: int,
    available_blocks: List[str],
    intensity: int = DEFAULT_INTENSITY,
    local_hour: Optional[int] = None,
) -> str:
    sizes = section_sizes(block_count)
    total = sum(sizes.values())

    lines = [
        f"Design a {duration_minutes}-minute somatic routine for someone who feels: "
        f"{polyvagal_state} at intensity {intensity}/100."
    ]
    time_of_day = describe_time_of_day(local_hour)
    if time_of_day:
        lines.append(f"It is currently {time_of_day} for this person.")

    lines.append("")
    lines.append("Available blocks (use only these canonical names; repetition is allowed):")
    lines.append(", ".join(available_blocks))
    lines.append("")
    lines.append("EXACT STRUCTURE REQUIRED:")
    for section, size in sizes.items():
        wire_name = "warm-up" if section == Section.WARM_UP else section.value
        lines.append(f"- {wire_name}: EXACTLY {size} block{'s' if size != 1 else ''}")
    if Section.INTEGRATION not in sizes:
        lines.append("- integration: no blocks (omit the section)")
    lines.append(f"Total: EXACTLY {total} blocks.")
    lines.append(f"Apply polyvagal principles for the {polyvagal_state} state at intensity {intensity}.")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# LLM call
# ---------------------------------------------------------------------------

def get_planner_client() -> Optional[Anthropic]:
    """Anthropic client from settings, or None when no key is configured."""
    if not settings.planner_enabled:
        return None
    return Anthropic(api_key=settings.ANTHROPIC_API_KEY)


def _call_planner_llm(client: Any, prompt: str) -> Tuple[str, int, int, int]:
    """Call Claude for a flow plan.

    Returns (text, input_tokens, output_tokens, latency_ms).
    Raises on failure.
    """
    if client is None:
        raise RuntimeError("No Anthropic client provided.")

    start = time.monotonic()
    response = client.messages.create(
        model=settings.PLANNER_MODEL,
        max_tokens=settings.PLANNER_MAX_TOKENS,
        temperature=settings.PLANNER_TEMPERATURE,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
        timeout=settings.PLANNER_TIMEOUT_S,
    )
    latency_ms = int((time.monotonic() - start) * 1000)

    text = ""
    if response.content:
        text = getattr(response.content[0], "text", "") or ""

    usage = getattr(response, "usage", None)
    input_tokens = getattr(usage, "input_tokens", 0) or 0
    output_tokens = getattr(usage, "output_tokens", 0) or 0

    return text, input_tokens, output_tokens, latency_ms


# ---------------------------------------------------------------------------
# Parse + validate LLM output
# ---------------------------------------------------------------------------

def _strip_fences(raw_text: str) -> str:
    text = raw_text.strip()
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines).strip()
    return text


def parse_plan_json(raw_text: str) -> Optional[Dict[str, Any]]:
    """Parse one JSON object with a sections list. None on any contract failure."""
    if not raw_text:
        return None

    text = _strip_fences(raw_text)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Flow planner: JSON parse failed. Raw: %s", text[:200])
        return None

    if not isinstance(parsed, dict):
        logger.warning("Flow planner: expected object, got %s", type(parsed).__name__)
        return None

    if not isinstance(parsed.get("sections"), list):
        logger.warning("Flow planner: response has no sections list")
        return None

    return parsed


def normalize_section_name(name: Any) -> Section:
    """'warm-up' → warm_up; anything unrecognised lands in main."""
    key = str(name or "").strip().lower().replace("-", "_").replace(" ", "_")
    section = SECTION_ALIASES.get(key)
    if section is None:
        logger.warning("Flow planner: unknown section %r, treating as main", name)
        return Section.MAIN
    return section


@dataclass
class PlannedBlock:
    canonical_name: str
    section: Section


def validate_plan(
    sections: Iterable[Any],
    available_blocks: Iterable[str],
) -> Tuple[List[PlannedBlock], List[str]]:
    """Flatten sections in order, keeping only names the caller supplied.

    Returns (planned_blocks, dropped_names).
    """
    valid = set(available_blocks)
    planned: List[PlannedBlock] = []
    dropped: List[str] = []

    for section in sections:
        if not isinstance(section, dict):
            continue
        section_name = normalize_section_name(section.get("name"))
        for item in section.get("blocks") or []:
            name = item.get("canonical_name") if isinstance(item, dict) else item
            if isinstance(name, str) and name in valid:
                planned.append(PlannedBlock(canonical_name=name, section=section_name))
            else:
                dropped.append(str(name))

    if dropped:
        logger.warning("Flow planner: dropped %d unknown block names: %s", len(dropped), dropped[:10])

    return planned, dropped


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class PlannerResult:
    """Plan plus telemetry from a planner invocation."""
    success: bool = False
    blocks: List[PlannedBlock] = field(default_factory=list)
    reasoning: Optional[str] = None
    dropped_names: List[str] = field(default_factory=list)
    latency_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class FlowPlanner:
    """
    Generate a validated, section-labelled block plan.

    Usage:
        planner = FlowPlanner(client=get_planner_client())
        result = planner.plan(
            polyvagal_state="wired",
            duration_minutes=10,
            block_count=6,
            available_blocks=["vagus_reset", "humming", ...],
        )
        if result.success:
            # Use result.blocks / result.reasoning
    """

    def __init__(self, client: Any = None):
        self.client = client

    def plan(
        self,
        polyvagal_state: str,
        duration_minutes: int,
        block_count: int,
        available_blocks: List[str],
        intensity: int = DEFAULT_INTENSITY,
        local_hour: Optional[int] = None,
    ) -> PlannerResult:
        if self.client is None:
            return PlannerResult(error="no_planner_client")

        prompt = build_user_prompt(
            polyvagal_state=polyvagal_state,
            duration_minutes=duration_minutes,
            block_count=block_count,
            available_blocks=available_blocks,
            intensity=intensity,
            local_hour=local_hour,
        )

        try:
            raw_text, in_tok, out_tok, lat_ms = _call_planner_llm(self.client, prompt)
        except Exception as exc:
            logger.warning("Flow planner LLM call failed: %s", exc)
            return PlannerResult(error=str(exc))

        parsed = parse_plan_json(raw_text)
        if parsed is None:
            return PlannerResult(
                latency_ms=lat_ms,
                input_tokens=in_tok,
                output_tokens=out_tok,
                error="parse_failed",
            )

        blocks, dropped = validate_plan(parsed["sections"], available_blocks)
        if not blocks:
            return PlannerResult(
                dropped_names=dropped,
                latency_ms=lat_ms,
                input_tokens=in_tok,
                output_tokens=out_tok,
                error="no_valid_blocks",
            )

        reasoning = parsed.get("reasoning")
        return PlannerResult(
            success=True,
            blocks=blocks,
            reasoning=reasoning if isinstance(reasoning, str) and reasoning.strip() else None,
            dropped_names=dropped,
            latency_ms=lat_ms,
            input_tokens=in_tok,
            output_tokens=out_tok,
        )
