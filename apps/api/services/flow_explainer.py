"""
Deterministic rationale for algorithmically assembled flows.

The planner writes its own free-text reasoning; this template is what the user
reads when the flow came from the selection engine instead.
"""

from typing import Sequence, Union

from services.polyvagal import TargetState
from services.segments import Section, Segment

STATE_INTROS = {
    TargetState.SHUTDOWN: (
        "Your nervous system is in a quiet, withdrawn place right now, so it "
        "needs gentle warmth and slow activation."
    ),
    TargetState.RESTFUL: (
        "Your body feels settled and safe, and could use a little more energy and spark."
    ),
    TargetState.WIRED: (
        "Your system is running hot, with activation that needs grounding and safety."
    ),
    TargetState.GLOWING: (
        "You're in an expansive state, energized and safe, so this flow honours that."
    ),
    TargetState.STEADY: (
        "You're centered and balanced, inside your window of tolerance."
    ),
}

STATE_GOALS = {
    TargetState.SHUTDOWN: "slowly build upward arousal",
    TargetState.RESTFUL: "gently energize your system",
    TargetState.WIRED: "help your system settle and ground",
    TargetState.GLOWING: "celebrate and sustain this energy",
    TargetState.STEADY: "explore a balanced mix of movement",
}


def _coerce_state(state: Union[TargetState, str]) -> TargetState:
    try:
        return TargetState(state)
    except ValueError:
        return TargetState.STEADY


def generate_explanation(state: Union[TargetState, str], segments: Sequence[Segment]) -> str:
    """Intro for the state, then one sentence per populated section."""
    target = _coerce_state(state)
    blocks = [s for s in segments if s.is_block]
    warm_up = [s for s in blocks if s.section == Section.WARM_UP]
    main = [s for s in blocks if s.section == Section.MAIN]
    integration = [s for s in blocks if s.section == Section.INTEGRATION]

    parts = [STATE_INTROS[target]]

    if warm_up:
        parts.append(f"We're starting with {warm_up[0].name} to gently orient your attention inward.")
    if main:
        plural = "s" if len(main) > 1 else ""
        parts.append(f"Building through {len(main)} exercise{plural} chosen to {STATE_GOALS[target]}.")
    if integration:
        parts.append(f"Closing with {integration[0].name} to help your system settle.")

    return " ".join(parts)
