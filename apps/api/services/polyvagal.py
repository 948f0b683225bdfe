"""
Polyvagal state model and block selection engine.

Everything here is pure: a block pool goes in, an ordered, section-labelled
selection comes out. Nothing touches the database or the network, so the
flow generator can always fall back to this path.

Pipeline:
    classify_state(energy, safety)        -> TargetState
    filter_blocks_by_state(pool, state)   -> candidates (never empty if pool isn't)
    select_blocks(candidates, count)      -> count blocks, no adjacent repeats
    assign_sections(selected)             -> warm_up / main / integration by position
"""

import logging
import math
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Union

from services.block_store import Block
from services.segments import Section

logger = logging.getLogger(__name__)


class TargetState(str, Enum):
    """Coarse self-reported nervous-system state."""
    SHUTDOWN = "shutdown"   # low energy, low safety
    RESTFUL = "restful"     # low energy, safe
    WIRED = "wired"         # high energy, low safety
    GLOWING = "glowing"     # high energy, safe
    STEADY = "steady"       # near the centre: window of tolerance


NEUTRAL_CENTER = 50.0
# Distance from (50, 50) inside which a report counts as steady
STEADY_RADIUS = 15.0


def classify_state(energy: float, safety: float) -> TargetState:
    """Map a 0-100 (energy, safety) self-report onto a TargetState."""
    distance = math.hypot(energy - NEUTRAL_CENTER, safety - NEUTRAL_CENTER)
    if distance < STEADY_RADIUS:
        return TargetState.STEADY

    if safety >= NEUTRAL_CENTER:
        return TargetState.RESTFUL if energy < NEUTRAL_CENTER else TargetState.GLOWING
    return TargetState.SHUTDOWN if energy < NEUTRAL_CENTER else TargetState.WIRED


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _energy(block: Block) -> int:
    return block.energy_delta or 0


def _safety(block: Block) -> int:
    return block.safety_delta or 0


STATE_FILTERS: Dict[TargetState, Callable[[Block], bool]] = {
    TargetState.SHUTDOWN: lambda b: _energy(b) >= 0 and _safety(b) >= 0,
    TargetState.RESTFUL: lambda b: _energy(b) > 0,
    TargetState.WIRED: lambda b: _safety(b) > 0,
    TargetState.GLOWING: lambda b: _safety(b) >= 0,
    TargetState.STEADY: lambda b: True,
}


def filter_blocks_by_state(
    pool: Sequence[Block],
    state: Union[TargetState, str],
) -> List[Block]:
    """
    Keep the blocks whose deltas suit ``state``.

    Fail-open: if nothing matches, the whole pool comes back, so a non-empty
    catalog never yields zero candidates. Unknown states are not filtered.
    """
    try:
        predicate = STATE_FILTERS[TargetState(state)]
    except ValueError:
        logger.warning("Unknown polyvagal state %r, using unfiltered pool", state)
        return list(pool)

    filtered = [b for b in pool if predicate(b)]
    if not filtered:
        logger.info("No blocks match state %s, falling back to full pool (%d)", state, len(pool))
        return list(pool)
    return filtered


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def _shuffled(pool: Sequence[Block], rng: random.Random) -> List[Block]:
    walk = list(pool)
    rng.shuffle(walk)
    return walk


def select_blocks(
    pool: Sequence[Block],
    count: int,
    rng: Optional[random.Random] = None,
) -> List[Block]:
    """
    Draw ``count`` blocks by shuffle-without-replacement.

    Walk a shuffled copy of the pool in order and reshuffle when it runs out,
    so blocks only repeat once the pool is exhausted. When the next draw would
    repeat the previous pick it is swapped with the nearest later block in the
    walk that differs. If the rest of the walk is all the same block (duplicate
    ids in the pool), any differing block from the pool is drawn instead.
    A pool with a single distinct block repeats, which is unavoidable.
    """
    if not pool or count <= 0:
        return []

    rng = rng or random.Random()
    selected: List[Block] = []
    walk = _shuffled(pool, rng)
    idx = 0

    for _ in range(count):
        if idx >= len(walk):
            walk = _shuffled(pool, rng)
            idx = 0

        if selected and walk[idx].id == selected[-1].id:
            previous_id = selected[-1].id
            swap_idx = next(
                (j for j in range(idx + 1, len(walk)) if walk[j].id != previous_id),
                None,
            )
            if swap_idx is not None:
                walk[idx], walk[swap_idx] = walk[swap_idx], walk[idx]
            else:
                others = [b for b in pool if b.id != previous_id]
                if others:
                    walk[idx] = rng.choice(others)

        selected.append(walk[idx])
        idx += 1

    return selected


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SectionedBlock:
    block: Block
    section: Section


def section_for_position(index: int, total: int) -> Section:
    """Section label by position alone; block content never matters."""
    if total == 1:
        return Section.MAIN
    if total == 2:
        return Section.WARM_UP if index == 0 else Section.MAIN
    if index == 0:
        return Section.WARM_UP
    if index == total - 1:
        return Section.INTEGRATION
    return Section.MAIN


def assign_sections(selected: Sequence[Block]) -> List[SectionedBlock]:
    total = len(selected)
    return [
        SectionedBlock(block=block, section=section_for_position(i, total))
        for i, block in enumerate(selected)
    ]
