"""
Flow generation: one entry point for both the planner and the selection engine.

The result is always a tagged ``FlowPlan``. ``source`` says which path built
the timeline, so callers and tests never have to infer it from side effects.

Planner path rules:
- Only attempted when the request asks for it and a planner is configured
- Bounded wait; a late answer is abandoned, not interrupted
- Any planner failure degrades to the algorithmic plan, never to an error
"""

import logging
import random
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from core.config import settings
from core.exceptions import CatalogUnavailableError
from services.block_store import Block
from services.flow_assembler import (
    actual_duration_seconds,
    assemble_segments,
    body_scan_seconds,
    body_scans_enabled,
    compute_block_count,
    timeline_duration,
)
from services.flow_explainer import generate_explanation
from services.flow_planner import DEFAULT_INTENSITY, FlowPlanner, PlannerResult
from services.polyvagal import (
    SectionedBlock,
    TargetState,
    assign_sections,
    filter_blocks_by_state,
    select_blocks,
)
from services.segments import Segment

logger = logging.getLogger(__name__)


class PlanSource(str, Enum):
    AI = "ai"
    ALGORITHMIC = "algorithmic"


@dataclass(frozen=True)
class FlowRequest:
    polyvagal_state: Union[TargetState, str]
    duration_minutes: int
    body_scan_start: bool = False
    body_scan_end: bool = False
    use_ai: bool = False
    local_hour: Optional[int] = None

    @property
    def scan_start(self) -> bool:
        return self.body_scan_start and body_scans_enabled(self.duration_minutes)

    @property
    def scan_end(self) -> bool:
        return self.body_scan_end and body_scans_enabled(self.duration_minutes)

    @property
    def state_value(self) -> str:
        return self.polyvagal_state.value if isinstance(self.polyvagal_state, TargetState) else str(self.polyvagal_state)


@dataclass
class FlowPlan:
    source: PlanSource
    segments: List[Segment]
    actual_duration_seconds: int
    reasoning: Optional[str] = None

    @property
    def block_count(self) -> int:
        return sum(1 for s in self.segments if s.is_block)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "segments": [s.to_dict() for s in self.segments],
            "actual_duration_seconds": self.actual_duration_seconds,
            "reasoning": self.reasoning,
            "source": self.source.value,
        }


def algorithmic_plan(
    pool: Sequence[Block],
    request: FlowRequest,
    rng: Optional[random.Random] = None,
) -> FlowPlan:
    """Filter → select → section → assemble, with a templated rationale."""
    block_count = compute_block_count(request.duration_minutes, request.body_scan_start, request.body_scan_end)
    candidates = filter_blocks_by_state(pool, request.polyvagal_state)
    selected = select_blocks(candidates, block_count, rng=rng)
    segments = assemble_segments(assign_sections(selected), request.scan_start, request.scan_end)

    scan_seconds = body_scan_seconds(request.duration_minutes, request.body_scan_start, request.body_scan_end)
    return FlowPlan(
        source=PlanSource.ALGORITHMIC,
        segments=segments,
        actual_duration_seconds=actual_duration_seconds(scan_seconds, len(selected)),
        reasoning=generate_explanation(request.polyvagal_state, segments),
    )


def plan_from_planner(
    pool: Sequence[Block],
    request: FlowRequest,
    result: PlannerResult,
) -> Optional[FlowPlan]:
    """Resolve a validated planner result into a timeline. None if nothing resolves."""
    by_name = {b.canonical_name: b for b in pool}
    sectioned = [
        SectionedBlock(block=by_name[p.canonical_name], section=p.section)
        for p in result.blocks
        if p.canonical_name in by_name
    ]
    if not sectioned:
        return None

    segments = assemble_segments(sectioned, request.scan_start, request.scan_end)
    return FlowPlan(
        source=PlanSource.AI,
        segments=segments,
        actual_duration_seconds=timeline_duration(segments),
        reasoning=result.reasoning,
    )


def _run_planner(
    planner: FlowPlanner,
    pool: Sequence[Block],
    request: FlowRequest,
    timeout_s: float,
) -> Optional[PlannerResult]:
    """Call the planner on a worker thread with a hard deadline."""
    block_count = compute_block_count(request.duration_minutes, request.body_scan_start, request.body_scan_end)
    available = sorted({b.canonical_name for b in pool})

    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(
        planner.plan,
        polyvagal_state=request.state_value,
        duration_minutes=request.duration_minutes,
        block_count=block_count,
        available_blocks=available,
        intensity=DEFAULT_INTENSITY,
        local_hour=request.local_hour,
    )
    try:
        return future.result(timeout=timeout_s)
    except FuturesTimeout:
        logger.warning("Flow planner timeout (%ss), using algorithmic plan", timeout_s)
        future.cancel()
        return None
    except Exception as e:
        logger.warning(f"Flow planner raised, using algorithmic plan: {e}")
        return None
    finally:
        executor.shutdown(wait=False)


def generate_flow(
    pool: Sequence[Block],
    request: FlowRequest,
    planner: Optional[FlowPlanner] = None,
    timeout_s: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> FlowPlan:
    """
    Build a flow for ``request`` from the eligible block ``pool``.

    Raises CatalogUnavailableError when the pool is empty: there is nothing
    to play and no partial flow is ever returned.
    """
    if not pool:
        raise CatalogUnavailableError("No blocks available")

    if request.use_ai and planner is not None:
        deadline = settings.PLANNER_TIMEOUT_S if timeout_s is None else timeout_s
        result = _run_planner(planner, pool, request, deadline)
        if result is not None and result.success:
            plan = plan_from_planner(pool, request, result)
            if plan is not None:
                logger.info(
                    "Flow planned by AI",
                    extra={"extra_fields": {
                        "state": request.state_value,
                        "blocks": plan.block_count,
                        "dropped": len(result.dropped_names),
                        "latency_ms": result.latency_ms,
                    }},
                )
                return plan
        elif result is not None:
            logger.info(f"Flow planner unsuccessful ({result.error}), using algorithmic plan")

    plan = algorithmic_plan(pool, request, rng=rng)
    logger.info(
        "Flow assembled algorithmically",
        extra={"extra_fields": {"state": request.state_value, "blocks": plan.block_count}},
    )
    return plan
