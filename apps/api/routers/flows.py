"""
Flow Generation API Router

One POST that turns a polyvagal state and a duration into a playable
segment timeline. The planner is optional; the selection engine is the fallback that always runs.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from schemas import FlowGenerateRequest, FlowGenerateResponse
from services.block_store import BlockStore
from services.flow_generator import FlowRequest, generate_flow
from services.flow_planner import FlowPlanner, get_planner_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/flows", tags=["Flows"])


def get_flow_planner() -> FlowPlanner:
    return FlowPlanner(client=get_planner_client())


@router.post("/generate", response_model=FlowGenerateResponse)
def generate(
    request: FlowGenerateRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
    planner: FlowPlanner = Depends(get_flow_planner),
):
    """
    Generate a flow for the caller's current state.

    With ``use_ai`` the planner gets a bounded attempt first; anything it
    can't deliver is replaced by the algorithmic plan.
    """
    pool = BlockStore(db).flow_pool()
    plan = generate_flow(
        pool,
        FlowRequest(
            polyvagal_state=request.polyvagal_state,
            duration_minutes=request.duration_minutes,
            body_scan_start=request.body_scan_start,
            body_scan_end=request.body_scan_end,
            use_ai=request.use_ai,
            local_hour=request.local_hour,
        ),
        planner=planner,
    )
    logger.info(
        f"Generated {plan.source.value} flow for user {current_user.id}: "
        f"{plan.block_count} blocks, {plan.actual_duration_seconds}s"
    )
    return plan.to_dict()
