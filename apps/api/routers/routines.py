"""
Quick Routines API Router

Fixed morning/night sequences. No body scans, no planner, no state filtering.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from schemas import RoutineGenerateRequest, RoutineGenerateResponse
from services.block_store import BlockStore
from services.flow_assembler import timeline_duration
from services.routine_config import auto_routine_type, build_routine_segments, get_routine_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/routines", tags=["Routines"])


@router.post("/generate", response_model=RoutineGenerateResponse)
def generate_routine(
    request: RoutineGenerateRequest,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    routine_type = request.routine_type or auto_routine_type(request.local_hour).value
    names = get_routine_config(routine_type, request.block_count)

    catalog = BlockStore(db).by_canonical_names(names)
    segments = build_routine_segments(names, catalog)

    played = sum(1 for s in segments if s.is_block)
    logger.info(f"Generated {routine_type} routine for user {current_user.id}: {played}/{len(names)} blocks")
    return {
        "routine_type": routine_type,
        "segments": [s.to_dict() for s in segments],
        "actual_duration_seconds": timeline_duration(segments),
    }
