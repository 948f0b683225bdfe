"""
Embodiment Checks API Router

Self-reported energy/safety snapshots attached to a chain.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from schemas import EmbodimentCheckCreate, EmbodimentCheckEnvelope
from services import chain_service

router = APIRouter(prefix="/api/embodiment-checks", tags=["Chains"])


@router.post("", response_model=EmbodimentCheckEnvelope, status_code=status.HTTP_201_CREATED)
def create_embodiment_check(
    body: EmbodimentCheckCreate,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    check = chain_service.add_embodiment_check(
        current_user.id,
        body.chain_id,
        db,
        energy_level=body.energy_level,
        safety_level=body.safety_level,
        journal_entry=body.journal_entry,
        tags=body.tags,
    )
    return {"check": check}
