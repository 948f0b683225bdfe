"""
Chain Entries API Router

One row per completed block. Quick routines call this once per block as the
session plays; daily flows call it in bulk at commit.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from schemas import ChainEntryCreate, ChainEntryEnvelope
from services import chain_service

router = APIRouter(prefix="/api/chain-entries", tags=["Chains"])


@router.post("", response_model=ChainEntryEnvelope, status_code=status.HTTP_201_CREATED)
def create_chain_entry(
    body: ChainEntryCreate,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    entry = chain_service.add_chain_entry(
        current_user.id,
        body.chain_id,
        body.block_id,
        db,
        seconds_elapsed=body.seconds_elapsed,
        order_index=body.session_order,
        section=body.section.value if body.section else None,
    )
    return {"entry": entry}
