"""
Block Catalog API Router

Blocks are global content: any authenticated user can read them.
"""

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from core.exceptions import ValidationError
from schemas import BlockListResponse
from services.block_store import BlockStore

router = APIRouter(prefix="/api/blocks", tags=["Blocks"])


@router.get("", response_model=BlockListResponse)
def get_blocks(
    canonical_names: str = Query(..., description="Comma-separated canonical names"),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    names = [n.strip() for n in canonical_names.split(",") if n.strip()]
    if not names:
        raise ValidationError("canonical_names parameter is required", field="canonical_names")

    blocks = BlockStore(db).by_canonical_names(names)
    return {"blocks": [asdict(b) for b in blocks]}
