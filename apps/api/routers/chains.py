"""
Chains API Router

A chain is the durable record of one practice session: its embodiment
check-ins plus the blocks completed, in order. Daily flows create the chain
at commit time; quick routines create it up front and stream into it.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import AuthenticatedUser, get_current_user
from core.database import get_db
from schemas import ChainCreate, ChainEnvelope, ChainListResponse, DeleteResponse
from services import chain_service
from services.segments import FlowType

router = APIRouter(prefix="/api/chains", tags=["Chains"])


@router.get("", response_model=ChainListResponse)
def list_chains(
    limit: int = Query(chain_service.DEFAULT_CHAIN_LIMIT, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Caller's chains, newest first, with check-ins and entries."""
    return {"chains": chain_service.list_chains(current_user.id, db, limit=limit)}


@router.post("", response_model=ChainEnvelope, status_code=status.HTTP_201_CREATED)
def create_chain(
    body: Optional[ChainCreate] = None,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    flow_type = body.flow_type if body else FlowType.DAILY_FLOW
    return {"chain": chain_service.create_chain(current_user.id, db, flow_type=flow_type)}


@router.get("/latest", response_model=ChainEnvelope)
def get_latest_chain(
    flow_type: Optional[FlowType] = None,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Most recent chain, optionally of one flow type. ``chain`` is null if none."""
    return {"chain": chain_service.latest_chain(current_user.id, db, flow_type=flow_type)}


@router.delete("/{chain_id}", response_model=DeleteResponse)
def delete_chain(
    chain_id: int,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    chain_service.delete_chain(current_user.id, chain_id, db)
    return {"success": True}
