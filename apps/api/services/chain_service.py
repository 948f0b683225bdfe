"""
Chain persistence.

Every query is scoped to the calling user: a chain that exists but belongs to
someone else is reported exactly like a chain that does not exist.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from core.exceptions import NotFoundError, PersistenceWriteError
from models import EmbodimentCheck, SomiBlock, SomiChain, SomiChainEntry
from services.segments import FlowType

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_LIMIT = 30


def _with_children(query):
    return query.options(
        selectinload(SomiChain.embodiment_checks),
        selectinload(SomiChain.entries).selectinload(SomiChainEntry.block),
    )


def _write(db: Session, row, resource: str):
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving {resource}: {e}")
        raise PersistenceWriteError(resource) from e
    return row


def get_owned_chain(user_id: str, chain_id: int, db: Session) -> SomiChain:
    chain = db.query(SomiChain).filter(
        SomiChain.id == chain_id,
        SomiChain.user_id == user_id,
    ).first()
    if chain is None:
        raise NotFoundError("Chain", str(chain_id))
    return chain


def create_chain(user_id: str, db: Session, flow_type: FlowType = FlowType.DAILY_FLOW) -> SomiChain:
    chain = SomiChain(user_id=user_id, flow_type=FlowType(flow_type).value)
    return _write(db, chain, "chain")


def list_chains(user_id: str, db: Session, limit: int = DEFAULT_CHAIN_LIMIT) -> List[SomiChain]:
    """Newest first, with check-ins and entries (and each entry's block) loaded."""
    return (
        _with_children(db.query(SomiChain))
        .filter(SomiChain.user_id == user_id)
        .order_by(SomiChain.created_at.desc(), SomiChain.id.desc())
        .limit(limit)
        .all()
    )


def latest_chain(user_id: str, db: Session, flow_type: Optional[FlowType] = None) -> Optional[SomiChain]:
    query = _with_children(db.query(SomiChain)).filter(SomiChain.user_id == user_id)
    if flow_type is not None:
        query = query.filter(SomiChain.flow_type == FlowType(flow_type).value)
    return query.order_by(SomiChain.created_at.desc(), SomiChain.id.desc()).first()


def delete_chain(user_id: str, chain_id: int, db: Session) -> None:
    """Delete a chain; its check-ins and entries go with it."""
    chain = get_owned_chain(user_id, chain_id, db)
    try:
        db.delete(chain)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting chain {chain_id}: {e}")
        raise PersistenceWriteError("chain deletion") from e


def add_embodiment_check(
    user_id: str,
    chain_id: int,
    db: Session,
    energy_level: Optional[float] = None,
    safety_level: Optional[float] = None,
    journal_entry: Optional[str] = None,
    tags: Optional[List[str]] = None,
) -> EmbodimentCheck:
    """Levels arrive as slider floats and are stored rounded."""
    get_owned_chain(user_id, chain_id, db)
    check = EmbodimentCheck(
        somi_chain_id=chain_id,
        user_id=user_id,
        energy_level=round(energy_level) if energy_level is not None else None,
        safety_level=round(safety_level) if safety_level is not None else None,
        journal_entry=journal_entry,
        tags=list(tags) if tags else None,
    )
    return _write(db, check, "check-in")


def add_chain_entry(
    user_id: str,
    chain_id: int,
    block_id: int,
    db: Session,
    seconds_elapsed: int = 0,
    order_index: int = 0,
    section: Optional[str] = None,
) -> SomiChainEntry:
    get_owned_chain(user_id, chain_id, db)
    if db.query(SomiBlock.id).filter(SomiBlock.id == block_id).first() is None:
        raise NotFoundError("Block", str(block_id))

    entry = SomiChainEntry(
        somi_chain_id=chain_id,
        somi_block_id=block_id,
        user_id=user_id,
        seconds_elapsed=seconds_elapsed,
        order_index=order_index,
        section=section,
    )
    return _write(db, entry, "entry")
