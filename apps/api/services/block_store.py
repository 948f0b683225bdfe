"""
Block catalog access.

Blocks are global content: every authenticated user reads the same rows.
Rows are copied into immutable ``Block`` values as soon as they are fetched,
so a session never sees a catalog edit mid-flight.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import CatalogUnavailableError
from models import SomiBlock

logger = logging.getLogger(__name__)

FLOW_MEDIA_TYPE = "video"
FLOW_BLOCK_TYPE = "vagal_toning"


@dataclass(frozen=True)
class Block:
    id: int
    canonical_name: str
    name: str
    description: Optional[str] = None
    energy_delta: Optional[int] = None
    safety_delta: Optional[int] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    block_type: Optional[str] = None
    active: Optional[bool] = None

    @classmethod
    def from_model(cls, row: SomiBlock) -> "Block":
        return cls(
            id=row.id,
            canonical_name=row.canonical_name,
            name=row.name,
            description=row.description,
            energy_delta=row.energy_delta,
            safety_delta=row.safety_delta,
            media_url=row.media_url,
            media_type=row.media_type,
            block_type=row.block_type,
            active=row.active,
        )


class BlockStore:
    """Read-only queries over ``somi_blocks``."""

    def __init__(self, db: Session):
        self.db = db

    def flow_pool(self) -> List[Block]:
        """
        Every block eligible for flow assembly.

        Raises CatalogUnavailableError if the store can't be read. An empty
        result is returned as-is; callers decide whether that is fatal.
        """
        try:
            rows = (
                self.db.query(SomiBlock)
                .filter(
                    SomiBlock.active.is_(True),
                    SomiBlock.media_type == FLOW_MEDIA_TYPE,
                    SomiBlock.block_type == FLOW_BLOCK_TYPE,
                )
                .order_by(SomiBlock.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error fetching blocks: {e}")
            raise CatalogUnavailableError() from e
        return [Block.from_model(r) for r in rows]

    def by_canonical_names(self, names: Iterable[str]) -> List[Block]:
        """Blocks matching any of ``names``, in catalog order."""
        wanted = [n for n in names if n]
        if not wanted:
            return []
        try:
            rows = (
                self.db.query(SomiBlock)
                .filter(SomiBlock.canonical_name.in_(wanted))
                .order_by(SomiBlock.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error fetching blocks by name: {e}")
            raise CatalogUnavailableError() from e
        return [Block.from_model(r) for r in rows]
