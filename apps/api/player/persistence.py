"""
Where session events end up.

daily_flow
    Everything is buffered in a SessionCache. ``commit()`` writes one chain
    (chain, then check-ins, then entries) and clears the buffer only if every
    write succeeded. Abandoning discards the buffer.

quick_routine
    A chain is created on the first event and every event is written as it
    happens. A failed write is logged and the event is lost; playback never
    waits on persistence. Abandoning keeps whatever was already written.
"""

import logging
from typing import Iterable, List, Optional

from player.api_client import ApiError, SomiApiClient
from player.cache import SessionCache
from player.session import BlockCompleted, CheckIn, CheckInRecorded, SessionAborted
from services.segments import FlowType

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A buffered commit failed; the cache still holds the data."""


class PersistenceBoundary:
    def __init__(self, api: SomiApiClient, flow_type: FlowType, cache: Optional[SessionCache] = None):
        self.api = api
        self.flow_type = FlowType(flow_type)
        self.cache = cache if cache is not None else SessionCache()
        self.chain_id: Optional[int] = None

    @property
    def is_buffered(self) -> bool:
        return self.flow_type == FlowType.DAILY_FLOW

    def handle(self, events: Iterable[object]) -> None:
        """Route reducer events; anything not about persistence is ignored."""
        for event in events:
            if isinstance(event, BlockCompleted):
                self.record_block(event)
            elif isinstance(event, CheckInRecorded):
                self.record_check_in(event.check_in)
            elif isinstance(event, SessionAborted):
                self.abandon()

    # Recording -------------------------------------------------------------

    def record_check_in(self, check_in: CheckIn) -> None:
        if self.is_buffered:
            self.cache.add_check_in(check_in)
            return
        chain_id = self._ensure_chain()
        if chain_id is None:
            return
        try:
            self.api.save_check_in(chain_id, check_in)
        except ApiError as e:
            logger.warning(f"Dropped quick routine check-in for chain {chain_id}: {e}")

    def record_block(self, entry: BlockCompleted) -> None:
        if self.is_buffered:
            self.cache.add_entry(entry)
            return
        chain_id = self._ensure_chain()
        if chain_id is None:
            return
        try:
            self.api.save_entry(chain_id, entry)
        except ApiError as e:
            logger.warning(f"Dropped quick routine block {entry.block_id} for chain {chain_id}: {e}")

    def _ensure_chain(self) -> Optional[int]:
        if self.chain_id is not None:
            return self.chain_id
        try:
            chain = self.api.create_chain(self.flow_type)
        except ApiError as e:
            logger.warning(f"Could not create {self.flow_type.value} chain: {e}")
            return None
        self.chain_id = chain["id"]
        return self.chain_id

    # Session end -----------------------------------------------------------

    def commit(self) -> Optional[int]:
        """
        Write the buffered session as one chain and return its id.

        Quick routines have nothing buffered; their chain id (if any) is
        returned as-is. Raises PersistenceError with the cache intact if any
        write fails.
        """
        if not self.is_buffered:
            return self.chain_id
        if self.cache.is_empty:
            logger.info("Nothing buffered, skipping chain commit")
            return None
        try:
            self.chain_id = self.cache.commit(self._write_chain)
        except ApiError as e:
            logger.error(f"Daily flow commit failed, keeping session cache: {e}")
            raise PersistenceError(str(e)) from e
        return self.chain_id

    def _write_chain(self, check_ins: List[CheckIn], entries: List[BlockCompleted]) -> int:
        chain_id = self.api.create_chain(self.flow_type)["id"]
        try:
            for check_in in check_ins:
                self.api.save_check_in(chain_id, check_in)
            for entry in entries:
                self.api.save_entry(chain_id, entry)
        except ApiError:
            # Half-written chain; remove it so a retry starts clean
            try:
                self.api.delete_chain(chain_id)
            except ApiError as e:
                logger.warning(f"Could not remove partial chain {chain_id}: {e}")
            raise
        logger.info(f"Committed chain {chain_id}: {len(check_ins)} check-ins, {len(entries)} blocks")
        return chain_id

    def abandon(self) -> None:
        if self.is_buffered:
            self.cache.clear()
        self.chain_id = None
