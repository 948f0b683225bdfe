"""
Timeline vocabulary shared by the flow assembler (server) and the player (client).

A segment timeline is the single artifact a session plays back. Segments are
ordered, and that order is never re-sorted once assembled.
"""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


BODY_SCAN_SECONDS = 60
MICRO_INTEGRATION_SECONDS = 20
BLOCK_SECONDS = 60
SECONDS_PER_BLOCK = BLOCK_SECONDS + MICRO_INTEGRATION_SECONDS  # 80


class Section(str, Enum):
    """A segment's role within the timeline's arc."""
    WARM_UP = "warm_up"
    MAIN = "main"
    INTEGRATION = "integration"


class SegmentType(str, Enum):
    BODY_SCAN = "body_scan"
    MICRO_INTEGRATION = "micro_integration"
    SOMI_BLOCK = "somi_block"


class FlowType(str, Enum):
    """Chain discriminator; also decides buffered vs streamed persistence."""
    DAILY_FLOW = "daily_flow"
    QUICK_ROUTINE = "quick_routine"


@dataclass(frozen=True)
class Segment:
    """
    One playable unit.

    ``somi_block`` segments carry a denormalized copy of the block so the
    client can display it offline.
    """
    type: SegmentType
    section: Section
    duration_seconds: int
    somi_block_id: Optional[int] = None
    canonical_name: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    energy_delta: Optional[int] = None
    safety_delta: Optional[int] = None
    url: Optional[str] = None

    @property
    def is_block(self) -> bool:
        return self.type == SegmentType.SOMI_BLOCK

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["section"] = self.section.value
        if not self.is_block:
            # Pauses and scans carry no block payload on the wire
            return {k: data[k] for k in ("type", "section", "duration_seconds")}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Segment":
        return cls(
            type=SegmentType(data["type"]),
            section=Section(data["section"]),
            duration_seconds=int(data["duration_seconds"]),
            somi_block_id=data.get("somi_block_id"),
            canonical_name=data.get("canonical_name"),
            name=data.get("name"),
            description=data.get("description"),
            energy_delta=data.get("energy_delta"),
            safety_delta=data.get("safety_delta"),
            url=data.get("url"),
        )
