"""
Flow assembly: turn section-labelled blocks into a playable segment timeline.

Interleave (fixed):
    [body_scan(warm_up)]
    micro_integration(s1) somi_block(s1)
    micro_integration(s2) somi_block(s2)
    ...
    [body_scan(integration)]

Every somi_block is immediately preceded by a micro_integration of the same
section, and body scans only ever sit at the very start or very end.
"""

import logging
from typing import List, Sequence

from services.block_store import Block
from services.polyvagal import SectionedBlock
from services.segments import (
    BLOCK_SECONDS,
    BODY_SCAN_SECONDS,
    MICRO_INTEGRATION_SECONDS,
    SECONDS_PER_BLOCK,
    Section,
    Segment,
    SegmentType,
)

logger = logging.getLogger(__name__)

# Below this duration there is no room for body scans
BODY_SCAN_MIN_MINUTES = 8


def body_scans_enabled(duration_minutes: int) -> bool:
    return duration_minutes >= BODY_SCAN_MIN_MINUTES


def body_scan_seconds(duration_minutes: int, body_scan_start: bool, body_scan_end: bool) -> int:
    if not body_scans_enabled(duration_minutes):
        return 0
    return BODY_SCAN_SECONDS * (int(bool(body_scan_start)) + int(bool(body_scan_end)))


def compute_block_count(duration_minutes: int, body_scan_start: bool, body_scan_end: bool) -> int:
    """
    Number of blocks that fit the requested duration.

    Each block costs 80s (60s exercise + 20s micro-integration). Always at
    least 1, however little time is left, so a flow is always playable.
    """
    remaining = duration_minutes * 60 - body_scan_seconds(duration_minutes, body_scan_start, body_scan_end)
    return max(1, remaining // SECONDS_PER_BLOCK)


def actual_duration_seconds(scan_seconds: int, block_count: int) -> int:
    """What the timeline really lasts; differs from the request by flooring."""
    return scan_seconds + block_count * SECONDS_PER_BLOCK


def block_segment(block: Block, section: Section) -> Segment:
    return Segment(
        type=SegmentType.SOMI_BLOCK,
        section=section,
        duration_seconds=BLOCK_SECONDS,
        somi_block_id=block.id,
        canonical_name=block.canonical_name,
        name=block.name,
        description=block.description,
        energy_delta=block.energy_delta,
        safety_delta=block.safety_delta,
        url=block.media_url,
    )


def assemble_segments(
    blocks_with_sections: Sequence[SectionedBlock],
    scan_start: bool,
    scan_end: bool,
) -> List[Segment]:
    """Deterministic interleave of scans, pauses and blocks."""
    segments: List[Segment] = []

    if scan_start:
        segments.append(Segment(SegmentType.BODY_SCAN, Section.WARM_UP, BODY_SCAN_SECONDS))

    for item in blocks_with_sections:
        segments.append(Segment(SegmentType.MICRO_INTEGRATION, item.section, MICRO_INTEGRATION_SECONDS))
        segments.append(block_segment(item.block, item.section))

    if scan_end:
        segments.append(Segment(SegmentType.BODY_SCAN, Section.INTEGRATION, BODY_SCAN_SECONDS))

    return segments


def timeline_duration(segments: Sequence[Segment]) -> int:
    return sum(s.duration_seconds for s in segments)


def swap_block(segments: Sequence[Segment], index: int, block: Block) -> List[Segment]:
    """
    Replace the block at ``index`` before the session starts.

    The section stays where assembly put it. Only somi_block positions can be
    swapped; anything else raises ValueError.
    """
    if index < 0 or index >= len(segments):
        raise ValueError(f"Segment index out of range: {index}")

    current = segments[index]
    if not current.is_block:
        raise ValueError(f"Segment {index} is a {current.type.value}, not a somi_block")

    swapped = list(segments)
    swapped[index] = block_segment(block, current.section)
    logger.debug("Swapped segment %d: %s -> %s", index, current.canonical_name, block.canonical_name)
    return swapped
