"""
Quick routines: fixed block sequences for the start and the end of the day.

Unlike daily flows these are not tailored to a polyvagal state. The sequence
is chosen by routine type and length, and completions are streamed to the
chain as they happen.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Sequence

from core.exceptions import CatalogUnavailableError, NotFoundError
from services.block_store import Block
from services.flow_assembler import assemble_segments
from services.polyvagal import assign_sections
from services.segments import Segment

logger = logging.getLogger(__name__)


class RoutineType(str, Enum):
    MORNING = "morning"
    NIGHT = "night"


ROUTINE_CONFIGS: Dict[RoutineType, Dict[int, List[str]]] = {
    RoutineType.MORNING: {
        2: ["vagus_reset", "arm_shoulder_hand_circles"],
        6: [
            "vagus_reset", "heart_opener", "self_havening",
            "body_tapping", "freeze_roll", "arm_shoulder_hand_circles",
        ],
        10: [
            "vagus_reset", "heart_opener", "upward_gaze", "self_havening", "humming",
            "ear_stretch", "body_tapping", "shaking", "freeze_roll", "arm_shoulder_hand_circles",
        ],
    },
    RoutineType.NIGHT: {
        2: ["eye_covering", "self_hug_swaying"],
        6: [
            "eye_covering", "self_havening", "humming",
            "brain_hold", "squeeze_hands_release", "self_hug_swaying",
        ],
        10: [
            "vagus_reset_lying_down", "eye_covering", "upward_gaze", "self_havening", "humming",
            "ear_stretch", "brain_hold", "body_tapping", "squeeze_hands_release", "self_hug_swaying",
        ],
    },
}

ROUTINE_BLOCK_COUNTS = (2, 6, 10)
DEFAULT_BLOCK_COUNT = 6

# Night runs 18:00 through 04:59
NIGHT_STARTS_AT = 18
MORNING_STARTS_AT = 5


def auto_routine_type(local_hour: Optional[int] = None) -> RoutineType:
    hour = datetime.now().hour if local_hour is None else local_hour
    if hour >= NIGHT_STARTS_AT or hour < MORNING_STARTS_AT:
        return RoutineType.NIGHT
    return RoutineType.MORNING


def get_routine_config(routine_type: str, block_count: int) -> List[str]:
    """Canonical names for a routine. Raises NotFoundError for unknown combinations."""
    try:
        config = ROUTINE_CONFIGS[RoutineType(routine_type)]
    except ValueError:
        raise NotFoundError("Routine type", routine_type)

    names = config.get(block_count)
    if names is None:
        raise NotFoundError("Routine length", f"{routine_type}/{block_count}")
    return list(names)


def build_routine_segments(names: Sequence[str], catalog: Sequence[Block]) -> List[Segment]:
    """
    Resolve ``names`` against ``catalog`` in routine order and assemble them.

    Names missing from the catalog are skipped. Quick routines never carry
    body scans.
    """
    by_name = {b.canonical_name: b for b in catalog}
    resolved = []
    for name in names:
        block = by_name.get(name)
        if block is None:
            logger.warning(f"Routine block not in catalog: {name}")
            continue
        resolved.append(block)

    if not resolved:
        raise CatalogUnavailableError("No routine blocks available")

    return assemble_segments(assign_sections(resolved), scan_start=False, scan_end=False)
