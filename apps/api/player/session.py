"""
Session state machine for playing back a segment timeline.

Every transition is a pure function ``(state, ...) -> (state, events)`` over
an immutable ``SessionState``. Nothing here owns a timer or a media player:
the driver feeds in elapsed wall-clock time and media positions, and applies
the returned events.

Phases:
    interstitial   body scans and micro-integration pauses
    video          a somi_block is playing

Pause is orthogonal to phase. While paused no clock advances and the
effective music level is 0; resuming restores the configured level and the
exact clock value the segment had.

Completion events:
    Each somi_block or body_scan completion (natural end, skip or timeout)
    emits one BlockCompleted. A latch keyed by segment index makes a second
    emission for the same segment impossible.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, List, Optional, Sequence, Tuple

from core.config import settings
from services.segments import FlowType, Section, Segment, SegmentType

# Videos count as done slightly before their end; media players rarely
# report the exact final frame.
COMPLETION_TOLERANCE_S = 0.5
VIDEO_CAP_SECONDS = 60
SEEK_STEP_SECONDS = 15


class Phase(str, Enum):
    INTERSTITIAL = "interstitial"
    VIDEO = "video"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class CheckIn:
    """Self-reported energy/safety snapshot, 0-100 each."""
    energy_level: float
    safety_level: float
    journal_entry: Optional[str] = None
    tags: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BlockCompleted:
    block_id: int
    seconds_elapsed: int
    order_index: int
    section: Section
    flow_type: FlowType
    segment_index: int


@dataclass(frozen=True)
class CheckInRecorded:
    check_in: CheckIn
    kind: str  # 'entry' | 'exit'


@dataclass(frozen=True)
class SessionCompleted:
    flow_type: FlowType


@dataclass(frozen=True)
class SessionAborted:
    flow_type: FlowType


@dataclass(frozen=True)
class MusicLevelChanged:
    level: float


@dataclass(frozen=True)
class SeekRequested:
    position_s: float


# ---------------------------------------------------------------------------
# State
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionState:
    segments: Tuple[Segment, ...]
    flow_type: FlowType
    cycle: int = 0
    segment_elapsed_s: float = 0.0
    media_duration_s: Optional[float] = None
    paused: bool = False
    status: SessionStatus = SessionStatus.ACTIVE
    entry_check_in: Optional[CheckIn] = None
    exit_check_in: Optional[CheckIn] = None
    music_volume: float = 1.0
    emitted: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_terminal(self) -> bool:
        return self.status != SessionStatus.ACTIVE

    @property
    def current_segment(self) -> Optional[Segment]:
        if self.is_terminal or self.cycle >= len(self.segments):
            return None
        return self.segments[self.cycle]

    @property
    def phase(self) -> Optional[Phase]:
        segment = self.current_segment
        if segment is None:
            return None
        return Phase.VIDEO if segment.is_block else Phase.INTERSTITIAL

    @property
    def segment_allotted_s(self) -> float:
        """How long the current segment runs before it completes on its own."""
        segment = self.current_segment
        if segment is None:
            return 0.0
        if not segment.is_block:
            return float(segment.duration_seconds)
        cap = float(min(VIDEO_CAP_SECONDS, segment.duration_seconds))
        if self.media_duration_s:
            return min(cap, self.media_duration_s)
        return cap

    @property
    def remaining_seconds(self) -> float:
        """Unconsumed time of the current segment plus every later segment."""
        if self.is_terminal:
            return 0.0
        current = max(0.0, self.segment_allotted_s - self.segment_elapsed_s)
        later = sum(s.duration_seconds for s in self.segments[self.cycle + 1:])
        return current + later

    @property
    def effective_music_volume(self) -> float:
        return 0.0 if self.paused else self.music_volume


Transition = Tuple[SessionState, List[object]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def order_index_for(segments: Sequence[Segment], index: int) -> int:
    """Leading scan is 0, blocks are 1..N, a trailing scan is N + 1."""
    segment = segments[index]
    if segment.type == SegmentType.BODY_SCAN:
        if index == 0:
            return 0
        return sum(1 for s in segments if s.is_block) + 1
    return sum(1 for s in segments[: index + 1] if s.is_block)


def _completion_threshold(state: SessionState) -> float:
    allotted = state.segment_allotted_s
    if state.phase == Phase.VIDEO:
        return max(0.0, allotted - COMPLETION_TOLERANCE_S)
    return allotted


def _complete_current(state: SessionState) -> Transition:
    segment = state.current_segment
    if segment is None:
        return state, []

    events: List[object] = []
    index = state.cycle
    emitted = state.emitted

    if segment.type in (SegmentType.SOMI_BLOCK, SegmentType.BODY_SCAN) and index not in emitted:
        block_id = segment.somi_block_id if segment.is_block else settings.BODY_SCAN_BLOCK_ID
        seconds = int(round(min(state.segment_elapsed_s, VIDEO_CAP_SECONDS)))
        events.append(BlockCompleted(
            block_id=block_id,
            seconds_elapsed=seconds,
            order_index=order_index_for(state.segments, index),
            section=segment.section,
            flow_type=state.flow_type,
            segment_index=index,
        ))
        emitted = emitted | {index}

    next_cycle = index + 1
    if next_cycle >= len(state.segments):
        state = replace(
            state,
            cycle=next_cycle,
            segment_elapsed_s=0.0,
            media_duration_s=None,
            status=SessionStatus.COMPLETED,
            emitted=emitted,
        )
        events.append(SessionCompleted(flow_type=state.flow_type))
        return state, events

    state = replace(
        state,
        cycle=next_cycle,
        segment_elapsed_s=0.0,
        media_duration_s=None,
        emitted=emitted,
    )
    return state, events


def _maybe_complete(state: SessionState) -> Transition:
    if state.paused or state.is_terminal:
        return state, []
    if state.segment_elapsed_s >= _completion_threshold(state):
        return _complete_current(state)
    return state, []


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def start_session(
    segments: Sequence[Segment],
    flow_type: FlowType,
    entry_check_in: Optional[CheckIn] = None,
    music_volume: float = 1.0,
) -> Transition:
    if not segments:
        raise ValueError("Cannot start a session with an empty timeline")

    state = SessionState(
        segments=tuple(segments),
        flow_type=FlowType(flow_type),
        entry_check_in=entry_check_in,
        music_volume=music_volume,
    )
    events: List[object] = []
    if entry_check_in is not None:
        events.append(CheckInRecorded(check_in=entry_check_in, kind="entry"))
    return state, events


def tick(state: SessionState, elapsed_ms: float) -> Transition:
    """
    Advance the session clock by ``elapsed_ms`` of wall time.

    Time left over once a segment completes carries into the next one, so a
    single large tick can finish several segments and ``remaining_seconds``
    always drops by the full elapsed time.
    """
    if state.paused or state.is_terminal or elapsed_ms <= 0:
        return state, []

    carry = elapsed_ms / 1000.0
    events: List[object] = []
    while carry > 0 and not state.is_terminal:
        cycle = state.cycle
        allotted = state.segment_allotted_s
        state = replace(state, segment_elapsed_s=state.segment_elapsed_s + carry)
        overflow = state.segment_elapsed_s - allotted
        state, emitted = _maybe_complete(state)
        events.extend(emitted)
        if state.cycle == cycle:
            break
        # A video completing inside its tolerance window has nothing to carry
        carry = max(0.0, overflow)
    return state, events


def media_progress(state: SessionState, position_s: float, duration_s: Optional[float] = None) -> Transition:
    """
    Sync the video clock to the player's reported position.

    The position replaces the clock rather than adding to it, so repeated
    reports of the same position never double count.
    """
    if state.is_terminal or state.phase != Phase.VIDEO:
        return state, []

    media_duration = state.media_duration_s
    if duration_s is not None and duration_s > 0:
        media_duration = duration_s

    state = replace(state, media_duration_s=media_duration)
    clamped = min(max(0.0, position_s), state.segment_allotted_s)
    state = replace(state, segment_elapsed_s=clamped)
    return _maybe_complete(state)


def media_finished(state: SessionState, segment_index: Optional[int] = None) -> Transition:
    """The video reported its end. Stale reports for an earlier segment are ignored."""
    if state.is_terminal or state.phase != Phase.VIDEO:
        return state, []
    if segment_index is not None and segment_index != state.cycle:
        return state, []
    if state.paused:
        return state, []
    return _complete_current(state)


def skip(state: SessionState) -> Transition:
    """Complete the current segment now, whatever its phase."""
    if state.is_terminal:
        return state, []
    return _complete_current(state)


def seek(state: SessionState, delta_s: float = SEEK_STEP_SECONDS) -> Transition:
    """Scrub within the playing video, clamped to [0, allotted]."""
    if state.is_terminal or state.phase != Phase.VIDEO:
        return state, []
    position = min(max(0.0, state.segment_elapsed_s + delta_s), state.segment_allotted_s)
    state = replace(state, segment_elapsed_s=position)
    return state, [SeekRequested(position_s=position)]


def pause(state: SessionState) -> Transition:
    if state.is_terminal or state.paused:
        return state, []
    state = replace(state, paused=True)
    return state, [MusicLevelChanged(level=state.effective_music_volume)]


def resume(state: SessionState) -> Transition:
    if state.is_terminal or not state.paused:
        return state, []
    state = replace(state, paused=False)
    return state, [MusicLevelChanged(level=state.effective_music_volume)]


def abandon(state: SessionState) -> Transition:
    """End the flow early. Terminal from any non-terminal point."""
    if state.is_terminal:
        return state, []
    state = replace(state, status=SessionStatus.ABORTED, paused=False)
    return state, [SessionAborted(flow_type=state.flow_type), MusicLevelChanged(level=0.0)]


def record_exit_check_in(state: SessionState, check_in: CheckIn) -> Transition:
    if state.status != SessionStatus.COMPLETED:
        raise ValueError("Exit check-in is only accepted after the session completes")
    if state.exit_check_in is not None:
        return state, []
    state = replace(state, exit_check_in=check_in)
    return state, [CheckInRecorded(check_in=check_in, kind="exit")]
