"""
Cooperative session driver.

The only mutator of session state. Each ``poll()`` measures wall time since
the previous poll, feeds it to the reducer along with the media player's
reported position, and forwards every emitted event to the persistence
boundary and the music/media controllers.

User actions (pause, skip, seek, end flow, exit check-in) go through the same
object so they are applied on the same logical thread as the ticks.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from core.config import settings
from player import session as machine
from player.persistence import PersistenceBoundary, PersistenceError
from player.session import CheckIn, MusicLevelChanged, SeekRequested, SessionState, SessionStatus
from services.segments import FlowType, Segment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaStatus:
    position_s: float
    duration_s: Optional[float] = None
    finished: bool = False


class MediaController(Protocol):
    def load(self, segment: Segment, segment_index: int) -> None: ...
    def poll(self) -> Optional[MediaStatus]: ...
    def seek(self, position_s: float) -> None: ...


class MusicController(Protocol):
    def set_level(self, level: float) -> None: ...


class SessionDriver:
    def __init__(
        self,
        segments: Sequence[Segment],
        flow_type: FlowType,
        boundary: PersistenceBoundary,
        entry_check_in: Optional[CheckIn] = None,
        music_volume: float = 1.0,
        media: Optional[MediaController] = None,
        music: Optional[MusicController] = None,
        clock: Callable[[], float] = time.monotonic,
        poll_interval_s: Optional[float] = None,
    ):
        self.boundary = boundary
        self.media = media
        self.music = music
        self.clock = clock
        self.poll_interval_s = poll_interval_s if poll_interval_s is not None else settings.POLL_INTERVAL_S
        self.committed = False

        self.state, events = machine.start_session(
            segments, flow_type, entry_check_in=entry_check_in, music_volume=music_volume
        )
        self._last_poll = self.clock()
        self._loaded_cycle: Optional[int] = None
        self._apply(events)
        if self.music is not None:
            self.music.set_level(self.state.effective_music_volume)

    # Event plumbing --------------------------------------------------------

    def _apply(self, events: Iterable[object]) -> List[object]:
        events = list(events)
        self.boundary.handle(events)
        for event in events:
            if isinstance(event, MusicLevelChanged) and self.music is not None:
                self.music.set_level(event.level)
            elif isinstance(event, SeekRequested) and self.media is not None:
                self.media.seek(event.position_s)
        self._sync_media()
        return events

    def _sync_media(self) -> None:
        if self.media is None or self.state.is_terminal:
            return
        if self.state.cycle != self._loaded_cycle:
            self._loaded_cycle = self.state.cycle
            segment = self.state.current_segment
            if segment is not None and segment.is_block:
                self.media.load(segment, self.state.cycle)

    def _transition(self, step) -> List[object]:
        self.state, events = step(self.state)
        return self._apply(events)

    # Clock -----------------------------------------------------------------

    def _catch_up(self) -> List[object]:
        """Feed the reducer the wall time since the previous clock read."""
        now = self.clock()
        elapsed_ms = (now - self._last_poll) * 1000.0
        self._last_poll = now
        return self._transition(lambda s: machine.tick(s, elapsed_ms))

    def poll(self) -> List[object]:
        """One scheduler tick: elapsed wall time, then the media report."""
        emitted = self._catch_up()

        if self.media is not None and not self.state.paused:
            report = self.media.poll()
            if report is not None:
                cycle = self.state.cycle
                emitted += self._transition(
                    lambda s: machine.media_progress(s, report.position_s, report.duration_s)
                )
                if report.finished and self.state.cycle == cycle:
                    emitted += self._transition(lambda s: machine.media_finished(s, cycle))
        return emitted

    def run(self, sleep: Callable[[float], None] = time.sleep) -> SessionState:
        """Poll until the session completes or is abandoned."""
        while not self.state.is_terminal:
            self.poll()
            sleep(self.poll_interval_s)
        return self.state

    # User actions ----------------------------------------------------------

    def pause(self) -> List[object]:
        # Time played since the last poll counts before the clock stops
        emitted = self._catch_up()
        return emitted + self._transition(machine.pause)

    def resume(self) -> List[object]:
        # Time spent paused never reaches the reducer
        self._last_poll = self.clock()
        return self._transition(machine.resume)

    def skip(self) -> List[object]:
        return self._transition(machine.skip)

    def seek(self, delta_s: float) -> List[object]:
        return self._transition(lambda s: machine.seek(s, delta_s))

    def end_flow(self) -> List[object]:
        if self.state.status == SessionStatus.COMPLETED and not self.committed:
            # Completed but never committed: the reducer has nothing to abort,
            # the buffered session still has to go
            self.boundary.abandon()
            return []
        return self._transition(machine.abandon)

    def finish(self, exit_check_in: CheckIn) -> Optional[int]:
        """
        Record the exit check-in and, for daily flows, commit the chain.

        Returns the chain id. Raises PersistenceError if the commit fails;
        calling ``finish`` again retries the commit with the cached data.
        """
        if self.state.status != SessionStatus.COMPLETED:
            raise ValueError("Session has not completed")
        if self.state.exit_check_in is None:
            self._transition(lambda s: machine.record_exit_check_in(s, exit_check_in))
        try:
            chain_id = self.boundary.commit()
        except PersistenceError:
            logger.warning("Chain commit failed; session data kept for retry")
            raise
        self.committed = True
        return chain_id
