"""
Buffered session data for daily flows.

Check-ins and completed blocks are held here until the whole session is done,
then written as one chain. The lock is held for the full duration of a
commit, so no append can land between the write and the clear.
"""

import threading
from typing import Callable, List, Tuple, TypeVar

from player.session import BlockCompleted, CheckIn

T = TypeVar("T")

CommitWriter = Callable[[List[CheckIn], List[BlockCompleted]], T]


class SessionCache:
    def __init__(self):
        self._lock = threading.RLock()
        self._check_ins: List[CheckIn] = []
        self._entries: List[BlockCompleted] = []

    def add_check_in(self, check_in: CheckIn) -> None:
        with self._lock:
            self._check_ins.append(check_in)

    def add_entry(self, entry: BlockCompleted) -> None:
        with self._lock:
            self._entries.append(entry)

    def snapshot(self) -> Tuple[Tuple[CheckIn, ...], Tuple[BlockCompleted, ...]]:
        with self._lock:
            return tuple(self._check_ins), tuple(self._entries)

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return not self._check_ins and not self._entries

    def clear(self) -> None:
        with self._lock:
            self._check_ins.clear()
            self._entries.clear()

    def commit(self, writer: "CommitWriter") -> T:
        """
        Hand the buffered data to ``writer`` and clear only if it returns.

        If ``writer`` raises, the buffer is left exactly as it was so the same
        commit can be retried.
        """
        with self._lock:
            result = writer(list(self._check_ins), list(self._entries))
            self._check_ins.clear()
            self._entries.clear()
            return result
