from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Deque, Iterator, List, Optional

if TYPE_CHECKING:
    from coherence_sim.engine import RequestOutcome


@dataclass(frozen=True)
class LogEntry:
    """A recorded request; `sequence` counts from 1 since the last clear."""
    sequence: int
    outcome: "RequestOutcome"

    def summary(self) -> str:
        o = self.outcome
        text = f"[{'hit' if o.hit else 'miss'}] {o.requester} {o.operation.name.lower()} {o.address_text}"
        if o.owner is not None:
            text += f" (home: {o.owner})"
        return text


class RequestLog:
    """
    Append-only bounded history, newest entry first.

    Once `limit` entries are held, recording a new one drops the oldest.
    """

    def __init__(self, limit: int = 10) -> None:
        if limit <= 0:
            raise ValueError("log limit must be positive")
        self.limit = limit
        self._entries: Deque[LogEntry] = deque(maxlen=limit)
        self._sequence = 0

    def record(self, outcome: "RequestOutcome") -> LogEntry:
        self._sequence += 1
        entry = LogEntry(self._sequence, outcome)
        self._entries.appendleft(entry)
        return entry

    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def latest(self) -> Optional[LogEntry]:
        return self._entries[0] if self._entries else None

    def get(self, position: int) -> LogEntry:
        """Entry at `position` in display order (0 is the newest)."""
        if not 0 <= position < len(self._entries):
            raise IndexError(f"no log entry at position {position}")
        return self._entries[position]

    def clear(self) -> None:
        self._entries.clear()
        self._sequence = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))
