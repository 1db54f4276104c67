from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Callable

TABLE_PREFIX = "table-"


def new_table_name() -> str:
    # 128 random bits; collisions across sessions are not handled.
    return TABLE_PREFIX + secrets.token_hex(16)


class MillisecondClock:
    """Wall-clock milliseconds that never run backwards."""

    def __init__(self, source: Callable[[], float] = time.time) -> None:
        self.source = source
        self.last = 0

    def __call__(self) -> int:
        now = int(self.source() * 1000)
        if now > self.last:
            self.last = now
        return self.last


@dataclass
class SessionContext:
    """Per-session state passed explicitly to the engine and the recorder."""

    table_name: str
    clock: Callable[[], int] = field(default_factory=MillisecondClock)
    hand_counter: int = 0
    next_sequence: int = 0

    @classmethod
    def open(cls, clock: Callable[[], int] | None = None) -> "SessionContext":
        if clock is None:
            return cls(table_name=new_table_name())
        return cls(table_name=new_table_name(), clock=clock)

    def begin_hand(self) -> int:
        self.hand_counter += 1
        return self.hand_counter

    def reserve_sequence(self, count: int) -> int:
        """Claim ``count`` consecutive sequence numbers and return the first."""
        first = self.next_sequence
        self.next_sequence += count
        return first
