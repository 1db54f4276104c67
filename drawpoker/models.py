from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional


class Phase(str, Enum):
    AWAITING_ANTE = "AWAITING_ANTE"
    DEALT = "DEALT"
    BETTING_1 = "BETTING_1"
    DRAWING = "DRAWING"
    BETTING_2 = "BETTING_2"
    SHOWDOWN = "SHOWDOWN"
    FOLDED_OUT = "FOLDED_OUT"
    SETTLED = "SETTLED"


class ActionType(str, Enum):
    ANTE = "ANTE"
    BET = "BET"
    CALL = "CALL"
    RAISE = "RAISE"
    CHECK = "CHECK"
    FOLD = "FOLD"
    DRAW = "DRAW"
    SHOWDOWN = "SHOWDOWN"


BETTING_ACTIONS: FrozenSet[ActionType] = frozenset(
    {ActionType.BET, ActionType.CALL, ActionType.RAISE, ActionType.CHECK, ActionType.FOLD}
)

BETTING_PHASES: FrozenSet[Phase] = frozenset({Phase.BETTING_1, Phase.BETTING_2})

# Every phase change the engine makes must appear here.
TRANSITIONS: Dict[Phase, FrozenSet[Phase]] = {
    Phase.AWAITING_ANTE: frozenset({Phase.DEALT}),
    Phase.DEALT: frozenset({Phase.BETTING_1}),
    Phase.BETTING_1: frozenset({Phase.DRAWING, Phase.FOLDED_OUT}),
    Phase.DRAWING: frozenset({Phase.BETTING_2}),
    Phase.BETTING_2: frozenset({Phase.SHOWDOWN, Phase.FOLDED_OUT}),
    Phase.SHOWDOWN: frozenset({Phase.SETTLED}),
    Phase.FOLDED_OUT: frozenset({Phase.SETTLED}),
    Phase.SETTLED: frozenset(),
}

# Which public engine operation each phase accepts.
OPERATIONS: Dict[Phase, FrozenSet[str]] = {
    Phase.AWAITING_ANTE: frozenset({"post_ante", "deal_hole_cards"}),
    Phase.DEALT: frozenset(),
    Phase.BETTING_1: frozenset({"act"}),
    Phase.DRAWING: frozenset({"draw"}),
    Phase.BETTING_2: frozenset({"act"}),
    Phase.SHOWDOWN: frozenset({"resolve_showdown"}),
    Phase.FOLDED_OUT: frozenset(),
    Phase.SETTLED: frozenset({"reveal"}),
}


@dataclass
class TableConfig:
    seats: int = 6
    starting_stack: int = 1_000
    ante: int = 5
    min_bet: int = 10
    # None means no limit on a bet or raise increment.
    max_bet: Optional[int] = None
    max_discards: int = 5


@dataclass
class PlayerSeat:
    seat: int
    name: str
    name_key: str
    stack: int
    committed: int = 0
    total_in_pot: int = 0
    has_folded: bool = False
    all_in: bool = False
    has_anted: bool = False
    has_drawn: bool = False
    in_hand: bool = False
    hole_cards: List[str] = field(default_factory=list)

    def reset_for_hand(self) -> None:
        self.committed = 0
        self.total_in_pot = 0
        self.has_folded = False
        self.all_in = False
        self.has_anted = False
        self.has_drawn = False
        self.in_hand = self.stack > 0
        self.hole_cards.clear()

    def reset_for_round(self) -> None:
        self.committed = 0

    @property
    def live(self) -> bool:
        return self.in_hand and not self.has_folded

    @property
    def can_act(self) -> bool:
        return self.live and not self.all_in and self.stack > 0


@dataclass
class Event:
    ev: str
    hand: int
    data: Dict[str, object] = field(default_factory=dict)
