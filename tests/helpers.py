from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Tuple

from drawpoker.cards import Card, full_deck, parse_cards
from drawpoker.game import GameEngine
from drawpoker.history import HandHistoryRecorder
from drawpoker.models import ActionType, Phase, TableConfig
from drawpoker.session import SessionContext
from drawpoker.sinks import MemoryLogSink


class FakeClock:
    """Returns scripted millisecond readings, then repeats the last one."""

    def __init__(self, readings: Iterable[int] = (1_000,)) -> None:
        self.readings: List[int] = list(readings)
        self.calls = 0

    def __call__(self) -> int:
        idx = min(self.calls, len(self.readings) - 1)
        self.calls += 1
        return self.readings[idx]


class Ticker:
    """Advances one millisecond per reading."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


def create_table(
    names: Sequence[str] = ("P2", "P1"),
    *,
    clock=None,
    **config,
) -> Tuple[GameEngine, HandHistoryRecorder, SessionContext]:
    """Engine wired to a recorder with in-memory sinks; seats follow ``names``."""
    config.setdefault("seats", len(names))
    session = SessionContext.open(clock=clock or Ticker())
    recorder = HandHistoryRecorder(session, MemoryLogSink(), MemoryLogSink())
    engine = GameEngine(TableConfig(**config), session, recorder.record_many)
    for name in names:
        engine.assign_seat(name)
    return engine, recorder, session


def stacked(hands: Dict[int, Sequence[str]], order: Sequence[int], draws: Sequence[str] = ()):
    """Shuffler whose deal gives each seat in ``hands`` exactly those cards.

    ``order`` is the clockwise deal order starting left of the button;
    ``draws`` sit on top of the remaining deck for the draw phase.
    """
    top: List[Card] = []
    for round_idx in range(5):
        for seat in order:
            top.extend(parse_cards([hands[seat][round_idx]]))
    top.extend(parse_cards(list(draws)))
    rest = [card for card in full_deck() if card not in top]
    deck = top + rest
    return lambda: list(deck)


def ante_all(engine: GameEngine) -> None:
    assert engine.hand is not None
    for seat_idx in engine.hand.order:
        seat = engine.seats[seat_idx]
        assert seat is not None
        engine.post_ante(seat_idx, min(engine.config.ante, seat.stack))


def perform_actions(engine: GameEngine, actions: Iterable[Tuple[int, ActionType, int | None]]) -> None:
    """Apply a scripted sequence of actions (seat, action, amount)."""
    for seat_idx, action, amount in actions:
        engine.act(seat_idx, action, amount)


def check_or_call_round(engine: GameEngine) -> None:
    """Let every remaining actor check/call until the betting round closes."""
    assert engine.hand is not None
    phase = engine.hand.phase
    while engine.hand.phase == phase:
        actor = engine.next_actor()
        if actor is None:
            break
        legal, *_ = engine.legal_actions(actor)
        engine.act(actor, ActionType.CHECK if ActionType.CHECK in legal else ActionType.CALL)


def stand_pat(engine: GameEngine) -> None:
    """Every remaining player keeps all five cards."""
    assert engine.hand is not None
    while engine.hand.phase == Phase.DRAWING:
        engine.draw(engine.hand.to_act, [])
