from __future__ import annotations

import logging
import random
from collections import Counter
from typing import Callable, List, Optional, Sequence, Tuple

from drawpoker.cards import Shuffler, parse_cards
from drawpoker.errors import GameError
from drawpoker.evaluator import evaluate_five
from drawpoker.game import GameEngine, HandContext
from drawpoker.models import ActionType, Phase

Decision = Tuple[ActionType, Optional[int]]
Strategy = Callable[[GameEngine, int], Decision]

LOGGER = logging.getLogger("practice.bots")

_RNG = random.Random()


def passive_strategy(engine: GameEngine, seat_idx: int) -> Decision:
    """Check when possible, otherwise call."""
    legal, *_ = engine.legal_actions(seat_idx)
    if ActionType.CHECK in legal:
        return ActionType.CHECK, None
    if ActionType.CALL in legal:
        return ActionType.CALL, None
    return ActionType.FOLD, None


def baseline_strategy(engine: GameEngine, seat_idx: int, rng: Optional[random.Random] = None) -> Decision:
    """Demo bot: bets and raises with made hands, folds junk to pressure."""
    rng = rng or _RNG
    legal, call_amount, min_amount, max_amount = engine.legal_actions(seat_idx)
    seat = engine.seats[seat_idx]
    category = evaluate_five(parse_cards(seat.hole_cards))[0] if seat else 0
    phase = engine.hand.phase if engine.hand else Phase.BETTING_1
    facing_bet = call_amount is not None

    aggressive = category >= 2 or (category == 1 and phase == Phase.BETTING_1 and rng.random() < 0.3)
    wager = ActionType.RAISE if facing_bet else ActionType.BET
    if wager in legal and aggressive and min_amount is not None:
        return wager, _choose_amount(min_amount, max_amount, category, rng)

    if facing_bet:
        if category == 0 and rng.random() < 0.6:
            return ActionType.FOLD, None
        return ActionType.CALL, None
    return ActionType.CHECK, None


def _choose_amount(min_amount: int, max_amount: Optional[int], category: int, rng: random.Random) -> int:
    if max_amount is None or max_amount <= min_amount:
        return min_amount
    # Stronger hands push a bigger share of the allowed range.
    span = max_amount - min_amount
    share = min(0.15 * category, 1.0) * rng.random()
    return min_amount + int(span * share)


def choose_discards(hole: Sequence[str], max_discards: int = 5) -> List[int]:
    """Keep pairs or better and made five-card hands; discard the rest."""
    cards = parse_cards(hole)
    category = evaluate_five(cards)[0]
    if category >= 4:
        return []
    counts = Counter(card.rank for card in cards)
    keep_ranks = {rank for rank, count in counts.items() if count >= 2}
    if not keep_ranks:
        # Hold the highest card and draw to it.
        keep_ranks = {max(card.rank for card in cards)}
    discards = [idx for idx, card in enumerate(cards) if card.rank not in keep_ranks]
    discards.sort(key=lambda idx: cards[idx].rank)
    return sorted(discards[:max_discards])


def play_hand(engine: GameEngine, shuffler: Shuffler, strategy: Strategy = passive_strategy) -> HandContext:
    """Drive one hand from antes to settlement with scripted decisions."""
    ctx = engine.start_hand(shuffler)
    for seat_idx in list(ctx.order):
        seat = engine.seats[seat_idx]
        assert seat is not None
        engine.post_ante(seat_idx, min(engine.config.ante, seat.stack))
    engine.deal_hole_cards()

    while not engine.is_hand_complete():
        if ctx.phase == Phase.SHOWDOWN:
            engine.resolve_showdown()
            continue
        actor = engine.next_actor()
        if actor is None:
            raise RuntimeError(f"No actor in phase {ctx.phase.value}")
        if ctx.phase == Phase.DRAWING:
            seat = engine.seats[actor]
            assert seat is not None
            limit = min(engine.config.max_discards, len(ctx.deck))
            engine.draw(actor, choose_discards(seat.hole_cards, limit))
            continue
        action, amount = strategy(engine, actor)
        try:
            engine.act(actor, action, amount)
        except GameError as exc:
            LOGGER.warning("Seat %s: action rejected (%s): %s", actor, exc.code, exc)
            fallback, _ = passive_strategy(engine, actor)
            engine.act(actor, fallback)
    LOGGER.info("Hand %d settled", ctx.hand_number)
    return ctx
