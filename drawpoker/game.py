from __future__ import annotations

import copy
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .cards import Card, Shuffler, cards_to_labels, deal, parse_cards, validate_deck
from .errors import IllegalAction, InsufficientStack, InvalidDiscard, InvalidPhase, LogDeliveryError, OutOfTurn
from .evaluator import Score, describe_rank, evaluate_five
from .models import (
    BETTING_ACTIONS,
    BETTING_PHASES,
    OPERATIONS,
    TRANSITIONS,
    ActionType,
    Event,
    Phase,
    PlayerSeat,
    TableConfig,
)
from .session import SessionContext

# GameEngine keeps all table state in memory. Nothing here does I/O: each
# operation hands its whole event batch to ``emit`` in one call and its state
# changes stand only if that call succeeds.

HAND_SIZE = 5


@dataclass
class HandContext:
    # All mutable info about the current hand (deck, pot, turn, etc.).
    hand_number: int
    button: int
    deck: List[Card]
    order: List[int]
    phase: Phase = Phase.AWAITING_ANTE
    pot: int = 0
    current_bet: int = 0
    last_raise_increment: int = 0
    pending: Set[int] = field(default_factory=set)
    to_act: Optional[int] = None
    # Set when everyone else folded; that seat may show its cards once.
    fold_winner: Optional[int] = None
    revealed: bool = False


class GameEngine:
    """Five-Card Draw engine for a single table."""

    def __init__(
        self,
        config: TableConfig,
        session: SessionContext,
        emit: Callable[[List[Event]], None],
    ) -> None:
        self.config = config
        self.session = session
        self.emit = emit
        self.seats: List[Optional[PlayerSeat]] = [None] * config.seats
        self.button: Optional[int] = None
        self.hand: Optional[HandContext] = None
        self._trail: List[Event] = []

    # Seat management -------------------------------------------------

    def assign_seat(self, name: str) -> PlayerSeat:
        display = name.strip()
        if not display:
            raise ValueError("NAME_REQUIRED")

        name_key = display.casefold()
        existing = self._find_seat_by_key(name_key)
        if existing:
            return existing

        for idx in range(self.config.seats):
            if self.seats[idx] is None:
                seat = PlayerSeat(seat=idx, name=display, name_key=name_key, stack=self.config.starting_stack)
                self.seats[idx] = seat
                return seat

        raise RuntimeError("Table is full")

    def _find_seat_by_key(self, name_key: str) -> Optional[PlayerSeat]:
        for seat in self.seats:
            if seat and seat.name_key == name_key:
                return seat
        return None

    def seating_order(self) -> List[int]:
        return [seat.seat for seat in self.seats if seat and seat.stack > 0]

    # Hand lifecycle --------------------------------------------------

    def can_start_hand(self) -> bool:
        return len(self.seating_order()) >= 2

    def start_hand(self, shuffler: Shuffler) -> HandContext:
        if self.hand and self.hand.phase != Phase.SETTLED:
            raise RuntimeError("Hand already in progress")
        if not self.can_start_hand():
            raise RuntimeError("Not enough active players to start a hand")

        deck = list(shuffler())
        validate_deck(deck)

        active = self.seating_order()
        if self.button is None:
            button = active[0]
        else:
            button = self._next_seat_with_chips(self.button)
        order = self._clockwise_from(button + 1, active)
        hand_number = self.session.hand_counter + 1

        opening = [{"seat": idx, "player": self._seat(idx).name, "stack": self._seat(idx).stack} for idx in order]

        with self._transaction():
            self._emit(
                Event("HAND_START", hand_number, {"button": button, "ante": self.config.ante, "seats": opening})
            )
            self.session.begin_hand()
            for seat in self.seats:
                if seat:
                    seat.reset_for_hand()
            self.button = button
            self.hand = HandContext(hand_number=hand_number, button=button, deck=deck, order=order)
        return self.hand

    def post_ante(self, seat_idx: int, amount: int) -> List[Event]:
        ctx = self._require("post_ante")
        seat = self.seats[seat_idx] if 0 <= seat_idx < len(self.seats) else None
        if seat is None or seat_idx not in ctx.order:
            raise IllegalAction("Seat not dealt into this hand")
        if seat.has_anted:
            raise IllegalAction("Ante already posted")
        if amount > seat.stack:
            raise InsufficientStack(f"Ante {amount} exceeds stack {seat.stack}")
        short_all_in = seat.stack < self.config.ante and amount == seat.stack
        if amount != self.config.ante and not short_all_in:
            raise IllegalAction(f"Ante must be {self.config.ante}")

        all_in = amount == seat.stack and amount > 0
        data = {
            "seat": seat_idx,
            "amount": amount,
            "stack": seat.stack - amount,
            "pot": ctx.pot + amount,
            "all_in": all_in,
        }
        with self._transaction() as events:
            self._emit(Event(ActionType.ANTE.value, ctx.hand_number, data))
            self._commit_chips(seat, amount, ctx)
            seat.has_anted = True
            seat.all_in = all_in
        return events

    def deal_hole_cards(self) -> List[Event]:
        ctx = self._require("deal_hole_cards")
        waiting = [idx for idx in ctx.order if not self._seat(idx).has_anted]
        if waiting:
            raise IllegalAction(f"Waiting on ante from seats {waiting}")

        # One card at a time, clockwise from the left of the dealer.
        deck = list(ctx.deck)
        hands: Dict[int, List[Card]] = {idx: [] for idx in ctx.order}
        for _ in range(HAND_SIZE):
            for idx in ctx.order:
                hands[idx].extend(deal(deck, 1))

        self._ensure_transition(ctx, Phase.DEALT)
        with self._transaction() as events:
            self._emit(
                Event(
                    "DEAL",
                    ctx.hand_number,
                    {
                        "order": list(ctx.order),
                        "hands": [{"seat": idx, "cards": cards_to_labels(hands[idx])} for idx in ctx.order],
                    },
                )
            )
            ctx.deck = deck
            for idx in ctx.order:
                self._seat(idx).hole_cards = cards_to_labels(hands[idx])
            ctx.phase = Phase.DEALT
            self._open_betting_round(ctx, Phase.BETTING_1)
        return events

    # Action handling -------------------------------------------------

    def legal_actions(self, seat_idx: int) -> Tuple[List[ActionType], Optional[int], Optional[int], Optional[int]]:
        """Legal moves plus (call amount, min, max) for the bet or raise increment."""
        if not self.hand or self.hand.phase not in BETTING_PHASES:
            raise RuntimeError("Betting round not in progress")
        ctx = self.hand
        seat = self.seats[seat_idx]
        if seat is None or not seat.live:
            raise RuntimeError("Seat not active")

        legal: List[ActionType] = [ActionType.FOLD]
        owed = ctx.current_bet - seat.committed
        if owed <= 0:
            legal.append(ActionType.CHECK)
        else:
            legal.append(ActionType.CALL)

        min_amount = None
        max_amount = None
        headroom = seat.stack - max(owed, 0)
        if headroom > 0:
            cap = headroom if self.config.max_bet is None else min(headroom, self.config.max_bet)
            if ctx.current_bet == 0:
                legal.append(ActionType.BET)
                min_amount = min(self.config.min_bet, headroom)
            else:
                legal.append(ActionType.RAISE)
                min_amount = min(self._min_raise(ctx), headroom)
            max_amount = max(cap, min_amount)

        return legal, (owed if owed > 0 else None), min_amount, max_amount

    def act(self, seat_idx: int, action: ActionType, amount: Optional[int] = None) -> List[Event]:
        ctx = self._require("act")
        if seat_idx != ctx.to_act:
            raise OutOfTurn(f"Seat {ctx.to_act} is to act")
        try:
            action = ActionType(action)
        except ValueError:
            raise IllegalAction(f"Unsupported action {action}") from None
        if action not in BETTING_ACTIONS:
            raise IllegalAction(f"Unsupported action {action.value}")

        seat = self._seat(seat_idx)
        owed = ctx.current_bet - seat.committed
        put = 0
        new_bet = ctx.current_bet
        increment = 0

        # Validate every branch before touching any state.
        if action == ActionType.CHECK:
            if owed > 0:
                raise IllegalAction("Cannot check when facing a bet")
        elif action == ActionType.CALL:
            if owed <= 0:
                raise IllegalAction("Nothing to call")
            put = min(owed, seat.stack)
        elif action == ActionType.BET:
            if ctx.current_bet > 0:
                raise IllegalAction("Bet already open; raise instead")
            self._check_amount(amount)
            assert amount is not None
            if amount > seat.stack:
                raise InsufficientStack(f"Bet {amount} exceeds stack {seat.stack}")
            if amount < self.config.min_bet and amount != seat.stack:
                raise IllegalAction(f"Bet below minimum {self.config.min_bet}")
            self._check_limit(amount)
            put = amount
            increment = amount
            new_bet = seat.committed + amount
        elif action == ActionType.RAISE:
            if ctx.current_bet == 0:
                raise IllegalAction("Nothing to raise; bet instead")
            self._check_amount(amount)
            assert amount is not None
            put = owed + amount
            if put > seat.stack:
                raise InsufficientStack(f"Raise needs {put} but stack is {seat.stack}")
            min_raise = self._min_raise(ctx)
            if amount < min_raise and put != seat.stack:
                raise IllegalAction(f"Raise below minimum {min_raise}")
            self._check_limit(amount)
            increment = amount
            new_bet = ctx.current_bet + amount

        all_in = put > 0 and put == seat.stack
        data: Dict[str, object] = {
            "seat": seat_idx,
            "amount": put,
            "to": new_bet,
            "stack": seat.stack - put,
            "pot": ctx.pot + put,
            "all_in": all_in,
        }
        if action == ActionType.RAISE:
            data["raise_by"] = increment

        with self._transaction() as events:
            self._emit(Event(action.value, ctx.hand_number, data))
            self._commit_chips(seat, put, ctx)
            seat.all_in = seat.all_in or all_in
            if action == ActionType.FOLD:
                seat.has_folded = True
            if action in (ActionType.BET, ActionType.RAISE):
                if increment >= self._min_raise(ctx):
                    ctx.last_raise_increment = increment
                ctx.current_bet = new_bet
                ctx.pending = {idx for idx in ctx.order if idx != seat_idx and self._seat(idx).can_act}
            else:
                ctx.pending.discard(seat_idx)
            if not seat.can_act:
                ctx.pending.discard(seat_idx)
            self._advance_after_action(ctx, seat_idx)
        return events

    def draw(self, seat_idx: int, discards: Sequence[int]) -> List[Event]:
        ctx = self._require("draw")
        if seat_idx != ctx.to_act:
            raise OutOfTurn(f"Seat {ctx.to_act} draws next")

        indices = list(discards)
        if any(isinstance(idx, bool) or not isinstance(idx, int) for idx in indices):
            raise InvalidDiscard("Discard positions must be integers")
        if any(idx < 0 or idx >= HAND_SIZE for idx in indices):
            raise InvalidDiscard(f"Discard positions must be within 0..{HAND_SIZE - 1}")
        if len(set(indices)) != len(indices):
            raise InvalidDiscard("Discard positions must be distinct")
        if len(indices) > self.config.max_discards:
            raise InvalidDiscard(f"At most {self.config.max_discards} cards may be discarded")
        if len(indices) > len(ctx.deck):
            raise InvalidDiscard("Not enough cards left in deck")

        seat = self._seat(seat_idx)
        positions = sorted(indices)
        kept = [label for idx, label in enumerate(seat.hole_cards) if idx not in positions]
        discarded = [seat.hole_cards[idx] for idx in positions]
        replacements = cards_to_labels(ctx.deck[: len(positions)])

        data = {
            "seat": seat_idx,
            "count": len(positions),
            "discards": positions,
            "discarded": discarded,
            "replacements": replacements,
            "hand": kept + replacements,
        }
        with self._transaction() as events:
            self._emit(Event(ActionType.DRAW.value, ctx.hand_number, data))
            deal(ctx.deck, len(positions))
            seat.hole_cards = kept + replacements
            seat.has_drawn = True
            ctx.to_act = self._next_in_order(ctx, seat_idx, self._waiting_to_draw)
            if ctx.to_act is None:
                self._open_betting_round(ctx, Phase.BETTING_2)
        return events

    def resolve_showdown(self) -> List[Event]:
        ctx = self._require("resolve_showdown")
        live = self._live_seats(ctx)
        if len(live) < 2:
            raise InvalidPhase("Showdown needs at least two live players")

        scores: Dict[int, Score] = {idx: evaluate_five(parse_cards(self._seat(idx).hole_cards)) for idx in live}
        awards: Dict[int, int] = {idx: 0 for idx in live}
        pot_results: List[Dict[str, object]] = []
        for pot_value, contenders in self._build_side_pots(ctx):
            best = max(scores[idx] for idx in contenders)
            # ctx.order starts left of the dealer, so winners[0] takes the odd chips.
            winners = [idx for idx in ctx.order if idx in contenders and scores[idx] == best]
            share, remainder = divmod(pot_value, len(winners))
            for idx in winners:
                awards[idx] += share
            awards[winners[0]] += remainder
            pot_results.append({"amount": pot_value, "eligible": list(contenders), "winners": winners})

        with self._transaction() as events:
            self._emit_final_hands(ctx)
            for idx in live:
                self._emit(
                    Event(
                        ActionType.SHOWDOWN.value,
                        ctx.hand_number,
                        {"seat": idx, "cards": list(self._seat(idx).hole_cards), "rank": describe_rank(scores[idx])},
                    )
                )
            self._settle(ctx, awards, pot_results, folded_out=False)
        return events

    def reveal(self, seat_idx: int) -> List[Event]:
        """Let the uncontested winner of a settled hand show their cards."""
        ctx = self._require("reveal")
        if ctx.fold_winner is None:
            raise IllegalAction("Hand went to showdown; every live hand was already shown")
        if seat_idx != ctx.fold_winner:
            raise IllegalAction(f"Only seat {ctx.fold_winner} won this hand uncontested")
        if ctx.revealed:
            raise IllegalAction("Hand already revealed")

        cards = list(self._seat(seat_idx).hole_cards)
        data = {"seat": seat_idx, "cards": cards, "rank": describe_rank(evaluate_five(parse_cards(cards)))}
        with self._transaction() as events:
            self._emit(Event("REVEAL", ctx.hand_number, data))
            ctx.revealed = True
        return events

    def _advance_after_action(self, ctx: HandContext, seat_idx: int) -> None:
        live = self._live_seats(ctx)
        if len(live) == 1:
            self._fold_out(ctx, live[0])
            return
        if not ctx.pending:
            self._close_betting_round(ctx)
            return
        ctx.to_act = self._next_in_order(ctx, seat_idx, lambda idx: idx in ctx.pending)

    def _open_betting_round(self, ctx: HandContext, phase: Phase) -> None:
        self._transition(ctx, phase)
        ctx.current_bet = 0
        ctx.last_raise_increment = 0
        for idx in ctx.order:
            self._seat(idx).reset_for_round()
        pending = {idx for idx in ctx.order if self._seat(idx).can_act}
        # Nobody can be bet against when fewer than two players have chips behind.
        ctx.pending = pending if len(pending) >= 2 else set()
        if not ctx.pending:
            self._close_betting_round(ctx)
            return
        ctx.to_act = next(idx for idx in ctx.order if idx in ctx.pending)

    def _close_betting_round(self, ctx: HandContext) -> None:
        ctx.to_act = None
        if ctx.phase == Phase.BETTING_1:
            self._transition(ctx, Phase.DRAWING)
            for idx in ctx.order:
                self._seat(idx).has_drawn = False
            ctx.to_act = next((idx for idx in ctx.order if self._waiting_to_draw(idx)), None)
            if ctx.to_act is None:
                # Everyone still in is all-in; nobody draws.
                self._open_betting_round(ctx, Phase.BETTING_2)
        else:
            self._transition(ctx, Phase.SHOWDOWN)

    def _fold_out(self, ctx: HandContext, winner: int) -> None:
        self._transition(ctx, Phase.FOLDED_OUT)
        ctx.to_act = None
        ctx.pending.clear()
        ctx.fold_winner = winner
        self._emit_final_hands(ctx)
        pot_results = [{"amount": ctx.pot, "eligible": [winner], "winners": [winner]}]
        self._settle(ctx, {winner: ctx.pot}, pot_results, folded_out=True)

    def _settle(
        self,
        ctx: HandContext,
        awards: Dict[int, int],
        pot_results: List[Dict[str, object]],
        folded_out: bool,
    ) -> None:
        self._ensure_transition(ctx, Phase.SETTLED)
        self._emit(
            Event(
                "SETTLEMENT",
                ctx.hand_number,
                {
                    "folded_out": folded_out,
                    "pots": pot_results,
                    "awards": [{"seat": idx, "amount": awards.get(idx, 0)} for idx in ctx.order if idx in awards],
                    "stacks": [
                        {"seat": idx, "stack": self._seat(idx).stack + awards.get(idx, 0)} for idx in ctx.order
                    ],
                },
            )
        )
        for idx, amount in awards.items():
            self._seat(idx).stack += amount
        ctx.pot = 0
        ctx.pending.clear()
        ctx.to_act = None
        ctx.phase = Phase.SETTLED

    def _emit_final_hands(self, ctx: HandContext) -> None:
        for idx in ctx.order:
            seat = self._seat(idx)
            score = evaluate_five(parse_cards(seat.hole_cards))
            self._emit(
                Event(
                    "FINAL_HAND",
                    ctx.hand_number,
                    {
                        "seat": idx,
                        "cards": list(seat.hole_cards),
                        "rank": describe_rank(score),
                        "folded": seat.has_folded,
                    },
                )
            )

    def _build_side_pots(self, ctx: HandContext) -> List[Tuple[int, List[int]]]:
        contributions = {idx: self._seat(idx).total_in_pot for idx in ctx.order}
        live = self._live_seats(ctx)
        levels = sorted({contributions[idx] for idx in live if contributions[idx] > 0})

        pots: List[Tuple[int, List[int]]] = []
        previous = 0
        for level in levels:
            cumulative = sum(min(amount, level) for amount in contributions.values())
            eligible = [idx for idx in live if contributions[idx] >= level]
            pots.append((cumulative - previous, eligible))
            previous = cumulative

        # Folded chips above the highest live level join the last pot.
        leftover = sum(contributions.values()) - previous
        if leftover > 0:
            if pots:
                amount, eligible = pots[-1]
                pots[-1] = (amount + leftover, eligible)
            else:
                pots.append((leftover, live))
        return pots

    # Queries ---------------------------------------------------------

    def next_actor(self) -> Optional[int]:
        if not self.hand or self.hand.phase not in (Phase.BETTING_1, Phase.DRAWING, Phase.BETTING_2):
            return None
        return self.hand.to_act

    def is_hand_complete(self) -> bool:
        return bool(self.hand and self.hand.phase == Phase.SETTLED)

    def is_match_over(self) -> bool:
        return len(self.seating_order()) <= 1

    def match_result_payload(self) -> Dict[str, object]:
        active = [seat for seat in self.seats if seat and seat.stack > 0]
        winner = active[0] if len(active) == 1 else None
        return {
            "winner": {"seat": winner.seat, "player": winner.name} if winner else None,
            "final_stacks": [
                {"seat": seat.seat, "player": seat.name, "stack": seat.stack}
                for seat in self.seats
                if seat is not None
            ],
        }

    # Internals -------------------------------------------------------

    def _require(self, operation: str) -> HandContext:
        if not self.hand:
            raise InvalidPhase("No hand in progress")
        if operation not in OPERATIONS[self.hand.phase]:
            raise InvalidPhase(f"{operation} not allowed in {self.hand.phase.value}")
        return self.hand

    def _ensure_transition(self, ctx: HandContext, phase: Phase) -> None:
        if phase not in TRANSITIONS[ctx.phase]:
            raise RuntimeError(f"Illegal transition {ctx.phase.value} -> {phase.value}")

    def _transition(self, ctx: HandContext, phase: Phase) -> None:
        self._ensure_transition(ctx, phase)
        self._emit(Event("PHASE", ctx.hand_number, {"phase": phase.value}))
        ctx.phase = phase

    def _emit(self, event: Event) -> None:
        self._trail.append(event)

    @contextmanager
    def _transaction(self) -> Iterator[List[Event]]:
        """Collect one operation's events and hand them to ``emit`` together.

        Seats and the hand are restored in place if the operation fails or
        ``emit`` refuses the batch, so a rejected call leaves nothing behind.
        """
        saved_seats = [(seat, copy.deepcopy(vars(seat))) for seat in self.seats if seat]
        saved_hand = self.hand
        saved_hand_state = copy.deepcopy(vars(saved_hand)) if saved_hand else None
        saved_button = self.button
        saved_counter = self.session.hand_counter
        self._trail = []
        try:
            yield self._trail
            self.emit(list(self._trail))
        except LogDeliveryError:
            # The recorder kept the batch; only a sink fell behind.
            raise
        except Exception:
            for seat, state in saved_seats:
                vars(seat).update(state)
            if saved_hand is not None and saved_hand_state is not None:
                vars(saved_hand).update(saved_hand_state)
            self.hand = saved_hand
            self.button = saved_button
            self.session.hand_counter = saved_counter
            raise
        finally:
            self._trail = []

    def _waiting_to_draw(self, seat_idx: int) -> bool:
        seat = self._seat(seat_idx)
        return seat.live and not seat.all_in and not seat.has_drawn

    def _check_amount(self, amount: Optional[int]) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise IllegalAction("Bet and raise need a positive integer amount")

    def _check_limit(self, amount: int) -> None:
        if self.config.max_bet is not None and amount > self.config.max_bet:
            raise IllegalAction(f"Amount exceeds table limit {self.config.max_bet}")

    def _min_raise(self, ctx: HandContext) -> int:
        return max(self.config.min_bet, ctx.last_raise_increment)

    def _commit_chips(self, seat: PlayerSeat, amount: int, ctx: HandContext) -> None:
        seat.stack -= amount
        seat.committed += amount
        seat.total_in_pot += amount
        ctx.pot += amount

    def _seat(self, seat_idx: int) -> PlayerSeat:
        seat = self.seats[seat_idx]
        assert seat is not None
        return seat

    def _live_seats(self, ctx: HandContext) -> List[int]:
        return [idx for idx in ctx.order if self._seat(idx).live]

    def _next_in_order(self, ctx: HandContext, after: int, wanted: Callable[[int], bool]) -> Optional[int]:
        start = ctx.order.index(after)
        rotated = ctx.order[start + 1 :] + ctx.order[: start + 1]
        return next((idx for idx in rotated if wanted(idx)), None)

    def _clockwise_from(self, start: int, seats: Sequence[int]) -> List[int]:
        wanted = set(seats)
        ordered = []
        for offset in range(self.config.seats):
            idx = (start + offset) % self.config.seats
            if idx in wanted:
                ordered.append(idx)
        return ordered

    def _next_seat_with_chips(self, start: int) -> int:
        idx = (start + 1) % self.config.seats
        while True:
            seat = self.seats[idx]
            if seat and seat.stack > 0:
                return idx
            idx = (idx + 1) % self.config.seats
