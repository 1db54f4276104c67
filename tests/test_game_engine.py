import copy

import pytest

from drawpoker.cards import SeededShuffler
from drawpoker.errors import IllegalAction, InsufficientStack, InvalidDiscard, InvalidPhase, OutOfTurn
from drawpoker.history import PUBLIC
from drawpoker.models import ActionType, Phase

from .helpers import ante_all, check_or_call_round, create_table, perform_actions, stacked, stand_pat

HEADS_UP = {
    1: ["Ah", "Kd", "Qs", "Jc", "9h"],
    0: ["2s", "2d", "7c", "8h", "Td"],
}


def heads_up(**config):
    config.setdefault("starting_stack", 100)
    engine, recorder, session = create_table(("P2", "P1"), **config)
    engine.start_hand(stacked(HEADS_UP, order=[1, 0], draws=["3c", "4c", "5c", "6c", "7d"]))
    return engine, recorder, session


def _strings(value):
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _strings(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _strings(item)


def test_assign_seat_reuses_names_and_enforces_capacity():
    engine, _, _ = create_table(("Alpha", "Beta"))
    assert engine.assign_seat(" alpha ").seat == 0
    with pytest.raises(RuntimeError, match="Table is full"):
        engine.assign_seat("Gamma")
    with pytest.raises(ValueError, match="NAME_REQUIRED"):
        engine.assign_seat("   ")


def test_start_hand_sets_button_and_clockwise_order():
    engine, _, _ = create_table(("A", "B", "C"))
    ctx = engine.start_hand(SeededShuffler(1))
    assert ctx.button == 0
    assert ctx.order == [1, 2, 0]
    assert ctx.phase == Phase.AWAITING_ANTE
    with pytest.raises(RuntimeError, match="already in progress"):
        engine.start_hand(lambda: [])


def test_start_hand_rejects_bad_shuffler_without_side_effects():
    engine, recorder, session = create_table(("A", "B"))
    with pytest.raises(ValueError, match="52 distinct"):
        engine.start_hand(lambda: [])
    assert engine.hand is None
    assert session.hand_counter == 0
    assert session.next_sequence == 0


def test_operations_before_a_hand_are_invalid_phase():
    engine, _, _ = create_table(("A", "B"))
    with pytest.raises(InvalidPhase, match="No hand in progress"):
        engine.post_ante(0, 5)
    with pytest.raises(InvalidPhase):
        engine.resolve_showdown()


def test_antes_are_validated_before_dealing():
    engine, _, _ = heads_up()
    with pytest.raises(InvalidPhase):
        engine.act(1, ActionType.CHECK)
    with pytest.raises(IllegalAction, match="Waiting on ante"):
        engine.deal_hole_cards()
    with pytest.raises(IllegalAction, match="Ante must be 5"):
        engine.post_ante(1, 4)
    with pytest.raises(InsufficientStack):
        engine.post_ante(1, 500)

    engine.post_ante(1, 5)
    with pytest.raises(IllegalAction, match="already posted"):
        engine.post_ante(1, 5)
    engine.post_ante(0, 5)
    assert engine.hand.pot == 10
    assert engine.seats[1].stack == 95


def test_short_stack_posts_all_in_ante_and_skips_betting():
    engine, _, _ = create_table(("A", "B", "C"), starting_stack=100)
    engine.seats[1].stack = 3
    engine.start_hand(SeededShuffler(5))
    with pytest.raises(InsufficientStack):
        engine.post_ante(1, 5)
    events = engine.post_ante(1, 3)
    assert events[0].data["all_in"] is True
    engine.post_ante(2, 5)
    engine.post_ante(0, 5)
    engine.deal_hole_cards()
    # Seat 1 is all-in, so seat 2 opens the betting.
    assert engine.next_actor() == 2


def test_deal_gives_five_cards_one_at_a_time_and_opens_betting():
    engine, recorder, _ = heads_up()
    ante_all(engine)
    events = engine.deal_hole_cards()
    assert [event.ev for event in events] == ["DEAL", "PHASE"]
    assert engine.seats[1].hole_cards == HEADS_UP[1]
    assert engine.seats[0].hole_cards == HEADS_UP[0]
    assert len(engine.hand.deck) == 42
    assert engine.hand.phase == Phase.BETTING_1
    assert engine.next_actor() == 1


def test_legal_actions_report_bet_range():
    engine, _, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    legal, call_amount, min_amount, max_amount = engine.legal_actions(1)
    assert legal == [ActionType.FOLD, ActionType.CHECK, ActionType.BET]
    assert call_amount is None
    assert (min_amount, max_amount) == (10, 95)

    engine.act(1, ActionType.BET, 15)
    legal, call_amount, min_amount, max_amount = engine.legal_actions(0)
    assert legal == [ActionType.FOLD, ActionType.CALL, ActionType.RAISE]
    assert call_amount == 15
    assert (min_amount, max_amount) == (15, 80)


def test_out_of_turn_and_illegal_actions_are_rejected():
    engine, _, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    with pytest.raises(OutOfTurn):
        engine.act(0, ActionType.CHECK)
    with pytest.raises(IllegalAction, match="Nothing to call"):
        engine.act(1, ActionType.CALL)
    with pytest.raises(IllegalAction, match="Nothing to raise"):
        engine.act(1, ActionType.RAISE, 10)
    with pytest.raises(IllegalAction, match="below minimum"):
        engine.act(1, ActionType.BET, 5)
    with pytest.raises(IllegalAction, match="positive integer"):
        engine.act(1, ActionType.BET, 0)
    with pytest.raises(InsufficientStack):
        engine.act(1, ActionType.BET, 200)
    with pytest.raises(IllegalAction, match="Unsupported action"):
        engine.act(1, ActionType.DRAW)

    engine.act(1, ActionType.BET, 10)
    with pytest.raises(IllegalAction, match="facing a bet"):
        engine.act(0, ActionType.CHECK)
    with pytest.raises(IllegalAction, match="raise instead"):
        engine.act(0, ActionType.BET, 10)


def test_rejected_action_leaves_state_untouched():
    engine, recorder, session = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    seats_before = copy.deepcopy(engine.seats)
    hand_before = copy.deepcopy(engine.hand)
    sequence_before = session.next_sequence

    with pytest.raises(OutOfTurn):
        engine.act(0, ActionType.BET, 10)
    with pytest.raises(IllegalAction):
        engine.act(1, ActionType.BET, 3)

    assert engine.seats == seats_before
    assert engine.hand == hand_before
    assert session.next_sequence == sequence_before


def test_raise_amount_is_increment_and_minimum_tracks_last_raise():
    engine, _, _ = create_table(("A", "B", "C"), starting_stack=500)
    engine.start_hand(SeededShuffler(5))
    ante_all(engine)
    engine.deal_hole_cards()

    engine.act(1, ActionType.BET, 10)
    events = engine.act(2, ActionType.RAISE, 10)
    assert events[0].data["to"] == 20
    assert events[0].data["raise_by"] == 10
    assert events[0].data["amount"] == 20
    with pytest.raises(IllegalAction, match="below minimum 10"):
        engine.act(0, ActionType.RAISE, 5)
    engine.act(0, ActionType.RAISE, 30)
    assert engine.hand.current_bet == 50
    with pytest.raises(IllegalAction, match="below minimum 30"):
        engine.act(1, ActionType.RAISE, 20)
    engine.act(1, ActionType.CALL)
    engine.act(2, ActionType.CALL)
    assert engine.hand.phase == Phase.DRAWING
    assert engine.hand.pot == 15 + 150


def test_max_bet_limits_bets_and_raises():
    engine, _, _ = heads_up(max_bet=20)
    ante_all(engine)
    engine.deal_hole_cards()
    _, _, _, max_amount = engine.legal_actions(1)
    assert max_amount == 20
    with pytest.raises(IllegalAction, match="table limit"):
        engine.act(1, ActionType.BET, 30)
    engine.act(1, ActionType.BET, 20)
    with pytest.raises(IllegalAction, match="table limit"):
        engine.act(0, ActionType.RAISE, 25)


def test_draw_replaces_discards_in_turn_order():
    engine, recorder, _ = heads_up(max_discards=3)
    ante_all(engine)
    engine.deal_hole_cards()
    check_or_call_round(engine)
    assert engine.hand.phase == Phase.DRAWING
    assert engine.next_actor() == 1

    with pytest.raises(OutOfTurn):
        engine.draw(0, [])
    with pytest.raises(InvalidDiscard, match="within"):
        engine.draw(1, [5])
    with pytest.raises(InvalidDiscard, match="distinct"):
        engine.draw(1, [0, 0])
    with pytest.raises(InvalidDiscard, match="At most 3"):
        engine.draw(1, [0, 1, 2, 3])
    with pytest.raises(InvalidDiscard, match="integers"):
        engine.draw(1, ["0"])

    events = engine.draw(1, [2, 0])
    assert events[0].data["discards"] == [0, 2]
    assert events[0].data["discarded"] == ["Ah", "Qs"]
    assert engine.seats[1].hole_cards == ["Kd", "Jc", "9h", "3c", "4c"]
    assert len(engine.hand.deck) == 40

    engine.draw(0, [])
    assert engine.seats[0].hole_cards == HEADS_UP[0]
    assert engine.hand.phase == Phase.BETTING_2
    assert engine.next_actor() == 1


def test_heads_up_fold_on_second_round_awards_pot():
    engine, recorder, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    perform_actions(engine, [(1, ActionType.BET, 10), (0, ActionType.CALL, None)])
    engine.draw(1, [])
    engine.draw(0, [])
    perform_actions(engine, [(1, ActionType.CHECK, None), (0, ActionType.BET, 20)])
    events = engine.act(1, ActionType.FOLD)

    assert [event.ev for event in events] == ["FOLD", "PHASE", "FINAL_HAND", "FINAL_HAND", "SETTLEMENT"]
    settlement = events[-1].data
    assert settlement["folded_out"] is True
    assert settlement["awards"] == [{"seat": 0, "amount": 50}]
    assert engine.seats[1].stack == 85
    assert engine.seats[0].stack == 115
    assert engine.is_hand_complete()

    public_strings = set()
    for entry in recorder.public_log:
        public_strings.update(_strings(entry.payload))
    assert not public_strings.intersection(HEADS_UP[1])
    private_seat_1 = [entry for entry in recorder.private_log if entry.payload.get("seat") == 1]
    assert {entry.ev for entry in private_seat_1} == {"DEAL", "DRAW", "FINAL_HAND"}
    assert all(entry.channel == PUBLIC for entry in recorder.public_log)


def test_fold_out_in_first_round_skips_draw():
    engine, _, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.BET, 10)
    engine.act(0, ActionType.FOLD)
    assert engine.hand.phase == Phase.SETTLED
    assert engine.seats[1].stack == 105
    assert engine.seats[0].stack == 95
    with pytest.raises(InvalidPhase):
        engine.draw(1, [])


def test_tie_splits_pot_and_odd_chip_goes_left_of_dealer():
    hands = {
        1: ["3c", "5d", "9h", "Jc", "4s"],
        2: ["Kh", "Kd", "7s", "7c", "2h"],
        0: ["Ks", "Kc", "7h", "7d", "2d"],
    }
    engine, recorder, _ = create_table(("A", "B", "C"), starting_stack=100)
    engine.start_hand(stacked(hands, order=[1, 2, 0]))
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.FOLD)
    check_or_call_round(engine)
    stand_pat(engine)
    check_or_call_round(engine)
    assert engine.hand.phase == Phase.SHOWDOWN

    events = engine.resolve_showdown()
    settlement = events[-1].data
    assert settlement["pots"] == [{"amount": 15, "eligible": [2, 0], "winners": [2, 0]}]
    assert settlement["awards"] == [{"seat": 2, "amount": 8}, {"seat": 0, "amount": 7}]
    assert [engine.seats[idx].stack for idx in range(3)] == [102, 95, 103]

    shown = [event.data["seat"] for event in events if event.ev == "SHOWDOWN"]
    assert shown == [2, 0]
    finals = [event.data for event in events if event.ev == "FINAL_HAND"]
    assert [item["folded"] for item in finals] == [True, False, False]


def test_all_in_creates_side_pot():
    hands = {
        1: ["As", "Ad", "Ac", "9s", "2c"],
        2: ["Ks", "Kd", "8h", "8c", "3d"],
        0: ["Qh", "Jh", "7c", "5s", "4d"],
    }
    engine, _, _ = create_table(("A", "B", "C"), starting_stack=100)
    engine.seats[1].stack = 30
    engine.start_hand(stacked(hands, order=[1, 2, 0]))
    ante_all(engine)
    engine.deal_hole_cards()

    engine.act(1, ActionType.BET, 25)
    assert engine.seats[1].all_in
    engine.act(2, ActionType.CALL)
    engine.act(0, ActionType.CALL)
    assert engine.hand.phase == Phase.DRAWING
    # Seat 1 is all-in and sits out the draw.
    assert engine.next_actor() == 2
    with pytest.raises(OutOfTurn):
        engine.draw(1, [])
    engine.draw(2, [])
    engine.draw(0, [])
    assert engine.hand.phase == Phase.BETTING_2
    assert engine.next_actor() == 2
    engine.act(2, ActionType.BET, 20)
    engine.act(0, ActionType.CALL)

    events = engine.resolve_showdown()
    settlement = events[-1].data
    assert settlement["pots"] == [
        {"amount": 90, "eligible": [1, 2, 0], "winners": [1]},
        {"amount": 40, "eligible": [2, 0], "winners": [2]},
    ]
    assert [engine.seats[idx].stack for idx in range(3)] == [50, 90, 90]


def test_resolve_showdown_twice_is_rejected_without_double_pay():
    engine, _, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    check_or_call_round(engine)
    stand_pat(engine)
    check_or_call_round(engine)
    engine.resolve_showdown()
    stacks = [seat.stack for seat in engine.seats]
    assert sum(stacks) == 200

    with pytest.raises(InvalidPhase):
        engine.resolve_showdown()
    assert [seat.stack for seat in engine.seats] == stacks


def test_button_rotates_and_busted_seats_sit_out():
    engine, _, _ = create_table(("A", "B", "C"), starting_stack=100)
    shuffler = SeededShuffler(5)
    ctx = engine.start_hand(shuffler)
    assert ctx.button == 0
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.FOLD)
    engine.act(2, ActionType.FOLD)

    engine.seats[1].stack = 0
    ctx = engine.start_hand(shuffler)
    assert ctx.button == 2
    assert ctx.order == [0, 2]
    assert ctx.hand_number == 2
    assert not engine.is_match_over()

    assert engine.seats[1].in_hand is False


def test_multiway_all_ins_create_layered_side_pots():
    hands = {
        1: ["9s", "9d", "9c", "9h", "2c"],
        2: ["Ks", "Kd", "Kc", "4h", "4d"],
        3: ["Qh", "Jh", "6c", "5s", "3d"],
        0: ["As", "Ad", "8c", "7s", "3h"],
    }
    engine, _, _ = create_table(("A", "B", "C", "D"), starting_stack=100)
    engine.seats[1].stack = 20
    engine.seats[2].stack = 50
    engine.start_hand(stacked(hands, order=[1, 2, 3, 0]))
    ante_all(engine)
    engine.deal_hole_cards()

    perform_actions(
        engine,
        [
            (1, ActionType.BET, 15),
            (2, ActionType.RAISE, 30),
            (3, ActionType.CALL, None),
            (0, ActionType.CALL, None),
        ],
    )
    stand_pat(engine)
    perform_actions(engine, [(3, ActionType.BET, 50), (0, ActionType.CALL, None)])
    assert engine.hand.phase == Phase.SHOWDOWN

    settlement = engine.resolve_showdown()[-1].data
    assert [(pot["amount"], pot["eligible"], pot["winners"]) for pot in settlement["pots"]] == [
        (80, [1, 2, 3, 0], [1]),
        (90, [2, 3, 0], [2]),
        (100, [3, 0], [0]),
    ]
    assert [engine.seats[idx].stack for idx in range(4)] == [100, 80, 90, 0]
    assert engine.seating_order() == [0, 1, 2]


def test_legal_actions_requires_betting_round_and_active_seat():
    engine, _, _ = create_table(("A", "B", "C"), starting_stack=100)
    engine.start_hand(SeededShuffler(9))
    with pytest.raises(RuntimeError, match="Betting round"):
        engine.legal_actions(1)
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.FOLD)
    with pytest.raises(RuntimeError, match="not active"):
        engine.legal_actions(1)
    assert engine.next_actor() == 2


def test_no_draw_when_every_live_player_is_all_in():
    engine, recorder, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.BET, 95)
    events = engine.act(0, ActionType.CALL)

    assert [event.data["phase"] for event in events if event.ev == "PHASE"] == ["DRAWING", "BETTING_2", "SHOWDOWN"]
    assert engine.hand.phase == Phase.SHOWDOWN
    engine.resolve_showdown()
    assert [seat.stack for seat in engine.seats] == [200, 0]
    assert not any(entry.ev == "DRAW" for entry in recorder.public_log)


def test_fold_out_winner_may_reveal_once():
    engine, recorder, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    engine.act(1, ActionType.BET, 10)
    engine.act(0, ActionType.FOLD)

    with pytest.raises(IllegalAction):
        engine.reveal(0)
    events = engine.reveal(1)
    assert [event.ev for event in events] == ["REVEAL"]
    assert events[0].data["cards"] == HEADS_UP[1]
    assert [seat.stack for seat in engine.seats] == [95, 105]

    assert recorder.public_sink.entries[-1].ev == "REVEAL"
    assert recorder.public_log[-1].payload["cards"] == HEADS_UP[1]
    assert recorder.records[0].revealed == ((1, events[0].data["rank"]),)
    assert "after the others folded" in recorder.transcript()
    public_strings = set()
    for entry in recorder.public_log:
        public_strings.update(_strings(entry.payload))
    assert not public_strings.intersection(HEADS_UP[0])

    with pytest.raises(IllegalAction, match="already revealed"):
        engine.reveal(1)


def test_reveal_needs_a_settled_fold_out():
    engine, recorder, _ = heads_up()
    ante_all(engine)
    engine.deal_hole_cards()
    with pytest.raises(InvalidPhase):
        engine.reveal(1)

    check_or_call_round(engine)
    stand_pat(engine)
    check_or_call_round(engine)
    engine.resolve_showdown()
    sequence = recorder.session.next_sequence
    with pytest.raises(IllegalAction, match="showdown"):
        engine.reveal(1)
    assert recorder.session.next_sequence == sequence
