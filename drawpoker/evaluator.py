from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .cards import Card

Score = Tuple[int, List[int]]

CATEGORY_NAMES = (
    "high_card",
    "pair",
    "two_pair",
    "three_of_a_kind",
    "straight",
    "flush",
    "full_house",
    "four_of_a_kind",
    "straight_flush",
)


def evaluate_five(cards: Sequence[Card]) -> Score:
    """Return a strength tuple for exactly five cards. Higher is better."""
    if len(cards) != 5:
        raise ValueError("Five-card hands only")

    ranks = sorted((card.rank for card in cards), reverse=True)
    is_flush = len({card.suit for card in cards}) == 1
    straight_high = _straight_high(ranks)

    counts: dict = {}
    for rank in ranks:
        counts[rank] = counts.get(rank, 0) + 1

    # Group ranks by multiplicity, then by rank, so ties compare group by group.
    ordered = sorted(counts.items(), key=lambda x: (x[1], x[0]), reverse=True)
    count_values = [count for _, count in ordered]
    grouped = [rank for rank, _ in ordered]

    if straight_high and is_flush:
        return (8, [straight_high])
    if count_values[0] == 4:
        return (7, grouped)
    if count_values[0] == 3 and count_values[1] == 2:
        return (6, grouped)
    if is_flush:
        return (5, ranks)
    if straight_high:
        return (4, [straight_high])
    if count_values[0] == 3:
        return (3, grouped)
    if count_values[0] == 2 and count_values[1] == 2:
        return (2, grouped)
    if count_values[0] == 2:
        return (1, grouped)
    return (0, ranks)


def _straight_high(ranks: Sequence[int]) -> Optional[int]:
    unique = sorted(set(ranks))
    if len(unique) != 5:
        return None
    if unique[-1] - unique[0] == 4:
        return unique[-1]
    if unique == [2, 3, 4, 5, 14]:  # wheel
        return 5
    return None


def describe_rank(score: Score) -> str:
    return CATEGORY_NAMES[score[0]]
