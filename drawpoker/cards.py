from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

RANKS = "23456789TJQKA"
SUITS = "cdhs"
RANK_VALUE = {rank: idx for idx, rank in enumerate(RANKS, start=2)}
RANK_LABEL = {value: rank for rank, value in RANK_VALUE.items()}

# A shuffler hands the engine a fresh 52-card sequence for every hand.
Shuffler = Callable[[], List["Card"]]


@dataclass(frozen=True)
class Card:
    rank: int
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANK_LABEL:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{RANK_LABEL[self.rank]}{self.suit}"


def full_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in range(2, 15)]


def validate_deck(cards: Sequence[Card]) -> None:
    if len(cards) != 52 or len(set(cards)) != 52:
        raise ValueError("Shuffler must return 52 distinct cards")


class SeededShuffler:
    """Reproducible shuffles; every call advances the same generator."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self.rng = random.Random(seed)

    def __call__(self) -> List[Card]:
        deck = full_deck()
        self.rng.shuffle(deck)
        return deck


class SystemShuffler:
    def __init__(self) -> None:
        self.rng = random.SystemRandom()

    def __call__(self) -> List[Card]:
        deck = full_deck()
        self.rng.shuffle(deck)
        return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) != 2 or label[0] not in RANK_VALUE:
        raise ValueError(f"Invalid card label: {label}")
    return Card(RANK_VALUE[label[0]], label[1])


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
