"""Five-Card Draw engine with public/private hand history logs."""

from .cards import Card, SeededShuffler, SystemShuffler, full_deck, parse_cards
from .errors import (
    GameError,
    IllegalAction,
    InsufficientStack,
    InvalidDiscard,
    InvalidPhase,
    LogDeliveryError,
    LogMismatch,
    OutOfTurn,
    PokerError,
)
from .evaluator import describe_rank, evaluate_five
from .game import GameEngine, HandContext
from .history import HandHistoryRecorder, HandRecord, LogEntry
from .models import ActionType, Event, Phase, PlayerSeat, TableConfig
from .replay import reconstruct, replay_files, replay_hand_records
from .session import SessionContext, new_table_name
from .sinks import JsonLinesLogSink, MemoryLogSink, load_entries

__all__ = [
    "Card",
    "SeededShuffler",
    "SystemShuffler",
    "full_deck",
    "parse_cards",
    "GameError",
    "IllegalAction",
    "InsufficientStack",
    "InvalidDiscard",
    "InvalidPhase",
    "LogDeliveryError",
    "LogMismatch",
    "OutOfTurn",
    "PokerError",
    "describe_rank",
    "evaluate_five",
    "GameEngine",
    "HandContext",
    "HandHistoryRecorder",
    "HandRecord",
    "LogEntry",
    "ActionType",
    "Event",
    "Phase",
    "PlayerSeat",
    "TableConfig",
    "reconstruct",
    "replay_files",
    "replay_hand_records",
    "SessionContext",
    "new_table_name",
    "JsonLinesLogSink",
    "MemoryLogSink",
    "load_entries",
]
