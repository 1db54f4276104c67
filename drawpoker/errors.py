"""Typed failures surfaced to whoever drives the engine or replays its logs."""


class PokerError(Exception):
    code = "POKER_ERROR"


class GameError(PokerError, ValueError):
    """A rejected gameplay call. Hand state is untouched; the caller may retry."""

    code = "GAME_ERROR"


class InvalidPhase(GameError):
    code = "INVALID_PHASE"


class OutOfTurn(GameError):
    code = "OUT_OF_TURN"


class IllegalAction(GameError):
    code = "ILLEGAL_ACTION"


class InsufficientStack(GameError):
    code = "INSUFFICIENT_STACK"


class InvalidDiscard(GameError):
    code = "INVALID_DISCARD"


class LogMismatch(PokerError, ValueError):
    code = "LOG_MISMATCH"


class LogDeliveryError(PokerError):
    """The recorder kept the entries but a sink refused them; the next flush retries."""

    code = "LOG_DELIVERY"
