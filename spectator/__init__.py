"""Read-only websocket feed of a table's public hand log."""

from .server import SpectatorFeed

__all__ = ["SpectatorFeed"]
