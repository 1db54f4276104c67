"""Rebuild complete hands from a table's public and private logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .errors import LogMismatch
from .history import AFTER_SETTLEMENT, PRIVATE, PUBLIC, ROUTES, HandRecord, HandRecordBuilder, LogEntry
from .sinks import load_entries


@dataclass(frozen=True)
class ReplayEvent:
    sequence: int
    timestamp: int
    table: str
    hand: int
    ev: str
    data: Dict[str, object] = field(default_factory=dict)


def reconstruct(public: Sequence[LogEntry], private: Sequence[LogEntry]) -> List[ReplayEvent]:
    """Merge both logs into one ordered, fully resolved event sequence.

    Raises LogMismatch when the logs do not describe the same table, when the
    shared sequence numbering has gaps or conflicting claims, when a public
    entry references private data that is missing, when a private entry that
    backs a public one is left unreferenced, or when a hand does not run from
    HAND_START to SETTLEMENT.
    """
    if not public:
        raise LogMismatch("Public log is empty")
    tables = {entry.table for entry in public}
    if len(tables) != 1:
        raise LogMismatch(f"Public log spans several tables: {sorted(tables)}")
    table = next(iter(tables))
    hands = {entry.hand for entry in public}

    for entry in public:
        if entry.channel != PUBLIC:
            raise LogMismatch(f"Sequence {entry.sequence} in the public log is marked {entry.channel}")
    for entry in private:
        if entry.channel != PRIVATE:
            raise LogMismatch(f"Sequence {entry.sequence} in the private log is marked {entry.channel}")
        if entry.table != table:
            raise LogMismatch(f"Private sequence {entry.sequence} belongs to table {entry.table}, not {table}")
        if entry.hand not in hands:
            raise LogMismatch(f"Private sequence {entry.sequence} names hand {entry.hand} missing from the public log")

    ordered = _order(list(public) + list(private))
    claimed = _resolve_refs(ordered)

    events: List[ReplayEvent] = []
    for entry in ordered.values():
        if entry.channel == PRIVATE:
            if entry.sequence in claimed:
                continue
            private_route = ROUTES.get(entry.ev)
            if private_route is None or private_route.public is not None:
                raise LogMismatch(
                    f"Private sequence {entry.sequence} ({entry.ev}) is not referenced by any public entry"
                )
            events.append(_event(entry, dict(entry.payload)))
            continue
        route = ROUTES.get(entry.ev)
        if route is None:
            raise LogMismatch(f"Unknown event {entry.ev} at sequence {entry.sequence}")
        refs = list(entry.payload.get("refs") or [])  # type: ignore[call-overload]
        if route.private is not None and not refs:
            raise LogMismatch(f"{entry.ev} at sequence {entry.sequence} has no private entries")
        if refs:
            data = route.merge(dict(entry.payload), [ordered[ref].payload for ref in refs])
        else:
            data = dict(entry.payload)
        events.append(_event(entry, data))

    _check_hands(events)
    return events


def replay_hand_records(public: Sequence[LogEntry], private: Sequence[LogEntry]) -> List[HandRecord]:
    records: List[HandRecord] = []
    builder: Optional[HandRecordBuilder] = None
    for event in reconstruct(public, private):
        if event.ev == "HAND_START":
            builder = HandRecordBuilder(event.table, event.hand)
        assert builder is not None
        try:
            builder.apply(event.ev, event.data)
        except (KeyError, TypeError, ValueError, RuntimeError) as exc:
            raise LogMismatch(f"Cannot replay {event.ev} at sequence {event.sequence}: {exc}") from exc
        if builder.sealed is None:
            continue
        if records and records[-1].hand_number == builder.hand_number:
            records[-1] = builder.sealed
        else:
            records.append(builder.sealed)
    return records


def replay_files(public_path: Union[str, Path], private_path: Union[str, Path]) -> List[HandRecord]:
    try:
        public = load_entries(public_path)
        private = load_entries(private_path)
    except ValueError as exc:
        raise LogMismatch(str(exc)) from exc
    return replay_hand_records(public, private)


def _order(entries: List[LogEntry]) -> Dict[int, LogEntry]:
    by_sequence: Dict[int, LogEntry] = {}
    for entry in entries:
        existing = by_sequence.get(entry.sequence)
        if existing is None:
            by_sequence[entry.sequence] = entry
            continue
        if existing.timestamp != entry.timestamp:
            raise LogMismatch(f"Sequence {entry.sequence} claimed twice with different timestamps")
        if existing != entry:
            raise LogMismatch(f"Sequence {entry.sequence} claimed by two different entries")

    ordered = {sequence: by_sequence[sequence] for sequence in sorted(by_sequence)}
    previous: Optional[LogEntry] = None
    for expected, (sequence, entry) in enumerate(ordered.items()):
        if sequence != expected:
            raise LogMismatch(f"Sequence numbers are not contiguous: expected {expected}, found {sequence}")
        if previous is not None and entry.timestamp < previous.timestamp:
            raise LogMismatch(f"Timestamp goes backwards at sequence {sequence}")
        previous = entry
    return ordered


def _resolve_refs(ordered: Dict[int, LogEntry]) -> Dict[int, int]:
    claimed: Dict[int, int] = {}
    for entry in ordered.values():
        if entry.channel != PUBLIC:
            continue
        for ref in entry.payload.get("refs") or []:  # type: ignore[union-attr]
            target = ordered.get(ref)
            if target is None or target.channel != PRIVATE:
                raise LogMismatch(f"Sequence {entry.sequence} references missing private entry {ref}")
            if target.hand != entry.hand or target.ev != entry.ev or ref > entry.sequence:
                raise LogMismatch(f"Sequence {entry.sequence} references unrelated private entry {ref}")
            if ref in claimed:
                raise LogMismatch(f"Private entry {ref} referenced by both {claimed[ref]} and {entry.sequence}")
            claimed[ref] = entry.sequence
    return claimed


def _check_hands(events: List[ReplayEvent]) -> None:
    seen = set()
    current: Optional[int] = None
    settled = True
    for event in events:
        if event.hand != current:
            if not settled:
                raise LogMismatch(f"Hand {current} is incomplete: no settlement")
            if event.hand in seen:
                raise LogMismatch(f"Hand {event.hand} is interleaved with another hand")
            if event.ev != "HAND_START":
                raise LogMismatch(f"Hand {event.hand} does not open with HAND_START")
            seen.add(event.hand)
            current = event.hand
            settled = False
        elif event.ev == "HAND_START":
            raise LogMismatch(f"Hand {event.hand} starts twice")
        elif settled and event.ev not in AFTER_SETTLEMENT:
            raise LogMismatch(f"Hand {event.hand} continues after settlement")
        if event.ev == "SETTLEMENT":
            settled = True
    if not settled:
        raise LogMismatch(f"Hand {current} is incomplete: no settlement")


def _event(entry: LogEntry, data: Dict[str, object]) -> ReplayEvent:
    return ReplayEvent(
        sequence=entry.sequence,
        timestamp=entry.timestamp,
        table=entry.table,
        hand=entry.hand,
        ev=entry.ev,
        data=data,
    )
