from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import LogDeliveryError
from .models import ActionType, Event, Phase
from .session import SessionContext
from .transcript import render_private_transcript, render_transcript, seat_names

if TYPE_CHECKING:
    from .sinks import LogSink

LOGGER = logging.getLogger("drawpoker.history")

PUBLIC = "public"
PRIVATE = "private"

Payload = Dict[str, object]


@dataclass(frozen=True)
class LogEntry:
    sequence: int
    timestamp: int
    table: str
    hand: int
    channel: str
    ev: str
    payload: Payload = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "seq": self.sequence,
            "ts": self.timestamp,
            "table": self.table,
            "hand": self.hand,
            "channel": self.channel,
            "ev": self.ev,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> "LogEntry":
        try:
            return cls(
                sequence=int(raw["seq"]),  # type: ignore[arg-type]
                timestamp=int(raw["ts"]),  # type: ignore[arg-type]
                table=str(raw["table"]),
                hand=int(raw["hand"]),  # type: ignore[arg-type]
                channel=str(raw["channel"]),
                ev=str(raw["ev"]),
                payload=dict(raw.get("payload") or {}),  # type: ignore[call-overload]
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed log entry: {raw!r}") from exc


# Routing -------------------------------------------------------------------
#
# One place decides what each engine event exposes. ``public`` returns the
# payload for the public log (None keeps the event out of it), ``private``
# returns zero or more private payloads, and ``merge`` rebuilds the full
# event from a public payload plus the private payloads it references.


def _full(data: Payload) -> Payload:
    return dict(data)


def _deal_public(data: Payload) -> Payload:
    hands = data["hands"]
    return {
        "order": list(data["order"]),  # type: ignore[call-overload]
        "counts": [{"seat": hand["seat"], "count": len(hand["cards"])} for hand in hands],  # type: ignore[union-attr]
    }


def _deal_private(data: Payload) -> List[Payload]:
    return [{"seat": hand["seat"], "cards": list(hand["cards"])} for hand in data["hands"]]  # type: ignore[union-attr]


def _deal_merge(public: Payload, private: Sequence[Payload]) -> Payload:
    return {
        "order": list(public["order"]),  # type: ignore[call-overload]
        "hands": [{"seat": item["seat"], "cards": list(item["cards"])} for item in private],  # type: ignore[call-overload]
    }


def _draw_public(data: Payload) -> Payload:
    return {"seat": data["seat"], "count": data["count"]}


def _draw_private(data: Payload) -> List[Payload]:
    return [
        {
            "seat": data["seat"],
            "discards": list(data["discards"]),  # type: ignore[call-overload]
            "discarded": list(data["discarded"]),  # type: ignore[call-overload]
            "replacements": list(data["replacements"]),  # type: ignore[call-overload]
            "hand": list(data["hand"]),  # type: ignore[call-overload]
        }
    ]


def _overlay_merge(public: Payload, private: Sequence[Payload]) -> Payload:
    merged = {key: value for key, value in public.items() if key != "refs"}
    for item in private:
        merged.update(item)
    return merged


def _private_only(data: Payload) -> List[Payload]:
    return [dict(data)]


@dataclass(frozen=True)
class Route:
    public: Optional[Callable[[Payload], Payload]] = None
    private: Optional[Callable[[Payload], List[Payload]]] = None
    merge: Callable[[Payload, Sequence[Payload]], Payload] = _overlay_merge


ROUTES: Dict[str, Route] = {
    "HAND_START": Route(public=_full),
    "PHASE": Route(public=_full),
    ActionType.ANTE.value: Route(public=_full),
    ActionType.BET.value: Route(public=_full),
    ActionType.CALL.value: Route(public=_full),
    ActionType.RAISE.value: Route(public=_full),
    ActionType.CHECK.value: Route(public=_full),
    ActionType.FOLD.value: Route(public=_full),
    "DEAL": Route(public=_deal_public, private=_deal_private, merge=_deal_merge),
    ActionType.DRAW.value: Route(public=_draw_public, private=_draw_private),
    ActionType.SHOWDOWN.value: Route(public=_full),
    "FINAL_HAND": Route(private=_private_only),
    "SETTLEMENT": Route(public=_full),
    "REVEAL": Route(public=_full),
}

# Events a settled hand may still log.
AFTER_SETTLEMENT = frozenset({"REVEAL"})


# Hand records --------------------------------------------------------------


@dataclass(frozen=True)
class RecordedAction:
    seat: int
    phase: Phase
    type: ActionType
    amount: int = 0
    discards: Tuple[int, ...] = ()
    cards: Tuple[str, ...] = ()


@dataclass(frozen=True)
class HandRecord:
    table: str
    hand_number: int
    button: int
    opening_stacks: Tuple[Tuple[int, int], ...]
    hole_cards: Tuple[Tuple[int, Tuple[str, ...]], ...]
    actions: Tuple[RecordedAction, ...]
    awards: Tuple[Tuple[int, int], ...]
    final_hands: Tuple[Tuple[int, Tuple[str, ...]], ...]
    revealed: Tuple[Tuple[int, str], ...]
    final_stacks: Tuple[Tuple[int, int], ...]
    folded_out: bool

    def stack_deltas(self) -> Dict[int, int]:
        opening = dict(self.opening_stacks)
        return {seat: stack - opening[seat] for seat, stack in self.final_stacks}

    def award_for(self, seat: int) -> int:
        return dict(self.awards).get(seat, 0)


_PHASE_OF_ACTION = {
    ActionType.ANTE: Phase.AWAITING_ANTE,
    ActionType.DRAW: Phase.DRAWING,
    ActionType.SHOWDOWN: Phase.SHOWDOWN,
}


class HandRecordBuilder:
    """Folds fully resolved events of one hand into a sealed HandRecord."""

    def __init__(self, table: str, hand_number: int) -> None:
        self.table = table
        self.hand_number = hand_number
        self.phase = Phase.AWAITING_ANTE
        self.button: Optional[int] = None
        self.opening: List[Tuple[int, int]] = []
        self.hole_cards: List[Tuple[int, Tuple[str, ...]]] = []
        self.actions: List[RecordedAction] = []
        self.final_hands: List[Tuple[int, Tuple[str, ...]]] = []
        self.revealed: List[Tuple[int, str]] = []
        self.sealed: Optional[HandRecord] = None

    def apply(self, ev: str, data: Mapping[str, object]) -> None:
        if self.sealed is not None:
            if ev not in AFTER_SETTLEMENT:
                raise RuntimeError(f"Hand {self.hand_number} is already sealed")
            self._reveal(data)
            return
        if ev in AFTER_SETTLEMENT:
            raise ValueError(f"{ev} before hand {self.hand_number} settled")
        if ev == "HAND_START":
            self.button = int(data["button"])  # type: ignore[arg-type]
            self.opening = [(int(item["seat"]), int(item["stack"])) for item in data["seats"]]  # type: ignore[union-attr]
        elif ev == "PHASE":
            self.phase = Phase(data["phase"])
        elif ev == "DEAL":
            self.phase = Phase.DEALT
            self.hole_cards = [(int(item["seat"]), tuple(item["cards"])) for item in data["hands"]]  # type: ignore[union-attr]
        elif ev == ActionType.DRAW.value:
            self.actions.append(
                RecordedAction(
                    seat=int(data["seat"]),  # type: ignore[arg-type]
                    phase=Phase.DRAWING,
                    type=ActionType.DRAW,
                    discards=tuple(data["discards"]),  # type: ignore[arg-type]
                )
            )
        elif ev == ActionType.SHOWDOWN.value:
            cards = tuple(data["cards"])  # type: ignore[arg-type]
            seat = int(data["seat"])  # type: ignore[arg-type]
            self.actions.append(RecordedAction(seat=seat, phase=Phase.SHOWDOWN, type=ActionType.SHOWDOWN, cards=cards))
            self.revealed.append((seat, str(data["rank"])))
        elif ev == "FINAL_HAND":
            if not data["folded"]:
                self.final_hands.append((int(data["seat"]), tuple(data["cards"])))  # type: ignore[arg-type]
        elif ev == "SETTLEMENT":
            self._seal(data)
        else:
            action = ActionType(ev)
            amount = data.get("raise_by", data["amount"])
            self.actions.append(
                RecordedAction(
                    seat=int(data["seat"]),  # type: ignore[arg-type]
                    phase=_PHASE_OF_ACTION.get(action, self.phase),
                    type=action,
                    amount=int(amount),  # type: ignore[arg-type]
                )
            )

    def _seal(self, data: Mapping[str, object]) -> None:
        if self.button is None:
            raise ValueError(f"Hand {self.hand_number} settled without a start")
        self.sealed = HandRecord(
            table=self.table,
            hand_number=self.hand_number,
            button=self.button,
            opening_stacks=tuple(self.opening),
            hole_cards=tuple(self.hole_cards),
            actions=tuple(self.actions),
            awards=tuple((int(item["seat"]), int(item["amount"])) for item in data["awards"]),  # type: ignore[union-attr]
            final_hands=tuple(self.final_hands),
            revealed=tuple(self.revealed),
            final_stacks=tuple((int(item["seat"]), int(item["stack"])) for item in data["stacks"]),  # type: ignore[union-attr]
            folded_out=bool(data["folded_out"]),
        )

    def _reveal(self, data: Mapping[str, object]) -> None:
        assert self.sealed is not None
        if not self.sealed.folded_out:
            raise ValueError(f"Hand {self.hand_number} went to showdown; there is nothing to reveal")
        if self.sealed.revealed:
            raise ValueError(f"Hand {self.hand_number} was already revealed")
        seat = int(data["seat"])  # type: ignore[arg-type]
        if seat not in dict(self.sealed.final_hands):
            raise ValueError(f"Seat {seat} did not win hand {self.hand_number}")
        self.sealed = replace(self.sealed, revealed=((seat, str(data["rank"])),))


# Recorder ------------------------------------------------------------------


class HandHistoryRecorder:
    """Turns engine events into sequenced public/private log entries.

    Pass ``recorder.record_many`` to the engine as its ``emit`` callable.
    A batch is committed whole or not at all. Entries for the running hand
    are buffered and written to both sinks once the hand settles; entries a
    sink refuses stay queued for the next flush.
    """

    def __init__(self, session: SessionContext, public_sink: LogSink, private_sink: LogSink) -> None:
        self.session = session
        self.public_sink = public_sink
        self.private_sink = private_sink
        self.public_log: List[LogEntry] = []
        self.private_log: List[LogEntry] = []
        self.records: List[HandRecord] = []
        self._pending_public: List[LogEntry] = []
        self._pending_private: List[LogEntry] = []
        self._builder: Optional[HandRecordBuilder] = None
        # Builder of the last settled hand; it still accepts AFTER_SETTLEMENT events.
        self._settled: Optional[HandRecordBuilder] = None
        self._last_timestamp = 0

    def record(self, event: Event) -> List[LogEntry]:
        return self.record_many([event])

    def record_many(self, events: Sequence[Event]) -> List[LogEntry]:
        # Stage against copies; nothing is committed if any event fails.
        builder = copy.deepcopy(self._builder)
        settled = copy.deepcopy(self._settled)
        sequence = self.session.next_sequence
        timestamp = self._last_timestamp
        entries: List[LogEntry] = []
        sealed: List[HandRecord] = []

        for event in events:
            route = ROUTES.get(event.ev)
            if route is None:
                raise ValueError(f"No log route for event {event.ev}")
            if event.ev == "HAND_START":
                if builder is not None:
                    raise RuntimeError("Previous hand was not settled")
                builder = HandRecordBuilder(self.session.table_name, event.hand)
            elif builder is None and event.ev in AFTER_SETTLEMENT and settled and settled.hand_number == event.hand:
                builder = settled
            elif builder is None or builder.hand_number != event.hand:
                raise RuntimeError(f"Event {event.ev} for hand {event.hand} arrived outside that hand")

            for channel, payload in self._route(route, event, sequence):
                # Clamp so timestamps never decrease along the sequence.
                timestamp = max(int(self.session.clock()), timestamp)
                entries.append(
                    LogEntry(
                        sequence=sequence,
                        timestamp=timestamp,
                        table=self.session.table_name,
                        hand=event.hand,
                        channel=channel,
                        ev=event.ev,
                        payload=payload,
                    )
                )
                sequence += 1

            builder.apply(event.ev, event.data)
            if builder.sealed is not None:
                sealed.append(builder.sealed)
                settled, builder = builder, None

        self.session.reserve_sequence(len(entries))
        self._last_timestamp = timestamp
        self._builder, self._settled = builder, settled
        for record in sealed:
            if self.records and self.records[-1].hand_number == record.hand_number:
                self.records[-1] = record
            else:
                self.records.append(record)
        for entry in entries:
            if entry.channel == PUBLIC:
                self._pending_public.append(entry)
            else:
                self._pending_private.append(entry)

        if self._builder is None:
            self.flush()
        return entries

    def flush(self) -> None:
        """Write queued entries, private first, and drop each one only once its sink took it."""
        written = self._deliver(PRIVATE, self._pending_private, self.private_sink, self.private_log)
        written += self._deliver(PUBLIC, self._pending_public, self.public_sink, self.public_log)
        if written:
            LOGGER.debug(
                "Flushed %d entries of %s (next seq %d)",
                written,
                self.session.table_name,
                self.session.next_sequence,
            )

    def close(self) -> None:
        """Write out whatever the current hand has logged, settled or not."""
        if self._builder is not None:
            LOGGER.warning(
                "Hand %s of %s closed before settlement; its logs are incomplete",
                self._builder.hand_number,
                self.session.table_name,
            )
            self._builder = None
        self.flush()

    def transcript(self) -> str:
        return render_transcript(self.public_log)

    def private_transcript(self) -> str:
        return render_private_transcript(self.private_log, seat_names(self.public_log))

    def _route(self, route: Route, event: Event, first_sequence: int) -> List[Tuple[str, Payload]]:
        private_payloads = route.private(event.data) if route.private else []
        public_payload = route.public(event.data) if route.public else None
        # Private entries go first so the public consequence is never stamped earlier.
        routed = [(PRIVATE, payload) for payload in private_payloads]
        if public_payload is not None:
            if private_payloads:
                public_payload["refs"] = list(range(first_sequence, first_sequence + len(private_payloads)))
            routed.append((PUBLIC, public_payload))
        return routed

    def _deliver(self, channel: str, pending: List[LogEntry], sink: LogSink, log: List[LogEntry]) -> int:
        written = 0
        try:
            while pending:
                sink.append(pending[0])
                log.append(pending.pop(0))
                written += 1
            if written:
                sink.flush()
        except Exception as exc:
            LOGGER.error("%s sink of %s refused an entry: %s", channel.capitalize(), self.session.table_name, exc)
            raise LogDeliveryError(f"{len(pending)} {channel} entries are queued for the next flush") from exc
        return written
