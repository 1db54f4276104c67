"""Human-readable renderings of the public and private logs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from .history import LogEntry

_ROUND_TITLES = {
    "BETTING_1": "First betting round",
    "DRAWING": "Draw",
    "BETTING_2": "Second betting round",
    "SHOWDOWN": "Showdown",
    "FOLDED_OUT": "All others folded",
}


def seat_names(entries: Iterable["LogEntry"]) -> Dict[int, str]:
    names: Dict[int, str] = {}
    for entry in entries:
        if entry.ev == "HAND_START":
            for item in entry.payload["seats"]:  # type: ignore[union-attr]
                names[int(item["seat"])] = str(item["player"])
    return names


def render_transcript(entries: Sequence["LogEntry"]) -> str:
    names = seat_names(entries)
    lines = _header("Table Log", entries)
    for entry in _with_hand_breaks(entries, lines):
        text = _describe_public(entry.ev, entry.payload, names)
        if text is not None:
            lines.append(f"[{entry.timestamp}] {text}")
    return "\n".join(lines)


def render_private_transcript(entries: Sequence["LogEntry"], names: Optional[Mapping[int, str]] = None) -> str:
    names = names or {}
    lines = _header("Private Card Log", entries)
    for entry in _with_hand_breaks(entries, lines):
        payload = entry.payload
        who = _name(names, payload.get("seat"))
        if entry.ev == "DEAL":
            text = f"{who}: initial hand [{_cards(payload['cards'])}]"
        elif entry.ev == "DRAW":
            text = (
                f"{who}: discards [{_cards(payload['discarded'])}] draws "
                f"[{_cards(payload['replacements'])}] now [{_cards(payload['hand'])}]"
            )
        elif entry.ev == "FINAL_HAND":
            note = "final hand (folded)" if payload.get("folded") else "final hand"
            text = f"{who}: {note} [{_cards(payload['cards'])}] {payload['rank']}"
        else:
            text = f"{who}: {entry.ev.lower()}"
        lines.append(f"[{entry.timestamp}] {text}")
    return "\n".join(lines)


def _header(title: str, entries: Sequence["LogEntry"]) -> List[str]:
    table = entries[0].table if entries else "(empty)"
    return [f"=== {title}: {table} ==="]


def _with_hand_breaks(entries: Sequence["LogEntry"], lines: List[str]) -> Iterable["LogEntry"]:
    current = None
    for entry in entries:
        if entry.hand != current:
            current = entry.hand
            lines.append(f"-- Hand {current} --")
        yield entry


def _describe_public(ev: str, payload: Mapping[str, object], names: Mapping[int, str]) -> Optional[str]:
    who = _name(names, payload.get("seat"))
    stack = f" (stack: {payload.get('stack')})"
    all_in = " and is all-in" if payload.get("all_in") else ""

    if ev == "HAND_START":
        dealer = _name(names, payload["button"])
        return f"{dealer} has the button; ante {payload['ante']}"
    if ev == "PHASE":
        title = _ROUND_TITLES.get(str(payload["phase"]))
        return f"--- {title} ---" if title else None
    if ev == "DEAL":
        order = " then ".join(_name(names, seat) for seat in payload["order"])  # type: ignore[union-attr]
        return f"cards dealt one at a time to {order} x5"
    if ev == "ANTE":
        return f"{who}: posts ante {payload['amount']}{all_in}{stack}"
    if ev == "BET":
        return f"{who}: bets {payload['amount']}{all_in}{stack}"
    if ev == "CALL":
        return f"{who}: calls {payload['amount']}{all_in}{stack}"
    if ev == "RAISE":
        return f"{who}: raises {payload['raise_by']} to {payload['to']}{all_in}{stack}"
    if ev == "CHECK":
        return f"{who}: checks{stack}"
    if ev == "FOLD":
        return f"{who}: folds{stack}"
    if ev == "DRAW":
        count = int(payload["count"])  # type: ignore[arg-type]
        if count == 0:
            return f"{who}: stands pat"
        return f"{who}: draws {count} card{'s' if count != 1 else ''}"
    if ev == "SHOWDOWN":
        return f"{who}: shows [{_cards(payload['cards'])}] {payload['rank']}"
    if ev == "SETTLEMENT":
        stacks = {int(item["seat"]): item["stack"] for item in payload["stacks"]}  # type: ignore[union-attr]
        winners = [item for item in payload["awards"] if item["amount"]]  # type: ignore[union-attr]
        suffix = " as all others folded" if payload.get("folded_out") else ""
        return "; ".join(
            f"{_name(names, item['seat'])} wins {item['amount']}{suffix} (stack: {stacks[int(item['seat'])]})"
            for item in winners
        ) or "no chips awarded"
    if ev == "REVEAL":
        return f"{who}: shows [{_cards(payload['cards'])}] {payload['rank']} after the others folded"
    return f"{who}: {ev.lower()}"


def _name(names: Mapping[int, str], seat: object) -> str:
    if seat is None:
        return "table"
    return names.get(int(seat), f"Seat {seat}")  # type: ignore[call-overload]


def _cards(labels: object) -> str:
    return " ".join(labels)  # type: ignore[arg-type]
