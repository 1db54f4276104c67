#!/usr/bin/env python3
"""Play a Five-Card Draw match between scripted bots and record both logs.

The match runs in-process until one player holds every chip or the hand
limit is reached. The public and private logs are written as JSON lines,
the public transcript is printed, and both logs are replayed at the end to
confirm they rebuild the same hand records.

Example:
    python scripts/table_sim.py --players 4 --hands 50 --seed 7 --out logs/
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
from pathlib import Path

from drawpoker.cards import SeededShuffler, SystemShuffler
from drawpoker.errors import LogMismatch
from drawpoker.game import GameEngine
from drawpoker.history import HandHistoryRecorder
from drawpoker.models import TableConfig
from drawpoker.replay import replay_files
from drawpoker.session import SessionContext
from drawpoker.sinks import JsonLinesLogSink
from practice.bots import baseline_strategy, play_hand

LOGGER = logging.getLogger("table_sim")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Simulate a Five-Card Draw table with scripted bots")
    parser.add_argument("--players", type=int, default=4, help="Number of bots (2-6)")
    parser.add_argument("--hands", type=int, default=100, help="Maximum number of hands to play")
    parser.add_argument("--seed", type=int, default=None, help="Seed for shuffles and bot decisions")
    parser.add_argument("--stack", type=int, default=1_000, help="Starting stack per player")
    parser.add_argument("--ante", type=int, default=5)
    parser.add_argument("--min-bet", type=int, default=10)
    parser.add_argument("--max-bet", type=int, default=None, help="Largest bet or raise increment (default: none)")
    parser.add_argument("--max-discards", type=int, default=5)
    parser.add_argument("--out", default="logs", help="Directory for public.jsonl and private.jsonl")
    parser.add_argument(
        "--show-rate", type=float, default=0.3, help="Chance an uncontested winner shows their cards (default: 0.3)"
    )
    parser.add_argument("--private", action="store_true", help="Also print the private log transcript")
    parser.add_argument("--log-level", default="INFO", help="Python logging level (default: INFO)")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not 2 <= args.players <= 6:
        LOGGER.error("--players must be between 2 and 6")
        return 2

    config = TableConfig(
        seats=args.players,
        starting_stack=args.stack,
        ante=args.ante,
        min_bet=args.min_bet,
        max_bet=args.max_bet,
        max_discards=args.max_discards,
    )
    out_dir = Path(args.out)
    public_path = out_dir / "public.jsonl"
    private_path = out_dir / "private.jsonl"
    for path in (public_path, private_path):
        if path.exists():
            path.unlink()

    session = SessionContext.open()
    shuffler = SeededShuffler(args.seed) if args.seed is not None else SystemShuffler()
    rng = random.Random(args.seed)

    with JsonLinesLogSink(public_path) as public_sink, JsonLinesLogSink(private_path) as private_sink:
        recorder = HandHistoryRecorder(session, public_sink, private_sink)
        engine = GameEngine(config, session, recorder.record_many)
        for idx in range(args.players):
            engine.assign_seat(f"Bot{idx + 1}")

        LOGGER.info("Table %s opened with %d players", session.table_name, args.players)
        try:
            while session.hand_counter < args.hands and not engine.is_match_over():
                ctx = play_hand(engine, shuffler, lambda eng, seat: baseline_strategy(eng, seat, rng))
                if ctx.fold_winner is not None and rng.random() < args.show_rate:
                    engine.reveal(ctx.fold_winner)
        finally:
            recorder.close()

    print(recorder.transcript())
    if args.private:
        print(recorder.private_transcript())

    result = engine.match_result_payload()
    winner = result["winner"]
    if winner:
        LOGGER.info("Match over after %d hands: %s wins", session.hand_counter, winner["player"])  # type: ignore[index]
    else:
        LOGGER.info("Stopped after %d hands", session.hand_counter)
    for item in result["final_stacks"]:  # type: ignore[union-attr]
        LOGGER.info("  seat %s %-8s %6s", item["seat"], item["player"], item["stack"])

    try:
        records = replay_files(public_path, private_path)
    except LogMismatch as exc:
        LOGGER.error("Replay failed: %s", exc)
        return 1
    if records != recorder.records:
        LOGGER.error("Replayed hand records differ from the live ones")
        return 1
    LOGGER.info("Replayed %d hands from %s", len(records), out_dir)
    return 0


if __name__ == "__main__":
    sys.exit(main())
