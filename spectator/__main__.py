import argparse
import asyncio
import logging

from drawpoker.sinks import load_entries

from .server import SpectatorFeed

logging.basicConfig(level=logging.INFO)


async def _serve(feed: SpectatorFeed, entries, host: str, port: int, delay_ms: int) -> None:
    server = asyncio.create_task(feed.start(host=host, port=port))
    await feed.replay(entries, delay_ms=delay_ms)
    await server


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve a recorded public hand log to websocket spectators")
    parser.add_argument("--public-log", required=True, help="JSON-lines public log written by the recorder")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8766)
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=0,
        help="Delay between entries in milliseconds (0 sends the whole log as backlog)",
    )
    args = parser.parse_args()

    entries = load_entries(args.public_log)
    feed = SpectatorFeed(history_limit=max(len(entries), 1))
    asyncio.run(_serve(feed, entries, args.host, args.port, args.delay_ms))


if __name__ == "__main__":
    main()
