from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from drawpoker.history import PUBLIC, LogEntry

LOGGER = logging.getLogger("spectator")

# SpectatorFeed is a public-log sink: the recorder (or a log file) feeds it
# entries and it relays them to websocket spectators. It never sees the
# private log, so nothing it sends can reveal concealed cards.


class SpectatorFeed:
    def __init__(self, history_limit: int = 5_000) -> None:
        self.spectators: Set[ServerConnection] = set()
        self.backlog: List[LogEntry] = []
        self.history_limit = history_limit
        self.lock = asyncio.Lock()
        self._outbox: List[LogEntry] = []
        self._tasks: Set[asyncio.Task] = set()

    # LogSink ---------------------------------------------------------

    def append(self, entry: LogEntry) -> None:
        if entry.channel != PUBLIC:
            raise ValueError("Spectator feed only carries public log entries")
        self.backlog.append(entry)
        if len(self.backlog) > self.history_limit:
            del self.backlog[: len(self.backlog) - self.history_limit]
        self._outbox.append(entry)

    def flush(self) -> None:
        # Called from engine code; hand the broadcast to the running loop if any.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.publish_pending())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # Serving ---------------------------------------------------------

    async def start(self, host: str = "0.0.0.0", port: int = 8766) -> None:
        async with serve(self._handle_connection, host, port):
            LOGGER.info("Spectator feed listening on %s:%s", host, port)
            await asyncio.Future()

    async def replay(self, entries: Iterable[LogEntry], delay_ms: int = 0) -> None:
        """Feed a recorded public log to spectators, optionally paced."""
        for entry in entries:
            self.append(entry)
            await self.publish_pending()
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)
        LOGGER.info("Replay finished (%d entries)", len(self.backlog))

    async def publish_pending(self) -> None:
        entries, self._outbox = self._outbox, []
        for entry in entries:
            await self._broadcast("spectator/entry", {"entry": entry.to_dict()})

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return

        LOGGER.info("Spectator connected")
        async with self.lock:
            self.spectators.add(websocket)
            backlog = [entry.to_dict() for entry in self.backlog]
        await self._send_json(websocket, "spectator/backlog", {"entries": backlog})
        try:
            async for raw in websocket:
                if not self._decode(raw):
                    continue
                LOGGER.warning("Spectator sent a message; closing connection")
                await websocket.close(code=4403, reason="Spectators are read-only")
                break
        except ConnectionClosed:
            pass
        finally:
            async with self.lock:
                self.spectators.discard(websocket)
            LOGGER.info("Spectator disconnected")

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        async with self.lock:
            targets = list(self.spectators)
        if not targets:
            return
        message = self._envelope(msg_type, payload)
        await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    async def _read_message(self, websocket: ServerConnection) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, ConnectionClosed):
            return None
        return self._decode(raw)

    def _decode(self, raw: object) -> Dict[str, object]:
        try:
            message = json.loads(raw)  # type: ignore[arg-type]
        except (TypeError, json.JSONDecodeError):
            return {}
        return message if isinstance(message, dict) else {}
