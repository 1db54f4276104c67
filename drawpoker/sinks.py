from __future__ import annotations

import json
from pathlib import Path
from typing import IO, List, Optional, Protocol, Union

from .history import LogEntry


class LogSink(Protocol):
    def append(self, entry: LogEntry) -> None:
        ...

    def flush(self) -> None:
        ...


class MemoryLogSink:
    """Append-only in-memory log."""

    def __init__(self) -> None:
        self.entries: List[LogEntry] = []

    def append(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def flush(self) -> None:
        pass


class JsonLinesLogSink:
    """Append-only JSON-lines file, one entry per line."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._handle: Optional[IO[str]] = None

    def append(self, entry: LogEntry) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a", encoding="utf-8")
        self._handle.write(json.dumps(entry.to_dict(), sort_keys=True) + "\n")

    def flush(self) -> None:
        if self._handle is not None:
            self._handle.flush()

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> "JsonLinesLogSink":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def load_entries(path: Union[str, Path]) -> List[LogEntry]:
    entries: List[LogEntry] = []
    with Path(path).open(encoding="utf-8") as handle:
        for line_no, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_no}: not valid JSON") from exc
            entries.append(LogEntry.from_dict(raw))
    return entries
