"""Live status line fed by a bounded queue of progress events."""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from typing import Callable

SPINNER = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
MAX_LINE = 70
MAX_REPO = 20


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    repo: str
    action: str


class ProgressQueue:
    """Bounded event queue whose producers never wait.

    When the queue is full the oldest event is dropped to make room; only the
    most recent event is ever displayed, so stale ones carry no information.
    """

    def __init__(self, maxsize: int = 100) -> None:
        self._queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, repo: str, action: str) -> None:
        event = ProgressEvent(repo, action)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._queue.get_nowait()
            self.dropped += 1
            self._queue.put_nowait(event)

    def drain(self) -> ProgressEvent | None:
        """Remove every queued event and return the newest one."""

        latest = None
        while True:
            try:
                latest = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return latest

    def qsize(self) -> int:
        return self._queue.qsize()


def _write_stderr(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


class ProgressReporter:
    """Redraws a single status line at a fixed interval, decoupled from event volume."""

    def __init__(
        self,
        events: ProgressQueue,
        total: int,
        completed: Callable[[], int],
        *,
        interval: float = 0.08,
        write: Callable[[str], None] | None = None,
    ) -> None:
        self._events = events
        self._total = total
        self._completed = completed
        self._interval = interval
        self._write = write or _write_stderr
        self._last: ProgressEvent | None = None
        self._tick = 0

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.redraw()

    def redraw(self) -> None:
        self._tick += 1
        latest = self._events.drain()
        if latest is not None:
            self._last = latest
        self._write("\r\033[K" + self.render())

    def render(self) -> str:
        spin = SPINNER[self._tick % len(SPINNER)]
        line = f"{spin} Analyzing [{self._completed()}/{self._total}]"
        if self._last is not None:
            repo = self._last.repo
            if len(repo) > MAX_REPO:
                repo = repo[: MAX_REPO - 3] + "..."
            line += f" {repo} · {self._last.action}"
        if len(line) > MAX_LINE:
            line = line[: MAX_LINE - 3] + "..."
        return line

    def clear(self) -> None:
        self._write("\r\033[K")


__all__ = ["ProgressEvent", "ProgressQueue", "ProgressReporter"]
