"""
Progress/log channel for one driver session.

Every stage reports into a single ProgressChannel owned by the Session. The
caller boundary (CLI, HTTP relay) is the only reader. Four event kinds flow
through it, each serializing to a one-key dict:

    {"log": "Navigating to https://chatgpt.com"}
    {"progress": 35}
    {"result": "<raw response text>"}
    {"error": "Login wait timed out. Log in inside the opened browser window..."}

The stream always ends with exactly one result or error event.

Example:
    >>> channel = ProgressChannel()
    >>> channel.emit(LogEvent("starting"))
    >>> channel.emit(ProgressEvent(5))
    >>> channel.emit(ResultEvent("done"))
    >>> [e.to_dict() async for e in channel]
    [{'log': 'starting'}, {'progress': 5}, {'result': 'done'}]
"""

import asyncio
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEvent:
    """Human-readable status line."""

    message: str

    def to_dict(self) -> dict:
        return {"log": self.message}


@dataclass(frozen=True)
class ProgressEvent:
    """Coarse completion estimate, 0-100."""

    percent: int

    def to_dict(self) -> dict:
        return {"progress": self.percent}


@dataclass(frozen=True)
class ResultEvent:
    """Terminal event carrying the raw response text."""

    text: str

    def to_dict(self) -> dict:
        return {"result": self.text}


@dataclass(frozen=True)
class ErrorEvent:
    """Terminal event carrying an action-oriented failure message."""

    message: str

    def to_dict(self) -> dict:
        return {"error": self.message}


Event = LogEvent | ProgressEvent | ResultEvent | ErrorEvent

TERMINAL_EVENTS = (ResultEvent, ErrorEvent)


def to_sse(event: Event) -> str:
    """Format an event as one server-sent-events frame."""
    return f"data: {json.dumps(event.to_dict(), ensure_ascii=False)}\n\n"


class ProgressChannel:
    """
    Single-writer, single-reader event channel backed by an asyncio.Queue.

    Guarantees:
    - progress values never decrease and stay within 0..100
    - exactly one terminal event is delivered; later events are dropped
    - async iteration stops right after the terminal event

    Attributes:
        closed: True once a terminal event has been emitted
        last_progress: Highest progress value emitted so far
    """

    def __init__(self):
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self.closed = False
        self.last_progress = 0

    def emit(self, event: Event) -> None:
        """
        Push an event into the channel (non-blocking).

        Progress events are clamped so the stream stays monotonic; a value
        lower than the current maximum is re-emitted as the maximum.
        """
        if self.closed:
            logger.debug(f"Dropping event after terminal event: {event!r}")
            return

        if isinstance(event, ProgressEvent):
            percent = max(self.last_progress, min(100, max(0, int(event.percent))))
            self.last_progress = percent
            event = ProgressEvent(percent)

        if isinstance(event, TERMINAL_EVENTS):
            self.closed = True

        self._queue.put_nowait(event)

    async def get(self) -> Event:
        """Wait for the next event."""
        return await self._queue.get()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            event = await self.get()
            yield event
            if isinstance(event, TERMINAL_EVENTS):
                return
