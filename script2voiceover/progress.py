"""Progress reporting for the voiceover pipeline.

The orchestrator talks to a ``ProgressSink``. Streaming requests get a
``ProgressChannel`` that queues events for an SSE response, the CLI gets a
tqdm bar, and everything else gets ``NullProgressSink``.
"""

import asyncio
import json
import logging
import queue
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Iterable, Iterator, Optional

from tqdm import tqdm

from script2voiceover.models import AudioResult

logger = logging.getLogger(__name__)

NO_RESPONSE_ERROR = "No response received"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress, complete or error event."""
    type: str
    percent: int = 0
    message: str = ""
    audio_url: str = ""
    duration: float = 0
    size: int = 0
    word_count: int = 0
    error: str = ""
    segments: tuple = ()  # segment dicts, only for segmented runs
    total_duration: float = 0

    @classmethod
    def progress(cls, percent: int, message: str) -> "ProgressEvent":
        return cls(type="progress", percent=percent, message=message)

    @classmethod
    def complete(
        cls,
        audio_url: str,
        duration: float,
        size: int,
        word_count: int = 0,
        segments: tuple = (),
        total_duration: float = 0,
    ) -> "ProgressEvent":
        return cls(
            type="complete",
            audio_url=audio_url,
            duration=duration,
            size=size,
            word_count=word_count,
            segments=tuple(segments),
            total_duration=total_duration,
        )

    @classmethod
    def from_result(cls, result: AudioResult) -> "ProgressEvent":
        """The ``complete`` event for a finished run."""
        response = result.to_response()
        return cls.complete(
            audio_url=response["audioUrl"],
            duration=response["duration"],
            size=response["size"],
            word_count=response["wordCount"],
            segments=tuple(response.get("segments", ())),
            total_duration=response.get("totalDuration", 0),
        )

    @classmethod
    def failure(cls, error: str) -> "ProgressEvent":
        return cls(type="error", error=error)

    @property
    def terminal(self) -> bool:
        return self.type in ("complete", "error")

    def to_dict(self) -> dict:
        if self.type == "progress":
            return {"type": "progress", "percent": self.percent, "message": self.message}
        if self.type == "complete":
            data = {
                "type": "complete",
                "success": True,
                "audioUrl": self.audio_url,
                "duration": self.duration,
                "size": self.size,
                "wordCount": self.word_count,
            }
            if self.segments:
                data["segments"] = list(self.segments)
                data["totalDuration"] = self.total_duration
            return data
        return {"type": "error", "error": self.error}

    def to_sse(self) -> str:
        """Wire form: one ``data:`` line and a blank line."""
        return f"data: {json.dumps(self.to_dict())}\n\n"

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressEvent":
        kind = data.get("type")
        if kind == "progress":
            return cls.progress(int(data.get("percent", 0)), data.get("message", ""))
        if kind == "complete":
            return cls.complete(
                data.get("audioUrl", ""), data.get("duration", 0),
                data.get("size", 0), data.get("wordCount", 0),
                segments=tuple(data.get("segments") or ()),
                total_duration=data.get("totalDuration", 0),
            )
        return cls.failure(data.get("error") or "Unknown error")


class ProgressSink:
    """Receiver of pipeline events. The base class discards everything."""

    def emit(self, event: ProgressEvent) -> None:
        pass

    def progress(self, percent: int, message: str) -> None:
        self.emit(ProgressEvent.progress(percent, message))


class NullProgressSink(ProgressSink):
    """Sink used by non-streaming runs."""


class ProgressChannel(ProgressSink):
    """Thread-safe event queue between a pipeline worker and a streaming reader.

    ``emit`` never raises and never blocks. Once the reader is gone
    (``close``) or a terminal event was queued, further events are dropped.
    """

    def __init__(self):
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def finished(self) -> bool:
        return self._finished

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._closed:
                logger.debug("Client disconnected, dropping %s event", event.type)
                return
            if self._finished:
                logger.debug("Stream already terminated, dropping %s event", event.type)
                return
            if event.terminal:
                self._finished = True
            self._queue.put_nowait(event)

    def close(self) -> None:
        """Mark the remote reader as gone."""
        with self._lock:
            self._closed = True

    def iter_events(self, timeout: Optional[float] = None) -> Iterator[ProgressEvent]:
        """Blocking iterator up to and including the terminal event.

        If nothing arrives within ``timeout`` seconds the stream is
        considered dead and an implicit error event ends it.
        """
        while True:
            try:
                event = self._queue.get(timeout=timeout)
            except queue.Empty:
                yield ProgressEvent.failure(NO_RESPONSE_ERROR)
                return
            yield event
            if event.terminal:
                return

    async def events(self, poll_interval: float = 0.1) -> AsyncIterator[ProgressEvent]:
        """Async iterator for an event loop, polling the queue without blocking it."""
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                await asyncio.sleep(poll_interval)
                continue
            yield event
            if event.terminal:
                return


class TqdmProgressSink(ProgressSink):
    """Renders pipeline percent on a tqdm bar for the CLI."""

    def __init__(self):
        self._bar = tqdm(
            total=100,
            desc="Voiceover",
            unit="%",
            bar_format="{l_bar}{bar}| {n_fmt}% [{elapsed}<{remaining}]",
        )

    def emit(self, event: ProgressEvent) -> None:
        if event.type == "progress":
            self._bar.set_postfix_str(event.message, refresh=False)
            self._bar.update(max(0, event.percent - self._bar.n))
        elif event.type == "complete":
            self._bar.update(100 - self._bar.n)

    def close(self) -> None:
        self._bar.close()


def parse_event_stream(lines: Iterable[str]) -> list[ProgressEvent]:
    """Decode ``data:`` lines from an SSE body into events.

    A stream that ends without a terminal event gets an implicit
    ``error("No response received")`` appended.
    """
    events: list[ProgressEvent] = []
    for line in lines:
        line = line.strip()
        if not line.startswith("data:"):
            continue
        try:
            payload = json.loads(line[len("data:"):].strip())
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed event line: %.100s", line)
            continue
        event = ProgressEvent.from_dict(payload)
        events.append(event)
        if event.terminal:
            return events
    events.append(ProgressEvent.failure(NO_RESPONSE_ERROR))
    return events
