"""Tests for progress events and the streaming channel."""

import asyncio
import json

from script2voiceover.models import AudioResult, SegmentResult
from script2voiceover.progress import (
    NO_RESPONSE_ERROR,
    NullProgressSink,
    ProgressChannel,
    ProgressEvent,
    parse_event_stream,
)


class TestProgressEvent:
    def test_progress_wire_form(self):
        sse = ProgressEvent.progress(15, "Generating audio chunk 1/3...").to_sse()
        assert sse.startswith("data: ")
        assert sse.endswith("\n\n")
        assert json.loads(sse[len("data: "):]) == {
            "type": "progress", "percent": 15, "message": "Generating audio chunk 1/3...",
        }

    def test_complete_wire_form(self):
        data = ProgressEvent.complete("http://host/files/p/voiceover.wav", 12, 576044, 30).to_dict()
        assert data == {
            "type": "complete",
            "success": True,
            "audioUrl": "http://host/files/p/voiceover.wav",
            "duration": 12,
            "size": 576044,
            "wordCount": 30,
        }

    def test_error_wire_form(self):
        assert ProgressEvent.failure("TTS job failed: boom").to_dict() == {
            "type": "error", "error": "TTS job failed: boom",
        }

    def test_from_dict_round_trips(self):
        event = ProgressEvent.complete("u", 3, 10, 2)
        assert ProgressEvent.from_dict(event.to_dict()) == event

    def test_segmented_complete_wire_form(self):
        result = AudioResult(
            audio_url="http://host/files/p/voiceover.wav",
            duration_seconds=2.5,
            size_bytes=120044,
            word_count=4,
            segments=(
                SegmentResult(1, "http://host/files/p/voiceover-segment-1.wav", 1.25, 60044, "Morning light"),
                SegmentResult(2, "http://host/files/p/voiceover-segment-2.wav", 1.25, 60044, "spills across"),
            ),
        )
        data = ProgressEvent.from_result(result).to_dict()

        assert data["duration"] == 3
        assert data["totalDuration"] == 3
        assert data["segments"][1] == {
            "index": 2,
            "audioUrl": "http://host/files/p/voiceover-segment-2.wav",
            "duration": 1.3,
            "size": 60044,
            "text": "spills across",
        }
        assert ProgressEvent.from_dict(data).to_dict() == data

    def test_terminal(self):
        assert not ProgressEvent.progress(5, "x").terminal
        assert ProgressEvent.complete("u", 1, 1).terminal
        assert ProgressEvent.failure("e").terminal


class TestProgressChannel:
    def test_events_arrive_in_order(self):
        channel = ProgressChannel()
        channel.progress(5, "Processing script...")
        channel.progress(10, "Processing 2 chunks (default voice)...")
        channel.emit(ProgressEvent.complete("u", 1, 44))

        events = list(channel.iter_events(timeout=1))
        assert [e.type for e in events] == ["progress", "progress", "complete"]
        assert [e.percent for e in events[:2]] == [5, 10]

    def test_only_one_terminal_event(self):
        channel = ProgressChannel()
        channel.emit(ProgressEvent.failure("first"))
        channel.emit(ProgressEvent.complete("u", 1, 1))
        channel.progress(90, "late")

        events = list(channel.iter_events(timeout=0.1))
        assert events == [ProgressEvent.failure("first")]
        assert channel.finished

    def test_emit_after_close_is_dropped(self):
        channel = ProgressChannel()
        channel.progress(5, "before")
        channel.close()
        channel.progress(50, "after")
        channel.emit(ProgressEvent.complete("u", 1, 1))

        events = list(channel.iter_events(timeout=0.1))
        assert [e.message for e in events if e.type == "progress"] == ["before"]
        assert events[-1] == ProgressEvent.failure(NO_RESPONSE_ERROR)
        assert channel.closed

    def test_silent_channel_times_out_with_error(self):
        events = list(ProgressChannel().iter_events(timeout=0.05))
        assert events == [ProgressEvent.failure(NO_RESPONSE_ERROR)]

    def test_async_reader(self):
        channel = ProgressChannel()

        async def read():
            return [e async for e in channel.events(poll_interval=0.01)]

        channel.progress(5, "a")
        channel.emit(ProgressEvent.complete("u", 2, 3))
        events = asyncio.run(read())
        assert [e.type for e in events] == ["progress", "complete"]

    def test_null_sink_accepts_everything(self):
        sink = NullProgressSink()
        sink.progress(5, "ignored")
        sink.emit(ProgressEvent.failure("ignored"))


class TestParseEventStream:
    def test_stops_at_terminal_event(self):
        lines = [
            ProgressEvent.progress(5, "a").to_sse(),
            ": ping",
            ProgressEvent.complete("u", 4, 100).to_sse(),
            ProgressEvent.progress(99, "never read").to_sse(),
        ]
        events = parse_event_stream("".join(lines).splitlines())
        assert [e.type for e in events] == ["progress", "complete"]
        assert events[-1].duration == 4

    def test_truncated_stream_ends_with_error(self):
        events = parse_event_stream([ProgressEvent.progress(5, "a").to_sse().strip()])
        assert events[-1] == ProgressEvent.failure(NO_RESPONSE_ERROR)

    def test_skips_malformed_lines(self):
        events = parse_event_stream(["data: {not json", 'data: {"type": "error", "error": "x"}'])
        assert events == [ProgressEvent.failure("x")]
