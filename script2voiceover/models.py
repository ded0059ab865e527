"""Data models for the voiceover pipeline."""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves away from zero (2.5 → 3), unlike the builtin ``round``."""
    scale = 10 ** ndigits
    rounded = int(abs(value) * scale + 0.5) / scale
    rounded = rounded if value >= 0 else -rounded
    return int(rounded) if ndigits == 0 else rounded


@dataclass(frozen=True)
class TextChunk:
    """A bounded slice of narration sent to the inference service as one unit."""
    text: str
    ordinal: int


@dataclass(frozen=True)
class ReferencePayload:
    """A voice sample prepared for inline upload to the inference service."""
    data: bytes
    encoding: str = "base64"

    @property
    def size(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


class JobState(str, Enum):
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass
class SynthesisJob:
    """One inference job for one chunk."""
    id: str
    state: JobState = JobState.QUEUED
    result_audio: Optional[bytes] = None
    sample_rate: Optional[int] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class WavFormat:
    """Format parameters read from a WAV fmt chunk."""
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    bits_per_sample: int
    block_align: int = 0

    @property
    def frame_size(self) -> int:
        """Bytes per sample frame, all channels included."""
        if self.block_align:
            return self.block_align
        return self.channels * self.bits_per_sample // 8

    @property
    def effective_byte_rate(self) -> int:
        if self.byte_rate:
            return self.byte_rate
        return self.sample_rate * self.channels * self.bits_per_sample // 8

    def same_layout(self, other: "WavFormat") -> bool:
        return (
            self.sample_rate == other.sample_rate
            and self.channels == other.channels
            and self.bits_per_sample == other.bits_per_sample
        )


@dataclass(frozen=True)
class ConcatenatedAudio:
    """The stitched WAV file and its duration."""
    data: bytes
    duration_seconds: float

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class NarrationSegment:
    """A numbered slice of narration that is rendered and stored on its own."""
    index: int  # 1-based
    text: str
    chunks: tuple[TextChunk, ...]


@dataclass(frozen=True)
class SegmentResult:
    """A stored segment WAV, addressable for regeneration by its index."""
    index: int
    audio_url: str
    duration_seconds: float
    size_bytes: int
    text: str

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "audioUrl": self.audio_url,
            "duration": round_half_up(self.duration_seconds, 1),
            "size": self.size_bytes,
            "text": self.text,
        }


@dataclass(frozen=True)
class AudioResult:
    """What a finished pipeline run hands back to the caller."""
    audio_url: str
    duration_seconds: float
    size_bytes: int
    word_count: int = 0
    chunk_count: int = 0
    segments: tuple[SegmentResult, ...] = ()

    @property
    def total_duration_seconds(self) -> float:
        """Sum of the segment durations, or the combined duration without segments."""
        if not self.segments:
            return self.duration_seconds
        return sum(s.duration_seconds for s in self.segments)

    def to_response(self) -> dict:
        response = {
            "success": True,
            "audioUrl": self.audio_url,
            "duration": round_half_up(self.duration_seconds),
            "size": self.size_bytes,
            "wordCount": self.word_count,
        }
        if self.segments:
            response["segments"] = [s.to_dict() for s in self.segments]
            response["totalDuration"] = round_half_up(self.total_duration_seconds)
        return response


@dataclass(frozen=True)
class IntegrityIssue:
    """A single anomaly found in a waveform."""
    type: str  # glitch | skip | discontinuity | silence_gap | clipping
    timestamp_seconds: float
    severity: str  # warning | error
    description: str

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "timestampSeconds": round(self.timestamp_seconds, 3),
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(frozen=True)
class IntegrityStats:
    duration_seconds: float = 0.0
    avg_amplitude: float = 0.0
    max_amplitude: float = 0.0
    silence_percent: float = 0.0
    discontinuities: int = 0

    def to_dict(self) -> dict:
        return {
            "durationSeconds": self.duration_seconds,
            "avgAmplitude": self.avg_amplitude,
            "maxAmplitude": self.max_amplitude,
            "silencePercent": self.silence_percent,
            "discontinuities": self.discontinuities,
        }


@dataclass(frozen=True)
class IntegrityReport:
    """Result of an integrity check. Never mutated after creation."""
    valid: bool
    issues: tuple[IntegrityIssue, ...] = ()
    stats: IntegrityStats = field(default_factory=IntegrityStats)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "issues": [issue.to_dict() for issue in self.issues],
            "stats": self.stats.to_dict(),
        }
