"""Split narration into chunks small enough for a single TTS inference call."""

import math
import re

from script2voiceover.models import TextChunk

DEFAULT_MAX_CHUNK_LENGTH = 180
DEFAULT_SEGMENT_COUNT = 10

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
_COMMA_BOUNDARY = re.compile(r",\s*")


def split_into_chunks(text: str, max_length: int = DEFAULT_MAX_CHUNK_LENGTH) -> list[TextChunk]:
    """Split text at sentence boundaries, falling back to commas, then to hard cuts.

    Sentences are packed greedily: a chunk keeps absorbing the following
    sentences while it stays within ``max_length``. A sentence longer than
    ``max_length`` is broken at commas, and a comma-delimited part that is
    still too long is cut every ``max_length`` characters.

    Returns:
        Chunks in narration order, each at most ``max_length`` characters.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")

    pieces: list[str] = []
    current = ""

    for sentence in _SENTENCE_BOUNDARY.split(text):
        if len(sentence) > max_length:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(_split_long_sentence(sentence, max_length))
        elif current and len(current) + 1 + len(sentence) > max_length:
            pieces.append(current)
            current = sentence
        else:
            current = f"{current} {sentence}" if current else sentence

    if current:
        pieces.append(current)

    texts = [p.strip() for p in pieces]
    return [TextChunk(text=t, ordinal=i) for i, t in enumerate(t for t in texts if t)]


def _split_long_sentence(sentence: str, max_length: int) -> list[str]:
    pieces: list[str] = []
    buffer = ""

    for part in _COMMA_BOUNDARY.split(sentence):
        if len(part) > max_length:
            if buffer:
                pieces.append(buffer)
                buffer = ""
            # Last resort: cut regardless of word boundaries
            pieces.extend(part[i:i + max_length] for i in range(0, len(part), max_length))
        elif buffer and len(buffer) + 2 + len(part) > max_length:
            pieces.append(buffer)
            buffer = part
        else:
            buffer = f"{buffer}, {part}" if buffer else part

    if buffer:
        pieces.append(buffer)
    return pieces


def split_into_segments(text: str, count: int = DEFAULT_SEGMENT_COUNT) -> list[str]:
    """Split text into at most ``count`` runs of roughly equal word count.

    Each segment takes ``ceil(words / count)`` words and the last one takes
    the remainder, so fewer than ``count`` segments come back for short text.
    """
    if count < 1:
        raise ValueError("count must be positive")

    words = text.split()
    if not words:
        return []

    per_segment = math.ceil(len(words) / count)
    segments = []
    for i in range(count):
        start = i * per_segment
        end = len(words) if i == count - 1 else (i + 1) * per_segment
        if words[start:end]:
            segments.append(" ".join(words[start:end]))
    return segments
