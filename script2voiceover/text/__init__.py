"""Narration text preparation: cleaning, normalization and chunking."""

from script2voiceover.text.chunker import split_into_chunks, split_into_segments
from script2voiceover.text.normalizer import (
    clean_script,
    normalize_text,
    validate_chunk,
    validation_failure_reason,
)

__all__ = [
    "clean_script",
    "normalize_text",
    "split_into_chunks",
    "split_into_segments",
    "validate_chunk",
    "validation_failure_reason",
]
