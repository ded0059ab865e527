"""Text cleanup and safety checks applied before anything reaches the TTS backend."""

import re
import unicodedata
from typing import Optional

MIN_TEXT_LENGTH = 5
MAX_TEXT_LENGTH = 400

# Typographic characters NFKD leaves alone; mapped before non-ASCII is dropped
_PUNCTUATION_MAP = str.maketrans({
    "“": '"',
    "”": '"',
    "„": '"',
    "«": '"',
    "»": '"',
    "‘": "'",
    "’": "'",
    "‚": "'",
    "–": "-",
    "—": "-",
    "−": "-",
    "…": "...",
})

_NON_ASCII = re.compile(r"[^\x00-\x7F]")
_ALNUM = re.compile(r"[a-zA-Z0-9]")
_WHITESPACE = re.compile(r"\s+")

_SCENE_MARKER = re.compile(r"\[SCENE \d+\]")
_BRACKETED = re.compile(r"\[[^\]]+\]")
_HEADING = re.compile(r"#{1,6}\s+")
_EMPHASIS = re.compile(r"\*{1,2}([^*]+)\*{1,2}")
_BLANK_LINES = re.compile(r"\n{3,}")


def clean_script(script: str) -> str:
    """Strip scene markers, stage directions and markdown from a generated script."""
    text = _SCENE_MARKER.sub("", script)
    text = _BRACKETED.sub("", text)
    text = _HEADING.sub("", text)
    text = _EMPHASIS.sub(r"\1", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def normalize_text(text: str) -> str:
    """Canonicalize narration into single-spaced ASCII text.

    Quotes and dashes are converted before non-ASCII code points are
    removed, otherwise they would vanish instead of becoming their ASCII
    equivalents.
    """
    text = unicodedata.normalize("NFKD", text)
    text = text.translate(_PUNCTUATION_MAP)
    text = _NON_ASCII.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def validation_failure_reason(text: str) -> Optional[str]:
    """Return why ``text`` must not be sent for synthesis, or None if it is fine."""
    if not text:
        return "empty"
    stripped = text.strip()
    if len(stripped) < MIN_TEXT_LENGTH:
        return f"too short ({len(stripped)} chars)"
    if len(text) > MAX_TEXT_LENGTH:
        return f"too long ({len(text)} chars)"
    if _NON_ASCII.search(text):
        return "contains non-ASCII"
    if not _ALNUM.search(text):
        return "no alphanumeric chars"
    return None


def validate_chunk(text: str) -> bool:
    return validation_failure_reason(text) is None
