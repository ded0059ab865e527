"""WAV parsing and lossless concatenation of per-chunk synthesis output."""

import logging
import struct
from dataclasses import dataclass
from typing import Sequence

from script2voiceover.errors import MalformedWav, WavFormatMismatch
from script2voiceover.models import ConcatenatedAudio, WavFormat

logger = logging.getLogger(__name__)

WAVE_FORMAT_PCM = 1


@dataclass(frozen=True)
class ParsedWav:
    """Locations and format of one WAV buffer."""
    raw: bytes
    format: WavFormat
    data_tag_offset: int
    data_start: int
    data_end: int

    @property
    def header(self) -> bytes:
        """Everything up to and including the data chunk header."""
        return self.raw[:self.data_start]

    @property
    def pcm(self) -> bytes:
        return self.raw[self.data_start:self.data_end]

    @property
    def duration_seconds(self) -> float:
        rate = self.format.effective_byte_rate
        return (self.data_end - self.data_start) / rate if rate else 0.0


def find_chunk(data: bytes, fourcc: bytes) -> int:
    """Offset of the first occurrence of ``fourcc``, or -1.

    Encoders may put LIST/INFO or other chunks before ``fmt `` and ``data``,
    so no fixed offsets are assumed.
    """
    return data.find(fourcc)


def parse_wav(data: bytes) -> ParsedWav:
    """Locate the fmt and data chunks of a WAV buffer.

    Raises:
        MalformedWav: If either chunk is missing or truncated.
    """
    if len(data) < 16:
        raise MalformedWav("WAV chunk too small")

    if data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        logger.warning("Unexpected WAV header (not RIFF/WAVE); attempting to parse anyway")

    fmt_idx = find_chunk(data, b"fmt ")
    data_idx = find_chunk(data, b"data")
    if fmt_idx == -1:
        raise MalformedWav("Missing fmt chunk in WAV")
    if data_idx == -1:
        raise MalformedWav("Missing data chunk in WAV")

    try:
        audio_format, channels, sample_rate, byte_rate, block_align, bits = (
            struct.unpack_from("<HHIIHH", data, fmt_idx + 8)
        )
        (data_size,) = struct.unpack_from("<I", data, data_idx + 4)
    except struct.error as e:
        raise MalformedWav(f"Truncated WAV header: {e}") from e

    if audio_format != WAVE_FORMAT_PCM:
        logger.warning("Non-PCM WAV detected (audioFormat=%d). Playback may fail.", audio_format)

    wav_format = WavFormat(
        audio_format=audio_format,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        bits_per_sample=bits,
        block_align=block_align,
    )

    data_start = data_idx + 8
    # Declared size may exceed what was actually written
    data_end = min(len(data), data_start + data_size)

    # A partial trailing frame would shift every sample stitched after it
    frame = wav_format.frame_size
    if frame > 1:
        partial = (data_end - data_start) % frame
        if partial:
            logger.warning("Dropping %d trailing bytes of a partial %d-byte frame", partial, frame)
            data_end -= partial

    return ParsedWav(
        raw=data,
        format=wav_format,
        data_tag_offset=data_idx,
        data_start=data_start,
        data_end=data_end,
    )


def concatenate_wavs(chunks: Sequence[bytes]) -> ConcatenatedAudio:
    """Join WAV buffers into one file, keeping the first chunk's header.

    Raises:
        MalformedWav: If the list is empty or any chunk cannot be parsed.
        WavFormatMismatch: If chunks differ in sample rate, channels or bit depth.
    """
    if not chunks:
        raise MalformedWav("No audio chunks to concatenate")

    parsed = []
    for i, chunk in enumerate(chunks):
        try:
            parsed.append(parse_wav(chunk))
        except MalformedWav as e:
            raise MalformedWav(f"Audio chunk {i + 1}: {e}") from e

    first = parsed[0]
    for i, wav in enumerate(parsed[1:], start=2):
        if not wav.format.same_layout(first.format):
            raise WavFormatMismatch(
                f"Audio chunk {i} is {wav.format.sample_rate}Hz/{wav.format.channels}ch/"
                f"{wav.format.bits_per_sample}bit, expected {first.format.sample_rate}Hz/"
                f"{first.format.channels}ch/{first.format.bits_per_sample}bit"
            )

    header = first.header
    total_pcm = sum(wav.data_end - wav.data_start for wav in parsed)

    output = bytearray(len(header) + total_pcm)
    output[:len(header)] = header
    struct.pack_into("<I", output, 4, len(output) - 8)
    struct.pack_into("<I", output, first.data_tag_offset + 4, total_pcm)

    offset = len(header)
    for wav in parsed:
        pcm = wav.pcm
        output[offset:offset + len(pcm)] = pcm
        offset += len(pcm)

    byte_rate = first.format.effective_byte_rate
    duration = total_pcm / byte_rate if byte_rate > 0 else 0.0

    logger.debug("Concatenated %d chunks: %d PCM bytes, %.2fs", len(parsed), total_pcm, duration)
    return ConcatenatedAudio(data=bytes(output), duration_seconds=duration)
