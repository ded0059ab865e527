"""Tests for WAV parsing and concatenation."""

import struct

import pytest

from script2voiceover.audio.wav import concatenate_wavs, parse_wav
from script2voiceover.errors import MalformedWav, WavFormatMismatch


def _with_list_chunk(wav: bytes) -> bytes:
    """Insert a LIST/INFO chunk between fmt and data, as some encoders do."""
    extra = b"LIST" + struct.pack("<I", 4) + b"INFO"
    out = bytearray(wav[:36] + extra + wav[36:])
    struct.pack_into("<I", out, 4, len(out) - 8)
    return bytes(out)


class TestParseWav:
    def test_reads_format_fields(self, build_wav, tone):
        parsed = parse_wav(build_wav(tone(0.25, 3000, sample_rate=16000), sample_rate=16000))
        assert parsed.format.sample_rate == 16000
        assert parsed.format.channels == 1
        assert parsed.format.bits_per_sample == 16
        assert parsed.format.byte_rate == 32000
        assert len(parsed.pcm) == 8000

    def test_finds_data_after_extra_chunks(self, build_wav, tone):
        plain = build_wav(tone(0.1, 3000))
        parsed = parse_wav(_with_list_chunk(plain))
        assert parsed.data_start == 44 + 12
        assert parsed.pcm == parse_wav(plain).pcm

    def test_clamps_declared_size_to_buffer(self, build_wav, tone):
        wav = build_wav(tone(0.1, 3000))
        truncated = wav[:-100]
        parsed = parse_wav(truncated)
        assert parsed.data_end == len(truncated)
        assert len(parsed.pcm) == len(wav) - 44 - 100

    def test_drops_partial_trailing_frame(self, build_wav, caplog):
        parsed = parse_wav(build_wav([7] * 10)[:-1])
        assert len(parsed.pcm) == 18
        assert parsed.duration_seconds == pytest.approx(9 / 24000)
        assert "partial 2-byte frame" in caplog.text

    def test_stereo_frame_alignment(self, build_wav):
        wav = build_wav([1, 2] * 10, channels=2)
        parsed = parse_wav(wav[:-3])
        assert parsed.format.frame_size == 4
        assert len(parsed.pcm) == 36

    def test_missing_data_chunk(self, build_wav, tone):
        wav = build_wav(tone(0.1, 3000))
        broken = wav[:36] + b"junk" + wav[40:]
        with pytest.raises(MalformedWav, match="data"):
            parse_wav(broken)

    def test_missing_fmt_chunk(self):
        with pytest.raises(MalformedWav, match="fmt"):
            parse_wav(b"RIFF\x00\x00\x00\x00WAVEdata\x04\x00\x00\x00\x00\x00\x00\x00")

    def test_too_small(self):
        with pytest.raises(MalformedWav):
            parse_wav(b"RIFF")


class TestConcatenateWavs:
    def test_sizes_and_duration_add_up(self, build_wav, tone):
        durations = [0.5, 1.25, 0.75]
        chunks = [build_wav(tone(d, 4000)) for d in durations]

        result = concatenate_wavs(chunks)
        parsed = parse_wav(result.data)

        pcm_sizes = [len(parse_wav(c).pcm) for c in chunks]
        (declared,) = struct.unpack_from("<I", result.data, parsed.data_tag_offset + 4)
        (riff_size,) = struct.unpack_from("<I", result.data, 4)
        assert declared == sum(pcm_sizes)
        assert riff_size == len(result.data) - 8
        assert result.duration_seconds == pytest.approx(sum(durations), rel=0.01)

    def test_preserves_chunk_order(self, build_wav):
        chunks = [build_wav([value] * 100) for value in (1, 2, 3)]
        result = concatenate_wavs(chunks)
        pcm = parse_wav(result.data).pcm
        assert pcm == b"".join(parse_wav(c).pcm for c in chunks)
        assert struct.unpack_from("<h", pcm, 0)[0] == 1
        assert struct.unpack_from("<h", pcm, len(pcm) - 2)[0] == 3

    def test_partial_frame_does_not_shift_next_chunk(self, build_wav):
        truncated = build_wav([7] * 10)[:-1]
        combined = concatenate_wavs([truncated, build_wav([1000] * 10)])

        pcm = parse_wav(combined.data).pcm
        assert len(pcm) == 18 + 20
        assert struct.unpack("<9h", pcm[:18]) == (7,) * 9
        assert struct.unpack("<10h", pcm[18:]) == (1000,) * 10

    def test_keeps_first_header_with_extra_chunks(self, build_wav, tone):
        first = _with_list_chunk(build_wav(tone(0.2, 3000)))
        second = build_wav(tone(0.2, 3000))
        result = concatenate_wavs([first, second])
        assert b"LIST" in result.data[:64]
        assert result.duration_seconds == pytest.approx(0.4, rel=0.01)

    def test_zero_byte_rate_falls_back_to_format(self, build_wav, tone):
        wav = bytearray(build_wav(tone(1.0, 3000)))
        struct.pack_into("<I", wav, 28, 0)
        result = concatenate_wavs([bytes(wav)])
        assert result.duration_seconds == pytest.approx(1.0, rel=0.01)

    def test_rejects_mismatched_sample_rates(self, build_wav, tone):
        chunks = [
            build_wav(tone(0.2, 3000, sample_rate=24000), sample_rate=24000),
            build_wav(tone(0.2, 3000, sample_rate=22050), sample_rate=22050),
        ]
        with pytest.raises(WavFormatMismatch, match="22050"):
            concatenate_wavs(chunks)

    def test_rejects_malformed_chunk(self, build_wav, tone):
        with pytest.raises(MalformedWav, match="chunk 2"):
            concatenate_wavs([build_wav(tone(0.1, 3000)), b"not a wav file at all"])

    def test_rejects_empty_list(self):
        with pytest.raises(MalformedWav):
            concatenate_wavs([])
