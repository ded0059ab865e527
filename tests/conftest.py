"""Shared fixtures: synthetic WAV buffers and a fake inference client."""

import io
import wave
from unittest.mock import MagicMock

import numpy as np
import pytest

from script2voiceover.tts.job_client import SynthesisJobClient

SAMPLE_RATE = 24000


def _tone(seconds: float, amplitude: float, sample_rate: int = SAMPLE_RATE, freq: float = 440.0) -> np.ndarray:
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    return np.round(amplitude * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def _silence(seconds: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    return np.zeros(int(round(seconds * sample_rate)), dtype=np.int16)


def _build_wav(samples, sample_rate: int = SAMPLE_RATE, channels: int = 1) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(np.asarray(samples, dtype="<i2").tobytes())
    return buf.getvalue()


@pytest.fixture
def tone():
    return _tone


@pytest.fixture
def silence():
    return _silence


@pytest.fixture
def build_wav():
    return _build_wav


@pytest.fixture
def fake_job_client():
    """Inference client whose every chunk renders as 0.5s of tone."""
    client = MagicMock(spec=SynthesisJobClient)
    client.synthesize.side_effect = lambda text, reference=None: _build_wav(_tone(0.5, 5000))
    return client
