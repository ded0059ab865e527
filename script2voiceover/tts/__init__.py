"""Inference-side collaborators: voice sample loading and the TTS job client."""

from script2voiceover.tts.job_client import SynthesisJobClient
from script2voiceover.tts.reference import ReferenceAudioLoader

__all__ = ["ReferenceAudioLoader", "SynthesisJobClient"]
