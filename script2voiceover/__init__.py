"""script2voiceover - render narration scripts to a single voice-cloned WAV."""

__version__ = "0.1.0"
